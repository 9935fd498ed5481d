"""
OCR adapter over Tesseract.

Produces OCRResult values for stored images and queries. Recognition
failures never propagate: they are logged and an empty result is
returned, so a broken OCR install degrades text scoring to zero instead
of failing ingestion or search.

Results are cached by a SHA-256 hash of the pixel content (plus the
recognition mode) with a time-to-live, so repeated reads of the same
image skip Tesseract entirely.
"""

import os
import time
import hashlib
import logging
import threading
from collections import OrderedDict
from typing import Callable, Optional, Tuple

import numpy as np
import pytesseract

from .models import OCRResult, OCRWord
from .preprocessing import normalize_image, prepare_for_ocr
from .text_similarity import normalize_text

logger = logging.getLogger(__name__)

OCR_LANG = os.environ.get("OCR_LANG", "eng")
CACHE_TTL_SECONDS = float(os.environ.get("OCR_CACHE_TTL", "1800"))
CACHE_MAX_ENTRIES = int(os.environ.get("OCR_CACHE_SIZE", "100"))

# Tesseract reports word confidence on 0-100, -1 for non-word boxes
RAW_MIN_CONFIDENCE = 40
MIN_WORD_CONFIDENCE = 0.5
MIN_WORD_LENGTH = 2

# Quick mode: sparse text, no upscaling. Thorough mode: full page
# segmentation on an upscaled image.
QUICK_CONFIG = "--psm 11"
THOROUGH_CONFIG = "--psm 3"
THOROUGH_UPSCALE = 1.5


class ResultCache:
    """
    Bounded OCR result cache with time-based expiry.

    Entries older than ttl seconds are treated as missing. When full, the
    oldest entry is evicted to make room. Safe to share between threads.
    """

    def __init__(self, ttl: float = CACHE_TTL_SECONDS,
                 max_entries: int = CACHE_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, OCRResult]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[OCRResult]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, result = entry
            if self._clock() - stored_at >= self.ttl:
                self._entries.pop(key, None)
                return None
            return result

    def put(self, key: str, result: OCRResult) -> None:
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries > 0:
                self._entries.popitem(last=False)
            if self.max_entries > 0:
                self._entries[key] = (self._clock(), result)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def content_key(image_np: np.ndarray, quick: bool) -> str:
    """Cache key derived from pixel content, shape and recognition mode."""
    image_np = np.ascontiguousarray(image_np)
    digest = hashlib.sha256()
    digest.update(str(image_np.shape).encode())
    digest.update(b"quick" if quick else b"thorough")
    digest.update(image_np.tobytes())
    return digest.hexdigest()


def words_from_data(data: dict) -> OCRResult:
    """
    Convert pytesseract image_to_data output into an OCRResult.

    Words below RAW_MIN_CONFIDENCE are dropped, confidences are scaled to
    [0, 1], then words at or below MIN_WORD_CONFIDENCE or shorter than two
    characters are dropped. Words are sorted by confidence, highest
    first. The full text keeps every recognized token in reading order.
    """
    tokens = []
    confidences = []
    words = []

    for raw_text, raw_conf in zip(data.get("text", []), data.get("conf", [])):
        raw_text = (raw_text or "").strip()
        conf = float(raw_conf)
        if not raw_text:
            continue
        tokens.append(raw_text)
        if conf >= 0:
            confidences.append(conf)
        if conf <= RAW_MIN_CONFIDENCE:
            continue
        word = normalize_text(raw_text)
        confidence = conf / 100.0
        if confidence > MIN_WORD_CONFIDENCE and len(word) >= MIN_WORD_LENGTH:
            words.append(OCRWord(word, confidence))

    words.sort(key=lambda w: w.confidence, reverse=True)
    overall = (sum(confidences) / len(confidences) / 100.0) if confidences else 0.0

    return OCRResult(
        text=normalize_text(" ".join(tokens)),
        confidence=overall,
        words=tuple(words),
    )


class OCRReader:
    """
    Tesseract-backed OCR with an owned result cache.

    Call start() before use (or use as a context manager); read() starts
    the reader lazily if needed. close() drops the cache.
    """

    def __init__(self, lang: str = OCR_LANG, cache: Optional[ResultCache] = None):
        self.lang = lang
        self.cache = cache if cache is not None else ResultCache()
        self._ready = False

    def start(self) -> "OCRReader":
        """
        Verify the Tesseract binary is available.

        Raises:
            RuntimeError: If Tesseract cannot be found or run.
        """
        if not self._ready:
            try:
                version = pytesseract.get_tesseract_version()
            except Exception as e:
                raise RuntimeError(f"OCR initialization failed: {e}") from e
            self._ready = True
            logger.info(f"OCR ready: tesseract {version}, lang={self.lang}")
        return self

    def close(self) -> None:
        self.cache.clear()
        self._ready = False

    def __enter__(self) -> "OCRReader":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def read(self, image_np: np.ndarray,
             quick: bool = False,
             force_refresh: bool = False,
             enhance: bool = True) -> OCRResult:
        """
        Recognize text in an image.

        Args:
            image_np: RGB uint8 image.
            quick: Faster sparse-text pass, for previews.
            force_refresh: Ignore any cached result.
            enhance: Binarize the image before recognition.

        Returns:
            OCRResult; empty if recognition failed.
        """
        try:
            image_np = normalize_image(image_np)
        except Exception as e:
            logger.error(f"OCR input rejected: {e}")
            return OCRResult.empty()

        key = content_key(image_np, quick)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("OCR cache hit")
                return cached

        try:
            self.start()
        except RuntimeError as e:
            logger.error(f"OCR not initialized: {e}")
            return OCRResult.empty()

        try:
            if enhance:
                prepared = prepare_for_ocr(image_np, upscale=1.0 if quick else THOROUGH_UPSCALE)
            else:
                prepared = image_np
            data = pytesseract.image_to_data(
                prepared,
                lang=self.lang,
                config=QUICK_CONFIG if quick else THOROUGH_CONFIG,
                output_type=pytesseract.Output.DICT,
            )
            result = words_from_data(data)
        except Exception as e:
            logger.error(f"Text extraction error: {e}")
            return OCRResult.empty()

        self.cache.put(key, result)
        logger.debug(f"OCR found {len(result.words)} words")
        return result
