"""
Record construction from images.

Turns decoded images (or a directory of image files) into ImageRecords:
    - feature vector from a caller-supplied embed() callable
    - VisualMetadata from the pixels
    - OCRResult from an optional OCRReader

The embedding model is not part of this package. Any callable taking an
RGB uint8 array and returning a unit-normalized vector will do.
"""

import os
import json
import logging
from typing import Callable, Optional

import cv2
import numpy as np

from .models import ImageRecord
from .ocr import OCRReader
from .store import RecordStore, StoreError
from .visual_metadata import extract_visual_metadata

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.webp'}

Embedder = Callable[[np.ndarray], np.ndarray]


def build_record(record_id: str,
                 image_rgb: np.ndarray,
                 embed: Embedder,
                 ocr: Optional[OCRReader] = None,
                 timestamp: Optional[str] = None) -> ImageRecord:
    """
    Build an ImageRecord for one decoded image.

    Metadata extraction and OCR degrade to missing signals on failure;
    only the embedding is required.

    Args:
        record_id: Unique id for the record.
        image_rgb: RGB uint8 image.
        embed: Feature vector producer.
        ocr: Optional OCR reader. Without one the record has no text.
        timestamp: Optional ISO timestamp, defaults to now.

    Raises:
        Whatever embed() raises for malformed input.
    """
    vector = np.asarray(embed(image_rgb), dtype=np.float64)

    try:
        metadata = extract_visual_metadata(image_rgb)
    except Exception as e:
        logger.warning(f"Metadata extraction failed for {record_id}: {e}")
        metadata = None

    text = ocr.read(image_rgb) if ocr is not None else None

    kwargs = {"timestamp": timestamp} if timestamp else {}
    return ImageRecord(id=record_id, vector=vector, metadata=metadata, text=text, **kwargs)


def ingest_directory(image_dir: str,
                     embed: Embedder,
                     store: RecordStore,
                     ocr: Optional[OCRReader] = None,
                     metadata_path: Optional[str] = None) -> dict:
    """
    Build records for every image in a directory and put them in a store.

    Args:
        image_dir: Directory containing images.
        embed: Feature vector producer.
        store: Destination store. Record ids are the image filenames.
        ocr: Optional OCR reader.
        metadata_path: Optional JSON list of entries with a 'filename'
            field. If not provided, image_dir is scanned.

    Returns:
        Dict with 'success', 'processed', 'errors' and 'skipped' counts.
    """
    if metadata_path and os.path.exists(metadata_path):
        with open(metadata_path, 'r', encoding='utf-8') as f:
            entries = json.load(f)
        filenames = [e.get('filename') for e in entries if e.get('filename')]
    else:
        filenames = sorted(
            f for f in os.listdir(image_dir)
            if os.path.splitext(f)[1].lower() in IMAGE_EXTENSIONS
        )

    processed = 0
    errors = 0
    skipped = 0

    logger.info(f"Ingesting {len(filenames)} images from {image_dir}")

    for i, filename in enumerate(filenames):
        filepath = os.path.join(image_dir, filename)
        if not os.path.exists(filepath):
            skipped += 1
            continue

        image = cv2.imread(filepath)
        if image is None:
            logger.warning(f"Could not read: {filename}")
            errors += 1
            continue

        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        try:
            record = build_record(filename, image_rgb, embed, ocr=ocr)
        except Exception as e:
            logger.warning(f"Failed to process {filename}: {e}")
            errors += 1
            continue

        try:
            store.put(record)
        except StoreError as e:
            logger.warning(f"Skipping {filename}: {e}")
            skipped += 1
            continue

        processed += 1
        if (i + 1) % 500 == 0:
            logger.info(f"Processed {i + 1}/{len(filenames)} images")

    logger.info(f"Ingest done: {processed} records, {skipped} skipped, {errors} errors")

    return {
        "success": processed > 0,
        "processed": processed,
        "skipped": skipped,
        "errors": errors,
    }
