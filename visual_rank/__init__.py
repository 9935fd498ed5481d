"""
visual_rank: multi-signal local image similarity ranking.

Scores every stored image against a query on six signals (three vector
metrics, dominant colors, visual properties and OCR text), fuses them
with weights adapted to each image's characteristics, and cuts the
ranking at a threshold derived from the score distribution.

Modules:
    engine            SearchEngine: fetch, score, sort, threshold, truncate
    scoring           Characteristics, adaptive weights, fusion, ranking
    distribution      Score statistics and threshold selection
    vector_metrics    Cosine, euclidean and manhattan similarity
    visual_metadata   Visual property extraction and comparison
    text_similarity   OCR text similarity (Jaccard, phrases, fuzzy)
    preprocessing     Pixel buffer handling and OCR binarization
    ocr               Tesseract adapter with content-hash cache
    store             In-memory record store
    ingest            Record construction from images
    models            Record and result types
"""

from .engine import SearchEngine, SearchReport
from .models import (
    Characteristics, ComponentScores, ImageRecord, OCRResult, OCRWord,
    ScoredRecord, VisualMetadata,
)
from .store import RecordStore, StoreError
from .vector_metrics import DimensionMismatchError

__version__ = "1.0.0"

__all__ = [
    "SearchEngine", "SearchReport", "RecordStore", "StoreError",
    "DimensionMismatchError", "ImageRecord", "VisualMetadata", "OCRResult",
    "OCRWord", "ScoredRecord", "ComponentScores", "Characteristics",
]
