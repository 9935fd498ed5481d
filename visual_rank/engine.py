"""
Image similarity ranking engine.

Orchestrates the search pipeline over every record in a store:
    1. Fetch all records (a full linear scan, no index)
    2. Score each record on six signals with adaptive weights
    3. Sort by fused similarity, ties broken by record id
    4. Analyze the score distribution and pick a relevance threshold
    5. Keep records strictly above the threshold, up to max_results

Scoring is done in batches. With workers > 0 the batches run on a thread
pool owned by the engine; each record's score is independent of the
others, so completion order doesn't matter.
"""

import os
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import numpy as np

from .distribution import DistributionStats, analyze_distribution, select_threshold
from .models import ImageRecord, OCRResult, ScoredRecord, VisualMetadata
from .scoring import METRICS, rank_results, score_record
from .vector_metrics import DimensionMismatchError
from .visual_metadata import extract_visual_metadata

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = int(os.environ.get("SEARCH_MAX_RESULTS", "15"))
DEFAULT_BATCH_SIZE = int(os.environ.get("SEARCH_BATCH_SIZE", "20"))
DEFAULT_WORKERS = int(os.environ.get("SEARCH_WORKERS", "0"))

MISMATCH_POLICIES = ("skip", "raise")


@dataclass
class SearchReport:
    """Everything a single search produced, for callers that need more than the hits."""
    results: List[ScoredRecord]
    threshold: float
    stats: DistributionStats
    scored: int = 0
    skipped: List[str] = field(default_factory=list)


class SearchEngine:
    """
    Multi-signal image similarity search over a record store.

    The engine owns an optional worker pool. Use it as a context manager,
    or call start() and close() explicitly; several engines can run side
    by side since no state is shared between them or between searches.
    A search on an engine with workers > 0 starts the pool if needed; it
    stays up until close().
    """

    def __init__(self,
                 store,
                 max_results: int = DEFAULT_MAX_RESULTS,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 workers: int = DEFAULT_WORKERS,
                 on_mismatch: str = "skip",
                 base_weights: Dict[str, float] = None):
        """
        Args:
            store: Object with a get_all() method returning ImageRecords.
            max_results: Maximum number of results returned per search.
            batch_size: Records scored per batch.
            workers: Thread pool size for scoring. 0 scores inline.
            on_mismatch: What to do when a record's vector length differs
                from the query's. "skip" logs and drops the record,
                "raise" aborts the search with DimensionMismatchError.
            base_weights: Optional override for scoring.DEFAULT_WEIGHTS.
        """
        if on_mismatch not in MISMATCH_POLICIES:
            raise ValueError(
                f"on_mismatch must be one of {MISMATCH_POLICIES}, got {on_mismatch!r}"
            )
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if base_weights is not None:
            _check_weights(base_weights)

        self.store = store
        self.max_results = max_results
        self.batch_size = batch_size
        self.workers = workers
        self.on_mismatch = on_mismatch
        self.base_weights = base_weights
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    def start(self) -> "SearchEngine":
        with self._pool_lock:
            if self.workers > 0 and self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers, thread_name_prefix="visual-rank"
                )
                logger.info(f"Started scoring pool with {self.workers} workers")
        return self

    def close(self) -> None:
        with self._pool_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
            logger.info("Scoring pool shut down")

    def __enter__(self) -> "SearchEngine":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def search(self,
               query_vector,
               query_metadata: Optional[VisualMetadata] = None,
               query_text: Union[OCRResult, str, None] = None,
               query_image: Optional[np.ndarray] = None) -> List[ScoredRecord]:
        """
        Rank stored records against a query.

        Args:
            query_vector: Unit-normalized feature vector of the query image.
            query_metadata: Visual properties of the query. Derived from
                query_image when omitted.
            query_text: OCR output of the query image, or plain text.
            query_image: Decoded RGB query image, used only to derive
                query_metadata.

        Returns:
            Up to max_results ScoredRecords, highest similarity first,
            each strictly above this search's threshold.
        """
        return self.search_with_report(
            query_vector, query_metadata, query_text, query_image
        ).results

    def search_with_report(self,
                           query_vector,
                           query_metadata: Optional[VisualMetadata] = None,
                           query_text: Union[OCRResult, str, None] = None,
                           query_image: Optional[np.ndarray] = None) -> SearchReport:
        """Same as search(), also returning threshold and distribution stats."""
        records = self.store.get_all()
        if not records:
            logger.info("Search on empty store")
            return SearchReport(results=[], threshold=select_threshold([], DistributionStats()),
                                stats=DistributionStats())

        query_vector = np.asarray(query_vector, dtype=np.float64).ravel()
        if query_metadata is None and query_image is not None:
            query_metadata = extract_visual_metadata(query_image)
        query_text = _coerce_text(query_text)

        if self.workers > 0:
            self.start()

        scored, skipped = self._score_all(records, query_vector, query_metadata, query_text)
        ranked = rank_results(scored)

        stats = analyze_distribution([r.similarity for r in ranked])
        threshold = select_threshold(ranked, stats)
        results = [r for r in ranked if r.similarity > threshold][:self.max_results]

        logger.info(
            f"Search complete: {len(records)} records, {len(skipped)} skipped, "
            f"threshold {threshold:.3f} -> {len(results)} results"
        )
        logger.debug(f"Similarity stats: {stats.to_dict()}")

        return SearchReport(
            results=results,
            threshold=threshold,
            stats=stats,
            scored=len(scored),
            skipped=skipped,
        )

    def _score_all(self, records: List[ImageRecord], query_vector: np.ndarray,
                   query_metadata: Optional[VisualMetadata],
                   query_text: Optional[OCRResult]):
        scored: List[ScoredRecord] = []
        skipped: List[str] = []

        def score_one(record: ImageRecord) -> Optional[ScoredRecord]:
            try:
                return score_record(record, query_vector, query_metadata, query_text,
                                    base_weights=self.base_weights)
            except DimensionMismatchError as e:
                if self.on_mismatch == "raise":
                    raise
                logger.warning(f"Skipping record {record.id}: {e}")
                return None

        executor = self._executor
        for start in range(0, len(records), self.batch_size):
            batch = records[start:start + self.batch_size]
            if executor is not None:
                outcomes = list(executor.map(score_one, batch))
            else:
                outcomes = [score_one(record) for record in batch]

            for record, outcome in zip(batch, outcomes):
                if outcome is None:
                    skipped.append(record.id)
                else:
                    scored.append(outcome)

        return scored, skipped


def _coerce_text(query_text: Union[OCRResult, str, None]) -> Optional[OCRResult]:
    """Plain query text is treated as OCR output with full confidence."""
    if query_text is None or isinstance(query_text, OCRResult):
        return query_text
    words = [(word, 1.0) for word in str(query_text).split()]
    return OCRResult.from_words(words, text=str(query_text), confidence=1.0 if words else 0.0)


def _check_weights(weights: Dict[str, float]) -> None:
    missing = [name for name in METRICS if name not in weights]
    if missing:
        raise ValueError(f"base_weights missing metrics: {', '.join(missing)}")
    if any(weights[name] < 0 for name in METRICS):
        raise ValueError("base_weights must not be negative")
    if sum(weights[name] for name in METRICS) <= 0:
        raise ValueError("base_weights must not all be zero")
