"""
Score distribution analysis and adaptive relevance threshold.

After a search scores every record, the shape of the score distribution
says where relevant results end: a large gap between consecutive scores,
a wide quartile spread, or one result far ahead of the rest. The
threshold starts at BASE_THRESHOLD, is raised by whichever of those
patterns are present, relaxed slightly when text matches are involved,
and finally clamped to [MIN_THRESHOLD, MAX_THRESHOLD].
"""

import math
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from .models import ScoredRecord

logger = logging.getLogger(__name__)

BASE_THRESHOLD = 0.45
MIN_THRESHOLD = 0.4
MAX_THRESHOLD = 0.85

MIN_RESULTS_FOR_ANALYSIS = 3
SIGNIFICANT_GAP = 0.1
QUARTILE_SPREAD = 0.2
DOMINANT_TOP_SCORE = 0.8
DOMINANT_LEAD = 0.2
DOMINANT_FACTOR = 0.8
TEXT_MATCH_SCORE = 0.5
TEXT_RELAX_FACTOR = 0.9
GAP_TOLERANCE = 0.001
TOP_GAPS = 3


@dataclass(frozen=True)
class DistributionStats:
    """
    Summary of one batch of similarity scores.

    Quartiles are read from the scores sorted in descending order, so
    q1 is the value a quarter of the way down from the top and q3 the
    value three quarters down. q1 >= q3 for every batch.
    """
    mean: float = 0.0
    std_dev: float = 0.0
    median: float = 0.0
    quartiles: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    gaps: Tuple[float, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "mean": self.mean,
            "std_dev": self.std_dev,
            "median": self.median,
            "quartiles": list(self.quartiles),
            "gaps": list(self.gaps),
        }


def analyze_distribution(scores: Sequence[float]) -> DistributionStats:
    """
    Compute mean, population standard deviation, median, quartiles and
    the three largest gaps between consecutive sorted scores.

    Returns:
        DistributionStats; all zeros with no gaps for an empty batch.
    """
    if not scores:
        return DistributionStats()

    n = len(scores)
    mean = math.fsum(scores) / n
    variance = math.fsum((s - mean) ** 2 for s in scores) / n

    ordered = sorted(scores, reverse=True)
    median = ordered[n // 2]
    q1 = ordered[int(n * 0.25)]
    q3 = ordered[int(n * 0.75)]

    gaps = sorted((ordered[i] - ordered[i + 1] for i in range(n - 1)), reverse=True)

    return DistributionStats(
        mean=mean,
        std_dev=math.sqrt(variance),
        median=median,
        quartiles=(q1, median, q3),
        gaps=tuple(gaps[:TOP_GAPS]),
    )


def find_gap_index(scores: Sequence[float], target_gap: float) -> int:
    """Index i of the first pair (i, i+1) separated by target_gap, or -1."""
    for i in range(len(scores) - 1):
        if abs(scores[i] - scores[i + 1] - target_gap) < GAP_TOLERANCE:
            return i
    return -1


def quartile_spread_exceeded(stats: DistributionStats) -> bool:
    """
    Whether q1 - q3 exceeds QUARTILE_SPREAD.

    With descending quartiles this compares the upper-quarter score to
    the lower-quarter score, so it fires when the top of the batch is
    well separated from the bottom.
    """
    q1, _, q3 = stats.quartiles
    return q1 - q3 > QUARTILE_SPREAD


def select_threshold(results: List[ScoredRecord], stats: DistributionStats) -> float:
    """
    Derive the relevance cutoff for a sorted batch of results.

    Args:
        results: Scored records sorted by similarity, highest first.
        stats: analyze_distribution() over the same similarities.

    Returns:
        Threshold in [MIN_THRESHOLD, MAX_THRESHOLD]. Records must score
        strictly above it to be kept.
    """
    threshold = BASE_THRESHOLD

    if len(results) >= MIN_RESULTS_FOR_ANALYSIS:
        scores = [r.similarity for r in results]

        if stats.gaps and stats.gaps[0] > SIGNIFICANT_GAP:
            gap_index = find_gap_index(scores, stats.gaps[0])
            if 0 < gap_index < len(scores) - 1:
                midpoint = (scores[gap_index] + scores[gap_index + 1]) / 2
                threshold = max(threshold, midpoint)

        if quartile_spread_exceeded(stats):
            threshold = max(threshold, stats.quartiles[2])

        if scores[0] > DOMINANT_TOP_SCORE and scores[0] - scores[1] > DOMINANT_LEAD:
            threshold = max(threshold, scores[0] * DOMINANT_FACTOR)

        if any(r.metrics.text > TEXT_MATCH_SCORE for r in results):
            threshold = max(MIN_THRESHOLD, threshold * TEXT_RELAX_FACTOR)

    return min(max(MIN_THRESHOLD, threshold), MAX_THRESHOLD)
