"""
Multi-signal similarity scoring for stored image records.

Six independent component scores are fused into one similarity:

    cosine, euclidean, manhattan   feature-vector agreement
    color                          dominant color agreement
    visual_props                   brightness/contrast/entropy/edges
    text                           OCR text agreement

Weights start from DEFAULT_WEIGHTS and are adapted per record based on
what kind of image it is (text-heavy, colorful, detailed) and on how
strong the raw signals are. A penalty factor dampens records whose
signals disagree sharply.

Base weights are loaded from environment variables so they can be tuned
without code changes. See DEFAULT_WEIGHTS for the expected structure.
"""

import os
import logging
from typing import Dict, List, Optional

import numpy as np

from .models import (
    Characteristics, ComponentScores, ImageRecord, OCRResult, ScoredRecord,
    VisualMetadata,
)
from .text_similarity import text_similarity
from .vector_metrics import cosine_similarity, euclidean_similarity, manhattan_similarity
from .visual_metadata import NEUTRAL_SCORE, color_similarity, visual_properties_similarity

logger = logging.getLogger(__name__)

METRICS = ("cosine", "euclidean", "manhattan", "color", "visual_props", "text")

DEFAULT_WEIGHTS = {
    "cosine":       float(os.environ.get("SCORE_W_COSINE", "0.30")),
    "euclidean":    float(os.environ.get("SCORE_W_EUCLIDEAN", "0.25")),
    "manhattan":    float(os.environ.get("SCORE_W_MANHATTAN", "0.15")),
    "color":        float(os.environ.get("SCORE_W_COLOR", "0.20")),
    "visual_props": float(os.environ.get("SCORE_W_VISUAL", "0.05")),
    "text":         float(os.environ.get("SCORE_W_TEXT", "0.05")),
}

# Characteristic cutoffs
TEXT_HEAVY_MIN_WORDS = 5
TEXT_HEAVY_MIN_CONFIDENCE = 0.6
COLORFUL_MIN_ENTROPY = 0.7
HIGH_CONTRAST_MIN = 0.6
DETAILED_MIN_EDGE_DENSITY = 0.5

# Both sides need more than this many words for text to be significant
SIGNIFICANT_TEXT_MIN_WORDS = 3
SIGNIFICANT_TEXT_MIN_SCORE = 0.2

STRONG_SIGNAL = 0.8


def classify_characteristics(record: ImageRecord) -> Characteristics:
    """
    Flag what kind of image a record holds.

    Missing metadata or text leaves the corresponding flags False.
    """
    text = record.text
    is_text_heavy = bool(
        text is not None
        and text.text
        and len(text.words) > TEXT_HEAVY_MIN_WORDS
        and text.confidence > TEXT_HEAVY_MIN_CONFIDENCE
    )

    meta = record.metadata
    if meta is None:
        return Characteristics(is_text_heavy=is_text_heavy)

    return Characteristics(
        is_text_heavy=is_text_heavy,
        is_colorful=meta.color_entropy is not None and meta.color_entropy > COLORFUL_MIN_ENTROPY,
        is_high_contrast=meta.contrast is not None and meta.contrast > HIGH_CONTRAST_MIN,
        is_detailed=(meta.edge_density is not None
                     and meta.edge_density > DETAILED_MIN_EDGE_DENSITY),
    )


def has_significant_text(query_text: Optional[OCRResult],
                         record_text: Optional[OCRResult],
                         text_score: float) -> bool:
    """Both sides carry more than three words and their text agrees somewhat."""
    if query_text is None or record_text is None:
        return False
    return (len(query_text.words) > SIGNIFICANT_TEXT_MIN_WORDS
            and len(record_text.words) > SIGNIFICANT_TEXT_MIN_WORDS
            and text_score > SIGNIFICANT_TEXT_MIN_SCORE)


def select_weights(characteristics: Characteristics,
                   significant_text: bool,
                   text_score: float,
                   cosine_score: float,
                   color_score: float,
                   base_weights: Dict[str, float] = None) -> Dict[str, float]:
    """
    Adapt the six metric weights to a record.

    Adjustments are applied in a fixed order; later steps read the
    weights produced by earlier ones:
        1. Text-heavy or significant text: rebuild around a text weight
           of 0.2 + 0.3 * text_score
        2. Colorful: boost color (capped at 0.3), trim cosine
        3. Detailed: boost cosine and euclidean (capped), trim color
        4. Strong cosine score: boost cosine (capped at 0.4)
        5. Strong color score: boost color (capped at 0.3)
        6. Normalize so the weights sum to 1.0

    Args:
        characteristics: Flags for the candidate record.
        significant_text: Result of has_significant_text().
        text_score: Raw text similarity.
        cosine_score: Raw cosine similarity.
        color_score: Raw color similarity.
        base_weights: Optional override for DEFAULT_WEIGHTS.

    Returns:
        Dict keyed by metric name, values summing to 1.0.
    """
    weights = dict(base_weights or DEFAULT_WEIGHTS)

    if characteristics.is_text_heavy or significant_text:
        text_weight = 0.2 + text_score * 0.3
        weights = {
            "cosine": 0.25 - text_weight * 0.1,
            "euclidean": 0.2 - text_weight * 0.05,
            "manhattan": 0.1,
            "color": 0.15,
            "visual_props": 0.05,
            "text": text_weight,
        }

    if characteristics.is_colorful:
        weights["color"] = min(0.3, weights["color"] * 1.5)
        weights["cosine"] -= 0.05

    if characteristics.is_detailed:
        weights["cosine"] = min(0.35, weights["cosine"] * 1.2)
        weights["euclidean"] = min(0.3, weights["euclidean"] * 1.2)
        weights["color"] -= 0.05

    if cosine_score > STRONG_SIGNAL:
        weights["cosine"] = min(0.4, weights["cosine"] * 1.2)

    if color_score > STRONG_SIGNAL:
        weights["color"] = min(0.3, weights["color"] * 1.2)

    total = sum(weights[name] for name in METRICS)
    return {name: weights[name] / total for name in METRICS}


def compute_penalty(scores: ComponentScores, significant_text: bool) -> float:
    """
    Dampen records whose signals disagree.

    Factors compound: 0.8 when both cosine and euclidean are below 0.4,
    0.9 when color is below 0.3, 0.85 when significant text barely
    matches.
    """
    penalty = 1.0
    if scores.cosine < 0.4 and scores.euclidean < 0.4:
        penalty *= 0.8
    if scores.color < 0.3:
        penalty *= 0.9
    if significant_text and scores.text < 0.2:
        penalty *= 0.85
    return penalty


def fuse(scores: ComponentScores, weights: Dict[str, float], penalty: float = 1.0) -> float:
    """Weighted sum of component scores, scaled by the penalty factor."""
    values = scores.to_dict()
    return float(sum(values[name] * weights[name] for name in METRICS) * penalty)


def compute_component_scores(record: ImageRecord,
                             query_vector: np.ndarray,
                             query_metadata: Optional[VisualMetadata] = None,
                             query_text: Optional[OCRResult] = None) -> ComponentScores:
    """
    Compute the six raw component scores for one record.

    Raises:
        DimensionMismatchError: If the query and record vectors differ
            in length.
    """
    cosine = cosine_similarity(query_vector, record.vector)
    euclidean = euclidean_similarity(query_vector, record.vector)
    manhattan = manhattan_similarity(query_vector, record.vector)

    if record.metadata is not None and record.metadata.dominant_colors:
        query_colors = query_metadata.dominant_colors if query_metadata else ()
        color = color_similarity(query_colors, record.metadata.dominant_colors)
    else:
        color = NEUTRAL_SCORE

    return ComponentScores(
        cosine=cosine,
        euclidean=euclidean,
        manhattan=manhattan,
        color=color,
        visual_props=visual_properties_similarity(query_metadata, record.metadata),
        text=text_similarity(query_text, record.text),
    )


def score_record(record: ImageRecord,
                 query_vector: np.ndarray,
                 query_metadata: Optional[VisualMetadata] = None,
                 query_text: Optional[OCRResult] = None,
                 base_weights: Dict[str, float] = None) -> ScoredRecord:
    """
    Score one stored record against the query.

    Pipeline:
        1. Six component scores
        2. Characteristic flags for the record
        3. Adaptive weights
        4. Weighted sum times penalty

    Returns:
        ScoredRecord carrying the fused similarity and the breakdown.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    scores = compute_component_scores(record, query_vector, query_metadata, query_text)
    significant = has_significant_text(query_text, record.text, scores.text)
    characteristics = classify_characteristics(record)

    weights = select_weights(
        characteristics, significant, scores.text, scores.cosine, scores.color,
        base_weights=base_weights,
    )
    similarity = fuse(scores, weights, compute_penalty(scores, significant))

    return ScoredRecord(
        record=record,
        similarity=similarity,
        metrics=scores,
        has_significant_text=significant,
        characteristics=characteristics,
    )


def rank_results(results: List[ScoredRecord]) -> List[ScoredRecord]:
    """
    Sort scored records by similarity (descending), breaking ties by
    record id (ascending) so equal scores always come back in the same
    order.
    """
    return sorted(results, key=lambda r: (-r.similarity, r.id))
