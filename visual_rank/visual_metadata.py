"""
Visual property extraction and comparison.

Summarizes an image as a handful of cheap properties (dominant colors,
brightness, contrast, color entropy and edge density) sampled from a
40x40 thumbnail, and compares two such summaries. These signals are
coarse on their own; they exist to nudge the vector metrics when two
images are close in embedding space but obviously different in tone.
"""

import math
import logging
from typing import Optional, Sequence

import numpy as np

from .models import Color, VisualMetadata
from .preprocessing import image_from_buffer, resize_for_sampling

logger = logging.getLogger(__name__)

# Every Nth pixel of the thumbnail is sampled for the color histogram
PIXEL_STRIDE = 4
QUANTIZE_STEP = 40
MAX_DOMINANT_COLORS = 5
# Entropy (bits) that maps to a color_entropy of 1.0
ENTROPY_SCALE = 5.0
EDGE_GRADIENT_THRESHOLD = 30

# Largest possible distance between two RGB colors: sqrt(3 * 255^2)
MAX_RGB_DISTANCE = 441.67
TOP_COLORS = 3
NEUTRAL_SCORE = 0.5

PROPERTY_WEIGHTS = {
    "brightness": 0.3,
    "contrast": 0.2,
    "color_entropy": 0.25,
    "edge_density": 0.25,
}


def extract_visual_metadata(image_np: np.ndarray) -> VisualMetadata:
    """
    Compute a VisualMetadata summary from decoded pixels.

    Process:
        1. Downscale to a 40x40 thumbnail
        2. Sample every 4th pixel, quantize channels to steps of 40
        3. Rank quantized colors by frequency (first-seen order breaks ties)
        4. Average brightness and distance from mid-gray
        5. Shannon entropy of the quantized histogram
        6. Share of interior pixels with a strong neighbor gradient

    Args:
        image_np: RGB or RGBA uint8 image of any size.

    Returns:
        VisualMetadata. An empty image yields metadata with every
        property missing.
    """
    image_np = np.asarray(image_np)
    if image_np.size == 0 or image_np.ndim < 2 or min(image_np.shape[:2]) == 0:
        logger.warning("Empty image, no visual metadata extracted")
        return VisualMetadata()

    thumb = resize_for_sampling(image_np).astype(np.int32)
    samples = thumb.reshape(-1, 3)[::PIXEL_STRIDE]

    quantized = (np.floor(samples / QUANTIZE_STEP + 0.5) * QUANTIZE_STEP).astype(np.int32)
    colors, first_seen, counts = np.unique(
        quantized, axis=0, return_index=True, return_counts=True
    )
    order = sorted(range(len(colors)), key=lambda i: (-counts[i], first_seen[i]))
    dominant = tuple(
        tuple(int(v) for v in colors[i]) for i in order[:MAX_DOMINANT_COLORS]
    )

    pixel_brightness = samples.sum(axis=1) / 3.0
    brightness = float(np.mean(pixel_brightness)) / 255.0
    contrast = float(np.mean(np.abs(pixel_brightness - 128))) / 128.0

    return VisualMetadata(
        dominant_colors=dominant,
        brightness=brightness,
        contrast=contrast,
        color_entropy=_color_entropy(counts),
        edge_density=_edge_density(thumb),
    )


def metadata_from_buffer(width: int, height: int, data, channels: int = 4) -> VisualMetadata:
    """Extract VisualMetadata from a raw interleaved RGB(A) buffer."""
    return extract_visual_metadata(image_from_buffer(width, height, data, channels))


def _color_entropy(counts: np.ndarray) -> float:
    total = float(np.sum(counts))
    if total <= 0:
        return 0.0
    probabilities = counts / total
    entropy = float(-np.sum(probabilities * np.log2(probabilities)))
    return min(1.0, entropy / ENTROPY_SCALE)


def _edge_density(thumb: np.ndarray) -> float:
    """
    Approximate level of detail from neighbor differences.

    Checks every second interior pixel against its right and lower
    neighbors; a pixel counts as an edge when the mean channel difference
    in either direction exceeds EDGE_GRADIENT_THRESHOLD.
    """
    h, w = thumb.shape[:2]
    if h < 3 or w < 3:
        return 0.0

    ys = np.arange(1, h - 1, 2)
    xs = np.arange(1, w - 1, 2)
    center = thumb[np.ix_(ys, xs)]
    right = thumb[np.ix_(ys, xs + 1)]
    below = thumb[np.ix_(ys + 1, xs)]

    gradient_h = np.abs(center - right).mean(axis=2)
    gradient_v = np.abs(center - below).mean(axis=2)
    edges = (gradient_h > EDGE_GRADIENT_THRESHOLD) | (gradient_v > EDGE_GRADIENT_THRESHOLD)
    return float(np.count_nonzero(edges)) / edges.size


def color_similarity(colors_a: Optional[Sequence[Color]],
                     colors_b: Optional[Sequence[Color]]) -> float:
    """
    Compare two dominant-color lists.

    For each of A's top three colors, find the nearest of B's top three
    by RGB distance (normalized by MAX_RGB_DISTANCE) and average the
    resulting similarities.

    Returns:
        Similarity in [0, 1]; exactly 0.5 when either list is empty.
    """
    if not colors_a or not colors_b:
        return NEUTRAL_SCORE

    top_a = np.asarray(list(colors_a)[:TOP_COLORS], dtype=np.float64)
    top_b = np.asarray(list(colors_b)[:TOP_COLORS], dtype=np.float64)

    total = 0.0
    for color in top_a:
        distances = np.linalg.norm(top_b - color, axis=1) / MAX_RGB_DISTANCE
        best = min(1.0, float(np.min(distances)))
        total += 1.0 - best

    return total / len(top_a)


def _property_similarity(value_a: Optional[float], value_b: Optional[float]) -> float:
    if value_a is None or value_b is None:
        return NEUTRAL_SCORE
    return 1.0 - abs(value_a - value_b)


def visual_properties_similarity(props_a: Optional[VisualMetadata],
                                 props_b: Optional[VisualMetadata]) -> float:
    """
    Weighted similarity of brightness, contrast, entropy and edge density.

    Each property contributes 1 - |difference|, or 0.5 when either side
    lacks it. Missing metadata on either side gives 0.5 overall.
    """
    if props_a is None or props_b is None:
        return NEUTRAL_SCORE

    return math.fsum(
        weight * _property_similarity(getattr(props_a, name), getattr(props_b, name))
        for name, weight in PROPERTY_WEIGHTS.items()
    )

