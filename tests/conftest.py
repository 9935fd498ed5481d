"""Shared test fixtures for ranking tests."""

import numpy as np
import cv2
import pytest

from visual_rank.models import ImageRecord, OCRResult, VisualMetadata


def unit(vector):
    """Return vector scaled to unit length."""
    v = np.asarray(vector, dtype=np.float64)
    return v / np.linalg.norm(v)


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]  # Red square
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def flat_gray_image():
    """Generate a 200x200 uniform mid-gray image."""
    return np.ones((200, 200, 3), dtype=np.uint8) * 128


@pytest.fixture
def textured_image():
    """Generate a 200x200 checkerboard with 10px cells (lots of edges)."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 220
    for y in range(0, 200, 10):
        for x in range(0, 200, 10):
            if (x // 10 + y // 10) % 2 == 0:
                img[y:y+10, x:x+10] = [20, 20, 20]
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def query_vector():
    return unit([1.0, 0.0, 0.0, 0.0])


@pytest.fixture
def hello_world():
    """OCR output for the words 'hello world' at 0.9 confidence."""
    return OCRResult.from_words([("hello", 0.9), ("world", 0.9)], confidence=0.9)


@pytest.fixture
def mixed_records():
    """Records at decreasing angles from the [1, 0, 0, 0] query."""
    return [
        ImageRecord(id="exact", vector=unit([1.0, 0.0, 0.0, 0.0])),
        ImageRecord(id="close", vector=unit([0.95, 0.3, 0.0, 0.0])),
        ImageRecord(id="far", vector=unit([0.1, 1.0, 0.0, 0.0])),
        ImageRecord(id="opposite", vector=unit([0.0, 0.0, 1.0, 1.0])),
    ]


@pytest.fixture
def colorful_metadata():
    return VisualMetadata(
        dominant_colors=((200, 40, 40), (40, 200, 40), (40, 40, 200)),
        brightness=0.5, contrast=0.4, color_entropy=0.8, edge_density=0.2,
    )
