"""
Image preprocessing shared by metadata extraction and OCR.

Everything here operates on decoded pixel arrays. How the pixels were
decoded (file, camera frame, upload) is the caller's concern.
"""

import cv2
import numpy as np
import logging

logger = logging.getLogger(__name__)

# Side length used when sampling visual properties
SAMPLE_SIZE = 40


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 with three RGB channels."""
    image_np = np.asarray(image_np)
    if image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)

    if image_np.ndim == 2:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGB)
    elif image_np.ndim == 3 and image_np.shape[2] == 4:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_RGBA2RGB)
    return image_np


def image_from_buffer(width: int, height: int, data, channels: int = 4) -> np.ndarray:
    """
    Wrap a raw interleaved pixel buffer as an RGB image array.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        data: bytes-like or sequence of width * height * channels values.
        channels: 3 for RGB, 4 for RGBA.

    Returns:
        RGB uint8 array of shape (height, width, 3).

    Raises:
        ValueError: If the buffer length doesn't match the dimensions.
    """
    if channels not in (3, 4):
        raise ValueError(f"Unsupported channel count: {channels}")
    if isinstance(data, (bytes, bytearray, memoryview)):
        flat = np.frombuffer(data, dtype=np.uint8)
    else:
        flat = np.asarray(data, dtype=np.uint8).ravel()
    expected = width * height * channels
    if flat.size != expected:
        raise ValueError(
            f"Buffer has {flat.size} values, expected {expected} "
            f"for {width}x{height}x{channels}"
        )
    return normalize_image(flat.reshape(height, width, channels))


def resize_for_sampling(image_np: np.ndarray, size: int = SAMPLE_SIZE) -> np.ndarray:
    """Downscale to a size x size thumbnail for property sampling."""
    image_np = normalize_image(image_np)
    h, w = image_np.shape[:2]
    interpolation = cv2.INTER_AREA if h >= size and w >= size else cv2.INTER_LINEAR
    return cv2.resize(image_np, (size, size), interpolation=interpolation)


def prepare_for_ocr(image_np: np.ndarray, upscale: float = 1.0) -> np.ndarray:
    """
    Binarize an image to make text stand out for OCR.

    The threshold adapts to overall brightness: dark images keep pixels
    brighter than 0.7x the mean, light images keep pixels darker than
    1.2x the mean as text.

    Args:
        image_np: RGB uint8 image.
        upscale: Optional resize factor applied before thresholding.

    Returns:
        Single-channel uint8 image with values 0 or 255.
    """
    try:
        image_np = normalize_image(image_np)
        if upscale and upscale != 1.0:
            h, w = image_np.shape[:2]
            image_np = cv2.resize(image_np, (int(w * upscale), int(h * upscale)),
                                  interpolation=cv2.INTER_CUBIC)

        avg_brightness = float(np.mean(image_np.astype(np.float32).sum(axis=2) / 3))
        gray = cv2.cvtColor(image_np, cv2.COLOR_RGB2GRAY).astype(np.float32)

        if avg_brightness < 128:
            binary = np.where(gray > avg_brightness * 0.7, 255, 0)
        else:
            binary = np.where(gray < avg_brightness * 1.2, 0, 255)
        return binary.astype(np.uint8)

    except Exception as e:
        logger.warning(f"OCR preprocessing failed, using grayscale: {e}")
        return cv2.cvtColor(normalize_image(image_np), cv2.COLOR_RGB2GRAY)
