"""Frame preprocessing.

Decodes raw RGB24 frame uploads, resizes frames to the analysis dimensions,
and converts them into normalized NCHW tensors for the embedding model.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


def decode_rgb_frame(data: bytes, width: int, height: int) -> NDArray[np.uint8]:
    """Decode a packed RGB24 buffer into an HxWx3 uint8 array.

    Raises:
        ValueError: If the dimensions are not positive or the buffer length
            does not match ``width * height * 3``.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid frame dimensions {width}x{height}")
    expected = width * height * 3
    if len(data) != expected:
        raise ValueError(f"Expected {expected} bytes for a {width}x{height} RGB frame, got {len(data)}")
    return np.frombuffer(data, dtype=np.uint8).reshape(height, width, 3).copy()


def resize_nearest(image: NDArray[np.uint8], width: int, height: int) -> NDArray[np.uint8]:
    """Nearest-neighbour resize of an HxWxC image."""
    src_h, src_w = image.shape[:2]
    if (src_w, src_h) == (width, height):
        return image
    rows = (np.arange(height) * src_h // height).astype(np.intp)
    cols = (np.arange(width) * src_w // width).astype(np.intp)
    return image[rows[:, None], cols[None, :]]


def preprocess_for_embedding(image: NDArray[np.uint8], input_size: int) -> NDArray[np.float32]:
    """Prepare an RGB frame for the embedding model.

    Args:
        image: HxWx3 RGB uint8 array.
        input_size: Square model input side length.

    Returns:
        Float32 tensor of shape (1, 3, input_size, input_size), ImageNet-normalized.
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected an HxWx3 RGB frame, got shape {image.shape}")
    resized = resize_nearest(image, input_size, input_size)
    scaled = resized.astype(np.float32) / 255.0
    normalized = (scaled - IMAGENET_MEAN) / IMAGENET_STD
    return np.ascontiguousarray(normalized.transpose(2, 0, 1)[np.newaxis, ...], dtype=np.float32)
