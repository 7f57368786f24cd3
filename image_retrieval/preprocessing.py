"""
Image preprocessing pipeline for feature extraction.

Handles decoding, size capping, normalization, object centering and
adaptive patch extraction so that features are extracted consistently
regardless of image size, framing or encoding.
"""

import os
import logging

import cv2
import numpy as np

from .exceptions import ImageProcessingError

logger = logging.getLogger(__name__)

# Images larger than this (on their longest side) are scaled down before
# extraction, both at index time and at query time.
MAX_IMAGE_DIMENSION = int(os.environ.get("MAX_IMAGE_DIMENSION", "1024"))


def decode_image(image_bytes: bytes) -> np.ndarray:
    """
    Decode encoded image bytes (JPEG, PNG, ...) into an RGB uint8 array.

    Raises:
        ImageProcessingError: If the bytes are empty or not a readable image.
    """
    if not image_bytes:
        raise ImageProcessingError("Failed to parse image: empty image data")

    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageProcessingError("Failed to parse image: unsupported or corrupt data")

    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def scale_image(image_np: np.ndarray,
                max_dimension: int = MAX_IMAGE_DIMENSION) -> np.ndarray:
    """Scale an image down so its longest side is at most max_dimension."""
    h, w = image_np.shape[:2]
    longest = max(h, w)
    if longest <= max_dimension:
        return image_np

    scale = max_dimension / longest
    size = (max(1, int(w * scale)), max(1, int(h * scale)))
    logger.debug(f"Scaling image from {w}x{h} to {size[0]}x{size[1]}")
    return cv2.resize(image_np, size, interpolation=cv2.INTER_AREA)


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 RGB format."""
    if image_np.dtype != np.uint8:
        if image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = image_np.astype(np.uint8)
    if image_np.ndim == 2:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGB)
    return image_np


def to_grayscale(image_np: np.ndarray) -> np.ndarray:
    if image_np.ndim == 3:
        return cv2.cvtColor(image_np, cv2.COLOR_RGB2GRAY)
    return image_np


def center_object_vertically(image_np: np.ndarray) -> np.ndarray:
    """
    Detect the main object in the image and center it vertically.

    Uses Otsu thresholding to find the foreground object, then shifts
    the image so the object's centroid sits on the horizontal midline.

    Args:
        image_np: RGB uint8 image.

    Returns:
        Vertically centered image (same dimensions).
    """
    h, w = image_np.shape[:2]

    gray = to_grayscale(image_np)
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    _, binary = cv2.threshold(blurred, 0, 255,
                              cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)

    # Invert if background dominates
    if np.mean(binary) > 127:
        binary = cv2.bitwise_not(binary)

    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL,
                                   cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return image_np

    main_contour = max(contours, key=cv2.contourArea)
    moments = cv2.moments(main_contour)
    if moments["m00"] == 0:
        return image_np

    centroid_y = int(moments["m01"] / moments["m00"])
    shift_y = h // 2 - centroid_y

    m = np.float32([[1, 0, 0], [0, 1, shift_y]])
    return cv2.warpAffine(image_np, m, (w, h),
                          borderMode=cv2.BORDER_REFLECT_101)


def extract_center_patch(image_np: np.ndarray,
                         patch_size: int = None) -> np.ndarray:
    """
    Extract a centered square patch, clamped to the image bounds.

    Args:
        image_np: RGB uint8 image.
        patch_size: Desired patch size (defaults to min(w, h, 500)).

    Returns:
        Cropped image patch.
    """
    h, w = image_np.shape[:2]
    if patch_size is None:
        patch_size = min(w, h, 500)

    half = patch_size // 2
    center_x, center_y = w // 2, h // 2

    x1 = max(0, center_x - half)
    x2 = min(w, center_x + half)
    y1 = max(0, center_y - half)
    y2 = min(h, center_y + half)

    return image_np[y1:y2, x1:x2]


def load_image(image) -> np.ndarray:
    """
    Accept encoded bytes or an already decoded array and return a
    size-capped RGB uint8 image ready for extraction.
    """
    if isinstance(image, (bytes, bytearray, memoryview)):
        image_np = decode_image(bytes(image))
    elif isinstance(image, np.ndarray):
        if image.size == 0:
            raise ImageProcessingError("Failed to parse image: empty array")
        image_np = normalize_image(image)
    else:
        raise ImageProcessingError(
            f"Failed to parse image: unsupported input type {type(image).__name__}"
        )
    return scale_image(image_np)
