"""
Color feature extraction: HSV histograms and color layout thumbnails.

The HSV histogram captures overall color distribution using configurable
Hue x Saturation bins with a CLAHE-equalized Value channel, L2-normalized
so that Euclidean distance is comparable across images.

The color layout is a tiny YCrCb thumbnail of the whole frame. It keeps
the spatial arrangement of colors that the histogram throws away.

Bin dimensions are configurable via environment variables (HSV_H_BINS,
HSV_S_BINS, COLOR_LAYOUT_SIZE). Changing them changes the stored feature
length, so an index must be rebuilt after doing so.
"""

import os
import logging

import cv2
import numpy as np

from .preprocessing import (
    normalize_image, center_object_vertically, extract_center_patch,
)

logger = logging.getLogger(__name__)

# HSV histogram configuration
# Higher values = more precise color matching but longer vectors.
H_BINS = int(os.environ.get("HSV_H_BINS", "8"))
S_BINS = int(os.environ.get("HSV_S_BINS", "8"))
HIST_DIM = H_BINS * S_BINS

# Color layout: COLOR_LAYOUT_SIZE x COLOR_LAYOUT_SIZE cells, 3 channels each
COLOR_LAYOUT_SIZE = int(os.environ.get("COLOR_LAYOUT_SIZE", "8"))
COLOR_LAYOUT_DIM = COLOR_LAYOUT_SIZE * COLOR_LAYOUT_SIZE * 3


def extract_hsv_histogram(image_np: np.ndarray) -> np.ndarray:
    """
    Extract an L2-normalized HSV histogram from an image.

    Process:
        1. Normalize and center the object in frame
        2. Extract an adaptive center patch
        3. Convert to HSV and apply CLAHE to V channel
        4. Compute H x S histogram with configured bin counts
        5. L2-normalize + epsilon to avoid zero vectors

    Args:
        image_np: RGB uint8 image.

    Returns:
        Float32 histogram vector with H_BINS * S_BINS dimensions.
    """
    image_np = normalize_image(image_np)
    patch = extract_center_patch(center_object_vertically(image_np))

    hsv = cv2.cvtColor(patch, cv2.COLOR_RGB2HSV)

    # CLAHE equalization on V channel for lighting normalization
    h_ch, s_ch, v_ch = cv2.split(hsv)
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    hsv = cv2.merge((h_ch, s_ch, clahe.apply(v_ch)))

    # Hue (0-180) x Saturation (0-256)
    hist = cv2.calcHist([hsv], [0, 1], None,
                        [H_BINS, S_BINS], [0, 180, 0, 256])

    hist_flat = hist.flatten().astype(np.float32)
    norm = np.linalg.norm(hist_flat)
    if norm > 0:
        hist_flat = hist_flat / norm

    return hist_flat + 1e-8


def extract_color_layout(image_np: np.ndarray) -> np.ndarray:
    """
    Extract a COLOR_LAYOUT_SIZE x COLOR_LAYOUT_SIZE YCrCb thumbnail.

    Returns:
        Float32 vector of COLOR_LAYOUT_DIM values in [0, 1].
    """
    image_np = normalize_image(image_np)
    ycrcb = cv2.cvtColor(image_np, cv2.COLOR_RGB2YCrCb)
    thumb = cv2.resize(ycrcb, (COLOR_LAYOUT_SIZE, COLOR_LAYOUT_SIZE),
                       interpolation=cv2.INTER_AREA)
    return (thumb.astype(np.float32) / 255.0).flatten()


def histogram_distance(query: np.ndarray, target: np.ndarray) -> float:
    """Euclidean distance between two L2-normalized histograms."""
    return float(np.linalg.norm(query - target))


def color_layout_distance(query: np.ndarray, target: np.ndarray) -> float:
    """Mean absolute per-cell difference between two layouts, in [0, 1]."""
    return float(np.mean(np.abs(query - target)))
