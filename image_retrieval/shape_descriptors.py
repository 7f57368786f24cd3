"""
Contour and edge based descriptors.

Color features see what an object is painted with, not what it looks
like. Two descriptors here capture form instead:

EDGE_HISTOGRAM is a 36-bin histogram of gradient directions over the
Canny edges of the whole frame, L2-normalized.

SHAPE is a 48-dimensional vector describing the main foreground object:
    [0:7]   - 7 log Hu moments (rotation/scale/translation invariant)
    [7:43]  - 36-bin edge direction histogram restricted to the object
    [43:48] - 5 geometric ratios (aspect, solidity, extent, circularity, convexity)
"""

import os
import logging

import cv2
import numpy as np

from .preprocessing import normalize_image, to_grayscale

logger = logging.getLogger(__name__)

# Shape comparison weights per feature group. Must sum to 1.0.
SHAPE_HU_WEIGHT = float(os.environ.get("SHAPE_HU_W", "0.33"))
SHAPE_EDGE_WEIGHT = float(os.environ.get("SHAPE_EDGE_W", "0.34"))
SHAPE_GEOM_WEIGHT = float(os.environ.get("SHAPE_GEOM_W", "0.33"))

EDGE_BINS = 36

# Descriptor dimensionality: 7 + 36 + 5 = 48
SHAPE_DIM = 7 + EDGE_BINS + 5

# Shapes are compared at a consistent scale
SHAPE_TARGET_SIZE = 400


def extract_edge_histogram(image_np: np.ndarray) -> np.ndarray:
    """
    Extract a 36-bin edge direction histogram over the whole image.

    Returns:
        36-element float32 array, L2-normalized (all zeros for a flat image).
    """
    gray = to_grayscale(normalize_image(image_np))
    mask = np.full(gray.shape[:2], 255, dtype=np.uint8)
    return _extract_edge_directions(gray, mask)


def extract_shape_descriptor(image_np: np.ndarray) -> np.ndarray:
    """
    Extract a 48-dimensional shape descriptor from an image.

    Process:
        1. Resize to consistent scale (400px max dimension)
        2. Otsu threshold to isolate foreground object
        3. Morphological cleanup (close gaps, remove noise)
        4. Find largest contour (main object)
        5. Extract Hu moments, edge directions and geometric ratios

    Args:
        image_np: RGB uint8 image.

    Returns:
        48-dimensional float32 descriptor vector. All zeros when the
        image has no distinguishable foreground object.
    """
    image_np = normalize_image(image_np)

    h, w = image_np.shape[:2]
    scale = SHAPE_TARGET_SIZE / max(h, w)
    if scale < 1.0:
        image_np = cv2.resize(image_np, (int(w * scale), int(h * scale)),
                              interpolation=cv2.INTER_AREA)

    gray = to_grayscale(image_np)
    h, w = gray.shape[:2]

    # --- Foreground extraction via Otsu threshold ---
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    _, binary = cv2.threshold(blurred, 0, 255,
                              cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)

    # Invert if Otsu selected the background
    if np.mean(binary) > 127:
        binary = cv2.bitwise_not(binary)

    kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (5, 5))
    binary = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel, iterations=2)
    binary = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel, iterations=1)

    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL,
                                   cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return np.zeros(SHAPE_DIM, dtype=np.float32)

    main_contour = max(contours, key=cv2.contourArea)
    contour_area = cv2.contourArea(main_contour)

    # Contour must cover at least 1% of the image
    if contour_area < (h * w * 0.01):
        logger.debug(f"No object found ({contour_area:.0f} px contour), empty descriptor")
        return np.zeros(SHAPE_DIM, dtype=np.float32)

    descriptor = np.concatenate([
        _extract_hu_moments(main_contour),
        _extract_edge_directions(gray, binary),
        _extract_geometry(main_contour, contour_area),
    ])
    return descriptor.astype(np.float32)


def _extract_hu_moments(contour: np.ndarray) -> np.ndarray:
    """
    Extract 7 log-transformed Hu moments from a contour.

    Returns:
        7-element float32 array, normalized to roughly [-1, 1].
    """
    hu_moments = cv2.HuMoments(cv2.moments(contour)).flatten()

    log_hu = np.array([
        -np.sign(h) * np.log10(max(abs(h), 1e-20))
        for h in hu_moments
    ], dtype=np.float32)

    # Typical log Hu values range 1-20
    return np.clip(log_hu / 20.0, -1.0, 1.0)


def _extract_edge_directions(gray: np.ndarray,
                             mask: np.ndarray) -> np.ndarray:
    edges = cv2.Canny(gray, 50, 150)
    edges = cv2.bitwise_and(edges, edges, mask=mask)

    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)

    edge_mask = edges > 0
    if not np.any(edge_mask):
        return np.zeros(EDGE_BINS, dtype=np.float32)

    angles_deg = np.degrees(np.arctan2(gy[edge_mask], gx[edge_mask])) % 360
    edge_hist, _ = np.histogram(angles_deg, bins=EDGE_BINS, range=(0, 360))
    edge_hist = edge_hist.astype(np.float32)

    norm = np.linalg.norm(edge_hist)
    if norm > 0:
        edge_hist = edge_hist / norm
    return edge_hist


def _extract_geometry(contour: np.ndarray,
                      contour_area: float) -> np.ndarray:
    """
    Extract 5 geometric ratios from a contour: aspect ratio, solidity,
    extent, circularity and convexity.

    Returns:
        5-element float32 array. Aspect is in [-1, 1], the rest in [0, 1].
    """
    _, _, bw, bh = cv2.boundingRect(contour)

    # Aspect ratio, log scale centered at 1.0 (square)
    aspect_ratio = float(bw) / max(bh, 1)
    aspect_feature = np.clip(np.log2(max(aspect_ratio, 0.1)), -2, 2) / 2.0

    hull = cv2.convexHull(contour)
    solidity = float(contour_area) / max(cv2.contourArea(hull), 1)
    extent = float(contour_area) / max(bw * bh, 1)

    perimeter = cv2.arcLength(contour, True)
    circularity = (4 * np.pi * contour_area) / max(perimeter ** 2, 1)
    convexity = float(cv2.arcLength(hull, True)) / max(perimeter, 1)

    return np.array([
        aspect_feature,
        min(solidity, 1.0),
        min(extent, 1.0),
        min(circularity, 1.0),
        min(convexity, 1.0),
    ], dtype=np.float32)


def edge_histogram_distance(query: np.ndarray, target: np.ndarray) -> float:
    """
    Cosine distance between two edge histograms, in [0, 1].

    A flat image (zero histogram) is at distance 0 from another flat
    image and at distance 1 from anything else.
    """
    q_norm = np.linalg.norm(query)
    t_norm = np.linalg.norm(target)
    if q_norm == 0 or t_norm == 0:
        return 0.0 if q_norm == t_norm else 1.0
    cosine = float(np.dot(query, target) / (q_norm * t_norm))
    return max(0.0, 1.0 - cosine)


def shape_distance(query: np.ndarray, target: np.ndarray) -> float:
    """
    Weighted distance between two shape descriptors, in [0, 1].

    Hu moments and geometric ratios are compared by Euclidean distance,
    edge directions by cosine distance. Each group distance is capped
    at 1 before weighting.
    """
    q_hu, q_edge, q_geom = query[:7], query[7:7 + EDGE_BINS], query[7 + EDGE_BINS:]
    t_hu, t_edge, t_geom = target[:7], target[7:7 + EDGE_BINS], target[7 + EDGE_BINS:]

    hu_dist = min(1.0, float(np.linalg.norm(q_hu - t_hu)) / 2.0)
    edge_dist = edge_histogram_distance(q_edge, t_edge)
    geom_dist = min(1.0, float(np.linalg.norm(q_geom - t_geom)) / 2.0)

    return float(
        SHAPE_HU_WEIGHT * hu_dist
        + SHAPE_EDGE_WEIGHT * edge_dist
        + SHAPE_GEOM_WEIGHT * geom_dist
    )
