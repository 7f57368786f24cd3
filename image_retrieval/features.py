"""
Feature kinds and the FeatureVector value type.

Every feature kind maps to exactly one extractor, one distance function
and one fixed dimensionality. The tables below are the only place where
a kind is bound to behavior; adding a kind means adding one row to each.

Stored representation: the vector's float32 components, little-endian,
nothing else. The kind is implied by the field the bytes are stored in
(see feature_field()).
"""

import logging
from enum import Enum
from typing import Callable, Dict

import numpy as np

from .histograms import (
    HIST_DIM, COLOR_LAYOUT_DIM,
    extract_hsv_histogram, extract_color_layout,
    histogram_distance, color_layout_distance,
)
from .shape_descriptors import (
    EDGE_BINS, SHAPE_DIM,
    extract_edge_histogram, extract_shape_descriptor,
    edge_histogram_distance, shape_distance,
)

logger = logging.getLogger(__name__)

_BYTE_DTYPE = np.dtype("<f4")


class FeatureKind(Enum):
    COLOR_HISTOGRAM = "COLOR_HISTOGRAM"
    COLOR_LAYOUT = "COLOR_LAYOUT"
    EDGE_HISTOGRAM = "EDGE_HISTOGRAM"
    SHAPE = "SHAPE"

    @classmethod
    def from_name(cls, name: str) -> "FeatureKind":
        """Look up a kind by name, case-insensitively."""
        try:
            return cls[str(name).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown feature kind: {name!r}") from None

    @property
    def dimensions(self) -> int:
        return _DIMENSIONS[self]


_EXTRACTORS: Dict[FeatureKind, Callable[[np.ndarray], np.ndarray]] = {
    FeatureKind.COLOR_HISTOGRAM: extract_hsv_histogram,
    FeatureKind.COLOR_LAYOUT: extract_color_layout,
    FeatureKind.EDGE_HISTOGRAM: extract_edge_histogram,
    FeatureKind.SHAPE: extract_shape_descriptor,
}

_DISTANCES: Dict[FeatureKind, Callable[[np.ndarray, np.ndarray], float]] = {
    FeatureKind.COLOR_HISTOGRAM: histogram_distance,
    FeatureKind.COLOR_LAYOUT: color_layout_distance,
    FeatureKind.EDGE_HISTOGRAM: edge_histogram_distance,
    FeatureKind.SHAPE: shape_distance,
}

_DIMENSIONS: Dict[FeatureKind, int] = {
    FeatureKind.COLOR_HISTOGRAM: HIST_DIM,
    FeatureKind.COLOR_LAYOUT: COLOR_LAYOUT_DIM,
    FeatureKind.EDGE_HISTOGRAM: EDGE_BINS,
    FeatureKind.SHAPE: SHAPE_DIM,
}

for _table in (_EXTRACTORS, _DISTANCES, _DIMENSIONS):
    assert set(_table) == set(FeatureKind), "feature tables must cover every kind"


class FeatureVector:
    """
    An extracted image feature: a fixed-length float32 vector of one kind.

    Vectors are only comparable to vectors of the same kind.
    """

    __slots__ = ("kind", "values")

    def __init__(self, kind: FeatureKind, values):
        values = np.asarray(values, dtype=np.float32).reshape(-1)
        if values.shape[0] != kind.dimensions:
            raise ValueError(
                f"{kind.name} vectors have {kind.dimensions} dimensions, "
                f"got {values.shape[0]}"
            )
        self.kind = kind
        self.values = values

    def distance(self, other: "FeatureVector") -> float:
        """Distance to another vector of the same kind (0 = identical)."""
        if other.kind is not self.kind:
            raise ValueError(
                f"Cannot compare {self.kind.name} feature with {other.kind.name}"
            )
        return _DISTANCES[self.kind](self.values, other.values)

    def to_bytes(self) -> bytes:
        return self.values.astype(_BYTE_DTYPE).tobytes()

    @classmethod
    def from_bytes(cls, kind: FeatureKind, data: bytes) -> "FeatureVector":
        """
        Decode a stored feature.

        Raises:
            ValueError: If data is not exactly one vector of this kind.
        """
        if data is None:
            raise ValueError("No feature data")
        expected = kind.dimensions * _BYTE_DTYPE.itemsize
        if len(data) != expected:
            raise ValueError(
                f"{kind.name} feature must be {expected} bytes, got {len(data)}"
            )
        values = np.frombuffer(data, dtype=_BYTE_DTYPE).astype(np.float32)
        if not np.all(np.isfinite(values)):
            raise ValueError(f"{kind.name} feature contains non-finite values")
        return cls(kind, values)

    def __eq__(self, other):
        if not isinstance(other, FeatureVector):
            return NotImplemented
        return self.kind is other.kind and np.array_equal(self.values, other.values)

    def __repr__(self):
        return f"FeatureVector({self.kind.name}, dim={self.values.shape[0]})"


def extract_feature(kind: FeatureKind, image_np: np.ndarray) -> FeatureVector:
    """Run the extractor registered for kind on a decoded RGB image."""
    return FeatureVector(kind, _EXTRACTORS[kind](image_np))


def feature_field(field: str, kind: FeatureKind) -> str:
    """Name of the stored field holding a feature, e.g. 'image.COLOR_HISTOGRAM'."""
    return f"{field}.{kind.name}"
