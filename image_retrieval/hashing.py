"""
Hash code generation for candidate narrowing.

A feature vector is turned into a small set of integer codes. Each code
names one bucket in the inverted index; similar vectors tend to share
buckets, dissimilar ones rarely do.

Two interchangeable algorithms:

    BIT_SAMPLING  FAISS IndexLSH sign bits of a random rotation, split
                  into HASH_BUNDLES bundles of HASH_BITS bits. One code
                  per bundle.
    LSH           p-stable (Gaussian) projections, floor((a.x + b) / w).
                  One code per projection.

The bundle or function number lives in the high bits of every code, so
codes from different bundles never collide. All codes are non-negative
32-bit integers. Projections depend only on the vector dimensionality
and HASH_SEED, which keeps index-time and query-time codes identical.
"""

import os
import logging
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, List, Tuple

import faiss
import numpy as np

from .features import FeatureVector

logger = logging.getLogger(__name__)

HASH_BITS = int(os.environ.get("HASH_BITS", "12"))
HASH_BUNDLES = int(os.environ.get("HASH_BUNDLES", "50"))
LSH_FUNCTIONS = int(os.environ.get("LSH_FUNCTIONS", "50"))
LSH_BUCKET_WIDTH = float(os.environ.get("LSH_BUCKET_WIDTH", "1.0"))
HASH_SEED = int(os.environ.get("HASH_SEED", "42"))

# Low bits reserved for the bucket value of one LSH function
_LSH_VALUE_BITS = 20
_LSH_VALUE_MASK = (1 << _LSH_VALUE_BITS) - 1

if HASH_BITS < 1 or HASH_BUNDLES < 1 or HASH_BUNDLES >= 1 << (31 - HASH_BITS):
    raise ValueError(
        f"HASH_BUNDLES={HASH_BUNDLES} x HASH_BITS={HASH_BITS} does not fit 32-bit codes"
    )
if LSH_FUNCTIONS < 1 or LSH_FUNCTIONS >= 1 << (31 - _LSH_VALUE_BITS):
    raise ValueError(f"LSH_FUNCTIONS={LSH_FUNCTIONS} does not fit 32-bit codes")


class HashAlgorithm(Enum):
    BIT_SAMPLING = "BIT_SAMPLING"
    LSH = "LSH"

    @classmethod
    def from_name(cls, name: str) -> "HashAlgorithm":
        """Look up an algorithm by name, case-insensitively."""
        try:
            return cls[str(name).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown hash algorithm: {name!r}") from None


@lru_cache(maxsize=None)
def _bit_sampler(dimensions: int) -> faiss.IndexLSH:
    nbits = HASH_BUNDLES * HASH_BITS
    # rotate_data=True, train_thresholds=False: usable without training
    index = faiss.IndexLSH(dimensions, nbits, True, False)
    logger.debug(f"Created bit sampler: {dimensions}d -> {nbits} bits")
    return index


@lru_cache(maxsize=None)
def _lsh_projections(dimensions: int) -> Tuple[np.ndarray, np.ndarray]:
    rng = np.random.RandomState(HASH_SEED)
    projections = rng.standard_normal((LSH_FUNCTIONS, dimensions))
    offsets = rng.uniform(0.0, LSH_BUCKET_WIDTH, LSH_FUNCTIONS)
    return projections, offsets


def bit_sampling_hashes(values: np.ndarray) -> np.ndarray:
    sampler = _bit_sampler(values.shape[0])
    query = np.ascontiguousarray(values.reshape(1, -1), dtype=np.float32)
    packed = sampler.sa_encode(query)[0]

    bits = np.unpackbits(packed, bitorder="little")[:HASH_BUNDLES * HASH_BITS]
    bits = bits.reshape(HASH_BUNDLES, HASH_BITS).astype(np.int64)
    bucket_values = bits.dot(1 << np.arange(HASH_BITS, dtype=np.int64))

    bundles = np.arange(HASH_BUNDLES, dtype=np.int64)
    return (bundles << HASH_BITS) | bucket_values


def lsh_hashes(values: np.ndarray) -> np.ndarray:
    projections, offsets = _lsh_projections(values.shape[0])
    buckets = np.floor(
        (projections.dot(values.astype(np.float64)) + offsets) / LSH_BUCKET_WIDTH
    ).astype(np.int64)

    functions = np.arange(LSH_FUNCTIONS, dtype=np.int64)
    return (functions << _LSH_VALUE_BITS) | (buckets & _LSH_VALUE_MASK)


_GENERATORS: Dict[HashAlgorithm, Callable[[np.ndarray], np.ndarray]] = {
    HashAlgorithm.BIT_SAMPLING: bit_sampling_hashes,
    HashAlgorithm.LSH: lsh_hashes,
}

assert set(_GENERATORS) == set(HashAlgorithm), "every algorithm needs a generator"


def generate_hashes(algorithm: HashAlgorithm, feature: FeatureVector) -> List[int]:
    """
    Compute the hash codes of a feature under an algorithm.

    Returns:
        Sorted list of distinct non-negative 32-bit integer codes.
    """
    codes = _GENERATORS[algorithm](feature.values)
    return sorted({int(c) for c in codes})


def hash_field(feature_field_name: str, algorithm: HashAlgorithm) -> str:
    """Name of the indexed hash field, e.g. 'image.COLOR_HISTOGRAM.hash.LSH'."""
    return f"{feature_field_name}.hash.{algorithm.name}"
