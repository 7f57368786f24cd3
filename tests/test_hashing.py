"""Tests for hash code generation."""

import numpy as np
import pytest

from image_retrieval.features import FeatureKind, FeatureVector, extract_feature
from image_retrieval.hashing import (
    HashAlgorithm, generate_hashes, hash_field, HASH_BUNDLES, LSH_FUNCTIONS,
)

from conftest import make_feature

EXPECTED_CODES = {
    HashAlgorithm.BIT_SAMPLING: HASH_BUNDLES,
    HashAlgorithm.LSH: LSH_FUNCTIONS,
}


class TestHashAlgorithm:

    def test_from_name(self):
        assert HashAlgorithm.from_name("lsh") is HashAlgorithm.LSH
        assert HashAlgorithm.from_name("Bit_Sampling") is HashAlgorithm.BIT_SAMPLING

    def test_from_name_unknown(self):
        with pytest.raises(ValueError, match="Unknown hash algorithm"):
            HashAlgorithm.from_name("minhash")

    def test_hash_field(self):
        assert hash_field("image.SHAPE", HashAlgorithm.LSH) == "image.SHAPE.hash.LSH"


@pytest.mark.parametrize("algorithm", list(HashAlgorithm))
class TestGenerateHashes:
    """Properties shared by both algorithms."""

    def test_one_code_per_bundle(self, algorithm):
        codes = generate_hashes(algorithm, make_feature(3))
        assert len(codes) == EXPECTED_CODES[algorithm]

    def test_codes_are_sorted_int32(self, algorithm):
        codes = generate_hashes(algorithm, make_feature(3))
        assert codes == sorted(codes)
        assert all(isinstance(c, int) for c in codes)
        assert all(0 <= c < 2 ** 31 for c in codes)

    def test_deterministic(self, algorithm):
        feature = make_feature(5)
        copy = FeatureVector(feature.kind, feature.values.copy())
        assert generate_hashes(algorithm, feature) == generate_hashes(algorithm, copy)

    def test_same_image_same_codes(self, algorithm, red_square_image):
        a = extract_feature(FeatureKind.COLOR_HISTOGRAM, red_square_image)
        b = extract_feature(FeatureKind.COLOR_HISTOGRAM, red_square_image.copy())
        assert generate_hashes(algorithm, a) == generate_hashes(algorithm, b)

    def test_near_vectors_share_most_buckets(self, algorithm):
        feature = make_feature(9)
        nudged = FeatureVector(feature.kind, feature.values + np.float32(1e-6))
        a = set(generate_hashes(algorithm, feature))
        b = set(generate_hashes(algorithm, nudged))
        assert len(a & b) >= 0.9 * len(a)

    def test_distant_vectors_share_fewer_buckets(self, algorithm):
        feature = make_feature(9)
        near = FeatureVector(feature.kind, feature.values + np.float32(1e-6))
        far = FeatureVector(feature.kind, 1.0 - feature.values)
        base = set(generate_hashes(algorithm, feature))
        shared_near = len(base & set(generate_hashes(algorithm, near)))
        shared_far = len(base & set(generate_hashes(algorithm, far)))
        assert shared_far < shared_near

    def test_every_dimensionality(self, algorithm):
        for kind in FeatureKind:
            codes = generate_hashes(algorithm, make_feature(1, kind))
            assert len(codes) == EXPECTED_CODES[algorithm]
