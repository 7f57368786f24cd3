"""Shared test fixtures for image retrieval tests."""

import numpy as np
import cv2
import pytest

from image_retrieval.features import FeatureKind, FeatureVector
from image_retrieval.index import Document, ImageIndex

KIND = FeatureKind.COLOR_LAYOUT
FIELD = "img.COLOR_LAYOUT"
HASH_FIELD = "img.COLOR_LAYOUT.hash.LSH"


def make_feature(seed, kind=KIND):
    """Deterministic random feature vector of a kind."""
    rng = np.random.RandomState(seed)
    return FeatureVector(kind, rng.uniform(0, 1, kind.dimensions))


def make_document(doc_id, feature=None, codes=(), raw=None):
    stored = {}
    if feature is not None:
        stored[FIELD] = feature.to_bytes()
    if raw is not None:
        stored[FIELD] = raw
    return Document(doc_id, stored=stored,
                    terms={HASH_FIELD: [str(c) for c in codes]})


def encode_png(image_rgb):
    ok, buffer = cv2.imencode(".png", cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR))
    assert ok
    return buffer.tobytes()


@pytest.fixture
def query_feature():
    return make_feature(0)


@pytest.fixture
def doc_features():
    return {name: make_feature(seed) for seed, name in enumerate("ABCD", start=1)}


@pytest.fixture
def bucket_index(doc_features):
    """
    Five documents over three segments (two docs per segment):

        segment 0: A (codes 1, 2), B (codes 1, 2)
        segment 1: C (code 3),     D (stored feature, no hash terms)
        segment 2: E (code 1, corrupt stored feature)
    """
    index = ImageIndex("buckets", max_segment_docs=2)
    index.add(make_document("A", doc_features["A"], codes=(1, 2)))
    index.add(make_document("B", doc_features["B"], codes=(1, 2)))
    index.add(make_document("C", doc_features["C"], codes=(3,)))
    index.add(make_document("D", doc_features["D"]))
    index.add(make_document("E", raw=b"not a feature", codes=(1,)))
    index.refresh()
    return index


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def green_rectangle_image():
    """Generate a 200x200 green rectangle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[30:170, 60:140] = [30, 180, 30]
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def red_square_png(red_square_image):
    return encode_png(red_square_image)
