"""
Image query types.

    ImageQuery        no hashing: exact scan of every stored feature
    HashedImageQuery  OR over one bucket clause per hash code, with exact
                      re-scoring of the documents found in the buckets

Queries are immutable descriptions. All mutable scoring state lives in
the objects they create per search (weights) and per segment (scorers):
a HashedImageQuery hands every segment a fresh ScoreCache shared by all
of that segment's bucket clauses, and every search a fresh LimitCounter
shared by all clauses of all segments.
"""

import logging
from typing import Optional, Sequence

from .features import FeatureVector
from .index import Segment
from .score_cache import LimitCounter, ScoreCache
from .scorers import (
    BucketMatchScorer, ExhaustiveFeatureScorer, LimitedBucketMatchScorer,
)
from .search import DisjunctionScorer

logger = logging.getLogger(__name__)


class ImageQuery:
    """Scores every document holding field by direct distance computation."""

    def __init__(self, field: str, feature: FeatureVector, boost: float = 1.0):
        self.field = field
        self.feature = feature
        self.boost = boost

    def create_weight(self) -> "_ImageWeight":
        return _ImageWeight(self)

    def __repr__(self):
        return f"ImageQuery({self.field}, boost={self.boost})"


class _ImageWeight:

    def __init__(self, query: ImageQuery):
        self.query = query

    def scorer(self, segment: Segment) -> ExhaustiveFeatureScorer:
        q = self.query
        return ExhaustiveFeatureScorer(segment, q.field, q.feature, q.boost)


class HashedImageQuery:
    """
    Disjunction of hash-bucket clauses over hash_field, one per code.

    Args:
        hash_field: Indexed field holding the hash terms.
        codes: Hash codes of the query feature.
        field: Stored field holding the raw feature bytes.
        feature: The query feature.
        boost: Linear score multiplier.
        limit: Optional cap on distinct documents scored per search.
        combine: Clause combination policy (see scoring.combine_scores).
    """

    def __init__(self, hash_field: str, codes: Sequence[int], field: str,
                 feature: FeatureVector, boost: float = 1.0,
                 limit: Optional[int] = None, combine: str = None):
        if limit is not None and limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self.hash_field = hash_field
        self.codes = tuple(codes)
        self.field = field
        self.feature = feature
        self.boost = boost
        self.limit = limit
        self.combine = combine

    def create_weight(self) -> "_HashedImageWeight":
        counter = LimitCounter(self.limit) if self.limit is not None else None
        return _HashedImageWeight(self, counter)

    def __repr__(self):
        return (
            f"HashedImageQuery({self.hash_field}, codes={len(self.codes)}, "
            f"boost={self.boost}, limit={self.limit})"
        )


class _HashedImageWeight:

    def __init__(self, query: HashedImageQuery, counter: Optional[LimitCounter]):
        self.query = query
        self.counter = counter

    def scorer(self, segment: Segment) -> DisjunctionScorer:
        q = self.query
        cache = ScoreCache()

        if self.counter is None:
            clauses = [
                BucketMatchScorer(segment, q.hash_field, code, q.field,
                                  q.feature, cache, q.boost)
                for code in q.codes
            ]
        else:
            clauses = [
                LimitedBucketMatchScorer(segment, q.hash_field, code, q.field,
                                         q.feature, cache, self.counter, q.boost)
                for code in q.codes
            ]

        # Each bucket contributes on its own; matching fewer buckets is no penalty
        return DisjunctionScorer(clauses, disable_coord=True, combine=q.combine)
