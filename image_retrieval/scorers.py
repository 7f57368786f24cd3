"""
Per-segment scorers for image queries.

Every scorer exposes the same two-step protocol used by the searcher:

    iter_docs()   candidate doc ordinals, in increasing order
    score(doc)    relevance of a candidate, or None if it does not match

and iterating a scorer yields the (doc, score) pairs that match.

A candidate whose stored feature is missing or cannot be decoded is a
non-match. It is never an error: one corrupt document must not take the
whole query down.
"""

import logging
from typing import Iterator, List, Optional, Tuple

from .features import FeatureVector
from .index import Segment
from .score_cache import LimitCounter, ScoreCache
from .scoring import distance_to_score

logger = logging.getLogger(__name__)


class _FeatureScorer:

    def __init__(self, segment: Segment, field: str,
                 feature: FeatureVector, boost: float = 1.0):
        self.segment = segment
        self.field = field
        self.feature = feature
        self.boost = boost

    def similarity(self, doc: int) -> Optional[float]:
        """Exact similarity between the query feature and doc's stored one."""
        data = self.segment.stored_value(doc, self.field)
        if data is None:
            logger.debug(
                f"Segment {self.segment.ordinal} doc {doc}: no value for [{self.field}]"
            )
            return None
        try:
            doc_feature = FeatureVector.from_bytes(self.feature.kind, data)
            distance = self.feature.distance(doc_feature)
        except ValueError as e:
            logger.debug(
                f"Segment {self.segment.ordinal} doc {doc}: "
                f"unreadable [{self.field}]: {e}"
            )
            return None
        return distance_to_score(distance)

    def iter_docs(self) -> List[int]:
        raise NotImplementedError

    def score(self, doc: int) -> Optional[float]:
        raise NotImplementedError

    def __iter__(self) -> Iterator[Tuple[int, float]]:
        for doc in self.iter_docs():
            score = self.score(doc)
            if score is not None:
                yield doc, score


class ExhaustiveFeatureScorer(_FeatureScorer):
    """
    Scores every document of the segment that stores the target feature.

    Used when the query asks for no hashing. Each document is visited
    exactly once, so no cache is involved.
    """

    def iter_docs(self) -> List[int]:
        return self.segment.docs_with_field(self.field)

    def score(self, doc: int) -> Optional[float]:
        similarity = self.similarity(doc)
        if similarity is None:
            return None
        return similarity * self.boost


class BucketMatchScorer(_FeatureScorer):
    """
    One hash-bucket clause: matches the documents indexed with a single
    hash code and scores them by exact feature similarity.

    Sibling clauses of the same query share one ScoreCache, so a document
    found in several buckets is compared once and scores identically in
    each of them.
    """

    def __init__(self, segment: Segment, hash_field: str, code: int,
                 field: str, feature: FeatureVector, cache: ScoreCache,
                 boost: float = 1.0):
        super().__init__(segment, field, feature, boost)
        self.hash_field = hash_field
        self.term = str(code)
        self.cache = cache

    def iter_docs(self) -> List[int]:
        return self.segment.postings(self.hash_field, self.term)

    def score(self, doc: int) -> Optional[float]:
        cached = self.cache.get(doc)
        if cached is not None:
            return cached * self.boost

        similarity = self._admit(doc)
        if similarity is None:
            return None
        self.cache.put(doc, similarity)
        return similarity * self.boost

    def _admit(self, doc: int) -> Optional[float]:
        return self.similarity(doc)

    def __repr__(self):
        return f"BucketMatchScorer({self.hash_field}:{self.term})"


class LimitedBucketMatchScorer(BucketMatchScorer):
    """
    A bucket clause that stops admitting new documents once the query
    has scored `limit` distinct documents across all of its clauses.

    Documents already scored stay matchable through the cache. The
    cutoff follows index iteration order, so this is an approximate
    cap, not a top-k selection.
    """

    def __init__(self, segment: Segment, hash_field: str, code: int,
                 field: str, feature: FeatureVector, cache: ScoreCache,
                 counter: LimitCounter, boost: float = 1.0):
        super().__init__(segment, hash_field, code, field, feature, cache, boost)
        self.counter = counter

    def _admit(self, doc: int) -> Optional[float]:
        if self.counter.reached():
            return None
        similarity = self.similarity(doc)
        # Unreadable docs do not use up the quota
        if similarity is None or not self.counter.try_admit():
            return None
        return similarity

    def __repr__(self):
        return (
            f"LimitedBucketMatchScorer({self.hash_field}:{self.term}, "
            f"limit={self.counter.limit})"
        )
