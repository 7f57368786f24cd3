"""
Per-query scoring state shared between sibling bucket clauses.

A document usually lands in several hash buckets of the same query. The
ScoreCache makes sure its similarity is computed once per segment and
that every clause reports the same value for it. The LimitCounter caps
the number of distinct documents a limited query will score.
"""

import threading
from typing import Dict, Optional


class ScoreCache:
    """
    Similarity scores already computed for one query against one segment.

    Keys are segment-local doc ordinals, so an instance must never be
    reused for another segment or another query execution. Not
    thread-safe: all clauses of one segment run on one thread.
    """

    def __init__(self):
        self._scores: Dict[int, float] = {}

    def get(self, doc: int) -> Optional[float]:
        return self._scores.get(doc)

    def put(self, doc: int, score: float) -> None:
        self._scores[doc] = score

    def __contains__(self, doc: int) -> bool:
        return doc in self._scores

    def __len__(self) -> int:
        return len(self._scores)


class LimitCounter:
    """
    Query-wide count of admitted documents, bounded by limit.

    Shared by every clause of a query across all segments, which may be
    evaluated on different threads.
    """

    def __init__(self, limit: int):
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self.limit = limit
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        return self._count

    def reached(self) -> bool:
        return self._count >= self.limit

    def try_admit(self) -> bool:
        """Take one slot. Returns False once limit slots are taken."""
        with self._lock:
            if self._count >= self.limit:
                return False
            self._count += 1
            return True
