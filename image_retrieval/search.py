"""
Query execution over a segmented index.

IndexSearcher runs a query segment by segment. A query provides
create_weight(), called once per search to hold search-wide state, and
the weight's scorer(segment) builds the per-segment scorer. Segments are
evaluated sequentially, or in a thread pool when max_workers > 1.

DisjunctionScorer is the OR combinator: it walks the candidate lists of
its clauses doc-at-a-time, asks every clause that listed a doc for its
score, and merges the scores of the clauses that matched.
"""

import os
import heapq
import logging
from concurrent.futures import ThreadPoolExecutor
from itertools import groupby, repeat
from operator import itemgetter
from typing import Iterator, List, Optional, Sequence, Tuple

from .index import ImageIndex, Segment
from .scoring import combine_scores, rank_hits

logger = logging.getLogger(__name__)

SEARCH_TOP_K = int(os.environ.get("SEARCH_TOP_K", "20"))
SEARCH_MAX_WORKERS = int(os.environ.get("SEARCH_MAX_WORKERS", "1"))


class DisjunctionScorer:
    """
    OR of clause scorers within one segment.

    Args:
        scorers: Clause scorers exposing iter_docs() and score(doc).
        disable_coord: If False, a document's combined score is scaled by
            the fraction of clauses it matched (coordination factor).
        combine: Score combination policy, see scoring.combine_scores().
    """

    def __init__(self, scorers: Sequence, disable_coord: bool = False,
                 combine: str = None):
        self.scorers = list(scorers)
        self.disable_coord = disable_coord
        self.combine = combine

    def __iter__(self) -> Iterator[Tuple[int, float]]:
        if not self.scorers:
            return

        streams = [zip(scorer.iter_docs(), repeat(i))
                   for i, scorer in enumerate(self.scorers)]

        for doc, group in groupby(heapq.merge(*streams), key=itemgetter(0)):
            scores = []
            for _, i in group:
                score = self.scorers[i].score(doc)
                if score is not None:
                    scores.append(score)
            if not scores:
                continue

            combined = combine_scores(scores, self.combine)
            if not self.disable_coord:
                combined *= len(scores) / len(self.scorers)
            yield doc, combined


class IndexSearcher:
    """Executes queries against the refreshed segments of one index."""

    def __init__(self, index: ImageIndex, max_workers: int = SEARCH_MAX_WORKERS):
        self.index = index
        self.max_workers = max(1, max_workers or 1)

    def search(self, query, top_k: Optional[int] = SEARCH_TOP_K) -> List[dict]:
        """
        Run a query and return ranked hits.

        Args:
            query: Object with create_weight(), e.g. ImageQuery.
            top_k: Maximum number of hits, or None for all of them.

        Returns:
            List of hit dicts sorted by score, each containing:
                id, score, segment, doc.
        """
        segments = self.index.segments
        weight = query.create_weight()

        if self.max_workers > 1 and len(segments) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                per_segment = list(pool.map(
                    lambda segment: self._collect(weight, segment), segments
                ))
        else:
            per_segment = [self._collect(weight, segment) for segment in segments]

        hits = rank_hits([hit for hits in per_segment for hit in hits])

        logger.info(
            f"Search on [{self.index.name}]: {len(segments)} segments -> "
            f"{len(hits)} hits"
        )

        if top_k is not None:
            hits = hits[:top_k]
        return hits

    @staticmethod
    def _collect(weight, segment: Segment) -> List[dict]:
        return [
            {
                "id": segment.doc_id(doc),
                "score": score,
                "segment": segment.ordinal,
                "doc": doc,
            }
            for doc, score in weight.scorer(segment)
        ]
