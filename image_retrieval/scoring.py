"""
Score helpers for image retrieval.

    distance_to_score   maps a feature distance to a similarity score
    combine_scores      merges the scores of the clauses one document matched
    rank_hits           orders search hits for presentation

The clause combination policy is configured through IMAGE_SCORE_COMBINE.
With "max" (default) a document's score is its similarity times boost
no matter how many hash buckets it fell into. "sum" adds the clause
scores, rewarding documents that share many buckets with the query.
"""

import os
import logging
from typing import List, Sequence

logger = logging.getLogger(__name__)

COMBINE_MAX = "max"
COMBINE_SUM = "sum"
COMBINE_POLICIES = (COMBINE_MAX, COMBINE_SUM)

SCORE_COMBINE = os.environ.get("IMAGE_SCORE_COMBINE", COMBINE_MAX).lower()
if SCORE_COMBINE not in COMBINE_POLICIES:
    logger.warning(
        f"Unknown IMAGE_SCORE_COMBINE={SCORE_COMBINE!r}, using {COMBINE_MAX!r}"
    )
    SCORE_COMBINE = COMBINE_MAX


def distance_to_score(distance: float) -> float:
    """
    Convert a feature distance into a similarity score (higher = closer).

    Distances up to 1.0 are treated as near-duplicates and land in
    [1, 2]; larger distances decay as 1 / distance into (0, 1).
    """
    if distance <= 1.0:
        return 2.0 - distance
    return 1.0 / distance


def combine_scores(scores: Sequence[float], policy: str = None) -> float:
    """
    Combine the per-clause scores of a single document.

    Args:
        scores: Non-empty scores, one per matching clause.
        policy: "max" or "sum". Defaults to SCORE_COMBINE.
    """
    policy = policy or SCORE_COMBINE
    if policy == COMBINE_MAX:
        return max(scores)
    if policy == COMBINE_SUM:
        return float(sum(scores))
    raise ValueError(f"Unknown score combination policy: {policy!r}")


def rank_hits(hits: List[dict]) -> List[dict]:
    """
    Sort search hits by score (descending), then by segment and doc
    ordinal so that equal scores keep index order.

    Args:
        hits: List of hit dicts with 'score', 'segment' and 'doc' keys.

    Returns:
        Sorted list (best hit first).
    """
    return sorted(hits, key=lambda x: (-x['score'], x['segment'], x['doc']))
