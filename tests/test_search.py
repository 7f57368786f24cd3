"""Tests for query execution: disjunctions, queries and the searcher."""

import pytest

from image_retrieval.queries import HashedImageQuery, ImageQuery
from image_retrieval.scoring import distance_to_score
from image_retrieval.search import DisjunctionScorer, IndexSearcher

from conftest import FIELD, HASH_FIELD


class FixedScorer:
    """Clause stub with fixed candidates and scores (None = non-match)."""

    def __init__(self, scores):
        self.scores = scores

    def iter_docs(self):
        return sorted(self.scores)

    def score(self, doc):
        return self.scores[doc]


def scores_by_id(hits):
    return {hit["id"]: hit["score"] for hit in hits}


class TestDisjunctionScorer:
    """Tests for OR evaluation within a segment."""

    def test_union_of_clauses_in_doc_order(self):
        scorer = DisjunctionScorer(
            [FixedScorer({0: 1.0, 4: 1.0}), FixedScorer({2: 0.5, 4: 1.0})],
            disable_coord=True,
        )
        assert [doc for doc, _ in scorer] == [0, 2, 4]

    def test_max_combination(self):
        scorer = DisjunctionScorer(
            [FixedScorer({1: 0.8}), FixedScorer({1: 0.8}), FixedScorer({1: 0.8})],
            disable_coord=True, combine="max",
        )
        assert list(scorer) == [(1, 0.8)]

    def test_sum_combination(self):
        scorer = DisjunctionScorer(
            [FixedScorer({1: 0.8}), FixedScorer({1: 0.8})],
            disable_coord=True, combine="sum",
        )
        assert list(scorer) == [(1, pytest.approx(1.6))]

    def test_coordination_factor(self):
        clauses = [FixedScorer({0: 1.0, 1: 1.0}), FixedScorer({0: 1.0}),
                   FixedScorer({}), FixedScorer({})]
        with_coord = dict(DisjunctionScorer(clauses, combine="max"))
        without = dict(DisjunctionScorer(clauses, disable_coord=True, combine="max"))
        assert with_coord == {0: pytest.approx(0.5), 1: pytest.approx(0.25)}
        assert without == {0: 1.0, 1: 1.0}

    def test_doc_excluded_when_no_clause_scores_it(self):
        scorer = DisjunctionScorer(
            [FixedScorer({0: None, 1: 0.3}), FixedScorer({0: None})],
            disable_coord=True,
        )
        assert list(scorer) == [(1, 0.3)]

    def test_non_matching_clause_ignored_in_combination(self):
        scorer = DisjunctionScorer(
            [FixedScorer({0: None}), FixedScorer({0: 0.6})],
            disable_coord=True, combine="sum",
        )
        assert list(scorer) == [(0, 0.6)]

    def test_no_clauses(self):
        assert list(DisjunctionScorer([])) == []


class TestImageQuery:
    """Exhaustive (no hash) execution."""

    def test_returns_every_readable_doc(self, bucket_index, query_feature, doc_features):
        hits = IndexSearcher(bucket_index).search(ImageQuery(FIELD, query_feature), top_k=None)
        assert scores_by_id(hits) == {
            name: pytest.approx(distance_to_score(query_feature.distance(f)))
            for name, f in doc_features.items()
        }

    def test_hits_ranked(self, bucket_index, query_feature):
        hits = IndexSearcher(bucket_index).search(ImageQuery(FIELD, query_feature), top_k=None)
        scores = [hit["score"] for hit in hits]
        assert scores == sorted(scores, reverse=True)

    def test_top_k(self, bucket_index, query_feature):
        hits = IndexSearcher(bucket_index).search(ImageQuery(FIELD, query_feature), top_k=2)
        assert len(hits) == 2


class TestHashedImageQuery:
    """Hash-bucket execution across segments."""

    def query(self, feature, codes=(1, 2, 3), **kwargs):
        return HashedImageQuery(HASH_FIELD, codes, FIELD, feature, **kwargs)

    def test_returns_bucket_docs_with_exact_scores(self, bucket_index, query_feature,
                                                   doc_features):
        hits = IndexSearcher(bucket_index).search(self.query(query_feature), top_k=None)
        assert scores_by_id(hits) == {
            name: pytest.approx(distance_to_score(query_feature.distance(doc_features[name])))
            for name in "ABC"
        }

    def test_multiple_buckets_do_not_inflate_scores(self, bucket_index, query_feature):
        one = IndexSearcher(bucket_index).search(self.query(query_feature, codes=(1,)))
        two = IndexSearcher(bucket_index).search(self.query(query_feature, codes=(1, 2)))
        assert scores_by_id(one) == scores_by_id(two)

    def test_sum_policy_counts_buckets(self, bucket_index, query_feature):
        base = scores_by_id(IndexSearcher(bucket_index).search(
            self.query(query_feature, codes=(1,))))
        summed = scores_by_id(IndexSearcher(bucket_index).search(
            self.query(query_feature, codes=(1, 2), combine="sum")))
        assert summed["A"] == pytest.approx(2 * base["A"])

    def test_score_cache_is_per_segment(self, bucket_index, query_feature, doc_features):
        # A (segment 0) and C (segment 1) share doc ordinal 0
        hits = scores_by_id(IndexSearcher(bucket_index).search(self.query(query_feature)))
        assert hits["A"] != hits["C"]
        assert hits["C"] == pytest.approx(
            distance_to_score(query_feature.distance(doc_features["C"])))

    def test_matches_exhaustive_ranking(self, bucket_index, query_feature):
        searcher = IndexSearcher(bucket_index)
        hashed = searcher.search(self.query(query_feature), top_k=None)
        exhaustive = searcher.search(ImageQuery(FIELD, query_feature), top_k=None)
        in_buckets = {hit["id"] for hit in hashed}
        assert [h["id"] for h in hashed] == [
            h["id"] for h in exhaustive if h["id"] in in_buckets
        ]
        exhaustive_scores = scores_by_id(exhaustive)
        for hit in hashed:
            assert hit["score"] == pytest.approx(exhaustive_scores[hit["id"]])

    def test_boost_linearity(self, bucket_index, query_feature):
        plain = scores_by_id(IndexSearcher(bucket_index).search(self.query(query_feature)))
        boosted = scores_by_id(IndexSearcher(bucket_index).search(
            self.query(query_feature, boost=2.5)))
        assert boosted == {k: pytest.approx(2.5 * v) for k, v in plain.items()}

    def test_limit_one_keeps_first_doc(self, bucket_index, query_feature):
        hits = IndexSearcher(bucket_index).search(
            self.query(query_feature, codes=(1, 2), limit=1))
        assert [hit["id"] for hit in hits] == ["A"]

    @pytest.mark.parametrize("limit, expected_ids", [
        (1, {"A"}), (2, {"A", "B"}), (3, {"A", "B", "C"}), (10, {"A", "B", "C"}),
    ])
    def test_limit_caps_distinct_docs_across_segments(self, bucket_index, query_feature,
                                                      limit, expected_ids):
        hits = IndexSearcher(bucket_index).search(
            self.query(query_feature, limit=limit), top_k=None)
        assert {hit["id"] for hit in hits} == expected_ids

    def test_limit_resets_between_searches(self, bucket_index, query_feature):
        searcher = IndexSearcher(bucket_index)
        query = self.query(query_feature, limit=2)
        assert searcher.search(query) == searcher.search(query)

    def test_invalid_limit(self, query_feature):
        with pytest.raises(ValueError):
            self.query(query_feature, limit=0)


class TestIndexSearcher:
    """Segment scheduling."""

    def test_parallel_matches_sequential(self, bucket_index, query_feature):
        query = HashedImageQuery(HASH_FIELD, (1, 2, 3), FIELD, query_feature)
        sequential = IndexSearcher(bucket_index).search(query, top_k=None)
        parallel = IndexSearcher(bucket_index, max_workers=4).search(query, top_k=None)
        assert parallel == sequential

    def test_parallel_limit_never_exceeded(self, bucket_index, query_feature):
        query = HashedImageQuery(HASH_FIELD, (1, 2, 3), FIELD, query_feature, limit=2)
        hits = IndexSearcher(bucket_index, max_workers=4).search(query, top_k=None)
        assert len(hits) <= 2

    def test_empty_index(self, query_feature):
        from image_retrieval.index import ImageIndex
        hits = IndexSearcher(ImageIndex("empty")).search(ImageQuery(FIELD, query_feature))
        assert hits == []

    def test_hit_shape(self, bucket_index, query_feature):
        hit = IndexSearcher(bucket_index).search(ImageQuery(FIELD, query_feature))[0]
        assert set(hit) == {"id", "score", "segment", "doc"}
