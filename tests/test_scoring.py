"""Tests for score mapping, combination and ranking."""

import pytest

from image_retrieval.scoring import combine_scores, distance_to_score, rank_hits


class TestDistanceToScore:

    def test_identical_scores_two(self):
        assert distance_to_score(0.0) == 2.0

    def test_near_duplicates_above_one(self):
        assert distance_to_score(0.25) == pytest.approx(1.75)
        assert distance_to_score(1.0) == pytest.approx(1.0)

    def test_far_decays_inverse(self):
        assert distance_to_score(4.0) == pytest.approx(0.25)

    def test_monotonic(self):
        distances = [0.0, 0.3, 0.9, 1.0, 1.5, 3.0, 10.0]
        scores = [distance_to_score(d) for d in distances]
        assert scores == sorted(scores, reverse=True)


class TestCombineScores:

    def test_max(self):
        assert combine_scores([0.5, 0.5, 0.5], "max") == 0.5

    def test_sum(self):
        assert combine_scores([0.5, 0.5, 0.5], "sum") == pytest.approx(1.5)

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="policy"):
            combine_scores([1.0], "avg")


class TestRankHits:
    """Tests for hit ranking."""

    def test_ranks_by_score_descending(self):
        hits = [
            {"score": 0.5, "segment": 0, "doc": 0},
            {"score": 1.8, "segment": 0, "doc": 1},
            {"score": 0.3, "segment": 1, "doc": 0},
        ]
        assert [h["score"] for h in rank_hits(hits)] == [1.8, 0.5, 0.3]

    def test_ties_keep_index_order(self):
        hits = [
            {"score": 1.0, "segment": 1, "doc": 0},
            {"score": 1.0, "segment": 0, "doc": 4},
            {"score": 1.0, "segment": 0, "doc": 2},
        ]
        ranked = rank_hits(hits)
        assert [(h["segment"], h["doc"]) for h in ranked] == [(0, 2), (0, 4), (1, 0)]

    def test_empty_list(self):
        assert rank_hits([]) == []
