"""Tests for cosine scoring and ranking."""
import pytest

from brain.services.rag import cosine_similarity, rank_by_similarity


def test_cosine_similarity_directions():
    """Same direction scores 1, orthogonal 0, opposite -1."""
    assert cosine_similarity([1, 0], [2, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 3]) == pytest.approx(0.0)
    assert cosine_similarity([1, 1], [-1, -1]) == pytest.approx(-1.0)


def test_cosine_similarity_degenerate_inputs():
    """Empty, zero or mismatched vectors score 0."""
    assert cosine_similarity([], [1, 2]) == 0.0
    assert cosine_similarity([0, 0], [1, 2]) == 0.0
    assert cosine_similarity([1, 2, 3], [1, 2]) == 0.0


def test_rank_by_similarity_orders_filters_and_limits():
    """Results are best first, at or above the threshold, and at most top_k."""
    candidates = [
        ("a", [1, 0]),
        ("b", [1, 1]),
        ("c", [0, 1]),
        ("d", [-1, 0]),
        ("e", [3, 0.1]),
    ]
    ranked = rank_by_similarity([1, 0], candidates, top_k=3, score_threshold=0.5)
    items = [item for _, item in ranked]
    scores = [score for score, _ in ranked]
    assert items == ["a", "e", "b"]
    assert scores == sorted(scores, reverse=True)
    assert all(s >= 0.5 for s in scores)


def test_rank_by_similarity_negative_threshold_keeps_opposites():
    """A threshold of -1 admits every candidate."""
    ranked = rank_by_similarity([1, 0], [("x", [-1, 0]), ("y", [1, 0])], top_k=10, score_threshold=-1.0)
    assert [item for _, item in ranked] == ["y", "x"]
