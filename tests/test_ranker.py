"""Tests for cosine similarity and deterministic ranking."""
import math
import random

import pytest

from studymate.errors import ValidationError
from studymate.rag.ranker import cosine_similarity, make_snippet, rank
from studymate.rag.store import StoredPassage


def _passage(pid: int, vector, text: str = None) -> StoredPassage:
    return StoredPassage(
        id=pid, doc_id=1, doc_title="Doc", page_no=pid,
        text=text or f"passage {pid}", vector=list(vector), chunk_index=pid,
    )


def test_cosine_similarity_bounds_on_random_vectors():
    rng = random.Random(0)
    for _ in range(200):
        a = [rng.uniform(-5, 5) for _ in range(6)]
        b = [rng.uniform(-5, 5) for _ in range(6)]
        score = cosine_similarity(a, b)
        assert -1.0 <= score <= 1.0


def test_cosine_similarity_known_values():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([3, 4], [6, 8]) == pytest.approx(1.0)


def test_zero_magnitude_similarity_is_zero_not_nan():
    score = cosine_similarity([0, 0, 0], [1, 2, 3])
    assert score == 0.0
    assert not math.isnan(score)
    assert cosine_similarity([0, 0], [0, 0]) == 0.0


def test_cosine_similarity_dimension_mismatch():
    with pytest.raises(ValidationError):
        cosine_similarity([1, 2], [1, 2, 3])


def test_rank_orders_by_descending_score():
    candidates = [
        _passage(1, [0, 1]),
        _passage(2, [1, 0]),
        _passage(3, [1, 1]),
    ]
    results = rank([1, 0], candidates, top_k=3)

    assert [r.passage_id for r in results] == [2, 3, 1]
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)


def test_rank_ties_preserve_input_order():
    candidates = [
        _passage(5, [2, 0]),
        _passage(3, [1, 0]),
        _passage(9, [0, 1]),
        _passage(1, [4, 0]),
    ]
    results = rank([1, 0], candidates, top_k=4)

    assert [r.passage_id for r in results] == [5, 3, 1, 9]


def test_rank_zero_vectors_score_zero_and_keep_order():
    candidates = [_passage(1, [0, 0]), _passage(2, [0, 0])]
    results = rank([1, 1], candidates, top_k=2)

    assert [r.passage_id for r in results] == [1, 2]
    assert all(r.score == 0.0 for r in results)


def test_rank_clamps_top_k_to_candidate_count():
    candidates = [_passage(i, [1, i]) for i in range(1, 4)]

    assert len(rank([1, 1], candidates, top_k=10)) == 3
    assert len(rank([1, 1], candidates, top_k=2)) == 2
    assert rank([1, 1], [], top_k=5) == []


def test_rank_rejects_non_positive_top_k():
    with pytest.raises(ValidationError):
        rank([1, 0], [_passage(1, [1, 0])], top_k=0)


def test_rank_rejects_mixed_dimensions():
    candidates = [_passage(1, [1, 0]), _passage(2, [1, 0, 0])]
    with pytest.raises(ValidationError):
        rank([1, 0], candidates, top_k=2)


def test_ranked_passage_carries_snippet_and_metadata():
    long_text = "x" * 250
    result = rank([1, 0], [_passage(7, [1, 0], text=long_text)], top_k=1)[0]

    assert result.doc_title == "Doc"
    assert result.page_no == 7
    assert result.text == long_text
    assert result.snippet == "x" * 200 + "..."


def test_make_snippet_keeps_short_text():
    assert make_snippet("short passage") == "short passage"
