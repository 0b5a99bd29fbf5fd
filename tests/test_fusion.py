"""Unit tests for reciprocal rank fusion."""

import pytest

from conftest import hit
from legal_rag.fusion import FUSION_LIMIT, RRF_K, reciprocal_rank_fusion, rrf_score


def test_rrf_score_uses_zero_based_rank():
    """Rank 0 contributes 1/(k+1)."""
    assert rrf_score(0) == pytest.approx(1 / 61)
    assert rrf_score(1) == pytest.approx(1 / 62)
    assert RRF_K == 60


def test_hit_in_both_lists_scores_sum_of_contributions():
    """A chunk at rank 0 in both channels scores 2/61, one channel only 1/61."""
    # Arrange
    vector = [hit(1, 0.9), hit(2, 0.8)]
    lexical = [hit(1), hit(3)]

    # Act
    fused = reciprocal_rank_fusion(vector, lexical)

    # Assert
    scores = {c.chunk_id: c.fused_score for c in fused}
    assert scores[1] == pytest.approx(2 / 61)
    assert scores[2] == pytest.approx(1 / 62)
    assert scores[3] == pytest.approx(1 / 62)
    assert fused[0].chunk_id == 1


def test_result_ids_are_distinct():
    fused = reciprocal_rank_fusion([hit(1), hit(2), hit(3)], [hit(3), hit(2), hit(1)])

    ids = [c.chunk_id for c in fused]
    assert sorted(ids) == [1, 2, 3]
    assert len(ids) == len(set(ids))


def test_fusion_is_deterministic():
    vector = [hit(i, 1 - i / 100) for i in range(10)]
    lexical = [hit(i) for i in range(15, 3, -1)]

    first = [(c.chunk_id, c.fused_score) for c in reciprocal_rank_fusion(vector, lexical)]
    second = [(c.chunk_id, c.fused_score) for c in reciprocal_rank_fusion(vector, lexical)]

    assert first == second


def test_equal_scores_keep_combination_order():
    """Swapped lists give equal scores; the vector channel's first hit stays first."""
    fused = reciprocal_rank_fusion([hit(10), hit(20)], [hit(20), hit(10)])

    assert fused[0].fused_score == pytest.approx(fused[1].fused_score)
    assert [c.chunk_id for c in fused] == [10, 20]


def test_lexical_only_hits_follow_vector_hits_on_ties():
    fused = reciprocal_rank_fusion([hit(1)], [hit(2)])

    assert [c.chunk_id for c in fused] == [1, 2]


def test_output_truncated_to_limit():
    vector = [hit(i) for i in range(30)]
    lexical = [hit(i) for i in range(100, 130)]

    fused = reciprocal_rank_fusion(vector, lexical)

    assert len(fused) == FUSION_LIMIT == 20
    scores = [c.fused_score for c in fused]
    assert scores == sorted(scores, reverse=True)


def test_similarity_comes_from_vector_channel():
    """Lexical hits never carry similarity; a shared chunk keeps the vector value."""
    fused = reciprocal_rank_fusion([hit(5, 0.77)], [hit(5), hit(6)])

    by_id = {c.chunk_id: c for c in fused}
    assert by_id[5].similarity == pytest.approx(0.77)
    assert by_id[6].similarity is None


def test_similarity_kept_for_lower_ranked_vector_hit():
    fused = reciprocal_rank_fusion([hit(8), hit(5, 0.6)], [hit(5)])

    assert {c.chunk_id: c.similarity for c in fused}[5] == pytest.approx(0.6)


def test_empty_inputs():
    assert reciprocal_rank_fusion([], []) == []
    only_lexical = reciprocal_rank_fusion([], [hit(3), hit(4)])
    assert [c.chunk_id for c in only_lexical] == [3, 4]


def test_hybrid_ordering_example():
    """vector [c1, c3], lexical [c3, c2] fuses to c3, c1, c2."""
    fused = reciprocal_rank_fusion([hit(1, 0.91), hit(3, 0.77)], [hit(3), hit(2)])

    assert [c.chunk_id for c in fused] == [3, 1, 2]
    assert fused[0].fused_score == pytest.approx(1 / 62 + 1 / 61)
