"""
Tests for SimilarityCalculator.
"""

import math

import pytest

from src.knowledge.domain import Chunk, SimilarityCalculator


def _chunk(chunk_id: str, embedding):
    return Chunk(id=chunk_id, document_id="doc-1", text=f"text {chunk_id}", embedding=list(embedding))


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert SimilarityCalculator.cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert SimilarityCalculator.cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert SimilarityCalculator.cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_scale_invariant(self):
        a = [0.3, -0.2, 0.9]
        b = [3.0, -2.0, 9.0]
        assert SimilarityCalculator.cosine_similarity(a, b) == pytest.approx(1.0)

    @pytest.mark.parametrize("a,b", [
        ([], []),
        ([], [1.0]),
        ([1.0, 2.0], [1.0, 2.0, 3.0]),
        ([0.0, 0.0], [1.0, 1.0]),
        ([math.nan, 1.0], [1.0, 1.0]),
        ([math.inf, 1.0], [1.0, 1.0]),
    ])
    def test_degenerate_input_is_zero(self, a, b):
        assert SimilarityCalculator.cosine_similarity(a, b) == 0.0

    @pytest.mark.parametrize("a,b", [
        ([1.0, 0.0], [0.0, 1.0]),
        ([0.3, -0.2, 0.9], [0.1, 0.4, -0.7]),
        ([2.0, 5.0, 1.0, 0.5], [1.5, -3.0, 4.0, 2.0]),
        ([1e-4, 2e-4], [3.0, -1.0]),
        ([0.0, 0.0], [1.0, 2.0]),
    ])
    def test_symmetric(self, a, b):
        assert SimilarityCalculator.cosine_similarity(a, b) == SimilarityCalculator.cosine_similarity(b, a)

    def test_result_is_bounded(self):
        value = SimilarityCalculator.cosine_similarity([1e-3, 1e-3], [1e-3, 1e-3])
        assert -1.0 <= value <= 1.0


class TestRank:

    def test_threshold_filters_and_orders(self):
        query = [1.0, 0.0]
        chunks = [
            _chunk("low", [0.5, math.sqrt(1 - 0.25)]),
            _chunk("high", [0.95, math.sqrt(1 - 0.95 ** 2)]),
            _chunk("mid", [0.8, 0.6]),
        ]

        ranked = SimilarityCalculator.rank(query, chunks, limit=5, threshold=0.7)

        assert [item.chunk.id for item in ranked] == ["high", "mid"]
        assert ranked[0].similarity == pytest.approx(0.95)
        assert ranked[1].similarity == pytest.approx(0.8)
        assert all(item.match_type == "semantic" for item in ranked)

    def test_limit(self):
        chunks = [_chunk(str(i), [1.0, 0.0]) for i in range(10)]

        ranked = SimilarityCalculator.rank([1.0, 0.0], chunks, limit=3, threshold=0.7)

        assert len(ranked) == 3

    def test_ties_keep_input_order(self):
        chunks = [_chunk(name, [1.0, 0.0]) for name in ("a", "b", "c")]

        ranked = SimilarityCalculator.rank([2.0, 0.0], chunks)

        assert [item.chunk.id for item in ranked] == ["a", "b", "c"]

    def test_chunks_without_embedding_never_match(self):
        chunks = [_chunk("empty", []), _chunk("wrong-size", [1.0, 0.0, 0.0])]

        assert SimilarityCalculator.rank([1.0, 0.0], chunks, threshold=0.01) == []
