"""Tests for the exemplar store and the nearest-neighbour classifier."""

from __future__ import annotations

import math

import numpy as np
import pytest

from knnsense.classifier.exemplar_store import ExemplarStore
from knnsense.classifier.knn import ClassificationResult, DistanceMetric, NearestNeighborClassifier


def _vec(*values: float) -> np.ndarray:
    return np.array(values, dtype=np.float32)


# ---------------------------------------------------------------------------
# ExemplarStore
# ---------------------------------------------------------------------------


class TestExemplarStore:
    def test_counts_start_at_zero_for_every_slot(self) -> None:
        store = ExemplarStore(6)
        assert store.get_class_example_count() == {i: 0 for i in range(6)}
        assert store.is_empty()

    def test_add_example_appends_to_slot(self) -> None:
        store = ExemplarStore(3)
        store.add_example(1, _vec(1, 0))
        store.add_example(1, _vec(0, 1))
        assert store.get_class_example_count() == {0: 0, 1: 2, 2: 0}
        assert store.total_count() == 2

    def test_clear_class_is_idempotent_and_local(self) -> None:
        store = ExemplarStore(3)
        store.add_example(0, _vec(1, 0))
        store.add_example(2, _vec(0, 1))
        store.clear_class(0)
        store.clear_class(0)
        assert store.get_class_example_count() == {0: 0, 1: 0, 2: 1}

    def test_dimension_mismatch_rejected(self) -> None:
        store = ExemplarStore(2)
        store.add_example(0, _vec(1, 0))
        with pytest.raises(ValueError, match="dimension"):
            store.add_example(1, _vec(1, 0, 0))

    def test_dimension_forgotten_once_empty(self) -> None:
        store = ExemplarStore(2)
        store.add_example(0, _vec(1, 0))
        store.clear_class(0)
        store.add_example(1, _vec(1, 0, 0))
        assert store.embedding_dim == 3

    def test_stored_embeddings_are_read_only_copies(self) -> None:
        store = ExemplarStore(1)
        original = _vec(1, 0)
        store.add_example(0, original)
        original[0] = 5.0
        stored = store.snapshot()[0][0]
        assert stored[0] == 1.0
        assert not stored.flags.writeable

    def test_out_of_range_slot_raises(self) -> None:
        store = ExemplarStore(2)
        with pytest.raises(IndexError):
            store.add_example(2, _vec(1, 0))

    def test_clear_all(self) -> None:
        store = ExemplarStore(2)
        store.add_example(0, _vec(1, 0))
        store.add_example(1, _vec(0, 1))
        store.clear_all()
        assert store.is_empty()
        assert store.embedding_dim is None


# ---------------------------------------------------------------------------
# NearestNeighborClassifier
# ---------------------------------------------------------------------------


class TestNearestNeighborClassifier:
    def test_empty_store_gives_no_result(self) -> None:
        assert NearestNeighborClassifier().predict(_vec(1, 0), ExemplarStore(6)) is None

    def test_single_exemplar_gets_full_confidence(self) -> None:
        store = ExemplarStore(6)
        store.add_example(3, _vec(0.2, 0.7))
        result = NearestNeighborClassifier().predict(_vec(-1, 0), store)
        assert result is not None
        assert result.class_index == 3
        assert result.confidence(3) == 1.0
        assert all(result.confidence(slot) == 0.0 for slot in range(6) if slot != 3)

    @pytest.mark.parametrize("metric", list(DistanceMetric))
    def test_two_class_scenario(self, metric: DistanceMetric) -> None:
        store = ExemplarStore(6)
        store.add_example(0, _vec(1, 0))
        store.add_example(1, _vec(0, 1))
        result = NearestNeighborClassifier(metric=metric).predict(_vec(0.9, 0.1), store)
        assert result is not None
        assert result.class_index == 0
        assert result.confidence(0) > result.confidence(1)

    def test_confidences_cover_populated_slots_only(self) -> None:
        store = ExemplarStore(6)
        store.add_example(0, _vec(1, 0))
        store.add_example(4, _vec(0, 1))
        result = NearestNeighborClassifier().predict(_vec(0, 1), store)
        assert result is not None
        assert set(result.confidences) == {0, 4}
        assert math.isclose(sum(result.confidences.values()), 1.0)
        assert result.confidence(2) == 0.0

    def test_k_votes_spread_confidence(self) -> None:
        store = ExemplarStore(3)
        store.add_example(0, _vec(1, 0))
        store.add_example(1, _vec(0.95, 0.05))
        store.add_example(1, _vec(0.9, 0.1))
        store.add_example(2, _vec(0, 1))
        result = NearestNeighborClassifier(k=3, metric="euclidean").predict(_vec(1, 0), store)
        assert result is not None
        # Single nearest exemplar decides the label, the k-vote decides confidence.
        assert result.class_index == 0
        assert math.isclose(result.confidence(0), 1 / 3)
        assert math.isclose(result.confidence(1), 2 / 3)
        assert result.confidence(2) == 0.0
        assert math.isclose(sum(result.confidences.values()), 1.0)

    def test_k_larger_than_exemplar_count(self) -> None:
        store = ExemplarStore(2)
        store.add_example(0, _vec(1, 0))
        store.add_example(1, _vec(0, 1))
        result = NearestNeighborClassifier(k=10).predict(_vec(1, 0), store)
        assert result is not None
        assert result.confidences == {0: 0.5, 1: 0.5}

    def test_tie_goes_to_lowest_slot(self) -> None:
        store = ExemplarStore(4)
        store.add_example(3, _vec(1, 0))
        store.add_example(1, _vec(1, 0))
        result = NearestNeighborClassifier().predict(_vec(1, 0), store)
        assert result is not None
        assert result.class_index == 1

    def test_cosine_ignores_magnitude(self) -> None:
        store = ExemplarStore(2)
        store.add_example(0, _vec(10, 0))
        store.add_example(1, _vec(0.5, 0.6))
        result = NearestNeighborClassifier(metric="cosine").predict(_vec(0.1, 0), store)
        assert result is not None
        assert result.class_index == 0

    def test_zero_vector_query_does_not_fail(self) -> None:
        store = ExemplarStore(2)
        store.add_example(1, _vec(1, 0))
        result = NearestNeighborClassifier().predict(_vec(0, 0), store)
        assert result is not None
        assert result.class_index == 1

    def test_query_dimension_mismatch_raises(self) -> None:
        store = ExemplarStore(2)
        store.add_example(0, _vec(1, 0))
        with pytest.raises(ValueError, match="dimension"):
            NearestNeighborClassifier().predict(_vec(1, 0, 0), store)

    def test_invalid_k_rejected(self) -> None:
        with pytest.raises(ValueError):
            NearestNeighborClassifier(k=0)

    def test_result_confidences_are_immutable(self) -> None:
        result = ClassificationResult(class_index=0, confidences={0: 1.0})
        with pytest.raises(TypeError):
            result.confidences[0] = 0.5  # type: ignore[index]
