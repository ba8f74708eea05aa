"""Nearest-neighbour classification over stored exemplars.

The predicted class is the slot owning the single exemplar nearest to the
query. Confidences come from a vote among the ``k`` nearest exemplars across
all slots, so with the default ``k=1`` the predicted slot gets 1.0 and every
other populated slot 0.0. Ties are resolved towards the lowest slot index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Mapping

    from numpy.typing import NDArray

    from knnsense.classifier.exemplar_store import ExemplarStore

logger = logging.getLogger(__name__)


class DistanceMetric(StrEnum):
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of one prediction.

    ``confidences`` holds an entry for every populated slot and sums to 1.
    Slots without an entry had no exemplars and read as 0.
    """

    class_index: int
    confidences: Mapping[int, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidences", MappingProxyType(dict(self.confidences)))

    def confidence(self, slot: int) -> float:
        return self.confidences.get(slot, 0.0)


def _distances(
    query: NDArray[np.float32], exemplars: NDArray[np.float32], metric: DistanceMetric
) -> NDArray[np.float64]:
    q = query.astype(np.float64)
    e = exemplars.astype(np.float64)
    if metric is DistanceMetric.EUCLIDEAN:
        return np.linalg.norm(e - q, axis=1)

    norms = np.linalg.norm(e, axis=1) * np.linalg.norm(q)
    dots = e @ q
    # Zero-norm vectors have no direction; treat them as orthogonal.
    similarity = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return 1.0 - similarity


class NearestNeighborClassifier:
    """k-NN classifier over an ExemplarStore with a fixed distance metric."""

    def __init__(self, k: int = 1, metric: DistanceMetric | str = DistanceMetric.COSINE) -> None:
        if k < 1:
            raise ValueError("k must be at least 1")
        self._k = k
        self._metric = DistanceMetric(metric)

    @property
    def k(self) -> int:
        return self._k

    @property
    def metric(self) -> DistanceMetric:
        return self._metric

    def predict(self, query: NDArray[np.float32], store: ExemplarStore) -> ClassificationResult | None:
        """Classify ``query`` against the store's current exemplars.

        Returns None when no slot has any exemplar.

        Raises:
            ValueError: If the query dimension differs from the stored exemplars.
        """
        vector = np.asarray(query, dtype=np.float32).reshape(-1)
        snapshot = store.snapshot()

        populated: list[int] = []
        distance_parts: list[NDArray[np.float64]] = []
        slot_parts: list[NDArray[np.intp]] = []
        for slot, exemplars in enumerate(snapshot):
            if not exemplars:
                continue
            matrix = np.stack(exemplars)
            if matrix.shape[1] != vector.shape[0]:
                raise ValueError(f"Query has dimension {vector.shape[0]}, exemplars have {matrix.shape[1]}")
            populated.append(slot)
            distance_parts.append(_distances(vector, matrix, self._metric))
            slot_parts.append(np.full(matrix.shape[0], slot, dtype=np.intp))

        if not populated:
            return None

        distances = np.concatenate(distance_parts)
        slots = np.concatenate(slot_parts)
        # Primary key distance, secondary key slot index.
        order = np.lexsort((slots, distances))

        best_slot = int(slots[order[0]])
        k_eff = min(self._k, order.shape[0])
        votes = np.bincount(slots[order[:k_eff]], minlength=len(snapshot))
        confidences = {slot: float(votes[slot]) / k_eff for slot in populated}

        logger.debug("Predicted slot %d (nearest distance %.4f)", best_slot, distances[order[0]])
        return ClassificationResult(class_index=best_slot, confidences=confidences)
