"""Per-class exemplar storage."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class ExemplarStore:
    """Holds the embeddings added to each of a fixed number of class slots.

    Slots grow only through ``add_example`` and shrink only through
    ``clear_class``/``clear_all``. Indices are validated by the caller; an
    out-of-range slot raises IndexError.
    """

    def __init__(self, num_classes: int) -> None:
        if num_classes < 1:
            raise ValueError("num_classes must be at least 1")
        self._examples: list[list[NDArray[np.float32]]] = [[] for _ in range(num_classes)]
        self._dim: int | None = None

    @property
    def num_classes(self) -> int:
        return len(self._examples)

    @property
    def embedding_dim(self) -> int | None:
        """Dimension fixed by the first stored embedding, or None when empty."""
        return self._dim

    def add_example(self, slot: int, embedding: NDArray[np.float32]) -> None:
        vector = np.asarray(embedding, dtype=np.float32).reshape(-1)
        if self._dim is not None and vector.shape[0] != self._dim:
            raise ValueError(f"Embedding has dimension {vector.shape[0]}, store expects {self._dim}")
        stored = vector.copy()
        stored.flags.writeable = False
        self._examples[slot].append(stored)
        self._dim = vector.shape[0]

    def clear_class(self, slot: int) -> None:
        self._examples[slot] = []
        if self.is_empty():
            self._dim = None

    def clear_all(self) -> None:
        for slot in range(self.num_classes):
            self._examples[slot] = []
        self._dim = None

    def get_class_example_count(self) -> dict[int, int]:
        return {slot: len(examples) for slot, examples in enumerate(self._examples)}

    def total_count(self) -> int:
        return sum(len(examples) for examples in self._examples)

    def is_empty(self) -> bool:
        return self.total_count() == 0

    def snapshot(self) -> tuple[tuple[NDArray[np.float32], ...], ...]:
        """Return an immutable view of every slot's exemplars at call time."""
        return tuple(tuple(examples) for examples in self._examples)
