"""Session-scoped classification state.

One ``SessionContext`` exists per running session. It owns the exemplar
store, the slot labels, the video settings and the sampler bookkeeping, and
resets the store and sampler state together on a session restart.
"""

from __future__ import annotations

import logging
import string
from typing import TYPE_CHECKING

from knnsense.classifier.exemplar_store import ExemplarStore
from knnsense.video import VideoState

if TYPE_CHECKING:
    from knnsense.classifier.knn import ClassificationResult

logger = logging.getLogger(__name__)


def default_labels(num_classes: int) -> list[str]:
    """Slot-indexed placeholder labels: "A", "B", ..."""
    return list(string.ascii_uppercase[:num_classes])


class ClassificationState:
    """The last published result plus the sampler's cycle bookkeeping.

    ``generation`` increments on every reset. A cycle that began in an older
    generation can neither publish its result nor clear the in-flight flag of
    the current one.
    """

    def __init__(self) -> None:
        self._result: ClassificationResult | None = None
        self._in_flight = False
        self._last_sample_time: float | None = None
        self._cycles_completed = 0
        self._generation = 0

    @property
    def result(self) -> ClassificationResult | None:
        return self._result

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def last_sample_time(self) -> float | None:
        return self._last_sample_time

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def generation(self) -> int:
        return self._generation

    def begin_cycle(self, now: float) -> int | None:
        """Mark a cycle in flight, returning its generation, or None if one already is."""
        if self._in_flight:
            return None
        self._in_flight = True
        self._last_sample_time = now
        return self._generation

    def end_cycle(self, generation: int) -> None:
        if generation == self._generation:
            self._in_flight = False

    def publish(self, result: ClassificationResult, generation: int) -> bool:
        """Replace the current result wholesale. Stale generations are discarded."""
        if generation != self._generation:
            logger.debug("Discarding result from stale session generation %d", generation)
            return False
        self._result = result
        self._cycles_completed += 1
        return True

    def reset(self) -> None:
        self._generation += 1
        self._result = None
        self._in_flight = False
        self._last_sample_time = None
        self._cycles_completed = 0


class SessionContext:
    """Everything a running session shares between the sampler and the controller."""

    def __init__(
        self,
        num_classes: int,
        video_state: VideoState = VideoState.ON,
        transparency: float = 50.0,
    ) -> None:
        self.num_classes = num_classes
        self.video_state = video_state
        self.transparency = transparency
        self.store = ExemplarStore(num_classes)
        self.state = ClassificationState()
        self._labels = default_labels(num_classes)

    @property
    def classification_enabled(self) -> bool:
        return self.video_state is not VideoState.OFF

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    def label_for(self, slot: int) -> str:
        return self._labels[slot]

    def slot_for(self, label: str) -> int | None:
        """First slot whose display label equals ``label``, or None."""
        try:
            return self._labels.index(label)
        except ValueError:
            return None

    def rename(self, slot: int, label: str) -> None:
        self._labels[slot] = label

    def is_valid_slot(self, slot: int) -> bool:
        return 0 <= slot < self.num_classes

    def reset(self) -> None:
        """Clear exemplars, labels and sampler state for a session restart."""
        self.store.clear_all()
        self.state.reset()
        self._labels = default_labels(self.num_classes)
        logger.info("Session reset (generation %d)", self.state.generation)
