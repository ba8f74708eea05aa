"""Caller-facing training and query operations.

Labels are resolved to slots by first match, so renaming two slots to the
same label makes only the lower one reachable by label.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from knnsense.errors import ModelNotReady, PreconditionFailure, ResourceUnavailable
from knnsense.video import FrameFormat, VideoState

if TYPE_CHECKING:
    from knnsense.ml.embedding import EmbeddingExtractor
    from knnsense.session import SessionContext
    from knnsense.video import VideoDevice

logger = logging.getLogger(__name__)


class TrainingController:
    """Trains, resets and queries the session's classes."""

    def __init__(
        self,
        session: SessionContext,
        device: VideoDevice,
        extractor: EmbeddingExtractor,
        dimensions: tuple[int, int] = (480, 360),
    ) -> None:
        self._session = session
        self._device = device
        self._extractor = extractor
        self._dimensions = dimensions

    # -- Video --------------------------------------------------------------

    @property
    def video_state(self) -> VideoState:
        return self._session.video_state

    @property
    def transparency(self) -> float:
        return self._session.transparency

    def set_video_state(self, state: VideoState | str) -> None:
        """Enable or disable classification, configuring the device to match."""
        video_state = VideoState(state)
        self._session.video_state = video_state
        if video_state is VideoState.OFF:
            self._device.disable_video()
        else:
            self._device.enable_video()
            self._device.set_mirror(video_state is VideoState.ON)

    def set_transparency(self, transparency: float) -> float:
        value = min(max(float(transparency), 0.0), 100.0)
        self._session.transparency = value
        self._device.set_preview_ghost(value)
        return value

    # -- Training -----------------------------------------------------------

    def is_ready(self) -> bool:
        return self._extractor.is_ready

    async def train(self, slot: int, label: str) -> int:
        """Add the current frame as an exemplar of ``slot`` and name the slot ``label``.

        Returns the slot's new exemplar count.

        Raises:
            PreconditionFailure: Video is off, or ``slot`` is not a valid index.
            ModelNotReady: The embedding model is still loading.
            ResourceUnavailable: The camera has no frame to give.
        """
        session = self._session
        if not session.classification_enabled:
            raise PreconditionFailure("Turn the camera on before training")
        if not session.is_valid_slot(slot):
            raise PreconditionFailure(f"Class slot {slot} does not exist")
        if not self._extractor.is_ready:
            raise ModelNotReady("The embedding model is still loading")

        frame = self._device.get_frame(FrameFormat.RGB, self._dimensions)
        if frame is None:
            raise ResourceUnavailable("No camera frame is available yet")

        generation = session.state.generation
        embedding = await self._extractor.infer(frame)
        if generation != session.state.generation:
            logger.info("Session was reset while training slot %d; dropping exemplar", slot)
            return 0

        session.store.add_example(slot, embedding)
        session.rename(slot, label)
        count = session.store.get_class_example_count()[slot]
        logger.info("Trained slot %d as %r (%d samples)", slot, label, count)
        self._log_counts()
        return count

    def reset(self, label: str) -> None:
        """Clear every exemplar of the class named ``label``.

        Raises:
            PreconditionFailure: The label is unknown or its class has no exemplars.
        """
        slot = self._session.slot_for(label)
        if slot is None:
            raise PreconditionFailure(f"No class is labelled {label!r}")
        if self._session.store.get_class_example_count()[slot] == 0:
            raise PreconditionFailure(f"Class {label!r} has no training data")
        self._session.store.clear_class(slot)
        logger.info("Cleared slot %d (%r)", slot, label)
        self._log_counts()

    def reset_session(self) -> None:
        self._session.reset()

    # -- Queries ------------------------------------------------------------

    def labels(self) -> list[str]:
        return self._session.labels

    def example_counts(self) -> list[tuple[str, int]]:
        """(label, count) per slot, in slot order."""
        counts = self._session.store.get_class_example_count()
        return [(label, counts[slot]) for slot, label in enumerate(self._session.labels)]

    def sample_count(self, label: str) -> int:
        slot = self._session.slot_for(label)
        if slot is None:
            return 0
        return self._session.store.get_class_example_count()[slot]

    def confidence(self, label: str) -> float:
        slot = self._session.slot_for(label)
        result = self._session.state.result
        if slot is None or result is None:
            return 0.0
        return result.confidence(slot)

    def current_prediction(self) -> str | None:
        """Label of the latest predicted slot, or None if nothing was predicted yet."""
        result = self._session.state.result
        if result is None:
            return None
        return self._session.label_for(result.class_index)

    def matches(self, label: str) -> bool:
        prediction = self.current_prediction()
        return prediction is not None and prediction == label

    def _log_counts(self) -> None:
        logger.info(
            "Sample counts: %s",
            ", ".join(f"{label}={count}" for label, count in self.example_counts()),
        )
