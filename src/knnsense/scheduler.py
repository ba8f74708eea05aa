"""Periodic sampling of the live feed.

``SamplingScheduler.tick`` runs one guarded classification cycle. ``start``
drives it on a fixed interval from an asyncio task. A tick that arrives while
a cycle is in flight is dropped, not queued, and no exception escapes a cycle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from knnsense.video import FrameFormat

if TYPE_CHECKING:
    from knnsense.classifier.knn import NearestNeighborClassifier
    from knnsense.ml.embedding import EmbeddingExtractor
    from knnsense.session import SessionContext
    from knnsense.video import VideoDevice

logger = logging.getLogger(__name__)


class SamplingScheduler:
    """Re-entrancy-guarded periodic classifier of the current frame."""

    def __init__(
        self,
        session: SessionContext,
        device: VideoDevice,
        extractor: EmbeddingExtractor,
        classifier: NearestNeighborClassifier,
        interval: float = 0.8,
        dimensions: tuple[int, int] = (480, 360),
    ) -> None:
        self._session = session
        self._device = device
        self._extractor = extractor
        self._classifier = classifier
        self._interval = interval
        self._dimensions = dimensions
        self._task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """Run one sampling cycle if allowed. Returns True if a result was published."""
        session = self._session
        if not session.classification_enabled or session.state.in_flight:
            return False
        if not self._extractor.is_ready or session.store.is_empty():
            return False

        generation = session.state.begin_cycle(time.monotonic())
        if generation is None:
            return False
        try:
            frame = self._device.get_frame(FrameFormat.RGB, self._dimensions)
            if frame is None:
                logger.debug("No frame available; skipping sample")
                return False
            embedding = await self._extractor.infer(frame)
            result = self._classifier.predict(embedding, session.store)
            if result is None:
                return False
            published = session.state.publish(result, generation)
            if published:
                logger.debug(
                    "Sampled prediction %s (confidences=%s)",
                    session.label_for(result.class_index),
                    dict(result.confidences),
                )
            return published
        except Exception:
            logger.exception("Sampling cycle failed; keeping previous result")
            return False
        finally:
            session.state.end_cycle(generation)

    def start(self) -> None:
        """Start ticking every ``interval`` seconds on the running loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="knnsense-sampler")
        logger.info("Sampler started (interval=%.3fs)", self._interval)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        pending = list(self._pending)
        for cycle in pending:
            cycle.cancel()
        await asyncio.gather(task, *pending, return_exceptions=True)
        logger.info("Sampler stopped")

    async def _run(self) -> None:
        while True:
            # Overlapping ticks are dropped by the in-flight guard.
            cycle = asyncio.create_task(self.tick())
            self._pending.add(cycle)
            cycle.add_done_callback(self._pending.discard)
            await asyncio.sleep(self._interval)
