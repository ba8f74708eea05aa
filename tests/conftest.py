"""Shared fakes for the embedding model and the video device."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import numpy as np
import pytest

from knnsense.session import SessionContext

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from knnsense.video import FrameFormat


class FakeExtractor:
    """EmbeddingExtractor returning a settable embedding, optionally held on a gate."""

    def __init__(self, embedding: Sequence[float] = (1.0, 0.0), *, ready: bool = True) -> None:
        self.embedding = np.asarray(embedding, dtype=np.float32)
        self.ready = ready
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.error: Exception | None = None
        self.load_error: Exception | None = None

    @property
    def model_name(self) -> str:
        return "fake"

    @property
    def is_ready(self) -> bool:
        return self.ready

    async def load(self) -> None:
        if self.load_error is not None:
            raise self.load_error
        self.ready = True

    async def infer(self, frame: NDArray[np.uint8]) -> NDArray[np.float32]:
        self.calls += 1
        embedding = self.embedding
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return embedding


class FakeDevice:
    """VideoDevice that always hands out the same frame (or None)."""

    def __init__(self, has_frame: bool = True) -> None:
        self.frame: NDArray[np.uint8] | None = np.zeros((360, 480, 3), dtype=np.uint8) if has_frame else None
        self.enabled = True
        self.mirror = True
        self.ghost = 50.0
        self.frames_served = 0

    def enable_video(self) -> None:
        self.enabled = True

    def disable_video(self) -> None:
        self.enabled = False

    def set_mirror(self, mirror: bool) -> None:
        self.mirror = mirror

    def set_preview_ghost(self, transparency: float) -> None:
        self.ghost = transparency

    def get_frame(self, fmt: FrameFormat, dimensions: tuple[int, int]) -> NDArray[np.uint8] | None:
        self.frames_served += 1
        return self.frame


@pytest.fixture()
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture()
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture()
def session() -> SessionContext:
    return SessionContext(num_classes=6)
