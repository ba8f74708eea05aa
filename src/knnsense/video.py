"""Video device boundary.

Frames are not captured here: a client pushes the latest camera frame and
the sampler and trainer pull from it. ``LatestFrameSource`` keeps only the
newest frame and applies the session's enable and mirror settings on read.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

import numpy as np

from knnsense.ml.preprocessing import resize_nearest

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class VideoState(StrEnum):
    OFF = "off"
    # Mirrored horizontally, like a selfie preview.
    ON = "on"
    ON_FLIPPED = "on-flipped"


class FrameFormat(StrEnum):
    RGB = "rgb"
    BGR = "bgr"


class VideoDevice(Protocol):
    """Protocol for the camera device the session controls and samples."""

    def enable_video(self) -> None: ...

    def disable_video(self) -> None: ...

    def set_mirror(self, mirror: bool) -> None: ...

    def set_preview_ghost(self, transparency: float) -> None: ...

    def get_frame(self, fmt: FrameFormat, dimensions: tuple[int, int]) -> NDArray[np.uint8] | None:
        """Return the current frame as HxWx3 uint8 at ``dimensions`` (width, height).

        Returns None when the camera is disabled or has not produced a frame.
        """
        ...


class LatestFrameSource:
    """Holds the most recent client-pushed frame."""

    def __init__(self) -> None:
        self._frame: NDArray[np.uint8] | None = None
        self._enabled = False
        self._mirror = True
        self._preview_ghost = 50.0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def mirror(self) -> bool:
        return self._mirror

    @property
    def preview_ghost(self) -> float:
        return self._preview_ghost

    @property
    def has_frame(self) -> bool:
        return self._frame is not None

    def push_frame(self, frame: NDArray[np.uint8]) -> None:
        """Replace the current frame with an HxWx3 RGB uint8 array."""
        if frame.ndim != 3 or frame.shape[2] != 3:
            raise ValueError(f"Expected an HxWx3 RGB frame, got shape {frame.shape}")
        self._frame = frame

    def clear(self) -> None:
        self._frame = None

    def enable_video(self) -> None:
        if not self._enabled:
            logger.info("Video enabled")
        self._enabled = True

    def disable_video(self) -> None:
        if self._enabled:
            logger.info("Video disabled")
        self._enabled = False
        self._frame = None

    def set_mirror(self, mirror: bool) -> None:
        self._mirror = mirror

    def set_preview_ghost(self, transparency: float) -> None:
        self._preview_ghost = transparency

    def get_frame(self, fmt: FrameFormat, dimensions: tuple[int, int]) -> NDArray[np.uint8] | None:
        frame = self._frame
        if not self._enabled or frame is None:
            return None
        width, height = dimensions
        out = resize_nearest(frame, width, height)
        if self._mirror:
            out = out[:, ::-1]
        if fmt is FrameFormat.BGR:
            out = out[..., ::-1]
        return np.ascontiguousarray(out)
