"""Error taxonomy for user-initiated operations.

Every error carries a short user-facing message. The API layer turns them
into ``{"detail": message}`` responses; the sampling loop never raises them.
"""

from __future__ import annotations


class KnnSenseError(Exception):
    """Base class for KnnSense errors surfaced to the caller."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PreconditionFailure(KnnSenseError):
    """The operation's precondition does not hold; nothing was mutated."""


class ResourceUnavailable(KnnSenseError):
    """A collaborator (usually the frame source) had nothing to give."""


class ModelNotReady(KnnSenseError):
    """The embedding model has not finished loading."""
