"""Frame embedding extraction.

The default implementation runs a MobileNet feature extractor through ONNX
Runtime and returns the pooled penultimate activations as the embedding.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

import numpy as np

from knnsense.errors import ModelNotReady
from knnsense.ml.model_manager import get_model_spec
from knnsense.ml.preprocessing import preprocess_for_embedding

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from knnsense.ml.inference import InferencePool
    from knnsense.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class EmbeddingExtractor(Protocol):
    """Protocol for frame embedding models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    @property
    def is_ready(self) -> bool:
        """True once ``load()`` has completed."""
        ...

    async def load(self) -> None:
        """Load the model. Must complete before ``infer`` is callable."""
        ...

    async def infer(self, frame: NDArray[np.uint8]) -> NDArray[np.float32]:
        """Embed an HxWx3 RGB uint8 frame into a 1-D float32 vector.

        Raises:
            ModelNotReady: If called before ``load()`` has completed.
        """
        ...


def pool_features(output: NDArray[np.float32]) -> NDArray[np.float32]:
    """Reduce a raw model output for one image to a flat, read-only vector.

    Spatial feature maps (1, C, H, W) are global-average-pooled; anything
    else is flattened.
    """
    array = np.asarray(output, dtype=np.float32)
    if array.ndim == 4:
        array = array.mean(axis=(2, 3))
    vector = np.ascontiguousarray(array.reshape(-1), dtype=np.float32)
    vector.flags.writeable = False
    return vector


class OnnxEmbeddingExtractor:
    """Embedding extractor backed by a cached ONNX InferenceSession."""

    def __init__(self, model_name: str, model_manager: ModelManager, pool: InferencePool) -> None:
        self._spec = get_model_spec(model_name)
        self._model_manager = model_manager
        self._pool = pool
        self._session: InferenceSession | None = None
        self._input_name: str | None = None
        self._load_lock: asyncio.Lock | None = None

    @property
    def model_name(self) -> str:
        return self._spec.name

    @property
    def is_ready(self) -> bool:
        return self._session is not None

    async def load(self) -> None:
        if self._load_lock is None:
            self._load_lock = asyncio.Lock()
        async with self._load_lock:
            if self._session is not None:
                return
            logger.info("Loading embedding model %s", self._spec.name)
            session = await self._pool.run(self._model_manager.get_session, self._spec.name)
            self._input_name = session.get_inputs()[0].name
            self._session = session
            logger.info("Embedding model %s ready", self._spec.name)

    async def infer(self, frame: NDArray[np.uint8]) -> NDArray[np.float32]:
        if self._session is None:
            raise ModelNotReady("The embedding model is still loading")
        tensor = preprocess_for_embedding(frame, self._spec.input_size)
        return await self._pool.run(self._run, tensor)

    def _run(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        assert self._session is not None
        outputs = self._session.run(None, {self._input_name: tensor})
        return pool_features(outputs[0])
