"""Tests for preprocessing, the frame source and the ONNX embedding extractor."""

from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np
import pytest

from knnsense.config import Settings
from knnsense.errors import ModelNotReady
from knnsense.ml.embedding import OnnxEmbeddingExtractor, pool_features
from knnsense.ml.inference import InferencePool
from knnsense.ml.preprocessing import decode_rgb_frame, preprocess_for_embedding, resize_nearest
from knnsense.video import FrameFormat, LatestFrameSource


def _gradient_frame(width: int = 4, height: int = 2) -> np.ndarray:
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[..., 0] = np.arange(width, dtype=np.uint8)[None, :]
    frame[..., 2] = 200
    return frame


class TestPreprocessing:
    def test_decode_rgb_frame(self) -> None:
        data = bytes(range(2 * 3 * 3))
        frame = decode_rgb_frame(data, width=3, height=2)
        assert frame.shape == (2, 3, 3)
        assert frame[1, 2].tolist() == [15, 16, 17]
        assert frame.flags.writeable

    def test_decode_rejects_wrong_length(self) -> None:
        with pytest.raises(ValueError, match="Expected 18 bytes"):
            decode_rgb_frame(b"\x00" * 17, width=3, height=2)

    def test_decode_rejects_bad_dimensions(self) -> None:
        with pytest.raises(ValueError, match="Invalid frame dimensions"):
            decode_rgb_frame(b"", width=0, height=2)

    def test_resize_nearest(self) -> None:
        resized = resize_nearest(_gradient_frame(4, 2), width=2, height=4)
        assert resized.shape == (4, 2, 3)
        assert resized[0, :, 0].tolist() == [0, 2]

    def test_preprocess_shape_and_normalization(self) -> None:
        frame = np.full((10, 20, 3), 255, dtype=np.uint8)
        tensor = preprocess_for_embedding(frame, input_size=8)
        assert tensor.shape == (1, 3, 8, 8)
        assert tensor.dtype == np.float32
        assert np.isclose(tensor[0, 0, 0, 0], (1.0 - 0.485) / 0.229)

    def test_preprocess_rejects_grayscale(self) -> None:
        with pytest.raises(ValueError, match="RGB"):
            preprocess_for_embedding(np.zeros((4, 4), dtype=np.uint8), input_size=4)


class TestLatestFrameSource:
    def test_no_frame_until_enabled_and_pushed(self) -> None:
        source = LatestFrameSource()
        assert source.get_frame(FrameFormat.RGB, (4, 2)) is None
        source.enable_video()
        assert source.get_frame(FrameFormat.RGB, (4, 2)) is None
        source.push_frame(_gradient_frame())
        assert source.get_frame(FrameFormat.RGB, (4, 2)) is not None

    def test_mirror_and_flip(self) -> None:
        source = LatestFrameSource()
        source.enable_video()
        source.push_frame(_gradient_frame())

        source.set_mirror(True)
        mirrored = source.get_frame(FrameFormat.RGB, (4, 2))
        assert mirrored is not None
        assert mirrored[0, :, 0].tolist() == [3, 2, 1, 0]

        source.set_mirror(False)
        flipped = source.get_frame(FrameFormat.RGB, (4, 2))
        assert flipped is not None
        assert flipped[0, :, 0].tolist() == [0, 1, 2, 3]

    def test_bgr_format_swaps_channels(self) -> None:
        source = LatestFrameSource()
        source.enable_video()
        source.set_mirror(False)
        source.push_frame(_gradient_frame())
        frame = source.get_frame(FrameFormat.BGR, (4, 2))
        assert frame is not None
        assert frame[0, 0].tolist() == [200, 0, 0]

    def test_frame_is_resized(self) -> None:
        source = LatestFrameSource()
        source.enable_video()
        source.push_frame(_gradient_frame())
        frame = source.get_frame(FrameFormat.RGB, (480, 360))
        assert frame is not None
        assert frame.shape == (360, 480, 3)

    def test_disable_drops_frame(self) -> None:
        source = LatestFrameSource()
        source.enable_video()
        source.push_frame(_gradient_frame())
        source.disable_video()
        source.enable_video()
        assert not source.has_frame

    def test_push_rejects_non_rgb(self) -> None:
        with pytest.raises(ValueError):
            LatestFrameSource().push_frame(np.zeros((2, 2, 4), dtype=np.uint8))


class TestPoolFeatures:
    def test_feature_map_is_average_pooled(self) -> None:
        output = np.ones((1, 5, 7, 7), dtype=np.float32)
        output[0, 2] = 3.0
        vector = pool_features(output)
        assert vector.shape == (5,)
        assert vector[2] == 3.0
        assert not vector.flags.writeable

    def test_flat_output_is_flattened(self) -> None:
        assert pool_features(np.zeros((1, 1280), dtype=np.float32)).shape == (1280,)


def _fake_manager(output: np.ndarray) -> MagicMock:
    session = MagicMock()
    session.get_inputs.return_value = [MagicMock(name="input")]
    session.get_inputs.return_value[0].name = "input"
    session.run.return_value = [output]
    manager = MagicMock()
    manager.get_session.return_value = session
    return manager


class TestOnnxEmbeddingExtractor:
    async def test_infer_before_load_raises(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))
        extractor = OnnxEmbeddingExtractor("mobilenet_v2_100", _fake_manager(np.zeros((1, 4))), pool)
        try:
            assert not extractor.is_ready
            with pytest.raises(ModelNotReady):
                await extractor.infer(_gradient_frame())
        finally:
            pool.shutdown()

    async def test_load_then_infer(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))
        manager = _fake_manager(np.arange(4, dtype=np.float32).reshape(1, 4))
        extractor = OnnxEmbeddingExtractor("mobilenet_v2_100", manager, pool)
        try:
            await extractor.load()
            await extractor.load()
            assert extractor.is_ready
            manager.get_session.assert_called_once_with("mobilenet_v2_100")

            embedding = await extractor.infer(_gradient_frame())
            assert embedding.tolist() == [0.0, 1.0, 2.0, 3.0]

            session = manager.get_session.return_value
            (feeds,) = session.run.call_args.args[1:]
            assert feeds["input"].shape == (1, 3, 224, 224)
        finally:
            pool.shutdown()

    def test_unknown_model_rejected(self) -> None:
        with pytest.raises(KeyError):
            OnnxEmbeddingExtractor("nope", MagicMock(), MagicMock())


class TestInferencePool:
    async def test_run_executes_in_thread(self) -> None:
        pool = InferencePool(Settings(max_concurrent=2))
        try:
            assert await pool.run(sum, [1, 2, 3]) == 6
            assert pool.active_count == 0
            assert pool.queue_depth == 0
        finally:
            pool.shutdown()
