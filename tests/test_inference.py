"""Tests for the inference boundary and thread pool."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest
from fakes import FailingSession, FakeSession

from landmarkx.config import Settings
from landmarkx.ml import inference
from landmarkx.ml.inference import InferenceError, InferencePool, run_model


class TestRunModel:
    def test_returns_float32_outputs_in_order(self) -> None:
        session = FakeSession({"a": np.ones((2,), dtype=np.float64), "b": np.zeros((3,), dtype=np.float32)})

        out_b, out_a = run_model(session, ["b", "a"], {"x": np.zeros(1, dtype=np.float32)})

        assert out_b.shape == (3,)
        assert out_a.dtype == np.float32
        assert session.calls[0][0] == ["b", "a"]

    def test_backend_error_wrapped(self) -> None:
        with pytest.raises(InferenceError, match="backend exploded") as excinfo:
            run_model(FailingSession(), ["a"], {})
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_output_count_mismatch(self) -> None:
        class ShortSession:
            def run(self, output_names: list[str], input_feed: dict[str, object]) -> list[np.ndarray]:
                return []

        with pytest.raises(InferenceError, match="0 outputs"):
            run_model(ShortSession(), ["a"], {})


class TestInferencePool:
    async def test_runs_function_in_executor(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))
        try:
            assert await pool.run(lambda a, b: a + b, 2, 3) == 5
            assert pool.active_count == 0
            assert pool.queue_depth == 0
        finally:
            pool.shutdown()

    async def test_times_out_when_saturated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(inference, "SEMAPHORE_TIMEOUT_SECONDS", 0.05)
        pool = InferencePool(Settings(max_concurrent=1))
        release = asyncio.Event()
        loop = asyncio.get_running_loop()

        def _block() -> None:
            asyncio.run_coroutine_threadsafe(release.wait(), loop).result()

        try:
            busy = asyncio.create_task(pool.run(_block))
            await asyncio.sleep(0.01)
            with pytest.raises(TimeoutError):
                await pool.run(lambda: None)
            release.set()
            await busy
        finally:
            pool.shutdown()
