"""Inference boundary and concurrency layer.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> ONNX inference

Requests beyond the semaphore limit queue with a 5s timeout, then get 503.
The loaded models are shared read-only; each ``run`` call is its own
inference context.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from numpy.typing import NDArray

    from landmarkx.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class InferenceError(RuntimeError):
    """Raised when an external model fails to produce its outputs."""


class InferenceModel(Protocol):
    """The slice of ``onnxruntime.InferenceSession`` the pipeline relies on."""

    def run(self, output_names: Sequence[str] | None, input_feed: Mapping[str, Any]) -> Sequence[Any]:
        """Run the model and return outputs in ``output_names`` order."""
        ...


def run_model(
    model: InferenceModel,
    output_names: Sequence[str],
    input_feed: Mapping[str, NDArray[np.float32]],
) -> list[NDArray[np.float32]]:
    """Run ``model`` and return its outputs as float32 arrays.

    Raises:
        InferenceError: If the backend fails or returns the wrong number of outputs.
    """
    try:
        outputs = model.run(list(output_names), dict(input_feed))
    except Exception as exc:
        raise InferenceError(f"Model inference failed: {exc}") from exc

    if len(outputs) != len(output_names):
        raise InferenceError(f"Model returned {len(outputs)} outputs, expected {len(output_names)}")
    return [np.asarray(out, dtype=np.float32) for out in outputs]


class InferencePool:
    """Manages the semaphore and thread pool for ML inference."""

    def __init__(self, settings: Settings) -> None:
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="onnx-inference",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the inference thread pool.

        Acquires the semaphore (with timeout), runs the function in the
        executor, then releases.

        Raises:
            TimeoutError: If the semaphore cannot be acquired within the timeout.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(
                self._semaphore.acquire(),
                timeout=SEMAPHORE_TIMEOUT_SECONDS,
            )
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._semaphore.release()
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of currently running inference tasks."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a semaphore slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
