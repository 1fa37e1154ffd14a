"""Serialized access to a classifier from async code.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(1) -> ThreadPoolExecutor(1) -> decode + Classifier

A classifier reuses its buffers between calls, so exactly one call may be
in flight. Requests waiting longer than the queue timeout get 503.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

from aibirdie.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np
    from numpy.typing import NDArray

    from aibirdie.ml.classifier import Classifier
    from aibirdie.ml.topk import Recognition

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_TIMEOUT_SECONDS: float = 5.0


class InferencePool:
    """Owns a classifier and runs its calls one at a time on a worker thread."""

    def __init__(self, classifier: Classifier, queue_timeout: float = DEFAULT_QUEUE_TIMEOUT_SECONDS) -> None:
        self._classifier = classifier
        self._queue_timeout = queue_timeout
        self._semaphore = asyncio.Semaphore(1)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="onnx-inference")
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    @property
    def classifier(self) -> Classifier:
        return self._classifier

    async def classify(self, image: NDArray[np.uint8]) -> list[Recognition]:
        """Classify a decoded image on the worker thread.

        Raises:
            TimeoutError: If the worker does not become free within the queue timeout.
        """
        return await self._run(self._classifier.classify_image, image)

    async def classify_bytes(self, data: bytes, max_pixels: int | None = None) -> list[Recognition]:
        """Decode and classify raw image bytes, both on the worker thread.

        Raises:
            ImageLoadError: If the bytes cannot be decoded.
            TimeoutError: If the worker does not become free within the queue timeout.
        """
        return await self._run(self._decode_and_classify, data, max_pixels)

    def _decode_and_classify(self, data: bytes, max_pixels: int | None) -> list[Recognition]:
        return self._classifier.classify_image(decode_image(data, max_pixels))

    async def _run(self, func: Callable[..., T], *args: object) -> T:
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._queue_timeout)
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
        """Number of requests waiting for the worker."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Wait for the in-flight call, then close the classifier."""
        self._executor.shutdown(wait=True)
        self._classifier.close()
