"""Frame-serialized execution for stream estimators.

Every estimator processes one frame at a time: a frame runs detect,
estimate, smooth and reproject to completion before the next one may
start. FrameExecutor owns that lock, validates input, turns mid-frame
exceptions into ProcessingError after giving the estimator a chance to
move its entities through a failure transition, and offers an async
wrapper that still goes through the same lock.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from typing import Any, Callable, Optional

import numpy as np

from kinetrack.core.adapter import ensure_bgr_image
from kinetrack.core.errors import BusyError, EstimatorClosedError, ProcessingError

logger = logging.getLogger(__name__)


class FrameExecutor:
    """Serializes frames through a processing callable.

    Args:
        name: Estimator name used in log and error messages
        process: Callable ``(image, timestamp) -> output`` run under the lock
        copy: Callable producing an independent deep copy of an output
        on_failure: Called under the lock when ``process`` raised
        blocking: If False, a call made while another frame is in flight
            raises BusyError instead of waiting

    Example:
        executor = FrameExecutor("hand", self._process_frame, copy_records,
                                 on_failure=self._fail_all)
        records = executor.run(image)
    """

    def __init__(
        self,
        name: str,
        process: Callable[[np.ndarray, Optional[float]], Any],
        copy: Callable[[Any], Any],
        on_failure: Optional[Callable[[], None]] = None,
        blocking: bool = True,
    ):
        self.name = name
        self.blocking = blocking
        self._process = process
        self._copy = copy
        self._on_failure = on_failure
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def check_open(self) -> None:
        """Raise EstimatorClosedError after ``close``."""
        if self._closed:
            raise EstimatorClosedError(f"{self.name} estimator has been closed")

    def run(
        self,
        image: np.ndarray,
        copy_output: bool = False,
        timestamp: Optional[float] = None,
    ) -> Any:
        """Process one frame.

        Args:
            image: BGR frame (H, W, 3)
            copy_output: Return an independent copy instead of the internal
                buffer, which the next frame overwrites
            timestamp: Frame time in seconds for the smoothing filters; None
                advances them at their nominal rate

        Raises:
            InvalidInputError: Image failed validation; nothing was processed
            BusyError: Non-blocking executor found a frame in flight
            ProcessingError: The frame failed mid-processing
            EstimatorClosedError: Executor was closed
        """
        self.check_open()
        ensure_bgr_image(image)

        if not self._lock.acquire(blocking=self.blocking):
            raise BusyError(f"{self.name} estimator is busy with another frame")
        try:
            self.check_open()
            try:
                output = self._process(image, timestamp)
            except Exception as e:
                if self._on_failure is not None:
                    self._on_failure()
                logger.error("%s frame processing failed: %s", self.name, e)
                raise ProcessingError(f"Error during {self.name} estimation: {e}") from e
            return self._copy(output) if copy_output else output
        finally:
            self._lock.release()

    async def run_async(self, image: np.ndarray, timestamp: Optional[float] = None) -> Any:
        """Process one frame in a worker thread; always returns a copy."""
        self.check_open()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.run, image, copy_output=True, timestamp=timestamp)
        )

    def call_locked(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn`` while holding the frame lock."""
        self.check_open()
        with self._lock:
            return fn(*args, **kwargs)

    def close(self, release: Optional[Callable[[], None]] = None) -> None:
        """Mark closed, waiting for any in-flight frame. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if release is not None:
                release()
        logger.debug("%s estimator closed", self.name)
