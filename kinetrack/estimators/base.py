"""Shared surface of the stream estimators."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import numpy as np

from kinetrack.core.errors import InitializationError
from kinetrack.core.executor import FrameExecutor

logger = logging.getLogger(__name__)


class StreamEstimator(ABC):
    """Frame-serialized estimator composed from model adapters.

    Subclasses implement the per-frame work and the failure transition;
    this class provides ``estimate``, ``estimate_async``, ``close`` and
    context-manager support on top of a FrameExecutor.
    """

    def __init__(self, adapters: List[Any], blocking: bool = True):
        for adapter in adapters:
            if adapter is None:
                raise InitializationError(f"{self.name} estimator requires all model adapters")
        self._adapters = adapters
        self._executor = FrameExecutor(
            self.name,
            self._process_frame,
            self._copy_output,
            on_failure=self._fail_all,
            blocking=blocking,
        )

    @property
    @abstractmethod
    def name(self) -> str:
        """Estimator name used in messages."""
        pass

    @abstractmethod
    def _process_frame(self, image: np.ndarray, timestamp: Optional[float]) -> Any:
        """Run one frame and return the internal output buffer."""
        pass

    @abstractmethod
    def _copy_output(self, output: Any) -> Any:
        """Independent deep copy of an output buffer."""
        pass

    @abstractmethod
    def _fail_all(self) -> None:
        """Move every entity through a failure transition."""
        pass

    def _release(self) -> None:
        """Drop per-estimator state on close."""
        pass

    @property
    def closed(self) -> bool:
        return self._executor.closed

    def estimate(
        self,
        image: np.ndarray,
        copy_output: bool = False,
        timestamp: Optional[float] = None,
    ) -> Any:
        """Process one frame.

        Args:
            image: BGR frame (H, W, 3)
            copy_output: Return a deep copy instead of the internal buffer
                that the next call overwrites
            timestamp: Frame time in seconds for the smoothing filters

        Raises:
            InvalidInputError, BusyError, ProcessingError, EstimatorClosedError
        """
        return self._executor.run(image, copy_output=copy_output, timestamp=timestamp)

    async def estimate_async(self, image: np.ndarray, timestamp: Optional[float] = None) -> Any:
        """Async wrapper over ``estimate``. The result is always a copy."""
        return await self._executor.run_async(image, timestamp=timestamp)

    def close(self) -> None:
        """Release adapters and buffers. Further use raises EstimatorClosedError."""
        def release() -> None:
            self._release()
            for adapter in self._adapters:
                close = getattr(adapter, "close", None)
                if close is not None:
                    close()

        self._executor.close(release)

    def __enter__(self) -> StreamEstimator:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
