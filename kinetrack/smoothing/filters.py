"""Scalar smoothing filters.

Implements the One-Euro filter (an adaptive low-pass filter whose cutoff
frequency rises with the estimated signal velocity) together with the
one-pole low-pass and fixed-window moving-average filters it is combined
with.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Deque, Optional


MIN_CONFIDENCE_FACTOR = 0.1


class LowPassFilter:
    """One-pole low-pass filter: y = alpha * x + (1 - alpha) * y."""

    def __init__(self, alpha: float):
        self.alpha = alpha
        self.output = 0.0

    def filter(self, x: float) -> float:
        self.output = self.alpha * x + (1.0 - self.alpha) * self.output
        return self.output

    def reset(self) -> None:
        self.output = 0.0


class OneEuroFilter:
    """One-Euro filter for a single scalar channel.

    The derivative of the signal is estimated from consecutive samples and
    smoothed with a fixed cutoff. The value cutoff is then
    ``min_cutoff + beta * |dx|``, so slow signals are smoothed hard while
    fast motion is followed with little lag.

    When a confidence is supplied, ``beta`` is divided by
    ``max(0.1, confidence)``, raising the velocity gain of low-confidence
    samples.
    """

    def __init__(
        self,
        freq: float = 30.0,
        min_cutoff: float = 1.0,
        beta: float = 0.007,
        d_cutoff: float = 1.0,
    ):
        """Initialize filter.

        Args:
            freq: Nominal sampling frequency in Hz, replaced by the measured
                rate once timestamps arrive
            min_cutoff: Cutoff frequency at zero velocity
            beta: Velocity gain of the cutoff
            d_cutoff: Fixed cutoff of the derivative filter
        """
        if freq <= 0:
            raise ValueError("freq must be positive")
        if min_cutoff <= 0 or d_cutoff <= 0:
            raise ValueError("cutoff frequencies must be positive")

        self.nominal_freq = float(freq)
        self.min_cutoff = float(min_cutoff)
        self.beta = float(beta)
        self.d_cutoff = float(d_cutoff)

        self._freq = self.nominal_freq
        self._x_filter = LowPassFilter(self._alpha(self.min_cutoff))
        self._dx_filter = LowPassFilter(self._alpha(self.d_cutoff))
        self._x_prev: Optional[float] = None
        self._dx = 0.0
        self._last_time: Optional[float] = None

    @property
    def initialized(self) -> bool:
        return self._x_prev is not None

    @property
    def value(self) -> Optional[float]:
        return self._x_prev

    @property
    def derivative(self) -> float:
        return self._dx

    @property
    def frequency(self) -> float:
        return self._freq

    def _alpha(self, cutoff: float) -> float:
        te = 1.0 / self._freq
        tau = 1.0 / (2.0 * math.pi * cutoff)
        return 1.0 / (1.0 + tau / te)

    def _advance_clock(self, timestamp: Optional[float]) -> None:
        if timestamp is None:
            if self._last_time is None:
                self._last_time = 0.0
            else:
                self._last_time += 1.0 / self._freq
            return
        if self._last_time is not None and timestamp > self._last_time:
            self._freq = 1.0 / (timestamp - self._last_time)
        self._last_time = timestamp

    def filter(
        self,
        x: float,
        timestamp: Optional[float] = None,
        confidence: Optional[float] = None,
    ) -> float:
        """Filter one sample.

        Args:
            x: Raw value
            timestamp: Sample time in seconds; when omitted the clock advances
                by one period of the current frequency
            confidence: Optional sample confidence. The velocity gain becomes
                ``beta / max(0.1, confidence)``

        Returns:
            Filtered value
        """
        x = float(x)
        if self._x_prev is None:
            self.warmup(x, timestamp)
            return x

        self._advance_clock(timestamp)

        dx = (x - self._x_prev) * self._freq
        self._dx_filter.alpha = self._alpha(self.d_cutoff)
        self._dx = self._dx_filter.filter(dx)

        beta = self.beta
        if confidence is not None:
            beta = beta / max(MIN_CONFIDENCE_FACTOR, float(confidence))
        cutoff = self.min_cutoff + beta * abs(self._dx)

        self._x_filter.alpha = self._alpha(cutoff)
        self._x_prev = self._x_filter.filter(x)
        return self._x_prev

    def filter_with_visibility(
        self,
        x: float,
        visibility: float,
        presence: float,
        timestamp: Optional[float] = None,
    ) -> float:
        """Filter with visibility * presence as the sample confidence."""
        return self.filter(x, timestamp, confidence=visibility * presence)

    def warmup(self, x: float, timestamp: Optional[float] = None) -> None:
        """Seed the filter with an initial sample and zero velocity."""
        x = float(x)
        self._x_prev = x
        self._dx = 0.0
        self._last_time = 0.0 if timestamp is None else timestamp
        self._x_filter.output = x
        self._dx_filter.output = 0.0

    def reset(self) -> None:
        """Clear all history."""
        self._freq = self.nominal_freq
        self._x_prev = None
        self._dx = 0.0
        self._last_time = None
        self._x_filter.reset()
        self._dx_filter.reset()


class MovingAverageFilter:
    """Fixed-window moving average."""

    def __init__(self, window_size: int = 3):
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        self.window_size = window_size
        self._buffer: Deque[float] = deque()
        self._sum = 0.0

    def __len__(self) -> int:
        return len(self._buffer)

    def filter(self, x: float) -> float:
        x = float(x)
        self._buffer.append(x)
        self._sum += x
        if len(self._buffer) > self.window_size:
            self._sum -= self._buffer.popleft()
        return self._sum / len(self._buffer)

    def warmup(self, x: float) -> None:
        """Fill the whole window with ``x``."""
        x = float(x)
        self._buffer = deque([x] * self.window_size)
        self._sum = x * self.window_size

    def reset(self) -> None:
        self._buffer.clear()
        self._sum = 0.0
