"""Temporal smoothing: One-Euro and moving-average filters and per-landmark banks."""

from kinetrack.smoothing.filters import LowPassFilter, MovingAverageFilter, OneEuroFilter
from kinetrack.smoothing.bank import FilterBank, FilterParams

__all__ = [
    "LowPassFilter",
    "MovingAverageFilter",
    "OneEuroFilter",
    "FilterBank",
    "FilterParams",
]
