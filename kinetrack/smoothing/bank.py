"""Per-landmark filter banks.

A FilterBank owns one scalar filter per (landmark, axis) for the screen
coordinates and, when the estimator produces them, the world coordinates.
Visibility and presence pass through untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from kinetrack.core.schema import LandmarkSet
from kinetrack.smoothing.filters import MovingAverageFilter, OneEuroFilter

logger = logging.getLogger(__name__)


# Body landmarks treated as slow-moving torso points (face, shoulders, hips)
BODY_TORSO_INDICES = frozenset(list(range(0, 13)) + [23, 24])

AXES = 3


@dataclass(frozen=True)
class FilterParams:
    """One-Euro parameters for a single landmark channel."""

    min_cutoff: float = 1.0
    beta: float = 0.05
    d_cutoff: float = 1.0
    freq: float = 30.0
    window_size: int = 3


HAND_FILTER_PARAMS = FilterParams(min_cutoff=1.0, beta=0.05)
FACE_FILTER_PARAMS = FilterParams(min_cutoff=1.0, beta=0.05)
BODY_TORSO_PARAMS = FilterParams(min_cutoff=0.5, beta=0.1)
BODY_EXTREMITY_PARAMS = FilterParams(min_cutoff=1.5, beta=0.3)


def uniform_params(params: FilterParams) -> Callable[[int], FilterParams]:
    """Selector returning the same parameters for every landmark."""
    return lambda index: params


def body_params(
    torso: FilterParams = BODY_TORSO_PARAMS,
    extremity: FilterParams = BODY_EXTREMITY_PARAMS,
) -> Callable[[int], FilterParams]:
    """Selector smoothing torso landmarks harder than hands and feet."""
    def select(index: int) -> FilterParams:
        return torso if index in BODY_TORSO_INDICES else extremity
    return select


class FilterBank:
    """Smooths a whole LandmarkSet frame by frame.

    Args:
        n_landmarks: Number of landmarks per set
        params_for_index: Maps a landmark index to its FilterParams
        has_world: Also smooth world coordinates when present
        enable_one_euro: Run the One-Euro stage
        enable_moving_average: Run the moving-average stage after One-Euro

    Example:
        bank = FilterBank(21, uniform_params(HAND_FILTER_PARAMS))
        smoothed = bank.smooth(landmarks, timestamp=0.033)
    """

    def __init__(
        self,
        n_landmarks: int,
        params_for_index: Optional[Callable[[int], FilterParams]] = None,
        has_world: bool = True,
        enable_one_euro: bool = True,
        enable_moving_average: bool = True,
    ):
        if n_landmarks <= 0:
            raise ValueError("n_landmarks must be positive")

        self.n_landmarks = n_landmarks
        self.params_for_index = params_for_index or uniform_params(FilterParams())
        self.has_world = has_world
        self.enable_one_euro = enable_one_euro
        self.enable_moving_average = enable_moving_average

        self._screen_euro = self._make_one_euro()
        self._screen_avg = self._make_moving_average()
        self._world_euro = self._make_one_euro() if has_world else []
        self._world_avg = self._make_moving_average() if has_world else []
        self._warm = False

    def _make_one_euro(self) -> List[List[OneEuroFilter]]:
        channels = []
        for i in range(self.n_landmarks):
            p = self.params_for_index(i)
            channels.append([
                OneEuroFilter(p.freq, p.min_cutoff, p.beta, p.d_cutoff)
                for _ in range(AXES)
            ])
        return channels

    def _make_moving_average(self) -> List[List[MovingAverageFilter]]:
        return [
            [MovingAverageFilter(self.params_for_index(i).window_size) for _ in range(AXES)]
            for i in range(self.n_landmarks)
        ]

    @property
    def is_warm(self) -> bool:
        """True once the bank has been seeded since construction or reset."""
        return self._warm

    def _check(self, landmarks: LandmarkSet) -> None:
        if len(landmarks) != self.n_landmarks:
            raise ValueError(
                f"Expected {self.n_landmarks} landmarks, got {len(landmarks)}"
            )

    def warmup(self, landmarks: LandmarkSet, timestamp: Optional[float] = None) -> None:
        """Seed every channel with ``landmarks`` and zero velocity."""
        self._check(landmarks)
        self._seed(self._screen_euro, self._screen_avg, landmarks.screen, timestamp)
        if self.has_world and landmarks.world is not None:
            self._seed(self._world_euro, self._world_avg, landmarks.world, timestamp)
        self._warm = True

    def _seed(self, euro, avg, points: np.ndarray, timestamp: Optional[float]) -> None:
        for i in range(self.n_landmarks):
            for axis in range(AXES):
                value = float(points[i, axis])
                euro[i][axis].warmup(value, timestamp)
                avg[i][axis].warmup(value)

    def smooth(self, landmarks: LandmarkSet, timestamp: Optional[float] = None) -> LandmarkSet:
        """Smooth one frame.

        The first call after construction or ``reset`` warms the bank up and
        returns the input unchanged.

        Args:
            landmarks: Raw landmark set for this frame
            timestamp: Frame time in seconds, or None for the nominal rate

        Returns:
            New LandmarkSet with smoothed screen (and world) coordinates
        """
        self._check(landmarks)
        if not self._warm:
            self.warmup(landmarks, timestamp)
            return landmarks.copy()

        result = landmarks.copy()
        confidence = landmarks.point_confidence()
        if confidence is None:
            confidence = np.full(self.n_landmarks, landmarks.confidence, dtype=np.float32)

        result.screen = self._run(
            self._screen_euro, self._screen_avg, landmarks.screen, confidence, timestamp
        )
        if self.has_world and landmarks.world is not None:
            result.world = self._run(
                self._world_euro, self._world_avg, landmarks.world, confidence, timestamp
            )
        return result

    def _run(
        self,
        euro: List[List[OneEuroFilter]],
        avg: List[List[MovingAverageFilter]],
        points: np.ndarray,
        confidence: np.ndarray,
        timestamp: Optional[float],
    ) -> np.ndarray:
        out = np.array(points, dtype=np.float32, copy=True)
        for i in range(self.n_landmarks):
            for axis in range(AXES):
                value = float(out[i, axis])
                if self.enable_one_euro:
                    value = euro[i][axis].filter(value, timestamp, float(confidence[i]))
                if self.enable_moving_average:
                    value = avg[i][axis].filter(value)
                out[i, axis] = value
        return out

    def reset(self) -> None:
        """Clear history; the next ``smooth`` call warms up again."""
        for bank in (self._screen_euro, self._screen_avg, self._world_euro, self._world_avg):
            for channel in bank:
                for f in channel:
                    f.reset()
        self._warm = False
        logger.debug("Filter bank reset (%d landmarks)", self.n_landmarks)
