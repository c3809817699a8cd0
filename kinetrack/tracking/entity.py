"""Per-entity tracking state machine.

NOT_INITIALIZED --success--> TRACKING --max_loss_frames failures--> LOST
LOST --success--> TRACKING

While TRACKING, the landmark estimator runs on the region reprojected from
the previous frame and the detector is skipped. Filter history is cleared
on every transition into LOST and on every (re)start of TRACKING.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Tuple

from kinetrack.core.schema import Detection, LandmarkSet
from kinetrack.smoothing.bank import FilterBank

logger = logging.getLogger(__name__)


Reprojector = Callable[[LandmarkSet, Tuple[int, int]], Detection]

DEFAULT_MAX_LOSS_FRAMES = 5
DEFAULT_DETECTION_INTERVAL = 3


class TrackingState(Enum):
    """Lifecycle state of a tracked entity."""

    NOT_INITIALIZED = "not_initialized"
    TRACKING = "tracking"
    LOST = "lost"


class TrackedEntity:
    """One hand or body followed across frames.

    Attributes:
        label: Slot label (``right``, ``left``, ``body``)
        state: Current TrackingState
        region: Region the landmark estimator should use next frame
        landmarks: Last raw landmark estimate
        smoothed: Last smoothed landmark set
        loss_count: Consecutive failed estimates while TRACKING
    """

    def __init__(
        self,
        label: str,
        filter_bank: FilterBank,
        max_loss_frames: int = DEFAULT_MAX_LOSS_FRAMES,
    ):
        self.label = label
        self.filter_bank = filter_bank
        self.max_loss_frames = max(1, int(max_loss_frames))

        self.state = TrackingState.NOT_INITIALIZED
        self.region: Optional[Detection] = None
        self.landmarks: Optional[LandmarkSet] = None
        self.smoothed: Optional[LandmarkSet] = None
        self.loss_count = 0

    @property
    def is_tracking(self) -> bool:
        return self.state == TrackingState.TRACKING

    def mark_success(self, region: Detection, landmarks: LandmarkSet) -> None:
        """Record a successful estimate for this frame.

        Args:
            region: Region the estimate was made in
            landmarks: Raw landmark estimate
        """
        previous = self.state
        if previous != TrackingState.TRACKING:
            self.filter_bank.reset()
            if previous == TrackingState.LOST:
                logger.info("Tracking resumed: %s", self.label)
            else:
                logger.info("Tracking started: %s", self.label)

        self.state = TrackingState.TRACKING
        self.region = region
        self.landmarks = landmarks
        self.loss_count = 0

    def mark_failure(self) -> None:
        """Record a failed estimate. No effect unless TRACKING."""
        if self.state != TrackingState.TRACKING:
            return

        self.loss_count += 1
        if self.loss_count >= self.max_loss_frames:
            self.state = TrackingState.LOST
            self.filter_bank.reset()
            self.landmarks = None
            self.smoothed = None
            logger.debug(
                "Tracking lost: %s after %d failed frames", self.label, self.loss_count
            )

    def force_failure(self) -> None:
        """Failure transition used when a frame raised mid-processing."""
        self.mark_failure()

    def needs_detection(self, lost_counter: int, interval: int = DEFAULT_DETECTION_INTERVAL) -> bool:
        """Whether the detector should run for this entity this frame.

        Args:
            lost_counter: Frames since the estimator last got detections
                while some entity was LOST
            interval: Retry interval for LOST entities
        """
        if self.state == TrackingState.NOT_INITIALIZED:
            return True
        if self.state == TrackingState.TRACKING:
            return False
        return lost_counter % max(1, interval) == 0

    def smooth_and_reproject(
        self,
        image_size: Tuple[int, int],
        reprojector: Reprojector,
        timestamp: Optional[float] = None,
    ) -> Optional[LandmarkSet]:
        """Smooth the last estimate and derive next frame's region.

        Returns:
            Smoothed landmark set, or None when there is nothing to smooth
        """
        if self.state != TrackingState.TRACKING or self.landmarks is None:
            return None

        self.smoothed = self.filter_bank.smooth(self.landmarks, timestamp)
        self.region = reprojector(self.smoothed, image_size)
        return self.smoothed

    def reset(self) -> None:
        """Back to NOT_INITIALIZED with all history cleared."""
        self.state = TrackingState.NOT_INITIALIZED
        self.region = None
        self.landmarks = None
        self.smoothed = None
        self.loss_count = 0
        self.filter_bank.reset()
