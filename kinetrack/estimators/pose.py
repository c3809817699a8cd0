"""Body pose stream estimator.

Single-person tracker: the person detector runs until a body is being
tracked, after which the landmark estimator follows the region reprojected
from the previous smoothed pose.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from kinetrack.core.adapter import Detector, LandmarkEstimator
from kinetrack.core.config import KinetrackConfig
from kinetrack.core.schema import LANDMARK_COUNTS, EntityKind, EntityRecord
from kinetrack.estimators.base import StreamEstimator
from kinetrack.smoothing.bank import (
    BODY_EXTREMITY_PARAMS,
    BODY_TORSO_PARAMS,
    FilterBank,
    FilterParams,
    body_params,
)
from kinetrack.tracking.candidates import CandidateSelector
from kinetrack.tracking.entity import (
    DEFAULT_DETECTION_INTERVAL,
    DEFAULT_MAX_LOSS_FRAMES,
    TrackedEntity,
    TrackingState,
)
from kinetrack.tracking.reprojection import body_region

logger = logging.getLogger(__name__)


BODY_LABEL = "body"


class BodyPoseStreamEstimator(StreamEstimator):
    """Single-body tracker.

    Args:
        detector: Person detector
        estimator: Body landmark estimator
        max_loss_frames: Consecutive failed estimates before the body is lost
        detection_interval: Person detection interval while lost
        enable_one_euro: Run the One-Euro stage
        enable_moving_average: Run the moving-average stage
        torso_params: Smoothing for face, shoulder and hip landmarks
        extremity_params: Smoothing for the remaining landmarks
        blocking: Wait (True) or raise BusyError (False) on concurrent calls

    Output of ``estimate`` is an EntityRecord, or None while no body is
    being tracked.
    """

    def __init__(
        self,
        detector: Detector,
        estimator: LandmarkEstimator,
        max_loss_frames: int = DEFAULT_MAX_LOSS_FRAMES,
        detection_interval: int = DEFAULT_DETECTION_INTERVAL,
        enable_one_euro: bool = True,
        enable_moving_average: bool = True,
        torso_params: FilterParams = BODY_TORSO_PARAMS,
        extremity_params: FilterParams = BODY_EXTREMITY_PARAMS,
        blocking: bool = True,
    ):
        super().__init__([detector, estimator], blocking=blocking)
        self.detector = detector
        self.estimator = estimator
        self.detection_interval = max(1, int(detection_interval))
        self.selector = CandidateSelector()

        bank = FilterBank(
            LANDMARK_COUNTS[EntityKind.BODY],
            body_params(torso_params, extremity_params),
            has_world=True,
            enable_one_euro=enable_one_euro,
            enable_moving_average=enable_moving_average,
        )
        self._body = TrackedEntity(BODY_LABEL, bank, max_loss_frames)
        self._lost_counter = 0
        self._output: Optional[EntityRecord] = None

    @classmethod
    def from_config(
        cls,
        detector: Detector,
        estimator: LandmarkEstimator,
        config: KinetrackConfig,
        **kwargs,
    ) -> BodyPoseStreamEstimator:
        """Build from the ``pose`` and ``smoothing`` config sections."""
        pose, s = config.pose, config.smoothing
        return cls(
            detector,
            estimator,
            max_loss_frames=pose.max_loss_frames,
            detection_interval=pose.detection_interval,
            enable_one_euro=pose.enable_one_euro,
            enable_moving_average=pose.enable_moving_average,
            torso_params=FilterParams(s.torso_min_cutoff, s.torso_beta, s.d_cutoff, s.frequency, s.window_size),
            extremity_params=FilterParams(
                s.extremity_min_cutoff, s.extremity_beta, s.d_cutoff, s.frequency, s.window_size
            ),
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "body pose"

    @property
    def tracking_state(self) -> TrackingState:
        return self._body.state

    def _process_frame(self, image: np.ndarray, timestamp: Optional[float]) -> Optional[EntityRecord]:
        height, width = image.shape[:2]
        body = self._body
        estimated = False

        if body.state == TrackingState.LOST:
            self._lost_counter += 1

        if body.needs_detection(self._lost_counter, self.detection_interval):
            people = self.detector.detect(image)
            if people:
                best = self.selector.best(people)
                if best is not None:
                    landmarks = self.estimator.estimate(image, best)
                    if landmarks is not None:
                        body.mark_success(best, landmarks)
                        estimated = True
                    else:
                        body.mark_failure()
                self._lost_counter = 0

        if body.is_tracking:
            if not estimated:
                landmarks = self.estimator.estimate(image, body.region)
                if landmarks is None:
                    body.mark_failure()
                else:
                    body.mark_success(body.region, landmarks)
            if body.is_tracking:
                body.smooth_and_reproject((width, height), body_region, timestamp)

        self._output = self._record()
        return self._output

    def _record(self) -> Optional[EntityRecord]:
        body = self._body
        if not body.is_tracking or body.smoothed is None:
            return None
        smoothed = body.smoothed
        return EntityRecord(
            kind=EntityKind.BODY,
            bbox=smoothed.bounding_box(),
            score=smoothed.confidence,
            landmarks=smoothed,
            label=BODY_LABEL,
            metadata={"keypoints": body.region.landmarks.tolist()},
        )

    def _copy_output(self, output: Optional[EntityRecord]) -> Optional[EntityRecord]:
        return None if output is None else output.copy()

    def _fail_all(self) -> None:
        self._body.force_failure()

    def _release(self) -> None:
        self._output = None

    def reset_tracking(self) -> None:
        """Forget the body and start from person detection again."""
        def reset() -> None:
            self._body.reset()
            self._lost_counter = 0
            self._output = None

        self._executor.call_locked(reset)
        logger.info("Body tracking reset")
