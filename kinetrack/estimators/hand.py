"""Hand pose stream estimator.

Tracks up to two hands (right and left). Palm detection only runs while a
hand slot is not being tracked; tracked hands are re-estimated from the
region reprojected from their previous smoothed landmarks.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from kinetrack.core.adapter import Detector, LandmarkEstimator
from kinetrack.core.config import KinetrackConfig
from kinetrack.core.schema import LANDMARK_COUNTS, Detection, EntityKind, EntityRecord, LandmarkSet
from kinetrack.estimators.base import StreamEstimator
from kinetrack.smoothing.bank import FilterBank, FilterParams, HAND_FILTER_PARAMS, uniform_params
from kinetrack.tracking.candidates import LEFT, RIGHT, CandidateSelector
from kinetrack.tracking.entity import (
    DEFAULT_DETECTION_INTERVAL,
    DEFAULT_MAX_LOSS_FRAMES,
    TrackedEntity,
    TrackingState,
)
from kinetrack.tracking.reprojection import hand_region

logger = logging.getLogger(__name__)


class HandType(Enum):
    """Which hands to track."""

    BOTH = "both"
    RIGHT = "right"
    LEFT = "left"

    @property
    def slots(self) -> Tuple[str, ...]:
        if self == HandType.BOTH:
            return (RIGHT, LEFT)
        return (self.value,)


HandOutput = List[Optional[EntityRecord]]


class HandPoseStreamEstimator(StreamEstimator):
    """Two-slot hand tracker.

    Args:
        detector: Palm detector
        estimator: Hand landmark estimator (reports handedness)
        hand_type: Hands to track
        max_loss_frames: Consecutive failed estimates before a hand is lost
        detection_interval: Palm detection interval while a hand is lost
        overlap_threshold: IoU above which a palm counts as already tracked
        enable_one_euro: Run the One-Euro stage
        enable_moving_average: Run the moving-average stage
        filter_params: Smoothing parameters for every landmark
        blocking: Wait (True) or raise BusyError (False) on concurrent calls

    Output of ``estimate`` is ``[right, left]``, each an EntityRecord or
    None when that hand is not being tracked or not enabled.
    """

    def __init__(
        self,
        detector: Detector,
        estimator: LandmarkEstimator,
        hand_type: HandType = HandType.BOTH,
        max_loss_frames: int = DEFAULT_MAX_LOSS_FRAMES,
        detection_interval: int = DEFAULT_DETECTION_INTERVAL,
        overlap_threshold: float = 0.2,
        enable_one_euro: bool = True,
        enable_moving_average: bool = True,
        filter_params: FilterParams = HAND_FILTER_PARAMS,
        blocking: bool = True,
    ):
        super().__init__([detector, estimator], blocking=blocking)
        self.detector = detector
        self.estimator = estimator
        self.hand_type = HandType(hand_type)
        self.detection_interval = max(1, int(detection_interval))
        self.selector = CandidateSelector(overlap_threshold)

        self._hands: Dict[str, Optional[TrackedEntity]] = {RIGHT: None, LEFT: None}
        for label in self.hand_type.slots:
            bank = FilterBank(
                LANDMARK_COUNTS[EntityKind.HAND],
                uniform_params(filter_params),
                has_world=True,
                enable_one_euro=enable_one_euro,
                enable_moving_average=enable_moving_average,
            )
            self._hands[label] = TrackedEntity(label, bank, max_loss_frames)

        self._lost_counter = 0
        self._output: HandOutput = [None, None]

    @classmethod
    def from_config(
        cls,
        detector: Detector,
        estimator: LandmarkEstimator,
        config: KinetrackConfig,
        **kwargs,
    ) -> HandPoseStreamEstimator:
        """Build from the ``hand`` and ``smoothing`` config sections."""
        hand, smoothing = config.hand, config.smoothing
        params = FilterParams(
            min_cutoff=smoothing.hand_min_cutoff,
            beta=smoothing.hand_beta,
            d_cutoff=smoothing.d_cutoff,
            freq=smoothing.frequency,
            window_size=smoothing.window_size,
        )
        return cls(
            detector,
            estimator,
            hand_type=HandType(hand.hand_type),
            max_loss_frames=hand.max_loss_frames,
            detection_interval=hand.detection_interval,
            overlap_threshold=hand.overlap_threshold,
            enable_one_euro=hand.enable_one_euro,
            enable_moving_average=hand.enable_moving_average,
            filter_params=params,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "hand pose"

    def _entities(self) -> List[TrackedEntity]:
        return [e for e in self._hands.values() if e is not None]

    def _process_frame(self, image: np.ndarray, timestamp: Optional[float]) -> HandOutput:
        height, width = image.shape[:2]
        entities = self._entities()
        estimated = set()

        if any(e.state == TrackingState.LOST for e in entities):
            self._lost_counter += 1

        if any(e.needs_detection(self._lost_counter, self.detection_interval) for e in entities):
            estimated = self._detect_hands(image, entities)

        for entity in entities:
            if not entity.is_tracking:
                continue
            if entity.label not in estimated:
                landmarks = self.estimator.estimate(image, entity.region)
                if landmarks is None:
                    entity.mark_failure()
                else:
                    entity.mark_success(entity.region, landmarks)
            if entity.is_tracking:
                entity.smooth_and_reproject((width, height), hand_region, timestamp)

        self._output[0] = self._record(self._hands[RIGHT])
        self._output[1] = self._record(self._hands[LEFT])
        return self._output

    def _detect_hands(self, image: np.ndarray, entities: List[TrackedEntity]) -> set:
        """Run palm detection and start tracking on the best palm per free slot.

        Returns:
            Labels of hands estimated during this step
        """
        palms = self.detector.detect(image)
        if not palms:
            return set()

        free = [e.label for e in entities if not e.is_tracking]
        active_regions = [
            e.region.bbox for e in entities if e.is_tracking and e.region is not None
        ]

        candidates: List[Detection] = []
        estimates: Dict[int, Tuple[Detection, LandmarkSet]] = {}
        for palm in palms:
            if self.selector.is_claimed(palm, active_regions):
                continue
            landmarks = self.estimator.estimate(image, palm)
            if landmarks is None:
                continue
            candidate = Detection(palm.bbox, palm.score, palm.landmarks, landmarks.handedness)
            if self.selector.classify(candidate) not in free:
                continue
            candidates.append(candidate)
            estimates[id(candidate)] = (palm, landmarks)

        accepted = self.selector.select(candidates, free, active_regions)
        for label, candidate in accepted.items():
            palm, landmarks = estimates[id(candidate)]
            self._hands[label].mark_success(palm, landmarks)

        self._lost_counter = 0
        return set(accepted)

    def _record(self, entity: Optional[TrackedEntity]) -> Optional[EntityRecord]:
        if entity is None or not entity.is_tracking or entity.smoothed is None:
            return None
        smoothed = entity.smoothed
        return EntityRecord(
            kind=EntityKind.HAND,
            bbox=smoothed.bounding_box(),
            score=smoothed.confidence,
            landmarks=smoothed,
            label=entity.label,
            handedness=smoothed.handedness,
        )

    def _copy_output(self, output: HandOutput) -> HandOutput:
        return [None if r is None else r.copy() for r in output]

    def _fail_all(self) -> None:
        for entity in self._entities():
            entity.force_failure()

    def _release(self) -> None:
        self._output = [None, None]

    def tracking_states(self) -> List[Optional[TrackingState]]:
        """States as ``[right, left]``; None for a disabled hand."""
        return [
            None if self._hands[label] is None else self._hands[label].state
            for label in (RIGHT, LEFT)
        ]

    def reset_tracking(self) -> None:
        """Forget both hands and start from palm detection again."""
        def reset() -> None:
            for entity in self._entities():
                entity.reset()
            self._lost_counter = 0
            self._output[0] = self._output[1] = None

        self._executor.call_locked(reset)
        logger.info("Hand tracking reset")
