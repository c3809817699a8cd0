"""Integration tests for the hand pose stream estimator."""

import asyncio

import numpy as np
import pytest

from kinetrack.core.config import KinetrackConfig
from kinetrack.core.errors import (
    EstimatorClosedError,
    InitializationError,
    InvalidInputError,
    ProcessingError,
)
from kinetrack.core.schema import Detection, EntityKind
from kinetrack.estimators.hand import HandPoseStreamEstimator, HandType
from kinetrack.tracking.entity import TrackingState

RIGHT_PALM = Detection(bbox=(100, 100, 200, 200), score=0.9)
LEFT_PALM = Detection(bbox=(400, 100, 500, 200), score=0.8)


@pytest.fixture
def two_hands(make_landmarks):
    """Right hand on the left half of the frame, left hand on the right half."""

    def estimate(region):
        cx = (region.bbox[0] + region.bbox[2]) / 2
        if cx < 320:
            return make_landmarks(21, 110.0, 110.0, handedness=0.9)
        return make_landmarks(21, 410.0, 110.0, handedness=0.1)

    return estimate


@pytest.fixture
def detector(palm, make_detector):
    return make_detector([palm])


@pytest.fixture
def estimator(hand_landmarks, make_landmark_estimator):
    return make_landmark_estimator(hand_landmarks)


class TestSingleHand:
    """One static right hand."""

    def test_static_hand_tracks_and_stays_put(self, frame, detector, estimator, hand_landmarks):
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT)

        for i in range(10):
            right, left = hands.estimate(frame)
            assert hands.tracking_states()[0] == TrackingState.TRACKING
            assert left is None
            assert right.kind == EntityKind.HAND
            assert right.label == "right"
            assert right.handedness == pytest.approx(0.9)
            np.testing.assert_allclose(right.landmarks.screen, hand_landmarks.screen, atol=1e-3)

        # Palm detection only ran before the hand was tracked
        assert detector.calls == 1

    def test_tracking_follows_reprojected_region(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT)
        hands.estimate(frame)
        hands.estimate(frame)

        assert estimator.regions[0] is detector.detections[0]
        second = estimator.regions[1]
        assert second is not detector.detections[0]
        x1, y1, x2, y2 = second.bbox
        assert 0 <= x1 < 110 and 190 < x2 <= 640
        assert second.handedness == pytest.approx(0.9)

    def test_record_bbox_from_smoothed_landmarks(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator)
        right, _ = hands.estimate(frame)
        assert right.bbox == pytest.approx((110, 110, 190, 190))

    def test_motion_is_smoothed_without_overshoot(self, frame, detector, estimator, hand_landmarks, shift_landmarks):
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT)
        for _ in range(3):
            hands.estimate(frame)

        moved = shift_landmarks(hand_landmarks, dx=20.0)
        estimator.landmarks = moved
        xs = []
        for _ in range(10):
            right, _ = hands.estimate(frame)
            xs.append(right.landmarks.screen[0, 0])

        assert all(110.0 - 1e-3 <= x <= 130.0 + 1e-3 for x in xs)
        assert xs[0] < 130.0
        assert xs == sorted(xs)

    def test_left_slot_keeps_detecting(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.BOTH)
        for _ in range(5):
            right, left = hands.estimate(frame)

        # Left is never initialized, so palm detection keeps running,
        # but the tracked right palm is never handed to the left slot
        assert detector.calls == 5
        assert right is not None and left is None
        assert hands.tracking_states() == [TrackingState.TRACKING, TrackingState.NOT_INITIALIZED]


class TestLoss:
    """Failed estimates and recovery."""

    def test_lost_after_max_loss_frames(self, frame, detector, estimator, palm, hand_landmarks):
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT, max_loss_frames=5)
        hands.estimate(frame)

        estimator.landmarks = None
        detector.detections = []
        detection_frames = []
        states = []
        for frame_no in range(2, 13):
            before = detector.calls
            right, _ = hands.estimate(frame)
            states.append(hands.tracking_states()[0])
            if detector.calls > before:
                detection_frames.append(frame_no)
            if frame_no < 6:
                # Held on the last estimate until max_loss_frames is reached
                assert right is not None
            else:
                assert right is None

        assert states[:4] == [TrackingState.TRACKING] * 4
        assert states[4] == TrackingState.LOST  # frame 6
        assert detection_frames == [9, 12]

        # Recovery on the next scheduled detection
        estimator.landmarks = hand_landmarks
        detector.detections = [palm]
        for _ in range(3):
            right, _ = hands.estimate(frame)
        assert hands.tracking_states()[0] == TrackingState.TRACKING
        np.testing.assert_allclose(right.landmarks.screen, hand_landmarks.screen, atol=1e-3)

    def test_intermittent_failures_keep_tracking(self, frame, detector, estimator, hand_landmarks):
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT, max_loss_frames=3)
        hands.estimate(frame)

        for _ in range(5):
            estimator.landmarks = None
            hands.estimate(frame)
            hands.estimate(frame)
            estimator.landmarks = hand_landmarks
            hands.estimate(frame)

        assert hands.tracking_states()[0] == TrackingState.TRACKING
        assert detector.calls == 1

    def test_failed_palm_estimate_is_ignored(self, frame, detector, estimator):
        estimator.landmarks = None
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT)
        assert hands.estimate(frame) == [None, None]
        assert hands.tracking_states()[0] == TrackingState.NOT_INITIALIZED

    def test_exception_fails_entities(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT, max_loss_frames=2)
        hands.estimate(frame)

        estimator.error = RuntimeError("inference failed")
        with pytest.raises(ProcessingError) as exc:
            hands.estimate(frame)
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert hands.tracking_states()[0] == TrackingState.TRACKING

        with pytest.raises(ProcessingError):
            hands.estimate(frame)
        assert hands.tracking_states()[0] == TrackingState.LOST


class TestTwoHands:
    """Both hands and deduplication."""

    def test_both_hands_tracked(self, frame, two_hands, make_detector, make_landmark_estimator):
        detector = make_detector([RIGHT_PALM, LEFT_PALM])
        hands = HandPoseStreamEstimator(detector, make_landmark_estimator(two_hands))

        for _ in range(4):
            right, left = hands.estimate(frame)

        assert right.label == "right" and left.label == "left"
        assert right.bbox[2] < left.bbox[0]
        assert detector.calls == 1

    def test_best_palm_per_slot(self, frame, make_detector, make_landmark_estimator, make_landmarks):
        weak = Detection(bbox=(300, 300, 400, 400), score=0.5)
        detector = make_detector([weak, RIGHT_PALM])
        estimator = make_landmark_estimator(lambda region: make_landmarks(21, region.bbox[0] + 10, region.bbox[1] + 10, handedness=0.9))
        hands = HandPoseStreamEstimator(detector, estimator, hand_type=HandType.RIGHT)

        right, _ = hands.estimate(frame)
        assert right.bbox[0] == pytest.approx(110.0)

    def test_overlapping_palms_fill_one_slot(self, frame, make_detector, make_landmark_estimator, make_landmarks):
        right_palm = Detection(bbox=(100, 100, 200, 200), score=0.9, handedness=0.9)
        left_palm = Detection(bbox=(110, 110, 210, 210), score=0.8, handedness=0.1)
        detector = make_detector([left_palm, right_palm])
        estimator = make_landmark_estimator(
            lambda region: make_landmarks(21, region.bbox[0] + 10, region.bbox[1] + 10, handedness=region.handedness)
        )
        hands = HandPoseStreamEstimator(detector, estimator)

        right, left = hands.estimate(frame)

        assert right is not None
        assert left is None

    def test_disabled_hand(self, frame, two_hands, make_detector, make_landmark_estimator):
        detector = make_detector([RIGHT_PALM, LEFT_PALM])
        hands = HandPoseStreamEstimator(detector, make_landmark_estimator(two_hands), hand_type=HandType.LEFT)

        right, left = hands.estimate(frame)

        assert right is None
        assert left.label == "left"
        assert hands.tracking_states()[0] is None


class TestEstimatorSurface:
    """Buffers, lifecycle and construction."""

    def test_output_buffer_reused(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator)
        assert hands.estimate(frame) is hands.estimate(frame)

    def test_copy_output_is_independent(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator)
        copied = hands.estimate(frame, copy_output=True)
        internal = hands.estimate(frame)

        copied[0].landmarks.screen[:] = -1.0
        assert copied is not internal
        assert internal[0].landmarks.xy.min() > 0

    def test_estimate_async(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator)
        right, left = asyncio.run(hands.estimate_async(frame))
        assert right.label == "right"
        assert left is None

    def test_invalid_input(self, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator)
        with pytest.raises(InvalidInputError):
            hands.estimate(None)
        with pytest.raises(InvalidInputError):
            hands.estimate(np.zeros((480, 640), dtype=np.uint8))
        assert detector.calls == 0

    def test_reset_tracking(self, frame, detector, estimator):
        hands = HandPoseStreamEstimator(detector, estimator)
        hands.estimate(frame)
        hands.reset_tracking()

        assert hands.tracking_states() == [TrackingState.NOT_INITIALIZED] * 2
        hands.estimate(frame)
        assert detector.calls == 2

    def test_close(self, frame, detector, estimator):
        with HandPoseStreamEstimator(detector, estimator) as hands:
            hands.estimate(frame)

        assert hands.closed
        assert detector.closed and estimator.closed
        with pytest.raises(EstimatorClosedError):
            hands.estimate(frame)
        with pytest.raises(EstimatorClosedError):
            hands.reset_tracking()

    def test_missing_adapter(self, estimator):
        with pytest.raises(InitializationError):
            HandPoseStreamEstimator(None, estimator)

    def test_from_config(self, frame, detector, estimator):
        config = KinetrackConfig.from_dict({"hand": {"hand_type": "right", "max_loss_frames": 2}})
        hands = HandPoseStreamEstimator.from_config(detector, estimator, config, blocking=False)

        assert hands.hand_type == HandType.RIGHT
        hands.estimate(frame)
        estimator.landmarks = None
        hands.estimate(frame)
        hands.estimate(frame)
        assert hands.tracking_states() == [TrackingState.LOST, None]
