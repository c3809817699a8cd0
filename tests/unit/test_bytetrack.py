"""Unit tests for the BYTE multi-object tracker."""

import numpy as np
import pytest

from kinetrack.tracking.bytetrack import (
    NO_MATCH,
    ByteTrackConfig,
    ByteTracker,
    Track,
    TrackState,
    iou_matrix,
    linear_assignment,
)

A = (100, 100, 80, 80, 0.9)
B = (400, 120, 80, 80, 0.9)


# =============================================================================
# Helper Tests
# =============================================================================


class TestIoUMatrix:
    """Test pairwise IoU."""

    def test_shape_and_values(self):
        a = np.array([[0, 0, 10, 10], [20, 20, 30, 30]], dtype=float)
        b = np.array([[0, 0, 10, 10], [5, 0, 15, 10], [100, 100, 110, 110]], dtype=float)
        m = iou_matrix(a, b)

        assert m.shape == (2, 3)
        assert m[0, 0] == pytest.approx(1.0)
        assert m[0, 1] == pytest.approx(1 / 3)
        assert m[1, 2] == 0.0

    def test_empty(self):
        assert iou_matrix(np.zeros((0, 4)), np.zeros((3, 4))).shape == (0, 3)


class TestLinearAssignment:
    """Test thresholded Hungarian assignment."""

    def test_optimal_pairs(self):
        cost = np.array([[0.9, 0.1], [0.2, 0.8]])
        matches, u_rows, u_cols = linear_assignment(cost, thresh=0.5)
        assert sorted(matches) == [(0, 1), (1, 0)]
        assert u_rows == [] and u_cols == []

    def test_threshold_drops_pairs(self):
        cost = np.array([[0.9, 0.95], [0.2, 0.8]])
        matches, u_rows, u_cols = linear_assignment(cost, thresh=0.5)
        assert matches == [(1, 0)]
        assert u_rows == [0]
        assert u_cols == [1]

    def test_empty_cost(self):
        matches, u_rows, u_cols = linear_assignment(np.zeros((2, 0)), thresh=0.5)
        assert matches == []
        assert u_rows == [0, 1]
        assert u_cols == []


class TestTrack:
    """Test Track."""

    def test_tlbr(self):
        track = Track(track_id=1, tlwh=np.array([10.0, 20.0, 30.0, 40.0]), score=0.9)
        assert track.tlbr == (10.0, 20.0, 40.0, 60.0)

    def test_velocity_prediction(self):
        track = Track(track_id=1, tlwh=np.array([0.0, 0.0, 10.0, 10.0]), score=0.9, is_activated=True)
        track.update(np.array([5.0, 0.0, 10.0, 10.0]), 0.9, frame_id=2, det_index=0)
        track.predict()
        assert track.tlbr[0] == pytest.approx(10.0)


# =============================================================================
# ByteTracker Tests
# =============================================================================


class TestByteTracker:
    """Test ByteTracker association and lifecycle."""

    def test_first_frame_tracks_are_active(self):
        tracker = ByteTracker()
        ids = tracker.update([A, B])

        assert ids == [1, 2]
        assert [t.track_id for t in tracker.active_tracks()] == [1, 2]

    def test_ids_stable_across_frames(self):
        tracker = ByteTracker()
        tracker.update([A, B])
        for _ in range(5):
            assert tracker.update([B, A]) == [2, 1]

    def test_follows_moving_object(self):
        tracker = ByteTracker()
        tracker.update([(100, 100, 80, 80, 0.9)])
        for step in range(1, 10):
            assert tracker.update([(100 + 10 * step, 100, 80, 80, 0.9)]) == [1]

    def test_empty_frame(self):
        tracker = ByteTracker()
        assert tracker.update([]) == []
        assert tracker.frame_id == 1

    def test_low_score_detection_does_not_start_track(self):
        tracker = ByteTracker()
        assert tracker.update([(100, 100, 80, 80, 0.3)]) == [NO_MATCH]
        assert tracker.active_tracks() == []

    def test_low_score_detection_keeps_track(self):
        tracker = ByteTracker()
        tracker.update([A])
        assert tracker.update([(100, 100, 80, 80, 0.3)]) == [1]
        assert tracker.get_track(1).state == TrackState.ACTIVE

    def test_new_track_confirmed_on_second_match(self):
        tracker = ByteTracker()
        tracker.update([A])
        ids = tracker.update([A, B])

        assert ids == [1, 2]
        assert [t.track_id for t in tracker.new_tracks()] == [2]
        assert [t.track_id for t in tracker.active_tracks()] == [1]

        tracker.update([A, B])
        assert sorted(t.track_id for t in tracker.active_tracks()) == [1, 2]

    def test_unconfirmed_track_removed_when_unmatched(self):
        tracker = ByteTracker()
        tracker.update([A])
        tracker.update([A, B])
        tracker.update([A])

        assert [t.track_id for t in tracker.removed_tracks()] == [2]
        assert tracker.get_track(2) is None

    def test_lost_and_reactivated(self):
        tracker = ByteTracker()
        tracker.update([A])
        tracker.update([])

        assert [t.track_id for t in tracker.lost_tracks()] == [1]
        assert tracker.active_tracks() == []

        assert tracker.update([A]) == [1]
        assert tracker.lost_tracks() == []
        assert tracker.get_track(1).state == TrackState.ACTIVE

    def test_mark_all_lost(self):
        tracker = ByteTracker()
        tracker.update([A])
        tracker.update([A, B])

        moved = tracker.mark_all_lost()

        assert [t.track_id for t in moved] == [1]
        assert tracker.active_tracks() == []
        assert [t.track_id for t in tracker.lost_tracks()] == [1]
        assert [t.track_id for t in tracker.new_tracks()] == [2]

        assert tracker.update([A, B]) == [1, 2]
        assert tracker.get_track(1).state == TrackState.ACTIVE

    def test_lost_track_expires(self):
        tracker = ByteTracker(ByteTrackConfig(track_buffer=2))
        tracker.update([A])
        tracker.update([])
        tracker.update([])
        assert tracker.removed_tracks() == []
        assert len(tracker.lost_tracks()) == 1

        tracker.update([])
        assert [t.track_id for t in tracker.removed_tracks()] == [1]
        assert tracker.lost_tracks() == []

        tracker.update([])
        assert tracker.removed_tracks() == []

    def test_removed_track_never_reused(self):
        tracker = ByteTracker(ByteTrackConfig(track_buffer=1))
        tracker.update([A])
        for _ in range(3):
            tracker.update([])
        assert tracker.update([A]) == [2]

    def test_max_time_lost_scales_with_frame_rate(self):
        assert ByteTrackConfig(track_buffer=30, frame_rate=60).max_time_lost == 60

    def test_reset(self):
        tracker = ByteTracker()
        tracker.update([A, B])
        tracker.reset()

        assert tracker.frame_id == 0
        assert tracker.active_tracks() == []
        assert tracker.update([B]) == [1]
