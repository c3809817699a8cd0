"""BYTE multi-object tracker.

Associates per-frame detections with persistent tracks in two stages:
high-score detections first, then the remaining tracked objects against
low-score detections, which recovers objects whose detector score drops
under occlusion or blur. Assignment uses the Hungarian algorithm on a
1 - IoU cost matrix.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

logger = logging.getLogger(__name__)


NO_MATCH = -1
LOW_SCORE_MATCH_THRESH = 0.5
UNCONFIRMED_MATCH_THRESH = 0.7


class TrackState(Enum):
    """Lifecycle state of a track."""
    NEW = "new"  # Created this frame, not yet confirmed
    ACTIVE = "active"  # Matched on its latest frame
    LOST = "lost"  # Temporarily unmatched, kept for track_buffer frames
    REMOVED = "removed"  # Dropped for good


@dataclass
class ByteTrackConfig:
    """Configuration for ByteTracker."""

    # Detection split
    track_thresh: float = 0.5
    low_thresh: float = 0.1

    # New tracks need this score
    high_thresh: float = 0.6

    # First-stage association cost limit
    match_thresh: float = 0.8

    # Track lifecycle
    track_buffer: int = 30  # Frames before a lost track is removed at 30 fps
    frame_rate: int = 30

    @property
    def max_time_lost(self) -> int:
        return int(self.frame_rate / 30.0 * self.track_buffer)


@dataclass(eq=False)
class Track:
    """A tracked object."""
    track_id: int
    tlwh: np.ndarray  # x, y, w, h
    score: float
    state: TrackState = TrackState.NEW
    is_activated: bool = False
    tracklet_len: int = 0  # Frames matched since (re)activation
    start_frame: int = 0
    frame_id: int = 0  # Frame of last match
    det_index: int = NO_MATCH  # Index of the matched detection in its frame
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(2, dtype=np.float64))

    @property
    def tlbr(self) -> Tuple[float, float, float, float]:
        x, y, w, h = self.tlwh
        return (float(x), float(y), float(x + w), float(y + h))

    def predict(self) -> None:
        """Constant-velocity step of the box position."""
        self.tlwh[:2] += self.velocity

    def update(self, tlwh: np.ndarray, score: float, frame_id: int, det_index: int) -> None:
        """Apply a matched detection."""
        old_center = self.tlwh[:2] + self.tlwh[2:] / 2
        new_center = tlwh[:2] + tlwh[2:] / 2
        self.velocity = new_center - old_center if self.is_activated else np.zeros(2)

        self.tlwh = tlwh.astype(np.float64).copy()
        self.score = score
        self.frame_id = frame_id
        self.det_index = det_index
        self.tracklet_len += 1
        self.state = TrackState.ACTIVE
        self.is_activated = True

    def re_activate(self, tlwh: np.ndarray, score: float, frame_id: int, det_index: int) -> None:
        """Bring a lost track back."""
        self.tlwh = tlwh.astype(np.float64).copy()
        self.score = score
        self.frame_id = frame_id
        self.det_index = det_index
        self.tracklet_len = 0
        self.velocity = np.zeros(2)
        self.state = TrackState.ACTIVE
        self.is_activated = True

    def mark_lost(self) -> None:
        self.state = TrackState.LOST
        self.det_index = NO_MATCH

    def mark_removed(self) -> None:
        self.state = TrackState.REMOVED
        self.det_index = NO_MATCH


def iou_matrix(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Pairwise IoU between (N, 4) and (M, 4) tlbr boxes."""
    if len(a) == 0 or len(b) == 0:
        return np.zeros((len(a), len(b)), dtype=np.float64)

    x1 = np.maximum(a[:, None, 0], b[None, :, 0])
    y1 = np.maximum(a[:, None, 1], b[None, :, 1])
    x2 = np.minimum(a[:, None, 2], b[None, :, 2])
    y2 = np.minimum(a[:, None, 3], b[None, :, 3])
    inter = np.clip(x2 - x1, 0, None) * np.clip(y2 - y1, 0, None)

    area_a = (a[:, 2] - a[:, 0]) * (a[:, 3] - a[:, 1])
    area_b = (b[:, 2] - b[:, 0]) * (b[:, 3] - b[:, 1])
    union = area_a[:, None] + area_b[None, :] - inter
    return np.where(union > 0, inter / np.maximum(union, 1e-9), 0.0)


def linear_assignment(
    cost: np.ndarray,
    thresh: float,
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """Hungarian assignment keeping only pairs with cost <= thresh.

    Returns:
        (matched_pairs, unmatched_rows, unmatched_cols)
    """
    if cost.size == 0:
        return [], list(range(cost.shape[0])), list(range(cost.shape[1]))

    rows, cols = linear_sum_assignment(cost)
    matches = [(int(r), int(c)) for r, c in zip(rows, cols) if cost[r, c] <= thresh]
    matched_rows = {r for r, _ in matches}
    matched_cols = {c for _, c in matches}
    unmatched_rows = [r for r in range(cost.shape[0]) if r not in matched_rows]
    unmatched_cols = [c for c in range(cost.shape[1]) if c not in matched_cols]
    return matches, unmatched_rows, unmatched_cols


class ByteTracker:
    """BYTE tracker with explicit lifecycle accessors.

    Usage:
        tracker = ByteTracker()
        ids = tracker.update([(x, y, w, h, score), ...])
        # ids[i] is the track id of detection i, or -1
    """

    def __init__(self, config: Optional[ByteTrackConfig] = None):
        """Initialize tracker.

        Args:
            config: Configuration options
        """
        self.config = config or ByteTrackConfig()
        self._tracked: List[Track] = []  # NEW and ACTIVE
        self._lost: List[Track] = []
        self._removed: List[Track] = []  # Removed during the last update
        self._frame_id = 0
        self._next_id = 1

    @property
    def frame_id(self) -> int:
        return self._frame_id

    def _new_id(self) -> int:
        track_id = self._next_id
        self._next_id += 1
        return track_id

    def update(self, detections: Sequence[Sequence[float]]) -> List[int]:
        """Advance one frame.

        Args:
            detections: (x, y, w, h, score) per detection

        Returns:
            Per detection, the id of the track it was assigned to, or -1
        """
        self._frame_id += 1
        self._removed = []
        cfg = self.config

        dets = np.asarray(detections, dtype=np.float64).reshape(-1, 5)
        matching = [NO_MATCH] * len(dets)
        tlwh = dets[:, :4]
        scores = dets[:, 4]
        tlbr = np.hstack([tlwh[:, :2], tlwh[:, :2] + tlwh[:, 2:]]) if len(dets) else np.zeros((0, 4))

        high = [i for i in range(len(dets)) if scores[i] >= cfg.track_thresh]
        low = [i for i in range(len(dets)) if cfg.low_thresh < scores[i] < cfg.track_thresh]

        unconfirmed = [t for t in self._tracked if not t.is_activated]
        confirmed = [t for t in self._tracked if t.is_activated]
        pool = confirmed + self._lost
        for track in pool:
            track.predict()

        def assign(track: Track, det: int) -> None:
            if track.state == TrackState.ACTIVE:
                track.update(tlwh[det], float(scores[det]), self._frame_id, det)
            else:
                track.re_activate(tlwh[det], float(scores[det]), self._frame_id, det)
                logger.debug("Track %d re-activated", track.track_id)
            matching[det] = track.track_id

        # First association: confirmed and lost tracks vs high-score detections
        cost = self._fused_cost(pool, tlbr[high], scores[high])
        matches, u_pool, u_high = linear_assignment(cost, cfg.match_thresh)
        for ti, di in matches:
            assign(pool[ti], high[di])

        # Second association: still-active tracks vs low-score detections
        remaining = [pool[i] for i in u_pool if pool[i].state == TrackState.ACTIVE]
        cost = 1.0 - iou_matrix(self._boxes(remaining), tlbr[low])
        matches, u_remaining, _ = linear_assignment(cost, LOW_SCORE_MATCH_THRESH)
        for ti, di in matches:
            assign(remaining[ti], low[di])
        for ti in u_remaining:
            remaining[ti].mark_lost()
            logger.debug("Track %d lost", remaining[ti].track_id)

        # Unconfirmed tracks vs leftover high-score detections
        left_high = [high[i] for i in u_high]
        cost = self._fused_cost(unconfirmed, tlbr[left_high], scores[left_high])
        matches, u_unconfirmed, u_left = linear_assignment(cost, UNCONFIRMED_MATCH_THRESH)
        for ti, di in matches:
            unconfirmed[ti].update(tlwh[left_high[di]], float(scores[left_high[di]]), self._frame_id, left_high[di])
            matching[left_high[di]] = unconfirmed[ti].track_id
        for ti in u_unconfirmed:
            unconfirmed[ti].mark_removed()
            self._removed.append(unconfirmed[ti])

        # New tracks from unmatched confident detections
        new_tracks = []
        for di in (left_high[i] for i in u_left):
            if scores[di] < cfg.high_thresh:
                continue
            track = Track(
                track_id=self._new_id(),
                tlwh=tlwh[di].copy(),
                score=float(scores[di]),
                start_frame=self._frame_id,
                frame_id=self._frame_id,
                det_index=di,
            )
            if self._frame_id == 1:
                track.state = TrackState.ACTIVE
                track.is_activated = True
            new_tracks.append(track)
            matching[di] = track.track_id
            logger.debug("Track %d started", track.track_id)

        # Expire lost tracks
        for track in pool:
            if track.state == TrackState.LOST and self._frame_id - track.frame_id > cfg.max_time_lost:
                track.mark_removed()
                self._removed.append(track)
                logger.debug("Track %d removed", track.track_id)

        self._tracked = [
            t for t in confirmed + unconfirmed + self._lost
            if t.state in (TrackState.ACTIVE, TrackState.NEW)
        ] + new_tracks
        self._lost = [t for t in pool if t.state == TrackState.LOST]

        return matching

    def _boxes(self, tracks: Sequence[Track]) -> np.ndarray:
        if not tracks:
            return np.zeros((0, 4))
        return np.array([t.tlbr for t in tracks], dtype=np.float64)

    def _fused_cost(self, tracks: Sequence[Track], boxes: np.ndarray, scores: np.ndarray) -> np.ndarray:
        """1 - IoU * detection score."""
        iou = iou_matrix(self._boxes(tracks), boxes)
        if iou.size == 0:
            return iou
        return 1.0 - iou * scores[None, :]

    def active_tracks(self) -> List[Track]:
        """Tracks matched on the last frame and confirmed."""
        return [t for t in self._tracked if t.state == TrackState.ACTIVE]

    def new_tracks(self) -> List[Track]:
        """Tracks created on the last frame and not yet confirmed."""
        return [t for t in self._tracked if t.state == TrackState.NEW]

    def lost_tracks(self) -> List[Track]:
        return list(self._lost)

    def removed_tracks(self) -> List[Track]:
        """Tracks removed during the last update only."""
        return list(self._removed)

    def mark_all_lost(self) -> List[Track]:
        """Move every active track to LOST, as if unmatched this frame.

        Unconfirmed tracks are left alone. Lost tracks keep the frame they
        were last matched on, so expiry still counts from there.

        Returns:
            Tracks that were moved
        """
        moved = [t for t in self._tracked if t.state == TrackState.ACTIVE]
        for track in moved:
            track.mark_lost()
            logger.debug("Track %d lost", track.track_id)
        self._tracked = [t for t in self._tracked if t.state != TrackState.LOST]
        self._lost.extend(moved)
        return moved

    def get_track(self, track_id: int) -> Optional[Track]:
        for track in self._tracked + self._lost:
            if track.track_id == track_id:
                return track
        return None

    def reset(self) -> None:
        """Reset tracker state."""
        self._tracked.clear()
        self._lost.clear()
        self._removed = []
        self._frame_id = 0
        self._next_id = 1
