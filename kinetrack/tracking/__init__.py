"""Tracking modules: candidate selection, entity state, reprojection and BYTE tracking."""

from kinetrack.tracking.candidates import CandidateSelector, iou
from kinetrack.tracking.entity import TrackedEntity, TrackingState
from kinetrack.tracking.bytetrack import ByteTrackConfig, ByteTracker, Track, TrackState

__all__ = [
    "CandidateSelector",
    "iou",
    "TrackedEntity",
    "TrackingState",
    "ByteTrackConfig",
    "ByteTracker",
    "Track",
    "TrackState",
]
