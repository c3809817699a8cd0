"""
KINETRACK: stream tracking and temporal smoothing for hand, body and face estimators

Turns per-frame detector and landmark outputs into temporally stable,
identity-consistent tracked entities.
"""

__version__ = "0.1.0"

from kinetrack.core.config import KinetrackConfig
from kinetrack.core.schema import Detection, EntityKind, EntityRecord, LandmarkSet, UNKNOWN_IDENTITY
from kinetrack.estimators.face import FaceIdentificationEstimator
from kinetrack.estimators.hand import HandPoseStreamEstimator, HandType
from kinetrack.estimators.pose import BodyPoseStreamEstimator

__all__ = [
    "KinetrackConfig",
    "Detection",
    "EntityKind",
    "EntityRecord",
    "LandmarkSet",
    "UNKNOWN_IDENTITY",
    "HandPoseStreamEstimator",
    "HandType",
    "BodyPoseStreamEstimator",
    "FaceIdentificationEstimator",
]
