"""Stream estimators for hands, body pose and faces."""

from kinetrack.estimators.hand import HandPoseStreamEstimator, HandType
from kinetrack.estimators.pose import BodyPoseStreamEstimator
from kinetrack.estimators.face import FaceIdentificationEstimator

__all__ = [
    "HandPoseStreamEstimator",
    "HandType",
    "BodyPoseStreamEstimator",
    "FaceIdentificationEstimator",
]
