"""Core framework components: data model, adapters, configuration and execution."""

from kinetrack.core.schema import Detection, EntityKind, EntityRecord, LandmarkSet
from kinetrack.core.adapter import Detector, FeatureExtractor, LandmarkEstimator
from kinetrack.core.config import KinetrackConfig
from kinetrack.core.errors import (
    BusyError,
    EstimatorClosedError,
    InitializationError,
    InvalidInputError,
    KinetrackError,
    ProcessingError,
)

__all__ = [
    "Detection",
    "EntityKind",
    "EntityRecord",
    "LandmarkSet",
    "Detector",
    "FeatureExtractor",
    "LandmarkEstimator",
    "KinetrackConfig",
    "KinetrackError",
    "InitializationError",
    "InvalidInputError",
    "ProcessingError",
    "BusyError",
    "EstimatorClosedError",
]
