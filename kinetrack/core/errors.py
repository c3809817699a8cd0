"""Exception hierarchy for KINETRACK."""

from __future__ import annotations


class KinetrackError(Exception):
    """Base class for all KINETRACK errors."""


class InitializationError(KinetrackError):
    """Estimator or adapter could not be constructed.

    Raised for empty model paths, unreadable or corrupt model files and
    missing collaborators. An estimator that raised this is unusable.
    """


class InvalidInputError(KinetrackError, ValueError):
    """Input image is missing or not a 3-channel frame."""


class ProcessingError(KinetrackError):
    """A frame failed mid-processing.

    The original exception is available as ``__cause__``. All entities of
    the estimator have already been moved through a failure transition, so
    the next frame starts from fresh detection where needed.
    """


class BusyError(KinetrackError):
    """A non-blocking call found another frame in flight."""


class EstimatorClosedError(KinetrackError):
    """Estimator was used after ``close()``."""
