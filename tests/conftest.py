"""
Shared pytest fixtures for KINETRACK tests.

Fake adapters stand in for the detection, landmark and recognition models
so the estimators can be driven frame by frame with scripted outputs.
"""

import logging
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
import pytest

from kinetrack.core.adapter import Detector, FeatureExtractor, LandmarkEstimator
from kinetrack.core.config import KinetrackConfig
from kinetrack.core.logging import PACKAGE_LOGGER
from kinetrack.core.schema import Detection, LandmarkSet


# =============================================================================
# Landmark and detection builders
# =============================================================================


def grid_landmarks(
    n: int,
    x0: float = 110.0,
    y0: float = 110.0,
    step: float = 20.0,
    cols: int = 5,
    confidence: float = 0.95,
    handedness: Optional[float] = None,
    world: bool = True,
) -> LandmarkSet:
    """Landmarks laid out row by row on a regular grid starting at (x0, y0)."""
    idx = np.arange(n)
    screen = np.stack(
        [x0 + (idx % cols) * step, y0 + (idx // cols) * step, np.zeros(n)], axis=1
    )
    world_points = screen * 0.001 if world else None
    return LandmarkSet(
        screen=screen,
        world=world_points,
        visibility=np.ones(n),
        presence=np.ones(n),
        confidence=confidence,
        handedness=handedness,
    )


def shifted(landmarks: LandmarkSet, dx: float = 0.0, dy: float = 0.0) -> LandmarkSet:
    """Copy of a landmark set moved by (dx, dy) pixels."""
    moved = landmarks.copy()
    moved.screen[:, 0] += dx
    moved.screen[:, 1] += dy
    return moved


def face_detection(x1: float, y1: float, size: float = 100.0, score: float = 0.9) -> Detection:
    """Face box with five landmarks (eyes, nose, mouth corners)."""
    s = size
    points = [
        (x1 + 0.3 * s, y1 + 0.35 * s),
        (x1 + 0.7 * s, y1 + 0.35 * s),
        (x1 + 0.5 * s, y1 + 0.55 * s),
        (x1 + 0.35 * s, y1 + 0.75 * s),
        (x1 + 0.65 * s, y1 + 0.75 * s),
    ]
    return Detection(bbox=(x1, y1, x1 + s, y1 + s), score=score, landmarks=np.array(points))


def bucket_feature(aligned: np.ndarray) -> np.ndarray:
    """One-hot feature keyed on the 100 px column of the crop's centre.

    The fake aligner returns the detection box as the "aligned crop", so
    faces in the same column share a feature and faces in different
    columns are orthogonal.
    """
    x1, _, x2, _ = np.asarray(aligned, dtype=np.float32).reshape(-1)[:4]
    feature = np.zeros(8, dtype=np.float32)
    feature[int(((x1 + x2) / 2) // 100) % 8] = 1.0
    return feature


def aligned_crop(x1: float, y1: float, size: float = 100.0) -> np.ndarray:
    """What FakeFeatureExtractor.align returns for a face at (x1, y1)."""
    return np.array([[x1, y1, x1 + size, y1 + size]], dtype=np.float32)


# =============================================================================
# Fake adapters
# =============================================================================


DetectionSource = Union[Sequence[Detection], Callable[[int], List[Detection]]]
LandmarkSource = Union[None, LandmarkSet, Callable[[Detection], Optional[LandmarkSet]]]


class FakeDetector(Detector):
    """Detector returning scripted detections.

    ``detections`` is either a fixed list or a callable receiving the
    1-based call number. Set ``error`` to make the next calls raise.
    """

    def __init__(self, detections: DetectionSource = ()):
        self.detections = detections
        self.calls = 0
        self.error: Optional[Exception] = None
        self.closed = False

    def detect(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if callable(self.detections):
            return list(self.detections(self.calls))
        return list(self.detections)

    def close(self):
        self.closed = True


class FakeLandmarkEstimator(LandmarkEstimator):
    """Landmark estimator returning a fixed set, None, or a per-region result."""

    def __init__(self, landmarks: LandmarkSource = None):
        self.landmarks = landmarks
        self.regions: List[Detection] = []
        self.error: Optional[Exception] = None
        self.closed = False

    def estimate(self, image, region):
        self.regions.append(region)
        if self.error is not None:
            raise self.error
        if callable(self.landmarks):
            return self.landmarks(region)
        return None if self.landmarks is None else self.landmarks.copy()

    def close(self):
        self.closed = True


class FakeFeatureExtractor(FeatureExtractor):
    """Aligner returning the detection box and extractor mapping it to a feature."""

    def __init__(self, feature_fn: Callable[[np.ndarray], np.ndarray] = bucket_feature):
        self.feature_fn = feature_fn
        self.fail_align = False
        self.extract_calls = 0
        self.error: Optional[Exception] = None
        self.closed = False

    def align(self, image, detection):
        if self.fail_align:
            return None
        x1, y1, x2, y2 = detection.bbox
        return np.array([[x1, y1, x2, y2]], dtype=np.float32)

    def extract(self, aligned):
        self.extract_calls += 1
        if self.error is not None:
            raise self.error
        return self.feature_fn(aligned)

    def close(self):
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_landmarks():
    """Factory for grid-laid landmark sets (see ``grid_landmarks``)."""
    return grid_landmarks


@pytest.fixture
def shift_landmarks():
    """Returns a moved copy of a landmark set."""
    return shifted


@pytest.fixture
def make_face():
    """Factory for face detections with five landmarks."""
    return face_detection


@pytest.fixture
def make_crop():
    """Factory for the aligned crop the fake extractor produces."""
    return aligned_crop


@pytest.fixture
def face_feature():
    """Feature function used by the fake extractor."""
    return bucket_feature


@pytest.fixture
def make_detector():
    """Factory for scripted detectors."""
    return FakeDetector


@pytest.fixture
def make_landmark_estimator():
    """Factory for scripted landmark estimators."""
    return FakeLandmarkEstimator


@pytest.fixture
def make_extractor():
    """Factory for the fake face aligner and feature extractor."""
    return FakeFeatureExtractor


@pytest.fixture
def frame():
    """Blank 640x480 BGR frame."""
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def hand_landmarks():
    """Static right hand spanning the palm box (100, 100, 200, 200)."""
    return grid_landmarks(21, 110.0, 110.0, handedness=0.9)


@pytest.fixture
def body_landmarks():
    """Static 33-point body inside the frame."""
    return grid_landmarks(33, 200.0, 100.0, step=30.0)


@pytest.fixture
def palm():
    """Palm detection matching ``hand_landmarks``."""
    return Detection(bbox=(100, 100, 200, 200), score=0.9)


@pytest.fixture
def default_config():
    """Default configuration without loading from file."""
    return KinetrackConfig()


@pytest.fixture
def restore_package_logger():
    """Undo handler and level changes made to the ``kinetrack`` logger."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
