"""Capability interfaces for model adapters.

The tracking engine never inherits from a model wrapper. Instead each
estimator is composed from small adapters that implement one capability
each: detecting regions, estimating landmarks inside a region, or
extracting an identity feature. Any object implementing the abstract
methods can be plugged in, including the fakes used in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from kinetrack.core.errors import InvalidInputError
from kinetrack.core.schema import Detection, LandmarkSet


class Detector(ABC):
    """Finds candidate regions in a full frame.

    Example:
        class PalmDetector(Detector):
            def detect(self, image):
                boxes, scores = self._run_model(image)
                return [Detection(bbox=b, score=s) for b, s in zip(boxes, scores)]
    """

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[Detection]:
        """Detect regions in a BGR image.

        Args:
            image: BGR image (H, W, 3)

        Returns:
            Detections in any order; an empty list is a valid result
        """
        pass

    def close(self) -> None:
        """Release model resources."""
        pass


class LandmarkEstimator(ABC):
    """Estimates a landmark set inside a region of interest."""

    @abstractmethod
    def estimate(self, image: np.ndarray, region: Detection) -> Optional[LandmarkSet]:
        """Estimate landmarks for the entity inside ``region``.

        Args:
            image: BGR image (H, W, 3)
            region: Detector output or a reprojected region from the
                previous frame

        Returns:
            Landmark set in image pixel coordinates, or None when the
            estimate failed or fell below the estimator's confidence threshold
        """
        pass

    def close(self) -> None:
        """Release model resources."""
        pass


class FeatureExtractor(ABC):
    """Aligns a detected entity and turns it into an identity feature."""

    @abstractmethod
    def align(self, image: np.ndarray, detection: Detection) -> Optional[np.ndarray]:
        """Align and crop the entity described by ``detection``.

        Returns:
            Aligned crop, or None when alignment is impossible
        """
        pass

    @abstractmethod
    def extract(self, aligned: np.ndarray) -> np.ndarray:
        """Compute a 1-D feature vector from an aligned crop."""
        pass

    def close(self) -> None:
        """Release model resources."""
        pass


def ensure_bgr_image(image: Optional[np.ndarray]) -> Tuple[int, int]:
    """Validate a frame and return its (width, height).

    Raises:
        InvalidInputError: If the image is None, not an array, or does not
            have exactly 3 channels
    """
    if image is None:
        raise InvalidInputError("Input image cannot be None")
    if not isinstance(image, np.ndarray):
        raise InvalidInputError(f"Input image must be a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidInputError(
            f"Input image must be a 3-channel BGR frame, got shape {image.shape}"
        )
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidInputError("Input image is empty")
    height, width = image.shape[:2]
    return width, height
