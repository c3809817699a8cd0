"""OpenCV face adapters.

Wraps the YuNet face detector (``cv2.FaceDetectorYN``) and the SFace
recognizer (``cv2.FaceRecognizerSF``) behind the Detector and
FeatureExtractor interfaces.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np

from kinetrack.core.adapter import Detector, FeatureExtractor
from kinetrack.core.errors import InitializationError
from kinetrack.core.schema import Detection


def _check_model(path: str, what: str) -> str:
    if not path:
        raise InitializationError(f"{what} model filepath cannot be empty")
    if not Path(path).is_file():
        raise InitializationError(f"{what} model file not found: {path}")
    return str(path)


def detection_to_face_row(detection: Detection) -> np.ndarray:
    """YuNet (1, 15) row: x, y, w, h, five landmark points, score."""
    x, y, w, h, score = detection.to_xywh()
    row = np.zeros((1, 15), dtype=np.float32)
    row[0, :4] = (x, y, w, h)
    if detection.landmarks is not None:
        row[0, 4:14] = detection.landmarks[:5].reshape(-1)
    row[0, 14] = score
    return row


def face_row_to_detection(row: np.ndarray) -> Detection:
    """Inverse of ``detection_to_face_row``."""
    row = np.asarray(row, dtype=np.float32).reshape(-1)
    return Detection.from_xywh(
        float(row[0]), float(row[1]), float(row[2]), float(row[3]),
        float(row[14]),
        landmarks=row[4:14].reshape(5, 2),
    )


class YuNetFaceDetector(Detector):
    """Face detector backed by ``cv2.FaceDetectorYN``.

    Args:
        model_path: Path to the YuNet ONNX model
        input_size: Initial (width, height); updated per frame
        score_threshold: Minimum face score
        nms_threshold: NMS IoU threshold
        top_k: Maximum faces kept before NMS
    """

    def __init__(
        self,
        model_path: str,
        input_size: Tuple[int, int] = (320, 320),
        score_threshold: float = 0.9,
        nms_threshold: float = 0.3,
        top_k: int = 5000,
    ):
        model_path = _check_model(model_path, "Face detection")
        self.score_threshold = min(max(score_threshold, 0.0), 1.0)
        self.nms_threshold = min(max(nms_threshold, 0.0), 1.0)
        self.top_k = max(1, top_k)
        try:
            self._detector = cv2.FaceDetectorYN.create(
                model_path, "", tuple(input_size),
                self.score_threshold, self.nms_threshold, self.top_k,
            )
        except cv2.error as e:
            raise InitializationError(f"Failed to load face detection model: {model_path}") from e

    def detect(self, image: np.ndarray) -> List[Detection]:
        height, width = image.shape[:2]
        self._detector.setInputSize((width, height))
        _, faces = self._detector.detect(image)
        if faces is None:
            return []
        return [face_row_to_detection(row) for row in faces]

    def close(self) -> None:
        self._detector = None


class SFaceRecognizer(FeatureExtractor):
    """Face aligner and feature extractor backed by ``cv2.FaceRecognizerSF``."""

    def __init__(self, model_path: str):
        model_path = _check_model(model_path, "Face recognition")
        try:
            self._recognizer = cv2.FaceRecognizerSF.create(model_path, "")
        except cv2.error as e:
            raise InitializationError(f"Failed to load face recognition model: {model_path}") from e

    def align(self, image: np.ndarray, detection: Detection) -> Optional[np.ndarray]:
        if detection.landmarks is None:
            return None
        aligned = self._recognizer.alignCrop(image, detection_to_face_row(detection))
        if aligned is None or aligned.size == 0:
            return None
        return aligned

    def extract(self, aligned: np.ndarray) -> np.ndarray:
        return self._recognizer.feature(aligned).reshape(-1).copy()

    def close(self) -> None:
        self._recognizer = None
