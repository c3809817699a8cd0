"""Concrete model adapters."""

from kinetrack.adapters.opencv_face import SFaceRecognizer, YuNetFaceDetector

__all__ = ["SFaceRecognizer", "YuNetFaceDetector"]
