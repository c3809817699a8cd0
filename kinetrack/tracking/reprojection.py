"""Region reprojection from smoothed landmarks.

After a frame has been smoothed, the next frame's region of interest is
derived from a subset of the landmarks instead of running the detector
again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from kinetrack.core.schema import BBox, Detection, LandmarkSet


@dataclass(frozen=True)
class ReprojectionProfile:
    """How a landmark subset is turned into a region.

    Attributes:
        indices: Landmark indices forming the box; None uses every landmark
        shift: Offset as a fraction of the box's own (width, height)
        enlarge: Scale factor about the box centre
    """

    indices: Optional[Tuple[int, ...]] = None
    shift: Tuple[float, float] = (0.0, 0.0)
    enlarge: float = 1.0


HAND_PROFILE = ReprojectionProfile(indices=(0, 5, 9, 13, 17, 1, 2), shift=(0.0, -0.1), enlarge=1.65)
BODY_PROFILE = ReprojectionProfile(indices=None, shift=(0.0, -0.1), enlarge=1.25)

# Body landmark indices
LEFT_EYE = 2
RIGHT_EYE = 5
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_HIP = 23
RIGHT_HIP = 24
FACE_INDICES = tuple(range(0, 11))

FULL_BODY_SCALE = 1.40
UPPER_BODY_SCALE = 3.0
FACE_BOX_SCALE = 2.0


def _clamp_box(x1: float, y1: float, x2: float, y2: float, width: int, height: int) -> BBox:
    x1 = min(max(x1, 0.0), float(width))
    x2 = min(max(x2, 0.0), float(width))
    y1 = min(max(y1, 0.0), float(height))
    y2 = min(max(y2, 0.0), float(height))

    # Grow degenerate boxes to at least one pixel where the image allows
    if x2 - x1 < 1.0:
        if x1 + 1.0 <= width:
            x2 = x1 + 1.0
        else:
            x1 = max(0.0, width - 1.0)
            x2 = float(width)
    if y2 - y1 < 1.0:
        if y1 + 1.0 <= height:
            y2 = y1 + 1.0
        else:
            y1 = max(0.0, height - 1.0)
            y2 = float(height)
    return (x1, y1, x2, y2)


def reproject(
    landmarks: LandmarkSet,
    image_size: Tuple[int, int],
    profile: ReprojectionProfile,
) -> BBox:
    """Compute the next region from landmarks.

    Takes the bounding rectangle of the profile's landmark subset, shifts
    it by a fraction of its own size, enlarges it about its centre and
    clamps it to the image.

    Args:
        landmarks: Smoothed landmark set
        image_size: (width, height) of the frame
        profile: Subset, shift and enlarge factor

    Returns:
        Box (x1, y1, x2, y2) inside [0, width] x [0, height]
    """
    width, height = image_size
    points = landmarks.xy
    if profile.indices is not None:
        points = points[list(profile.indices)]
    points = points[np.isfinite(points).all(axis=1)]
    if len(points) == 0:
        return _clamp_box(0.0, 0.0, 0.0, 0.0, width, height)

    x1, y1 = points.min(axis=0)
    x2, y2 = points.max(axis=0)
    w, h = float(x2 - x1), float(y2 - y1)

    cx = (x1 + x2) / 2 + profile.shift[0] * w
    cy = (y1 + y2) / 2 + profile.shift[1] * h
    half_w = w * profile.enlarge / 2
    half_h = h * profile.enlarge / 2

    return _clamp_box(cx - half_w, cy - half_h, cx + half_w, cy + half_h, width, height)


def person_keypoints(landmarks: LandmarkSet) -> Dict[str, Tuple[float, float]]:
    """Keypoints a person detector would report for this body.

    Returns:
        Dict with ``hip_center``, ``full_body``, ``shoulder_center`` and
        ``upper_body`` points. The full-body point extends the hip-to-eye
        vector by 1.4, the upper-body point extends shoulder-to-eye by 3.
    """
    xy = landmarks.xy
    hip = (xy[LEFT_HIP] + xy[RIGHT_HIP]) / 2
    eye = (xy[LEFT_EYE] + xy[RIGHT_EYE]) / 2
    shoulder = (xy[LEFT_SHOULDER] + xy[RIGHT_SHOULDER]) / 2

    full_body = hip + (eye - hip) * FULL_BODY_SCALE
    upper_body = shoulder + (eye - shoulder) * UPPER_BODY_SCALE

    return {
        "hip_center": (float(hip[0]), float(hip[1])),
        "full_body": (float(full_body[0]), float(full_body[1])),
        "shoulder_center": (float(shoulder[0]), float(shoulder[1])),
        "upper_body": (float(upper_body[0]), float(upper_body[1])),
    }


def face_box(landmarks: LandmarkSet, image_size: Optional[Tuple[int, int]] = None) -> BBox:
    """Square box around the face landmarks, twice their larger side."""
    points = landmarks.xy[list(FACE_INDICES)]
    points = points[np.isfinite(points).all(axis=1)]
    if len(points) == 0:
        if image_size is None:
            return (0.0, 0.0, 0.0, 0.0)
        return _clamp_box(0.0, 0.0, 0.0, 0.0, image_size[0], image_size[1])
    x1, y1 = points.min(axis=0)
    x2, y2 = points.max(axis=0)
    side = max(float(x2 - x1), float(y2 - y1)) * FACE_BOX_SCALE
    cx, cy = (x1 + x2) / 2, (y1 + y2) / 2
    box = (float(cx - side / 2), float(cy - side / 2), float(cx + side / 2), float(cy + side / 2))
    if image_size is None:
        return box
    return _clamp_box(*box, image_size[0], image_size[1])


def region_from_landmarks(
    landmarks: LandmarkSet,
    image_size: Tuple[int, int],
    profile: ReprojectionProfile,
    keypoints: Optional[Sequence[Tuple[float, float]]] = None,
) -> Detection:
    """Reprojected region as a Detection the landmark estimator can consume."""
    return Detection(
        bbox=reproject(landmarks, image_size, profile),
        score=landmarks.confidence,
        landmarks=None if keypoints is None else np.asarray(keypoints, dtype=np.float32),
        handedness=landmarks.handedness,
    )


def body_region(landmarks: LandmarkSet, image_size: Tuple[int, int]) -> Detection:
    """Body reprojection carrying person keypoints and the face box corners."""
    kp = person_keypoints(landmarks)
    fx1, fy1, fx2, fy2 = face_box(landmarks, image_size)
    keypoints = [
        kp["hip_center"],
        kp["full_body"],
        kp["shoulder_center"],
        kp["upper_body"],
        (fx1, fy1),
        (fx2, fy2),
    ]
    return region_from_landmarks(landmarks, image_size, BODY_PROFILE, keypoints)


def hand_region(landmarks: LandmarkSet, image_size: Tuple[int, int]) -> Detection:
    """Hand reprojection carrying the palm keypoints a palm detector reports."""
    palm = landmarks.xy[list(HAND_PROFILE.indices)]
    return region_from_landmarks(landmarks, image_size, HAND_PROFILE, palm)
