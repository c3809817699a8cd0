"""Data structures shared by the KINETRACK estimators.

Detections are produced once per frame by an adapter and never mutated
afterwards. Landmark sets are the per-frame output of a landmark estimator
and the input/output of the smoothing stage. Entity records are what an
estimator hands back to its caller.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np


# Resolved identity sentinel for faces that match no registered identity
UNKNOWN_IDENTITY = -1

BBox = Tuple[float, float, float, float]  # x1, y1, x2, y2


class EntityKind(Enum):
    """Kind of tracked entity."""

    HAND = "hand"
    BODY = "body"
    FACE = "face"


# Landmark counts are fixed per entity kind
LANDMARK_COUNTS: Dict[EntityKind, int] = {
    EntityKind.HAND: 21,
    EntityKind.BODY: 33,
    EntityKind.FACE: 5,
}


def _frozen_array(values: Any, columns: int) -> np.ndarray:
    arr = np.array(values, dtype=np.float32).reshape(-1, columns)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Detection:
    """A single raw detection returned by a detector.

    Attributes:
        bbox: Pixel box (x1, y1, x2, y2)
        score: Detector confidence 0.0-1.0
        landmarks: Optional (K, 2) pixel-space keypoints (palm points,
            person keypoints, face 5-points)
        handedness: Optional auxiliary scalar; > 0.5 means right hand
    """

    bbox: BBox
    score: float
    landmarks: Optional[np.ndarray] = None
    handedness: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "bbox", tuple(float(v) for v in self.bbox))
        object.__setattr__(self, "score", float(self.score))
        if self.landmarks is not None:
            object.__setattr__(self, "landmarks", _frozen_array(self.landmarks, 2))

    @property
    def width(self) -> float:
        return self.bbox[2] - self.bbox[0]

    @property
    def height(self) -> float:
        return self.bbox[3] - self.bbox[1]

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def center(self) -> Tuple[float, float]:
        """Center point of the box."""
        x1, y1, x2, y2 = self.bbox
        return ((x1 + x2) / 2, (y1 + y2) / 2)

    def to_xywh(self) -> Tuple[float, float, float, float, float]:
        """Uniform (x, y, w, h, score) record used by the multi-object tracker."""
        x1, y1, _, _ = self.bbox
        return (x1, y1, self.width, self.height, self.score)

    @classmethod
    def from_xywh(
        cls,
        x: float,
        y: float,
        w: float,
        h: float,
        score: float,
        landmarks: Optional[np.ndarray] = None,
    ) -> Detection:
        """Create from a top-left/size box."""
        return cls(bbox=(x, y, x + w, y + h), score=score, landmarks=landmarks)

    def with_score(self, score: float) -> Detection:
        """Copy with a different score."""
        return Detection(self.bbox, score, self.landmarks, self.handedness)


@dataclass(eq=False)
class LandmarkSet:
    """Ordered landmark block for one entity in one frame.

    Attributes:
        screen: (N, 3) screen-space points (pixel x, pixel y, relative depth)
        world: Optional (N, 3) metric world-space points
        visibility: Optional (N,) visibility scores in [0, 1]
        presence: Optional (N,) presence scores in [0, 1]
        confidence: Overall estimation confidence
        handedness: Optional handedness scalar (hands only)
    """

    screen: np.ndarray
    world: Optional[np.ndarray] = None
    visibility: Optional[np.ndarray] = None
    presence: Optional[np.ndarray] = None
    confidence: float = 1.0
    handedness: Optional[float] = None

    def __post_init__(self) -> None:
        self.screen = np.asarray(self.screen, dtype=np.float32)
        if self.screen.ndim != 2 or self.screen.shape[1] not in (2, 3):
            raise ValueError(f"screen landmarks must be (N, 2) or (N, 3), got {self.screen.shape}")
        if self.screen.shape[1] == 2:
            self.screen = np.hstack([self.screen, np.zeros((len(self.screen), 1), dtype=np.float32)])

        n = len(self.screen)
        if self.world is not None:
            self.world = np.asarray(self.world, dtype=np.float32).reshape(n, 3)
        if self.visibility is not None:
            self.visibility = np.asarray(self.visibility, dtype=np.float32).reshape(n)
        if self.presence is not None:
            self.presence = np.asarray(self.presence, dtype=np.float32).reshape(n)
        self.confidence = float(self.confidence)

    def __len__(self) -> int:
        return len(self.screen)

    @property
    def xy(self) -> np.ndarray:
        """(N, 2) screen x/y view."""
        return self.screen[:, :2]

    def point_confidence(self) -> Optional[np.ndarray]:
        """Per-point confidence as visibility * presence, if available."""
        if self.visibility is None and self.presence is None:
            return None
        vis = self.visibility if self.visibility is not None else np.ones(len(self), np.float32)
        pres = self.presence if self.presence is not None else np.ones(len(self), np.float32)
        return vis * pres

    def bounding_box(self) -> BBox:
        """Axis-aligned box around all screen points."""
        xs, ys = self.screen[:, 0], self.screen[:, 1]
        return (float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max()))

    def copy(self) -> LandmarkSet:
        """Deep copy."""
        return LandmarkSet(
            screen=self.screen.copy(),
            world=None if self.world is None else self.world.copy(),
            visibility=None if self.visibility is None else self.visibility.copy(),
            presence=None if self.presence is None else self.presence.copy(),
            confidence=self.confidence,
            handedness=self.handedness,
        )


@dataclass
class EntityRecord:
    """Structured per-entity output of an estimator.

    Attributes:
        kind: Entity kind
        bbox: Pixel box (x1, y1, x2, y2). For hands and bodies this is the
            box around the smoothed landmarks; for faces it is the matched
            detector box
        score: Confidence of the underlying estimate/detection
        landmarks: Smoothed landmark block
        track_id: Stable numeric track id (tracking-enabled paths)
        identity_id: Resolved identity (UNKNOWN_IDENTITY if unresolved)
        label: Display label (hand side, identity name)
        handedness: Handedness scalar for hands
    """

    kind: EntityKind
    bbox: BBox
    score: float
    landmarks: Optional[LandmarkSet] = None
    track_id: Optional[int] = None
    identity_id: int = UNKNOWN_IDENTITY
    label: Optional[str] = None
    handedness: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_identified(self) -> bool:
        return self.identity_id != UNKNOWN_IDENTITY

    def copy(self) -> EntityRecord:
        """Independent deep copy, safe to retain across frames."""
        return EntityRecord(
            kind=self.kind,
            bbox=tuple(self.bbox),
            score=self.score,
            landmarks=None if self.landmarks is None else self.landmarks.copy(),
            track_id=self.track_id,
            identity_id=self.identity_id,
            label=self.label,
            handedness=self.handedness,
            metadata=copy.deepcopy(self.metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "bbox": [float(v) for v in self.bbox],
            "score": float(self.score),
            "track_id": self.track_id,
            "identity_id": self.identity_id,
            "label": self.label,
        }
        if self.handedness is not None:
            data["handedness"] = float(self.handedness)
        if self.landmarks is not None:
            data["landmarks"] = self.landmarks.screen.tolist()
        return data
