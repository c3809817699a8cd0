"""Registered identity gallery.

Holds the enrolled identities (feature vector, aligned crop, label) and
matches query features against them with two similarity measures that
must both pass. All access goes through a lock because registration can
happen from a thread other than the one processing frames.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from kinetrack.core.schema import UNKNOWN_IDENTITY

logger = logging.getLogger(__name__)


@dataclass
class GalleryConfig:
    """Configuration for identity matching."""

    cosine_threshold: float = 0.363  # Minimum cosine similarity
    l2_threshold: float = 1.128  # Maximum L2 distance of normalized features


@dataclass(eq=False)
class RegisteredIdentity:
    """An enrolled identity."""
    identity_id: int
    label: str
    feature: np.ndarray
    aligned_image: Optional[np.ndarray] = None
    enrollment_confidence: float = 0.0


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one feature against the gallery."""
    identity_id: int = UNKNOWN_IDENTITY
    cosine: float = 0.0
    l2: float = float("inf")

    @property
    def matched(self) -> bool:
        return self.identity_id != UNKNOWN_IDENTITY


def _flatten(feature: np.ndarray) -> np.ndarray:
    return np.asarray(feature, dtype=np.float32).reshape(-1)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two raw feature vectors."""
    a, b = _flatten(a), _flatten(b)
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)


def l2_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between L2-normalized feature vectors."""
    a, b = _flatten(a), _flatten(b)
    na, nb = np.linalg.norm(a), np.linalg.norm(b)
    if na > 0:
        a = a / na
    if nb > 0:
        b = b / nb
    return float(np.linalg.norm(a - b))


class IdentityGallery:
    """Thread-safe store of registered identities.

    Usage:
        gallery = IdentityGallery()
        gallery.register(0, "alice", feature)
        result = gallery.match(query_feature)
        if result.matched:
            print(gallery.label(result.identity_id))
    """

    def __init__(self, config: Optional[GalleryConfig] = None):
        """Initialize gallery.

        Args:
            config: Matching thresholds
        """
        self.config = config or GalleryConfig()
        self._identities: List[RegisteredIdentity] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)

    def _find(self, identity_id: int) -> Optional[RegisteredIdentity]:
        for identity in self._identities:
            if identity.identity_id == identity_id:
                return identity
        return None

    def register(
        self,
        identity_id: int,
        label: str,
        feature: np.ndarray,
        aligned_image: Optional[np.ndarray] = None,
        enrollment_confidence: float = 0.0,
    ) -> RegisteredIdentity:
        """Add an identity, or update the existing one with the same id.

        Updating replaces the feature, aligned image, confidence and label.

        Raises:
            ValueError: If identity_id is negative or label is empty
        """
        if identity_id < 0:
            raise ValueError("identity_id must be >= 0; -1 is reserved for unknown faces")
        if not label:
            raise ValueError("label cannot be empty")

        feature = _flatten(feature).copy()
        image = None if aligned_image is None else np.array(aligned_image, copy=True)

        with self._lock:
            existing = self._find(identity_id)
            if existing is not None:
                existing.label = label
                existing.feature = feature
                existing.aligned_image = image
                existing.enrollment_confidence = float(enrollment_confidence)
                logger.info("Updated identity %d (%s)", identity_id, label)
                return existing

            identity = RegisteredIdentity(
                identity_id=identity_id,
                label=label,
                feature=feature,
                aligned_image=image,
                enrollment_confidence=float(enrollment_confidence),
            )
            self._identities.append(identity)
            logger.info("Registered identity %d (%s)", identity_id, label)
            return identity

    def unregister(self, identity_id: int) -> bool:
        """Remove an identity. Returns False if it was not registered."""
        with self._lock:
            identity = self._find(identity_id)
            if identity is None:
                return False
            self._identities.remove(identity)
        logger.info("Unregistered identity %d", identity_id)
        return True

    def clear(self) -> None:
        """Remove all identities."""
        with self._lock:
            self._identities.clear()

    def ids(self) -> List[int]:
        with self._lock:
            return [i.identity_id for i in self._identities]

    def label(self, identity_id: int) -> Optional[str]:
        with self._lock:
            identity = self._find(identity_id)
            return None if identity is None else identity.label

    def id_label_map(self) -> Dict[int, str]:
        with self._lock:
            return {i.identity_id: i.label for i in self._identities}

    def feature(self, identity_id: int) -> Optional[np.ndarray]:
        """Copy of the registered feature, or None."""
        with self._lock:
            identity = self._find(identity_id)
            return None if identity is None else identity.feature.copy()

    def aligned_image(self, identity_id: int) -> Optional[np.ndarray]:
        """Copy of the registered aligned crop, or None."""
        with self._lock:
            identity = self._find(identity_id)
            if identity is None or identity.aligned_image is None:
                return None
            return identity.aligned_image.copy()

    def enrollment_confidence(self, identity_id: int) -> float:
        """Detection confidence at enrollment, or -1 if not registered."""
        with self._lock:
            identity = self._find(identity_id)
            return -1.0 if identity is None else identity.enrollment_confidence

    def snapshot(self) -> List[Tuple[int, np.ndarray]]:
        """(identity_id, feature) pairs taken under the lock."""
        with self._lock:
            return [(i.identity_id, i.feature) for i in self._identities]

    def match(self, feature: np.ndarray) -> MatchResult:
        """Best identity for a query feature.

        An identity passes when cosine >= cosine_threshold and
        L2 <= l2_threshold. Among passing identities the lowest L2 wins.
        """
        best = MatchResult()
        for identity_id, registered in self.snapshot():
            cos = cosine_similarity(feature, registered)
            l2 = l2_distance(feature, registered)
            if cos >= self.config.cosine_threshold and l2 <= self.config.l2_threshold:
                if l2 < best.l2:
                    best = MatchResult(identity_id=identity_id, cosine=cos, l2=l2)
        return best
