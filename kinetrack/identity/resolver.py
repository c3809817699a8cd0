"""Track-to-identity resolution with hybrid re-recognition.

Recognizing every face on every frame is expensive, so each track keeps
an IdentityBinding and recognition is retried only when:

1. ``interval`` frames have passed since the last attempt, or
2. the detection score rose by more than ``score_delta`` since then.

Repeated failures stretch the interval so hopeless tracks (unregistered
people) cost less over time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from kinetrack.core.adapter import FeatureExtractor
from kinetrack.core.schema import UNKNOWN_IDENTITY, Detection
from kinetrack.identity.gallery import IdentityGallery, MatchResult

logger = logging.getLogger(__name__)


@dataclass
class RecognitionPolicy:
    """Hybrid periodic / confidence-triggered re-recognition policy."""

    default_interval: int = 30
    max_interval: int = 60
    interval_step: int = 10
    failure_threshold: int = 3
    score_delta: float = 0.1

    def should_attempt(self, binding: IdentityBinding, score: float) -> bool:
        """Whether an unresolved binding is due for another attempt."""
        if binding.frame_count - binding.last_attempt_frame >= binding.interval:
            return True
        return score > binding.last_score + self.score_delta

    def record(self, binding: IdentityBinding, success: bool, score: float) -> None:
        """Update bookkeeping after an attempt."""
        binding.last_attempt_frame = binding.frame_count
        binding.last_score = score
        if success:
            binding.failures = 0
            binding.interval = self.default_interval
            return

        binding.failures += 1
        if binding.failures >= self.failure_threshold:
            binding.interval = min(self.max_interval, binding.interval + self.interval_step)
            logger.debug(
                "Track %s recognition interval raised to %d after %d failures",
                binding.track_id, binding.interval, binding.failures,
            )


@dataclass(eq=False)
class IdentityBinding:
    """Association of a track with a registered identity."""
    track_id: int
    identity_id: int = UNKNOWN_IDENTITY
    frame_count: int = 0
    last_attempt_frame: int = 0
    interval: int = 30
    last_score: float = 0.0
    failures: int = 0
    detection: Optional[Detection] = None  # Latest matched detection

    @property
    def is_resolved(self) -> bool:
        return self.identity_id != UNKNOWN_IDENTITY

    def reset(self, interval: int = 30) -> None:
        """Back to unknown with a fresh schedule."""
        self.identity_id = UNKNOWN_IDENTITY
        self.failures = 0
        self.interval = interval


class IdentityResolver:
    """Runs feature extraction and gallery matching for bindings.

    Args:
        extractor: Aligns a detection and produces its feature
        gallery: Registered identities
        policy: Re-recognition schedule
    """

    def __init__(
        self,
        extractor: FeatureExtractor,
        gallery: IdentityGallery,
        policy: Optional[RecognitionPolicy] = None,
    ):
        self.extractor = extractor
        self.gallery = gallery
        self.policy = policy or RecognitionPolicy()

    def new_binding(self, track_id: int, detection: Detection) -> IdentityBinding:
        """Binding for a freshly created track."""
        return IdentityBinding(
            track_id=track_id,
            interval=self.policy.default_interval,
            last_score=detection.score,
            detection=detection,
        )

    def extract(self, image: np.ndarray, detection: Detection) -> Optional[np.ndarray]:
        """Feature of ``detection``, or None when alignment fails."""
        aligned = self.extractor.align(image, detection)
        if aligned is None or aligned.size == 0:
            logger.debug("Alignment failed for detection at %s", detection.bbox)
            return None
        return self.extractor.extract(aligned)

    def recognize(self, image: np.ndarray, binding: IdentityBinding) -> MatchResult:
        """Match the binding's latest detection against the gallery.

        A match overwrites the binding's identity. No match leaves it as is.
        """
        if binding.detection is None or len(self.gallery) == 0:
            return MatchResult()

        feature = self.extract(image, binding.detection)
        if feature is None:
            return MatchResult()

        result = self.gallery.match(feature)
        if result.matched:
            if result.identity_id != binding.identity_id:
                logger.info(
                    "Track %d identified as %d (cos=%.3f, l2=%.3f)",
                    binding.track_id, result.identity_id, result.cosine, result.l2,
                )
            binding.identity_id = result.identity_id
        return result

    def start(self, image: np.ndarray, binding: IdentityBinding) -> None:
        """Immediate attempt for a new track."""
        self.recognize(image, binding)

    def advance(self, image: np.ndarray, binding: IdentityBinding, detection: Detection) -> None:
        """Per-frame update of an existing binding.

        Resolved bindings are left alone. Unresolved ones are retried
        according to the policy.
        """
        binding.frame_count += 1
        binding.detection = detection

        if len(self.gallery) == 0 or binding.is_resolved:
            return

        score = detection.score
        if not self.policy.should_attempt(binding, score):
            return

        self.recognize(image, binding)
        self.policy.record(binding, binding.is_resolved, score)
