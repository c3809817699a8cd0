"""Candidate selection and deduplication.

Turns an unordered list of raw detections into at most one accepted
candidate per requested slot, skipping candidates already covered by an
entity that is still being tracked.
"""

from __future__ import annotations

from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence

from kinetrack.core.schema import BBox, Detection


RIGHT = "right"
LEFT = "left"

HANDEDNESS_THRESHOLD = 0.5


def iou(a: BBox, b: BBox) -> float:
    """Intersection over union of two (x1, y1, x2, y2) boxes."""
    x1 = max(a[0], b[0])
    y1 = max(a[1], b[1])
    x2 = min(a[2], b[2])
    y2 = min(a[3], b[3])

    if x2 <= x1 or y2 <= y1:
        return 0.0

    intersection = (x2 - x1) * (y2 - y1)
    area_a = max(0.0, a[2] - a[0]) * max(0.0, a[3] - a[1])
    area_b = max(0.0, b[2] - b[0]) * max(0.0, b[3] - b[1])
    union = area_a + area_b - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def classify_handedness(detection: Detection) -> str:
    """Right when the handedness score is above 0.5, left otherwise."""
    score = detection.handedness if detection.handedness is not None else 0.0
    return RIGHT if score > HANDEDNESS_THRESHOLD else LEFT


class CandidateSelector:
    """Greedy, confidence-ordered candidate picker.

    Args:
        overlap_threshold: IoU above which two boxes count as the same entity
        classify: Maps a detection to its slot label (defaults to handedness)
    """

    def __init__(
        self,
        overlap_threshold: float = 0.2,
        classify: Optional[Callable[[Detection], Hashable]] = None,
    ):
        self.overlap_threshold = overlap_threshold
        self.classify = classify or classify_handedness

    def is_claimed(self, detection: Detection, active_regions: Iterable[BBox]) -> bool:
        """True if the detection overlaps a region held by a tracking entity."""
        return any(
            iou(detection.bbox, region) > self.overlap_threshold
            for region in active_regions
        )

    def rank(self, candidates: Sequence[Detection]) -> List[Detection]:
        """Sort by confidence, highest first. Ties keep input order."""
        return sorted(candidates, key=lambda d: d.score, reverse=True)

    def select(
        self,
        candidates: Sequence[Detection],
        slots: Iterable[Hashable],
        active_regions: Iterable[BBox] = (),
    ) -> Dict[Hashable, Detection]:
        """Assign the best candidate to each requested slot.

        Args:
            candidates: Raw candidates for this frame
            slots: Slot labels still needing a detection
            active_regions: Regions of entities currently tracking

        Returns:
            Mapping slot label -> accepted candidate, only for filled slots
        """
        wanted = set(slots)
        regions = list(active_regions)
        accepted: Dict[Hashable, Detection] = {}

        for det in self.rank(candidates):
            if not wanted:
                break
            if self.is_claimed(det, regions):
                continue
            label = self.classify(det)
            if label not in wanted:
                continue
            if any(iou(det.bbox, other.bbox) > self.overlap_threshold for other in accepted.values()):
                continue
            accepted[label] = det
            wanted.discard(label)

        return accepted

    def best(self, candidates: Sequence[Detection]) -> Optional[Detection]:
        """Highest-confidence candidate with a positive score, or None."""
        best: Optional[Detection] = None
        for det in candidates:
            if det.score <= 0:
                continue
            if best is None or det.score > best.score:
                best = det
        return best
