"""Face identification estimator.

Per frame: detect faces, associate them with persistent tracks through
the BYTE tracker, keep one IdentityBinding per track and resolve it
against the registered identity gallery with the hybrid re-recognition
policy. Identities can be registered, updated and re-resolved from other
threads while frames are being processed.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

import numpy as np

from kinetrack.core.adapter import Detector, FeatureExtractor, ensure_bgr_image
from kinetrack.core.config import KinetrackConfig
from kinetrack.core.schema import (
    LANDMARK_COUNTS,
    Detection,
    EntityKind,
    EntityRecord,
    LandmarkSet,
)
from kinetrack.estimators.base import StreamEstimator
from kinetrack.identity.gallery import GalleryConfig, IdentityGallery
from kinetrack.identity.resolver import IdentityBinding, IdentityResolver, RecognitionPolicy
from kinetrack.smoothing.bank import FACE_FILTER_PARAMS, FilterBank, FilterParams, uniform_params
from kinetrack.tracking.bytetrack import ByteTrackConfig, ByteTracker

logger = logging.getLogger(__name__)


FaceOutput = List[EntityRecord]


class FaceIdentificationEstimator(StreamEstimator):
    """Multi-face tracker with identity resolution.

    Args:
        detector: Face detector reporting five landmarks per face
        recognizer: Face aligner and feature extractor
        tracker_config: BYTE tracker thresholds
        gallery_config: Identity matching thresholds
        policy: Re-recognition schedule
        smooth_landmarks: Smooth each track's five landmarks
        filter_params: Smoothing parameters when ``smooth_landmarks`` is set
        blocking: Wait (True) or raise BusyError (False) on concurrent calls

    Output of ``estimate`` is one EntityRecord per active track.

    Example:
        with FaceIdentificationEstimator(detector, recognizer) as faces:
            faces.register(aligned_alice, 0, "alice")
            for record in faces.estimate(frame):
                print(record.track_id, record.identity_id, record.label)
    """

    def __init__(
        self,
        detector: Detector,
        recognizer: FeatureExtractor,
        tracker_config: Optional[ByteTrackConfig] = None,
        gallery_config: Optional[GalleryConfig] = None,
        policy: Optional[RecognitionPolicy] = None,
        smooth_landmarks: bool = False,
        filter_params: FilterParams = FACE_FILTER_PARAMS,
        blocking: bool = True,
    ):
        super().__init__([detector, recognizer], blocking=blocking)
        self.detector = detector
        self.recognizer = recognizer
        self.tracker = ByteTracker(tracker_config)
        self.gallery = IdentityGallery(gallery_config)
        self.resolver = IdentityResolver(recognizer, self.gallery, policy)
        self.smooth_landmarks = smooth_landmarks
        self.filter_params = filter_params

        self._bindings: Dict[int, IdentityBinding] = {}
        self._banks: Dict[int, FilterBank] = {}
        self._bindings_lock = threading.Lock()
        self._output: FaceOutput = []

    @classmethod
    def from_config(
        cls,
        detector: Detector,
        recognizer: FeatureExtractor,
        config: KinetrackConfig,
        **kwargs,
    ) -> FaceIdentificationEstimator:
        """Build from the ``face``, ``tracking``, ``identity`` and ``smoothing`` sections."""
        t, i, s = config.tracking, config.identity, config.smoothing
        return cls(
            detector,
            recognizer,
            tracker_config=ByteTrackConfig(
                track_thresh=t.track_thresh,
                low_thresh=t.low_thresh,
                high_thresh=t.high_thresh,
                match_thresh=t.match_thresh,
                track_buffer=t.track_buffer,
                frame_rate=t.frame_rate,
            ),
            gallery_config=GalleryConfig(i.cosine_threshold, i.l2_threshold),
            policy=RecognitionPolicy(
                default_interval=i.default_interval,
                max_interval=i.max_interval,
                interval_step=i.interval_step,
                failure_threshold=i.failure_threshold,
                score_delta=i.score_delta,
            ),
            smooth_landmarks=config.face.smooth_landmarks,
            filter_params=FilterParams(
                s.face_min_cutoff, s.face_beta, s.d_cutoff, s.frequency, s.window_size
            ),
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "face identification"

    # -------------------------------------------------------------------------
    # Per-frame processing
    # -------------------------------------------------------------------------

    def _process_frame(self, image: np.ndarray, timestamp: Optional[float]) -> FaceOutput:
        detections = self.detector.detect(image)
        track_ids = self.tracker.update([d.to_xywh() for d in detections])

        with self._bindings_lock:
            for track in self.tracker.removed_tracks():
                self._bindings.pop(track.track_id, None)
                self._banks.pop(track.track_id, None)
            for track in self.tracker.lost_tracks():
                bank = self._banks.get(track.track_id)
                if bank is not None:
                    bank.reset()

            for det, track_id in zip(detections, track_ids):
                if track_id < 0:
                    continue
                binding = self._bindings.get(track_id)
                if binding is None:
                    binding = self.resolver.new_binding(track_id, det)
                    self._bindings[track_id] = binding
                    self.resolver.start(image, binding)
                else:
                    self.resolver.advance(image, binding, det)

            records = []
            for track in self.tracker.active_tracks():
                binding = self._bindings.get(track.track_id)
                if binding is None or binding.detection is None:
                    continue
                records.append(self._record(binding, timestamp))

        self._output[:] = records
        return self._output

    def _record(self, binding: IdentityBinding, timestamp: Optional[float]) -> EntityRecord:
        det = binding.detection
        landmarks = None
        if det.landmarks is not None and len(det.landmarks) == LANDMARK_COUNTS[EntityKind.FACE]:
            landmarks = LandmarkSet(screen=det.landmarks, confidence=det.score)
            if self.smooth_landmarks:
                landmarks = self._bank(binding.track_id).smooth(landmarks, timestamp)

        return EntityRecord(
            kind=EntityKind.FACE,
            bbox=det.bbox,
            score=det.score,
            landmarks=landmarks,
            track_id=binding.track_id,
            identity_id=binding.identity_id,
            label=self.gallery.label(binding.identity_id) if binding.is_resolved else None,
        )

    def _bank(self, track_id: int) -> FilterBank:
        bank = self._banks.get(track_id)
        if bank is None:
            bank = FilterBank(
                LANDMARK_COUNTS[EntityKind.FACE],
                uniform_params(self.filter_params),
                has_world=False,
            )
            self._banks[track_id] = bank
        return bank

    def _copy_output(self, output: FaceOutput) -> FaceOutput:
        return [r.copy() for r in output]

    def _fail_all(self) -> None:
        # Bindings survive so a re-activated track keeps its identity
        with self._bindings_lock:
            lost = self.tracker.mark_all_lost()
            for track in lost:
                bank = self._banks.get(track.track_id)
                if bank is not None:
                    bank.reset()
        logger.debug("Face frame failed, %d tracks marked lost", len(lost))

    def _release(self) -> None:
        with self._bindings_lock:
            self._bindings.clear()
            self._banks.clear()
        self._output = []
        self.gallery.clear()
        self.tracker.reset()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        aligned_face: np.ndarray,
        identity_id: int,
        label: str,
        enrollment_confidence: float = 0.0,
    ) -> None:
        """Register (or update) an identity from an already aligned face.

        Raises:
            ValueError: If identity_id < 0, label is empty or the image is None
        """
        self._executor.check_open()
        _validate_identity(identity_id, label)
        if aligned_face is None:
            raise ValueError("aligned_face cannot be None")

        feature = self.recognizer.extract(aligned_face)
        self.gallery.register(identity_id, label, feature, aligned_face, enrollment_confidence)

    def register_from_detection(
        self,
        image: np.ndarray,
        detection: Detection,
        identity_id: int,
        label: str,
    ) -> None:
        """Align a detected face, then register it with the detection score.

        Raises:
            ValueError: If the face cannot be aligned or the id/label is invalid
        """
        self._executor.check_open()
        ensure_bgr_image(image)
        _validate_identity(identity_id, label)

        aligned = self.recognizer.align(image, detection)
        if aligned is None or aligned.size == 0:
            raise ValueError("Failed to align and crop the face from the detection result")

        feature = self.recognizer.extract(aligned)
        self.gallery.register(identity_id, label, feature, aligned, detection.score)

    def unregister(self, identity_id: int) -> bool:
        """Remove an identity. Tracks bound to it keep the id until reset."""
        self._executor.check_open()
        return self.gallery.unregister(identity_id)

    def clear_registered(self) -> None:
        self._executor.check_open()
        self.gallery.clear()

    def registered_ids(self) -> List[int]:
        self._executor.check_open()
        return self.gallery.ids()

    def id_label_map(self) -> Dict[int, str]:
        self._executor.check_open()
        return self.gallery.id_label_map()

    # -------------------------------------------------------------------------
    # Recognition control
    # -------------------------------------------------------------------------

    def bindings(self) -> List[IdentityBinding]:
        """Snapshot of the current bindings (copies)."""
        with self._bindings_lock:
            return [
                IdentityBinding(
                    track_id=b.track_id,
                    identity_id=b.identity_id,
                    frame_count=b.frame_count,
                    last_attempt_frame=b.last_attempt_frame,
                    interval=b.interval,
                    last_score=b.last_score,
                    failures=b.failures,
                    detection=b.detection,
                )
                for b in self._bindings.values()
            ]

    def reset_recognition(self) -> None:
        """Set every binding back to unknown with the default interval."""
        self._executor.check_open()
        with self._bindings_lock:
            for binding in self._bindings.values():
                binding.reset(self.resolver.policy.default_interval)
        logger.info("Recognition reset for all tracked faces")

    def update_recognition(self, image: np.ndarray, skip_resolved: bool = True) -> None:
        """Re-run recognition for tracked faces on ``image``.

        Args:
            image: Frame the tracked detections came from
            skip_resolved: Leave bindings that already have an identity alone
        """
        self._executor.check_open()
        ensure_bgr_image(image)
        if len(self.gallery) == 0:
            return

        with self._bindings_lock:
            for binding in self._bindings.values():
                if skip_resolved and binding.is_resolved:
                    continue
                self.resolver.recognize(image, binding)


def _validate_identity(identity_id: int, label: str) -> None:
    if identity_id < 0:
        raise ValueError("identity_id must be >= 0; -1 is reserved for unknown faces")
    if not label:
        raise ValueError("label cannot be empty")
