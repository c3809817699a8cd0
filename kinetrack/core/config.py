"""Configuration system for KINETRACK.

Loads configuration from YAML files with validation and defaults.
The config path can be overridden with the KINETRACK_CONFIG environment
variable.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


# Default configuration file path
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "kinetrack_config.yaml"

HAND_TYPES = ("both", "right", "left")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class HandConfig:
    """Configuration for the hand pose stream estimator."""

    hand_type: str = "both"
    max_loss_frames: int = 5
    detection_interval: int = 3  # Palm detection retry interval while lost
    overlap_threshold: float = 0.2
    enable_one_euro: bool = True
    enable_moving_average: bool = True


@dataclass
class PoseConfig:
    """Configuration for the body pose stream estimator."""

    max_loss_frames: int = 5
    detection_interval: int = 3
    enable_one_euro: bool = True
    enable_moving_average: bool = True


@dataclass
class FaceConfig:
    """Configuration for the face identification estimator."""

    detector_model: str = ""
    recognizer_model: str = ""
    input_size: tuple[int, int] = (320, 320)
    score_threshold: float = 0.9
    nms_threshold: float = 0.3
    top_k: int = 5000
    smooth_landmarks: bool = False


@dataclass
class SmoothingConfig:
    """One-Euro and moving-average parameters."""

    frequency: float = 30.0
    d_cutoff: float = 1.0
    window_size: int = 3
    hand_min_cutoff: float = 1.0
    hand_beta: float = 0.05
    torso_min_cutoff: float = 0.5
    torso_beta: float = 0.1
    extremity_min_cutoff: float = 1.5
    extremity_beta: float = 0.3
    face_min_cutoff: float = 1.0
    face_beta: float = 0.05


@dataclass
class TrackingConfig:
    """Configuration for the BYTE multi-object tracker."""

    track_thresh: float = 0.5
    high_thresh: float = 0.6
    match_thresh: float = 0.8
    low_thresh: float = 0.1
    track_buffer: int = 30
    frame_rate: int = 30


@dataclass
class IdentityConfig:
    """Configuration for identity matching and re-recognition."""

    cosine_threshold: float = 0.363
    l2_threshold: float = 1.128
    default_interval: int = 30
    max_interval: int = 60
    interval_step: int = 10
    failure_threshold: int = 3
    score_delta: float = 0.1


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    file: Optional[str] = None
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class KinetrackConfig:
    """Main configuration container for KINETRACK.

    Usage:
        # Load from default location
        config = KinetrackConfig.load()

        # Load from specific file
        config = KinetrackConfig.load("/path/to/config.yaml")

        # Build an estimator from its section
        estimator = HandPoseStreamEstimator.from_config(detector, landmarker, config)
    """

    # Framework info
    name: str = "KINETRACK"
    version: str = "0.1.0"

    # Component configs
    hand: HandConfig = field(default_factory=HandConfig)
    pose: PoseConfig = field(default_factory=PoseConfig)
    face: FaceConfig = field(default_factory=FaceConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Source file tracking for reload
    _config_path: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def load(cls, config_path: Optional[str | Path] = None) -> KinetrackConfig:
        """Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default location.
                        Can also be set via KINETRACK_CONFIG environment variable.

        Returns:
            Loaded KinetrackConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is invalid YAML
        """
        if config_path is None:
            config_path = os.environ.get("KINETRACK_CONFIG", DEFAULT_CONFIG_PATH)

        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            raw_config = yaml.safe_load(f) or {}

        return cls.from_dict(raw_config, config_path=path)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        config_path: Optional[Path] = None
    ) -> KinetrackConfig:
        """Create config from dictionary.

        Unknown sections and keys are ignored; missing ones take defaults.
        """
        framework = data.get("framework", {}) or {}

        def parse_section(section_name: str, config_cls: type) -> Any:
            section_data = data.get(section_name, {}) or {}
            valid_fields = {f.name for f in config_cls.__dataclass_fields__.values()}
            filtered = {k: v for k, v in section_data.items() if k in valid_fields}
            return config_cls(**filtered)

        face = parse_section("face", FaceConfig)
        face.input_size = tuple(face.input_size)

        return cls(
            name=framework.get("name", "KINETRACK"),
            version=framework.get("version", "0.1.0"),
            hand=parse_section("hand", HandConfig),
            pose=parse_section("pose", PoseConfig),
            face=face,
            smoothing=parse_section("smoothing", SmoothingConfig),
            tracking=parse_section("tracking", TrackingConfig),
            identity=parse_section("identity", IdentityConfig),
            logging=parse_section("logging", LoggingConfig),
            _config_path=config_path,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""

        def config_to_dict(obj: Any) -> Any:
            if hasattr(obj, "__dataclass_fields__"):
                return {
                    k: config_to_dict(v)
                    for k, v in asdict(obj).items()
                    if not k.startswith("_")
                }
            elif isinstance(obj, (list, tuple)):
                return [config_to_dict(item) for item in obj]
            return obj

        return {
            "framework": {"name": self.name, "version": self.version},
            "hand": config_to_dict(self.hand),
            "pose": config_to_dict(self.pose),
            "face": config_to_dict(self.face),
            "smoothing": config_to_dict(self.smoothing),
            "tracking": config_to_dict(self.tracking),
            "identity": config_to_dict(self.identity),
            "logging": config_to_dict(self.logging),
        }

    def save(self, path: Optional[str | Path] = None) -> None:
        """Save configuration to YAML file.

        Raises:
            ValueError: If no path specified and no source path known
        """
        save_path = Path(path) if path else self._config_path
        if save_path is None:
            raise ValueError("No save path specified and no source path known")

        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def reload(self) -> KinetrackConfig:
        """Reload configuration from source file.

        Raises:
            ValueError: If no source path known
        """
        if self._config_path is None:
            raise ValueError("No source config path known for reload")
        return KinetrackConfig.load(self._config_path)

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if self.hand.hand_type not in HAND_TYPES:
            errors.append(f"hand_type must be one of {', '.join(HAND_TYPES)}")

        for section in (self.hand, self.pose):
            if section.max_loss_frames < 1:
                errors.append("max_loss_frames must be >= 1")
            if section.detection_interval < 1:
                errors.append("detection_interval must be >= 1")

        if not (0 <= self.hand.overlap_threshold <= 1):
            errors.append("overlap_threshold must be between 0 and 1")

        if not (0 <= self.face.score_threshold <= 1):
            errors.append("Face score_threshold must be between 0 and 1")

        # Smoothing
        if self.smoothing.frequency <= 0:
            errors.append("Smoothing frequency must be positive")
        if self.smoothing.window_size < 1:
            errors.append("Moving average window_size must be >= 1")
        cutoffs = (
            self.smoothing.d_cutoff,
            self.smoothing.hand_min_cutoff,
            self.smoothing.torso_min_cutoff,
            self.smoothing.extremity_min_cutoff,
            self.smoothing.face_min_cutoff,
        )
        if any(c <= 0 for c in cutoffs):
            errors.append("Cutoff frequencies must be positive")

        # Tracker thresholds
        t = self.tracking
        if not (0 <= t.low_thresh <= t.track_thresh <= 1):
            errors.append("Tracker thresholds must satisfy 0 <= low_thresh <= track_thresh <= 1")
        if t.high_thresh < t.track_thresh:
            errors.append("high_thresh must be >= track_thresh")
        if t.track_buffer < 0 or t.frame_rate <= 0:
            errors.append("track_buffer must be >= 0 and frame_rate positive")

        # Identity
        i = self.identity
        if i.default_interval < 1 or i.max_interval < i.default_interval:
            errors.append("Recognition intervals must satisfy 1 <= default_interval <= max_interval")
        if i.failure_threshold < 1:
            errors.append("failure_threshold must be >= 1")

        if self.logging.level.upper() not in LOG_LEVELS:
            errors.append(f"Logging level must be one of {', '.join(LOG_LEVELS)}")

        return errors


def get_default_config() -> KinetrackConfig:
    """Get default configuration without loading from file.

    Useful for testing or when config file is not available.
    """
    return KinetrackConfig()
