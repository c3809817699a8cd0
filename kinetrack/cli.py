"""KINETRACK command-line interface."""

import argparse
import json
import sys
from typing import List, Optional, Tuple

import yaml


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="KINETRACK - Stream tracking and temporal smoothing for pose and face estimators",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Version command
    subparsers.add_parser("version", help="Show version")

    # Config command
    config_parser = subparsers.add_parser("config", help="Validate and print the effective configuration")
    config_parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )

    # Identify command
    identify_parser = subparsers.add_parser("identify", help="Run face identification on still images")
    identify_parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )
    identify_parser.add_argument(
        "--detector",
        type=str,
        default=None,
        help="YuNet face detection ONNX model (overrides face.detector_model)",
    )
    identify_parser.add_argument(
        "--recognizer",
        type=str,
        default=None,
        help="SFace face recognition ONNX model (overrides face.recognizer_model)",
    )
    identify_parser.add_argument(
        "--register", "-r",
        action="append",
        default=[],
        metavar="ID:LABEL:IMAGE",
        help="Register the most confident face in IMAGE as ID/LABEL (repeatable)",
    )
    identify_parser.add_argument(
        "images",
        nargs="+",
        help="Images to process, in order, as consecutive frames",
    )

    args = parser.parse_args(argv)

    if args.command == "version":
        return cmd_version(args)
    elif args.command == "config":
        return cmd_config(args)
    elif args.command == "identify":
        return cmd_identify(args)
    else:
        parser.print_help()
        return 0


def _load_config(path: Optional[str]):
    from kinetrack.core.config import KinetrackConfig, get_default_config

    if path is None:
        try:
            return KinetrackConfig.load()
        except FileNotFoundError:
            return get_default_config()
    return KinetrackConfig.load(path)


def parse_registration(entry: str) -> Tuple[int, str, str]:
    """Split ``ID:LABEL:IMAGE``. The image path may itself contain colons."""
    parts = entry.split(":", 2)
    if len(parts) != 3 or not parts[1] or not parts[2]:
        raise ValueError(f"Registration must be ID:LABEL:IMAGE, got {entry!r}")
    try:
        identity_id = int(parts[0])
    except ValueError:
        raise ValueError(f"Registration id must be an integer, got {parts[0]!r}") from None
    return identity_id, parts[1], parts[2]


def cmd_version(args) -> int:
    """Show version."""
    try:
        from importlib.metadata import version
        v = version("kinetrack")
    except Exception:
        v = "0.1.0"

    print(f"KINETRACK v{v}")
    print("Stream tracking and temporal smoothing engine")
    return 0


def cmd_config(args) -> int:
    """Validate and print configuration."""
    try:
        config = _load_config(args.config)
    except (FileNotFoundError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False), end="")

    errors = config.validate()
    for error in errors:
        print(f"Invalid: {error}", file=sys.stderr)
    return 1 if errors else 0


def cmd_identify(args) -> int:
    """Register faces, then identify faces in each image."""
    import cv2

    from kinetrack.adapters.opencv_face import SFaceRecognizer, YuNetFaceDetector
    from kinetrack.core.errors import KinetrackError
    from kinetrack.core.logging import configure_logging
    from kinetrack.estimators.face import FaceIdentificationEstimator

    try:
        config = _load_config(args.config)
    except (FileNotFoundError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    configure_logging(config.logging)

    face = config.face
    try:
        registrations = [parse_registration(r) for r in args.register]
        detector = YuNetFaceDetector(
            args.detector or face.detector_model,
            input_size=face.input_size,
            score_threshold=face.score_threshold,
            nms_threshold=face.nms_threshold,
            top_k=face.top_k,
        )
        recognizer = SFaceRecognizer(args.recognizer or face.recognizer_model)
    except (ValueError, KinetrackError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with FaceIdentificationEstimator.from_config(detector, recognizer, config) as estimator:
        for identity_id, label, path in registrations:
            image = cv2.imread(path)
            if image is None:
                print(f"Error: cannot read image {path}", file=sys.stderr)
                return 1
            faces = detector.detect(image)
            if not faces:
                print(f"Error: no face found in {path}", file=sys.stderr)
                return 1
            best = max(faces, key=lambda d: d.score)
            estimator.register_from_detection(image, best, identity_id, label)
            print(f"Registered {identity_id}:{label} from {path}")

        for path in args.images:
            image = cv2.imread(path)
            if image is None:
                print(f"Error: cannot read image {path}", file=sys.stderr)
                return 1
            records = estimator.estimate(image, copy_output=True)
            print(json.dumps({
                "image": path,
                "faces": [r.to_dict() for r in records],
            }))

    return 0


if __name__ == "__main__":
    sys.exit(main())
