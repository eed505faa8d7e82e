#!/usr/bin/env python3
"""
Command-line interface for the nailfold capillaroscopy analysis pipeline.

Usage:
    capillary detect image.jpg --output loops.json
    capillary deskew image.jpg --output straightened.png
    capillary enhance image.jpg --output enhanced.jpg
    capillary --config settings.json config
    capillary validate loops.json

Subcommands:
    detect      Detect the outermost capillary loops
    deskew      Estimate the rotation that makes capillaries vertical
    enhance     Write a contrast-enhanced JPEG
    config      Show (and optionally save) the effective configuration
    validate    Validate loop result JSON files
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from capillary import __version__
from capillary.detection.strategies.capillary_loop import CapillaryLoopStrategy
from capillary.io.image_loader import (
    ImageLoadError,
    UnsupportedImageError,
    load_image,
    save_image,
)
from capillary.preprocessing.deskew import calculate_skew_angle, rotate_image
from capillary.preprocessing.enhancement import enhance_image
from capillary.utils.calibration import assessment_box_side_px
from capillary.utils.config import (
    ConfigValidationError,
    get_config_summary,
    load_config,
    save_config,
    validate_config,
)
from capillary.utils.json_utils import atomic_json_dump
from capillary.utils.logging import get_logger, log_parameters, setup_logging
from capillary.utils.schemas import validate_loops_file


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="capillary",
        description="Nailfold capillaroscopy image analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Detect loops and write them as JSON
  capillary detect nailfold.jpg --output loops.json

  # Print the deskew angle and save the straightened image
  capillary deskew nailfold.jpg --output straight.png

  # Enhance contrast for display
  capillary enhance nailfold.jpg --output enhanced.jpg

  # Show the configuration loaded from a file
  capillary --config device.json config
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Write logs to file",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON config file (default: $CAPILLARY_CONFIG)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # === DETECT command ===
    detect_parser = subparsers.add_parser(
        "detect",
        help="Detect outermost capillary loops",
    )
    detect_parser.add_argument("image", type=Path, help="Input image")
    detect_parser.add_argument("--output", "-o", type=Path, help="Output JSON (default: stdout)")

    tuning = detect_parser.add_argument_group("Detection Parameters")
    tuning.add_argument("--resize-width", type=int, help="Working width in px")
    tuning.add_argument("--window-size", type=int, help="Adaptive threshold window (odd)")
    tuning.add_argument("-c", type=float, help="Adaptive threshold constant")
    tuning.add_argument("--min-area", type=int, help="Minimum blob area in px")
    tuning.add_argument("--max-area", type=int, help="Maximum blob area in px")
    tuning.add_argument("--min-aspect-ratio", type=float, help="Minimum height/width ratio")
    tuning.add_argument("--min-solidity", type=float, help="Minimum area / bbox area")
    tuning.add_argument("--column-width", type=int, help="Skyline column width in px")

    # === DESKEW command ===
    deskew_parser = subparsers.add_parser(
        "deskew",
        help="Estimate the deskew angle",
    )
    deskew_parser.add_argument("image", type=Path, help="Input image")
    deskew_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Also write the rotated image here",
    )

    # === ENHANCE command ===
    enhance_parser = subparsers.add_parser(
        "enhance",
        help="Write a contrast-enhanced JPEG",
    )
    enhance_parser.add_argument("image", type=Path, help="Input image")
    enhance_parser.add_argument("--output", "-o", type=Path, required=True, help="Output JPEG")
    enhance_parser.add_argument("--quality", type=int, help="JPEG quality (default: 95)")

    # === CONFIG command ===
    config_parser = subparsers.add_parser(
        "config",
        help="Show the effective configuration",
    )
    config_parser.add_argument(
        "--config",
        type=Path,
        default=argparse.SUPPRESS,
        help="JSON config file",
    )
    config_parser.add_argument(
        "--save",
        type=Path,
        help="Write the merged configuration to this path",
    )

    # === VALIDATE command ===
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate loop result JSON files",
    )
    validate_parser.add_argument(
        "files",
        type=Path,
        nargs="+",
        help="JSON files to validate",
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on first validation error",
    )

    return parser


_DETECTION_ARGS = (
    "resize_width",
    "window_size",
    "c",
    "min_area",
    "max_area",
    "min_aspect_ratio",
    "min_solidity",
    "column_width",
)


def _build_detection_params(args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
    """Merge command-line overrides over the detection config section."""
    params = dict(config["detection"])
    for key in _DETECTION_ARGS:
        value = getattr(args, key, None)
        if value is not None:
            params[key] = value
    return params


def cmd_detect(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Execute the detect command."""
    logger = get_logger(__name__)

    params = _build_detection_params(args, config)
    log_parameters(logger, params, title="Detection Parameters")

    pixels = load_image(args.image)
    loops = CapillaryLoopStrategy.from_config(params).detect(pixels)

    pixels_per_micron = config["pixels_per_micron"]
    result = {
        "image": str(args.image),
        "width": int(pixels.shape[1]),
        "height": int(pixels.shape[0]),
        "pixels_per_micron": pixels_per_micron,
        "assessment_box_side_px": assessment_box_side_px(pixels_per_micron),
        "parameters": params,
        "loops": [loop.to_dict() for loop in loops],
    }

    if args.output:
        atomic_json_dump(result, args.output, indent=2)
        logger.info("Wrote %d loops to %s", len(loops), args.output)
    else:
        for loop in loops:
            print(f"{loop.x:.1f}\t{loop.y:.1f}\t{loop.morphology.value}")

    return 0


def cmd_deskew(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Execute the deskew command."""
    logger = get_logger(__name__)

    pixels = load_image(args.image)
    angle = calculate_skew_angle(pixels, **config["deskew"])
    print(f"{angle:.1f}")

    if args.output:
        save_image(rotate_image(pixels, angle), args.output)
        logger.info("Wrote rotated image to %s", args.output)

    return 0


def cmd_enhance(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Execute the enhance command."""
    logger = get_logger(__name__)

    params = dict(config["enhancement"])
    quality = params.pop("jpeg_quality")
    if args.quality is not None:
        quality = args.quality

    jpeg = enhance_image(args.image, quality=quality, **params)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(jpeg)
    logger.info("Wrote enhanced image to %s (%d bytes)", args.output, len(jpeg))
    return 0


def cmd_config(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Execute the config command."""
    print(get_config_summary(config))

    if args.save:
        path = save_config(args.save, config)
        get_logger(__name__).info("Saved configuration to %s", path)

    return 0 if validate_config(config)["valid"] else 1


def cmd_validate(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Execute the validate command."""
    logger = get_logger(__name__)

    errors = 0
    for file_path in args.files:
        try:
            result = validate_loops_file(file_path)
            logger.info("OK %s: %d loops", file_path, len(result.loops))
        except (FileNotFoundError, ValueError) as e:
            logger.error("FAILED %s: %s", file_path, e)
            errors += 1
            if args.strict:
                return 1

    if errors:
        logger.error("%d file(s) failed validation", errors)
        return 1

    logger.info("All %d file(s) valid", len(args.files))
    return 0


_COMMANDS = {
    "detect": cmd_detect,
    "deskew": cmd_deskew,
    "enhance": cmd_enhance,
    "config": cmd_config,
    "validate": cmd_validate,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file)
    logger = get_logger(__name__)

    if args.command is None:
        parser.print_help()
        return 0

    config = load_config(args.config)
    if args.command != "config":
        try:
            validate_config(config, raise_on_error=True)
        except ConfigValidationError as e:
            logger.error("%s", e)
            return 1

    try:
        return _COMMANDS[args.command](args, config)
    except (ImageLoadError, UnsupportedImageError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
