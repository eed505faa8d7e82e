"""
Configuration module for the capillary image analysis pipeline.

Provides centralized defaults and config file loading/saving for:
- Automatic loop detection (thresholding, blob gates, skyline selection)
- Deskew angle search
- CLAHE enhancement

The detection defaults were tuned empirically against one capillaroscope's
images; treat them as starting points rather than derived constants.

Usage:
    from capillary.utils.config import load_config, save_config, DEFAULT_CONFIG

    # Load config with defaults
    config = load_config('/path/to/capillary.json')

    # Per-section defaults
    params = get_detection_defaults()
    params['min_area'] = 150

Environment Variables:
    CAPILLARY_CONFIG: Default config file used when no path is given
"""

import copy
import json
import os
from pathlib import Path
from typing import Dict, Any, Optional, List, Union, TypedDict, Tuple

from capillary.utils.json_utils import NumpyEncoder as _NumpyEncoder
from capillary.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# CONFIGURATION TYPE DEFINITIONS
# =============================================================================

class DetectionConfig(TypedDict, total=False):
    """
    Parameters of the automatic loop detector.

    Attributes:
        resize_width: Working width in pixels; images are rescaled to it.
        window_size: Adaptive threshold window (odd). Valid range: 3-101.
        c: Adaptive threshold constant added to the local mean.
        min_area: Minimum blob area in working-resolution pixels.
        max_area: Maximum blob area in working-resolution pixels.
        min_aspect_ratio: Minimum bounding-box height/width.
        min_solidity: Minimum area / bounding-box area.
        column_width: Skyline column width in working-resolution pixels.
    """
    resize_width: int
    window_size: int
    c: float
    min_area: int
    max_area: int
    min_aspect_ratio: float
    min_solidity: float
    column_width: int


class DeskewConfig(TypedDict, total=False):
    """
    Parameters of the skew-angle search.

    Attributes:
        max_dim: Longer side after downsampling. Valid range: 64-4096.
        angle_range: Coarse sweep covers [-angle_range, +angle_range] degrees.
        coarse_step: Coarse sweep step in degrees.
        fine_step: Fine sweep step in degrees (fine sweep spans +/- coarse_step).
    """
    max_dim: int
    angle_range: float
    coarse_step: float
    fine_step: float


class EnhancementConfig(TypedDict, total=False):
    """
    Parameters of the CLAHE enhancement pipeline.

    Attributes:
        clip_limit: CLAHE clip limit, multiple of the mean bin height.
        tile_size: CLAHE tile edge in pixels.
        sharpen_amount: Blend factor of the sharpened image (0-1).
        low_percentile: Auto-levels lower percentile (fraction).
        high_percentile: Auto-levels upper percentile (fraction).
        jpeg_quality: Quality of the re-encoded JPEG (1-100).
    """
    clip_limit: float
    tile_size: int
    sharpen_amount: float
    low_percentile: float
    high_percentile: float
    jpeg_quality: int


_VALIDATION_RULES: Dict[str, Dict[str, Any]] = {
    "detection": {
        "resize_width": {"min": 64, "max": 8192, "type": int},
        "window_size": {"min": 3, "max": 101, "type": int},
        "c": {"min": -255, "max": 255, "type": float},
        "min_area": {"min": 0, "max": 10_000_000, "type": int},
        "max_area": {"min": 1, "max": 10_000_000, "type": int},
        "min_aspect_ratio": {"min": 0.0, "max": 100.0, "type": float},
        "min_solidity": {"min": 0.0, "max": 1.0, "type": float},
        "column_width": {"min": 1, "max": 8192, "type": int},
    },
    "deskew": {
        "max_dim": {"min": 64, "max": 4096, "type": int},
        "angle_range": {"min": 0.0, "max": 90.0, "type": float},
        "coarse_step": {"min": 0.01, "max": 45.0, "type": float},
        "fine_step": {"min": 0.001, "max": 45.0, "type": float},
    },
    "enhancement": {
        "clip_limit": {"min": 0.0, "max": 256.0, "type": float},
        "tile_size": {"min": 2, "max": 1024, "type": int},
        "sharpen_amount": {"min": 0.0, "max": 1.0, "type": float},
        "low_percentile": {"min": 0.0, "max": 0.5, "type": float},
        "high_percentile": {"min": 0.5, "max": 1.0, "type": float},
        "jpeg_quality": {"min": 1, "max": 100, "type": int},
    },
    "pixels_per_micron": {"min": 1e-6, "max": 1e6, "type": float},
}


DETECTION_DEFAULTS: DetectionConfig = {
    "resize_width": 800,      # Process at lower resolution for speed
    "window_size": 15,
    "c": 2,
    "min_area": 100,          # Below this is thresholding noise
    "max_area": 2000,
    "min_aspect_ratio": 1.5,  # Capillaries are vertically elongated
    "min_solidity": 0.6,
    "column_width": 50,
}

DESKEW_DEFAULTS: DeskewConfig = {
    "max_dim": 512,
    "angle_range": 20.0,
    "coarse_step": 1.0,
    "fine_step": 0.1,
}

ENHANCEMENT_DEFAULTS: EnhancementConfig = {
    "clip_limit": 2.5,
    "tile_size": 8,
    "sharpen_amount": 0.6,
    "low_percentile": 0.01,
    "high_percentile": 0.99,
    "jpeg_quality": 95,
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "detection": DETECTION_DEFAULTS,
    "deskew": DESKEW_DEFAULTS,
    "enhancement": ENHANCEMENT_DEFAULTS,
    # Pixels per micron; supplied by the user's calibration, 1.0 until then
    "pixels_per_micron": 1.0,
}

DEFAULT_CONFIG_PATH = os.getenv("CAPILLARY_CONFIG", "")


def get_detection_defaults() -> Dict[str, Any]:
    """Return a copy of the loop detection defaults."""
    return dict(DETECTION_DEFAULTS)


def get_deskew_defaults() -> Dict[str, Any]:
    """Return a copy of the deskew defaults."""
    return dict(DESKEW_DEFAULTS)


def get_enhancement_defaults() -> Dict[str, Any]:
    """Return a copy of the enhancement defaults."""
    return dict(ENHANCEMENT_DEFAULTS)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """
    Recursively merge override dict into base dict (in-place).

    Nested dicts are merged key by key; all other values are deep-copied
    from override.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a JSON file merged over DEFAULT_CONFIG.

    Missing values use defaults. A missing or unreadable file yields the
    defaults and a logged warning.

    Args:
        config_path: Path to the JSON config file. Falls back to the
            CAPILLARY_CONFIG environment variable, then to pure defaults.

    Returns:
        Dict with merged configuration
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH or None
    if config_path is None:
        return config

    config_path = Path(config_path)
    if not config_path.exists():
        logger.warning("Config file not found, using defaults: %s", config_path)
        return config

    try:
        with open(config_path, 'r') as f:
            file_config = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not load config from %s: %s", config_path, e)
        return config

    if not isinstance(file_config, dict):
        logger.warning("Ignoring config %s: top level must be an object", config_path)
        return config

    _deep_merge(config, file_config)
    logger.debug("Loaded config from %s", config_path)
    return config


def save_config(config_path: Union[str, Path], config: Dict[str, Any]) -> Path:
    """
    Save configuration as JSON.

    Args:
        config_path: Target file path (parent directories are created)
        config: Configuration dict to save

    Returns:
        Path to saved config file
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        json.dump(config, f, cls=_NumpyEncoder, indent=2)

    return config_path


# =============================================================================
# CONFIGURATION VALIDATION
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


def _validate_range(
    value: Any,
    key: str,
    min_val: Union[int, float],
    max_val: Union[int, float],
    expected_type: Union[type, Tuple[type, ...]]
) -> List[str]:
    """
    Validate a single value is within expected range and type.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []

    # bool is an int subclass but never a valid numeric setting
    if isinstance(value, bool):
        errors.append(f"{key}: expected numeric type, got bool")
        return errors

    if expected_type == float:
        if not isinstance(value, (int, float)):
            errors.append(f"{key}: expected numeric type, got {type(value).__name__}")
            return errors
    elif not isinstance(value, expected_type):
        errors.append(f"{key}: expected {expected_type.__name__}, got {type(value).__name__}")
        return errors

    if value < min_val or value > max_val:
        errors.append(f"{key}: value {value} out of range [{min_val}, {max_val}]")

    return errors


def _validate_section(section: str, values: Dict[str, Any]) -> List[str]:
    errors = []
    for key, rule in _VALIDATION_RULES[section].items():
        if key in values:
            errors.extend(_validate_range(
                values[key], f"{section}.{key}",
                rule["min"], rule["max"], rule["type"]
            ))
    return errors


def validate_config(
    config: Optional[Dict[str, Any]] = None,
    raise_on_error: bool = False
) -> Dict[str, Union[bool, List[str]]]:
    """
    Validate a configuration dict against expected types and ranges.

    Besides per-key range checks this verifies the cross-key constraints:
    the threshold window is odd, min_area <= max_area, and the auto-levels
    percentiles are ordered.

    Args:
        config: Config dict shaped like DEFAULT_CONFIG. If None, validates
            DEFAULT_CONFIG.
        raise_on_error: If True, raises ConfigValidationError on the first error.

    Returns:
        Dict with validation results:
            - 'valid': bool, True if all validations passed
            - 'errors': List of error message strings
            - 'warnings': List of warning message strings

    Raises:
        ConfigValidationError: If raise_on_error=True and validation fails

    Example:
        >>> result = validate_config({"detection": {"window_size": 14}})
        >>> result['errors']
        ['detection.window_size: must be odd, got 14']
    """
    errors: List[str] = []
    warnings: List[str] = []

    if config is None:
        config = DEFAULT_CONFIG

    detection = config.get("detection", {})
    deskew = config.get("deskew", {})
    enhancement = config.get("enhancement", {})

    for section, values in (("detection", detection), ("deskew", deskew),
                            ("enhancement", enhancement)):
        if not isinstance(values, dict):
            errors.append(f"{section}: expected object, got {type(values).__name__}")
            continue
        errors.extend(_validate_section(section, values))

    if "pixels_per_micron" in config:
        rule = _VALIDATION_RULES["pixels_per_micron"]
        errors.extend(_validate_range(
            config["pixels_per_micron"], "pixels_per_micron",
            rule["min"], rule["max"], rule["type"]
        ))

    if isinstance(detection, dict):
        window = detection.get("window_size")
        if isinstance(window, int) and not isinstance(window, bool) and window % 2 == 0:
            errors.append(f"detection.window_size: must be odd, got {window}")

        min_area = detection.get("min_area")
        max_area = detection.get("max_area")
        if isinstance(min_area, (int, float)) and isinstance(max_area, (int, float)):
            if min_area > max_area:
                errors.append(
                    f"detection: min_area ({min_area}) must not exceed max_area ({max_area})"
                )

        column_width = detection.get("column_width")
        resize_width = detection.get("resize_width")
        if (isinstance(column_width, (int, float)) and isinstance(resize_width, (int, float))
                and column_width > resize_width):
            warnings.append(
                "detection.column_width > detection.resize_width: "
                "skyline selection will keep a single loop"
            )

    if isinstance(deskew, dict):
        fine = deskew.get("fine_step")
        coarse = deskew.get("coarse_step")
        if isinstance(fine, (int, float)) and isinstance(coarse, (int, float)) and fine > coarse:
            warnings.append("deskew.fine_step > deskew.coarse_step: fine sweep is coarser")

    if isinstance(enhancement, dict):
        low = enhancement.get("low_percentile")
        high = enhancement.get("high_percentile")
        if isinstance(low, (int, float)) and isinstance(high, (int, float)) and low >= high:
            errors.append(
                f"enhancement: low_percentile ({low}) must be less than high_percentile ({high})"
            )

    result = {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }

    if raise_on_error and errors:
        raise ConfigValidationError(f"Configuration validation failed: {errors[0]}")

    return result


def get_config_summary(
    config: Optional[Dict[str, Any]] = None,
    include_validation: bool = True
) -> str:
    """
    Generate a formatted summary of configuration values.

    Args:
        config: Config dict. If None, uses DEFAULT_CONFIG.
        include_validation: If True, appends validation status to summary.

    Returns:
        Formatted multi-line string with configuration summary.
    """
    if config is None:
        config = DEFAULT_CONFIG

    lines = [
        "=" * 50,
        "Configuration Summary",
        "=" * 50,
        "",
    ]

    titles = (
        ("detection", "Loop Detection (working-resolution px):"),
        ("deskew", "Deskew:"),
        ("enhancement", "Enhancement:"),
    )
    for section, title in titles:
        values = config.get(section)
        if not isinstance(values, dict):
            continue
        lines.append(title)
        for key, value in values.items():
            lines.append(f"  {key}: {value}")
        lines.append("")

    if "pixels_per_micron" in config:
        lines.append(f"Calibration: {config['pixels_per_micron']} px/um")
        lines.append("")

    if include_validation:
        result = validate_config(config)
        lines.append("-" * 50)
        if result["valid"]:
            lines.append("Validation: PASSED")
        else:
            lines.append("Validation: FAILED")
            for error in result["errors"]:
                lines.append(f"  ERROR: {error}")
        for warning in result["warnings"]:
            lines.append(f"  WARNING: {warning}")
        lines.append("")

    return "\n".join(lines)
