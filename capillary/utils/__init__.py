"""
Utility modules for the capillary pipeline.

Provides:
- Configuration management
- Logging utilities
- JSON helpers
- Calibration (pixel/micron) conversions
"""

from .config import (
    DEFAULT_CONFIG,
    DETECTION_DEFAULTS,
    DESKEW_DEFAULTS,
    ENHANCEMENT_DEFAULTS,
    ConfigValidationError,
    load_config,
    save_config,
    validate_config,
    get_config_summary,
    get_detection_defaults,
    get_deskew_defaults,
    get_enhancement_defaults,
)

from .logging import (
    get_logger,
    setup_logging,
    log_parameters,
    log_processing_start,
    log_processing_end,
    ProcessingTimer,
)

from .json_utils import (
    NumpyEncoder,
    sanitize_for_json,
    atomic_json_dump,
)

from .calibration import (
    ASSESSMENT_BOX_SIDE_UM,
    pixels_to_microns,
    microns_to_pixels,
    ruler_length_um,
    assessment_box_side_px,
)

__all__ = [
    # Config
    'DEFAULT_CONFIG',
    'DETECTION_DEFAULTS',
    'DESKEW_DEFAULTS',
    'ENHANCEMENT_DEFAULTS',
    'ConfigValidationError',
    'load_config',
    'save_config',
    'validate_config',
    'get_config_summary',
    'get_detection_defaults',
    'get_deskew_defaults',
    'get_enhancement_defaults',
    # Logging
    'get_logger',
    'setup_logging',
    'log_parameters',
    'log_processing_start',
    'log_processing_end',
    'ProcessingTimer',
    # JSON
    'NumpyEncoder',
    'sanitize_for_json',
    'atomic_json_dump',
    # Calibration
    'ASSESSMENT_BOX_SIDE_UM',
    'pixels_to_microns',
    'microns_to_pixels',
    'ruler_length_um',
    'assessment_box_side_px',
]
