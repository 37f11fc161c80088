"""
Utility modules for regionflow.

Provides:
- Logging utilities
- Configuration defaults, loading and validation
- JSON helpers (numpy-safe encoding, atomic writes)
- Region report schema validation (requires pydantic)
"""

from .logging import (
    get_logger,
    setup_logging,
    log_parameters,
    log_processing_start,
    log_processing_end,
    format_duration,
    ProcessingTimer,
)

from .config import (
    DEFAULT_CONFIG,
    THRESHOLD_METHODS,
    EDGE_METHODS,
    LOG_LEVELS,
    ConfigValidationError,
    load_config,
    configure_logging,
    save_config,
    validate_config,
    get_analysis_defaults,
    get_config_summary,
    get_cpu_worker_count,
    is_debug_enabled,
)

from .json_utils import (
    NumpyEncoder,
    sanitize_for_json,
    atomic_json_dump,
)

# Schemas import the measure package - import separately if needed
# from regionflow.utils.schemas import export_regions_json, load_regions_json

__all__ = [
    # Logging
    'get_logger',
    'setup_logging',
    'log_parameters',
    'log_processing_start',
    'log_processing_end',
    'format_duration',
    'ProcessingTimer',
    # Config
    'DEFAULT_CONFIG',
    'THRESHOLD_METHODS',
    'EDGE_METHODS',
    'LOG_LEVELS',
    'ConfigValidationError',
    'load_config',
    'configure_logging',
    'save_config',
    'validate_config',
    'get_analysis_defaults',
    'get_config_summary',
    'get_cpu_worker_count',
    'is_debug_enabled',
    # JSON
    'NumpyEncoder',
    'sanitize_for_json',
    'atomic_json_dump',
]
