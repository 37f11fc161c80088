"""
Configuration defaults and config file loading/saving for regionflow.

Configuration is always a value passed per call (a dict or an
AnalysisConfig); nothing here is mutated at runtime. DEFAULT_CONFIG documents
the defaults, load_config() overlays a JSON file on top of a deep copy of
them.

Usage:
    from regionflow.utils.config import configure_logging, load_config, save_config, validate_config

    config = load_config('/path/to/run/config.json')
    configure_logging(config, log_dir='/path/to/run/logs')
    result = validate_config(config)
    if not result['valid']:
        print(result['errors'])

Environment Variables:
    REGIONFLOW_LOG_LEVEL: Default log level (see utils.logging.setup_logging)
    REGIONFLOW_DEBUG: When set to 1/true/yes, transforms verify they did not
        mutate their input
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, TypedDict, Union

from regionflow.core.errors import RegionflowError
from regionflow.utils.json_utils import NumpyEncoder, atomic_json_dump
from regionflow.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


# =============================================================================
# CONFIGURATION TYPE DEFINITIONS
# =============================================================================

class AnalysisSection(TypedDict, total=False):
    """
    Parameters of the canonical region analysis pipeline.

    Attributes:
        sigma: Gaussian smoothing before feature detection. Valid range: 0-50.
        low_threshold: Canny low hysteresis threshold (None = automatic).
        high_threshold: Canny high hysteresis threshold (None = automatic).
        threshold_method: Global threshold method. One of otsu, li, yen, mean.
        edge_method: Foreground detection. One of threshold, canny, sobel.
        fill_holes: Fill holes enclosed by detected edges/foreground.
        max_hole_area_fraction: Holes larger than this fraction of the
            object are kept open. Valid range: 0-1.
        closing_radius: Closing of edge maps before filling. Valid range: 0-100.
        min_size: Remove objects smaller than this many pixels. 0 disables.
        connectivity: Labeling connectivity (1..ndim, None = full).
        channel_axis: Channel axis of the input (None = single-channel).
        require_regions: Raise EmptyLabelError when nothing is found.
    """
    sigma: float
    low_threshold: Optional[float]
    high_threshold: Optional[float]
    threshold_method: str
    edge_method: str
    fill_holes: bool
    max_hole_area_fraction: float
    closing_radius: int
    min_size: int
    connectivity: Optional[int]
    channel_axis: Optional[int]
    require_regions: bool


class BatchSection(TypedDict, total=False):
    """
    Batch execution settings, read by processing.analysis.analyze_batch().

    Attributes:
        num_workers: Worker threads. Valid range: 1-64.
        progress: Show a tqdm progress bar.
    """
    num_workers: int
    progress: bool


class LoggingSection(TypedDict, total=False):
    """
    Logging settings, applied by configure_logging().

    Attributes:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
            (None = $REGIONFLOW_LOG_LEVEL, then INFO).
    """
    level: Optional[str]


THRESHOLD_METHODS = ('otsu', 'li', 'yen', 'mean')
EDGE_METHODS = ('threshold', 'canny', 'sobel')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

DEFAULT_CONFIG: Dict[str, Any] = {
    "analysis": {
        "sigma": 2.0,
        "low_threshold": None,
        "high_threshold": None,
        "threshold_method": "otsu",
        "edge_method": "threshold",
        "fill_holes": True,
        "max_hole_area_fraction": 1.0,
        "closing_radius": 1,
        "min_size": 0,
        "connectivity": None,
        "channel_axis": None,
        "require_regions": False,
    },
    "batch": {
        "num_workers": 1,
        "progress": False,
    },
    "logging": {
        "level": None,
    },
}


# Validation constraints for each config section
_VALIDATION_RULES: Dict[str, Dict[str, Dict[str, Any]]] = {
    "analysis": {
        "sigma": {"min": 0.0, "max": 50.0, "type": float},
        "low_threshold": {"min": 0.0, "max": float("inf"), "type": float, "nullable": True},
        "high_threshold": {"min": 0.0, "max": float("inf"), "type": float, "nullable": True},
        "threshold_method": {"choices": THRESHOLD_METHODS},
        "edge_method": {"choices": EDGE_METHODS},
        "fill_holes": {"type": bool},
        "max_hole_area_fraction": {"min": 0.0, "max": 1.0, "type": float},
        "closing_radius": {"min": 0, "max": 100, "type": int},
        "min_size": {"min": 0, "max": 10**9, "type": int},
        "connectivity": {"min": 1, "max": 3, "type": int, "nullable": True},
        "channel_axis": {"min": -4, "max": 3, "type": int, "nullable": True},
        "require_regions": {"type": bool},
    },
    "batch": {
        "num_workers": {"min": 1, "max": 64, "type": int},
        "progress": {"type": bool},
    },
    "logging": {
        "level": {"choices": LOG_LEVELS, "nullable": True},
    },
}

# Use this fraction of the available cores when num_workers is not given
CPU_UTILIZATION_FRACTION = 0.8


class ConfigValidationError(RegionflowError, ValueError):
    """Raised when configuration validation fails."""
    pass


def is_debug_enabled() -> bool:
    """Whether REGIONFLOW_DEBUG is set to a truthy value (read on every call)."""
    return os.getenv("REGIONFLOW_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")


def get_analysis_defaults() -> Dict[str, Any]:
    """Return a copy of the default analysis parameters."""
    return copy.deepcopy(DEFAULT_CONFIG["analysis"])


def get_cpu_worker_count(total_cores: Optional[int] = None) -> int:
    """
    Calculate a safe number of worker threads based on available cores.

    Args:
        total_cores: Total CPU cores available. If None, uses os.cpu_count()

    Returns:
        Number of workers to use (80% of total cores, at least 1)
    """
    if total_cores is None:
        total_cores = os.cpu_count() or 1
    return max(1, int(total_cores * CPU_UTILIZATION_FRACTION))


def _validate_value(value: Any, key: str, rule: Dict[str, Any]) -> List[str]:
    """
    Validate a single value against its rule.

    Args:
        value: The value to validate
        key: Dotted config key (for error messages)
        rule: Dict with optional min, max, type, choices, nullable entries

    Returns:
        List of error messages (empty if valid)
    """
    errors = []

    if value is None:
        if not rule.get("nullable", False):
            errors.append(f"{key}: must not be null")
        return errors

    if "choices" in rule:
        if value not in rule["choices"]:
            errors.append(f"{key}: '{value}' not in {list(rule['choices'])}")
        return errors

    expected_type = rule.get("type")
    if expected_type is bool:
        if not isinstance(value, bool):
            errors.append(f"{key}: expected bool, got {type(value).__name__}")
        return errors
    # bool is an int subclass; reject it for numeric fields
    if isinstance(value, bool):
        errors.append(f"{key}: expected numeric type, got bool")
        return errors
    if expected_type is float:
        if not isinstance(value, (int, float)):
            errors.append(f"{key}: expected numeric type, got {type(value).__name__}")
            return errors
    elif expected_type is not None and not isinstance(value, expected_type):
        errors.append(f"{key}: expected {expected_type.__name__}, got {type(value).__name__}")
        return errors

    if "min" in rule and "max" in rule:
        if value < rule["min"] or value > rule["max"]:
            errors.append(f"{key}: value {value} out of range [{rule['min']}, {rule['max']}]")

    return errors


def validate_config(
    config: Optional[Dict[str, Any]] = None,
    raise_on_error: bool = False,
) -> Dict[str, Union[bool, List[str]]]:
    """
    Validate a configuration dict against expected types and ranges.

    Args:
        config: Config dict shaped like DEFAULT_CONFIG (sections may be
            partial). If None, validates DEFAULT_CONFIG.
        raise_on_error: If True, raise ConfigValidationError on failure.

    Returns:
        Dict with validation results:
            - 'valid': bool, True if all validations passed
            - 'errors': List of error message strings
            - 'warnings': List of warning message strings

    Raises:
        ConfigValidationError: If raise_on_error=True and validation fails

    Example:
        >>> result = validate_config({"analysis": {"sigma": -1}})
        >>> result['errors']
        ['analysis.sigma: value -1 out of range [0.0, 50.0]']
    """
    errors: List[str] = []
    warnings: List[str] = []

    if config is None:
        config = DEFAULT_CONFIG

    for section, rules in _VALIDATION_RULES.items():
        values = config.get(section)
        if values is None:
            continue
        if not isinstance(values, dict):
            errors.append(f"{section}: expected a mapping, got {type(values).__name__}")
            continue
        for key, value in values.items():
            if key not in rules:
                warnings.append(f"{section}.{key}: unknown option (ignored)")
                continue
            errors.extend(_validate_value(value, f"{section}.{key}", rules[key]))

    for section in config:
        if section not in _VALIDATION_RULES:
            warnings.append(f"{section}: unknown section (ignored)")

    analysis = config.get("analysis") or {}
    low = analysis.get("low_threshold")
    high = analysis.get("high_threshold")
    if isinstance(low, (int, float)) and isinstance(high, (int, float)) and low > high:
        errors.append(f"analysis.low_threshold: {low} is greater than high_threshold {high}")

    result = {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }

    if raise_on_error and errors:
        raise ConfigValidationError(f"Configuration validation failed: {errors[0]}")

    return result


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """
    Recursively merge override dict into base dict (in-place).

    For nested dicts, merges keys rather than replacing the entire dict.
    For all other types (including lists), override values are deep-copied
    to prevent shared mutable references between base and override.

    Args:
        base: Base dictionary to merge into (modified in-place)
        override: Dictionary with values to overlay on base
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


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    validate: bool = True,
) -> Dict[str, Any]:
    """
    Load configuration, merged over DEFAULT_CONFIG.

    Args:
        config_path: JSON config file. Missing files fall back to defaults
            with a warning; unreadable or malformed files raise.
        overrides: Dict merged last (e.g. from command line arguments)
        validate: Run validate_config(raise_on_error=True) on the result

    Returns:
        Dict with merged configuration

    Raises:
        ConfigValidationError: If the file is malformed or validation fails
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            try:
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                raise ConfigValidationError(f"Could not load config from {config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigValidationError(f"Config file {config_path} must contain a JSON object")
            _deep_merge(config, file_config)
            logger.debug("Loaded config from %s", config_path)
        else:
            logger.warning("Config file %s not found, using defaults", config_path)

    if overrides:
        _deep_merge(config, overrides)

    if validate:
        result = validate_config(config, raise_on_error=True)
        for warning in result["warnings"]:
            logger.warning("Config: %s", warning)

    return config


def save_config(
    config: Dict[str, Any],
    config_path: Union[str, Path],
) -> Path:
    """
    Save configuration as JSON (atomic replace).

    Args:
        config: Configuration dict to save
        config_path: Destination file

    Returns:
        Path to saved config file
    """
    config_path = Path(config_path)
    atomic_json_dump(config, config_path, cls=NumpyEncoder, indent=2)
    return config_path


def get_config_summary(config: Dict[str, Any]) -> List[Tuple[str, Any]]:
    """Flatten a config into (dotted_key, value) pairs for log_parameters()."""
    items = []
    for section, values in config.items():
        if isinstance(values, dict):
            items.extend((f"{section}.{key}", value) for key, value in values.items())
        else:
            items.append((section, values))
    return items


def configure_logging(config: Dict[str, Any], **kwargs) -> logging.Logger:
    """
    Call setup_logging() with the level from a loaded config.

    Args:
        config: Config dict such as load_config() returns
        **kwargs: Passed through to setup_logging (log_file, console, ...)

    Returns:
        Root logger instance
    """
    level = (config.get("logging") or {}).get("level")
    return setup_logging(level=level, **kwargs)
