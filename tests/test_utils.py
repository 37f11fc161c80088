"""
Unit tests for the utility modules of regionflow.

Tests the following modules:
- regionflow/utils/config.py - Configuration defaults, loading and validation
- regionflow/utils/logging.py - Logger setup and processing timers
- regionflow/utils/json_utils.py - numpy-safe JSON encoding and atomic writes
- regionflow/utils/schemas.py - Region report export and validation

Run with: pytest tests/test_utils.py -v
"""

import sys
import os
import logging
from enum import Enum
from pathlib import Path
from unittest import TestCase
from unittest.mock import MagicMock, patch
import tempfile
import json

import numpy as np

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# CONFIG MODULE TESTS
# =============================================================================

class TestValidateConfig(TestCase):
    """Tests for validate_config() function in config module."""

    def test_default_config_is_valid(self):
        """Test that DEFAULT_CONFIG passes its own validation."""
        from regionflow.utils.config import validate_config

        result = validate_config()

        self.assertTrue(result['valid'])
        self.assertEqual(result['errors'], [])
        self.assertEqual(result['warnings'], [])

    def test_out_of_range_value(self):
        """Test the error message for a value outside its range."""
        from regionflow.utils.config import validate_config

        result = validate_config({"analysis": {"sigma": -1}})

        self.assertFalse(result['valid'])
        self.assertEqual(result['errors'], ['analysis.sigma: value -1 out of range [0.0, 50.0]'])

    def test_bool_rejected_for_numeric_field(self):
        """Test that bool is not accepted where a number is expected."""
        from regionflow.utils.config import validate_config

        result = validate_config({"analysis": {"min_size": True}})

        self.assertFalse(result['valid'])
        self.assertIn('expected numeric type, got bool', result['errors'][0])

    def test_invalid_choice(self):
        """Test that unknown method names are reported."""
        from regionflow.utils.config import validate_config

        result = validate_config({"analysis": {"edge_method": "laplace"}})

        self.assertFalse(result['valid'])
        self.assertIn('analysis.edge_method', result['errors'][0])

    def test_nullable_fields(self):
        """Test that nullable fields accept None and others do not."""
        from regionflow.utils.config import validate_config

        self.assertTrue(validate_config({"analysis": {"connectivity": None}})['valid'])
        self.assertFalse(validate_config({"analysis": {"sigma": None}})['valid'])

    def test_threshold_order(self):
        """Test that low_threshold > high_threshold is an error."""
        from regionflow.utils.config import validate_config

        result = validate_config({"analysis": {"low_threshold": 0.5, "high_threshold": 0.2}})

        self.assertFalse(result['valid'])

    def test_unknown_keys_warn(self):
        """Test that unknown keys and sections only produce warnings."""
        from regionflow.utils.config import validate_config

        result = validate_config({"analysis": {"radius": 3}, "plotting": {}})

        self.assertTrue(result['valid'])
        self.assertEqual(len(result['warnings']), 2)

    def test_all_analysis_fields_known(self):
        """Test that every AnalysisConfig field is a validated config key."""
        from dataclasses import fields
        from regionflow.processing import AnalysisConfig
        from regionflow.utils.config import DEFAULT_CONFIG, validate_config

        names = {f.name for f in fields(AnalysisConfig)}
        self.assertEqual(names, set(DEFAULT_CONFIG["analysis"]))

        result = validate_config({"analysis": {"closing_radius": 2, "channel_axis": -1}})
        self.assertTrue(result['valid'])
        self.assertEqual(result['warnings'], [])
        self.assertFalse(validate_config({"analysis": {"closing_radius": -1}})['valid'])

    def test_logging_level_choices(self):
        """Test that the logging level is a known name or null."""
        from regionflow.utils.config import validate_config

        self.assertTrue(validate_config({"logging": {"level": None}})['valid'])
        self.assertFalse(validate_config({"logging": {"level": "LOUD"}})['valid'])

    def test_raise_on_error(self):
        """Test that raise_on_error raises ConfigValidationError."""
        from regionflow.utils.config import validate_config, ConfigValidationError

        with self.assertRaises(ConfigValidationError):
            validate_config({"batch": {"num_workers": 0}}, raise_on_error=True)


class TestLoadSaveConfig(TestCase):
    """Tests for load_config() and save_config()."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "config.json"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_no_path_returns_defaults(self):
        """Test that load_config() without a file equals DEFAULT_CONFIG."""
        from regionflow.utils.config import load_config, DEFAULT_CONFIG

        config = load_config()

        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertIsNot(config, DEFAULT_CONFIG)

    def test_partial_file_merged_over_defaults(self):
        """Test that a partial file overrides only the keys it names."""
        from regionflow.utils.config import load_config

        self.path.write_text(json.dumps({"analysis": {"sigma": 1.0}}))
        config = load_config(self.path)

        self.assertEqual(config['analysis']['sigma'], 1.0)
        self.assertEqual(config['analysis']['threshold_method'], 'otsu')
        self.assertEqual(config['batch']['num_workers'], 1)

    def test_overrides_applied_last(self):
        """Test that overrides win over file values."""
        from regionflow.utils.config import load_config

        self.path.write_text(json.dumps({"analysis": {"sigma": 1.0}}))
        config = load_config(self.path, overrides={"analysis": {"sigma": 4.0}})

        self.assertEqual(config['analysis']['sigma'], 4.0)

    def test_missing_file_uses_defaults(self):
        """Test that a missing file falls back to defaults."""
        from regionflow.utils.config import load_config, DEFAULT_CONFIG

        config = load_config(Path(self.temp_dir.name) / "absent.json")

        self.assertEqual(config, DEFAULT_CONFIG)

    def test_malformed_file_raises(self):
        """Test that malformed JSON raises ConfigValidationError."""
        from regionflow.utils.config import load_config, ConfigValidationError

        self.path.write_text("{not json")

        with self.assertRaises(ConfigValidationError):
            load_config(self.path)

    def test_invalid_values_raise(self):
        """Test that invalid file values fail validation."""
        from regionflow.utils.config import load_config, ConfigValidationError

        self.path.write_text(json.dumps({"analysis": {"sigma": -3}}))

        with self.assertRaises(ConfigValidationError):
            load_config(self.path)

    def test_save_then_load(self):
        """Test that a saved config loads back unchanged."""
        from regionflow.utils.config import load_config, save_config

        config = load_config(overrides={"analysis": {"edge_method": "canny", "min_size": 25}})
        save_config(config, self.path)

        self.assertEqual(load_config(self.path), config)

    def test_defaults_not_mutated(self):
        """Test that loading with overrides leaves DEFAULT_CONFIG alone."""
        from regionflow.utils.config import load_config, DEFAULT_CONFIG

        load_config(overrides={"analysis": {"sigma": 9.0}})

        self.assertEqual(DEFAULT_CONFIG['analysis']['sigma'], 2.0)


class TestConfigHelpers(TestCase):
    """Tests for small config helpers."""

    def test_get_cpu_worker_count(self):
        """Test the 80% core rule."""
        from regionflow.utils.config import get_cpu_worker_count

        self.assertEqual(get_cpu_worker_count(10), 8)
        self.assertEqual(get_cpu_worker_count(1), 1)
        self.assertGreaterEqual(get_cpu_worker_count(), 1)

    def test_is_debug_enabled(self):
        """Test that REGIONFLOW_DEBUG is read on every call."""
        from regionflow.utils.config import is_debug_enabled

        with patch.dict(os.environ, {"REGIONFLOW_DEBUG": "1"}):
            self.assertTrue(is_debug_enabled())
        with patch.dict(os.environ, {"REGIONFLOW_DEBUG": "no"}):
            self.assertFalse(is_debug_enabled())

    def test_config_summary(self):
        """Test flattening to dotted keys."""
        from regionflow.utils.config import get_config_summary

        summary = dict(get_config_summary({"analysis": {"sigma": 2.0}, "name": "run1"}))

        self.assertEqual(summary, {"analysis.sigma": 2.0, "name": "run1"})

    def test_analysis_defaults_are_copies(self):
        """Test that get_analysis_defaults() returns an independent dict."""
        from regionflow.utils.config import get_analysis_defaults, DEFAULT_CONFIG

        defaults = get_analysis_defaults()
        defaults['sigma'] = 100

        self.assertEqual(DEFAULT_CONFIG['analysis']['sigma'], 2.0)


# =============================================================================
# LOGGING MODULE TESTS
# =============================================================================

class TestLogging(TestCase):
    """Tests for logging helpers."""

    def test_get_logger_is_cached(self):
        """Test that get_logger returns the same instance per name."""
        from regionflow.utils.logging import get_logger

        self.assertIs(get_logger("regionflow.test"), get_logger("regionflow.test"))

    def test_format_duration(self):
        """Test human readable durations."""
        from regionflow.utils.logging import format_duration

        self.assertEqual(format_duration(0.25), "250.0 ms")
        self.assertEqual(format_duration(5), "5.0 seconds")
        self.assertEqual(format_duration(90), "1.5 minutes")
        self.assertEqual(format_duration(7200), "2.0 hours")

    def test_processing_timer_records_duration(self):
        """Test that ProcessingTimer measures and logs."""
        from regionflow.utils.logging import ProcessingTimer

        logger = MagicMock()
        with ProcessingTimer(logger, "work") as timer:
            pass

        self.assertIsNotNone(timer.duration)
        self.assertGreaterEqual(timer.duration, 0.0)
        self.assertEqual(logger.log.call_count, 2)

    def test_processing_timer_reraises(self):
        """Test that exceptions are logged and never swallowed."""
        from regionflow.utils.logging import ProcessingTimer

        logger = MagicMock()
        with self.assertRaises(RuntimeError):
            with ProcessingTimer(logger, "work"):
                raise RuntimeError("boom")

        logger.error.assert_called_once()
        args = logger.error.call_args[0]
        self.assertIn("boom", args[0] % args[1:])

    def test_setup_logging_writes_file(self):
        """Test that setup_logging adds a file handler."""
        from regionflow.utils.logging import setup_logging

        root = logging.getLogger()
        saved_handlers = list(root.handlers)
        saved_level = root.level
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "run.log"
            try:
                with patch("regionflow.utils.logging._initialized", False):
                    setup_logging(level="DEBUG", log_file=log_path, console=False)
                logging.getLogger("regionflow.test").info("hello file")
                for handler in root.handlers:
                    handler.flush()
                self.assertIn("hello file", log_path.read_text())
            finally:
                for handler in list(root.handlers):
                    if handler not in saved_handlers:
                        root.removeHandler(handler)
                        handler.close()
                root.setLevel(saved_level)

    def test_setup_logging_env_level(self):
        """Test that REGIONFLOW_LOG_LEVEL is the default level."""
        from regionflow.utils.logging import setup_logging

        root = logging.getLogger()
        saved_level = root.level
        try:
            with patch.dict(os.environ, {"REGIONFLOW_LOG_LEVEL": "WARNING"}), \
                    patch("regionflow.utils.logging._initialized", False):
                setup_logging(console=False)
            self.assertEqual(root.level, logging.WARNING)
        finally:
            root.setLevel(saved_level)

    def test_configure_logging_uses_config_level(self):
        """Test that the logging section of a loaded config sets the level."""
        from regionflow.utils.config import configure_logging, load_config

        root = logging.getLogger()
        saved_level = root.level
        try:
            config = load_config(overrides={"logging": {"level": "ERROR"}})
            with patch("regionflow.utils.logging._initialized", False):
                configure_logging(config, console=False)
            self.assertEqual(root.level, logging.ERROR)
        finally:
            root.setLevel(saved_level)

    def test_configure_logging_default_falls_back_to_env(self):
        """Test that a null level defers to REGIONFLOW_LOG_LEVEL."""
        from regionflow.utils.config import configure_logging, load_config

        root = logging.getLogger()
        saved_level = root.level
        try:
            with patch.dict(os.environ, {"REGIONFLOW_LOG_LEVEL": "WARNING"}), \
                    patch("regionflow.utils.logging._initialized", False):
                configure_logging(load_config(), console=False)
            self.assertEqual(root.level, logging.WARNING)
        finally:
            root.setLevel(saved_level)

    def test_log_parameters_summarizes_long_values(self):
        """Test that long lists are logged as a count."""
        from regionflow.utils.logging import log_parameters

        logger = MagicMock()
        log_parameters(logger, {"sigma": 2.0, "labels": list(range(10))}, title="Run")

        lines = [c[0][0] % c[0][1:] for c in logger.info.call_args_list]
        self.assertIn("Run", lines)
        self.assertIn("  sigma: 2.0", lines)
        self.assertIn("  labels: [10 items]", lines)

    def test_processing_start_and_end(self):
        """Test the start/end lines with keyword details."""
        from regionflow.utils.logging import log_processing_end, log_processing_start

        logger = MagicMock()
        log_processing_start(logger, "batch", n_images=3)
        log_processing_end(logger, "batch", 0.5, n_regions=7)

        lines = [c[0][0] % c[0][1:] for c in logger.info.call_args_list]
        self.assertEqual(lines, [
            "Starting: batch", "  n_images: 3",
            "Completed: batch in 500.0 ms", "  n_regions: 7",
        ])

    def test_colored_formatter_leaves_record_plain(self):
        """Test that coloring does not leak into the shared record."""
        from regionflow.utils.logging import ColoredFormatter

        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        output = ColoredFormatter("%(levelname)s %(message)s").format(record)

        self.assertIn("\033[32m", output)
        self.assertEqual(record.levelname, "INFO")


# =============================================================================
# JSON UTILS TESTS
# =============================================================================

class _Color(Enum):
    RED = 'red'


class TestJsonUtils(TestCase):
    """Tests for NumpyEncoder, sanitize_for_json and atomic_json_dump."""

    def test_encoder_handles_numpy(self):
        """Test that numpy scalars, arrays and dtypes serialize."""
        from regionflow.utils.json_utils import NumpyEncoder

        data = {
            "int": np.int64(3),
            "float": np.float32(0.5),
            "bool": np.bool_(True),
            "array": np.arange(3),
            "dtype": np.dtype(np.uint16),
            "enum": _Color.RED,
            "nan32": np.float32("nan"),
        }
        decoded = json.loads(json.dumps(data, cls=NumpyEncoder))

        self.assertEqual(decoded, {
            "int": 3, "float": 0.5, "bool": True, "array": [0, 1, 2],
            "dtype": "uint16", "enum": "red", "nan32": None,
        })

    def test_sanitize_replaces_nan(self):
        """Test that Python NaN/inf become None recursively."""
        from regionflow.utils.json_utils import sanitize_for_json

        result = sanitize_for_json({"a": [float("nan"), 1.0], "b": (float("inf"),)})

        self.assertEqual(result, {"a": [None, 1.0], "b": [None]})

    def test_atomic_dump(self):
        """Test that atomic_json_dump writes complete files and no temp files."""
        from regionflow.utils.json_utils import atomic_json_dump

        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "nested" / "out.json"
            atomic_json_dump({"value": np.int32(7), "bad": float("nan")}, path)

            self.assertEqual(json.loads(path.read_text()), {"value": 7, "bad": None})
            self.assertEqual([p.name for p in path.parent.iterdir()], ["out.json"])


# =============================================================================
# SCHEMAS TESTS
# =============================================================================

def _two_block_records():
    from regionflow.measure import label, measure_regions

    mask = np.zeros((20, 20), dtype=bool)
    mask[2:5, 2:5] = True
    mask[10:13, 12:15] = True
    intensity = np.where(mask, 200, 10).astype(np.uint8)
    return measure_regions(label(mask), intensity_image=intensity), mask.shape


class TestRegionSchemas(TestCase):
    """Tests for region report export, validation and loading."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "regions.json"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_export_and_reload(self):
        """Test that exported records rebuild into equal RegionRecords."""
        from regionflow.utils.schemas import export_regions_json, load_regions_json, records_from_report

        records, shape = _two_block_records()
        export_regions_json(records, self.path, source_shape=shape, metadata={"sample": "s1"})
        report = load_regions_json(self.path)

        self.assertEqual(report.n_regions, 2)
        self.assertEqual(report.source_shape, [20, 20])
        self.assertEqual(report.metadata, {"sample": "s1"})
        self.assertEqual(records_from_report(report), records)

    def test_multichannel_export_and_reload(self):
        """Test that per-channel statistics rebuild into equal RegionRecords."""
        from regionflow.measure import label, measure_regions
        from regionflow.utils.schemas import export_regions_json, load_regions_json, records_from_report

        mask = np.zeros((20, 20), dtype=bool)
        mask[2:5, 2:5] = True
        intensity = np.zeros((20, 20, 3), dtype=np.uint8)
        intensity[mask] = [255, 102, 51]
        records = measure_regions(label(mask), intensity_image=intensity)
        export_regions_json(records, self.path)

        raw = json.loads(self.path.read_text())
        self.assertEqual(raw["regions"][0]["intensity"]["weighted_centroid"], [3.0] * 6)
        self.assertEqual(records_from_report(load_regions_json(self.path)), records)

    def test_nested_intensity_rejected(self):
        """Test that intensity values must be scalars or flat lists."""
        from regionflow.utils.schemas import validate_region_report

        region = {"label": 1, "area": 1, "bbox": [0, 0, 1, 1], "centroid": [0.0, 0.0],
                  "intensity": {"weighted_centroid": [[3.0, 3.0], [3.0, 3.0]]}}
        with self.assertRaises(ValueError):
            validate_region_report({"n_regions": 1, "regions": [region]})

    def test_empty_report(self):
        """Test that an empty record tuple is a valid report."""
        from regionflow.utils.schemas import build_region_report

        report = build_region_report(())

        self.assertEqual(report.n_regions, 0)
        self.assertEqual(report.regions, [])

    def test_nan_moments_exported_as_null(self):
        """Test that NaN descriptors survive export as null and reload as NaN."""
        from regionflow.measure import RegionRecord
        from regionflow.utils.schemas import export_regions_json, load_regions_json, records_from_report

        record = RegionRecord(label=1, area=1, bbox=(0, 0, 1, 1), centroid=(0.0, 0.0),
                              moments={"minor_axis_length": float("nan")})
        export_regions_json([record], self.path)

        raw = json.loads(self.path.read_text())
        self.assertIsNone(raw["regions"][0]["moments"]["minor_axis_length"])
        rebuilt = records_from_report(load_regions_json(self.path))[0]
        self.assertTrue(np.isnan(rebuilt.moments["minor_axis_length"]))

    def test_count_mismatch_rejected(self):
        """Test that n_regions must match the region list."""
        from regionflow.utils.schemas import validate_region_report

        with self.assertRaises(ValueError):
            validate_region_report({"n_regions": 1, "regions": []})

    def test_bad_bbox_rejected(self):
        """Test that inverted or wrongly sized bboxes are rejected."""
        from regionflow.utils.schemas import validate_region_report

        region = {"label": 1, "area": 4, "bbox": [5, 5, 2, 2], "centroid": [3.0, 3.0]}
        with self.assertRaises(ValueError):
            validate_region_report({"n_regions": 1, "regions": [region]})

        region["bbox"] = [0, 0, 2]
        with self.assertRaises(ValueError):
            validate_region_report({"n_regions": 1, "regions": [region]})

    def test_labels_must_ascend(self):
        """Test that duplicated or unordered labels are rejected."""
        from regionflow.utils.schemas import validate_region_report

        region = {"label": 2, "area": 1, "bbox": [0, 0, 1, 1], "centroid": [0.0, 0.0]}
        other = dict(region, label=1)
        with self.assertRaises(ValueError):
            validate_region_report({"n_regions": 2, "regions": [region, other]})

    def test_iter_region_dicts(self):
        """Test plain dict iteration over a report."""
        from regionflow.utils.schemas import build_region_report, iter_region_dicts

        records, _ = _two_block_records()
        dicts = list(iter_region_dicts(build_region_report(records)))

        self.assertEqual([d["label"] for d in dicts], [1, 2])
        self.assertEqual(dicts[0]["area"], 9)
