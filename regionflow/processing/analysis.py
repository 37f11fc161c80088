"""
Canonical region analysis workflow:

    grayscale -> smoothing / edge detection -> threshold / fill
              -> small object removal -> label -> measure

Each step is an ordinary transform; build_analysis_pipeline() only assembles
them into a Pipeline from an AnalysisConfig, so callers can inspect, extend
or reuse the stages.

Usage:
    from regionflow.processing import AnalysisConfig, analyze_regions

    config = AnalysisConfig(edge_method='canny', sigma=1.5, min_size=20)
    result = analyze_regions(image, config, keep_intermediates=True)
    for record in result.output:
        print(record.label, record.area)
"""

import time
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from regionflow.core.errors import InvalidParameterError
from regionflow.measure.label import label
from regionflow.measure.regions import RegionRecord, measure_regions
from regionflow.processing.pipeline import Pipeline, PipelineResult, Stage
from regionflow.transforms.base import check_parameter
from regionflow.transforms.filters import canny, gaussian, sobel, to_grayscale
from regionflow.transforms.morphology import binary_closing, fill_holes, remove_small_objects
from regionflow.transforms.threshold import threshold
from regionflow.utils.config import (
    DEFAULT_CONFIG,
    EDGE_METHODS,
    THRESHOLD_METHODS,
    get_analysis_defaults,
    get_config_summary,
    load_config,
)
from regionflow.utils.logging import get_logger, log_parameters, log_processing_end, log_processing_start

logger = get_logger(__name__)

_DEFAULTS = get_analysis_defaults()


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Parameters of the canonical analysis pipeline.

    Attributes:
        sigma: Gaussian smoothing (threshold/sobel) or Canny sigma, >= 0
        low_threshold: Canny low hysteresis threshold, None = automatic
        high_threshold: Canny high hysteresis threshold, None = automatic
        threshold_method: otsu, li, yen or mean
        edge_method: 'threshold' (intensity foreground), 'canny' (closed
            edge contours, filled) or 'sobel' (thresholded gradient, filled)
        fill_holes: Fill holes in the foreground ('threshold' only; the edge
            methods always fill)
        max_hole_area_fraction: Holes larger than this fraction of their
            object are kept open
        closing_radius: Closing applied to edge maps before filling, to
            bridge one-pixel gaps in contours
        min_size: Drop objects smaller than this many pixels (0 = keep all)
        connectivity: Labeling connectivity rank, None = full
        channel_axis: Channel axis of the input, None for single-channel
        require_regions: Raise EmptyLabelError when nothing is found
    """
    sigma: float = _DEFAULTS["sigma"]
    low_threshold: Optional[float] = _DEFAULTS["low_threshold"]
    high_threshold: Optional[float] = _DEFAULTS["high_threshold"]
    threshold_method: str = _DEFAULTS["threshold_method"]
    edge_method: str = _DEFAULTS["edge_method"]
    fill_holes: bool = _DEFAULTS["fill_holes"]
    max_hole_area_fraction: float = _DEFAULTS["max_hole_area_fraction"]
    closing_radius: int = _DEFAULTS["closing_radius"]
    min_size: int = _DEFAULTS["min_size"]
    connectivity: Optional[int] = _DEFAULTS["connectivity"]
    channel_axis: Optional[int] = _DEFAULTS["channel_axis"]
    require_regions: bool = _DEFAULTS["require_regions"]

    def __post_init__(self):
        check_parameter('sigma', self.sigma, minimum=0.0)
        check_parameter('low_threshold', self.low_threshold, minimum=0.0, allow_none=True)
        check_parameter('high_threshold', self.high_threshold, minimum=0.0, allow_none=True)
        if (self.low_threshold is not None and self.high_threshold is not None
                and self.low_threshold > self.high_threshold):
            raise InvalidParameterError(
                'low_threshold', self.low_threshold, f"must be <= high_threshold ({self.high_threshold})"
            )
        check_parameter('threshold_method', self.threshold_method, choices=THRESHOLD_METHODS)
        check_parameter('edge_method', self.edge_method, choices=EDGE_METHODS)
        check_parameter('max_hole_area_fraction', self.max_hole_area_fraction, minimum=0.0, maximum=1.0)
        check_parameter('closing_radius', self.closing_radius, minimum=0)
        check_parameter('min_size', self.min_size, minimum=0)
        check_parameter('connectivity', self.connectivity, minimum=1, maximum=3, allow_none=True)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'AnalysisConfig':
        """
        Build from a dict such as load_config()['analysis'].

        Raises:
            InvalidParameterError: Unknown keys or out-of-domain values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidParameterError('analysis', unknown, f"unknown options, expected a subset of {sorted(known)}")
        return cls(**values)


def _foreground_stages(config: AnalysisConfig) -> List[Stage]:
    if config.edge_method == 'canny':
        stages = [
            Stage(canny, {
                'sigma': config.sigma,
                'low_threshold': config.low_threshold,
                'high_threshold': config.high_threshold,
            }),
        ]
    elif config.edge_method == 'sobel':
        stages = [
            Stage(gaussian, {'sigma': config.sigma}),
            Stage(sobel),
            Stage(threshold, {'method': config.threshold_method}, name='threshold_gradient'),
        ]
    else:
        stages = [
            Stage(gaussian, {'sigma': config.sigma}),
            Stage(threshold, {'method': config.threshold_method}),
        ]
        if config.fill_holes:
            stages.append(Stage(fill_holes, {'max_hole_area_fraction': config.max_hole_area_fraction}))
        return stages

    if config.closing_radius > 0:
        stages.append(Stage(binary_closing, {'radius': config.closing_radius}))
    stages.append(Stage(fill_holes, {'max_hole_area_fraction': config.max_hole_area_fraction}))
    return stages


def build_analysis_pipeline(
    config: Optional[AnalysisConfig] = None,
    intensity_image: Optional[np.ndarray] = None,
) -> Pipeline:
    """
    Assemble the canonical analysis pipeline.

    Args:
        config: Parameters (default: AnalysisConfig())
        intensity_image: Image used for per-region intensity statistics in
            the measurement stage; must align with the input's spatial shape

    Returns:
        Pipeline whose output is a tuple of RegionRecord
    """
    config = config or AnalysisConfig()

    stages: List[Stage] = [Stage(to_grayscale, {'channel_axis': config.channel_axis})]
    stages.extend(_foreground_stages(config))
    if config.min_size > 0:
        stages.append(Stage(remove_small_objects, {
            'min_size': config.min_size,
            'connectivity': config.connectivity,
        }))
    stages.append(Stage(label, {'connectivity': config.connectivity}))
    stages.append(Stage(measure_regions, {
        'intensity_image': intensity_image,
        'require_regions': config.require_regions,
    }))
    return Pipeline(stages, name=f"analysis[{config.edge_method}]")


def analyze_regions(
    image: np.ndarray,
    config: Optional[AnalysisConfig] = None,
    keep_intermediates: bool = False,
) -> PipelineResult:
    """
    Run the canonical analysis on one image, measuring intensities from it.

    Args:
        image: Input image of any recognized dtype
        config: Parameters (default: AnalysisConfig())
        keep_intermediates: Keep every stage's output in the result

    Returns:
        PipelineResult whose output is a tuple of RegionRecord

    Raises:
        StageError: Wrapping the failing stage's error
    """
    config = config or AnalysisConfig()
    intensity = image
    if (config.channel_axis is not None and isinstance(image, np.ndarray)
            and -image.ndim <= config.channel_axis < image.ndim):
        # measure_regions expects a trailing channel axis
        intensity = np.moveaxis(image, config.channel_axis, -1)

    pipeline = build_analysis_pipeline(config, intensity_image=intensity)
    result = pipeline.run(image, keep_intermediates=keep_intermediates)
    logger.info("%s: %d regions", pipeline.name, len(result.output))
    return result


def _measure_one(image: np.ndarray, config: AnalysisConfig) -> Tuple[RegionRecord, ...]:
    return analyze_regions(image, config).output


def analyze_batch(
    images: Sequence[np.ndarray],
    config: Optional[Dict[str, Any]] = None,
) -> List[Tuple[RegionRecord, ...]]:
    """
    Run the canonical analysis over several images from a loaded config.

    The 'analysis' section builds the AnalysisConfig and the 'batch'
    section sets the worker threads and progress bar.

    Args:
        images: Input images, each measured against itself
        config: Config dict such as load_config() returns (default: defaults)

    Returns:
        One tuple of RegionRecord per image, in input order

    Raises:
        InvalidParameterError: Unknown or out-of-domain analysis options
        StageError: From the first image that failed
    """
    config = config if config is not None else load_config()
    analysis = AnalysisConfig.from_dict(config.get("analysis") or {})
    batch = {**DEFAULT_CONFIG["batch"], **(config.get("batch") or {})}
    images = list(images)

    pipeline = Pipeline(
        [Stage(_measure_one, {'config': analysis}, name='analyze_regions')],
        name=f"analysis[{analysis.edge_method}]",
    )

    log_parameters(logger, dict(get_config_summary(config)), title="Region analysis")
    log_processing_start(logger, pipeline.name, n_images=len(images), workers=batch["num_workers"])
    start = time.perf_counter()
    results = pipeline.run_batch(images, workers=batch["num_workers"], progress=batch["progress"])
    log_processing_end(
        logger, pipeline.name, time.perf_counter() - start,
        n_regions=sum(len(records) for records in results),
    )
    return results
