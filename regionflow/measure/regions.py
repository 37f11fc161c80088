"""
Region measurement: Label Array in, one immutable RegionRecord per label out.

Records come back in ascending label order. Shape descriptors are computed
with skimage.measure.regionprops; intensity statistics use the optional
intensity image converted to the float range convention (img_as_float64),
so they are comparable across input dtypes.

Usage:
    from regionflow.measure import label, measure_regions

    labels = label(mask, connectivity=2)
    records = measure_regions(labels, intensity_image=image)
    for rec in records:
        print(rec.label, rec.area, rec.bbox, rec.moments['eccentricity'])
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from skimage import measure as sk_measure

from regionflow.core.container import check_same_shape
from regionflow.core.dtypes import img_as_float64
from regionflow.core.errors import (
    EmptyLabelError,
    InvalidParameterError,
    UnsupportedDtypeError,
)
from regionflow.transforms.base import OutputContract, check_parameter, transform
from regionflow.utils.logging import get_logger

logger = get_logger(__name__)

# Shape descriptor -> function of a regionprops entry
_SHAPE_PROPERTIES_2D = {
    'eccentricity': lambda p: float(p.eccentricity),
    'orientation': lambda p: float(p.orientation),
    'major_axis_length': lambda p: float(p.axis_major_length),
    'minor_axis_length': lambda p: float(p.axis_minor_length),
    'perimeter': lambda p: float(p.perimeter),
    'solidity': lambda p: float(p.solidity),
    'extent': lambda p: float(p.extent),
    'equivalent_diameter': lambda p: float(p.equivalent_diameter_area),
}

_SHAPE_PROPERTIES_3D = {
    'major_axis_length': lambda p: float(p.axis_major_length),
    'minor_axis_length': lambda p: float(p.axis_minor_length),
    'extent': lambda p: float(p.extent),
    'equivalent_diameter': lambda p: float(p.equivalent_diameter_area),
}

# Derived from other descriptors, 2-D only
_DERIVED_2D = ('circularity',)

MOMENT_NAMES_2D = tuple(_SHAPE_PROPERTIES_2D) + _DERIVED_2D
MOMENT_NAMES_3D = tuple(_SHAPE_PROPERTIES_3D)


def _freeze(value):
    # Scalars stay scalar; anything array-like becomes one flat tuple of
    # floats (axis-major, then channel, for a multichannel weighted centroid)
    array = np.asarray(value, dtype=float)
    if array.ndim == 0:
        return float(array)
    return tuple(float(v) for v in array.ravel())


@dataclass(frozen=True)
class RegionRecord:
    """
    Immutable summary of one labeled region.

    Attributes:
        label: Label value (>= 1)
        area: Pixel/voxel count
        bbox: (min_0, ..., min_n-1, max_0, ..., max_n-1); max is exclusive
        centroid: Mean coordinate per axis
        moments: Shape descriptors (eccentricity, perimeter, ... in 2-D)
        intensity: Intensity statistics, empty without an intensity image.
            Multi-valued statistics are flat tuples of floats
    """
    label: int
    area: int
    bbox: Tuple[int, ...]
    centroid: Tuple[float, ...]
    moments: Mapping[str, float] = field(default_factory=dict)
    intensity: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'moments', MappingProxyType(dict(self.moments)))
        object.__setattr__(self, 'intensity', MappingProxyType(dict(self.intensity)))

    @property
    def ndim(self) -> int:
        return len(self.centroid)

    @property
    def bbox_slices(self) -> Tuple[slice, ...]:
        """Slices selecting the bounding box from the label/intensity image."""
        n = self.ndim
        return tuple(slice(self.bbox[i], self.bbox[i + n]) for i in range(n))

    @property
    def bbox_extent(self) -> Tuple[int, ...]:
        n = self.ndim
        return tuple(self.bbox[i + n] - self.bbox[i] for i in range(n))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to plain Python types for serialization."""
        return {
            'label': self.label,
            'area': self.area,
            'bbox': list(self.bbox),
            'centroid': list(self.centroid),
            'moments': dict(self.moments),
            'intensity': {k: list(v) if isinstance(v, tuple) else v for k, v in self.intensity.items()},
        }


def _check_labels(labels: np.ndarray) -> np.ndarray:
    if labels.dtype == np.bool_:
        return labels.astype(np.uint8)
    if labels.dtype.kind not in 'ui':
        raise UnsupportedDtypeError(labels.dtype, "label arrays must be integer or bool")
    if labels.dtype.kind == 'i' and labels.min() < 0:
        raise InvalidParameterError('labels', int(labels.min()), "labels must be non-negative")
    return labels


def _check_intensity(intensity_image: np.ndarray, labels: np.ndarray) -> np.ndarray:
    if not isinstance(intensity_image, np.ndarray):
        raise InvalidParameterError(
            'intensity_image', type(intensity_image).__name__, "expected a numpy.ndarray"
        )
    if intensity_image.ndim == labels.ndim + 1:
        # Trailing channel axis
        check_same_shape(labels, intensity_image[..., 0], names=('labels', 'intensity_image'))
    else:
        check_same_shape(labels, intensity_image, names=('labels', 'intensity_image'))
    return img_as_float64(intensity_image)


def _resolve_properties(properties: Optional[Iterable[str]], ndim: int) -> Tuple[str, ...]:
    available = MOMENT_NAMES_2D if ndim == 2 else MOMENT_NAMES_3D
    if properties is None:
        return available
    properties = tuple(properties)
    for name in properties:
        check_parameter('properties', name, choices=available)
    return properties


def _shape_moments(prop, names: Sequence[str], ndim: int) -> Dict[str, float]:
    table = _SHAPE_PROPERTIES_2D if ndim == 2 else _SHAPE_PROPERTIES_3D
    moments = {}
    for name in names:
        if name in table:
            moments[name] = table[name](prop)
    if 'circularity' in names:
        perimeter = float(prop.perimeter)
        area = float(prop.area)
        moments['circularity'] = 4 * np.pi * area / (perimeter ** 2) if perimeter > 0 else 0.0
    return moments


def _intensity_stats(prop) -> Dict[str, Any]:
    return {
        'mean_intensity': _freeze(prop.intensity_mean),
        'min_intensity': _freeze(prop.intensity_min),
        'max_intensity': _freeze(prop.intensity_max),
        'weighted_centroid': _freeze(prop.centroid_weighted),
    }


@transform(
    output=OutputContract(None, description="tuple of RegionRecord in ascending label order"),
    max_ndim=3,
)
def measure_regions(
    labels: np.ndarray,
    intensity_image: Optional[np.ndarray] = None,
    require_regions: bool = False,
    properties: Optional[Iterable[str]] = None,
) -> Tuple[RegionRecord, ...]:
    """
    Measure every labeled region.

    Args:
        labels: Integer (or bool) Label Array, 2-D or 3-D, 0 = background
        intensity_image: Optional image aligned with labels (an extra
            trailing channel axis is allowed) for intensity statistics
        require_regions: Raise EmptyLabelError when there are no regions
        properties: Subset of shape descriptors to compute (default: all
            available for the dimensionality)

    Returns:
        Tuple of RegionRecord, ascending by label. Empty when there are no
        regions and require_regions is False.

    Raises:
        UnsupportedDtypeError: Float label arrays
        InvalidParameterError: Negative labels or unknown property names
        ShapeMismatchError: intensity_image does not align with labels
        EmptyLabelError: require_regions=True and no regions exist
    """
    labels = _check_labels(labels)
    names = _resolve_properties(properties, labels.ndim)
    intensity = None
    if intensity_image is not None:
        intensity = _check_intensity(intensity_image, labels)

    props = sk_measure.regionprops(labels, intensity_image=intensity)
    if not props:
        if require_regions:
            raise EmptyLabelError(f"No regions found in label array of shape {labels.shape}")
        logger.debug("measure_regions: no regions")
        return ()

    records: List[RegionRecord] = []
    for prop in sorted(props, key=lambda p: p.label):
        records.append(RegionRecord(
            label=int(prop.label),
            area=int(prop.area),
            bbox=tuple(int(v) for v in prop.bbox),
            centroid=tuple(float(v) for v in prop.centroid),
            moments=_shape_moments(prop, names, labels.ndim),
            intensity=_intensity_stats(prop) if intensity is not None else {},
        ))

    logger.debug("measure_regions: %d regions", len(records))
    return tuple(records)


def filter_regions(
    records: Iterable[RegionRecord],
    min_area: Optional[int] = None,
    max_area: Optional[int] = None,
) -> Tuple[RegionRecord, ...]:
    """Keep records whose area lies within [min_area, max_area] (bounds optional)."""
    check_parameter('min_area', min_area, minimum=0, allow_none=True)
    check_parameter('max_area', max_area, minimum=0, allow_none=True)
    if min_area is not None and max_area is not None and min_area > max_area:
        raise InvalidParameterError('min_area', min_area, f"must be <= max_area ({max_area})")
    kept = []
    for record in records:
        if min_area is not None and record.area < min_area:
            continue
        if max_area is not None and record.area > max_area:
            continue
        kept.append(record)
    return tuple(kept)


def regions_table(records: Sequence[RegionRecord]) -> Dict[str, List[Any]]:
    """
    Flatten records into columns (label, area, bbox-0.., centroid-0.., moments).

    Intended for plotting or DataFrame construction by callers; intensity
    values that are tuples are split into name-0, name-1, ... columns.
    """
    if not records:
        return {'label': [], 'area': []}

    rows = []
    for record in records:
        row: Dict[str, Any] = {'label': record.label, 'area': record.area}
        for i, value in enumerate(record.bbox):
            row[f'bbox-{i}'] = value
        for i, value in enumerate(record.centroid):
            row[f'centroid-{i}'] = value
        row.update(record.moments)
        for name, value in record.intensity.items():
            if isinstance(value, tuple):
                for i, v in enumerate(value):
                    row[f'{name}-{i}'] = v
            else:
                row[name] = value
        rows.append(row)

    columns: Dict[str, List[Any]] = {}
    for row in rows:
        for key in row:
            columns.setdefault(key, [])
    for row in rows:
        for key in columns:
            columns[key].append(row.get(key))
    return columns
