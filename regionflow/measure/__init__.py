"""
Region extraction: label a foreground mask, then measure each region.
"""

from .label import (
    LABEL_DTYPE,
    label,
    count_regions,
    relabel_sequential,
    connectivity_from_neighbors,
)

from .regions import (
    RegionRecord,
    measure_regions,
    filter_regions,
    regions_table,
    MOMENT_NAMES_2D,
    MOMENT_NAMES_3D,
)

__all__ = [
    # Labeling
    'LABEL_DTYPE',
    'label',
    'count_regions',
    'relabel_sequential',
    'connectivity_from_neighbors',
    # Measurement
    'RegionRecord',
    'measure_regions',
    'filter_regions',
    'regions_table',
    'MOMENT_NAMES_2D',
    'MOMENT_NAMES_3D',
]
