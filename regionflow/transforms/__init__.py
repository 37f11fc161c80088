"""
Transforms: functions that accept an image of any recognized dtype and
return a fresh result with a declared output contract.

Includes:
- base: the @transform decorator, OutputContract and parameter checks
- filters: grayscale conversion, Gaussian smoothing, Sobel, Canny
- threshold: global and hysteresis thresholding
- morphology: hole filling, small object removal, opening/closing
"""

from .base import (
    OutputContract,
    UNDECLARED,
    transform,
    transform_name,
    output_contract,
    conforms_to,
    check_parameter,
)

from .filters import (
    to_grayscale,
    gaussian,
    sobel,
    canny,
)

from .threshold import (
    threshold_value,
    threshold,
    hysteresis_threshold,
)

from .morphology import (
    as_foreground,
    connectivity_structure,
    fill_holes,
    remove_small_objects,
    keep_largest_component,
    binary_closing,
    binary_opening,
)

__all__ = [
    # Contract
    'OutputContract',
    'UNDECLARED',
    'transform',
    'transform_name',
    'output_contract',
    'conforms_to',
    'check_parameter',
    # Filters
    'to_grayscale',
    'gaussian',
    'sobel',
    'canny',
    # Thresholding
    'threshold_value',
    'threshold',
    'hysteresis_threshold',
    # Morphology
    'as_foreground',
    'connectivity_structure',
    'fill_holes',
    'remove_small_objects',
    'keep_largest_component',
    'binary_closing',
    'binary_opening',
]
