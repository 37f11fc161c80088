"""
Thresholding transforms: intensity image in, boolean mask out.

Threshold values always live in the float range convention of the input
(img_as_float), so the same value works for uint8, uint16 and float images.
"""

from typing import Optional

import numpy as np
from skimage import filters as sk_filters

from regionflow.core.dtypes import DtypeKind, img_as_float
from regionflow.core.errors import InvalidParameterError
from regionflow.transforms.base import OutputContract, check_parameter, transform
from regionflow.utils.logging import get_logger

logger = get_logger(__name__)

_METHODS = {
    'otsu': sk_filters.threshold_otsu,
    'li': sk_filters.threshold_li,
    'yen': sk_filters.threshold_yen,
    'mean': sk_filters.threshold_mean,
}

MASK_OUTPUT = OutputContract(DtypeKind.BOOL, np.bool_, (0, 1), "foreground mask")


@transform(
    output=OutputContract(None, description="threshold in the float range of the input"),
    max_ndim=3,
)
def threshold_value(image: np.ndarray, method: str = 'otsu') -> float:
    """
    Compute a global threshold.

    Args:
        image: Single-channel image of any dtype
        method: One of 'otsu', 'li', 'yen', 'mean'

    Returns:
        Threshold as a Python float. A constant image returns its value.
    """
    check_parameter('method', method, choices=_METHODS)
    data = img_as_float(image)
    lo, hi = float(data.min()), float(data.max())
    if lo == hi:
        return lo
    return float(_METHODS[method](data))


@transform(output=MASK_OUTPUT, max_ndim=3)
def threshold(
    image: np.ndarray,
    method: str = 'otsu',
    value: Optional[float] = None,
    invert: bool = False,
) -> np.ndarray:
    """
    Binarize an image with a global threshold.

    Args:
        image: Single-channel image of any dtype
        method: Automatic method, used when value is None
        value: Explicit threshold in the float range of the input ([0, 1] for
            unsigned data, [-1, 1] for signed data)
        invert: Select samples <= threshold instead of > threshold

    Returns:
        bool mask
    """
    check_parameter('method', method, choices=_METHODS)
    check_parameter('value', value, minimum=-1.0, maximum=1.0, allow_none=True)
    if value is None:
        value = threshold_value(image, method=method)
        logger.debug("%s threshold: %.4f", method, value)

    data = img_as_float(image)
    if invert:
        return data <= value
    return data > value


@transform(output=MASK_OUTPUT, max_ndim=3)
def hysteresis_threshold(image: np.ndarray, low: float, high: float) -> np.ndarray:
    """
    Keep samples above `low` that are connected to samples above `high`.

    Args:
        image: Single-channel image of any dtype
        low: Lower bound in the float range of the input
        high: Upper bound, >= low

    Returns:
        bool mask
    """
    check_parameter('low', low, minimum=-1.0, maximum=1.0)
    check_parameter('high', high, minimum=-1.0, maximum=1.0)
    if low > high:
        raise InvalidParameterError('low', low, f"must be <= high ({high})")
    return sk_filters.apply_hysteresis_threshold(img_as_float(image), low, high)
