"""
Filtering and edge detection transforms.

All functions accept any recognized dtype, convert through the dtype policy
(img_as_float64) and return fresh float64 or bool arrays. The numerical work
is delegated to scikit-image.
"""

from typing import Optional

import numpy as np
from skimage import feature as sk_feature
from skimage import filters as sk_filters

from regionflow.core.container import describe
from regionflow.core.dtypes import DtypeKind, img_as_float64
from regionflow.core.errors import InvalidParameterError
from regionflow.transforms.base import OutputContract, check_parameter, transform

# ITU-R BT.709 luma weights
RGB_LUMA_WEIGHTS = np.array([0.2125, 0.7154, 0.0721])

FLOAT_OUTPUT = OutputContract(
    DtypeKind.FLOAT, np.float64, (-1.0, 1.0),
    "[0, 1] for unsigned/bool input, [-1, 1] for signed input",
)


@transform(output=FLOAT_OUTPUT)
def to_grayscale(image: np.ndarray, channel_axis: Optional[int] = None) -> np.ndarray:
    """
    Collapse a channel axis into one intensity channel.

    RGB(A) data uses luma weights (alpha is dropped); any other channel count
    is averaged. Without a channel axis the image is only converted to float.

    Args:
        image: Image of any dtype
        channel_axis: Channel axis, or None for single-channel data

    Returns:
        float64 image without a channel axis
    """
    info = describe(image, channel_axis=channel_axis)
    data = img_as_float64(image, force_copy=True)
    if info.channel_axis is None:
        return data

    data = np.moveaxis(data, info.channel_axis, -1)
    n_channels = data.shape[-1]
    if n_channels in (3, 4):
        return data[..., :3] @ RGB_LUMA_WEIGHTS
    return data.mean(axis=-1)


@transform(output=FLOAT_OUTPUT)
def gaussian(
    image: np.ndarray,
    sigma: float = 1.0,
    channel_axis: Optional[int] = None,
) -> np.ndarray:
    """
    Gaussian smoothing.

    Args:
        image: Image of any dtype
        sigma: Standard deviation of the kernel in pixels (>= 0)
        channel_axis: Channel axis excluded from smoothing

    Returns:
        float64 image in the float range convention of the input
    """
    check_parameter('sigma', sigma, minimum=0.0)
    data = img_as_float64(image)
    return sk_filters.gaussian(data, sigma=sigma, channel_axis=channel_axis, preserve_range=True)


@transform(
    output=OutputContract(DtypeKind.FLOAT, np.float64, None, "gradient magnitude >= 0"),
    max_ndim=3,
)
def sobel(image: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude of a single-channel 2-D or 3-D image."""
    return sk_filters.sobel(img_as_float64(image))


@transform(
    output=OutputContract(DtypeKind.BOOL, np.bool_, (0, 1), "edge map"),
    max_ndim=2,
)
def canny(
    image: np.ndarray,
    sigma: float = 1.0,
    low_threshold: Optional[float] = None,
    high_threshold: Optional[float] = None,
    use_quantiles: bool = False,
) -> np.ndarray:
    """
    Canny edge detector (2-D only).

    Args:
        image: Single-channel 2-D image of any dtype
        sigma: Gaussian smoothing before gradient computation (>= 0)
        low_threshold: Lower hysteresis bound, in the float range of the
            input (or a quantile with use_quantiles). None = automatic.
        high_threshold: Upper hysteresis bound. None = automatic.
        use_quantiles: Interpret thresholds as gradient magnitude quantiles

    Returns:
        bool edge map
    """
    check_parameter('sigma', sigma, minimum=0.0)
    upper = 1.0 if use_quantiles else None
    check_parameter('low_threshold', low_threshold, minimum=0.0, maximum=upper, allow_none=True)
    check_parameter('high_threshold', high_threshold, minimum=0.0, maximum=upper, allow_none=True)
    if low_threshold is not None and high_threshold is not None and low_threshold > high_threshold:
        raise InvalidParameterError(
            'low_threshold', low_threshold, f"must be <= high_threshold ({high_threshold})"
        )

    return sk_feature.canny(
        img_as_float64(image),
        sigma=sigma,
        low_threshold=low_threshold,
        high_threshold=high_threshold,
        use_quantiles=use_quantiles,
    )
