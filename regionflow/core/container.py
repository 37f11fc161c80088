"""
Image container metadata and validation.

An Image is a plain numpy.ndarray. This module describes one (shape, dtype
kind, channel layout) and validates the structural invariants every
transform relies on:

- dimensionality == len(shape), between 2 and 4
- every axis extent is a positive integer
- the dtype is a recognized kind

Layouts:
    (H, W)          GRAYSCALE
    (Z, H, W)       VOLUME
    (H, W, C)       CHANNELS_LAST (2-D multichannel)
    (Z, H, W, C)    CHANNELS_LAST (3-D multichannel)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from regionflow.core.dtypes import DtypeKind, as_supported_dtype
from regionflow.core.errors import InvalidParameterError, ShapeMismatchError


class ChannelLayout(Enum):
    GRAYSCALE = 'grayscale'
    VOLUME = 'volume'
    CHANNELS_LAST = 'channels_last'


@dataclass(frozen=True)
class ImageInfo:
    """
    Metadata of an Image.

    Attributes:
        shape: Per-axis extents
        dtype: numpy dtype of the samples
        kind: Dtype kind tag
        layout: Channel layout
        channel_axis: Index of the channel axis, None if there is none
    """
    shape: Tuple[int, ...]
    dtype: np.dtype
    kind: DtypeKind
    layout: ChannelLayout
    channel_axis: Optional[int] = None

    @property
    def dimensionality(self) -> int:
        return len(self.shape)

    @property
    def spatial_shape(self) -> Tuple[int, ...]:
        if self.channel_axis is None:
            return self.shape
        return tuple(s for i, s in enumerate(self.shape) if i != self.channel_axis)

    @property
    def n_channels(self) -> int:
        return 1 if self.channel_axis is None else self.shape[self.channel_axis]


def _normalize_axis(channel_axis: Optional[int], ndim: int) -> Optional[int]:
    if channel_axis is None:
        return None
    if not -ndim <= channel_axis < ndim:
        raise InvalidParameterError('channel_axis', channel_axis, f"must be in [{-ndim}, {ndim - 1}]")
    return channel_axis % ndim


def validate_image(
    image,
    min_ndim: int = 2,
    max_ndim: int = 4,
    name: str = 'image',
) -> np.ndarray:
    """
    Check the structural invariants of an Image.

    Args:
        image: Candidate array
        min_ndim: Minimum dimensionality accepted
        max_ndim: Maximum dimensionality accepted
        name: Operand name used in error messages

    Returns:
        The same array, unchanged

    Raises:
        InvalidParameterError: Not an ndarray, or bad dimensionality/extents
        UnsupportedDtypeError: dtype is not a recognized kind
    """
    if not isinstance(image, np.ndarray):
        raise InvalidParameterError(name, type(image).__name__, "expected a numpy.ndarray")
    if not min_ndim <= image.ndim <= max_ndim:
        raise InvalidParameterError(
            name, image.shape, f"expected {min_ndim} to {max_ndim} dimensions, got {image.ndim}"
        )
    if any(extent <= 0 for extent in image.shape):
        raise InvalidParameterError(name, image.shape, "every axis extent must be positive")
    as_supported_dtype(image.dtype)
    return image


def describe(image: np.ndarray, channel_axis: Optional[int] = None) -> ImageInfo:
    """
    Build the ImageInfo of a validated image.

    Without a channel_axis, 2-D images are GRAYSCALE and 3-D images are
    VOLUME; pass channel_axis=-1 for (H, W, C) or (Z, H, W, C) data.
    """
    validate_image(image)
    axis = _normalize_axis(channel_axis, image.ndim)
    dtype = as_supported_dtype(image.dtype)

    if axis is not None:
        if image.ndim == 2:
            raise InvalidParameterError('channel_axis', channel_axis, "2-D image has no room for a channel axis")
        layout = ChannelLayout.CHANNELS_LAST
    elif image.ndim == 2:
        layout = ChannelLayout.GRAYSCALE
    elif image.ndim == 3:
        layout = ChannelLayout.VOLUME
    else:
        raise InvalidParameterError('channel_axis', channel_axis, "4-D images must declare a channel axis")

    return ImageInfo(
        shape=tuple(int(s) for s in image.shape),
        dtype=dtype,
        kind=DtypeKind(dtype.kind),
        layout=layout,
        channel_axis=axis,
    )


def spatial_shape(image: np.ndarray, channel_axis: Optional[int] = None) -> Tuple[int, ...]:
    """Shape of the image without its channel axis."""
    axis = _normalize_axis(channel_axis, image.ndim)
    if axis is None:
        return tuple(image.shape)
    return tuple(s for i, s in enumerate(image.shape) if i != axis)


def check_same_shape(*images: np.ndarray, names: Optional[Sequence[str]] = None) -> Tuple[int, ...]:
    """
    Check that all images share one shape.

    Args:
        *images: Arrays that must be aligned
        names: Operand names for the error message (default image0, image1, ...)

    Returns:
        The common shape

    Raises:
        ShapeMismatchError: If any two shapes differ
    """
    if names is None:
        names = [f"image{i}" for i in range(len(images))]
    shapes = {name: tuple(img.shape) for name, img in zip(names, images)}
    unique = set(shapes.values())
    if len(unique) > 1:
        listing = ", ".join(f"{name}={shape}" for name, shape in shapes.items())
        raise ShapeMismatchError(f"Inputs must have the same shape, got {listing}", shapes)
    return next(iter(unique)) if unique else ()
