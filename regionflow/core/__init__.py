"""
Core data model: error taxonomy, dtype-range policy and image container
metadata.
"""

from .errors import (
    RegionflowError,
    UnsupportedDtypeError,
    ShapeMismatchError,
    InvalidParameterError,
    EmptyLabelError,
    StageError,
)

from .dtypes import (
    DtypeKind,
    DTYPE_RANGE,
    as_supported_dtype,
    kind_of,
    dtype_range,
    convert,
    img_as_float,
    img_as_float32,
    img_as_float64,
    img_as_ubyte,
    img_as_uint,
    img_as_int,
    img_as_bool,
    rescale_to_range,
    check_range,
)

from .container import (
    ChannelLayout,
    ImageInfo,
    validate_image,
    describe,
    spatial_shape,
    check_same_shape,
)

__all__ = [
    # Errors
    'RegionflowError',
    'UnsupportedDtypeError',
    'ShapeMismatchError',
    'InvalidParameterError',
    'EmptyLabelError',
    'StageError',
    # Dtype-range policy
    'DtypeKind',
    'DTYPE_RANGE',
    'as_supported_dtype',
    'kind_of',
    'dtype_range',
    'convert',
    'img_as_float',
    'img_as_float32',
    'img_as_float64',
    'img_as_ubyte',
    'img_as_uint',
    'img_as_int',
    'img_as_bool',
    'rescale_to_range',
    'check_range',
    # Container
    'ChannelLayout',
    'ImageInfo',
    'validate_image',
    'describe',
    'spatial_shape',
    'check_same_shape',
]
