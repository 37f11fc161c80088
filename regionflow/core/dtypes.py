"""
Dtype-range policy: which value range each dtype implies, and conversion
between dtypes by affine rescaling.

Recognized kinds and their declared ranges:
    bool              {False, True}
    unsigned integer  [0, iinfo(dtype).max]
    signed integer    [iinfo(dtype).min, iinfo(dtype).max]
    floating point    [-1.0, 1.0] (signed data) or [0.0, 1.0] (unsigned data)

Conversion rules:
- Same dtype in and out is the identity.
- Unsigned sources map onto the non-negative part of the target range, so
  uint8 -> float gives [0, 1] and uint8 -> int16 gives [0, 32767].
- Signed sources map onto the full target range, except that an unsigned
  target clips negative values to zero first.
- Out-of-range inputs are clipped, never wrapped.
- Float -> integer rounds to nearest with ties to even (numpy.rint), so
  0.5 -> 128 for uint8.
- Anything -> bool is a midpoint test (0.5 for floats, imax // 2 for ints).

Usage:
    from regionflow.core.dtypes import convert, dtype_range, img_as_ubyte

    lo, hi = dtype_range(np.uint16)            # (0, 65535)
    as_byte = img_as_ubyte(float_image)        # uint8, rounded to nearest
    as_float = convert(uint16_image, np.float32)
"""

from enum import Enum
from typing import Dict, Tuple, Union

import numpy as np

from regionflow.core.errors import UnsupportedDtypeError, InvalidParameterError
from regionflow.utils.logging import get_logger

logger = get_logger(__name__)

DtypeLike = Union[np.dtype, type, str]


class DtypeKind(Enum):
    """Closed set of numeric kinds an Image may have."""

    BOOL = 'b'
    UINT = 'u'
    INT = 'i'
    FLOAT = 'f'

    @property
    def is_integer(self) -> bool:
        return self in (DtypeKind.UINT, DtypeKind.INT)


_SUPPORTED_NAMES = (
    'bool',
    'uint8', 'uint16', 'uint32', 'uint64',
    'int8', 'int16', 'int32', 'int64',
    'float16', 'float32', 'float64',
)


def _build_range_table() -> Dict[str, Tuple]:
    table = {}
    for name in _SUPPORTED_NAMES:
        dt = np.dtype(name)
        if dt.kind == 'b':
            table[name] = (False, True)
        elif dt.kind in 'ui':
            info = np.iinfo(dt)
            table[name] = (int(info.min), int(info.max))
        else:
            table[name] = (-1.0, 1.0)
    return table


# Canonical (min, max) per supported dtype name
DTYPE_RANGE: Dict[str, Tuple] = _build_range_table()


def as_supported_dtype(dtype: DtypeLike) -> np.dtype:
    """
    Resolve a dtype-like value and check it is a recognized kind.

    Args:
        dtype: numpy dtype, scalar type or dtype string

    Returns:
        The resolved numpy dtype

    Raises:
        UnsupportedDtypeError: If the dtype cannot be resolved or is not one of
            bool, uint8-64, int8-64, float16-64
    """
    try:
        dt = np.dtype(dtype)
    except TypeError as e:
        raise UnsupportedDtypeError(dtype) from e
    if dt.name not in DTYPE_RANGE:
        raise UnsupportedDtypeError(dt)
    return dt


def kind_of(dtype: DtypeLike) -> DtypeKind:
    """Return the DtypeKind tag for a dtype."""
    return DtypeKind(as_supported_dtype(dtype).kind)


def dtype_range(dtype: DtypeLike, clip_negative: bool = False) -> Tuple:
    """
    Return the canonical value range of a dtype.

    Args:
        dtype: Any supported dtype
        clip_negative: If True, report the non-negative part of the range
            (0 as the minimum for signed integers and floats)

    Returns:
        (min, max) tuple
    """
    dt = as_supported_dtype(dtype)
    lo, hi = DTYPE_RANGE[dt.name]
    if clip_negative and dt.kind in 'if':
        lo = type(lo)(0)
    return lo, hi


def _float_ceiling(dtype: np.dtype) -> float:
    # Largest float64 not exceeding iinfo.max; float(2**63 - 1) rounds up
    # and would overflow on the cast back.
    imax = np.iinfo(dtype).max
    ceiling = float(imax)
    if int(ceiling) > imax:
        ceiling = float(np.nextafter(ceiling, -np.inf))
    return ceiling


def _clip_round_cast(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    np.rint(values, out=values)
    info = np.iinfo(dtype)
    np.clip(values, float(info.min), _float_ceiling(dtype), out=values)
    return values.astype(dtype)


def _to_bool(image: np.ndarray, dtype_in: np.dtype) -> np.ndarray:
    if dtype_in.kind == 'f':
        return image > 0.5
    return image > np.iinfo(dtype_in).max // 2


def _from_bool(image: np.ndarray, dtype_out: np.dtype) -> np.ndarray:
    if dtype_out.kind == 'f':
        return image.astype(dtype_out)
    out = np.zeros(image.shape, dtype=dtype_out)
    out[image] = np.iinfo(dtype_out).max
    return out


def _float_to_int(image: np.ndarray, dtype_out: np.dtype) -> np.ndarray:
    info = np.iinfo(dtype_out)
    values = image.astype(np.float64)
    # NaN has no place in an integer range; it maps to 0
    np.nan_to_num(values, copy=False, nan=0.0)
    if dtype_out.kind == 'u':
        np.clip(values, 0.0, 1.0, out=values)
        values *= float(info.max)
    else:
        np.clip(values, -1.0, 1.0, out=values)
        values += 1.0
        values *= (float(info.max) - float(info.min)) / 2.0
        values += float(info.min)
    return _clip_round_cast(values, dtype_out)


def _int_to_float(image: np.ndarray, dtype_in: np.dtype, dtype_out: np.dtype) -> np.ndarray:
    info = np.iinfo(dtype_in)
    if dtype_in.itemsize > 2 or dtype_out.itemsize > 4:
        compute = np.float64
    else:
        compute = np.float32
    values = image.astype(compute)
    if dtype_in.kind == 'u':
        values /= compute(info.max)
    else:
        values -= compute(info.min)
        values *= compute(2.0) / (compute(info.max) - compute(info.min))
        values -= compute(1.0)
    return values.astype(dtype_out, copy=False)


def _int_to_int(image: np.ndarray, dtype_in: np.dtype, dtype_out: np.dtype) -> np.ndarray:
    info_in = np.iinfo(dtype_in)
    info_out = np.iinfo(dtype_out)
    values = image.astype(np.float64)

    if dtype_in.kind == 'u' or dtype_out.kind == 'u':
        # Non-negative part of the source onto the non-negative part of the target
        np.clip(values, 0.0, None, out=values)
        values *= float(info_out.max) / float(info_in.max)
    else:
        span_in = float(info_in.max) - float(info_in.min)
        span_out = float(info_out.max) - float(info_out.min)
        values -= float(info_in.min)
        values *= span_out / span_in
        values += float(info_out.min)
    return _clip_round_cast(values, dtype_out)


def convert(image: np.ndarray, dtype: DtypeLike, force_copy: bool = False) -> np.ndarray:
    """
    Convert an image to another dtype, rescaling between declared ranges.

    The input is never modified. Converting to the image's own dtype returns
    the input unchanged (or a copy with force_copy=True), which makes
    conversion idempotent.

    Args:
        image: Array of any supported dtype
        dtype: Target dtype
        force_copy: Return a copy even when no conversion is needed

    Returns:
        Array with the same shape and the target dtype

    Raises:
        UnsupportedDtypeError: If either dtype is not a recognized kind
    """
    image = np.asarray(image)
    dtype_in = as_supported_dtype(image.dtype)
    dtype_out = as_supported_dtype(dtype)

    if dtype_in.name == dtype_out.name:
        return image.copy() if force_copy else image

    kind_in, kind_out = dtype_in.kind, dtype_out.kind
    logger.debug("convert %s -> %s, shape=%s", dtype_in.name, dtype_out.name, image.shape)

    if kind_out == 'b':
        return _to_bool(image, dtype_in)
    if kind_in == 'b':
        return _from_bool(image, dtype_out)

    if kind_in == 'f':
        if kind_out == 'f':
            return np.clip(image, -1.0, 1.0).astype(dtype_out)
        return _float_to_int(image, dtype_out)

    if kind_out == 'f':
        return _int_to_float(image, dtype_in, dtype_out)
    return _int_to_int(image, dtype_in, dtype_out)


def img_as_float(image: np.ndarray, force_copy: bool = False) -> np.ndarray:
    """Convert to floating point, keeping float32/float64 precision (float16 -> float64)."""
    image = np.asarray(image)
    dt = as_supported_dtype(image.dtype)
    if dt.kind == 'f' and dt.itemsize >= 4:
        return convert(image, dt, force_copy=force_copy)
    return convert(image, np.float64, force_copy=force_copy)


def img_as_float32(image: np.ndarray, force_copy: bool = False) -> np.ndarray:
    """Convert to float32 in [0, 1] (unsigned sources) or [-1, 1] (signed sources)."""
    return convert(image, np.float32, force_copy=force_copy)


def img_as_float64(image: np.ndarray, force_copy: bool = False) -> np.ndarray:
    """Convert to float64 in [0, 1] (unsigned sources) or [-1, 1] (signed sources)."""
    return convert(image, np.float64, force_copy=force_copy)


def img_as_ubyte(image: np.ndarray, force_copy: bool = False) -> np.ndarray:
    """Convert to uint8 in [0, 255]."""
    return convert(image, np.uint8, force_copy=force_copy)


def img_as_uint(image: np.ndarray, force_copy: bool = False) -> np.ndarray:
    """Convert to uint16 in [0, 65535]."""
    return convert(image, np.uint16, force_copy=force_copy)


def img_as_int(image: np.ndarray, force_copy: bool = False) -> np.ndarray:
    """Convert to int16 in [-32768, 32767]."""
    return convert(image, np.int16, force_copy=force_copy)


def img_as_bool(image: np.ndarray, force_copy: bool = False) -> np.ndarray:
    """Convert to bool by a midpoint test on the source range."""
    return convert(image, np.bool_, force_copy=force_copy)


def rescale_to_range(
    image: np.ndarray,
    in_range: Union[str, Tuple[float, float]] = 'image',
    out_dtype: DtypeLike = np.float64,
) -> np.ndarray:
    """
    Stretch data that does not fill its dtype range onto the output dtype.

    Useful for e.g. 12-bit camera data stored as uint16, where the declared
    range [0, 65535] is much wider than the data.

    Args:
        image: Array of any supported dtype
        in_range: 'image' (data min/max), 'dtype' (declared range of the
            input dtype) or an explicit (low, high) tuple
        out_dtype: Target dtype; values land in its non-negative range

    Returns:
        Rescaled array of out_dtype. A constant image maps to zeros.
    """
    image = np.asarray(image)
    dt = as_supported_dtype(image.dtype)
    out_dt = as_supported_dtype(out_dtype)

    if isinstance(in_range, str):
        if in_range == 'image':
            lo, hi = (float(image.min()), float(image.max())) if image.size else (0.0, 1.0)
        elif in_range == 'dtype':
            lo, hi = (float(v) for v in dtype_range(dt))
        else:
            raise InvalidParameterError('in_range', in_range, "expected 'image', 'dtype' or (low, high)")
    else:
        try:
            lo, hi = (float(v) for v in in_range)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError('in_range', in_range, "expected (low, high) pair") from e
        if hi < lo:
            raise InvalidParameterError('in_range', in_range, "high must be >= low")

    values = image.astype(np.float64)
    if hi > lo:
        values = np.clip((values - lo) / (hi - lo), 0.0, 1.0)
    else:
        values = np.zeros(image.shape, dtype=np.float64)
    return convert(values, out_dt)


def check_range(image: np.ndarray, clip_negative: bool = False) -> bool:
    """
    Return True if every sample lies within the image dtype's declared range.

    Advisory only: the library does not apply this at every step. NaN fails.
    """
    image = np.asarray(image)
    lo, hi = dtype_range(image.dtype, clip_negative=clip_negative)
    if image.size == 0:
        return True
    return bool(image.min() >= lo and image.max() <= hi)
