"""
Transform contract: the uniform interface every processing function follows.

A transform is a plain function ``f(image, **configuration)`` that

- accepts an image of any recognized dtype,
- never mutates its input,
- returns a fresh array (or a derived value such as a scalar or a tuple of
  records) whose dtype and range it declares itself.

The @transform decorator records the declared OutputContract on the function
and validates the primary input. No registry is involved: pipelines receive
transforms explicitly.

Usage:
    from regionflow.transforms.base import transform, OutputContract, check_parameter

    @transform(output=OutputContract(DtypeKind.FLOAT, np.float64, (0.0, 1.0)))
    def invert(image):
        return 1.0 - img_as_float64(image)
"""

import functools
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Tuple

import numpy as np

from regionflow.core.container import validate_image
from regionflow.core.dtypes import DtypeKind, as_supported_dtype
from regionflow.core.errors import InvalidParameterError, RegionflowError
from regionflow.utils.config import is_debug_enabled
from regionflow.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutputContract:
    """
    Declared output of a transform.

    Attributes:
        kind: Dtype kind of the output image, None for derived non-image values
        dtype: Concrete dtype, None when it follows the input float precision
        value_range: (min, max) of the output values, None if unbounded/unknown
        description: Free text shown in pipeline descriptions
    """
    kind: Optional[DtypeKind]
    dtype: Optional[np.dtype] = None
    value_range: Optional[Tuple[float, float]] = None
    description: str = ''

    def __post_init__(self):
        if self.dtype is not None:
            object.__setattr__(self, 'dtype', as_supported_dtype(self.dtype))

    @property
    def is_image(self) -> bool:
        return self.kind is not None

    def describe(self) -> str:
        if not self.is_image:
            return self.description or 'derived value'
        parts = [self.dtype.name if self.dtype is not None else self.kind.name.lower()]
        if self.value_range is not None:
            parts.append(f"[{self.value_range[0]}, {self.value_range[1]}]")
        if self.description:
            parts.append(self.description)
        return ' '.join(parts)


UNDECLARED = OutputContract(kind=None, description='undeclared')


def transform(
    output: OutputContract,
    name: Optional[str] = None,
    min_ndim: int = 2,
    max_ndim: int = 4,
) -> Callable[[Callable], Callable]:
    """
    Declare a function as a transform.

    Args:
        output: The output contract of the function
        name: Declared name (default: the function's __name__)
        min_ndim: Minimum dimensionality of the primary input
        max_ndim: Maximum dimensionality of the primary input

    Returns:
        Decorator that validates the primary input and tags the function with
        __transform_name__ and __output_contract__
    """
    def decorator(func: Callable) -> Callable:
        transform_label = name or func.__name__

        @functools.wraps(func)
        def wrapper(image, *args, **kwargs):
            validate_image(image, min_ndim=min_ndim, max_ndim=max_ndim)
            snapshot = image.copy() if is_debug_enabled() else None

            logger.debug(
                "%s: input %s %s, params=%s",
                transform_label, image.dtype, image.shape, kwargs,
            )
            result = func(image, *args, **kwargs)

            if snapshot is not None and not _unchanged(snapshot, image):
                raise RegionflowError(f"transform '{transform_label}' modified its input in place")
            return result

        wrapper.__transform_name__ = transform_label
        wrapper.__output_contract__ = output
        return wrapper

    return decorator


def _unchanged(before: np.ndarray, after: np.ndarray) -> bool:
    if before.dtype.kind == 'f':
        return np.array_equal(before, after, equal_nan=True)
    return np.array_equal(before, after)


def transform_name(func: Callable) -> str:
    """Declared name of a transform, falling back to __name__ / the class name."""
    declared = getattr(func, '__transform_name__', None)
    if declared:
        return declared
    if isinstance(func, functools.partial):
        return transform_name(func.func)
    return getattr(func, '__name__', type(func).__name__)


def output_contract(func: Callable) -> OutputContract:
    """Declared OutputContract of a transform, UNDECLARED for plain callables."""
    contract = getattr(func, '__output_contract__', None)
    if contract is None and isinstance(func, functools.partial):
        return output_contract(func.func)
    return contract if contract is not None else UNDECLARED


def conforms_to(value: Any, contract: OutputContract) -> bool:
    """
    Check a produced value against a declared contract.

    Undeclared and derived-value contracts accept anything. Image contracts
    check the dtype kind, the concrete dtype when declared, and the value
    range when declared.
    """
    if not contract.is_image:
        return True
    if not isinstance(value, np.ndarray):
        return False
    if value.dtype.kind != contract.kind.value:
        return False
    if contract.dtype is not None and value.dtype.name != contract.dtype.name:
        return False
    if contract.value_range is not None and value.size:
        lo, hi = contract.value_range
        if value.dtype.kind == 'b':
            return True
        if value.dtype.kind == 'f' and np.isnan(value).any():
            return False
        return bool(value.min() >= lo and value.max() <= hi)
    return True


def check_parameter(
    name: str,
    value: Any,
    *,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
    exclusive_minimum: bool = False,
    choices: Optional[Iterable[Any]] = None,
    allow_none: bool = False,
) -> Any:
    """
    Validate a configuration option and return it unchanged.

    Raises:
        InvalidParameterError: naming the option and its valid domain
    """
    if value is None:
        if allow_none:
            return value
        raise InvalidParameterError(name, value, "a value is required")

    if choices is not None:
        choices = tuple(choices)
        if value not in choices:
            raise InvalidParameterError(name, value, f"expected one of {list(choices)}")
        return value

    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidParameterError(name, value, "expected a number")
    if np.isnan(value):
        raise InvalidParameterError(name, value, "must not be NaN")

    if minimum is not None:
        if exclusive_minimum and value <= minimum:
            raise InvalidParameterError(name, value, f"must be > {minimum}")
        if not exclusive_minimum and value < minimum:
            raise InvalidParameterError(name, value, f"must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise InvalidParameterError(name, value, f"must be <= {maximum}")
    return value
