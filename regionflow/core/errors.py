"""
Exception taxonomy for regionflow.

Every error raised by the library derives from RegionflowError so callers can
catch library failures in one place. The concrete classes also derive from
the matching builtin (TypeError/ValueError) so generic handlers keep working.
"""

from typing import Optional


class RegionflowError(Exception):
    """Base class for all regionflow errors."""


class UnsupportedDtypeError(RegionflowError, TypeError):
    """The dtype is not one of the recognized kinds (bool, uint, int, float)."""

    def __init__(self, dtype, context: Optional[str] = None):
        self.dtype = dtype
        self.context = context
        msg = f"Unsupported dtype '{dtype}'"
        if context:
            msg += f" ({context})"
        msg += "; expected bool, unsigned integer, signed integer or floating point"
        super().__init__(msg)


class ShapeMismatchError(RegionflowError, ValueError):
    """Multiple input images have incompatible shapes for an aligned operation."""

    def __init__(self, message: str, shapes: Optional[dict] = None):
        self.shapes = dict(shapes or {})
        super().__init__(message)


class InvalidParameterError(RegionflowError, ValueError):
    """A configuration option is outside of its valid domain."""

    def __init__(self, name: str, value, constraint: str):
        self.name = name
        self.value = value
        self.constraint = constraint
        super().__init__(f"Invalid value for '{name}': {value!r} ({constraint})")


class EmptyLabelError(RegionflowError, ValueError):
    """The caller required at least one region but the label array has none."""


class StageError(RegionflowError):
    """
    A pipeline stage failed.

    Attributes:
        index: Zero-based position of the failing stage
        stage_name: Declared name of the failing stage
        error: The original exception (also chained as __cause__)
    """

    def __init__(self, index: int, stage_name: str, error: BaseException,
                 pipeline_name: Optional[str] = None):
        self.index = index
        self.stage_name = stage_name
        self.error = error
        self.pipeline_name = pipeline_name
        where = f"stage {index} '{stage_name}'"
        if pipeline_name:
            where = f"{pipeline_name}: {where}"
        super().__init__(f"{where} failed with {type(error).__name__}: {error}")
