"""
JSON schema validation for exported region reports.

Uses Pydantic for validation with clear error messages. Rendering and
downstream analysis tools read these files instead of live RegionRecords.

Usage:
    from regionflow.utils.schemas import export_regions_json, load_regions_json

    export_regions_json(records, "/path/to/regions.json", source_shape=image.shape)
    report = load_regions_json("/path/to/regions.json")
    records = records_from_report(report)
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from regionflow.measure.regions import RegionRecord
from regionflow.utils.json_utils import NumpyEncoder, atomic_json_dump, sanitize_for_json
from regionflow.utils.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = "1"


# =============================================================================
# Region Schemas
# =============================================================================

class RegionRecordSchema(BaseModel):
    """A single measured region."""
    model_config = ConfigDict(extra="forbid")

    label: int = Field(..., ge=1)
    area: int = Field(..., ge=0)
    bbox: List[int] = Field(..., min_length=4)
    centroid: List[float] = Field(..., min_length=2)
    # NaN moments are exported as null
    moments: Dict[str, Optional[float]] = Field(default_factory=dict)
    # Scalars or flat per-channel lists
    intensity: Dict[str, Union[Optional[float], List[Optional[float]]]] = Field(default_factory=dict)

    @model_validator(mode='after')
    def validate_bbox(self) -> "RegionRecordSchema":
        """bbox holds one min and one exclusive max per centroid axis."""
        n = len(self.centroid)
        if len(self.bbox) != 2 * n:
            raise ValueError(f"bbox must have {2 * n} values for a {n}-D centroid, got {len(self.bbox)}")
        for axis in range(n):
            if self.bbox[axis] >= self.bbox[axis + n]:
                raise ValueError(f"bbox axis {axis}: min {self.bbox[axis]} must be < max {self.bbox[axis + n]}")
        return self


class RegionReport(BaseModel):
    """A collection of regions measured from one label array."""
    schema_version: Literal["1"] = SCHEMA_VERSION
    created_at: Optional[datetime] = None
    source_shape: Optional[List[int]] = None
    n_regions: int = Field(..., ge=0)
    regions: List[RegionRecordSchema] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('source_shape')
    @classmethod
    def validate_source_shape(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is not None and any(extent <= 0 for extent in v):
            raise ValueError(f"source_shape extents must be positive, got {v}")
        return v

    @model_validator(mode='after')
    def validate_regions(self) -> "RegionReport":
        """Count must match and labels must be strictly ascending."""
        if self.n_regions != len(self.regions):
            raise ValueError(f"n_regions={self.n_regions} but {len(self.regions)} regions present")
        labels = [r.label for r in self.regions]
        if any(a >= b for a, b in zip(labels, labels[1:])):
            raise ValueError("region labels must be unique and in ascending order")
        return self


# =============================================================================
# Conversion / IO
# =============================================================================

def build_region_report(
    records: Sequence[RegionRecord],
    source_shape: Optional[Sequence[int]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> RegionReport:
    """Validate records into a RegionReport."""
    data = {
        "schema_version": SCHEMA_VERSION,
        "created_at": datetime.now().isoformat(),
        "source_shape": list(source_shape) if source_shape is not None else None,
        "n_regions": len(records),
        "regions": [r.to_dict() for r in records],
        "metadata": dict(metadata or {}),
    }
    # Round-trip through JSON so numpy scalars and NaN become plain values
    return RegionReport.model_validate(json.loads(json.dumps(sanitize_for_json(data), cls=NumpyEncoder)))


def export_regions_json(
    records: Sequence[RegionRecord],
    path: Union[str, Path],
    source_shape: Optional[Sequence[int]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Write records as a validated JSON report (atomic replace).

    Returns:
        Path to the written file
    """
    path = Path(path)
    report = build_region_report(records, source_shape=source_shape, metadata=metadata)
    atomic_json_dump(report.model_dump(mode='json'), path, indent=2)
    logger.info("Wrote %d regions to %s", report.n_regions, path)
    return path


def validate_region_report(data: Dict[str, Any]) -> RegionReport:
    """
    Validate a report dict.

    Raises:
        ValueError: With pydantic's field-level messages
    """
    try:
        return RegionReport.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid region report: {e}") from e


def load_regions_json(path: Union[str, Path]) -> RegionReport:
    """Load and validate a report written by export_regions_json()."""
    path = Path(path)
    with open(path, 'r') as f:
        data = json.load(f)
    return validate_region_report(data)


def _as_tuple(value: Any) -> Any:
    return tuple(value) if isinstance(value, list) else value


def records_from_report(report: RegionReport) -> Tuple[RegionRecord, ...]:
    """Rebuild RegionRecords from a validated report."""
    return tuple(
        RegionRecord(
            label=r.label,
            area=r.area,
            bbox=tuple(r.bbox),
            centroid=tuple(r.centroid),
            moments={k: (float('nan') if v is None else v) for k, v in r.moments.items()},
            intensity={k: _as_tuple(v) for k, v in r.intensity.items()},
        )
        for r in report.regions
    )


def iter_region_dicts(report: RegionReport) -> Iterable[Dict[str, Any]]:
    """Yield each region as a plain dict (for plotting/overlay tools)."""
    for region in report.regions:
        yield region.model_dump()
