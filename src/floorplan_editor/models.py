# src/floorplan_editor/models.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Immutable model serialised with camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class MeasurementUnit(str, Enum):
    METRIC = "METRIC"
    IMPERIAL = "IMPERIAL"


class SpaceType(str, Enum):
    OFFICE = "OFFICE"
    MEETING_ROOM = "MEETING_ROOM"
    COMMON_AREA = "COMMON_AREA"
    STORAGE = "STORAGE"
    FACILITY = "FACILITY"
    RECEPTION = "RECEPTION"
    BREAKOUT = "BREAKOUT"
    UTILITY = "UTILITY"
    OTHER = "OTHER"


class OccupancyStatus(str, Enum):
    VACANT = "VACANT"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    MAINTENANCE = "MAINTENANCE"


class FloorPlanStatus(str, Enum):
    DRAFT = "DRAFT"
    REVIEW = "REVIEW"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"
    DEPRECATED = "DEPRECATED"


class Coordinate(WireModel):
    x: float
    y: float
    z: Optional[float] = Field(default=None, description="None for 2D points")

    @property
    def is_3d(self) -> bool:
        return self.z is not None

    def as_tuple(self) -> tuple[float, float, Optional[float]]:
        return (self.x, self.y, self.z)


class Dimensions(WireModel):
    width: float = Field(gt=0, description="Drawable width in plan units")
    height: float = Field(gt=0, description="Drawable height in plan units")
    scale: float = Field(default=1.0, gt=0, description="Pixels per plan unit")
    unit: MeasurementUnit = MeasurementUnit.METRIC


class SpaceResource(WireModel):
    id: str
    type: str
    status: str
    position: Coordinate


class FloorPlanSpace(WireModel):
    id: str = ""
    name: str
    type: SpaceType = SpaceType.OTHER
    coordinates: list[Coordinate]
    area: float = Field(default=0.0, ge=0)
    capacity: int = Field(default=0, ge=0)
    assigned_business_unit: Optional[str] = None
    resources: list[SpaceResource] = Field(default_factory=list)
    occupancy_status: OccupancyStatus = OccupancyStatus.VACANT

    @property
    def is_3d(self) -> bool:
        return bool(self.coordinates) and all(c.z is not None for c in self.coordinates)


class FloorPlanMetadata(WireModel):
    name: str
    level: int = 0
    total_area: float = Field(default=0.0, ge=0)
    usable_area: float = Field(default=0.0, ge=0)
    dimensions: Dimensions
    file_url: str = ""
    last_modified: Optional[datetime] = None
    version: str = ""
    custom_fields: dict[str, Any] = Field(default_factory=dict)


class FloorPlan(WireModel):
    id: str
    metadata: FloorPlanMetadata
    spaces: list[FloorPlanSpace] = Field(default_factory=list)
    status: FloorPlanStatus = FloorPlanStatus.DRAFT

    def space_index(self, space_id: str) -> Optional[int]:
        for i, space in enumerate(self.spaces):
            if space.id == space_id:
                return i
        return None

    def space(self, space_id: str) -> Optional[FloorPlanSpace]:
        idx = self.space_index(space_id)
        return None if idx is None else self.spaces[idx]

    @property
    def version(self) -> str:
        return self.metadata.version


class ValidationResult(WireModel):
    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(is_valid=True, errors=[], warnings=[])

    def merge(self, other: ValidationResult) -> ValidationResult:
        return ValidationResult(
            is_valid=self.is_valid and other.is_valid,
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
        )


class OverlapResult(WireModel):
    has_overlap: bool = False
    overlap_area: float = 0.0
    intersection_points: list[Coordinate] = Field(default_factory=list)


class ScaleOptions(WireModel):
    preserve_aspect_ratio: bool = False
    center_point: Optional[Coordinate] = None
    boundary_constraints: Optional[Dimensions] = None
