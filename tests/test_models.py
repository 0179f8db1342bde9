import pytest
from pydantic import ValidationError

from floorplan_editor.models import (
    Coordinate, Dimensions, FloorPlan, FloorPlanSpace, FloorPlanStatus,
    MeasurementUnit, OccupancyStatus, SpaceType, ValidationResult,
)


def test_coordinate_2d_and_3d():
    assert Coordinate(x=1, y=2).z is None
    assert Coordinate(x=1, y=2).is_3d is False
    assert Coordinate(x=1, y=2, z=3).is_3d is True


def test_dimensions_must_be_positive():
    with pytest.raises(ValidationError):
        Dimensions(width=0, height=10)
    with pytest.raises(ValidationError):
        Dimensions(width=10, height=10, scale=-1)
    assert Dimensions(width=10, height=5).unit == MeasurementUnit.METRIC


def test_space_defaults():
    s = FloorPlanSpace(name="Storage", coordinates=[{"x": 0, "y": 0}])
    assert s.id == ""
    assert s.type == SpaceType.OTHER
    assert s.occupancy_status == OccupancyStatus.VACANT
    assert s.resources == []


def test_space_is_3d_requires_every_z():
    flat = FloorPlanSpace(name="a", coordinates=[{"x": 0, "y": 0, "z": 1}, {"x": 1, "y": 0}])
    solid = FloorPlanSpace(name="b", coordinates=[{"x": 0, "y": 0, "z": 1}, {"x": 1, "y": 0, "z": 1}])
    assert flat.is_3d is False
    assert solid.is_3d is True


def test_wire_format_uses_camel_case(floor_plan):
    wire = floor_plan.to_wire()
    assert set(wire) == {"id", "metadata", "spaces", "status"}
    assert "usableArea" in wire["metadata"]
    assert "customFields" in wire["metadata"]
    space = wire["spaces"][0]
    assert "assignedBusinessUnit" in space
    assert "occupancyStatus" in space
    assert space["coordinates"][0] == {"x": 0.0, "y": 0.0, "z": None}


def test_floor_plan_roundtrip_json(floor_plan):
    json_str = floor_plan.model_dump_json(by_alias=True)
    fp2 = FloorPlan.model_validate_json(json_str)
    assert fp2 == floor_plan
    assert fp2.status == FloorPlanStatus.DRAFT


def test_snake_case_input_accepted(floor_plan):
    data = floor_plan.model_dump()
    assert "usable_area" in data["metadata"]
    assert FloorPlan.model_validate(data) == floor_plan


def test_models_are_frozen(floor_plan):
    with pytest.raises(ValidationError):
        floor_plan.status = FloorPlanStatus.PUBLISHED


def test_space_lookup(floor_plan):
    assert floor_plan.space("office-1").name == "Office 1"
    assert floor_plan.space_index("office-1") == 0
    assert floor_plan.space("missing") is None
    assert floor_plan.version == "1"


def test_validation_result_merge():
    a = ValidationResult(is_valid=True, warnings=["low"])
    b = ValidationResult(is_valid=False, errors=["bad"])
    merged = a.merge(b)
    assert merged.is_valid is False
    assert merged.errors == ["bad"]
    assert merged.warnings == ["low"]
    assert ValidationResult.ok().to_wire() == {"isValid": True, "errors": [], "warnings": []}


def test_negative_capacity_rejected():
    with pytest.raises(ValidationError):
        FloorPlanSpace(name="x", coordinates=[], capacity=-1)
