from datetime import datetime, timezone

import pytest

from floorplan_editor.exceptions import ConflictError
from floorplan_editor.models import (
    Coordinate,
    Dimensions,
    FloorPlan,
    FloorPlanMetadata,
    FloorPlanSpace,
    FloorPlanStatus,
    SpaceType,
)


def rect(x, y, w, h, z=None):
    """Closed rectangle ring as coordinate dicts."""
    pts = [(x, y), (x + w, y), (x + w, y + h), (x, y + h), (x, y)]
    return [{"x": px, "y": py, "z": z} for px, py in pts]


def make_plan(usable_area=1000.0, spaces=None, version="1"):
    if spaces is None:
        spaces = [
            FloorPlanSpace(
                id="office-1", name="Office 1", type=SpaceType.OFFICE,
                coordinates=rect(0, 0, 10, 10), area=100.0, capacity=4,
            )
        ]
    return FloorPlan(
        id="fp-1",
        metadata=FloorPlanMetadata(
            name="Level 1",
            level=1,
            total_area=1200.0,
            usable_area=usable_area,
            dimensions=Dimensions(width=100, height=100, scale=1.0),
            file_url="https://files.example.com/fp-1.pdf",
            version=version,
        ),
        spaces=spaces,
        status=FloorPlanStatus.DRAFT,
    )


class FakeStore:
    """In-memory persistence boundary with If-Match semantics.

    The version check and commit happen when ``put`` is called; ``gate``
    only delays the response, like a slow network.
    """

    def __init__(self, plan):
        self.plan = plan
        self.puts = []
        self.fail_with = []
        self.gate = None

    def _bump(self, plan):
        version = str(int(self.plan.metadata.version) + 1)
        metadata = plan.metadata.model_copy(update={
            "version": version,
            "last_modified": datetime(2026, 1, 1, tzinfo=timezone.utc),
        })
        self.plan = plan.model_copy(update={"metadata": metadata})
        return self.plan

    async def get(self, floor_plan_id):
        return self.plan

    async def put(self, floor_plan, version):
        self.puts.append((floor_plan, version))
        error = self.fail_with.pop(0) if self.fail_with else None
        if error is None and version != self.plan.metadata.version:
            error = ConflictError("Floor plan has been modified by another user", status_code=409)
        saved = None if error else self._bump(floor_plan)
        if self.gate is not None:
            await self.gate.wait()
        if error:
            raise error
        return saved

    async def patch_metadata(self, floor_plan_id, changes):
        data = self.plan.metadata.model_dump()
        data.update(changes)
        plan = self.plan.model_copy(update={"metadata": FloorPlanMetadata.model_validate(data)})
        return self._bump(plan)

    async def patch_status(self, floor_plan_id, status):
        return self._bump(self.plan.model_copy(update={"status": FloorPlanStatus(status)}))


@pytest.fixture
def rectangle():
    return rect


@pytest.fixture
def floor_plan():
    return make_plan()


@pytest.fixture
def plan_factory():
    return make_plan


@pytest.fixture
def store_factory():
    return FakeStore


@pytest.fixture
def point():
    return lambda x, y, z=None: Coordinate(x=x, y=y, z=z)
