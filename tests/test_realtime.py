import json

import pytest

from conftest import rect
from floorplan_editor.exceptions import MalformedPayloadError
from floorplan_editor.models import FloorPlanStatus
from floorplan_editor.realtime import RealtimeReconciler, merge_patch
from floorplan_editor.session import EditingSession


@pytest.fixture
def session(floor_plan):
    return EditingSession(floor_plan)


@pytest.fixture
def reconciler(session):
    return RealtimeReconciler(session)


def test_patch_for_other_plan_ignored(reconciler, session, floor_plan):
    result = reconciler.apply({"id": "fp-2", "status": "PUBLISHED"})
    assert result.applied is False
    assert session.present is floor_plan


def test_status_patch_applies_without_undo_frame(reconciler, session):
    events = []
    session.subscribe(lambda kind, s: events.append(kind))
    result = reconciler.apply(json.dumps({"id": "fp-1", "status": "PUBLISHED"}))
    assert result.applied is True
    assert result.fields == ["status"]
    assert session.present.status == FloorPlanStatus.PUBLISHED
    assert session.confirmed.status == FloorPlanStatus.PUBLISHED
    assert session.is_dirty is False
    assert not session.can_undo
    assert events == ["remote"]


def test_metadata_merged_key_by_key(reconciler, session):
    reconciler.apply({"id": "fp-1", "metadata": {"usableArea": 800, "version": "7"}})
    metadata = session.present.metadata
    assert metadata.usable_area == 800
    assert metadata.name == "Level 1"
    assert session.known_version == "7"


def test_snake_case_keys_accepted(reconciler, session):
    reconciler.apply({"id": "fp-1", "metadata": {"file_url": "https://files.example.com/v2.pdf"}})
    assert session.present.metadata.file_url == "https://files.example.com/v2.pdf"


def test_remote_patch_preserves_local_edits(reconciler, session):
    session.add_space({"name": "Meeting", "coordinates": rect(20, 0, 5, 10)})
    reconciler.apply({"id": "fp-1", "metadata": {"version": "3"}})
    assert len(session.present.spaces) == 2
    assert len(session.confirmed.spaces) == 1
    assert session.is_dirty is True
    assert len(session.undo_stack) == 1


def test_undo_keeps_remote_changes(reconciler, session):
    session.add_space({"name": "Meeting", "coordinates": rect(20, 0, 5, 10)})
    reconciler.apply({"id": "fp-1", "metadata": {"name": "Renamed remotely", "version": "7"}})

    session.undo()
    assert len(session.present.spaces) == 1
    assert session.present.metadata.name == "Renamed remotely"
    assert session.present.metadata.version == "7"
    assert session.is_dirty is False

    session.redo()
    assert len(session.present.spaces) == 2
    assert session.present.metadata.name == "Renamed remotely"
    assert session.present.metadata.version == "7"


def test_redo_frames_are_rebased(reconciler, session):
    session.set_status("REVIEW")
    session.undo()
    reconciler.apply({"id": "fp-1", "metadata": {"level": 3}})
    session.redo()
    assert session.present.status == FloorPlanStatus.REVIEW
    assert session.present.metadata.level == 3


def test_spaces_patch_reports_overwritten_local_edits(reconciler, session):
    session.update_space("office-1", name="Renamed locally")
    remote_space = session.confirmed.space("office-1").to_wire()
    remote_space["capacity"] = 12
    result = reconciler.apply({"id": "fp-1", "spaces": [remote_space]})

    assert result.overwritten_space_ids == ["office-1"]
    office = session.present.space("office-1")
    assert office.capacity == 12
    assert office.name == "Office 1"
    assert session.is_dirty is False


def test_malformed_messages(reconciler):
    with pytest.raises(MalformedPayloadError):
        reconciler.apply("{not json")
    with pytest.raises(MalformedPayloadError):
        reconciler.apply("[1, 2]")
    with pytest.raises(MalformedPayloadError):
        reconciler.apply({"id": "fp-1", "status": "NOT_A_STATUS"})
    with pytest.raises(MalformedPayloadError):
        reconciler.apply({"id": "fp-1", "metadata": "oops"})


def test_merge_patch_replaces_spaces_wholesale(floor_plan):
    merged = merge_patch(floor_plan, {"spaces": []})
    assert merged.spaces == []
    assert merged.metadata == floor_plan.metadata


@pytest.mark.asyncio
async def test_consume_counts_applied(reconciler, session):
    async def channel():
        yield {"id": "fp-1", "status": "REVIEW"}
        yield {"id": "fp-9", "status": "ARCHIVED"}
        yield b'{"id": "fp-1", "metadata": {"level": 2}}'

    assert await reconciler.consume(channel()) == 2
    assert session.present.status == FloorPlanStatus.REVIEW
    assert session.present.metadata.level == 2
