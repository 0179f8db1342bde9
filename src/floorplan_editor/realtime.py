# src/floorplan_editor/realtime.py
"""Merge externally pushed floor-plan patches into an editing session."""
from __future__ import annotations

import json
from collections.abc import AsyncIterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic.alias_generators import to_camel

from floorplan_editor.exceptions import MalformedPayloadError
from floorplan_editor.logging_config import get_logger
from floorplan_editor.models import FloorPlan
from floorplan_editor.session import EditingSession

log = get_logger("realtime")

PushMessage = Union[str, bytes, Mapping[str, Any]]


@dataclass
class ReconcileResult:
    applied: bool
    fields: list[str] = field(default_factory=list)
    overwritten_space_ids: list[str] = field(default_factory=list)


def _wire_key(key: str) -> str:
    return to_camel(key) if "_" in key else key


def _decode(message: PushMessage) -> dict[str, Any]:
    if isinstance(message, (str, bytes)):
        try:
            message = json.loads(message)
        except ValueError as exc:
            raise MalformedPayloadError("Push message is not valid JSON") from exc
    if not isinstance(message, Mapping):
        raise MalformedPayloadError(
            "Push message must be an object", details={"type": type(message).__name__}
        )
    return {_wire_key(k): v for k, v in message.items()}


def merge_patch(plan: FloorPlan, patch: Mapping[str, Any]) -> FloorPlan:
    """Last-write-wins merge: metadata key by key, every other field wholesale."""
    data = plan.to_wire()
    for key, value in patch.items():
        if key == "id":
            continue
        if key == "metadata":
            if not isinstance(value, Mapping):
                raise MalformedPayloadError("Patch metadata must be an object")
            data["metadata"] = {**data["metadata"], **{_wire_key(k): v for k, v in value.items()}}
        else:
            data[key] = value
    try:
        return FloorPlan.model_validate(data)
    except ValueError as exc:
        raise MalformedPayloadError(
            "Patch produces an invalid floor plan", details={"error": str(exc)}
        ) from exc


class RealtimeReconciler:
    """Applies remote partial updates to the session's present state.

    Patches are trusted as validated by their sender: they skip the
    mutation gate and never create undo frames; existing undo and redo
    frames are rebased onto the patch, so undo only reverts local edits.
    Concurrent edits to the same space are not merged; the remote patch
    wins and the overwritten local space ids are reported.
    """

    def __init__(self, session: EditingSession) -> None:
        self.session = session

    def _locally_changed_spaces(self) -> list[str]:
        confirmed = self.session.confirmed
        return [
            s.id for s in self.session.present.spaces
            if confirmed.space(s.id) != s
        ]

    def apply(self, message: PushMessage) -> ReconcileResult:
        patch = _decode(message)
        if patch.get("id") != self.session.floor_plan_id:
            log.debug("Ignoring patch for floor plan {}", patch.get("id"))
            return ReconcileResult(applied=False)

        present = merge_patch(self.session.present, patch)
        confirmed = merge_patch(self.session.confirmed, patch)

        overwritten: list[str] = []
        if "spaces" in patch:
            for space_id in self._locally_changed_spaces():
                if present.space(space_id) != self.session.present.space(space_id):
                    overwritten.append(space_id)
        if overwritten:
            log.warning(
                "Remote patch overwrote unsaved local edits to spaces {}", ", ".join(overwritten)
            )

        self.session.apply_remote(
            present, confirmed, rebase=lambda frame: merge_patch(frame, patch)
        )
        fields = [k for k in patch if k != "id"]
        log.debug("Applied remote patch ({})", ", ".join(fields))
        return ReconcileResult(applied=True, fields=fields, overwritten_space_ids=overwritten)

    async def consume(self, messages: AsyncIterable[PushMessage]) -> int:
        """Apply every message from a push channel; returns how many were applied."""
        applied = 0
        async for message in messages:
            if self.apply(message).applied:
                applied += 1
        return applied
