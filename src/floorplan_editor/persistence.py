# src/floorplan_editor/persistence.py
"""Debounced autosave with optimistic apply, rollback and conflict detection."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Union

from floorplan_editor.config import EditorConfig
from floorplan_editor.exceptions import (
    ConflictError,
    MalformedPayloadError,
    PersistenceError,
    TransientPersistenceError,
)
from floorplan_editor.logging_config import get_logger
from floorplan_editor.models import FloorPlan, FloorPlanStatus
from floorplan_editor.session import EditingSession

log = get_logger("persistence")


class FloorPlanStore(Protocol):
    """Persistence boundary; ``HttpFloorPlanClient`` is the REST implementation."""

    async def get(self, floor_plan_id: str) -> FloorPlan: ...

    async def put(self, floor_plan: FloorPlan, version: str) -> FloorPlan: ...

    async def patch_metadata(self, floor_plan_id: str, changes: Mapping[str, Any]) -> FloorPlan: ...

    async def patch_status(
        self, floor_plan_id: str, status: Union[FloorPlanStatus, str]
    ) -> FloorPlan: ...


class SaveStatus(str, Enum):
    SAVED = "saved"
    CONFLICT = "conflict"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    STALE = "stale"
    ERROR = "error"


@dataclass
class SaveOutcome:
    status: SaveStatus
    floor_plan: FloorPlan
    error: Optional[Exception] = None
    discarded: Optional[FloorPlan] = None


OutcomeListener = Callable[[SaveOutcome], None]


def _retrieve_exception(task: asyncio.Task) -> None:
    # timer-started saves have no awaiter; the error already reached on_outcome
    if not task.cancelled():
        task.exception()


class PersistenceCoordinator:
    """Coalesces session mutations into debounced PUTs.

    Only the debounce timer is ever cancelled. A save that is already in
    flight runs to completion; if more edits arrive meanwhile, exactly one
    follow-up save is issued once it settles. A response whose base version
    no longer matches the session's known version is ignored.
    """

    def __init__(
        self,
        session: EditingSession,
        store: FloorPlanStore,
        config: Optional[EditorConfig] = None,
    ) -> None:
        self.session = session
        self.store = store
        self.config = config or session.config
        self.last_outcome: Optional[SaveOutcome] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._resave = False
        self._closed = False
        self._listeners: list[OutcomeListener] = []
        self._unsubscribe = session.subscribe(self._on_session_event)
        self._log = log.bind(floor_plan_id=session.floor_plan_id)

    @classmethod
    async def open(
        cls,
        store: FloorPlanStore,
        floor_plan_id: str,
        config: Optional[EditorConfig] = None,
    ) -> PersistenceCoordinator:
        """Load a floor plan from the store and start an editing session on it."""
        plan = await store.get(floor_plan_id)
        if plan.id != floor_plan_id:
            raise MalformedPayloadError(
                "Store returned a different floor plan",
                details={"requested": floor_plan_id, "received": plan.id},
            )
        return cls(EditingSession(plan, config), store, config)

    # ------------------------------------------------------------------ #
    # Scheduling
    # ------------------------------------------------------------------ #

    @property
    def has_pending_save(self) -> bool:
        return self._timer is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def on_outcome(self, listener: OutcomeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _on_session_event(self, kind: str, session: EditingSession) -> None:
        if kind == "mutation" and session.is_dirty:
            self.schedule()

    def schedule(self) -> None:
        """(Re)start the debounce timer."""
        if self._closed:
            return
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.config.save_delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._start_save()

    def _start_save(self) -> Optional[asyncio.Task]:
        if self.in_flight:
            self._resave = True
            return self._in_flight
        if self._closed or not self.session.is_dirty:
            return None
        self._in_flight = asyncio.ensure_future(self._save())
        self._in_flight.add_done_callback(_retrieve_exception)
        return self._in_flight

    # ------------------------------------------------------------------ #
    # Save
    # ------------------------------------------------------------------ #

    async def _save(self) -> SaveOutcome:
        sent, base_version = self.session.begin_save()
        self._log.debug("Saving against version {}", base_version)
        try:
            saved = await self.store.put(sent, base_version)
            if saved.id != sent.id:
                raise MalformedPayloadError(
                    "Save returned a different floor plan",
                    details={"sent": sent.id, "received": saved.id},
                )
        except ConflictError as exc:
            self.session.end_save()
            self._log.warning("Save conflict on version {}: {}", base_version, exc.message)
            outcome = SaveOutcome(SaveStatus.CONFLICT, self.session.present, error=exc)
        except (TransientPersistenceError, MalformedPayloadError) as exc:
            self.session.end_save()
            self._log.error("Save failed, keeping local edits: {}", exc.message)
            outcome = SaveOutcome(SaveStatus.FAILED, self.session.present, error=exc)
        except PersistenceError as exc:
            self._log.error("Save rejected, rolling back: {}", exc.message)
            discarded = self.session.rollback_to_confirmed()
            outcome = SaveOutcome(
                SaveStatus.ROLLED_BACK, self.session.present, error=exc, discarded=discarded
            )
        except Exception as exc:
            self.session.end_save()
            self._log.opt(exception=exc).error("Save crashed, keeping local edits")
            self._finish(SaveOutcome(SaveStatus.ERROR, self.session.present, error=exc))
            raise
        else:
            if self.session.known_version != base_version:
                self.session.end_save()
                self._log.info(
                    "Ignoring stale save response for version {} (now {})",
                    base_version, self.session.known_version,
                )
                outcome = SaveOutcome(SaveStatus.STALE, self.session.present)
            else:
                self.session.confirm_save(saved, sent)
                self._log.info("Saved version {}", saved.metadata.version)
                outcome = SaveOutcome(SaveStatus.SAVED, self.session.present)

        self._finish(outcome)
        return outcome

    def _finish(self, outcome: SaveOutcome) -> None:
        self.last_outcome = outcome
        self._in_flight = None
        for listener in list(self._listeners):
            listener(outcome)

        # a stale response left our edits unsaved against a newer version
        resave, self._resave = self._resave, False
        if outcome.status is SaveStatus.STALE or (resave and outcome.status is SaveStatus.SAVED):
            self._start_save()

    async def flush(self) -> Optional[SaveOutcome]:
        """Save now instead of waiting for the debounce timer."""
        self._cancel_timer()
        task = self._start_save()
        if task is None:
            return None
        await self.wait_idle()
        return self.last_outcome

    async def wait_idle(self) -> None:
        """Wait until no save is in flight, including a coalesced follow-up."""
        while self.in_flight:
            await asyncio.shield(self._in_flight)

    async def close(self) -> None:
        """Stop autosaving; an in-flight save still completes."""
        self._closed = True
        self._cancel_timer()
        self._unsubscribe()
        await self.wait_idle()

    # ------------------------------------------------------------------ #
    # Narrow updates
    # ------------------------------------------------------------------ #

    def _adopt(self, saved: FloorPlan, field: str, kind: str) -> None:
        """Take ``field`` and the new server version from ``saved``, keeping pending edits."""

        def fold(plan: FloorPlan) -> FloorPlan:
            metadata = plan.metadata.model_copy(update={
                "version": saved.metadata.version,
                "last_modified": saved.metadata.last_modified,
            })
            update = {"metadata": metadata, field: getattr(saved, field)}
            return plan.model_copy(update=update)

        self.session.apply_remote(
            fold(self.session.present), fold(self.session.confirmed), kind, rebase=fold
        )

    async def publish_status(self, status: Union[FloorPlanStatus, str]) -> FloorPlan:
        saved = await self.store.patch_status(self.session.floor_plan_id, FloorPlanStatus(status))
        self._adopt(saved, "status", "status")
        self._log.info("Status changed to {}", saved.status.value)
        return self.session.present

    async def save_metadata(self, **changes: Any) -> FloorPlan:
        saved = await self.store.patch_metadata(self.session.floor_plan_id, changes)
        self._adopt(saved, "metadata", "metadata")
        return self.session.present
