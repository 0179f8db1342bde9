# src/floorplan_editor/session.py
"""Editing session: gated mutations, undo/redo and dirty-state tracking."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from floorplan_editor.config import EditorConfig
from floorplan_editor.exceptions import ScaleBoundaryError, SessionError, SpaceNotFoundError
from floorplan_editor.geometry import (
    calculate_space_area,
    check_space_overlap,
    check_usable_area,
    generate_space_id,
    is_polygon_closed,
    normalize_coordinates,
    scale_coordinates,
    validate_space_coordinates,
)
from floorplan_editor.history import History
from floorplan_editor.logging_config import get_logger
from floorplan_editor.models import (
    Coordinate,
    FloorPlan,
    FloorPlanSpace,
    FloorPlanStatus,
    ScaleOptions,
    ValidationResult,
)

SessionListener = Callable[[str, "EditingSession"], None]

# Fields owned by the kernel or by the persistence layer.
_COMPUTED_SPACE_FIELDS = {"id", "area"}
_SERVER_METADATA_FIELDS = {"version", "last_modified"}


class SessionState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


@dataclass
class MutationResult:
    applied: bool
    validation: ValidationResult
    floor_plan: FloorPlan


class EditingSession:
    """Holds the present floor plan and the local user's edit history.

    ``present`` only changes through the mutation gate, undo/redo, the
    persistence hooks, or a remote patch. A candidate that fails
    validation never replaces it.
    """

    def __init__(self, floor_plan: FloorPlan, config: Optional[EditorConfig] = None) -> None:
        self.config = config or EditorConfig()
        self.present = floor_plan
        self.confirmed = floor_plan
        self.history = History(self.config.history_limit)
        self.selected_space_id: Optional[str] = None
        self.is_dirty = False
        self.is_saving = False
        self.validation_errors: list[ValidationResult] = []
        self._listeners: list[SessionListener] = []
        self._log = get_logger("session").bind(floor_plan_id=floor_plan.id)

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        if self.is_saving:
            return SessionState.SAVING
        if self.is_dirty:
            return SessionState.EDITING
        return SessionState.IDLE

    @property
    def floor_plan_id(self) -> str:
        return self.present.id

    @property
    def known_version(self) -> str:
        """Version of the last server-confirmed snapshot."""
        return self.confirmed.metadata.version

    @property
    def undo_stack(self) -> list[FloorPlan]:
        return self.history.undo_stack

    @property
    def redo_stack(self) -> list[FloorPlan]:
        return self.history.redo_stack

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener(kind, session)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str) -> None:
        for listener in list(self._listeners):
            listener(kind, self)

    # ------------------------------------------------------------------ #
    # Mutation gate
    # ------------------------------------------------------------------ #

    def _require_space(self, space_id: str) -> FloorPlanSpace:
        space = self.present.space(space_id)
        if space is None:
            raise SpaceNotFoundError(
                f"Space '{space_id}' not found", details={"floor_plan_id": self.present.id}
            )
        return space

    @staticmethod
    def _with_area(space: FloorPlanSpace) -> FloorPlanSpace:
        if len(space.coordinates) < 3:
            return space.model_copy(update={"area": 0.0})
        return space.model_copy(
            update={"area": calculate_space_area(space.coordinates, space.is_3d)}
        )

    def _replace_space(self, space: FloorPlanSpace) -> FloorPlan:
        spaces = [space if s.id == space.id else s for s in self.present.spaces]
        return self.present.model_copy(update={"spaces": spaces})

    def _gate(self, candidate: FloorPlan, touched: list[str]) -> ValidationResult:
        dims = candidate.metadata.dimensions
        prefix = len(touched) > 1
        result = ValidationResult.ok()

        for space_id in touched:
            space = candidate.space(space_id)
            check = validate_space_coordinates(space.coordinates, dims, space.is_3d)
            if prefix:
                check = ValidationResult(
                    is_valid=check.is_valid,
                    errors=[f"{space.name}: {e}" for e in check.errors],
                    warnings=[f"{space.name}: {w}" for w in check.warnings],
                )
            result = result.merge(check)
        if not result.is_valid:
            return result

        checked: set[frozenset[str]] = set()
        tolerance = self.config.overlap_tolerance
        for space_id in touched:
            space = candidate.space(space_id)
            for other in candidate.spaces:
                pair = frozenset({space.id, other.id})
                if other.id == space.id or pair in checked or len(other.coordinates) < 3:
                    continue
                checked.add(pair)
                overlap = check_space_overlap(space, other, tolerance)
                if overlap.has_overlap:
                    result = result.merge(ValidationResult(
                        is_valid=False,
                        errors=[
                            f"Space '{space.name}' overlaps '{other.name}' "
                            f"by {overlap.overlap_area:.2f}"
                        ],
                    ))

        return result.merge(check_usable_area(candidate.spaces, candidate.metadata.usable_area))

    def _commit(self, candidate: FloorPlan, touched: Iterable[str], action: str) -> MutationResult:
        validation = self._gate(candidate, list(touched))
        if not validation.is_valid:
            self.validation_errors = [validation]
            self._log.info("Rejected {}: {}", action, "; ".join(validation.errors))
            return MutationResult(applied=False, validation=validation, floor_plan=self.present)

        self.history.push(self.present)
        self.present = candidate
        self.is_dirty = True
        self.validation_errors = []
        self._sync_selection()
        self._log.debug("Applied {}", action)
        self._emit("mutation")
        return MutationResult(applied=True, validation=validation, floor_plan=candidate)

    def _sync_selection(self) -> None:
        if self.selected_space_id and self.present.space(self.selected_space_id) is None:
            self.selected_space_id = None

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def add_space(self, space: Union[FloorPlanSpace, Mapping[str, Any]]) -> MutationResult:
        if not isinstance(space, FloorPlanSpace):
            space = FloorPlanSpace.model_validate(space)
        if not space.id:
            space = space.model_copy(update={"id": generate_space_id()})
        if self.present.space(space.id) is not None:
            raise SessionError(f"Space '{space.id}' already exists")

        space = self._with_area(space)
        candidate = self.present.model_copy(update={"spaces": [*self.present.spaces, space]})
        return self._commit(candidate, [space.id], f"add_space({space.id})")

    def update_space(self, space_id: str, **changes: Any) -> MutationResult:
        """Change any space field except ``id`` and the computed ``area``."""
        forbidden = _COMPUTED_SPACE_FIELDS & changes.keys()
        if forbidden:
            raise SessionError(
                f"Cannot set {', '.join(sorted(forbidden))} on a space directly"
            )
        current = self._require_space(space_id)
        if "coordinates" in changes:
            changes["coordinates"] = normalize_coordinates(changes["coordinates"])
        data = current.model_dump()
        data.update(changes)
        space = self._with_area(FloorPlanSpace.model_validate(data))
        return self._commit(self._replace_space(space), [space_id], f"update_space({space_id})")

    def remove_space(self, space_id: str) -> MutationResult:
        self._require_space(space_id)
        spaces = [s for s in self.present.spaces if s.id != space_id]
        candidate = self.present.model_copy(update={"spaces": spaces})
        return self._commit(candidate, [], f"remove_space({space_id})")

    def move_vertex(self, space_id: str, index: int, coordinate: Any) -> MutationResult:
        """Move one vertex; the shared first/last vertex of a closed ring moves together."""
        space = self._require_space(space_id)
        coords = list(space.coordinates)
        n = len(coords)
        if not -n <= index < n:
            raise SessionError(
                f"Vertex {index} out of range for space '{space_id}'",
                details={"points": n},
            )
        index %= n
        new_coord = normalize_coordinates([coordinate])[0]

        closed = n > 1 and is_polygon_closed(coords)
        coords[index] = new_coord
        if closed and index in (0, n - 1):
            coords[0] = coords[n - 1] = new_coord

        moved = self._with_area(space.model_copy(update={"coordinates": coords}))
        return self._commit(
            self._replace_space(moved), [space_id], f"move_vertex({space_id}, {index})"
        )

    def scale_space(
        self, space_id: str, factor: float, options: Optional[ScaleOptions] = None
    ) -> MutationResult:
        """Scale a space, constrained to the plan bounds unless other bounds are given."""
        space = self._require_space(space_id)
        options = options or ScaleOptions()
        if options.boundary_constraints is None:
            options = options.model_copy(
                update={"boundary_constraints": self.present.metadata.dimensions}
            )
        try:
            coords = scale_coordinates(space.coordinates, factor, options)
        except ScaleBoundaryError as exc:
            validation = ValidationResult(is_valid=False, errors=[exc.message])
            self.validation_errors = [validation]
            self._log.info("Rejected scale_space({}): {}", space_id, exc.message)
            return MutationResult(applied=False, validation=validation, floor_plan=self.present)

        scaled = self._with_area(space.model_copy(update={"coordinates": coords}))
        return self._commit(
            self._replace_space(scaled), [space_id], f"scale_space({space_id}, {factor})"
        )

    def update_metadata(self, **changes: Any) -> MutationResult:
        forbidden = _SERVER_METADATA_FIELDS & changes.keys()
        if forbidden:
            raise SessionError(
                f"{', '.join(sorted(forbidden))} is managed by the server"
            )
        data = self.present.metadata.model_dump()
        data.update(changes)
        metadata = type(self.present.metadata).model_validate(data)
        candidate = self.present.model_copy(update={"metadata": metadata})

        touched: list[str] = []
        if metadata.dimensions != self.present.metadata.dimensions:
            touched = [s.id for s in candidate.spaces]
        return self._commit(candidate, touched, "update_metadata")

    def set_status(self, status: Union[FloorPlanStatus, str]) -> MutationResult:
        candidate = self.present.model_copy(update={"status": FloorPlanStatus(status)})
        return self._commit(candidate, [], f"set_status({status})")

    def select_space(self, space_id: Optional[str]) -> None:
        if space_id is not None:
            self._require_space(space_id)
        self.selected_space_id = space_id

    # ------------------------------------------------------------------ #
    # History
    # ------------------------------------------------------------------ #

    def undo(self) -> FloorPlan:
        self.present = self.history.undo(self.present)
        self._after_history()
        return self.present

    def redo(self) -> FloorPlan:
        self.present = self.history.redo(self.present)
        self._after_history()
        return self.present

    def _after_history(self) -> None:
        self.is_dirty = self.present != self.confirmed
        self.validation_errors = []
        self._sync_selection()
        self._emit("history")

    # ------------------------------------------------------------------ #
    # Persistence and reconciliation hooks
    # ------------------------------------------------------------------ #

    def begin_save(self) -> tuple[FloorPlan, str]:
        """Mark the session as saving; returns the plan to send and its base version."""
        self.is_saving = True
        return self.present, self.known_version

    def confirm_save(self, server_plan: FloorPlan, sent: FloorPlan) -> None:
        """Adopt a server acknowledgement for ``sent``."""
        self.is_saving = False
        self.confirmed = server_plan
        if self.present is sent:
            self.present = server_plan
            self.is_dirty = False
        else:
            # newer local edits stay pending on top of the acknowledged version
            metadata = self.present.metadata.model_copy(update={
                "version": server_plan.metadata.version,
                "last_modified": server_plan.metadata.last_modified,
            })
            self.present = self.present.model_copy(update={"metadata": metadata})
            self.is_dirty = self.present != self.confirmed
        self._sync_selection()
        self._emit("saved")

    def end_save(self) -> None:
        self.is_saving = False

    def rollback_to_confirmed(self) -> FloorPlan:
        """Restore the last server-confirmed plan; returns the discarded plan.

        The discarded plan is pushed as an undo frame so the user can bring
        the lost edits back explicitly.
        """
        discarded = self.present
        self.is_saving = False
        if discarded is not self.confirmed:
            self.history.push(discarded)
        self.present = self.confirmed
        self.is_dirty = False
        self.validation_errors = []
        self._sync_selection()
        self._log.warning("Rolled back unsaved edits to version {}", self.known_version)
        self._emit("rollback")
        return discarded

    def apply_remote(
        self,
        present: FloorPlan,
        confirmed: FloorPlan,
        kind: str = "remote",
        rebase: Optional[Callable[[FloorPlan], FloorPlan]] = None,
    ) -> None:
        """Install a server-side change without recording an undo frame.

        ``rebase`` folds the same change into every undo/redo frame so that
        undo only reverts the local user's own edits.
        """
        if rebase is not None:
            self.history.rebase(rebase)
        self.present = present
        self.confirmed = confirmed
        self.is_dirty = self.present != self.confirmed
        self._sync_selection()
        self._emit(kind)
