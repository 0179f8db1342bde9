# src/floorplan_editor/exceptions.py
"""Exception hierarchy for the floor-plan editing core.

User-correctable geometry problems are never raised; they are returned as
``ValidationResult`` data. The exceptions below signal caller bugs,
malformed payloads, or persistence failures.
"""
from __future__ import annotations

from typing import Any, Optional


class FloorPlanEditorError(Exception):
    """Base exception for all editor errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class GeometryError(FloorPlanEditorError):
    """Raised on malformed geometry input or violated kernel preconditions."""
    pass


class ScaleBoundaryError(GeometryError):
    """Raised when a scaled shape would leave its boundary constraints."""
    pass


class SessionError(FloorPlanEditorError):
    """Base class for editing-session misuse."""
    pass


class SpaceNotFoundError(SessionError):
    """Raised when a mutation references an unknown space id."""
    pass


class HistoryError(SessionError):
    """Raised on undo/redo with an empty stack."""
    pass


class PersistenceError(FloorPlanEditorError):
    """Raised when the persistence boundary rejects or fails a request."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class ConflictError(PersistenceError):
    """Raised when the server version no longer matches ours (HTTP 409)."""
    pass


class TransientPersistenceError(PersistenceError):
    """Raised when retries for network, 5xx or 429 failures are exhausted."""
    pass


class MalformedPayloadError(PersistenceError):
    """Raised when a server or push payload is not a valid floor plan."""
    pass


class UploadValidationError(PersistenceError):
    """Raised when a floor-plan file fails the size or MIME checks."""
    pass
