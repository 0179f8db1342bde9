# src/floorplan_editor/client.py
"""REST client for the floor-plan persistence boundary."""
from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional, Union

import httpx
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python

from floorplan_editor.config import EditorConfig
from floorplan_editor.exceptions import (
    ConflictError,
    MalformedPayloadError,
    PersistenceError,
    TransientPersistenceError,
    UploadValidationError,
)
from floorplan_editor.logging_config import get_logger
from floorplan_editor.models import FloorPlan, FloorPlanStatus

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
ALLOWED_UPLOAD_TYPES = frozenset({
    "application/pdf",
    "image/png",
    "application/vnd.autocad.dwg",
})
CONFLICT_MESSAGE = "Floor plan has been modified by another user"

log = get_logger("client")


def validate_upload(content_type: str, size: int) -> None:
    """Reject floor-plan files that are too large or of a disallowed type."""
    if content_type not in ALLOWED_UPLOAD_TYPES:
        raise UploadValidationError(
            f"Unsupported floor plan file type: {content_type}",
            details={"allowed": sorted(ALLOWED_UPLOAD_TYPES)},
        )
    if size > MAX_UPLOAD_BYTES:
        raise UploadValidationError(
            f"Floor plan file exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
            details={"size": size},
        )


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _wire_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    return {
        (to_camel(key) if "_" in key else key): to_jsonable_python(value, by_alias=True)
        for key, value in changes.items()
    }


class HttpFloorPlanClient:
    """Async client for ``/floor-plans`` with retry and backoff for transient failures.

    Network errors, 5xx and 429 responses are retried up to
    ``config.max_retries`` times with exponential backoff (``Retry-After``
    wins for 429). A 409 becomes ``ConflictError``; other 4xx responses
    become ``PersistenceError``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        config: Optional[EditorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or EditorConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or self.config.api_base_url,
            timeout=self.config.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> HttpFloorPlanClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def _backoff(self, attempt: int) -> float:
        return min(self.config.retry_backoff * (2 ** attempt), self.config.max_retry_backoff)

    def _retry_after(self, response: httpx.Response, attempt: int) -> float:
        header = response.headers.get("retry-after")
        if response.status_code == 429 and header is not None:
            try:
                return max(0.0, float(header))
            except ValueError:
                pass
        return self._backoff(attempt)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                if attempt >= self.config.max_retries:
                    raise TransientPersistenceError(
                        f"{method} {url} failed after {attempt + 1} attempts: {exc}",
                    ) from exc
                delay = self._backoff(attempt)
                reason = type(exc).__name__
            else:
                if not _is_retryable(response.status_code):
                    return response
                if attempt >= self.config.max_retries:
                    raise TransientPersistenceError(
                        f"{method} {url} failed after {attempt + 1} attempts",
                        status_code=response.status_code,
                    )
                delay = self._retry_after(response, attempt)
                reason = f"HTTP {response.status_code}"

            attempt += 1
            log.warning(
                "{} {} failed ({}), retry {}/{} in {:.2f}s",
                method, url, reason, attempt, self.config.max_retries, delay,
            )
            await asyncio.sleep(delay)

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code == 409:
            raise ConflictError(CONFLICT_MESSAGE, status_code=409)
        if response.status_code >= 400:
            raise PersistenceError(
                f"Failed to {action}: HTTP {response.status_code}",
                details={"body": response.text[:500]},
                status_code=response.status_code,
            )

    @staticmethod
    def _parse_plan(response: httpx.Response) -> FloorPlan:
        try:
            return FloorPlan.model_validate(response.json())
        except ValueError as exc:
            raise MalformedPayloadError(
                "Server returned a malformed floor plan",
                details={"error": str(exc)},
                status_code=response.status_code,
            ) from exc

    # ------------------------------------------------------------------ #
    # Endpoints
    # ------------------------------------------------------------------ #

    async def get(self, floor_plan_id: str) -> FloorPlan:
        response = await self._request(
            "GET",
            f"/floor-plans/{floor_plan_id}",
            headers={"Cache-Control": f"max-age={self.config.cache_max_age}"},
        )
        self._raise_for_status(response, "retrieve floor plan")
        return self._parse_plan(response)

    async def put(self, floor_plan: FloorPlan, version: str) -> FloorPlan:
        response = await self._request(
            "PUT",
            f"/floor-plans/{floor_plan.id}",
            json=floor_plan.to_wire(),
            headers={"If-Match": version},
        )
        self._raise_for_status(response, "update floor plan")
        return self._parse_plan(response)

    async def patch_metadata(self, floor_plan_id: str, changes: Mapping[str, Any]) -> FloorPlan:
        response = await self._request(
            "PATCH", f"/floor-plans/{floor_plan_id}/metadata", json=_wire_changes(changes)
        )
        self._raise_for_status(response, "update floor plan metadata")
        return self._parse_plan(response)

    async def patch_status(
        self, floor_plan_id: str, status: Union[FloorPlanStatus, str]
    ) -> FloorPlan:
        response = await self._request(
            "PATCH",
            f"/floor-plans/{floor_plan_id}/status",
            json={"status": FloorPlanStatus(status).value},
        )
        self._raise_for_status(response, "update floor plan status")
        return self._parse_plan(response)

    async def upload_file(
        self, floor_plan_id: str, filename: str, content: bytes, content_type: str
    ) -> FloorPlan:
        """Upload the source drawing; size and type are checked before sending."""
        validate_upload(content_type, len(content))
        response = await self._request(
            "POST",
            f"/floor-plans/{floor_plan_id}/file",
            files={"file": (filename, content, content_type)},
        )
        self._raise_for_status(response, "upload floor plan file")
        return self._parse_plan(response)
