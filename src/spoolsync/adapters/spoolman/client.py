"""HTTP client for the Spoolman REST API."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import TypeAdapter, ValidationError

from spoolsync.domain.reconciliation.errors import BackendUnavailable, OperationRejected

from .schema import ErrorResponse, ExtraFieldPayload, FilamentPayload, VendorPayload

if TYPE_CHECKING:
    from spoolsync.adapters.http_resilience import ResilientClient

log = getLogger(__name__)

API_PREFIX = "/api/v1"

_FILAMENT = TypeAdapter(FilamentPayload)
_FILAMENTS = TypeAdapter(list[FilamentPayload])
_VENDOR = TypeAdapter(VendorPayload)
_VENDORS = TypeAdapter(list[VendorPayload])
_EXTRA_FIELDS = TypeAdapter(list[ExtraFieldPayload])


class SpoolmanClient:
    """Thin typed wrapper over the Spoolman endpoints the sync needs.

    Transport errors and 5xx/429 responses raise ``BackendUnavailable``; any
    other error status raises ``OperationRejected``.
    """

    def __init__(self, http: ResilientClient) -> None:
        self._http = http

    async def list_filaments(self) -> list[FilamentPayload]:
        response = await self._call("GET", f"{API_PREFIX}/filament")
        return _parse(_FILAMENTS, response)

    async def create_filament(self, body: dict[str, object]) -> FilamentPayload:
        response = await self._call("POST", f"{API_PREFIX}/filament", json=body)
        return _parse(_FILAMENT, response)

    async def update_filament(self, filament_id: int, body: dict[str, object]) -> FilamentPayload:
        response = await self._call("PATCH", f"{API_PREFIX}/filament/{filament_id}", json=body)
        return _parse(_FILAMENT, response)

    async def delete_filament(self, filament_id: int) -> bool:
        """Delete one filament; ``False`` when it was already gone."""

        response = await self._call(
            "DELETE", f"{API_PREFIX}/filament/{filament_id}", allow_missing=True
        )
        return response is not None

    async def list_vendors(self) -> list[VendorPayload]:
        response = await self._call("GET", f"{API_PREFIX}/vendor")
        return _parse(_VENDORS, response)

    async def create_vendor(self, name: str) -> VendorPayload:
        response = await self._call("POST", f"{API_PREFIX}/vendor", json={"name": name})
        return _parse(_VENDOR, response)

    async def list_extra_fields(self) -> list[ExtraFieldPayload]:
        response = await self._call("GET", f"{API_PREFIX}/field/filament")
        return _parse(_EXTRA_FIELDS, response)

    async def add_extra_field(self, key: str, *, name: str) -> None:
        await self._call(
            "POST",
            f"{API_PREFIX}/field/filament/{key}",
            json={"name": name, "field_type": "text"},
        )

    async def _call(
        self,
        method: str,
        url: str,
        *,
        json: object = None,
        allow_missing: bool = False,
    ) -> httpx.Response | None:
        try:
            response = await self._http.request(method, url, json=json)
        except httpx.HTTPError as exc:
            raise BackendUnavailable(f"Spoolman {method} {url} failed: {exc}") from exc

        status = response.status_code
        if status == httpx.codes.NOT_FOUND and allow_missing:
            return None
        if status == httpx.codes.TOO_MANY_REQUESTS or status >= httpx.codes.INTERNAL_SERVER_ERROR:
            raise BackendUnavailable(f"Spoolman {method} {url} returned {status}")
        if response.is_error:
            detail = _error_detail(response)
            log.debug("Spoolman rejected %s %s: %s", method, url, detail)
            raise OperationRejected(f"Spoolman rejected {method} {url} ({status}): {detail}")
        return response


def _parse[T](adapter: TypeAdapter[T], response: httpx.Response | None) -> T:
    if response is None:
        raise BackendUnavailable("Spoolman returned no content")
    try:
        return adapter.validate_json(response.content)
    except ValidationError as exc:
        raise BackendUnavailable(f"Unexpected Spoolman payload: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = ErrorResponse.model_validate_json(response.content)
    except ValidationError:
        return response.text
    return str(payload.message or payload.detail or response.text)
