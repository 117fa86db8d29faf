"""In-process Spoolman API for adapter and integration tests."""

from __future__ import annotations

import itertools
import json

import httpx

SpoolmanRecord = dict[str, object]


class FakeSpoolman:
    """In-process Spoolman serving the filament, vendor and extra field endpoints."""

    def __init__(self) -> None:
        self.filaments: dict[int, SpoolmanRecord] = {}
        self.vendors: dict[int, SpoolmanRecord] = {}
        self.fields: dict[str, SpoolmanRecord] = {}
        self.requests: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], int] = {}
        # requests that are served but whose response never reaches the client
        self.lost_responses: set[tuple[str, str]] = set()
        self._filament_ids = itertools.count(1)
        self._vendor_ids = itertools.count(1)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_filament(self, **values: object) -> SpoolmanRecord:
        record: SpoolmanRecord = {"density": 1.24, "diameter": 1.75, "extra": {}, **values}
        filament_id = next(self._filament_ids)
        record["id"] = filament_id
        self.filaments[filament_id] = record
        return record

    def calls(self, method: str) -> list[str]:
        return [path for seen, path in self.requests if seen == method]

    def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        response = self._route(request)
        if (method, path) in self.lost_responses:
            self.lost_responses.discard((method, path))
            raise httpx.ReadTimeout("response lost", request=request)
        return response

    def _route(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        status = self.failures.get((method, path))
        if status is not None:
            return httpx.Response(status, json={"message": f"forced {status}"})

        body = json.loads(request.content) if request.content else {}
        route = path.removeprefix("/api/v1/").split("/")
        match (method, route):
            case ("GET", ["field", "filament"]):
                return httpx.Response(200, json=list(self.fields.values()))
            case ("POST", ["field", "filament", key]):
                self.fields[key] = {
                    "key": key,
                    "name": body["name"],
                    "field_type": body["field_type"],
                    "entity_type": "filament",
                }
                return httpx.Response(200, json=list(self.fields.values()))
            case ("GET", ["vendor"]):
                return httpx.Response(200, json=list(self.vendors.values()))
            case ("POST", ["vendor"]):
                vendor_id = next(self._vendor_ids)
                self.vendors[vendor_id] = {"id": vendor_id, "name": body["name"]}
                return httpx.Response(200, json=self.vendors[vendor_id])
            case ("GET", ["filament"]):
                records = [self.filaments[key] for key in sorted(self.filaments)]
                return httpx.Response(200, json=records)
            case ("POST", ["filament"]):
                return self._save(None, body)
            case ("PATCH", ["filament", filament_id]):
                return self._save(int(filament_id), body)
            case ("DELETE", ["filament", filament_id]):
                if self.filaments.pop(int(filament_id), None) is None:
                    return httpx.Response(404, json={"message": "Filament not found"})
                return httpx.Response(200, json={"message": "Success!"})
            case _:
                return httpx.Response(404, json={"message": f"No route {method} {path}"})

    def _save(self, filament_id: int | None, body: dict[str, object]) -> httpx.Response:
        extra = body.get("extra") or {}
        unknown = sorted(key for key in extra if key not in self.fields)  # type: ignore[union-attr]
        if unknown:
            return httpx.Response(400, json={"message": f"Unknown extra field {unknown[0]}"})

        if filament_id is None:
            record = self.add_filament()
        else:
            record = self.filaments.get(filament_id)
            if record is None:
                return httpx.Response(404, json={"message": "Filament not found"})

        for key, value in body.items():
            if key == "vendor_id":
                record["vendor"] = self.vendors.get(value)  # type: ignore[arg-type]
            elif key == "extra":
                record["extra"] = {**record["extra"], **value}  # type: ignore[dict-item]
            else:
                record[key] = value
        return httpx.Response(200, json=record)
