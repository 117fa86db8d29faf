"""Pydantic models describing the Spoolman API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class SpoolmanBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class VendorPayload(SpoolmanBaseModel):
    id: int
    name: str


class FilamentPayload(SpoolmanBaseModel):
    id: int
    registered: str | None = None
    name: str | None = None
    vendor: VendorPayload | None = None
    material: str | None = None
    price: float | None = None
    density: float
    diameter: float
    weight: float | None = None
    spool_weight: float | None = None
    comment: str | None = None
    settings_extruder_temp: int | None = None
    settings_bed_temp: int | None = None
    color_hex: str | None = None
    extra: dict[str, str] = Field(default_factory=dict[str, str])

    _normalize_blanks = field_validator("name", "material", "color_hex", "comment", mode="before")(
        _blank_to_none
    )


class ExtraFieldPayload(SpoolmanBaseModel):
    key: str
    name: str
    field_type: str
    entity_type: str | None = None


class ErrorResponse(SpoolmanBaseModel):
    message: str | None = None
    detail: object = None
