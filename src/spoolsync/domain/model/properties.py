"""Well-known filament properties and value normalization.

Slicer presets store every value as a string (usually wrapped in a list),
while the inventory backend uses typed JSON. Both adapters run values through
``normalize_value`` so the diff engine can compare them with ``==``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from .profile import PropertyScalar

DENSITY: Final = "filament_density"
DIAMETER: Final = "filament_diameter"
MATERIAL: Final = "filament_type"
VENDOR: Final = "filament_vendor"
COLOR: Final = "default_filament_colour"
NOZZLE_TEMPERATURE: Final = "nozzle_temperature"
BED_TEMPERATURE: Final = "hot_plate_temp"
COST: Final = "filament_cost"
SPOOL_WEIGHT: Final = "filament_spool_weight"
NET_WEIGHT: Final = "filament_weight"
DISPLAY_NAME: Final = "name"
SETTINGS_ID: Final = "filament_settings_id"
INHERITS: Final = "inherits"

NUMERIC_PROPERTIES: Final[frozenset[str]] = frozenset(
    {
        DENSITY,
        DIAMETER,
        NOZZLE_TEMPERATURE,
        "nozzle_temperature_initial_layer",
        "nozzle_temperature_range_low",
        "nozzle_temperature_range_high",
        BED_TEMPERATURE,
        "hot_plate_temp_initial_layer",
        "cool_plate_temp",
        "textured_plate_temp",
        "chamber_temperature",
        COST,
        SPOOL_WEIGHT,
        NET_WEIGHT,
        "filament_flow_ratio",
        "filament_max_volumetric_speed",
        "temperature_vitrification",
        "filament_shrink",
    }
)
COLOR_PROPERTIES: Final[frozenset[str]] = frozenset({COLOR, "filament_colour"})

_UNSET_MARKERS: Final = frozenset({"", "nil"})


def normalize_value(name: str, raw: object) -> PropertyScalar:
    """Return the canonical scalar form of ``raw`` for property ``name``."""

    value = raw
    if isinstance(value, list | tuple):
        if not value:
            return None
        if len(value) > 1:
            return ";".join(str(item) for item in value)
        value = value[0]

    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip() in _UNSET_MARKERS:
        return None

    if name in NUMERIC_PROPERTIES:
        return _to_number(value)
    if name in COLOR_PROPERTIES and isinstance(value, str):
        return _normalize_color(value)
    if isinstance(value, int | float):
        return value
    return str(value)


def _to_number(value: object) -> int | float | str:
    if isinstance(value, int | float):
        return value
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        return text
    if number.is_integer() and "." not in text and "e" not in text.lower():
        return int(number)
    return number


def _normalize_color(value: str) -> str:
    text = value.strip().upper()
    if not text.startswith("#"):
        text = f"#{text}"
    return text
