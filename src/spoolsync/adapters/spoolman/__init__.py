"""Public interface for the Spoolman adapter."""

from __future__ import annotations

from .backend import SpoolmanBackend
from .client import SpoolmanClient
from .schema import FilamentPayload, VendorPayload
from .translator import build_filament_body, parse_filament

__all__ = [
    "FilamentPayload",
    "SpoolmanBackend",
    "SpoolmanClient",
    "VendorPayload",
    "build_filament_body",
    "parse_filament",
]
