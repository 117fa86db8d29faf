"""Domain model for filament profiles."""

from __future__ import annotations

from .enums import ForceDirection, OriginKind, ProfileOrigin, SyncMode
from .journal import OperationLogEntry, SyncedProfile
from .profile import (
    Profile,
    ProfileOptions,
    PropertyScalar,
    PropertyValue,
    ResolvedProfile,
    ResolvedValue,
    TagRule,
    ValueOrigin,
)
from .properties import normalize_value

__all__ = [
    "ForceDirection",
    "OperationLogEntry",
    "OriginKind",
    "Profile",
    "ProfileOptions",
    "ProfileOrigin",
    "PropertyScalar",
    "PropertyValue",
    "ResolvedProfile",
    "ResolvedValue",
    "SyncMode",
    "SyncedProfile",
    "TagRule",
    "ValueOrigin",
    "normalize_value",
]
