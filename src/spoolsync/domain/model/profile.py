"""Filament profiles, tag rules and their resolved form.

Profiles are plain immutable records. Parent/child relations are ids, never
object references; the graph store turns them into index lookups.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import OriginKind, ProfileOrigin, SyncMode

if TYPE_CHECKING:
    from collections.abc import Mapping

    from spoolsync.domain.reconciliation.errors import AmbiguousTagPrecedence

    from .enums import ForceDirection

type PropertyScalar = str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class PropertyValue:
    value: PropertyScalar
    sync_mode: SyncMode = SyncMode.INHERIT


@dataclass(frozen=True, slots=True, kw_only=True)
class ProfileOptions:
    """Profile-level switches (as opposed to per-property sync modes).

    ``dry_run`` keeps the profile out of every write on both sides.
    """

    allow_upward_propagation: bool = False
    force_direction: ForceDirection | None = None
    dry_run: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class Profile:
    """One filament configuration record as seen by one side of the sync."""

    profile_id: str
    parent_id: str | None = None
    properties: Mapping[str, PropertyValue] = field(default_factory=dict[str, PropertyValue])
    tags: frozenset[str] = frozenset()
    revision: int = 0
    origin: ProfileOrigin = ProfileOrigin.LOCAL
    options: ProfileOptions = field(default_factory=ProfileOptions)
    remote_ref: str | None = None

    def declared_mode(self, name: str) -> SyncMode | None:
        declared = self.properties.get(name)
        return declared.sync_mode if declared is not None else None


@dataclass(frozen=True, slots=True, kw_only=True)
class TagRule:
    """Property assignment applied to every profile carrying ``tag``."""

    tag: str
    property_name: str
    value: PropertyScalar
    precedence: int = 0


@dataclass(frozen=True, slots=True)
class ValueOrigin:
    """Tagged variant: ``source`` is the tag for TAG_RULE, the ancestor id for INHERITED."""

    kind: OriginKind
    source: str | None = None

    @classmethod
    def default(cls) -> ValueOrigin:
        return cls(OriginKind.DEFAULT)

    @classmethod
    def tag_rule(cls, tag: str) -> ValueOrigin:
        return cls(OriginKind.TAG_RULE, tag)

    @classmethod
    def inherited(cls, ancestor_id: str) -> ValueOrigin:
        return cls(OriginKind.INHERITED, ancestor_id)

    @classmethod
    def local_override(cls) -> ValueOrigin:
        return cls(OriginKind.LOCAL_OVERRIDE)

    def __str__(self) -> str:
        if self.source is None:
            return str(self.kind)
        return f"{self.kind}({self.source})"


@dataclass(frozen=True, slots=True)
class ResolvedValue:
    """One effective value.

    For an inherited value ``revision`` is the newest revision of the supplying
    ancestor and the ancestors in between; otherwise it is the profile's own.
    """

    value: PropertyScalar
    origin: ValueOrigin
    mode: SyncMode = SyncMode.INHERIT
    revision: int = 0


@dataclass(frozen=True, slots=True, kw_only=True)
class ResolvedProfile:
    """Effective property values of one profile after resolution."""

    profile_id: str
    parent_id: str | None
    revision: int
    options: ProfileOptions
    values: Mapping[str, ResolvedValue]
    errors: Mapping[str, AmbiguousTagPrecedence] = field(
        default_factory=dict[str, "AmbiguousTagPrecedence"]
    )

    def value_of(self, name: str) -> PropertyScalar:
        resolved = self.values.get(name)
        return resolved.value if resolved is not None else None

    def revision_of(self, name: str) -> int:
        resolved = self.values.get(name)
        return resolved.revision if resolved is not None else self.revision

    def syncable_values(self) -> dict[str, PropertyScalar]:
        """Resolved values that may cross the sync boundary, sorted by name."""

        return {
            name: resolved.value
            for name, resolved in sorted(self.values.items())
            if resolved.mode is not SyncMode.NEVER_SYNC and resolved.value is not None
        }
