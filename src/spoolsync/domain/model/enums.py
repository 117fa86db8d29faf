"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class SyncMode(StrEnum):
    """How a declared property takes part in resolution and sync."""

    INHERIT = "inherit"
    OVERRIDE = "override"
    NEVER_SYNC = "never_sync"


class ProfileOrigin(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class OriginKind(StrEnum):
    """Where a resolved value came from."""

    DEFAULT = "default"
    TAG_RULE = "tag_rule"
    INHERITED = "inherited"
    LOCAL_OVERRIDE = "local_override"


class ForceDirection(StrEnum):
    PUSH = "push"
    PULL = "pull"
