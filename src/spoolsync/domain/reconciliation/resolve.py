"""Inheritance resolver: effective property values for every profile.

Profiles are visited ancestor-before-descendant, so a parent's resolved view
is always available when its children are resolved. Per property:

1) the nearest ancestor's resolved value, else the profile's own inherit-mode
   value, else a global default
2) the best tag rule (highest precedence, then tag name ascending); it
   replaces an inherited value only above ``inheritance_precedence``
3) an ``override`` declaration wins unconditionally
4) a ``never_sync`` declaration is a permanent local override: it is not
   tag-matched and not handed down to descendants

An inherited value carries the newest revision along its path from the
supplying ancestor, so an ancestor edit reads as a newer descendant value.

The resolver is a pure function of the graph; the same graph always yields
equal output.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from spoolsync.domain.model import (
    OriginKind,
    ResolvedProfile,
    ResolvedValue,
    SyncMode,
    ValueOrigin,
)

from .errors import AmbiguousTagPrecedence

if TYPE_CHECKING:
    from collections.abc import Mapping

    from spoolsync.domain.model import Profile, PropertyScalar, TagRule

    from .graph import ProfileGraph

log = getLogger(__name__)

type ResolvedProfiles = dict[str, ResolvedProfile]

DEFAULT_INHERITANCE_PRECEDENCE = 0


def resolve_profiles(
    graph: ProfileGraph,
    *,
    defaults: Mapping[str, PropertyScalar] | None = None,
    inheritance_precedence: int = DEFAULT_INHERITANCE_PRECEDENCE,
) -> ResolvedProfiles:
    """Resolve every profile of ``graph``."""

    global_defaults = dict(defaults or {})
    resolved: ResolvedProfiles = {}
    for profile_id in graph.topological_order():
        profile = graph.profile(profile_id)
        parent = resolved[profile.parent_id] if profile.parent_id is not None else None
        resolved[profile_id] = _resolve_profile(
            profile,
            parent=parent,
            rules=_rules_by_property(graph, profile),
            defaults=global_defaults,
            inheritance_precedence=inheritance_precedence,
        )
    return resolved


def _rules_by_property(graph: ProfileGraph, profile: Profile) -> dict[str, list[TagRule]]:
    grouped: dict[str, list[TagRule]] = {}
    for tag in sorted(profile.tags):
        for rule in graph.rules_for_tag(tag):
            grouped.setdefault(rule.property_name, []).append(rule)
    return grouped


def _resolve_profile(
    profile: Profile,
    *,
    parent: ResolvedProfile | None,
    rules: dict[str, list[TagRule]],
    defaults: dict[str, PropertyScalar],
    inheritance_precedence: int,
) -> ResolvedProfile:
    inheritable: dict[str, ResolvedValue] = {}
    if parent is not None:
        inheritable = {
            name: value
            for name, value in parent.values.items()
            if value.mode is not SyncMode.NEVER_SYNC
        }

    names = set(inheritable) | set(profile.properties) | set(rules) | set(defaults)
    values: dict[str, ResolvedValue] = {}
    errors: dict[str, AmbiguousTagPrecedence] = {}

    for name in sorted(names):
        declared = profile.properties.get(name)
        if declared is not None and declared.sync_mode is not SyncMode.INHERIT:
            values[name] = ResolvedValue(
                declared.value,
                ValueOrigin.local_override(),
                declared.sync_mode,
                profile.revision,
            )
            continue

        base: ResolvedValue | None = None
        if name in inheritable and parent is not None:
            from_parent = inheritable[name]
            source = (
                from_parent.origin
                if from_parent.origin.kind is OriginKind.INHERITED
                else ValueOrigin.inherited(parent.profile_id)
            )
            base = ResolvedValue(
                from_parent.value,
                source,
                revision=max(from_parent.revision, parent.revision),
            )
        elif declared is not None:
            base = ResolvedValue(declared.value, ValueOrigin.default(), revision=profile.revision)
        elif name in defaults:
            base = ResolvedValue(defaults[name], ValueOrigin.default(), revision=profile.revision)

        candidates = rules.get(name, [])
        inherited = base is not None and base.origin.kind is OriginKind.INHERITED
        if inherited:
            candidates = [rule for rule in candidates if rule.precedence > inheritance_precedence]

        if candidates:
            try:
                winner = _pick_rule(profile.profile_id, name, candidates)
            except AmbiguousTagPrecedence as exc:
                log.warning("%s", exc)
                errors[name] = exc
                continue
            values[name] = ResolvedValue(
                winner.value, ValueOrigin.tag_rule(winner.tag), revision=profile.revision
            )
        elif base is not None:
            values[name] = base

    return ResolvedProfile(
        profile_id=profile.profile_id,
        parent_id=profile.parent_id,
        revision=profile.revision,
        options=profile.options,
        values=values,
        errors=errors,
    )


def _pick_rule(profile_id: str, property_name: str, rules: list[TagRule]) -> TagRule:
    ranked = sorted(rules, key=lambda rule: (-rule.precedence, rule.tag))
    winner = ranked[0]
    rivals = [
        rule
        for rule in ranked
        if rule.tag == winner.tag and rule.precedence == winner.precedence
    ]
    distinct = sorted({repr(rule.value): rule.value for rule in rivals}.items())
    if len(distinct) > 1:
        raise AmbiguousTagPrecedence(
            profile_id=profile_id,
            property_name=property_name,
            tag=winner.tag,
            precedence=winner.precedence,
            values=[value for _, value in distinct],
        )
    return winner
