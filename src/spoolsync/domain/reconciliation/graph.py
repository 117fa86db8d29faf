"""Profile graph store: the validated forest of profiles plus tag rules.

The store is an arena keyed by profile id. Parent and child relations are
index lookups, never object references, so validation is a plain topological
sort over parent edges:
- a parent id that is not in the arena is an ``UnknownParentReference``
- nodes the sort cannot visit sit on a cycle (``CycleDetected``)

Both are fatal: ``load`` refuses to construct a store. A constructed store is
read-only; local and remote snapshots are two independent instances.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import CycleDetected, DuplicateProfile, UnknownParentReference

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from spoolsync.domain.model import Profile, TagRule


@dataclass(frozen=True, slots=True)
class ProfileGraph:
    """Validated, read-only forest of profiles."""

    _profiles: dict[str, Profile] = field(repr=False)
    _children: dict[str, tuple[str, ...]] = field(repr=False)
    _order: tuple[str, ...] = field(repr=False)
    _depth: dict[str, int] = field(repr=False)
    _rules_by_tag: dict[str, tuple[TagRule, ...]] = field(repr=False)

    @classmethod
    def load(cls, profiles: Iterable[Profile], tag_rules: Iterable[TagRule] = ()) -> ProfileGraph:
        """Validate ``profiles`` and build the store, or raise."""

        by_id: dict[str, Profile] = {}
        for profile in profiles:
            if profile.profile_id in by_id:
                raise DuplicateProfile(profile.profile_id)
            by_id[profile.profile_id] = profile

        children: dict[str, list[str]] = {profile_id: [] for profile_id in by_id}
        for profile_id in sorted(by_id):
            parent_id = by_id[profile_id].parent_id
            if parent_id is None:
                continue
            if parent_id not in by_id:
                raise UnknownParentReference(profile_id, parent_id)
            children[parent_id].append(profile_id)

        order, depth = _topological_order(by_id, children)

        rules: dict[str, list[TagRule]] = {}
        for rule in tag_rules:
            rules.setdefault(rule.tag, []).append(rule)

        return cls(
            _profiles=by_id,
            _children={key: tuple(value) for key, value in children.items()},
            _order=order,
            _depth=depth,
            _rules_by_tag={
                tag: tuple(sorted(group, key=lambda r: (r.property_name, -r.precedence)))
                for tag, group in rules.items()
            },
        )

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._profiles))

    def __contains__(self, profile_id: object) -> bool:
        return profile_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    def __iter__(self) -> Iterator[Profile]:
        return (self._profiles[profile_id] for profile_id in self._order)

    def profile(self, profile_id: str) -> Profile:
        try:
            return self._profiles[profile_id]
        except KeyError:
            raise KeyError(f"Unknown profile {profile_id!r}") from None

    def children_of(self, profile_id: str) -> tuple[str, ...]:
        self.profile(profile_id)
        return self._children[profile_id]

    def ancestors_of(self, profile_id: str) -> tuple[str, ...]:
        """Return the ancestor ids of ``profile_id`` in root-to-node order."""

        chain: list[str] = []
        parent_id = self.profile(profile_id).parent_id
        while parent_id is not None:
            chain.append(parent_id)
            parent_id = self._profiles[parent_id].parent_id
        chain.reverse()
        return tuple(chain)

    def root_of(self, profile_id: str) -> str:
        ancestors = self.ancestors_of(profile_id)
        return ancestors[0] if ancestors else profile_id

    def depth_of(self, profile_id: str) -> int:
        self.profile(profile_id)
        return self._depth[profile_id]

    def tags_of(self, profile_id: str) -> frozenset[str]:
        return self.profile(profile_id).tags

    def rules_for_tag(self, tag: str) -> tuple[TagRule, ...]:
        return self._rules_by_tag.get(tag, ())

    @property
    def tag_rules(self) -> tuple[TagRule, ...]:
        return tuple(rule for tag in sorted(self._rules_by_tag) for rule in self._rules_by_tag[tag])

    def topological_order(self) -> tuple[str, ...]:
        """Profile ids with every ancestor before its descendants."""

        return self._order

    def hierarchy(self) -> dict[str, str | None]:
        return {profile_id: profile.parent_id for profile_id, profile in self._profiles.items()}


def _topological_order(
    by_id: dict[str, Profile],
    children: dict[str, list[str]],
) -> tuple[tuple[str, ...], dict[str, int]]:
    # Kahn's algorithm; every node has at most one incoming (parent) edge.
    ready = [profile_id for profile_id, profile in by_id.items() if profile.parent_id is None]
    heapq.heapify(ready)
    depth = dict.fromkeys(ready, 0)
    order: list[str] = []
    while ready:
        profile_id = heapq.heappop(ready)
        order.append(profile_id)
        for child_id in children[profile_id]:
            depth[child_id] = depth[profile_id] + 1
            heapq.heappush(ready, child_id)

    if len(order) != len(by_id):
        visited = set(order)
        raise CycleDetected([profile_id for profile_id in by_id if profile_id not in visited])
    return tuple(order), depth
