"""Orchestrator for one reconciliation pass.

The engine composes the stages but does not know any backend. Both snapshots
are loaded into independent graphs, resolved, diffed, decided and planned;
executing the plan is a separate step so callers can dry-run. Decisions that
write to, or come from, a profile flagged ``dry_run`` are turned into skips.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from .contracts import Conflict, Decision, Direction
from .diff import diff_profiles
from .graph import ProfileGraph
from .plan import SyncPlanner
from .policy import MergePolicy
from .resolve import DEFAULT_INHERITANCE_PRECEDENCE, resolve_profiles

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Mapping

    from spoolsync.domain.model import Profile, PropertyScalar, TagRule

    from .contracts import ChangeRecord, Verdict
    from .errors import AmbiguousTagPrecedence
    from .plan import SyncPlan
    from .policy import DecideChange

log = getLogger(__name__)


@dataclass(slots=True)
class ReconciliationResult:
    changes: list[ChangeRecord]
    verdicts: list[Verdict]
    plan: SyncPlan
    resolution_errors: list[AmbiguousTagPrecedence]

    @property
    def conflicts(self) -> list[Conflict]:
        return self.plan.conflicts


@dataclass(slots=True, kw_only=True)
class ReconciliationEngine:
    """Run resolution, diff, merge policy and planning for two snapshots."""

    policy: DecideChange = field(default_factory=MergePolicy)
    planner: SyncPlanner = field(default_factory=SyncPlanner)
    defaults: Mapping[str, PropertyScalar] = field(default_factory=dict[str, "PropertyScalar"])
    inheritance_precedence: int = DEFAULT_INHERITANCE_PRECEDENCE

    def reconcile(
        self,
        local_profiles: Iterable[Profile],
        remote_profiles: Iterable[Profile],
        tag_rules: Iterable[TagRule] = (),
        *,
        synced_ids: Collection[str] = frozenset(),
    ) -> ReconciliationResult:
        """Compute the plan that brings both snapshots in line.

        Raises the graph load errors (``CycleDetected``, ``UnknownParentReference``,
        ``DuplicateProfile``) for either snapshot.
        """

        rules = tuple(tag_rules)
        local_graph = ProfileGraph.load(local_profiles, rules)
        remote_graph = ProfileGraph.load(remote_profiles, rules)

        local = resolve_profiles(
            local_graph,
            defaults=self.defaults,
            inheritance_precedence=self.inheritance_precedence,
        )
        remote = resolve_profiles(
            remote_graph,
            defaults=self.defaults,
            inheritance_precedence=self.inheritance_precedence,
        )

        changes = diff_profiles(local, remote, synced_ids=synced_ids)
        ordered = sorted(changes, key=lambda change: change.sort_key())
        dry_run_ids = frozenset(
            profile.profile_id for profile in local_graph if profile.options.dry_run
        )
        verdicts = [_hold_dry_run(self.policy.decide(change), dry_run_ids) for change in ordered]
        plan = self.planner.plan(
            verdicts,
            local_hierarchy=local_graph.hierarchy(),
            remote_hierarchy=remote_graph.hierarchy(),
        )

        resolution_errors = [
            error
            for resolved in (*local.values(), *remote.values())
            for _, error in sorted(resolved.errors.items())
        ]
        log.info(
            "Reconciled %s local / %s remote profiles: %s changes, %s operations, %s conflicts",
            len(local_graph),
            len(remote_graph),
            len(changes),
            len(plan.operations),
            len(plan.conflicts),
        )
        return ReconciliationResult(
            changes=changes,
            verdicts=verdicts,
            plan=plan,
            resolution_errors=resolution_errors,
        )


def _hold_dry_run(verdict: Verdict, dry_run_ids: frozenset[str]) -> Verdict:
    """Turn a decision touching a dry-run profile into a skip."""

    if not isinstance(verdict, Decision) or verdict.direction is Direction.SKIP:
        return verdict
    if verdict.change.profile_id in dry_run_ids or verdict.target_id in dry_run_ids:
        log.info("Holding back %s for dry-run profile", verdict.change.profile_id)
        return Decision(
            change=verdict.change,
            direction=Direction.SKIP,
            target_id=verdict.target_id,
            reason="dry_run_profile",
        )
    return verdict
