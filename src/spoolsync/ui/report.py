"""Plain-text rendering of reconciliation passes for the CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

from spoolsync.domain.reconciliation import ChangeKind, OperationState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from spoolsync.app import PassHistory, PassOutcome
    from spoolsync.domain.model import TagRule
    from spoolsync.domain.reconciliation import (
        AmbiguousTagPrecedence,
        ChangeRecord,
        Conflict,
        SyncOperation,
        SyncReport,
    )
    from spoolsync.domain.reconciliation.contracts import ChangeValue


def _format_value(value: ChangeValue) -> str:
    if value is None:
        return "-"
    if isinstance(value, dict):
        return f"{len(value)} properties"
    return repr(value)


def render_change(change: ChangeRecord) -> str:
    if change.is_profile_level:
        where = "local only" if change.kind is ChangeKind.ADDED else "remote only"
        return f"  {change.profile_id}: {where}"
    return (
        f"  {change.profile_id}.{change.property_name}: "
        f"local={_format_value(change.local_value)} remote={_format_value(change.remote_value)}"
    )


def render_conflict(conflict: Conflict) -> str:
    return f"  {render_change(conflict.change).strip()} [{conflict.reason}]"


def render_operation(operation: SyncOperation) -> str:
    line = f"  {operation.describe()} {operation.state}"
    if operation.payload:
        line += f" ({', '.join(sorted(operation.payload))})"
    if operation.attempts > 1:
        line += f" after {operation.attempts} attempts"
    if operation.error:
        line += f": {operation.error}"
    return line


def render_changes(changes: Iterable[ChangeRecord]) -> list[str]:
    changes = sorted(changes, key=lambda change: change.sort_key())
    if not changes:
        return ["No differences."]
    return [f"Differences ({len(changes)}):", *(render_change(change) for change in changes)]


def render_conflicts(conflicts: Iterable[Conflict]) -> list[str]:
    conflicts = list(conflicts)
    if not conflicts:
        return []
    return [f"Conflicts ({len(conflicts)}):", *(render_conflict(item) for item in conflicts)]


def render_resolution_errors(errors: Iterable[AmbiguousTagPrecedence]) -> list[str]:
    errors = list(errors)
    if not errors:
        return []
    return [f"Tag rule errors ({len(errors)}):", *(f"  {error}" for error in errors)]


def render_report(report: SyncReport) -> list[str]:
    counts = report.counts()
    summary = ", ".join(f"{state}={count}" for state, count in counts.items()) or "nothing to do"
    lines = [f"Operations: {summary}"]
    lines.extend(
        render_operation(operation)
        for operation in report.operations
        if operation.state is not OperationState.CONFIRMED
    )
    return lines


def render_outcome(outcome: PassOutcome, *, show_changes: bool = False) -> str:
    result = outcome.result
    lines: list[str] = []
    if show_changes:
        lines.extend(render_changes(result.changes))
    lines.extend(render_conflicts(result.conflicts))
    lines.extend(render_resolution_errors(result.resolution_errors))

    if outcome.report is None:
        operations = result.plan.operations
        lines.append(f"Planned operations ({len(operations)}):" if operations else "In sync.")
        lines.extend(render_operation(operation) for operation in operations)
    else:
        lines.extend(render_report(outcome.report))
    return "\n".join(lines)


def render_tag_rules(rules: Iterable[TagRule]) -> str:
    rules = list(rules)
    if not rules:
        return "No tag rules."
    return "\n".join(
        f"{rule.tag}: {rule.property_name}={rule.value!r} (precedence {rule.precedence})"
        for rule in rules
    )


def render_history(history: PassHistory | None) -> str:
    if history is None:
        return "No pass has been executed yet."
    lines = [f"Last pass {history.pass_id} ({len(history.entries)} operations):"]
    for entry in history.entries:
        line = f"  {entry.side}:{entry.kind}:{entry.target_id} {entry.state}"
        if entry.attempts > 1:
            line += f" after {entry.attempts} attempts"
        if entry.error:
            line += f": {entry.error}"
        synced = history.synced.get(entry.target_id)
        if synced is not None:
            line += f" [synced {synced.synced_at:%Y-%m-%d %H:%M}]"
        lines.append(line)
    return "\n".join(lines)
