# ruff: noqa: T201

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from spoolsync.app import (
    add_tag_rule,
    last_pass_history,
    list_tag_rules,
    remove_tag_rule,
    sync_with_spoolman,
    watch_spoolman,
)
from spoolsync.config import configure_logging
from spoolsync.domain.reconciliation import PartialSyncFailure
from spoolsync.ui.report import render_history, render_outcome, render_tag_rules

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from spoolsync.domain.model import PropertyScalar

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="spoolsync",
        description="Synchronise OrcaSlicer filament presets with Spoolman",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run one reconciliation pass")
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan the pass and print it without writing to either side",
    )

    subparsers.add_parser("diff", help="Show the differences between both sides")
    subparsers.add_parser("history", help="Show the operations of the last executed pass")

    watch = subparsers.add_parser("watch", help="Keep both sides in sync")
    watch.add_argument(
        "--interval",
        type=float,
        help="Seconds between passes (defaults to SPOOLSYNC_POLL_INTERVAL)",
    )
    watch.add_argument(
        "--max-passes",
        type=int,
        help="Stop after this many passes",
    )

    tag_rule = subparsers.add_parser("tag-rule", help="Tag rule management commands")
    tag_rule_sub = tag_rule.add_subparsers(dest="tag_rule_command", required=True)
    add = tag_rule_sub.add_parser("add", help="Assign a property value to a tag")
    add.add_argument("tag", type=str, help="Tag the rule applies to")
    add.add_argument("property_name", type=str, help="Profile property to set")
    add.add_argument("value", type=str, help="Value to assign (JSON scalars are decoded)")
    add.add_argument(
        "--precedence",
        type=int,
        default=0,
        help="Higher precedence wins between rules (default: %(default)s)",
    )
    remove = tag_rule_sub.add_parser("remove", help="Remove the rules for a tag and property")
    remove.add_argument("tag", type=str)
    remove.add_argument("property_name", type=str)
    tag_rule_sub.add_parser("list", help="List all tag rules")

    return parser.parse_args(list(argv))


def _parse_value(text: str) -> PropertyScalar:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return text
    if value is None or isinstance(value, str | int | float | bool):
        return value
    raise ValueError(f"Tag rule values must be scalars, got: {text}")


def _validate(args: argparse.Namespace) -> None:
    if args.command == "watch":
        if args.interval is not None and args.interval <= 0:
            raise ValueError("Interval must be positive")
        if args.max_passes is not None and args.max_passes < 1:
            raise ValueError("Max passes must be at least 1")
    if args.command == "tag-rule" and args.tag_rule_command == "add":
        args.value = _parse_value(args.value)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        _validate(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "sync":
            outcome = asyncio.run(sync_with_spoolman(dry_run=parsed_args.dry_run))
            print(render_outcome(outcome))
            if outcome.report is not None:
                outcome.report.raise_for_failures()
        elif parsed_args.command == "diff":
            outcome = asyncio.run(sync_with_spoolman(dry_run=True))
            print(render_outcome(outcome, show_changes=True))
        elif parsed_args.command == "history":
            print(render_history(last_pass_history()))
        elif parsed_args.command == "watch":
            passes = asyncio.run(
                watch_spoolman(
                    poll_interval=parsed_args.interval,
                    max_passes=parsed_args.max_passes,
                )
            )
            log.info("Sync service stopped after %s passes", passes)
        elif parsed_args.command == "tag-rule" and parsed_args.tag_rule_command == "add":
            add_tag_rule(
                tag=parsed_args.tag,
                property_name=parsed_args.property_name,
                value=parsed_args.value,
                precedence=parsed_args.precedence,
            )
        elif parsed_args.command == "tag-rule" and parsed_args.tag_rule_command == "remove":
            removed = remove_tag_rule(tag=parsed_args.tag, property_name=parsed_args.property_name)
            print(f"Removed {removed} tag rule(s)")
        elif parsed_args.command == "tag-rule" and parsed_args.tag_rule_command == "list":
            print(render_tag_rules(list_tag_rules()))
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except PartialSyncFailure as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(1)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def entrypoint() -> None:
    """Console script entry point: load ``.env`` and install the SIGINT handler."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    entrypoint()
