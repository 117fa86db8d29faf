"""Wake the sync service when a preset in the filament directory changes."""

from __future__ import annotations

import asyncio
import contextlib
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from watchfiles import Change, awatch

if TYPE_CHECKING:
    from types import TracebackType

log = getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 1600


def is_preset_change(change: Change, path: str) -> bool:
    """Created or modified ``*.json`` files; hidden files (our temporaries) are ignored."""

    name = Path(path).name
    return (
        change in (Change.added, Change.modified)
        and name.endswith(".json")
        and not name.startswith(".")
    )


class PresetWatcher:
    """Background ``awatch`` over one directory, exposed as a wait-with-timeout.

    Our own preset writes are seen too; the pass they trigger plans nothing.
    """

    def __init__(
        self,
        directory: Path,
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        force_polling: bool | None = None,
        poll_delay_ms: int = 300,
    ) -> None:
        self.directory = directory
        self._debounce_ms = debounce_ms
        self._force_polling = force_polling
        self._poll_delay_ms = poll_delay_ms
        self._changed = asyncio.Event()
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> PresetWatcher:
        self._stop.clear()
        self._task = asyncio.create_task(self._watch(), name=f"watch {self.directory}")
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._stop.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None

    async def wait(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; ``True`` when a preset changed meanwhile."""

        try:
            await asyncio.wait_for(self._changed.wait(), timeout)
        except TimeoutError:
            return False
        self._changed.clear()
        return True

    async def _watch(self) -> None:
        log.info("Watching %s for preset changes", self.directory)
        try:
            async for changes in awatch(
                self.directory,
                watch_filter=is_preset_change,
                debounce=self._debounce_ms,
                stop_event=self._stop,
                force_polling=self._force_polling,
                poll_delay_ms=self._poll_delay_ms,
                recursive=False,
            ):
                log.debug("Preset changes: %s", sorted(path for _, path in changes))
                self._changed.set()
        except OSError:
            log.exception("Preset watcher stopped; passes fall back to the poll interval")
