"""
Durable cooldown state.

The cooldown maps are snapshotted to a flat UTF-8 text file, one record per
line::

    user,U123ABC,1714521600000
    channel,C042XYZ,1714521612345

Blank lines and ``#`` comments are ignored. Every save rewrites the whole file
(temp file + atomic replace), so a crash can lose the latest updates but never
leaves a half-written file behind.

:class:`DebouncedCooldownWriter` coalesces bursts of mutations into a single
background write and offers an explicit :meth:`~DebouncedCooldownWriter.flush`
for shutdown.
"""

from __future__ import annotations

import asyncio
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Set

from patrolbot.datatypes.rule_datatypes import CooldownEntry, CooldownKind
from patrolbot.util.logger import get_logger

logger = get_logger("cooldown_state")

DEFAULT_DEBOUNCE_SECONDS = 0.05


def parse_cooldown_line(line: str) -> CooldownEntry | None:
    """
    Parse one ``kind,identity,timestampMillis`` record.

    Returns:
        CooldownEntry | None: The entry, or None for comments, blank lines and
        malformed records.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    parts = stripped.split(",")
    if len(parts) < 3:
        return None

    kind_raw, identity, ts_raw = parts[0].strip(), parts[1].strip(), parts[2].strip()
    if not identity:
        return None
    try:
        kind = CooldownKind(kind_raw)
        timestamp = int(ts_raw)
    except ValueError:
        return None
    return CooldownEntry(kind=kind, identity=identity, last_warned_at=timestamp)


def format_cooldown_entries(entries: Iterable[CooldownEntry]) -> str:
    """Serialize entries, users first, one line each with a trailing newline."""
    ordered = sorted(entries, key=lambda e: 0 if e.kind is CooldownKind.USER else 1)
    lines = [f"{entry.kind.value},{entry.identity},{entry.last_warned_at}" for entry in ordered]
    return "".join(f"{line}\n" for line in lines)


class CooldownStateFile:
    """Load/save cooldown snapshots at ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> List[CooldownEntry]:
        """
        Read all well-formed entries.

        A missing file means a first run and yields an empty list. Read errors
        are logged as warnings and also yield an empty list.
        """
        if not self.path.exists():
            logger.debug("[COOLDOWN STATE] No state file at %s, starting empty", self.path)
            return []

        try:
            content = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("[COOLDOWN STATE] Failed to read %s: %s", self.path, exc)
            return []

        entries: List[CooldownEntry] = []
        for lineno, line in enumerate(content.splitlines(), start=1):
            entry = parse_cooldown_line(line)
            if entry is not None:
                entries.append(entry)
            elif line.strip() and not line.strip().startswith("#"):
                logger.debug("[COOLDOWN STATE] Skipping malformed line %d in %s: %r", lineno, self.path, line)

        logger.debug(
            "[COOLDOWN STATE] Loaded %d entries from %s",
            len(entries), self.path
        )
        return entries

    def save(self, entries: Iterable[CooldownEntry]) -> None:
        """
        Replace the file with ``entries``.

        Raises:
            OSError: If the file cannot be written. The previous file is left intact.
        """
        payload = format_cooldown_entries(entries)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as fp:
                fp.write(payload)
                fp.flush()
                os.fsync(fp.fileno())
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise


class DebouncedCooldownWriter:
    """
    Coalesces cooldown mutations into deferred whole-file saves.

    Args:
        state_file: Destination of the snapshots.
        snapshot: Callable returning the current entries (usually
            :meth:`CooldownTracker.snapshot`).
        delay_seconds: Coalescing interval.
    """

    def __init__(
        self,
        state_file: CooldownStateFile,
        snapshot: Callable[[], List[CooldownEntry]],
        delay_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._state_file = state_file
        self._snapshot = snapshot
        self._delay = max(0.0, float(delay_seconds))
        self._timer: asyncio.Task[None] | None = None
        self._active_saves: Set[asyncio.Task] = set()
        self._write_lock = threading.Lock()
        self._dirty = False

    @property
    def pending(self) -> bool:
        """True when a mutation has not been written yet."""
        return self._dirty

    def schedule(self) -> None:
        """Request a save; returns immediately. Repeated calls within the delay share one write."""
        self._dirty = True
        if self._timer is not None and not self._timer.done():
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[COOLDOWN STATE] No running event loop; save deferred to next flush")
            return

        self._timer = loop.create_task(self._delayed_save())

    def flush(self) -> bool:
        """Write the current snapshot synchronously. Returns False if the write failed."""
        with self._write_lock:
            self._dirty = False
            entries = self._snapshot()
            try:
                self._state_file.save(entries)
            except OSError as exc:
                self._dirty = True
                logger.warning("[COOLDOWN STATE] Failed to save %s: %s", self._state_file.path, exc)
                return False

        logger.debug("[COOLDOWN STATE] Saved %d entries to %s", len(entries), self._state_file.path)
        return True

    async def shutdown(self) -> bool:
        """Cancel the pending timer, wait for in-flight saves, then flush."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        self._timer = None

        if self._active_saves:
            await asyncio.gather(*self._active_saves, return_exceptions=True)
            self._active_saves.clear()

        return self.flush()

    async def _delayed_save(self) -> None:
        while True:
            await asyncio.sleep(self._delay)
            save = asyncio.ensure_future(asyncio.to_thread(self.flush))
            self._active_saves.add(save)
            save.add_done_callback(self._active_saves.discard)
            ok = await asyncio.shield(save)
            # Mutations that landed while the write was running need one more pass
            if not ok or not self._dirty:
                return
