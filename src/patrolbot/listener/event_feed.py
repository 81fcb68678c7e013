"""
Newline-delimited JSON event intake.

Each line is either a bare Slack ``message`` event or an Events API envelope
(``{"type": "event_callback", "event": {...}}``). Anything else is logged and
skipped. Lines are read on a daemon thread and handed to the event loop
through a queue.
"""

from __future__ import annotations

import asyncio
import json
import sys
import threading
from typing import Any, AsyncIterator, Awaitable, Callable, TextIO

from patrolbot.datatypes.slack_datatypes import SlackEvent
from patrolbot.util.logger import get_logger

logger = get_logger("event_feed")

EventHandler = Callable[[SlackEvent], Awaitable[Any]]


def parse_event_line(line: str) -> SlackEvent | None:
    """Decode one feed line; returns None for blank, invalid or non-message lines."""
    stripped = line.strip()
    if not stripped:
        return None
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError as exc:
        logger.warning("[EVENT FEED] Undecodable line skipped: %s", exc)
        return None

    if isinstance(payload, dict) and isinstance(payload.get("event"), dict):
        payload = payload["event"]
    if not isinstance(payload, dict):
        logger.warning("[EVENT FEED] Ignoring non-object payload: %r", stripped[:80])
        return None
    if payload.get("type", "message") != "message":
        logger.debug("[EVENT FEED] Ignoring %s event", payload.get("type"))
        return None
    return SlackEvent.from_payload(payload)


def _start_reader(source: TextIO, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue) -> threading.Thread:
    """Pump lines from ``source`` into ``queue`` on a daemon thread; ``""`` marks EOF.

    A blocked ``readline`` cannot be cancelled, so the thread is a daemon and
    never holds up interpreter exit once the loop has stopped listening.
    """

    def pump() -> None:
        try:
            while True:
                try:
                    line = source.readline()
                except (OSError, ValueError) as exc:
                    logger.warning("[EVENT FEED] Input stream failed: %s", exc)
                    line = ""
                loop.call_soon_threadsafe(queue.put_nowait, line)
                if not line:
                    return
        except RuntimeError:
            # Event loop already closed; nobody is waiting for more lines
            return

    reader = threading.Thread(target=pump, name="patrolbot-event-feed", daemon=True)
    reader.start()
    return reader


async def iter_events(stream: TextIO | None = None) -> AsyncIterator[SlackEvent]:
    """Yield events from ``stream`` (stdin by default) until EOF.

    Cancelling the consuming task stops iteration immediately, even while
    the underlying stream is still blocked waiting for input.
    """
    source = stream if stream is not None else sys.stdin
    queue: asyncio.Queue[str] = asyncio.Queue()
    _start_reader(source, asyncio.get_running_loop(), queue)
    while True:
        line = await queue.get()
        if not line:
            logger.info("[EVENT FEED] End of input")
            return
        event = parse_event_line(line)
        if event is not None:
            yield event


async def run_event_feed(handler: EventHandler, stream: TextIO | None = None) -> int:
    """Dispatch every event to ``handler`` concurrently; returns the number dispatched."""
    pending: set[asyncio.Task] = set()
    dispatched = 0
    try:
        async for event in iter_events(stream):
            task = asyncio.create_task(handler(event))
            pending.add(task)
            task.add_done_callback(pending.discard)
            dispatched += 1
    finally:
        if pending:
            await asyncio.gather(*list(pending), return_exceptions=True)
    return dispatched
