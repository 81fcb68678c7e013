"""
Event handling boundary for Patrolbot.

Wires the rule engine to its collaborators:
- restores cooldowns from the state file at construction
- evaluates each event and delivers the admitted warnings
- fires the audit record for every delivered warning
- persists cooldown changes through the debounced writer
- returns an explicit :class:`EventOutcome` instead of raising
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Set

from patrolbot.configuration.app_configuration import PatrolSettings
from patrolbot.datatypes.rule_datatypes import EventOutcome, OutcomeStatus, RuleDecision
from patrolbot.datatypes.slack_datatypes import SlackEvent
from patrolbot.moderation.cooldown_tracker import CooldownTracker
from patrolbot.moderation.rule_engine import RuleEngine
from patrolbot.persistence.cooldown_state import (
    DEFAULT_DEBOUNCE_SECONDS,
    CooldownStateFile,
    DebouncedCooldownWriter,
)
from patrolbot.services.audit_service import AuditRecorder
from patrolbot.services.notification_service import WarningNotifier
from patrolbot.util.logger import get_logger
from patrolbot.util.time_utils import Clock, epoch_ms

logger = get_logger("patrol_service")


class PatrolService:
    """
    One instance per process; owns all moderation state.

    Args:
        settings: Validated runtime settings.
        state_path: Cooldown state file.
        notifier: Delivers ephemeral warnings.
        audit: Receives one record per delivered warning.
        clock: Source of epoch milliseconds.
        debounce_seconds: Coalescing interval for cooldown saves.
    """

    def __init__(
        self,
        settings: PatrolSettings,
        state_path: Path,
        notifier: WarningNotifier,
        audit: AuditRecorder,
        clock: Clock = epoch_ms,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.settings = settings
        self._notifier = notifier
        self._audit = audit
        self._audit_tasks: Set[asyncio.Task] = set()

        self.state_file = CooldownStateFile(state_path)
        cooldowns = CooldownTracker(clock=clock, max_keys=settings.max_tracked_keys)
        restored = cooldowns.restore(self.state_file.load())
        self.writer = DebouncedCooldownWriter(self.state_file, cooldowns.snapshot, debounce_seconds)
        cooldowns.set_change_listener(self.writer.schedule)

        self.engine = RuleEngine(settings, clock=clock, cooldowns=cooldowns)
        logger.info(
            "[PATROL SERVICE] Initialized (mode=%s, channels=%d, restored_cooldowns=%d)",
            settings.mode, len(settings.channels), restored
        )

    async def handle_event(self, event: SlackEvent) -> EventOutcome:
        """
        Evaluate one event and deliver its warnings.

        Never raises: unexpected errors are logged with the event identities
        and returned as a FAILED outcome.
        """
        try:
            logger.debug(
                "[PATROL SERVICE] Received message user=%s channel=%s ts=%s text=%r",
                event.user, event.channel, event.ts, event.snippet()
            )
            result = self.engine.evaluate(event)
            if result.skipped is not None:
                return EventOutcome(status=OutcomeStatus.SKIPPED, skip_reason=result.skipped)

            outcome = EventOutcome(status=OutcomeStatus.HANDLED, decisions=list(result.decisions))
            for decision in result.warnings:
                if await self._deliver(event, decision):
                    outcome.delivered.append(decision.rule)
            return outcome
        except Exception as exc:
            logger.exception(
                "[PATROL SERVICE] Error while handling message user=%s channel=%s: %s",
                event.user, event.channel, exc
            )
            return EventOutcome(status=OutcomeStatus.FAILED, error=str(exc))

    async def _deliver(self, event: SlackEvent, decision: RuleDecision) -> bool:
        try:
            delivered = await self._notifier.post_ephemeral_warning(event.channel, event.user, decision.message_key)
        except Exception as exc:
            logger.warning(
                "[PATROL SERVICE] Failed to deliver %s warning user=%s channel=%s: %s",
                decision.rule, event.user, event.channel, exc
            )
            return False

        if not delivered:
            logger.warning(
                "[PATROL SERVICE] %s warning not accepted user=%s channel=%s",
                decision.rule, event.user, event.channel
            )
            return False

        logger.info(
            "[PATROL SERVICE] Sent %s warning user=%s channel=%s ts=%s %s",
            decision.rule, event.user, event.channel, event.ts, decision.audit_extra or ""
        )
        self._schedule_audit(event, decision)
        return True

    def _schedule_audit(self, event: SlackEvent, decision: RuleDecision) -> None:
        task = asyncio.create_task(
            self._audit.record_event(
                decision.rule.value,
                event.user,
                event.channel,
                event.ts,
                event.text,
                decision.audit_extra,
            )
        )
        self._audit_tasks.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._audit_tasks.discard(completed)
            if completed.cancelled():
                return
            exc = completed.exception()
            if exc is not None:
                logger.warning("[PATROL SERVICE] Audit record for %s failed: %s", decision.rule, exc)

        task.add_done_callback(_cleanup)

    async def drain(self) -> None:
        """Wait for in-flight audit records."""
        if self._audit_tasks:
            await asyncio.gather(*list(self._audit_tasks), return_exceptions=True)

    def flush(self) -> bool:
        """Synchronous best-effort save of the cooldown state."""
        return self.writer.flush()

    async def shutdown(self) -> bool:
        """Finish audit posts, cancel the debounce timer and write the final snapshot."""
        await self.drain()
        saved = await self.writer.shutdown()
        logger.info("[PATROL SERVICE] Shutdown complete (state saved=%s)", saved)
        return saved
