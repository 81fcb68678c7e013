"""
Rule evaluation for a single inbound message.

The engine owns the cooldown tracker and the flood window store and decides,
without doing any I/O, which warnings an event earns. Delivery of warnings
and audit records is left to :mod:`patrolbot.services.patrol_service`.

Evaluation order is fixed: ``no_mention``, ``non_thread_reply``, ``flood``.

* ``no_mention`` ends evaluation as soon as it matches, even when its
  cooldown denied the warning.
* ``non_thread_reply`` never ends evaluation.
* ``flood`` records the event first and matches at ``count >= flood_max_posts``.
"""

from __future__ import annotations

from patrolbot.configuration.app_configuration import PatrolSettings
from patrolbot.datatypes.rule_datatypes import EvaluationResult, RuleDecision, RuleName, SkipReason
from patrolbot.datatypes.slack_datatypes import SlackEvent
from patrolbot.moderation.cooldown_tracker import CooldownTracker
from patrolbot.moderation.text_rules import contains_user_mention, looks_like_reply_text
from patrolbot.moderation.window_store import WindowStore, ensure_window_ms
from patrolbot.util.logger import get_logger
from patrolbot.util.time_utils import Clock, epoch_ms

logger = get_logger("rule_engine")


class RuleEngine:
    """
    Admission engine for moderation warnings.

    Args:
        settings: Validated runtime settings.
        clock: Source of epoch milliseconds shared with the stores.
        cooldowns: Optional pre-built tracker (e.g. restored from disk).
        windows: Optional pre-built flood window store.
    """

    def __init__(
        self,
        settings: PatrolSettings,
        clock: Clock = epoch_ms,
        cooldowns: CooldownTracker | None = None,
        windows: WindowStore | None = None,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self.window_ms = ensure_window_ms(settings.flood_window_sec)
        self.cooldowns = cooldowns or CooldownTracker(clock=clock, max_keys=settings.max_tracked_keys)
        self.windows = windows or WindowStore(window_ms=self.window_ms, max_keys=settings.max_tracked_keys)

    def evaluate(self, event: SlackEvent) -> EvaluationResult:
        """
        Decide which warnings ``event`` earns.

        Args:
            event: The inbound message.

        Returns:
            EvaluationResult: Skip reason, or the ordered rule decisions.
        """
        result = EvaluationResult(event=event)

        if event.is_system_post:
            logger.debug(
                "[RULE ENGINE] Skipping bot/subtype post user=%s channel=%s subtype=%s bot_id=%s",
                event.user, event.channel, event.subtype, event.bot_id
            )
            result.skipped = SkipReason.SYSTEM_POST
            return result

        if event.is_threaded_reply:
            logger.debug("[RULE ENGINE] Skipping threaded reply user=%s thread=%s", event.user, event.thread_ts)
            result.skipped = SkipReason.THREADED_REPLY
            return result

        if not self.settings.is_monitored_channel(event.channel):
            logger.debug("[RULE ENGINE] Channel %s is not monitored", event.channel)
            result.skipped = SkipReason.UNMONITORED_CHANNEL
            return result

        rules = self.settings.rules

        if rules.no_mention and not contains_user_mention(event.text):
            result.decisions.append(self._admit(RuleName.NO_MENTION, event))
            return result

        if rules.non_thread_reply and looks_like_reply_text(event.text):
            result.decisions.append(self._admit(RuleName.NON_THREAD_REPLY, event))

        if rules.flood:
            count = self.windows.record((event.user, event.channel), self._clock(), self.window_ms)
            logger.debug(
                "[RULE ENGINE] Flood count user=%s channel=%s count=%d window_ms=%d",
                event.user, event.channel, count, self.window_ms
            )
            if count >= self.settings.flood_max_posts:
                result.decisions.append(self._admit(RuleName.FLOOD, event, count=count))

        return result

    def _admit(self, rule: RuleName, event: SlackEvent, **audit_extra) -> RuleDecision:
        ok_user, ok_channel = self.cooldowns.try_admit_pair(
            event.user,
            event.channel,
            self.settings.cooldown_ms_user,
            self.settings.cooldown_ms_channel,
        )
        decision = RuleDecision(
            rule=rule,
            matched=True,
            admitted=ok_user and ok_channel,
            user_gate=ok_user,
            channel_gate=ok_channel,
            audit_extra=dict(audit_extra),
        )
        if not decision.admitted:
            logger.debug(
                "[RULE ENGINE] %s matched but cooling down user=%s channel=%s cooldown_user=%s cooldown_channel=%s",
                rule, event.user, event.channel, not ok_user, not ok_channel
            )
        return decision
