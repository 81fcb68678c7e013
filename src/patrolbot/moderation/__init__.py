"""
Rate-admission core for Patrolbot.

- **window_store.py**: Sliding-window counters keyed by (user, channel);
  eager expiry on every write and bounded key count.

- **cooldown_tracker.py**: Compare-and-set "last warned at" gate per user and
  per channel.

- **text_rules.py**: Mention and reply-marker checks on message text.

- **rule_engine.py**: Applies the three rules in order against the stores and
  produces per-rule decisions for one event.
"""
