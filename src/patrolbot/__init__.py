"""
Patrolbot - Slack channel etiquette patrol

Patrolbot watches Slack channels and sends ephemeral warnings to members who
break posting etiquette, without warning the same person or channel too often.

Core Components:

- **Rule Engine**: Evaluates ``no_mention``, ``non_thread_reply`` and ``flood``
  in a fixed order and decides which warnings are admitted
- **Cooldown Tracker**: Per-user and per-channel minimum interval between
  warnings, restored from disk on startup
- **Window Store**: Sliding-window post counters behind the flood rule
- **Persistence**: Debounced whole-file snapshots of cooldown state
- **Services**: Slack ephemeral delivery and best-effort webhook audit rows

Usage:
    from patrolbot.main import main
    main()  # Reads newline-delimited Slack events from stdin
"""
