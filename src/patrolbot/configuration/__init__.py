"""
Configuration management for Patrolbot.

Loads and validates ``config/app_config.yml`` and the warning templates in
``config/messages.yml``.
"""
