"""Cooldown state persistence."""
