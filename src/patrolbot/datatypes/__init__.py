"""Typed records shared across Patrolbot."""
