"""Conversational session synchronization and response delivery engine."""

__version__ = "0.1.0"
