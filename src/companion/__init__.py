"""Companion - persona chat bot with long-term memory and proactive messages."""

__version__ = "0.1.0"
