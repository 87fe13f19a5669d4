"""Normalize exported feeding and pumping logs into canonical session records."""

__version__ = "0.1.0"
