"""Structured logging utilities."""

from .events import JsonlEventLogger, LedgerEvent, sanitize_context

__all__ = ["JsonlEventLogger", "LedgerEvent", "sanitize_context"]
