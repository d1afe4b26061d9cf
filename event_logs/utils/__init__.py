"""
Utilities package for the event log store.

Exports shared logging helpers. Keep this package lightweight and free of
domain-specific logic.
"""

from event_logs.utils.logging import JsonFormatter, configure_logging, get_logger

__all__ = [
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
