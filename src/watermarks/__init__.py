"""Durable per-pair "last checked" watermarks."""

from .exceptions import PersistenceError
from .store import (
    GLOBAL_KEY,
    WatermarkStore,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "GLOBAL_KEY",
    "PersistenceError",
    "WatermarkStore",
    "format_timestamp",
    "parse_timestamp",
]
