"""Core primitives for homehub."""

from .models import Reading, Rule, RuleValidationError, SolarCommand, is_clock_time
from .protocols import MessageHandler, Publisher, SolarResolver, Subscriber
from .snapshots import JsonSnapshot, SnapshotError

__all__ = [
    "JsonSnapshot",
    "MessageHandler",
    "Publisher",
    "Reading",
    "Rule",
    "RuleValidationError",
    "SnapshotError",
    "SolarCommand",
    "SolarResolver",
    "Subscriber",
    "is_clock_time",
]
