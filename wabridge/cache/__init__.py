"""In-memory caches: expiring store and message correlation."""

from .expiring import ExpiringStore
from .correlation import CorrelationCache, RoutingEntry, MESSAGE_TTL

__all__ = [
    "ExpiringStore",
    "CorrelationCache",
    "RoutingEntry",
    "MESSAGE_TTL",
]
