"""API Route modules."""

from . import analytics, conversations, health, realtime, speech

__all__ = ["analytics", "conversations", "health", "realtime", "speech"]
