"""
Cadence Realtime Module

Live recording sessions: provider and client protocols plus the per-session
processor that relays audio and assembles turns.
"""

from .protocol import (
    MalformedResultError,
    ProviderMessageType,
    RealtimeMessage,
    RealtimeMessageType,
    decode_result,
)

__all__ = [
    "MalformedResultError",
    "ProviderMessageType",
    "RealtimeMessage",
    "RealtimeMessageType",
    "decode_result",
]
