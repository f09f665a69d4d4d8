"""External service integrations."""

from .speechmatics import (
    SpeechmaticsBatchClient,
    SpeechmaticsError,
    SpeechmaticsRealtimeClient,
)

__all__ = [
    "SpeechmaticsBatchClient",
    "SpeechmaticsError",
    "SpeechmaticsRealtimeClient",
]
