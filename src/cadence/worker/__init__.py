"""
Cadence Worker Module

Background job processing using ARQ (async Redis queue).
"""

from .queue import (
    enqueue_job,
    get_worker_settings,
    JobPriority,
)
from .tasks import (
    analyze_conversation,
    analyze_participant,
    generate_weak_word_suggestions,
    reconcile_conversation,
)

__all__ = [
    # Queue management
    "enqueue_job",
    "get_worker_settings",
    "JobPriority",
    # Tasks
    "analyze_conversation",
    "analyze_participant",
    "generate_weak_word_suggestions",
    "reconcile_conversation",
]
