"""
User Dashboard

Aggregates a user's stored conversations and analytics into overview totals,
average scores and short score/filler trends.
"""

from uuid import UUID

from cadence.core.models import (
    Conversation,
    ConversationStatus,
    ConversationSummary,
    DashboardOverview,
    FillerTrendPoint,
    ScoreTrendPoint,
    SpeechAnalytics,
    Turn,
    UserDashboard,
)
from cadence.pipeline.analytics import round_half_up

TREND_LENGTH = 10
RECENT_CONVERSATIONS = 10


def _average(values: list[int]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


def build_dashboard(
    conversations: list[Conversation],
    analytics: list[SpeechAnalytics],
    user_turns: dict[UUID, list[Turn]],
) -> UserDashboard:
    """
    Build the dashboard from pre-fetched data.

    Args:
        conversations: Non-pending conversations, most recently started first
        analytics: The user's analytics records, most recent first
        user_turns: The user's own turns per conversation ID
    """
    total_minutes = sum(
        (c.ended_at - c.started_at).total_seconds() / 60
        for c in conversations
        if c.started_at and c.ended_at
    )
    total_words = sum(
        len(turn.text.split())
        for turns in user_turns.values()
        for turn in turns
    )

    overview = DashboardOverview(
        total_conversations=len(conversations),
        completed_conversations=sum(1 for c in conversations if c.status == ConversationStatus.ENDED),
        total_words=total_words,
        total_minutes=round_half_up(total_minutes),
        avg_clarity=_average([a.scores.clarity for a in analytics]),
        avg_conciseness=_average([a.scores.conciseness for a in analytics]),
        avg_confidence=_average([a.scores.confidence for a in analytics]),
    )

    # Oldest first so the trend reads left to right
    recent = list(reversed(analytics[:TREND_LENGTH]))

    return UserDashboard(
        overview=overview,
        performance_trend=[
            ScoreTrendPoint(
                conversation=index,
                clarity=a.scores.clarity,
                conciseness=a.scores.conciseness,
                confidence=a.scores.confidence,
            )
            for index, a in enumerate(recent, start=1)
        ],
        filler_trend=[
            FillerTrendPoint(
                conversation=index,
                count=a.filler_words.count,
                rate=round_half_up(a.filler_words.rate_per_minute * 10) / 10,
            )
            for index, a in enumerate(recent, start=1)
        ],
        recent_conversations=[
            ConversationSummary(
                id=c.id,
                location=c.location,
                status=c.status,
                started_at=c.started_at,
                ended_at=c.ended_at,
            )
            for c in conversations[:RECENT_CONVERSATIONS]
        ],
    )
