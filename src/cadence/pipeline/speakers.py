"""
Speaker Resolution

Maps diarization labels emitted by the provider ("S1", "S2", ...) onto the
conversation's participants. S1 is the initiator, S2 the person who joined;
any other label is attributed to the initiator.
"""

from uuid import UUID

from cadence.core.models import Conversation, Turn

INITIATOR_LABEL = "S1"
PARTICIPANT_LABEL = "S2"


def build_speaker_map(conversation: Conversation) -> dict[str, UUID]:
    """Provider label to participant user ID."""
    return {
        INITIATOR_LABEL: conversation.initiator_user_id,
        PARTICIPANT_LABEL: conversation.participant_user_id or conversation.initiator_user_id,
    }


def resolve_participants(turns: list[Turn], conversation: Conversation) -> list[Turn]:
    """Attach participant and conversation IDs, keeping IDs already resolved."""
    speaker_map = build_speaker_map(conversation)
    return [
        turn.model_copy(
            update={
                "participant_id": turn.participant_id
                or speaker_map.get(turn.speaker_label, conversation.initiator_user_id),
                "conversation_id": conversation.id,
            }
        )
        for turn in turns
    ]


def turns_for_participant(turns: list[Turn], user_id: UUID) -> list[Turn]:
    """Turns spoken by one participant, in order."""
    return sorted(
        (turn for turn in turns if turn.participant_id == user_id),
        key=lambda t: t.order,
    )
