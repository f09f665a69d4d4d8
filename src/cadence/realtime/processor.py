"""
Realtime Session Processor

Turns provider messages for one recording session into client messages,
feeding transcript results through a `TurnAssembler`.
"""

from typing import Any
from uuid import UUID

import structlog

from cadence.core.models import Turn
from cadence.pipeline.assembler import TurnAssembler, TurnUpdate
from .protocol import (
    MalformedResultError,
    PartialPayload,
    ProviderMessageType,
    RealtimeMessage,
    RealtimeMessageType,
    TurnPayload,
    decode_result,
    message_type,
    partial_text,
)

logger = structlog.get_logger()


class RealtimeProcessor:
    """
    Per-session provider message handler.

    Usage:
        processor = RealtimeProcessor(conversation_id)
        for reply in processor.handle_provider_message(message):
            await websocket.send_json(reply.model_dump(mode="json"))
        turns = processor.finish()
    """

    def __init__(
        self,
        conversation_id: UUID,
        assembler: TurnAssembler | None = None,
    ):
        self.conversation_id = conversation_id
        self.assembler = assembler or TurnAssembler()
        self.malformed_count = 0
        self.finished = False
        self.log = logger.bind(conversation_id=str(conversation_id))

    @property
    def turns(self) -> list[Turn]:
        return self.assembler.turns

    def handle_provider_message(self, message: dict[str, Any]) -> list[RealtimeMessage]:
        """Process one provider message, returning messages for the client."""
        kind = message_type(message)

        if kind == ProviderMessageType.ADD_TRANSCRIPT:
            return self._handle_transcript(message)

        if kind == ProviderMessageType.ADD_PARTIAL_TRANSCRIPT:
            text = " ".join(part for part in (self.assembler.pending_text, partial_text(message)) if part)
            return [self._partial(text)] if text else []

        if kind == ProviderMessageType.END_OF_TRANSCRIPT:
            self.log.info("Provider transcript ended", turn_count=len(self.assembler.turns))

        return []

    def finish(self) -> list[Turn]:
        """Close the session, discarding any unterminated sentence."""
        if not self.finished:
            self.assembler.discard_pending()
            self.finished = True
            self.log.info(
                "Realtime session finished",
                turn_count=len(self.assembler.turns),
                malformed_results=self.malformed_count,
            )
        return self.assembler.turns

    def _handle_transcript(self, message: dict[str, Any]) -> list[RealtimeMessage]:
        replies = []
        for raw in message.get("results") or []:
            try:
                event = decode_result(raw)
            except MalformedResultError as e:
                self.malformed_count += 1
                self.assembler.discard_pending()
                self.log.warning("Malformed provider result", error=str(e))
                continue

            update = self.assembler.feed(event)
            if update is not None:
                replies.append(self._turn(update))

        if self.assembler.pending_text:
            replies.append(self._partial(self.assembler.pending_text))
        return replies

    def _partial(self, text: str) -> RealtimeMessage:
        return RealtimeMessage(
            type=RealtimeMessageType.TRANSCRIPT_PARTIAL,
            conversation_id=self.conversation_id,
            payload=PartialPayload(speaker_label=self.assembler.pending_speaker, text=text).model_dump(),
        )

    def _turn(self, update: TurnUpdate) -> RealtimeMessage:
        turn = update.turn
        return RealtimeMessage(
            type=RealtimeMessageType.TRANSCRIPT_TURN,
            conversation_id=self.conversation_id,
            payload=TurnPayload(
                order=turn.order,
                speaker_label=turn.speaker_label,
                text=turn.text,
                start_time=turn.start_time,
                end_time=turn.end_time,
                merged=update.merged,
            ).model_dump(),
        )
