"""
Realtime WebSocket Routes

Live recording sessions: the client streams binary PCM frames, the server
relays them to the speech provider and pushes partial text and finalized
turns back as they are assembled.
"""

import asyncio
from uuid import UUID

import orjson
import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.websockets import WebSocketState

from cadence.db.store import ConversationNotFoundError
from cadence.integrations.speechmatics import SpeechmaticsError, SpeechmaticsRealtimeClient
from cadence.pipeline.orchestrator import ConversationPipeline
from cadence.realtime.processor import RealtimeProcessor
from cadence.realtime.protocol import (
    ErrorPayload,
    RealtimeMessage,
    RealtimeMessageType,
    SessionClosedPayload,
)
from cadence.worker.queue import JobPriority, enqueue_job
from cadence.worker.tasks import analysis_job_id

from ..dependencies import get_pipeline, get_realtime_client

logger = structlog.get_logger()

router = APIRouter()

# Seconds to wait for the provider's EndOfTranscript after session.end
END_OF_TRANSCRIPT_TIMEOUT = 10.0


async def _send(websocket: WebSocket, message: RealtimeMessage) -> None:
    if websocket.client_state == WebSocketState.CONNECTED:
        await websocket.send_json(message.model_dump(mode="json"))


async def _send_error(
    websocket: WebSocket,
    conversation_id: UUID,
    code: str,
    message: str,
    recoverable: bool = True,
) -> None:
    await _send(
        websocket,
        RealtimeMessage(
            type=RealtimeMessageType.ERROR,
            conversation_id=conversation_id,
            payload=ErrorPayload(code=code, message=message, recoverable=recoverable).model_dump(),
        ),
    )


async def _relay_transcripts(
    websocket: WebSocket,
    client: SpeechmaticsRealtimeClient,
    processor: RealtimeProcessor,
) -> None:
    """Forward provider results to the client until EndOfTranscript."""
    try:
        async for message in client.messages():
            for reply in processor.handle_provider_message(message):
                await _send(websocket, reply)
    except SpeechmaticsError as e:
        processor.log.error("Provider session failed", error=str(e))
        await _send_error(websocket, processor.conversation_id, "provider_error", str(e), recoverable=False)


# ══════════════════════════════════════════════════════════════
# WebSocket Endpoint
# ══════════════════════════════════════════════════════════════


@router.websocket("/conversations/{conversation_id}")
async def conversation_websocket(
    websocket: WebSocket,
    conversation_id: UUID,
    pipeline: ConversationPipeline = Depends(get_pipeline),
    client: SpeechmaticsRealtimeClient = Depends(get_realtime_client),
):
    """
    Live transcription for one conversation.

    Protocol:
    1. Client connects to /ws/conversations/{conversation_id}
    2. Server opens a provider session and sends session.ready
    3. Client streams binary PCM frames; ping is answered with pong
    4. Server sends transcript.partial and transcript.turn messages
    5. Client sends session.end (or disconnects)
    6. Server stores the turns, ends the conversation, queues analytics
       and sends session.closed
    """
    await websocket.accept()

    try:
        await pipeline.store.get_conversation(conversation_id)
    except ConversationNotFoundError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Conversation not found")
        return

    log = logger.bind(conversation_id=str(conversation_id))

    try:
        await client.connect()
    except SpeechmaticsError as e:
        log.error("Provider connection failed", error=str(e))
        await _send_error(websocket, conversation_id, "provider_unavailable", str(e), recoverable=False)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    processor = RealtimeProcessor(conversation_id)
    await _send(websocket, RealtimeMessage(type=RealtimeMessageType.SESSION_READY, conversation_id=conversation_id))
    log.info("Realtime session started")

    relay = asyncio.create_task(_relay_transcripts(websocket, client, processor))
    ended_by_client = False

    try:
        while True:
            raw = await websocket.receive()

            if raw["type"] == "websocket.disconnect":
                break

            if raw.get("bytes") is not None:
                await client.send_audio(raw["bytes"])
                continue

            if raw.get("text") is None:
                continue

            try:
                data = orjson.loads(raw["text"])
            except orjson.JSONDecodeError:
                await _send_error(websocket, conversation_id, "invalid_message", "Messages must be JSON")
                continue

            msg_type = data.get("type") if isinstance(data, dict) else None

            if msg_type == RealtimeMessageType.PING.value:
                await _send(websocket, RealtimeMessage(type=RealtimeMessageType.PONG, conversation_id=conversation_id))

            elif msg_type == RealtimeMessageType.SESSION_END.value:
                await client.end_stream()
                ended_by_client = True
                break

            else:
                log.warning("Unknown message type", type=msg_type)

    except WebSocketDisconnect:
        log.info("Client disconnected")

    except SpeechmaticsError as e:
        log.error("Audio relay failed", error=str(e))
        await _send_error(websocket, conversation_id, "provider_error", str(e), recoverable=False)

    # Let the provider flush its final results after a clean end
    if ended_by_client:
        try:
            await asyncio.wait_for(relay, timeout=END_OF_TRANSCRIPT_TIMEOUT)
        except asyncio.TimeoutError:
            log.warning("Provider did not finish the transcript in time")
    else:
        relay.cancel()
        try:
            await relay
        except asyncio.CancelledError:
            pass

    await client.close()
    turns = processor.finish()

    try:
        await pipeline.record_turns(conversation_id, turns)
        await pipeline.end_conversation(conversation_id)
    except Exception as e:
        log.error("Failed to store realtime session", error=str(e))
        await _send_error(websocket, conversation_id, "storage_failed", str(e), recoverable=False)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    job_id = await enqueue_job(
        "analyze_conversation",
        str(conversation_id),
        priority=JobPriority.HIGH,
        job_id=analysis_job_id(str(conversation_id)),
    )

    await _send(
        websocket,
        RealtimeMessage(
            type=RealtimeMessageType.SESSION_CLOSED,
            conversation_id=conversation_id,
            payload=SessionClosedPayload(turn_count=len(turns), analysis_job_id=job_id).model_dump(),
        ),
    )
    if websocket.client_state == WebSocketState.CONNECTED:
        await websocket.close()

    log.info("Realtime session closed", turn_count=len(turns))
