"""
Speechmatics Speech-to-Text Integration

Three surfaces of the Speechmatics platform:

- Realtime v2 WebSocket API: raw PCM in, word/punctuation results out
- Batch v2 HTTP API: transcribe an archived recording (json-v2 output)
- Management platform: mint short-lived realtime keys for browsers
"""

import asyncio
import json
from typing import Any, AsyncIterator

import httpx
import structlog
import websockets

from cadence.config import settings
from cadence.realtime.protocol import (
    ProviderMessageType,
    build_end_of_stream,
    build_start_recognition,
    message_type,
)

logger = structlog.get_logger()


class SpeechmaticsError(Exception):
    """Transport failure or provider-reported error."""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason


AUDIO_EXTENSIONS = {
    "mp4": "mp4",
    "mpeg": "mp3",
    "mp3": "mp3",
    "ogg": "ogg",
    "wav": "wav",
    "flac": "flac",
    "m4a": "m4a",
}


def audio_filename(content_type: str | None) -> str:
    """Upload filename whose extension matches the recording's MIME type."""
    mime = (content_type or "audio/webm").lower()
    for marker, extension in AUDIO_EXTENSIONS.items():
        if marker in mime:
            return f"recording.{extension}"
    return "recording.webm"


# ══════════════════════════════════════════════════════════════
# Realtime Client
# ══════════════════════════════════════════════════════════════


class SpeechmaticsRealtimeClient:
    """
    One realtime recognition session.

    Usage:
        client = SpeechmaticsRealtimeClient()
        await client.connect()
        await client.send_audio(frame)
        async for message in client.messages():
            ...
        await client.close()
    """

    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        sample_rate: int | None = None,
        language: str | None = None,
    ):
        self.api_key = api_key or settings.speechmatics_api_key
        self.url = url or settings.speechmatics_realtime_url
        self.sample_rate = sample_rate or settings.speechmatics_sample_rate
        self.language = language or settings.speechmatics_language
        self.frames_sent = 0
        self._ws = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """Open the socket and wait until recognition has started."""
        if not self.api_key:
            raise SpeechmaticsError("SPEECHMATICS_API_KEY not configured")

        try:
            self._ws = await websockets.connect(
                self.url,
                additional_headers={"Authorization": f"Bearer {self.api_key}"},
                ping_interval=10,
                ping_timeout=30,
                max_size=None,
            )
            await self._send_json(
                build_start_recognition(
                    sample_rate=self.sample_rate,
                    language=self.language,
                    operating_point=settings.speechmatics_operating_point,
                    max_delay=settings.speechmatics_max_delay,
                    enable_partials=settings.speechmatics_enable_partials,
                )
            )

            async for message in self.messages():
                if message_type(message) == ProviderMessageType.RECOGNITION_STARTED:
                    logger.info("Speechmatics recognition started", session_id=message.get("id"))
                    return
        except SpeechmaticsError:
            await self.close()
            raise
        except (OSError, websockets.WebSocketException) as e:
            await self.close()
            raise SpeechmaticsError(f"Speechmatics connection failed: {e}") from e

        await self.close()
        raise SpeechmaticsError("Speechmatics closed before recognition started")

    async def send_audio(self, frame: bytes) -> None:
        """Send one binary PCM frame."""
        if self._ws is None:
            raise SpeechmaticsError("Realtime session not connected")
        try:
            await self._ws.send(frame)
        except websockets.WebSocketException as e:
            raise SpeechmaticsError(f"Speechmatics connection lost: {e}") from e
        self.frames_sent += 1

    async def end_stream(self) -> None:
        """Signal that no more audio follows."""
        if self._ws is None:
            return
        await self._send_json(build_end_of_stream(self.frames_sent))

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded provider messages until EndOfTranscript.

        A clean close ends the iteration; an abnormal close raises
        SpeechmaticsError.
        """
        if self._ws is None:
            raise SpeechmaticsError("Realtime session not connected")

        incoming = aiter(self._ws)
        while True:
            try:
                raw = await anext(incoming)
            except StopAsyncIteration:
                return
            except websockets.WebSocketException as e:
                raise SpeechmaticsError(f"Speechmatics connection lost: {e}") from e

            if isinstance(raw, bytes):
                continue
            message = json.loads(raw)
            kind = message_type(message)

            if kind == ProviderMessageType.ERROR:
                raise SpeechmaticsError(
                    f"Speechmatics error: {message.get('reason', 'unknown')}",
                    reason=message.get("type"),
                )
            if kind == ProviderMessageType.WARNING:
                logger.warning("Speechmatics warning", reason=message.get("reason"))

            yield message

            if kind == ProviderMessageType.END_OF_TRANSCRIPT:
                return

    async def close(self) -> None:
        """Close the socket."""
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def _send_json(self, payload: dict[str, Any]) -> None:
        try:
            await self._ws.send(json.dumps(payload))
        except websockets.WebSocketException as e:
            raise SpeechmaticsError(f"Speechmatics connection lost: {e}") from e


# ══════════════════════════════════════════════════════════════
# Batch Client
# ══════════════════════════════════════════════════════════════


class SpeechmaticsBatchClient:
    """
    HTTP client for batch transcription and key management.

    Usage:
        client = SpeechmaticsBatchClient()
        transcript = await client.transcribe(audio_bytes, content_type="audio/mp4")
        key = await client.create_temporary_key()
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        mp_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or settings.speechmatics_api_key
        self.base_url = (base_url or settings.speechmatics_batch_url).rstrip("/")
        self.mp_url = (mp_url or settings.speechmatics_mp_url).rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if not self.api_key:
            raise SpeechmaticsError("SPEECHMATICS_API_KEY not configured")

        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=60.0,
                headers={"Authorization": f"Bearer {self.api_key}"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def submit_job(self, audio: bytes, content_type: str | None = None) -> str:
        """Upload a recording and return the job ID."""
        config = {
            "type": "transcription",
            "transcription_config": {
                "language": settings.speechmatics_language,
                "operating_point": settings.speechmatics_operating_point,
                "diarization": "speaker",
            },
        }
        client = await self._get_client()
        try:
            response = await client.post(
                "/jobs",
                data={"config": json.dumps(config)},
                files={"data_file": (audio_filename(content_type), audio, content_type or "audio/webm")},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Speechmatics job submission failed", error=str(e))
            raise SpeechmaticsError(f"Speechmatics transcription failed: {e}") from e

        job_id = response.json()["id"]
        logger.info("Speechmatics job submitted", job_id=job_id, size=len(audio))
        return job_id

    async def get_job_status(self, job_id: str) -> str:
        client = await self._get_client()
        try:
            response = await client.get(f"/jobs/{job_id}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SpeechmaticsError(f"Speechmatics job lookup failed: {e}") from e
        return response.json()["job"]["status"]

    async def get_transcript(self, job_id: str) -> dict[str, Any]:
        """Fetch a finished job's json-v2 transcript."""
        client = await self._get_client()
        try:
            response = await client.get(f"/jobs/{job_id}/transcript", params={"format": "json-v2"})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SpeechmaticsError(f"Speechmatics transcript fetch failed: {e}") from e
        return response.json()

    async def transcribe(
        self,
        audio: bytes,
        content_type: str | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Submit a recording, wait for the job and return its transcript."""
        poll_interval = poll_interval if poll_interval is not None else settings.speechmatics_batch_poll_interval_seconds
        timeout = timeout if timeout is not None else settings.speechmatics_batch_timeout_seconds

        job_id = await self.submit_job(audio, content_type)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            status = await self.get_job_status(job_id)
            if status == "done":
                break
            if status in ("rejected", "deleted", "expired"):
                raise SpeechmaticsError(f"Speechmatics job {job_id} {status}", reason=status)
            if loop.time() >= deadline:
                raise SpeechmaticsError(f"Speechmatics job {job_id} timed out", reason="timeout")
            await asyncio.sleep(poll_interval)

        transcript = await self.get_transcript(job_id)
        logger.info(
            "Speechmatics transcription complete",
            job_id=job_id,
            results=len(transcript.get("results", [])),
        )
        return transcript

    async def create_temporary_key(self, ttl: int | None = None) -> str:
        """Mint a short-lived realtime key."""
        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.mp_url}/api_keys",
                params={"type": "rt"},
                json={"ttl": ttl or settings.speechmatics_key_ttl_seconds},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Speechmatics key request failed", error=str(e))
            raise SpeechmaticsError(f"Speechmatics key request failed: {e}") from e

        return response.json()["key_value"]
