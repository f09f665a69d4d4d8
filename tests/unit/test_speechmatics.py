"""
Unit tests for the Speechmatics integration.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import websockets

from cadence.integrations.speechmatics import (
    SpeechmaticsBatchClient,
    SpeechmaticsError,
    SpeechmaticsRealtimeClient,
    audio_filename,
)


def test_audio_filename():
    assert audio_filename("audio/mp4") == "recording.mp4"
    assert audio_filename("audio/mpeg") == "recording.mp3"
    assert audio_filename("audio/wav") == "recording.wav"
    assert audio_filename(None) == "recording.webm"
    assert audio_filename("audio/webm;codecs=opus") == "recording.webm"


# ══════════════════════════════════════════════════════════════
# Batch Client Tests
# ══════════════════════════════════════════════════════════════


class TestBatchClient:
    """Test the batch HTTP client."""

    def client(self, handler) -> SpeechmaticsBatchClient:
        return SpeechmaticsBatchClient(
            api_key="test-key",
            base_url="https://asr.test/v2",
            mp_url="https://mp.test/v1",
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_transcribe_polls_until_done(self):
        statuses = iter(["running", "done"])
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            assert request.headers["Authorization"] == "Bearer test-key"
            if request.method == "POST":
                return httpx.Response(201, json={"id": "job-1"})
            if request.url.path.endswith("/transcript"):
                assert request.url.params["format"] == "json-v2"
                return httpx.Response(200, json={"results": [{"type": "word"}]})
            return httpx.Response(200, json={"job": {"id": "job-1", "status": next(statuses)}})

        client = self.client(handler)
        transcript = await client.transcribe(b"audio", content_type="audio/mp4", poll_interval=0)
        await client.close()

        assert transcript == {"results": [{"type": "word"}]}
        assert [r.url.path for r in requests] == [
            "/v2/jobs",
            "/v2/jobs/job-1",
            "/v2/jobs/job-1",
            "/v2/jobs/job-1/transcript",
        ]
        body = requests[0].content
        assert b'name="data_file"; filename="recording.mp4"' in body
        assert b'"diarization": "speaker"' in body

    @pytest.mark.asyncio
    async def test_rejected_job(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(201, json={"id": "job-2"})
            return httpx.Response(200, json={"job": {"status": "rejected"}})

        with pytest.raises(SpeechmaticsError) as exc_info:
            await self.client(handler).transcribe(b"audio", poll_interval=0)

        assert exc_info.value.reason == "rejected"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(201, json={"id": "job-3"})
            return httpx.Response(200, json={"job": {"status": "running"}})

        with pytest.raises(SpeechmaticsError) as exc_info:
            await self.client(handler).transcribe(b"audio", poll_interval=0, timeout=0)

        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_submission_http_error(self):
        client = self.client(lambda request: httpx.Response(401, json={"detail": "unauthorized"}))

        with pytest.raises(SpeechmaticsError):
            await client.submit_job(b"audio")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = SpeechmaticsBatchClient(api_key="", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client.api_key = ""

        with pytest.raises(SpeechmaticsError):
            await client.get_job_status("job")

    @pytest.mark.asyncio
    async def test_create_temporary_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "mp.test"
            assert request.url.path == "/v1/api_keys"
            assert request.url.params["type"] == "rt"
            assert json.loads(request.content) == {"ttl": 60}
            return httpx.Response(201, json={"apikey_id": "abc", "key_value": "temp-key"})

        assert await self.client(handler).create_temporary_key(60) == "temp-key"


# ══════════════════════════════════════════════════════════════
# Realtime Client Tests
# ══════════════════════════════════════════════════════════════


class FakeProviderSocket:
    """Minimal async-iterable websocket connection."""

    def __init__(self, incoming):
        self.incoming = [json.dumps(m) if isinstance(m, dict) else m for m in incoming]
        self.sent = []
        self.send = AsyncMock(side_effect=self.sent.append)
        self.close = AsyncMock()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.incoming:
            raise StopAsyncIteration
        item = self.incoming.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class TestRealtimeClient:
    """Test the realtime websocket client."""

    def client(self) -> SpeechmaticsRealtimeClient:
        return SpeechmaticsRealtimeClient(api_key="test-key", url="wss://rt.test/v2", sample_rate=16000, language="en")

    @pytest.mark.asyncio
    async def test_connect_and_stream(self):
        socket = FakeProviderSocket(
            [
                {"message": "RecognitionStarted", "id": "session-1"},
                {"message": "AudioAdded", "seq_no": 1},
                b"\x00",
                {"message": "Warning", "reason": "slow"},
                {"message": "EndOfTranscript"},
                {"message": "AddTranscript", "results": []},
            ]
        )

        with patch("websockets.connect", new=AsyncMock(return_value=socket)) as mock_connect:
            client = self.client()
            await client.connect()

            assert client.connected
            assert mock_connect.call_args.kwargs["additional_headers"] == {"Authorization": "Bearer test-key"}
            start = json.loads(socket.sent[0])
            assert start["message"] == "StartRecognition"
            assert start["audio_format"]["sample_rate"] == 16000

            await client.send_audio(b"\x01\x02")
            await client.send_audio(b"\x03\x04")
            await client.end_stream()

            messages = [m["message"] async for m in client.messages()]
            await client.close()

        assert socket.sent[1:3] == [b"\x01\x02", b"\x03\x04"]
        assert json.loads(socket.sent[3]) == {"message": "EndOfStream", "last_seq_no": 2}
        assert messages == ["AudioAdded", "Warning", "EndOfTranscript"]
        assert not client.connected
        socket.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_provider_error(self):
        socket = FakeProviderSocket([{"message": "Error", "type": "not_authorised", "reason": "bad key"}])

        with patch("websockets.connect", new=AsyncMock(return_value=socket)):
            with pytest.raises(SpeechmaticsError) as exc_info:
                await self.client().connect()

        assert exc_info.value.reason == "not_authorised"

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        with patch("websockets.connect", new=AsyncMock(side_effect=OSError("refused"))):
            client = self.client()
            with pytest.raises(SpeechmaticsError):
                await client.connect()

        assert not client.connected

    @pytest.mark.asyncio
    async def test_abnormal_close_mid_stream(self):
        """A dropped connection surfaces as SpeechmaticsError after the results received so far."""
        socket = FakeProviderSocket(
            [
                {"message": "RecognitionStarted", "id": "session-1"},
                {"message": "AddTranscript", "results": []},
                websockets.ConnectionClosedError(None, None),
            ]
        )

        with patch("websockets.connect", new=AsyncMock(return_value=socket)):
            client = self.client()
            await client.connect()

        received = []
        with pytest.raises(SpeechmaticsError, match="connection lost"):
            async for message in client.messages():
                received.append(message["message"])

        assert received == ["AddTranscript"]

    @pytest.mark.asyncio
    async def test_send_after_abnormal_close(self):
        socket = FakeProviderSocket([{"message": "RecognitionStarted", "id": "session-1"}])

        with patch("websockets.connect", new=AsyncMock(return_value=socket)):
            client = self.client()
            await client.connect()

        socket.send.side_effect = websockets.ConnectionClosedError(None, None)

        with pytest.raises(SpeechmaticsError):
            await client.send_audio(b"\x00" * 320)
        with pytest.raises(SpeechmaticsError):
            await client.end_stream()
        assert client.frames_sent == 0

    @pytest.mark.asyncio
    async def test_closed_before_started(self):
        with patch("websockets.connect", new=AsyncMock(return_value=FakeProviderSocket([]))):
            with pytest.raises(SpeechmaticsError):
                await self.client().connect()

    @pytest.mark.asyncio
    async def test_send_before_connect(self):
        with pytest.raises(SpeechmaticsError):
            await self.client().send_audio(b"\x00")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = self.client()
        client.api_key = ""

        with pytest.raises(SpeechmaticsError):
            await client.connect()
