"""
Transcript Reconciliation

After a session ends the archived recording is transcribed once more in batch
mode. The batch transcript (json-v2) is grouped into turns by speaker change
and replaces the turns assembled from the live stream.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from cadence.core.models import TranscriptEventKind, Turn
from cadence.pipeline.assembler import UNKNOWN_SPEAKER
from cadence.realtime.protocol import MalformedResultError, decode_result

logger = structlog.get_logger()


@dataclass
class _OpenTurn:
    speaker: str
    text: str
    start_time: float
    end_time: float


def turns_from_batch_transcript(transcript: dict[str, Any]) -> list[Turn]:
    """Group json-v2 results into ordered turns, one per run of a speaker."""
    grouped: list[_OpenTurn] = []
    current: _OpenTurn | None = None
    skipped = 0

    for raw in transcript.get("results") or []:
        try:
            event = decode_result(raw)
        except MalformedResultError:
            skipped += 1
            continue

        if event.kind == TranscriptEventKind.WORD:
            speaker = event.speaker_label or UNKNOWN_SPEAKER
            end_time = event.end_time or 0.0
            if current is None or current.speaker != speaker:
                if current is not None:
                    grouped.append(current)
                current = _OpenTurn(
                    speaker=speaker,
                    text=event.content,
                    start_time=event.start_time or 0.0,
                    end_time=end_time,
                )
            else:
                current.text += f" {event.content}"
                current.end_time = end_time
        elif current is not None:
            current.text += event.content

    if current is not None:
        grouped.append(current)

    if skipped:
        logger.warning("Skipped malformed batch results", count=skipped)

    return _number_turns(grouped)


def _number_turns(grouped: list[_OpenTurn]) -> list[Turn]:
    turns: list[Turn] = []
    last_start = 0.0
    for pending in grouped:
        text = pending.text.strip()
        if not text:
            continue
        start_time = max(pending.start_time, last_start)
        turns.append(
            Turn(
                speaker_label=pending.speaker,
                text=text,
                start_time=start_time,
                end_time=max(pending.end_time, start_time),
                order=len(turns),
            )
        )
        last_start = start_time
    return turns
