"""
Speech Provider Routes

Short-lived realtime credentials so browsers never hold the provider API key.
"""

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from cadence.config import settings
from cadence.integrations.speechmatics import SpeechmaticsBatchClient, SpeechmaticsError

logger = structlog.get_logger()

router = APIRouter()


class SpeechToken(BaseModel):
    key: str
    ttl_seconds: int
    realtime_url: str


@router.post("/token", response_model=SpeechToken)
async def create_speech_token() -> SpeechToken:
    """Mint a temporary realtime key."""
    client = SpeechmaticsBatchClient()
    try:
        key = await client.create_temporary_key(settings.speechmatics_key_ttl_seconds)
    except SpeechmaticsError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    finally:
        await client.close()

    return SpeechToken(
        key=key,
        ttl_seconds=settings.speechmatics_key_ttl_seconds,
        realtime_url=settings.speechmatics_realtime_url,
    )
