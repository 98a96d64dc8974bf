"""Text-to-speech endpoint.

POST /api/tts - Professor Jones's voice as audio/mpeg (no credit cost)
"""

import asyncio
import logging
from typing import Optional

import aiohttp
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from ...voice.elevenlabs_client import ElevenLabsAPIError, ElevenLabsClient
from ..dependencies import get_tts_client

logger = logging.getLogger(__name__)

router = APIRouter()


class TTSRequest(BaseModel):
    text: Optional[str] = None
    userId: Optional[str] = None


@router.post("/tts")
async def text_to_speech(
    body: TTSRequest,
    client: Optional[ElevenLabsClient] = Depends(get_tts_client),
):
    """Synthesize ``text``; 502 when ElevenLabs fails."""
    if not body.text:
        raise HTTPException(status_code=400, detail="Missing text")
    if client is None:
        raise HTTPException(status_code=500, detail="ElevenLabs API key not configured")

    try:
        result = await client.text_to_speech(body.text)
    except (ElevenLabsAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"TTS error: {e}")
        raise HTTPException(status_code=502, detail="TTS provider error")

    return Response(
        content=result.audio_data,
        media_type="audio/mpeg",
        headers={"Cache-Control": "public, max-age=86400"},
    )
