"""ElevenLabs text-to-speech for Professor Jones.

Every reply is voiced with the same character voice on the low-latency Flash
model. Used directly by the console client (``--local``) and by the
``/api/tts`` handler, which proxies it for browsers.

Usage:
    client = ElevenLabsClient(api_key="your-key")
    clip = await client.text_to_speech("I spy with my little eye...")
    mp3 = clip.audio_data

    # Without a key: no network, silent MP3 frames of a plausible length
    client = ElevenLabsClient(dry_run=True)
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)

PROFESSOR_JONES_VOICE_ID = "KTjyUd6ZeCmAkkfvuuU2"
FLASH_MODEL = "eleven_flash_v2_5"

# Spoken pace used to size dry-run clips: ~150 words/min.
CHARS_PER_SECOND = 12.5


class ElevenLabsAPIError(Exception):
    """Non-200 answer from ElevenLabs."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"ElevenLabs API error {status_code}: {message}")


@dataclass(frozen=True)
class VoiceSettings:
    """Professor Jones: steady but not flat."""
    stability: float = 0.5
    similarity_boost: float = 0.75

    def to_dict(self) -> Dict[str, Any]:
        return {"stability": self.stability, "similarity_boost": self.similarity_boost}


@dataclass
class SpokenClip:
    """One synthesized reply."""
    audio_data: bytes
    text: str
    voice_id: str
    content_type: str = "audio/mpeg"
    latency_ms: Optional[float] = None
    is_dry_run: bool = False

    @property
    def duration_estimate_s(self) -> float:
        return len(self.text) / CHARS_PER_SECOND


class ElevenLabsClient:
    """Async client for the ElevenLabs ``text-to-speech`` endpoint."""

    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        voice_id: str = PROFESSOR_JONES_VOICE_ID,
        model: str = FLASH_MODEL,
        voice_settings: Optional[VoiceSettings] = None,
        dry_run: bool = False,
        timeout: float = 20.0,
    ):
        """
        Args:
            api_key: ElevenLabs API key. Falls back to ELEVENLABS_API_KEY.
            voice_id: Voice for every reply
            model: Synthesis model
            voice_settings: Stability and similarity tuning
            dry_run: Produce silent clips without calling the API
            timeout: Total request timeout in seconds
        """
        self.api_key = api_key or os.environ.get("ELEVENLABS_API_KEY")
        self.voice_id = voice_id
        self.model = model
        self.voice_settings = voice_settings or VoiceSettings()
        self.dry_run = dry_run
        self.timeout = timeout
        self.characters_sent = 0
        self._session: Optional[aiohttp.ClientSession] = None

        if not self.api_key and not self.dry_run:
            logger.warning("No ElevenLabs API key, replies will be silent (dry run)")
            self.dry_run = True

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"xi-api-key": self.api_key},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def text_to_speech(self, text: str) -> SpokenClip:
        """
        Voice ``text``.

        Raises:
            ElevenLabsAPIError: on any non-200 response
            aiohttp.ClientError: on transport failure
        """
        self.characters_sent += len(text)
        if self.dry_run:
            return SpokenClip(
                audio_data=silent_mp3(len(text) / CHARS_PER_SECOND),
                text=text,
                voice_id=self.voice_id,
                is_dry_run=True,
            )

        session = await self._get_session()
        payload = {
            "text": text,
            "model_id": self.model,
            "voice_settings": self.voice_settings.to_dict(),
        }
        logger.debug(f"TTS request: {len(text)} chars")

        started = time.monotonic()
        async with session.post(f"{self.BASE_URL}/text-to-speech/{self.voice_id}", json=payload) as response:
            if response.status != 200:
                error_text = await response.text()
                logger.error(f"ElevenLabs API error: {response.status} - {error_text}")
                raise ElevenLabsAPIError(response.status, error_text)
            audio = await response.read()
            content_type = response.headers.get("Content-Type", "audio/mpeg")

        return SpokenClip(
            audio_data=audio,
            text=text,
            voice_id=self.voice_id,
            content_type=content_type,
            latency_ms=(time.monotonic() - started) * 1000,
        )


def silent_mp3(duration_s: float) -> bytes:
    """Silent 128 kbps MP3 frames (~26 ms each) lasting about ``duration_s``."""
    frame = bytes([0xFF, 0xFB, 0x90, 0x00]) + b"\x00" * 414
    return frame * max(1, int(duration_s * 1000 / 26))


def create_client(
    api_key: Optional[str] = None,
    voice_id: Optional[str] = None,
    model: str = FLASH_MODEL,
) -> ElevenLabsClient:
    """Client for Professor Jones's voice; dry-run when no key is available."""
    return ElevenLabsClient(
        api_key=api_key,
        voice_id=voice_id or os.environ.get("ELEVENLABS_VOICE_ID") or PROFESSOR_JONES_VOICE_ID,
        model=model,
    )
