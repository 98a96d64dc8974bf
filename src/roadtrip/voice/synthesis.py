"""Text-to-speech providers for the audio channel.

A provider turns text into playable audio bytes, or returns ``None`` when it
cannot. It never raises: a failed synthesis only means the reply stays silent
and is read from the transcript instead.
"""

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

import aiohttp

from .elevenlabs_client import ElevenLabsAPIError, ElevenLabsClient

logger = logging.getLogger(__name__)


@runtime_checkable
class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str) -> Optional[bytes]:
        ...

    async def close(self) -> None:
        ...


class ElevenLabsSynthesizer:
    """Calls ElevenLabs directly with Professor Jones's voice."""

    def __init__(self, client: ElevenLabsClient):
        self.client = client

    async def synthesize(self, text: str) -> Optional[bytes]:
        try:
            result = await self.client.text_to_speech(text)
        except (ElevenLabsAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"TTS failed, reply will be text only: {e}")
            return None
        if not result.content_type.startswith("audio"):
            logger.warning(f"TTS returned non-audio content-type: {result.content_type}")
            return None
        return result.audio_data

    async def close(self) -> None:
        await self.client.close()


class ProxySynthesizer:
    """Fetches audio from the game's own ``/api/tts`` handler."""

    def __init__(self, base_url: str, user_id: Optional[str] = None, timeout: float = 20.0):
        self.url = base_url.rstrip("/") + "/api/tts"
        self.user_id = user_id
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def synthesize(self, text: str) -> Optional[bytes]:
        session = await self._get_session()
        try:
            async with session.post(self.url, json={"text": text, "userId": self.user_id}) as response:
                if response.status != 200:
                    logger.warning(f"TTS proxy returned {response.status}")
                    return None
                content_type = response.headers.get("Content-Type", "")
                if "audio" not in content_type:
                    logger.warning(f"TTS proxy returned non-audio content-type: {content_type}")
                    return None
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"TTS proxy unreachable: {e}")
            return None

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


class NullSynthesizer:
    """Text-only play: every reply is silent."""

    async def synthesize(self, text: str) -> Optional[bytes]:
        return None

    async def close(self) -> None:
        pass
