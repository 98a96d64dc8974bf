"""Deepgram live transcription for the car microphone.

PCM audio goes up a WebSocket; interim and final transcripts come back on
the same socket. :class:`~roadtrip.voice.recognition.DeepgramRecognizer`
turns one socket into one recognition session.

Usage:
    client = DeepgramClient(api_key="your-key")
    async for transcript in client.stream(mic_chunks(), ListenOptions()):
        print(transcript.text, transcript.is_final)

    # Without a key: no network, canned guesses every ~2s of audio
    client = DeepgramClient(dry_run=True)
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "nova-3"
KEEPALIVE_INTERVAL = 5.0


class DeepgramAPIError(Exception):
    """The transcription socket failed."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Deepgram API error {status_code}: {message}")


@dataclass(frozen=True)
class Transcript:
    """A piece of recognized speech."""
    text: str
    is_final: bool
    confidence: float = 0.0
    start: float = 0.0
    end: float = 0.0
    simulated: bool = False

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> Optional["Transcript"]:
        """Parse a ``Results`` message; None for anything without words."""
        channel = message.get("channel")
        if not isinstance(channel, dict):
            return None
        best = (channel.get("alternatives") or [{}])[0]
        text = (best.get("transcript") or "").strip()
        if not text:
            return None
        words = best.get("words") or []
        return cls(
            text=text,
            is_final=bool(message.get("is_final") or message.get("speech_final")),
            confidence=best.get("confidence", 0.0),
            start=words[0].get("start", 0.0) if words else 0.0,
            end=words[-1].get("end", 0.0) if words else 0.0,
        )


@dataclass
class ListenOptions:
    """Query parameters for one transcription socket."""
    model: str = DEFAULT_MODEL
    language: str = "en"
    interim_results: bool = True  # interim words cancel the silence timer early
    endpointing_ms: int = 300
    sample_rate: int = 16000
    keyterms: List[str] = field(default_factory=list)  # player names, answers

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * 2  # 16-bit mono

    def to_query(self) -> List[Tuple[str, str]]:
        query = [
            ("model", self.model),
            ("language", self.language),
            ("punctuate", "true"),
            ("smart_format", "true"),
            ("interim_results", str(self.interim_results).lower()),
            ("endpointing", str(self.endpointing_ms)),
            ("encoding", "linear16"),
            ("sample_rate", str(self.sample_rate)),
            ("channels", "1"),
        ]
        query.extend(("keyterm", term) for term in self.keyterms)
        return query


class DeepgramClient:
    """Client for Deepgram's ``/v1/listen`` WebSocket."""

    LISTEN_URL = "wss://api.deepgram.com/v1/listen"

    # What a car full of players tends to shout.
    SIMULATED_GUESSES = [
        "Is it the Golden Gate Bridge",
        "Give us a hint",
        "I think it's Rosa Parks",
        "Skip this one",
        "We give up",
    ]

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_MODEL, dry_run: bool = False):
        self.api_key = api_key or os.environ.get("DEEPGRAM_API_KEY")
        self.model = model
        self.dry_run = dry_run
        self._session: Optional[aiohttp.ClientSession] = None
        self._simulated_count = 0

        if not self.api_key and not self.dry_run:
            logger.warning("No Deepgram API key, using simulated transcripts")
            self.dry_run = True

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"Token {self.api_key}"}
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def stream(
        self,
        audio: AsyncIterator[bytes],
        options: Optional[ListenOptions] = None,
    ) -> AsyncIterator[Transcript]:
        """
        Transcribe ``audio`` until it runs out or Deepgram closes the socket.

        Deepgram hangs up after a stretch of silence; reopening is up to the
        caller.
        """
        options = options or ListenOptions(model=self.model)
        if self.dry_run:
            async for transcript in self._simulate(audio, options):
                yield transcript
            return

        session = await self._get_session()
        async with session.ws_connect(self.LISTEN_URL, params=options.to_query()) as ws:
            pumps = [
                asyncio.create_task(self._pump_audio(ws, audio)),
                asyncio.create_task(self._keep_alive(ws)),
            ]
            try:
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.ERROR:
                        raise DeepgramAPIError(500, f"WebSocket error: {ws.exception()}")
                    if msg.type != aiohttp.WSMsgType.TEXT:
                        continue
                    try:
                        message = json.loads(msg.data)
                    except ValueError:
                        logger.debug(f"Skipping non-JSON frame: {msg.data[:80]!r}")
                        continue
                    if not isinstance(message, dict):
                        continue
                    transcript = Transcript.from_message(message)
                    if transcript is not None:
                        yield transcript
            finally:
                for task in pumps:
                    task.cancel()
                await asyncio.gather(*pumps, return_exceptions=True)

    @staticmethod
    async def _pump_audio(ws: aiohttp.ClientWebSocketResponse, audio: AsyncIterator[bytes]) -> None:
        async for chunk in audio:
            if ws.closed:
                return
            await ws.send_bytes(chunk)
        if not ws.closed:
            # Flush pending results, then Deepgram closes the socket.
            await ws.send_json({"type": "CloseStream"})

    @staticmethod
    async def _keep_alive(ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(KEEPALIVE_INTERVAL)
            if not ws.closed:
                await ws.send_json({"type": "KeepAlive"})

    async def _simulate(self, audio: AsyncIterator[bytes], options: ListenOptions) -> AsyncIterator[Transcript]:
        """One guess (half of it interim first) per ~2 seconds of audio."""
        heard = 0.0
        async for chunk in audio:
            heard += len(chunk) / options.bytes_per_second
            await asyncio.sleep(0)
            if heard < 2.0:
                continue
            heard = 0.0
            guess = self.SIMULATED_GUESSES[self._simulated_count % len(self.SIMULATED_GUESSES)]
            self._simulated_count += 1
            if options.interim_results:
                words = guess.split()
                partial = " ".join(words[: max(1, len(words) // 2)])
                yield Transcript(text=partial, is_final=False, simulated=True)
            yield Transcript(text=guess, is_final=True, confidence=0.95, simulated=True)
