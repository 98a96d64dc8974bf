"""Pytest configuration and fixtures."""

import asyncio
from types import SimpleNamespace
from typing import List, Optional

import anthropic
import httpx
import pytest
from src.roadtrip.agents.game_master import AgentResponse
from src.roadtrip.agents.response_parser import parse_agent_response
from src.roadtrip.core.config import GameConfig
from src.roadtrip.core.enums import GamePhase
from src.roadtrip.core.game_state import GameState, Player, Round


class ScriptedGameMaster:
    """Game master that replays canned replies.

    A reply may be an AgentResponse, a raw model string (run through the
    parse chain), an exception to raise, or an asyncio.Event to wait on
    before answering with an empty reply.
    """

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.requests = []
        self.closed = False

    async def respond(self, request, on_speech=None):
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else AgentResponse(speech="")
        if isinstance(reply, asyncio.Event):
            await reply.wait()
            reply = AgentResponse(speech="")
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            parsed = parse_agent_response(reply)
            reply = AgentResponse(speech=parsed.speech, actions=parsed.actions, stage=parsed.stage)
        if on_speech is not None and reply.speech:
            on_speech(reply.speech)
        return reply

    async def close(self):
        self.closed = True


class RecordingSynthesizer:
    """Returns fake MP3 bytes and remembers what it was asked to say."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []
        self.closed = False

    async def synthesize(self, text: str) -> Optional[bytes]:
        self.calls.append(text)
        if self.fail:
            return None
        return b"\xff\xfb" + text.encode("utf-8")

    async def close(self) -> None:
        self.closed = True


class SlowPlayer:
    """Output device whose clips each take ``delay`` seconds."""

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.played: List[bytes] = []
        self.finished: List[bytes] = []

    async def play(self, audio: bytes) -> None:
        self.played.append(audio)
        await asyncio.sleep(self.delay)
        self.finished.append(audio)


@pytest.fixture
def game_config():
    """Create a test game configuration with fast timers."""
    return GameConfig(
        silence_timeout=10.0,
        retrigger_delay=0.01,
        recognition_restart_backoff=0.001,
        verbose=False,
        save_transcripts=False,
        anthropic_api_key="test_key",
    )


@pytest.fixture
def game_state():
    """Create a test game state mid-round."""
    return GameState(
        phase=GamePhase.PLAYING,
        players=[Player(name="Sam", is_leader=True), Player(name="Alex")],
        round_number=1,
        category="American History",
        current_round=Round(
            letter="G",
            answer="Golden Gate Bridge",
            hints=["It is orange", "It spans a strait", "Opened in 1937"],
            essay="The bridge was the longest suspension span in the world when it opened.",
        ),
    )


class FakeMessageStream:
    """Async context manager shaped like ``AsyncAnthropic.messages.stream``."""

    def __init__(self, chunks, error=None):
        self.chunks = list(chunks)
        self.error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    def text_stream(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def get_final_message(self):
        text = "".join(self.chunks)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


class FakeAnthropic:
    """Stand-in for ``anthropic.AsyncAnthropic`` that streams canned replies.

    String replies are streamed in seven-character chunks; an exception is
    raised from inside the stream.
    """

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []
        self.closed = False
        self.messages = SimpleNamespace(stream=self._stream)

    def _stream(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, BaseException):
            return FakeMessageStream([], error=reply)
        chunks = [reply[i:i + 7] for i in range(0, len(reply), 7)]
        return FakeMessageStream(chunks)

    async def close(self):
        self.closed = True


def connection_error():
    """An anthropic.APIError as raised when the API is unreachable."""
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return anthropic.APIConnectionError(request=request)


class CrashingDeepgramClient:
    """Deepgram client whose stream fails with ``error`` after opening."""

    model = "nova-3"

    def __init__(self, error: BaseException):
        self.error = error
        self.streams = 0

    async def stream(self, audio, options=None):
        self.streams += 1
        raise self.error
        yield  # makes this an async generator
