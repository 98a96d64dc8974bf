"""Clients for Professor Jones, the remote game master.

Two transports:
- HttpGameMaster: the hosted ``/api/gamemaster`` handler, which streams
  NDJSON records and charges credits
- AnthropicGameMaster: calls Claude directly (local play, no credits)

Both report the reply's speech through ``on_speech`` as soon as it is known,
before the action list is complete, so the caller can start synthesis early.

Stream records:
    {"type": "speech", "speech": "..."}
    {"type": "complete", "speech": "...", "actions": [...], "remainingCredits": ...}
    {"type": "error", "speech": "...", "error": "..."}
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Union

import aiohttp
import anthropic

from ..core.actions import Action, NoAction, encode_action
from ..services.credit_ledger import InsufficientCreditsError, UserNotFoundError
from .prompts.gm_templates import GMPrompts
from .response_parser import (
    ParseStage,
    StreamingSpeechExtractor,
    parse_agent_response,
    response_from_payload,
)

logger = logging.getLogger(__name__)

NDJSON_CONTENT_TYPE = "application/x-ndjson"

# Messages of history forwarded to the model (6 exchanges).
MODEL_HISTORY_LIMIT = 12

SpeechCallback = Callable[[str], None]


class GameMasterError(Exception):
    """Transport or protocol failure talking to the game master."""

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Game master error {status_code}: {message}")


@dataclass
class AgentRequest:
    """One turn sent to the game master."""

    transcript: str
    game_state: Dict[str, Any]
    conversation_history: List[Dict[str, str]] = field(default_factory=list)
    user_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "gameState": self.game_state,
            "conversationHistory": self.conversation_history,
            "transcript": self.transcript,
        }


@dataclass
class AgentResponse:
    speech: str
    actions: List[Action] = field(default_factory=lambda: [NoAction()])
    remaining_credits: Optional[Union[int, str]] = None
    stage: ParseStage = ParseStage.JSON


class GameMaster(Protocol):
    async def respond(
        self, request: AgentRequest, on_speech: Optional[SpeechCallback] = None
    ) -> AgentResponse:
        ...

    async def close(self) -> None:
        ...


class _RecordReader:
    """Assembles an :class:`AgentResponse` from stream records."""

    def __init__(self, on_speech: Optional[SpeechCallback]):
        self.on_speech = on_speech
        self.speech_sent = False
        self.response: Optional[AgentResponse] = None

    def handle(self, record: Dict[str, Any]) -> None:
        kind = record.get("type")
        if kind == "speech":
            speech = record.get("speech")
            if isinstance(speech, str) and not self.speech_sent:
                self.speech_sent = True
                if self.on_speech is not None:
                    self.on_speech(speech)
        elif kind == "complete":
            parsed = response_from_payload(record)
            self.response = AgentResponse(
                speech=parsed.speech,
                actions=parsed.actions,
                remaining_credits=record.get("remainingCredits"),
            )
        elif kind == "error":
            raise GameMasterError(None, str(record.get("error") or "game master reported an error"))
        else:
            logger.debug(f"Ignoring stream record of type {kind!r}")

    def result(self) -> AgentResponse:
        if self.response is None:
            raise GameMasterError(None, "stream ended without a complete record")
        return self.response


# ============================================================================
# Model streaming (shared by the direct client and the HTTP handler)
# ============================================================================


def build_messages(
    history: List[Dict[str, str]],
    game_state: Optional[Dict[str, Any]],
    transcript: Optional[str],
    history_limit: int = MODEL_HISTORY_LIMIT,
) -> List[Dict[str, str]]:
    """Recent history followed by the state description as the user turn."""
    messages = [
        {"role": entry.get("role", "user"), "content": entry.get("content", "")}
        for entry in (history or [])[-history_limit:]
        if isinstance(entry, dict)
    ]
    messages.append({"role": "user", "content": GMPrompts.state_description(game_state, transcript)})
    return messages


async def stream_game_master(
    client: anthropic.AsyncAnthropic,
    messages: List[Dict[str, str]],
    model: str,
    max_tokens: int,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Stream Claude's reply as game master records.

    Yields an early ``speech`` record once the speech string is confirmed,
    then one ``complete`` record. Raises ``anthropic.APIError`` on failure.
    """
    extractor = StreamingSpeechExtractor()
    async with client.messages.stream(
        model=model,
        max_tokens=max_tokens,
        system=GMPrompts.SYSTEM_PROMPT,
        messages=messages,
    ) as stream:
        async for text in stream.text_stream:
            speech = extractor.feed(text)
            if speech is not None:
                yield {"type": "speech", "speech": speech}
        message = await stream.get_final_message()

    content = "".join(block.text for block in message.content if block.type == "text")
    parsed = parse_agent_response(content)
    logger.debug(f"Model reply parsed via {parsed.stage.value}")
    yield {
        "type": "complete",
        "speech": parsed.speech,
        "actions": [encode_action(action) for action in parsed.actions],
    }


class AnthropicGameMaster:
    """Plays Professor Jones locally with a direct Claude call."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-3-5-haiku-20241022",
        max_tokens: int = 512,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        logger.info(f"Claude game master initialized: {model}")

    async def respond(
        self, request: AgentRequest, on_speech: Optional[SpeechCallback] = None
    ) -> AgentResponse:
        messages = build_messages(request.conversation_history, request.game_state, request.transcript)
        reader = _RecordReader(on_speech)
        try:
            async for record in stream_game_master(self.client, messages, self.model, self.max_tokens):
                reader.handle(record)
        except anthropic.APIError as e:
            raise GameMasterError(getattr(e, "status_code", None), str(e)) from e
        return reader.result()

    async def close(self) -> None:
        await self.client.close()


class HttpGameMaster:
    """
    Talks to the hosted game master handler.

    Accepts either an NDJSON stream or a single JSON body; the latter goes
    through the full parse fallback chain.
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.url = base_url.rstrip("/") + "/api/gamemaster"
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def respond(
        self, request: AgentRequest, on_speech: Optional[SpeechCallback] = None
    ) -> AgentResponse:
        session = await self._get_session()
        try:
            async with session.post(self.url, json=request.to_wire()) as response:
                if response.status == 402:
                    body = await self._json_body(response)
                    raise InsufficientCreditsError(body.get("credits"), body.get("required"))
                if response.status == 401:
                    raise UserNotFoundError(request.user_id)
                if response.status >= 400:
                    raise GameMasterError(response.status, await response.text())

                if NDJSON_CONTENT_TYPE in response.headers.get("Content-Type", ""):
                    return await self._read_stream(response, on_speech)

                parsed = parse_agent_response(await response.text(errors="replace"))
                return AgentResponse(speech=parsed.speech, actions=parsed.actions, stage=parsed.stage)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GameMasterError(None, f"request failed: {e}") from e
        except ValueError as e:
            # Oversized stream line or undecodable body
            raise GameMasterError(None, f"unreadable response: {e}") from e

    async def _read_stream(
        self, response: aiohttp.ClientResponse, on_speech: Optional[SpeechCallback]
    ) -> AgentResponse:
        reader = _RecordReader(on_speech)
        async for line in response.content:
            line = line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except ValueError:
                logger.debug(f"Skipping malformed stream line: {line[:80]!r}")
                continue
            if isinstance(record, dict):
                reader.handle(record)
        return reader.result()

    @staticmethod
    async def _json_body(response: aiohttp.ClientResponse) -> Dict[str, Any]:
        try:
            body = await response.json(content_type=None)
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
