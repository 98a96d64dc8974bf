"""Parsing of game master replies.

Professor Jones is asked to answer with ``{"speech": ..., "actions": [...]}``
but nothing forces the model to comply. ``parse_agent_response`` always
produces something speakable:

1. parse the whole text as JSON
2. parse the outermost ``{...}`` substring (code fences, chatter around it)
3. speak the raw text and do nothing else

While a reply is still streaming, :class:`StreamingSpeechExtractor` pulls the
``speech`` string out of the partial JSON so synthesis can start before the
action list has arrived.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.actions import Action, NoAction, decode_actions

logger = logging.getLogger(__name__)

_SPEECH_KEY = re.compile(r'"speech"\s*:\s*"')


class ParseStage(str, Enum):
    """Which step of the fallback chain produced the result."""

    JSON = "json"
    BRACES = "braces"
    RAW = "raw"


@dataclass
class ParsedResponse:
    speech: str
    actions: List[Action] = field(default_factory=lambda: [NoAction()])
    stage: ParseStage = ParseStage.JSON


def _as_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def response_from_payload(data: Dict[str, Any], stage: ParseStage = ParseStage.JSON) -> ParsedResponse:
    """Apply the defaults for missing ``speech`` and ``actions``."""
    speech = data.get("speech")
    if speech is None:
        speech = ""
    elif not isinstance(speech, str):
        speech = str(speech)
    return ParsedResponse(speech=speech, actions=decode_actions(data.get("actions")), stage=stage)


def parse_agent_response(text: str) -> ParsedResponse:
    """Parse a complete reply; never raises."""
    text = text or ""

    data = _as_object(text.strip())
    if data is not None:
        return response_from_payload(data, ParseStage.JSON)

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        data = _as_object(text[start:end + 1])
        if data is not None:
            logger.debug("Reply had text around its JSON object")
            return response_from_payload(data, ParseStage.BRACES)

    logger.warning(f"Reply was not JSON, speaking it as-is: {text[:80]!r}")
    return ParsedResponse(speech=text.strip(), actions=[NoAction()], stage=ParseStage.RAW)


class StreamingSpeechExtractor:
    """
    Incremental scanner for the ``speech`` string of a streaming JSON reply.

    Feed it chunks as they arrive. ``feed`` returns the decoded speech once,
    as soon as the string's closing quote is confirmed: the quote must be
    unescaped and followed by the next structural character (``,`` or
    ``}``). Until then, and on every call after, it returns ``None``.
    """

    def __init__(self):
        self._buffer = ""
        self._value_start: Optional[int] = None
        self._scan_pos = 0
        self._value_end: Optional[int] = None
        self._failed = False
        self.speech: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.speech is not None or self._failed

    def feed(self, chunk: str) -> Optional[str]:
        if self.done:
            return None
        self._buffer += chunk

        if self._value_start is None:
            match = _SPEECH_KEY.search(self._buffer)
            if match is None:
                return None
            self._value_start = self._scan_pos = match.end()

        if self._value_end is None:
            self._value_end = self._find_closing_quote()
            if self._value_end is None:
                return None

        following = self._buffer[self._value_end + 1:].lstrip()
        if not following:
            return None
        if following[0] not in ",}":
            logger.debug("Streamed speech field is malformed, waiting for the full reply")
            self._failed = True
            return None

        raw = self._buffer[self._value_start:self._value_end]
        try:
            self.speech = json.loads('"' + raw + '"')
        except ValueError:
            self._failed = True
            return None
        return self.speech

    def _find_closing_quote(self) -> Optional[int]:
        buffer = self._buffer
        i = self._scan_pos
        while i < len(buffer):
            char = buffer[i]
            if char == "\\":
                if i + 1 >= len(buffer):
                    # Escape split across chunks
                    break
                i += 2
                continue
            if char == '"':
                self._scan_pos = i
                return i
            i += 1
        self._scan_pos = i
        return None


def extract_speech(text: str) -> Optional[str]:
    """One-shot extraction from a (possibly partial) reply."""
    return StreamingSpeechExtractor().feed(text)
