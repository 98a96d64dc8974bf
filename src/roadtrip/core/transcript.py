"""Conversation transcript."""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterator, List

from .enums import Speaker

_ROLES = {Speaker.PLAYER: "user", Speaker.AGENT: "assistant"}


@dataclass(frozen=True)
class TranscriptEntry:
    speaker: Speaker
    text: str
    synthetic: bool = False  # machine-generated prompt, hidden from displays

    def to_wire(self) -> Dict[str, str]:
        return {"role": _ROLES[self.speaker], "content": self.text}


class TranscriptLog:
    """
    Append-only record of the conversation.

    The log feeds both the on-screen transcript and the history window sent
    to the game master. Retention is capped so a long drive does not grow it
    without bound; the oldest entries fall off first.
    """

    def __init__(self, retention: int = 40):
        if retention < 1:
            raise ValueError("retention must be at least 1")
        self.retention = retention
        self._entries: Deque[TranscriptEntry] = deque(maxlen=retention)

    def append(self, speaker: Speaker, text: str, synthetic: bool = False) -> TranscriptEntry:
        entry = TranscriptEntry(speaker=Speaker(speaker), text=text, synthetic=synthetic)
        self._entries.append(entry)
        return entry

    def windowed(self, n: int) -> List[Dict[str, str]]:
        """Last ``n`` entries in ``{role, content}`` form. Does not trim the log."""
        if n <= 0:
            return []
        entries = list(self._entries)[-n:]
        return [entry.to_wire() for entry in entries]

    def visible(self) -> List[TranscriptEntry]:
        """Entries meant for display (synthetic prompts left out)."""
        return [entry for entry in self._entries if not entry.synthetic]

    def clear(self) -> None:
        self._entries.clear()

    def __iter__(self) -> Iterator[TranscriptEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
