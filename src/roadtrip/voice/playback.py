"""Audio output devices.

A player plays one clip at a time and returns when it has finished. Playback
is stopped by cancelling the awaiting task; the audio channel relies on that
to guarantee a single output stream.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# 128 kbps MP3
MP3_BYTES_PER_SECOND = 128_000 / 8


@runtime_checkable
class AudioPlayer(Protocol):
    async def play(self, audio: bytes) -> None:
        ...


def estimate_mp3_duration(audio: bytes) -> float:
    return len(audio) / MP3_BYTES_PER_SECOND


class SimulatedPlayer:
    """
    Headless player that waits as long as the clip would take to play.

    Keeps turn timing realistic in the console client and in tests without
    touching a sound card. ``speed`` scales the wait (0 plays instantly).
    """

    def __init__(self, speed: float = 1.0, record_dir: Optional[Path] = None):
        self.speed = speed
        self.record_dir = record_dir
        self.played: List[bytes] = []

    async def play(self, audio: bytes) -> None:
        self.played.append(audio)
        if self.record_dir is not None:
            self._record(audio)
        duration = estimate_mp3_duration(audio) * self.speed
        logger.debug(f"Playing {len(audio)} bytes (~{duration:.1f}s)")
        await asyncio.sleep(duration)

    def _record(self, audio: bytes) -> None:
        self.record_dir.mkdir(parents=True, exist_ok=True)
        clip = self.record_dir / f"reply_{len(self.played):04d}.mp3"
        clip.write_bytes(audio)
