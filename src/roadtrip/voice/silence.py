"""Silence detection after Professor Jones finishes talking."""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SilenceWatchdog:
    """
    Single-shot idle timer.

    Armed when the audio channel returns from speaking to listening; disarmed
    as soon as any speech (interim or final) is heard. If it runs out, the
    callback fires exactly once and the watchdog stays quiet until armed
    again. Arming while armed restarts the timer, so there is never more than
    one pending fire.

    Args:
        timeout: Seconds of silence before firing
        callback: Called with no arguments when silence is detected
        guard: Optional predicate; the fire is dropped when it returns False
            (for example while audio is playing)
    """

    def __init__(
        self,
        timeout: float,
        callback: Optional[Callable[[], None]] = None,
        guard: Optional[Callable[[], bool]] = None,
    ):
        self.timeout = timeout
        self.callback = callback
        self.guard = guard
        self._handle: Optional[asyncio.TimerHandle] = None
        self._enabled = False
        self.arm_count = 0
        self.fire_count = 0

    @property
    def armed(self) -> bool:
        return self._enabled

    def arm(self) -> None:
        self.disarm()
        loop = asyncio.get_running_loop()
        self._enabled = True
        self._handle = loop.call_later(self.timeout, self._fire)
        self.arm_count += 1
        logger.debug(f"Silence watchdog armed ({self.timeout}s)")

    def disarm(self) -> None:
        self._enabled = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if not self._enabled:
            return
        self._enabled = False
        if self.guard is not None and not self.guard():
            logger.debug("Silence watchdog expired during playback, ignoring")
            return
        self.fire_count += 1
        logger.debug("Silence detected")
        if self.callback is not None:
            self.callback()
