"""Speech recognition backends.

The audio channel talks to recognizers through a small interface modelled on
browser speech recognition: a recognizer creates one *session* per listening
run, the session reports results, errors and its end through callbacks, and
``abort()`` cancels it. Sessions cannot be paused; the channel always starts a
fresh one.

Backends:
- QueueRecognizer: fed with text lines (console play, tests)
- DeepgramRecognizer: streams microphone audio to Deepgram
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, Protocol, runtime_checkable

import aiohttp

from ..core.enums import ListenMode
from .deepgram_client import DeepgramAPIError, DeepgramClient, ListenOptions

logger = logging.getLogger(__name__)

# Error codes shared by all backends. "no-speech" and "aborted" are routine.
ERROR_NO_SPEECH = "no-speech"
ERROR_ABORTED = "aborted"
ERROR_NETWORK = "network"
ERROR_AUDIO_CAPTURE = "audio-capture"


class RecognitionError(Exception):
    """Raised when a recognition session cannot be started."""


@dataclass
class RecognitionHandlers:
    """Callbacks a session reports to."""

    on_result: Callable[[str, bool], None]  # (transcript, is_final)
    on_error: Callable[[str], None]
    on_end: Callable[[], None]


@runtime_checkable
class RecognitionSession(Protocol):
    def start(self) -> None:
        ...

    def abort(self) -> None:
        ...


@runtime_checkable
class SpeechRecognizer(Protocol):
    @property
    def available(self) -> bool:
        ...

    def create_session(
        self, mode: ListenMode, handlers: RecognitionHandlers, language: str = "en-US"
    ) -> RecognitionSession:
        ...


class _TaskSession:
    """
    Session backed by an asyncio task.

    ``on_end`` is reported exactly once, whether the task finishes on its own,
    fails, or is aborted.
    """

    def __init__(self, mode: ListenMode, handlers: RecognitionHandlers):
        self.mode = mode
        self.handlers = handlers
        self._task: Optional[asyncio.Task] = None
        self._ended = False

    @property
    def continuous(self) -> bool:
        return self.mode is ListenMode.COMMAND

    @property
    def active(self) -> bool:
        return self._task is not None and not self._ended

    def start(self) -> None:
        if self._task is not None:
            raise RecognitionError("session already started")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise RecognitionError("no running event loop") from e
        self._task = loop.create_task(self._guarded_run())

    def abort(self) -> None:
        if self._task is None or self._ended:
            return
        self._task.cancel()
        self._finish(error=ERROR_ABORTED)

    async def _guarded_run(self) -> None:
        try:
            await self._run()
        except asyncio.CancelledError:
            raise
        except (DeepgramAPIError, aiohttp.ClientError) as e:
            logger.warning(f"Recognition stream failed: {e}")
            self._finish(error=ERROR_NETWORK)
            return
        except Exception as e:
            logger.error(f"Recognition session crashed: {e}", exc_info=True)
            self._finish(error=ERROR_NETWORK)
            return
        self._finish()

    def _finish(self, error: Optional[str] = None) -> None:
        if self._ended:
            return
        self._ended = True
        if error:
            self.handlers.on_error(error)
        self.handlers.on_end()

    async def _run(self) -> None:
        raise NotImplementedError


# ============================================================================
# Queue-fed recognizer
# ============================================================================


class _QueueSession(_TaskSession):
    def __init__(self, recognizer: "QueueRecognizer", mode: ListenMode, handlers: RecognitionHandlers):
        super().__init__(mode, handlers)
        self._recognizer = recognizer

    async def _run(self) -> None:
        queue = self._recognizer.queue
        while True:
            item = await queue.get()
            if item is None:
                # Engine timeout: the session ends without a result.
                if not self.continuous:
                    self.handlers.on_error(ERROR_NO_SPEECH)
                return
            text, is_final = item
            self.handlers.on_result(text, is_final)
            if is_final and not self.continuous:
                return


class QueueRecognizer:
    """
    Recognizer fed with already-transcribed text.

    Used by the console client (typed lines stand in for speech) and by
    tests, which can also simulate interim results and engine timeouts.
    """

    def __init__(self, available: bool = True):
        self._available = available
        self.queue: "asyncio.Queue[Optional[tuple]]" = asyncio.Queue()
        self.sessions_created = 0
        self.fail_next_start = False

    @property
    def available(self) -> bool:
        return self._available

    def create_session(
        self, mode: ListenMode, handlers: RecognitionHandlers, language: str = "en-US"
    ) -> RecognitionSession:
        self.sessions_created += 1
        if self.fail_next_start:
            self.fail_next_start = False
            return _FailingSession()
        return _QueueSession(self, mode, handlers)

    def say(self, text: str) -> None:
        """Deliver a final transcript."""
        self.queue.put_nowait((text, True))

    def interim(self, text: str) -> None:
        """Deliver a partial transcript."""
        self.queue.put_nowait((text, False))

    def expire(self) -> None:
        """End the current session the way an engine timeout would."""
        self.queue.put_nowait(None)


class _FailingSession:
    def start(self) -> None:
        raise RecognitionError("capture device unavailable")

    def abort(self) -> None:
        pass


# ============================================================================
# Deepgram recognizer
# ============================================================================


class _DeepgramSession(_TaskSession):
    def __init__(
        self,
        client: DeepgramClient,
        audio_source: Callable[[], AsyncIterator[bytes]],
        options: ListenOptions,
        mode: ListenMode,
        handlers: RecognitionHandlers,
    ):
        super().__init__(mode, handlers)
        self._client = client
        self._audio_source = audio_source
        self._options = options

    async def _run(self) -> None:
        heard_anything = False
        async for result in self._client.stream(self._audio_source(), self._options):
            heard_anything = True
            self.handlers.on_result(result.text, result.is_final)
            if result.is_final and not self.continuous:
                return
        if not heard_anything:
            self.handlers.on_error(ERROR_NO_SPEECH)


class DeepgramRecognizer:
    """
    Streams microphone audio to Deepgram.

    Args:
        client: Deepgram client (dry-run clients produce mock transcripts)
        audio_source: Factory returning a fresh async iterator of PCM chunks
            for each session
        keyterms: Words to boost, such as the players' names
    """

    def __init__(
        self,
        client: DeepgramClient,
        audio_source: Callable[[], AsyncIterator[bytes]],
        keyterms: Optional[List[str]] = None,
    ):
        self.client = client
        self.audio_source = audio_source
        self.keyterms = keyterms or []

    @property
    def available(self) -> bool:
        return self.audio_source is not None

    def create_session(
        self, mode: ListenMode, handlers: RecognitionHandlers, language: str = "en-US"
    ) -> RecognitionSession:
        options = ListenOptions(
            model=self.client.model,
            language=language.split("-")[0],
            keyterms=list(self.keyterms),
        )
        return _DeepgramSession(self.client, self.audio_source, options, mode, handlers)
