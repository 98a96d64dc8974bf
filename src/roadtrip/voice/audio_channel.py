"""Audio channel: exclusive control of the microphone and the speaker.

The channel makes sure Professor Jones never hears himself. While a reply is
playing, capture is suspended; when playback ends (normally, because TTS
failed, or because it was stopped) a fresh recognition session is opened in
the mode that was active before, and the silence watchdog is armed. Essay
narration shares the same single output.

Usage:
    channel = AudioChannel(recognizer, synthesizer, player, config, watchdog)
    channel.on_utterance = lambda text: print("heard", text)
    channel.init()
    channel.start_listening(ListenMode.COMMAND)
    await channel.speak("I spy with my little eye...")
    channel.dispose()
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from ..core.config import GameConfig
from ..core.enums import ChannelState, ListenMode
from .playback import AudioPlayer, SimulatedPlayer
from .recognition import (
    ERROR_ABORTED,
    ERROR_NO_SPEECH,
    RecognitionError,
    RecognitionHandlers,
    RecognitionSession,
    SpeechRecognizer,
)
from .silence import SilenceWatchdog
from .synthesis import NullSynthesizer, SpeechSynthesizer

logger = logging.getLogger(__name__)


# ============================================================================
# Observational events (UI projection only)
# ============================================================================


@dataclass(frozen=True)
class ListeningChanged:
    listening: bool
    mode: Optional[ListenMode] = None


@dataclass(frozen=True)
class InterimTranscript:
    text: str


# Playback sources
REPLY = "reply"
ESSAY = "essay"


@dataclass(frozen=True)
class PlaybackChanged:
    playing: bool
    text: Optional[str] = None
    source: str = REPLY


ChannelEvent = Union[ListeningChanged, InterimTranscript, PlaybackChanged]
ChannelListener = Callable[[ChannelEvent], None]


class AudioChannel:
    """
    Owns the live recognition session and the output device.

    Every recognition session gets a token; callbacks from a session that has
    since been aborted or replaced are ignored. Every ``speak()`` gets a
    playback generation; only the current generation may resume capture, so a
    superseded reply never reopens the microphone on its own.

    Args:
        recognizer: Speech recognition backend
        synthesizer: Text-to-speech provider (defaults to text-only)
        player: Output device (defaults to an instant simulated player)
        config: Game configuration (timeouts, restart policy, mute)
        watchdog: Silence watchdog armed whenever capture resumes after a reply
    """

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        synthesizer: Optional[SpeechSynthesizer] = None,
        player: Optional[AudioPlayer] = None,
        config: Optional[GameConfig] = None,
        watchdog: Optional[SilenceWatchdog] = None,
    ):
        self.recognizer = recognizer
        self.synthesizer = synthesizer or NullSynthesizer()
        self.player = player or SimulatedPlayer(speed=0)
        self.config = config or GameConfig()
        self.watchdog = watchdog
        self.muted = self.config.muted

        # Final transcripts go here; interim ones only to subscribers.
        self.on_utterance: Optional[Callable[[str], None]] = None

        self._listeners: List[ChannelListener] = []
        self._initialized = False
        self._disposed = False

        # Capture
        self._session: Optional[RecognitionSession] = None
        self._session_token = 0
        self._mode: Optional[ListenMode] = None
        self._listening = False
        self._restart_count = 0
        self._restart_handle: Optional[asyncio.TimerHandle] = None

        # Playback
        self._playing = False
        self._playback_source = REPLY
        self._playback_task: Optional[asyncio.Future] = None
        self._playback_generation = 0
        self._resume_mode: Optional[ListenMode] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._disposed = False
        if self.watchdog is not None and self.watchdog.guard is None:
            self.watchdog.guard = self._silence_may_fire
        logger.debug("Audio channel initialized")

    def dispose(self) -> None:
        if self._disposed:
            return
        self.stop_listening()
        self._disposed = True
        self._initialized = False
        self._listeners.clear()
        logger.debug("Audio channel disposed")

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> ChannelState:
        if self._playing:
            return ChannelState.PAUSED if self._resume_mode is not None else ChannelState.SPEAKING
        if self._listening:
            return ChannelState.LISTENING
        return ChannelState.IDLE

    @property
    def mode(self) -> Optional[ListenMode]:
        return self._mode

    @property
    def is_speaking(self) -> bool:
        return self._playing

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_essay_playing(self) -> bool:
        return self._playing and self._playback_source == ESSAY

    def subscribe(self, listener: ChannelListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: ChannelEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _set_listening(self, listening: bool, mode: Optional[ListenMode] = None) -> None:
        if listening == self._listening:
            return
        self._listening = listening
        self._emit(ListeningChanged(listening, mode if listening else None))

    def _set_playing(self, playing: bool, text: Optional[str] = None, source: str = REPLY) -> None:
        if playing == self._playing and (not playing or source == self._playback_source):
            return
        self._playing = playing
        if playing:
            self._playback_source = source
        self._emit(PlaybackChanged(playing, text, source if playing else self._playback_source))

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def start_listening(self, mode: ListenMode) -> bool:
        """
        Open a recognition session in ``mode``.

        Returns False when the recognizer is unavailable, the channel is
        muted or disposed, or the session refuses to start. Called while a
        reply is playing, the mode is remembered and capture opens once
        playback ends.
        """
        if self._disposed or self.muted or not self.recognizer.available:
            return False

        if self._playing:
            self._resume_mode = mode
            return True

        self._abort_session()
        self._cancel_restart()
        self._restart_count = 0
        if not self._open_session(mode):
            self._mode = None
            self._set_listening(False)
            return False
        self._mode = mode
        self._set_listening(True, mode)
        return True

    def stop_listening(self) -> None:
        """Return to idle from any state."""
        self._abort_session()
        self._cancel_restart()
        if self.watchdog is not None:
            self.watchdog.disarm()
        self._mode = None
        self._resume_mode = None
        self._set_listening(False)
        self._halt_playback()

    def _open_session(self, mode: ListenMode) -> bool:
        self._session_token += 1
        token = self._session_token
        handlers = RecognitionHandlers(
            on_result=lambda text, is_final: self._handle_result(token, text, is_final),
            on_error=lambda code: self._handle_error(token, code),
            on_end=lambda: self._handle_end(token),
        )
        session = self.recognizer.create_session(mode, handlers, self.config.recognition_language)
        try:
            session.start()
        except RecognitionError as e:
            logger.warning(f"Could not start {mode.value} recognition: {e}")
            self._session = None
            return False
        self._session = session
        logger.debug(f"Listening ({mode.value})")
        return True

    def _abort_session(self) -> None:
        session = self._session
        self._session = None
        # Callbacks the abort triggers belong to a stale token.
        self._session_token += 1
        if session is not None:
            session.abort()

    def _handle_result(self, token: int, text: str, is_final: bool) -> None:
        if token != self._session_token:
            return
        self._restart_count = 0
        if self.watchdog is not None:
            self.watchdog.disarm()
        if not is_final:
            self._emit(InterimTranscript(text))
            return
        text = text.strip()
        if text and self.on_utterance is not None:
            self.on_utterance(text)

    def _handle_error(self, token: int, code: str) -> None:
        if token != self._session_token:
            return
        if code in (ERROR_NO_SPEECH, ERROR_ABORTED):
            logger.debug(f"Recognition ended: {code}")
        else:
            logger.warning(f"Recognition error: {code}")

    def _handle_end(self, token: int) -> None:
        if token != self._session_token:
            return
        self._session = None
        if (
            self._mode is ListenMode.COMMAND
            and self._listening
            and not self.muted
            and not self._disposed
        ):
            self._schedule_restart()
            return
        self._mode = None
        self._set_listening(False)

    # ------------------------------------------------------------------
    # Command-mode restart supervision
    # ------------------------------------------------------------------

    def _schedule_restart(self) -> None:
        if self._restart_count >= self.config.max_recognition_restarts:
            logger.error(
                f"Recognition stopped after {self._restart_count} restarts without a result"
            )
            self._mode = None
            self._set_listening(False)
            return
        delay = self.config.recognition_restart_backoff * (2 ** self._restart_count)
        self._restart_count += 1
        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(delay, self._restart)
        logger.debug(f"Restarting command recognition in {delay:.2f}s (attempt {self._restart_count})")

    def _restart(self) -> None:
        self._restart_handle = None
        if self._disposed or self.muted or self._playing or self._mode is not ListenMode.COMMAND:
            return
        if not self._open_session(ListenMode.COMMAND):
            self._schedule_restart()

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def prefetch(self, text: str) -> "asyncio.Task":
        """Start synthesizing ``text`` now; pass the task to ``speak(audio=...)``."""
        return asyncio.ensure_future(self.synthesizer.synthesize(text))

    async def speak(
        self,
        text: str,
        audio: Optional[Union[bytes, "asyncio.Future"]] = None,
    ) -> None:
        """
        Speak ``text``, suspending capture for the duration.

        Never raises. A failed or non-audio synthesis degrades to silence,
        and capture resumes in the remembered mode either way.
        """
        await self._play(text, audio, REPLY)

    async def speak_essay(self, text: str) -> None:
        """
        Narrate a round essay.

        Shares the single output with replies: whichever starts last wins,
        and capture resumes once the narration ends.
        """
        await self._play(text, None, ESSAY)

    async def _play(
        self,
        text: str,
        audio: Optional[Union[bytes, "asyncio.Future"]],
        source: str,
    ) -> None:
        if self.muted or self._disposed or not text or not text.strip():
            return

        # Stop-then-start: the previous reply loses its right to resume.
        self._playback_generation += 1
        generation = self._playback_generation
        if self._playback_task is not None and not self._playback_task.done():
            self._playback_task.cancel()
        self._playback_task = None

        if self._listening:
            self._suspend_capture()
        self._set_playing(True, text, source)

        task: Optional[asyncio.Future] = None
        try:
            if audio is None:
                audio = await self.synthesizer.synthesize(text)
            elif isinstance(audio, asyncio.Future):
                audio = await audio
            if generation != self._playback_generation or not audio:
                return
            task = asyncio.ensure_future(self.player.play(audio))
            self._playback_task = task
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning(f"Playback failed: {task.exception()}")
        finally:
            if task is not None and not task.done():
                task.cancel()
            if generation == self._playback_generation:
                self._playback_task = None
                self._set_playing(False)
                self._resume()

    def stop_speaking(self) -> None:
        """Cut the current reply short and go back to listening."""
        if not self._playing:
            return
        self._halt_playback()
        self._resume()

    def stop_essay(self) -> None:
        """Stop essay narration; a reply that is playing is left alone."""
        if self.is_essay_playing:
            self.stop_speaking()

    def _halt_playback(self) -> None:
        self._playback_generation += 1
        if self._playback_task is not None and not self._playback_task.done():
            self._playback_task.cancel()
        self._playback_task = None
        self._set_playing(False)

    def _suspend_capture(self) -> None:
        self._resume_mode = self._mode
        self._abort_session()
        self._cancel_restart()
        if self.watchdog is not None:
            self.watchdog.disarm()
        self._set_listening(False)

    def _resume(self) -> None:
        mode = self._resume_mode
        self._resume_mode = None
        if mode is None or self._disposed or self.muted:
            return
        self._restart_count = 0
        if not self._open_session(mode):
            self._mode = None
            return
        self._mode = mode
        self._set_listening(True, mode)
        if self.watchdog is not None:
            self.watchdog.arm()

    def _silence_may_fire(self) -> bool:
        return self._listening and not self._playing

    # ------------------------------------------------------------------
    # Mute
    # ------------------------------------------------------------------

    def toggle_mute(self) -> bool:
        """Flip the mute flag; muting stops playback and listening."""
        self.muted = not self.muted
        if self.muted:
            self.stop_listening()
        logger.info(f"Audio {'muted' if self.muted else 'unmuted'}")
        return self.muted
