"""Turn loop between the players and Professor Jones.

One turn: the players say something (or stay silent), the game master is
asked what to say and do, the actions are applied to the game state, and the
reply is spoken. Only one turn is in flight at a time; anything heard
meanwhile is dropped rather than queued.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Set, Union

from ..core.actions import summarize
from ..core.config import GameConfig
from ..core.enums import EffectType, Speaker
from ..core.game_state import GameState
from ..core.reducer import Effect
from ..core.store import GameStateStore
from ..core.transcript import TranscriptLog
from ..services.credit_ledger import InsufficientCreditsError, UserNotFoundError
from ..voice.audio_channel import AudioChannel
from .game_master import AgentRequest, AgentResponse, GameMaster, GameMasterError
from .prompts.gm_templates import APOLOGY, CLUE_REQUEST_UTTERANCE, SILENCE_UTTERANCE

logger = logging.getLogger(__name__)


# ============================================================================
# Events (UI projection)
# ============================================================================


@dataclass(frozen=True)
class Thinking:
    active: bool


@dataclass(frozen=True)
class SpeechPreview:
    speech: str


@dataclass(frozen=True)
class CreditsUpdated:
    remaining: Union[int, str]


@dataclass(frozen=True)
class InsufficientCredits:
    credits: Optional[int]
    required: Optional[int]


@dataclass(frozen=True)
class Notice:
    message: str


OrchestratorEvent = Union[Thinking, SpeechPreview, CreditsUpdated, InsufficientCredits, Notice]
OrchestratorListener = Callable[[OrchestratorEvent], None]


class ConversationOrchestrator:
    """
    Binds player speech to the game master and back to local effects.

    Args:
        store: Game state store the reply's actions are dispatched to
        transcript: Conversation log (also the source of the history window)
        channel: Audio channel used to speak replies
        game_master: Remote agent client
        config: Game configuration
    """

    # Consecutive clue requests sent while a category has no round.
    MAX_CLUE_REQUESTS = 3

    def __init__(
        self,
        store: GameStateStore,
        transcript: TranscriptLog,
        channel: AudioChannel,
        game_master: GameMaster,
        config: Optional[GameConfig] = None,
    ):
        self.store = store
        self.transcript = transcript
        self.channel = channel
        self.game_master = game_master
        self.config = config or GameConfig()

        self.processing = False
        self.silence_turns = 0
        self.on_fatal: Optional[Callable[[BaseException], None]] = None

        self._listeners: List[OrchestratorListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._retrigger_handle: Optional[asyncio.TimerHandle] = None
        self._clue_requests = 0
        self._closed = False

        self._unsubscribe = store.subscribe(self._on_effects)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: OrchestratorListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: OrchestratorEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _on_effects(self, state: GameState, effects: Sequence[Effect]) -> None:
        for effect in effects:
            if effect.type is EffectType.ROUND_STARTED:
                self._cancel_retrigger()
                self._clue_requests = 0
            elif effect.type is EffectType.NOTICE:
                self._emit(Notice(str(effect.data.get("message", ""))))

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def on_player_utterance(self, text: str) -> None:
        """Final transcript from the audio channel."""
        self.silence_turns = 0
        self.submit(text)

    def on_silence(self) -> None:
        """Silence watchdog fired."""
        if self.processing or self._closed:
            return
        if self.silence_turns >= self.config.max_silence_turns:
            logger.debug("Still silent, not prompting the game master again")
            return
        self.silence_turns += 1
        self.submit(SILENCE_UTTERANCE, synthetic=True)

    def submit(self, text: str, synthetic: bool = False) -> Optional[asyncio.Task]:
        """Run a turn in the background (for use from synchronous callbacks)."""
        if self._closed:
            return None
        task = asyncio.ensure_future(self.handle_utterance(text, synthetic))
        self._tasks.add(task)
        task.add_done_callback(self._turn_finished)
        return task

    def _turn_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Turn failed: {error}", exc_info=error)
            if self.on_fatal is not None:
                self.on_fatal(error)

    async def wait_idle(self) -> None:
        """Wait until no turn is in flight."""
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def handle_utterance(self, text: str, synthetic: bool = False) -> Optional[AgentResponse]:
        """
        Run one turn.

        Returns the game master's reply, or None when the utterance was
        dropped or the turn failed.
        """
        if self._closed or self.processing:
            logger.debug(f"Turn in flight, dropping: {text!r}")
            return None
        if not text or not text.strip():
            return None

        self.processing = True
        self._idle.clear()
        try:
            response = await self._run_turn(text.strip(), synthetic)
        finally:
            self.processing = False
            self._idle.set()

        if response is not None:
            self._maybe_request_clue()
        return response

    async def _run_turn(self, text: str, synthetic: bool) -> Optional[AgentResponse]:
        history = self.transcript.windowed(self.config.history_cap)
        self.transcript.append(Speaker.PLAYER, text, synthetic=synthetic)
        logger.info(f"Player: {text}")
        self._emit(Thinking(True))

        request = AgentRequest(
            transcript=text,
            game_state=self.store.state.snapshot(),
            conversation_history=history,
            user_id=self.config.user_id,
        )

        preview: List[str] = []
        prefetched: List[asyncio.Future] = []

        def on_speech(speech: str) -> None:
            preview.append(speech)
            self._emit(SpeechPreview(speech))
            if speech.strip() and not prefetched and not self.channel.muted:
                prefetched.append(self.channel.prefetch(speech))

        try:
            response = await self.game_master.respond(request, on_speech)
        except InsufficientCreditsError as e:
            logger.warning(f"Out of credits: {e}")
            self._discard(prefetched)
            self._emit(Thinking(False))
            self._emit(InsufficientCredits(e.credits, e.required))
            return None
        except (GameMasterError, UserNotFoundError) as e:
            logger.error(f"Game master call failed: {e}")
            self._discard(prefetched)
            self._emit(Thinking(False))
            await self._apologize()
            return None

        self._emit(Thinking(False))
        if response.speech:
            self.transcript.append(Speaker.AGENT, response.speech)
            logger.info(f"Professor Jones: {response.speech}")
        logger.debug(f"Actions: {summarize(response.actions)}")
        self.store.dispatch(response.actions)

        if response.remaining_credits is not None:
            self._emit(CreditsUpdated(response.remaining_credits))

        audio = None
        if prefetched and preview and preview[0] == response.speech:
            audio = prefetched[0]
        else:
            self._discard(prefetched)
        await self.channel.speak(response.speech, audio=audio)
        return response

    async def _apologize(self) -> None:
        self.transcript.append(Speaker.AGENT, APOLOGY)
        await self.channel.speak(APOLOGY)

    @staticmethod
    def _discard(futures: List[asyncio.Future]) -> None:
        for future in futures:
            future.cancel()

    # ------------------------------------------------------------------
    # Missing-clue recovery
    # ------------------------------------------------------------------

    def _maybe_request_clue(self) -> None:
        if self._closed or not self.store.state.needs_clue():
            return
        if self._clue_requests >= self.MAX_CLUE_REQUESTS:
            logger.warning("Game master keeps skipping the clue, waiting for the players")
            return
        self._cancel_retrigger()
        loop = asyncio.get_running_loop()
        self._retrigger_handle = loop.call_later(self.config.retrigger_delay, self._request_clue)

    def _request_clue(self) -> None:
        self._retrigger_handle = None
        if self._closed or not self.store.state.needs_clue():
            return
        self._clue_requests += 1
        logger.info("Category set without a round, asking for the clue")
        self.submit(CLUE_REQUEST_UTTERANCE, synthetic=True)

    def _cancel_retrigger(self) -> None:
        if self._retrigger_handle is not None:
            self._retrigger_handle.cancel()
            self._retrigger_handle = None

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel_retrigger()
        self._unsubscribe()
        current = asyncio.current_task() if self._tasks else None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
