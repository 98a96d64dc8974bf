"""Game session: one drive's worth of wiring.

Builds the store, transcript, audio channel, silence watchdog and
orchestrator, connects their callbacks, and owns the single teardown path.
``end_game`` from the game master, the players quitting, and a turn that
crashed all end the session through :meth:`GameSession.end`.
"""

import asyncio
import logging
from typing import Optional, Sequence

from ..agents.game_master import GameMaster
from ..agents.orchestrator import ConversationOrchestrator
from ..agents.prompts.gm_templates import SESSION_START_UTTERANCE
from ..services.geocoding import Geocoder, locate
from ..voice.audio_channel import AudioChannel
from ..voice.playback import AudioPlayer
from ..voice.recognition import SpeechRecognizer
from ..voice.silence import SilenceWatchdog
from ..voice.synthesis import SpeechSynthesizer
from .config import GameConfig
from .enums import EffectType, ListenMode
from .game_state import GameState, Location
from .reducer import Effect, ReducerPolicy
from .store import GameStateStore
from .transcript import TranscriptLog

logger = logging.getLogger(__name__)


class GameSession:
    """
    A single I Spy session.

    Args:
        game_master: Remote agent client
        recognizer: Speech recognition backend
        synthesizer: Text-to-speech provider
        player: Audio output device
        config: Game configuration
        geocoder: Reverse geocoder for GPS updates
    """

    def __init__(
        self,
        game_master: GameMaster,
        recognizer: SpeechRecognizer,
        synthesizer: Optional[SpeechSynthesizer] = None,
        player: Optional[AudioPlayer] = None,
        config: Optional[GameConfig] = None,
        geocoder: Optional[Geocoder] = None,
    ):
        self.config = config or GameConfig()
        self.game_master = game_master
        self.geocoder = geocoder

        self.store = GameStateStore(ReducerPolicy(self.config.enforce_leader_actions))
        self.transcript = TranscriptLog(retention=self.config.history_cap)
        self.watchdog = SilenceWatchdog(self.config.silence_timeout)
        self.channel = AudioChannel(recognizer, synthesizer, player, self.config, self.watchdog)
        self.orchestrator = ConversationOrchestrator(
            self.store, self.transcript, self.channel, game_master, self.config
        )

        self.watchdog.callback = self.orchestrator.on_silence
        self.channel.on_utterance = self.orchestrator.on_player_utterance
        self.orchestrator.on_fatal = self._on_fatal
        self._unsubscribe = self.store.subscribe(self._on_effects)

        self.active = False
        self._closed = False
        self._ended = asyncio.Event()
        self._end_task: Optional[asyncio.Task] = None
        self._essay_task: Optional[asyncio.Task] = None
        # Last GPS fix from the device; it outlives the game state.
        self._device_location: Optional[Location] = None

    @property
    def state(self) -> GameState:
        return self.store.state

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> bool:
        """
        Reset and greet the players.

        The game state starts from defaults; only the device's last GPS fix
        is carried over.

        Returns True when speech recognition is running; False means the
        players will have to type.
        """
        self.store.reset()
        if self._device_location is not None:
            self.store.set_location(self._device_location)
        self.transcript.clear()
        self.orchestrator.silence_turns = 0
        self.channel.init()
        self.active = True
        logger.info("Game session started")

        listening = self.channel.start_listening(ListenMode.COMMAND)
        if not listening:
            logger.warning("Speech recognition unavailable")
        await self.orchestrator.handle_utterance(SESSION_START_UTTERANCE, synthetic=True)
        return listening

    async def say(self, text: str):
        """Players' words that did not come through the microphone."""
        self.orchestrator.silence_turns = 0
        return await self.orchestrator.handle_utterance(text)

    async def update_location(self, latitude: float, longitude: float) -> None:
        location = await locate(self.geocoder, latitude, longitude)
        self._device_location = location
        self.store.set_location(location)
        logger.debug(f"Location: {location.describe()}")

    def toggle_mute(self) -> bool:
        muted = self.channel.toggle_mute()
        if not muted and self.active:
            self.channel.start_listening(ListenMode.COMMAND)
        return muted

    def stop_essay(self) -> None:
        self.channel.stop_essay()

    async def wait_closed(self) -> None:
        await self._ended.wait()

    def _on_effects(self, state: GameState, effects: Sequence[Effect]) -> None:
        if self.config.narrate_essays:
            for effect in effects:
                if effect.type is EffectType.ESSAY_SHOWN and effect.data.get("essay"):
                    self._narrate(effect.data["essay"])
        if any(effect.type is EffectType.SESSION_ENDED for effect in effects):
            if self._end_task is None:
                self._end_task = asyncio.ensure_future(self._end_after_turn())

    def _narrate(self, essay: str) -> None:
        if self._essay_task is not None and not self._essay_task.done():
            self._essay_task.cancel()
        self._essay_task = asyncio.ensure_future(self._narrate_after_turn(essay))

    async def _narrate_after_turn(self, essay: str) -> None:
        # The reply that revealed the essay is spoken first.
        await self.orchestrator.wait_idle()
        if self._closed or self._end_task is not None:
            return
        await self.channel.speak_essay(essay)

    async def _end_after_turn(self) -> None:
        # Let the goodbye play out before tearing down.
        await self.orchestrator.wait_idle()
        await self.end()

    def _on_fatal(self, error: BaseException) -> None:
        logger.error(f"Ending session after error: {error}")
        if self._end_task is None:
            self._end_task = asyncio.ensure_future(self.end())

    async def end(self) -> None:
        """Tear everything down. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.active = False

        self.orchestrator.close()
        if self._essay_task is not None and not self._essay_task.done():
            self._essay_task.cancel()
        self.watchdog.disarm()
        self.channel.dispose()
        self._unsubscribe()

        await self.channel.synthesizer.close()
        await self.game_master.close()
        close_geocoder = getattr(self.geocoder, "close", None)
        if close_geocoder is not None:
            await close_geocoder()

        logger.info("Game session ended")
        self._ended.set()
