"""Console client for I Spy Road Trip.

Typed lines stand in for the players' speech; Professor Jones answers in the
terminal and, unless muted, through the speakers (simulated here).

Commands while playing:
    /mute    toggle audio
    /stop    stop reading the essay
    /quit    end the session
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from .agents.game_master import AnthropicGameMaster, HttpGameMaster
from .agents.orchestrator import CreditsUpdated, InsufficientCredits, Notice, Thinking
from .core.config import GameConfig
from .core.enums import EffectType
from .core.game_state import GameState
from .core.reducer import Effect
from .core.session import GameSession
from .services.geocoding import NominatimGeocoder, ProxyGeocoder
from .utils.logger import setup_logger
from .voice.elevenlabs_client import create_client as create_tts_client
from .voice.playback import SimulatedPlayer
from .voice.recognition import QueueRecognizer
from .voice.synthesis import ElevenLabsSynthesizer, NullSynthesizer, ProxySynthesizer

logger = logging.getLogger("roadtrip.console")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="roadtrip", description="Play I Spy Road Trip in a terminal")
    parser.add_argument("--local", action="store_true", help="call Claude directly instead of the hosted API")
    parser.add_argument("--api-url", help="base URL of the hosted API")
    parser.add_argument("--mute", action="store_true", help="text only, no speech synthesis")
    parser.add_argument("--user-id", help="account charged for game master calls")
    parser.add_argument("--lat", type=float, help="starting latitude")
    parser.add_argument("--lon", type=float, help="starting longitude")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def build_session(args: argparse.Namespace, config: GameConfig) -> GameSession:
    if args.local:
        game_master = AnthropicGameMaster(
            api_key=config.anthropic_api_key,
            model=config.claude_model,
            max_tokens=config.max_tokens,
        )
        geocoder = NominatimGeocoder()
    else:
        game_master = HttpGameMaster(config.api_url, timeout=config.request_timeout)
        geocoder = ProxyGeocoder(config.api_url)

    if config.muted:
        synthesizer = NullSynthesizer()
    elif args.local:
        synthesizer = ElevenLabsSynthesizer(
            create_tts_client(
                api_key=config.elevenlabs_api_key, voice_id=config.voice_id, model=config.tts_model
            )
        )
    else:
        synthesizer = ProxySynthesizer(config.api_url, user_id=config.user_id)

    record_dir = Path("data/sessions/audio") if config.save_transcripts else None
    return GameSession(
        game_master=game_master,
        recognizer=QueueRecognizer(),
        synthesizer=synthesizer,
        player=SimulatedPlayer(record_dir=record_dir),
        config=config,
        geocoder=geocoder,
    )


def _print_effects(state: GameState, effects: Sequence[Effect]) -> None:
    for effect in effects:
        if effect.type is EffectType.ROUND_STARTED:
            print(f"\n--- Round {effect.data['roundNumber']}: letter {effect.data['letter']} ---")
        elif effect.type is EffectType.HINT_REVEALED:
            print(f"  Hint: {effect.data['hint']}")
        elif effect.type is EffectType.ANSWER_REVEALED:
            print(f"  Answer: {effect.data['answer']}")
        elif effect.type is EffectType.ESSAY_SHOWN and effect.data.get("essay"):
            print(f"\n{effect.data['essay']}\n")
        elif effect.type is EffectType.SCORE_CHANGED:
            scores = ", ".join(f"{p.name} {p.score}" for p in state.players)
            print(f"  Scores: {scores}")


def _print_event(event) -> None:
    if isinstance(event, Thinking) and event.active:
        print("  ...")
    elif isinstance(event, CreditsUpdated):
        print(f"  Credits left: {event.remaining}")
    elif isinstance(event, InsufficientCredits):
        print(f"  Out of credits ({event.credits} left, {event.required} needed).")
    elif isinstance(event, Notice):
        print(f"  {event.message}")


async def run(args: argparse.Namespace, config: GameConfig) -> None:
    session = build_session(args, config)
    recognizer = session.channel.recognizer
    session.store.subscribe(_print_effects)
    session.orchestrator.subscribe(_print_event)

    if args.lat is not None and args.lon is not None:
        await session.update_location(args.lat, args.lon)

    listening = await session.start()
    loop = asyncio.get_running_loop()
    try:
        while not session.closed:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            line = line.strip()
            if line == "/quit":
                break
            if line == "/mute":
                print("  Muted." if session.toggle_mute() else "  Unmuted.")
                continue
            if line == "/stop":
                session.stop_essay()
                continue
            if not line:
                continue
            if listening and session.channel.is_listening:
                recognizer.say(line)
            else:
                await session.say(line)
    finally:
        await session.end()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the console client."""
    load_dotenv()
    args = parse_args(argv)

    overrides = {"verbose": args.verbose, "muted": args.mute}
    if args.api_url:
        overrides["api_url"] = args.api_url
    if args.user_id:
        overrides["user_id"] = args.user_id
    config = GameConfig.from_env(**overrides)

    setup_logger(verbose=config.verbose, save_to_file=config.save_transcripts)

    if args.local and not config.anthropic_api_key:
        logger.error("ANTHROPIC_API_KEY not set; --local needs it (see .env.example)")
        sys.exit(1)

    logger.info("I SPY ROAD TRIP - type what you would say, /quit to stop\n")
    try:
        asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("\nSession interrupted")


if __name__ == "__main__":
    main()
