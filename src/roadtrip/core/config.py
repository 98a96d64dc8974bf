"""Game configuration dataclass.

Defaults mirror the hosted game: a 6 second silence window after Professor
Jones stops talking, 20 remembered exchanges, and the credit prices charged by
the game-master endpoint.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return int(value)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GameConfig:
    """Configuration for a single game session."""

    # ===========================================
    # TURN TAKING
    # ===========================================
    silence_timeout: float = 6.0  # seconds of player silence after a reply
    max_silence_turns: int = 2  # consecutive silence turns forwarded to the agent
    retrigger_delay: float = 0.5  # pause before asking the agent for a missing clue

    # ===========================================
    # CONVERSATION HISTORY
    # ===========================================
    # 40 entries = 20 exchanges. Also bounds the transcript kept in memory.
    history_cap: int = 40

    # ===========================================
    # SPEECH RECOGNITION
    # ===========================================
    recognition_language: str = "en-US"
    max_recognition_restarts: int = 5  # consecutive command-mode restarts
    recognition_restart_backoff: float = 0.25  # first restart delay, doubles

    # ===========================================
    # AUDIO OUTPUT
    # ===========================================
    muted: bool = False
    voice_id: str = "KTjyUd6ZeCmAkkfvuuU2"  # Professor Jones
    tts_model: str = "eleven_flash_v2_5"
    narrate_essays: bool = True  # read the round essay aloud after the reply

    # ===========================================
    # REMOTE AGENT
    # ===========================================
    api_url: str = "http://localhost:8000"
    request_timeout: float = 30.0
    claude_model: str = "claude-3-5-haiku-20241022"
    max_tokens: int = 512

    # ===========================================
    # CREDITS
    # ===========================================
    round_start_cost: int = 10
    follow_up_cost: int = 3

    # ===========================================
    # AUTHORIZATION
    # ===========================================
    # False trusts the game master to police leader-only requests.
    enforce_leader_actions: bool = False

    # ===========================================
    # LOGGING
    # ===========================================
    verbose: bool = False
    save_transcripts: bool = False

    # ===========================================
    # API SETTINGS
    # ===========================================
    user_id: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    elevenlabs_api_key: Optional[str] = None
    deepgram_api_key: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> "GameConfig":
        """Build a config from ROADTRIP_* and provider environment variables."""
        config = cls(
            silence_timeout=_env_float("ROADTRIP_SILENCE_TIMEOUT", cls.silence_timeout),
            history_cap=_env_int("ROADTRIP_HISTORY_CAP", cls.history_cap),
            muted=_env_bool("ROADTRIP_MUTED", cls.muted),
            narrate_essays=_env_bool("ROADTRIP_NARRATE_ESSAYS", cls.narrate_essays),
            voice_id=os.getenv("ELEVENLABS_VOICE_ID") or cls.voice_id,
            api_url=os.getenv("ROADTRIP_API_URL") or cls.api_url,
            enforce_leader_actions=_env_bool(
                "ROADTRIP_ENFORCE_LEADER", cls.enforce_leader_actions
            ),
            user_id=os.getenv("ROADTRIP_USER_ID"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
            deepgram_api_key=os.getenv("DEEPGRAM_API_KEY"),
        )
        for key, value in overrides.items():
            setattr(config, key, value)
        return config
