"""Settings for the request handlers."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from ..voice.elevenlabs_client import PROFESSOR_JONES_VOICE_ID


@dataclass
class ServerConfig:
    """Provider keys and prices for the hosted handlers."""

    # ===========================================
    # GAME MASTER
    # ===========================================
    anthropic_api_key: Optional[str] = None
    claude_model: str = "claude-3-5-haiku-20241022"
    max_tokens: int = 512
    history_limit: int = 12  # messages forwarded to the model (6 exchanges)

    # ===========================================
    # CREDITS
    # ===========================================
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    round_start_cost: int = 10
    follow_up_cost: int = 3

    # ===========================================
    # VOICE
    # ===========================================
    elevenlabs_api_key: Optional[str] = None
    voice_id: str = PROFESSOR_JONES_VOICE_ID

    # ===========================================
    # HTTP
    # ===========================================
    allowed_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def has_ledger(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        origins = os.getenv("ROADTRIP_ALLOWED_ORIGINS")
        config = cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
            voice_id=os.getenv("ELEVENLABS_VOICE_ID") or PROFESSOR_JONES_VOICE_ID,
            host=os.getenv("ROADTRIP_HOST", "0.0.0.0"),
            port=int(os.getenv("ROADTRIP_PORT", "8000")),
        )
        if origins:
            config.allowed_origins = [o.strip() for o in origins.split(",") if o.strip()]
        return config
