"""I Spy Road Trip API - FastAPI Application

Thin proxies in front of Claude (the game master), ElevenLabs (Professor
Jones's voice), Nominatim (reverse geocoding) and the credit ledger.

Run with:
    roadtrip-server
    # or: uvicorn roadtrip.server.main:app --port 8000
"""

import logging
from typing import Optional

import anthropic
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..services.credit_ledger import SupabaseCreditLedger
from ..services.geocoding import NominatimGeocoder
from ..voice.elevenlabs_client import ElevenLabsClient
from .config import ServerConfig
from .routers import gamemaster, geocode, tts

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    """Build the API; collaborators are created from ``config``."""
    config = config or ServerConfig.from_env()

    app = FastAPI(
        title="I Spy Road Trip API",
        description="Game master, voice and geocoding handlers for I Spy Road Trip",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.model_client = (
        anthropic.AsyncAnthropic(api_key=config.anthropic_api_key)
        if config.anthropic_api_key else None
    )
    app.state.tts_client = (
        ElevenLabsClient(api_key=config.elevenlabs_api_key, voice_id=config.voice_id)
        if config.elevenlabs_api_key else None
    )
    app.state.ledger = (
        SupabaseCreditLedger(config.supabase_url, config.supabase_service_key)
        if config.has_ledger else None
    )
    app.state.geocoder = NominatimGeocoder()

    app.include_router(gamemaster.router, prefix="/api", tags=["gamemaster"])
    app.include_router(tts.router, prefix="/api", tags=["tts"])
    app.include_router(geocode.router, prefix="/api", tags=["geocode"])

    @app.on_event("startup")
    async def startup():
        logger.info("Starting I Spy Road Trip API...")
        if app.state.model_client is None:
            logger.warning("ANTHROPIC_API_KEY not set, /api/gamemaster will return 500")
        if app.state.ledger is None:
            logger.warning("Supabase not configured, requests with a userId will fail")

    @app.on_event("shutdown")
    async def shutdown():
        """Close provider sessions."""
        logger.info("Shutting down I Spy Road Trip API...")
        for name in ("tts_client", "ledger", "geocoder", "model_client"):
            client = getattr(app.state, name, None)
            if client is not None and hasattr(client, "close"):
                await client.close()

    @app.get("/health")
    async def health():
        """Health check for container orchestration."""
        return {"status": "healthy"}

    return app


load_dotenv()
app = create_app()


def serve() -> None:
    """Run the API with uvicorn on the configured host and port."""
    import uvicorn

    config = app.state.config
    uvicorn.run(app, host=config.host, port=config.port, log_level="info")
