"""FastAPI dependencies.

Collaborators live on ``app.state`` and are handed to the routers through
these functions, so tests can swap them with ``app.dependency_overrides``.
"""

from typing import Optional

import anthropic
from fastapi import Request

from ..services.credit_ledger import CreditLedger
from ..services.geocoding import Geocoder
from ..voice.elevenlabs_client import ElevenLabsClient
from .config import ServerConfig


def get_config(request: Request) -> ServerConfig:
    return request.app.state.config


def get_ledger(request: Request) -> Optional[CreditLedger]:
    return request.app.state.ledger


def get_model_client(request: Request) -> Optional[anthropic.AsyncAnthropic]:
    return request.app.state.model_client


def get_tts_client(request: Request) -> Optional[ElevenLabsClient]:
    return request.app.state.tts_client


def get_geocoder(request: Request) -> Geocoder:
    return request.app.state.geocoder
