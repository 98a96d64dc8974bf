"""Game master endpoint.

POST /api/gamemaster - charge credits, ask Claude, stream the reply as NDJSON
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import anthropic
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from ...agents.game_master import NDJSON_CONTENT_TYPE, build_messages, stream_game_master
from ...agents.prompts.gm_templates import APOLOGY, CLUE_REQUEST_UTTERANCE, SESSION_START_UTTERANCE
from ...services.credit_ledger import (
    CreditLedger,
    InsufficientCreditsError,
    LedgerUnavailableError,
    UserNotFoundError,
)
from ..config import ServerConfig
from ..dependencies import get_config, get_ledger, get_model_client

logger = logging.getLogger(__name__)

router = APIRouter()

ROUND_START_TRANSCRIPTS = {CLUE_REQUEST_UTTERANCE, SESSION_START_UTTERANCE}


class GameMasterRequest(BaseModel):
    """Request body from the client."""
    userId: Optional[str] = None
    gameState: Optional[Dict[str, Any]] = None
    conversationHistory: List[Dict[str, Any]] = []
    transcript: Optional[str] = None


def is_round_start(game_state: Optional[Dict[str, Any]], transcript: Optional[str]) -> bool:
    """A call that is expected to produce a new clue."""
    game_state = game_state or {}
    if game_state.get("phase") != "playing":
        return False
    current_round = game_state.get("currentRound") or {}
    return not current_round.get("answer") or transcript in ROUND_START_TRANSCRIPTS


def credit_cost(config: ServerConfig, game_state: Optional[Dict[str, Any]], transcript: Optional[str]) -> int:
    return config.round_start_cost if is_round_start(game_state, transcript) else config.follow_up_cost


def _error_record() -> Dict[str, Any]:
    return {
        "type": "error",
        "error": "Failed to process",
        "speech": APOLOGY,
        "actions": [{"type": "no_action"}],
    }


async def _ndjson(
    client: anthropic.AsyncAnthropic,
    messages: List[Dict[str, str]],
    config: ServerConfig,
    remaining: Optional[Union[int, str]],
) -> AsyncIterator[str]:
    try:
        async for record in stream_game_master(client, messages, config.claude_model, config.max_tokens):
            if record["type"] == "complete":
                record["remainingCredits"] = remaining
            yield json.dumps(record) + "\n"
    except anthropic.APIError as e:
        logger.error(f"Game master stream failed: {e}")
        yield json.dumps(_error_record()) + "\n"


@router.post("/gamemaster")
async def game_master(
    body: GameMasterRequest,
    config: ServerConfig = Depends(get_config),
    ledger: Optional[CreditLedger] = Depends(get_ledger),
    client: Optional[anthropic.AsyncAnthropic] = Depends(get_model_client),
):
    """Run one game master turn.

    The response is NDJSON: an early ``speech`` record as soon as the speech
    string has streamed in, then a ``complete`` record with the actions and
    the remaining balance (or an ``error`` record if the model failed).
    """
    if not body.transcript and not body.gameState:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if client is None:
        raise HTTPException(status_code=500, detail="API key not configured")

    remaining: Optional[Union[int, str]] = None
    if body.userId:
        if ledger is None:
            raise HTTPException(status_code=500, detail="Credit ledger not configured")
        cost = credit_cost(config, body.gameState, body.transcript)
        try:
            remaining = await ledger.charge(body.userId, cost)
        except UserNotFoundError:
            raise HTTPException(status_code=401, detail="User not found")
        except InsufficientCreditsError as e:
            return JSONResponse(
                status_code=402,
                content={"error": "Insufficient credits", "credits": e.credits, "required": e.required},
            )
        except LedgerUnavailableError:
            raise HTTPException(status_code=502, detail="Credit ledger unavailable")
        logger.info(f"Charged {body.userId} {cost} credits, remaining: {remaining}")

    messages = build_messages(
        body.conversationHistory, body.gameState, body.transcript, config.history_limit
    )
    return StreamingResponse(
        _ndjson(client, messages, config, remaining),
        media_type=NDJSON_CONTENT_TYPE,
        headers={"Cache-Control": "no-cache"},
    )
