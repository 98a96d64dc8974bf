"""Game master actions.

The game master answers every turn with a list of loosely typed JSON objects
(``{"type": "start_round", "letter": "M", ...}``). They are decoded here, once,
into a closed set of frozen dataclasses so the reducer never has to look at
raw dictionaries. Decoding is forgiving: a missing or mistyped field falls back
to a default, and an unrecognised ``type`` becomes :class:`UnknownAction`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .enums import ActionType, GamePhase, Proximity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetPhase:
    phase: Optional[GamePhase]
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.SET_PHASE, init=False)


@dataclass(frozen=True)
class RegisterPlayer:
    name: str
    is_leader: bool = False
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.REGISTER_PLAYER, init=False)


@dataclass(frozen=True)
class SetCategory:
    category: str
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.SET_CATEGORY, init=False)


@dataclass(frozen=True)
class StartRound:
    letter: str
    answer: str
    hints: Tuple[str, ...] = ()
    essay: Optional[str] = None
    proximity: Proximity = Proximity.REGION
    nearby_location: Optional[str] = None
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.START_ROUND, init=False)


@dataclass(frozen=True)
class CorrectGuess:
    player: str
    points: int = 1
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.CORRECT_GUESS, init=False)


@dataclass(frozen=True)
class IncorrectGuess:
    player: Optional[str] = None
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.INCORRECT_GUESS, init=False)


@dataclass(frozen=True)
class RevealHint:
    hint_index: Optional[int]
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.REVEAL_HINT, init=False)


@dataclass(frozen=True)
class RevealAnswer:
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.REVEAL_ANSWER, init=False)


@dataclass(frozen=True)
class ShowEssay:
    essay: Optional[str] = None
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.SHOW_ESSAY, init=False)


@dataclass(frozen=True)
class NextRound:
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.NEXT_ROUND, init=False)


@dataclass(frozen=True)
class Reroll:
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.REROLL, init=False)


@dataclass(frozen=True)
class EndGame:
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.END_GAME, init=False)


@dataclass(frozen=True)
class NoAction:
    actor: Optional[str] = None
    type: ActionType = field(default=ActionType.NO_ACTION, init=False)


@dataclass(frozen=True)
class UnknownAction:
    """Anything the decoder could not map to a known kind."""

    raw: Any = None
    actor: Optional[str] = None
    type: Optional[ActionType] = field(default=None, init=False)


Action = Union[
    SetPhase,
    RegisterPlayer,
    SetCategory,
    StartRound,
    CorrectGuess,
    IncorrectGuess,
    RevealHint,
    RevealAnswer,
    ShowEssay,
    NextRound,
    Reroll,
    EndGame,
    NoAction,
    UnknownAction,
]


# ============================================================================
# Field coercion
# ============================================================================


def _field(data: Dict[str, Any], *names: str) -> Any:
    """First present value among camelCase / snake_case spellings."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    return ""


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _integer(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    if isinstance(value, (int, float)):
        return bool(value)
    return False


def _hints(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    hints = [_text(h) for h in value]
    return tuple(h for h in hints if h)[:4]


def _proximity(value: Any) -> Proximity:
    try:
        return Proximity(_text(value).lower())
    except ValueError:
        return Proximity.REGION


def _phase(value: Any) -> Optional[GamePhase]:
    try:
        return GamePhase(_text(value).lower())
    except ValueError:
        return None


# ============================================================================
# Decoding
# ============================================================================


def decode_action(raw: Any) -> Action:
    """Decode one raw action object. Never raises."""
    if not isinstance(raw, dict):
        return UnknownAction(raw=raw)

    try:
        kind = ActionType(_text(raw.get("type")).lower())
    except ValueError:
        return UnknownAction(raw=raw, actor=_optional_text(raw.get("actor")))

    actor = _optional_text(_field(raw, "actor", "by", "requestedBy", "requested_by"))

    if kind is ActionType.SET_PHASE:
        return SetPhase(phase=_phase(raw.get("phase")), actor=actor)
    if kind is ActionType.REGISTER_PLAYER:
        return RegisterPlayer(
            name=_text(_field(raw, "name", "player")),
            is_leader=_boolean(_field(raw, "isLeader", "is_leader")),
            actor=actor,
        )
    if kind is ActionType.SET_CATEGORY:
        return SetCategory(category=_text(raw.get("category")), actor=actor)
    if kind is ActionType.START_ROUND:
        return StartRound(
            letter=_text(raw.get("letter"))[:1].upper(),
            answer=_text(raw.get("answer")),
            hints=_hints(raw.get("hints")),
            essay=_optional_text(raw.get("essay")),
            proximity=_proximity(raw.get("proximity")),
            nearby_location=_optional_text(_field(raw, "nearbyLocation", "nearby_location")),
            actor=actor,
        )
    if kind is ActionType.CORRECT_GUESS:
        return CorrectGuess(
            player=_text(_field(raw, "player", "name")),
            points=_integer(raw.get("points"), 1),
            actor=actor,
        )
    if kind is ActionType.INCORRECT_GUESS:
        return IncorrectGuess(
            player=_optional_text(_field(raw, "player", "name")), actor=actor
        )
    if kind is ActionType.REVEAL_HINT:
        return RevealHint(
            hint_index=_integer(_field(raw, "hintIndex", "hint_index", "index"), None),
            actor=actor,
        )
    if kind is ActionType.REVEAL_ANSWER:
        return RevealAnswer(actor=actor)
    if kind is ActionType.SHOW_ESSAY:
        return ShowEssay(essay=_optional_text(raw.get("essay")), actor=actor)
    if kind is ActionType.NEXT_ROUND:
        return NextRound(actor=actor)
    if kind is ActionType.REROLL:
        return Reroll(actor=actor)
    if kind is ActionType.END_GAME:
        return EndGame(actor=actor)
    return NoAction(actor=actor)


def decode_actions(raw: Any) -> List[Action]:
    """
    Decode an action list from a game master response.

    A missing or empty list decodes to a single :class:`NoAction`; a bare
    object is treated as a one-element list.
    """
    if raw is None:
        return [NoAction()]
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        logger.debug(f"Ignoring non-list actions payload: {raw!r}")
        return [NoAction()]

    actions = [decode_action(item) for item in raw]
    return actions or [NoAction()]


def encode_action(action: Action) -> Dict[str, Any]:
    """Wire representation of a decoded action (used in logs and replies)."""
    if isinstance(action, UnknownAction):
        return action.raw if isinstance(action.raw, dict) else {"type": None}

    data: Dict[str, Any] = {"type": action.type.value}
    if isinstance(action, SetPhase):
        data["phase"] = action.phase.value if action.phase else None
    elif isinstance(action, RegisterPlayer):
        data.update(name=action.name, isLeader=action.is_leader)
    elif isinstance(action, SetCategory):
        data["category"] = action.category
    elif isinstance(action, StartRound):
        data.update(
            letter=action.letter,
            answer=action.answer,
            hints=list(action.hints),
            essay=action.essay,
            proximity=action.proximity.value,
            nearbyLocation=action.nearby_location,
        )
    elif isinstance(action, CorrectGuess):
        data.update(player=action.player, points=action.points)
    elif isinstance(action, IncorrectGuess):
        data["player"] = action.player
    elif isinstance(action, RevealHint):
        data["hintIndex"] = action.hint_index
    elif isinstance(action, ShowEssay):
        data["essay"] = action.essay
    if action.actor:
        data["actor"] = action.actor
    return data


def summarize(actions: Iterable[Action]) -> str:
    """Compact ``type, type, ...`` listing for log lines."""
    return ", ".join(a.type.value if a.type else "unknown" for a in actions)
