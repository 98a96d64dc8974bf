"""Action reducer.

(state, action) -> ReduceResult(state, effects)

The reducer is pure: it never mutates the state it is given, performs no I/O
and never dispatches further actions. Everything the UI or the session has to
react to (an answer reveal, the end of the game) is returned as an
:class:`Effect` for the store to publish after the whole batch is applied.

Invalid actions are no-ops. A bad action never raises and never affects the
other actions in its batch.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Tuple

from .actions import (
    Action,
    CorrectGuess,
    EndGame,
    IncorrectGuess,
    NextRound,
    NoAction,
    RegisterPlayer,
    RevealAnswer,
    RevealHint,
    Reroll,
    SetCategory,
    SetPhase,
    ShowEssay,
    StartRound,
    UnknownAction,
)
from .enums import EffectType
from .game_state import GameState, Player, Round

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Effect:
    """Something observable that happened while reducing an action."""

    type: EffectType
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReduceResult:
    state: GameState
    effects: Tuple[Effect, ...] = ()


@dataclass(frozen=True)
class ReducerPolicy:
    """
    Local authorization rules.

    With ``enforce_leader_actions`` off the reducer trusts the game master
    completely. With it on, leader-only actions that name a registered
    non-leader as their ``actor`` are refused. Actions without an actor are
    still trusted.
    """

    enforce_leader_actions: bool = False


DEFAULT_POLICY = ReducerPolicy()


def _unchanged(state: GameState) -> ReduceResult:
    return ReduceResult(state=state)


def _notice(state: GameState, message: str) -> ReduceResult:
    return ReduceResult(state=state, effects=(Effect(EffectType.NOTICE, {"message": message}),))


def _is_leader_only(action: Action, state: GameState) -> bool:
    if isinstance(action, (Reroll, NextRound, EndGame)):
        return True
    # Picking the first category is part of registration; changing it is not.
    return isinstance(action, SetCategory) and bool(state.category)


def _unauthorized(action: Action, state: GameState, policy: ReducerPolicy) -> bool:
    if not policy.enforce_leader_actions or not action.actor:
        return False
    if not _is_leader_only(action, state):
        return False
    actor = state.get_player_by_name(action.actor)
    return actor is not None and not actor.is_leader


def reduce(
    state: GameState, action: Action, policy: ReducerPolicy = DEFAULT_POLICY
) -> ReduceResult:
    """Apply a single action."""
    if _unauthorized(action, state, policy):
        logger.info(f"Refusing {action.type.value} from non-leader {action.actor}")
        return _notice(state, f"Only the leader can do that, {action.actor}.")

    if isinstance(action, SetPhase):
        if action.phase is None:
            return _unchanged(state)
        return ReduceResult(
            state=replace(state, phase=action.phase),
            effects=(Effect(EffectType.PHASE_CHANGED, {"phase": action.phase.value}),),
        )

    if isinstance(action, RegisterPlayer):
        if not action.name or state.get_player_by_name(action.name):
            return _unchanged(state)
        # One leader at a time: later claims register as regular players.
        is_leader = action.is_leader and state.leader is None
        player = Player(name=action.name, is_leader=is_leader)
        return ReduceResult(
            state=replace(state, players=[*state.players, player]),
            effects=(
                Effect(
                    EffectType.PLAYER_REGISTERED,
                    {"name": player.name, "isLeader": player.is_leader},
                ),
            ),
        )

    if isinstance(action, SetCategory):
        if not action.category:
            return _unchanged(state)
        return ReduceResult(
            state=replace(state, category=action.category),
            effects=(Effect(EffectType.CATEGORY_CHANGED, {"category": action.category}),),
        )

    if isinstance(action, StartRound):
        new_round = Round(
            letter=action.letter,
            answer=action.answer,
            hints=list(action.hints),
            hints_revealed=0,
            proximity=action.proximity,
            nearby_location=action.nearby_location,
            essay=action.essay,
        )
        round_number = state.round_number + 1
        return ReduceResult(
            state=replace(state, current_round=new_round, round_number=round_number),
            effects=(
                Effect(
                    EffectType.ROUND_STARTED,
                    {"roundNumber": round_number, "letter": new_round.letter},
                ),
            ),
        )

    if isinstance(action, CorrectGuess):
        target = state.get_player_by_name(action.player)
        if target is None:
            logger.debug(f"correct_guess for unknown player {action.player!r}")
            return _unchanged(state)
        players = [
            replace(p, score=max(0, p.score + action.points)) if p is target else p
            for p in state.players
        ]
        updated = next(p for p in players if p.matches(target.name))
        return ReduceResult(
            state=replace(state, players=players),
            effects=(
                Effect(
                    EffectType.SCORE_CHANGED,
                    {"player": updated.name, "score": updated.score, "points": action.points},
                ),
            ),
        )

    if isinstance(action, IncorrectGuess):
        return ReduceResult(
            state=state,
            effects=(Effect(EffectType.INCORRECT_GUESS, {"player": action.player}),),
        )

    if isinstance(action, RevealHint):
        hints = state.current_round.hints
        index = action.hint_index
        if index is None or not 0 <= index < len(hints):
            return _unchanged(state)
        current = replace(state.current_round, hints_revealed=index + 1)
        return ReduceResult(
            state=replace(state, current_round=current),
            effects=(
                Effect(EffectType.HINT_REVEALED, {"hintIndex": index, "hint": hints[index]}),
            ),
        )

    if isinstance(action, RevealAnswer):
        current = replace(state.current_round, answer_revealed=True)
        return ReduceResult(
            state=replace(state, current_round=current),
            effects=(Effect(EffectType.ANSWER_REVEALED, {"answer": current.answer}),),
        )

    if isinstance(action, ShowEssay):
        essay = action.essay or state.current_round.essay
        return ReduceResult(
            state=state,
            effects=(Effect(EffectType.ESSAY_SHOWN, {"essay": essay}),),
        )

    if isinstance(action, (NextRound, Reroll)):
        return ReduceResult(
            state=state,
            effects=(Effect(EffectType.ROUND_CLEARED, {"reason": action.type.value}),),
        )

    if isinstance(action, EndGame):
        return ReduceResult(state=state, effects=(Effect(EffectType.SESSION_ENDED),))

    if isinstance(action, NoAction):
        return _unchanged(state)

    if isinstance(action, UnknownAction):
        logger.debug(f"Ignoring unknown action: {action.raw!r}")
        return _unchanged(state)

    logger.debug(f"Ignoring unsupported action object: {action!r}")
    return _unchanged(state)


def reduce_all(
    state: GameState, actions: Iterable[Action], policy: ReducerPolicy = DEFAULT_POLICY
) -> ReduceResult:
    """Apply a batch strictly in order, collecting every effect."""
    effects: List[Effect] = []
    for action in actions:
        result = reduce(state, action, policy)
        state = result.state
        effects.extend(result.effects)
    return ReduceResult(state=state, effects=tuple(effects))
