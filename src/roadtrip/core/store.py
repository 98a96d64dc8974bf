"""Game state store."""

import logging
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, Iterable, List, Sequence, Tuple

from .actions import Action, summarize
from .game_state import GameState, Location
from .reducer import DEFAULT_POLICY, Effect, ReducerPolicy, reduce_all

logger = logging.getLogger(__name__)

EffectListener = Callable[[GameState, Sequence[Effect]], None]


class GameStateStore:
    """
    Single source of truth for game progress.

    State changes only through :meth:`dispatch`, which runs the reducer over
    an action batch and then notifies listeners once with every effect the
    batch produced. Listeners may dispatch again (an ``end_game`` handler, a
    UI callback); such calls are queued and applied after the current batch
    has been fully published, so the reducer never re-enters itself.
    """

    def __init__(self, policy: ReducerPolicy = DEFAULT_POLICY):
        self.policy = policy
        self._state = GameState()
        self._listeners: List[EffectListener] = []
        self._pending: Deque[Tuple[Action, ...]] = deque()
        self._dispatching = False

    @property
    def state(self) -> GameState:
        return self._state

    def subscribe(self, listener: EffectListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, actions: Iterable[Action]) -> Tuple[Effect, ...]:
        """
        Apply actions in order.

        Returns the effects of this batch, or an empty tuple when the call
        was queued behind a dispatch already in progress.
        """
        self._pending.append(tuple(actions))
        if self._dispatching:
            return ()

        self._dispatching = True
        first: Tuple[Effect, ...] = ()
        try:
            is_first = True
            while self._pending:
                batch = self._pending.popleft()
                result = reduce_all(self._state, batch, self.policy)
                self._state = result.state
                logger.debug(f"Applied [{summarize(batch)}] -> {len(result.effects)} effects")
                if is_first:
                    first = result.effects
                    is_first = False
                self._publish(result.effects)
        finally:
            self._dispatching = False
        return first

    def _publish(self, effects: Sequence[Effect]) -> None:
        if not effects:
            return
        for listener in list(self._listeners):
            listener(self._state, effects)

    def set_location(self, location: Location) -> None:
        """Record a new GPS fix. Location is not part of the action protocol."""
        self._state = replace(self._state, location=location)

    def reset(self) -> None:
        """Back to a fresh session; every field, location included, is cleared."""
        self._state = GameState()
        self._pending.clear()
