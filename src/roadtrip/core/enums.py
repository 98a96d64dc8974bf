"""Enumerations for game phases, rounds and audio states."""

from enum import Enum


class GamePhase(str, Enum):
    """Conversation phases driven by the game master."""

    SETUP_INTRO = "setup_intro"
    PLAYER_REGISTRATION = "player_registration"
    PLAYING = "playing"
    GAME_OVER = "game_over"


class Proximity(str, Enum):
    """Where a round's answer sits relative to the car."""

    HERE = "here"        # within ~10 miles
    NEARBY = "nearby"    # within ~100 miles, names nearby_location
    REGION = "region"    # anywhere in the wider region


class Speaker(str, Enum):
    """Who produced a transcript entry."""

    PLAYER = "player"
    AGENT = "agent"


class ListenMode(str, Enum):
    """Speech recognition modes."""

    GUESS = "guess"        # single-shot, one final result then idle
    COMMAND = "command"    # continuous, restarts on engine timeouts


class ChannelState(str, Enum):
    """Observable state of the audio channel."""

    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    PAUSED = "paused"      # capture suspended while output plays


class ActionType(str, Enum):
    """Action kinds the game master may emit."""

    SET_PHASE = "set_phase"
    REGISTER_PLAYER = "register_player"
    SET_CATEGORY = "set_category"
    START_ROUND = "start_round"
    CORRECT_GUESS = "correct_guess"
    INCORRECT_GUESS = "incorrect_guess"
    REVEAL_HINT = "reveal_hint"
    REVEAL_ANSWER = "reveal_answer"
    SHOW_ESSAY = "show_essay"
    NEXT_ROUND = "next_round"
    REROLL = "reroll"
    END_GAME = "end_game"
    NO_ACTION = "no_action"


class EffectType(str, Enum):
    """UI-facing effects produced by the reducer."""

    PHASE_CHANGED = "phase_changed"
    PLAYER_REGISTERED = "player_registered"
    CATEGORY_CHANGED = "category_changed"
    ROUND_STARTED = "round_started"
    SCORE_CHANGED = "score_changed"
    INCORRECT_GUESS = "incorrect_guess"
    HINT_REVEALED = "hint_revealed"
    ANSWER_REVEALED = "answer_revealed"
    ESSAY_SHOWN = "essay_shown"
    ROUND_CLEARED = "round_cleared"
    SESSION_ENDED = "session_ended"
    NOTICE = "notice"
