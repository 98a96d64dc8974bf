"""Tests for action decoding."""

import pytest
from src.roadtrip.core.actions import (
    CorrectGuess,
    EndGame,
    NoAction,
    RegisterPlayer,
    RevealHint,
    SetPhase,
    StartRound,
    UnknownAction,
    decode_action,
    decode_actions,
    encode_action,
    summarize,
)
from src.roadtrip.core.enums import GamePhase, Proximity


class TestDecodeAction:
    """Decoding single raw action objects."""

    def test_start_round_camel_case(self):
        action = decode_action({
            "type": "start_round",
            "letter": "m",
            "answer": "Mount Rushmore",
            "hints": ["Granite", "Four faces", "", "South Dakota", "Presidents", "Extra"],
            "proximity": "NEARBY",
            "nearbyLocation": "Keystone",
            "essay": "Carved between 1927 and 1941.",
        })

        assert isinstance(action, StartRound)
        assert action.letter == "M"
        assert action.hints == ("Granite", "Four faces", "South Dakota", "Presidents")
        assert action.proximity == Proximity.NEARBY
        assert action.nearby_location == "Keystone"

    def test_start_round_snake_case_and_bad_proximity(self):
        action = decode_action({
            "type": "start_round",
            "letter": "B",
            "answer": "Badlands",
            "nearby_location": "Wall",
            "proximity": "somewhere",
        })

        assert action.nearby_location == "Wall"
        assert action.proximity == Proximity.REGION
        assert action.hints == ()

    def test_register_player_variants(self):
        camel = decode_action({"type": "register_player", "name": "Sam", "isLeader": True})
        snake = decode_action({"type": "register_player", "name": "Alex", "is_leader": "true"})

        assert camel == RegisterPlayer(name="Sam", is_leader=True)
        assert snake == RegisterPlayer(name="Alex", is_leader=True)

    @pytest.mark.parametrize("points,expected", [(2, 2), ("3", 3), (None, 1), ("lots", 1), (True, 1)])
    def test_correct_guess_points(self, points, expected):
        action = decode_action({"type": "correct_guess", "player": "Sam", "points": points})

        assert isinstance(action, CorrectGuess)
        assert action.points == expected

    def test_reveal_hint_index_spellings(self):
        assert decode_action({"type": "reveal_hint", "hintIndex": 1}) == RevealHint(1)
        assert decode_action({"type": "reveal_hint", "hint_index": 2}) == RevealHint(2)
        assert decode_action({"type": "reveal_hint"}) == RevealHint(None)

    def test_type_is_case_insensitive(self):
        assert decode_action({"type": "END_GAME"}) == EndGame()

    def test_unknown_type(self):
        action = decode_action({"type": "dance", "actor": "Sam"})

        assert isinstance(action, UnknownAction)
        assert action.raw == {"type": "dance", "actor": "Sam"}
        assert action.actor == "Sam"

    @pytest.mark.parametrize("raw", ["start_round", 42, None, ["type"]])
    def test_non_object_is_unknown(self, raw):
        assert isinstance(decode_action(raw), UnknownAction)

    def test_bad_phase_decodes_to_none(self):
        assert decode_action({"type": "set_phase", "phase": "intermission"}) == SetPhase(None)
        assert decode_action({"type": "set_phase", "phase": "playing"}) == SetPhase(GamePhase.PLAYING)

    def test_actor_aliases(self):
        action = decode_action({"type": "reroll", "requestedBy": "Alex"})

        assert action.actor == "Alex"


class TestDecodeActions:
    """Decoding whole action lists."""

    def test_missing_list_is_no_action(self):
        assert decode_actions(None) == [NoAction()]
        assert decode_actions([]) == [NoAction()]
        assert decode_actions("start_round") == [NoAction()]

    def test_single_object_is_wrapped(self):
        assert decode_actions({"type": "reveal_answer"})[0].type.value == "reveal_answer"

    def test_order_preserved(self):
        actions = decode_actions([
            {"type": "correct_guess", "player": "Sam", "points": 2},
            {"type": "bogus"},
            {"type": "show_essay"},
        ])

        assert summarize(actions) == "correct_guess, unknown, show_essay"


def test_encode_action_uses_camel_case():
    action = decode_action({
        "type": "start_round",
        "letter": "G",
        "answer": "Golden Gate Bridge",
        "nearby_location": "San Francisco",
        "actor": "Sam",
    })

    data = encode_action(action)

    assert data["type"] == "start_round"
    assert data["nearbyLocation"] == "San Francisco"
    assert data["actor"] == "Sam"
    assert decode_action(data) == action
