"""Tests for game master reply parsing."""

from src.roadtrip.agents.response_parser import (
    ParseStage,
    StreamingSpeechExtractor,
    extract_speech,
    parse_agent_response,
)
from src.roadtrip.core.actions import CorrectGuess, NoAction


class TestParseAgentResponse:
    """The three-step fallback chain."""

    def test_plain_json(self):
        parsed = parse_agent_response(
            '{"speech":"Nice!","actions":[{"type":"correct_guess","player":"Sam","points":2}]}'
        )

        assert parsed.stage == ParseStage.JSON
        assert parsed.speech == "Nice!"
        assert parsed.actions == [CorrectGuess(player="Sam", points=2)]

    def test_json_inside_chatter(self):
        text = 'Sure thing!\n```json\n{"speech": "Round two!", "actions": []}\n```'

        parsed = parse_agent_response(text)

        assert parsed.stage == ParseStage.BRACES
        assert parsed.speech == "Round two!"
        assert parsed.actions == [NoAction()]

    def test_raw_text_fallback(self):
        parsed = parse_agent_response("  I think the answer is Paris.  ")

        assert parsed.stage == ParseStage.RAW
        assert parsed.speech == "I think the answer is Paris."
        assert parsed.actions == [NoAction()]

    def test_invalid_braces_fall_back_to_raw(self):
        parsed = parse_agent_response("Use {curly} braces {wisely")

        assert parsed.stage == ParseStage.RAW
        assert parsed.speech == "Use {curly} braces {wisely"

    def test_json_array_is_not_a_reply(self):
        assert parse_agent_response("[1, 2]").stage == ParseStage.RAW

    def test_missing_fields_default(self):
        no_speech = parse_agent_response('{"actions":[{"type":"reveal_answer"}]}')
        no_actions = parse_agent_response('{"speech":"Hmm."}')

        assert no_speech.speech == ""
        assert no_speech.actions[0].type.value == "reveal_answer"
        assert no_actions.actions == [NoAction()]

    def test_non_string_speech_is_coerced(self):
        assert parse_agent_response('{"speech": 42}').speech == "42"

    def test_empty_input(self):
        parsed = parse_agent_response("")

        assert parsed.speech == ""
        assert parsed.actions == [NoAction()]


class TestStreamingSpeechExtractor:
    """Speech extraction from partial JSON."""

    def test_unterminated_value_yields_nothing(self):
        """The closing quote is not trusted until a structural character follows it."""
        assert extract_speech('{"speech":"Hello \\"friend\\""') is None

    def test_escaped_quotes_decoded(self):
        assert extract_speech('{"speech":"Hello \\"friend\\"","actions":[]}') == 'Hello "friend"'

    def test_speech_as_last_field(self):
        assert extract_speech('{"actions": [], "speech" : "Bye!"}') == "Bye!"

    def test_no_speech_key(self):
        assert extract_speech('{"actions":[{"type":"no_action"}]}') is None

    def test_character_by_character_feed_returns_once(self):
        text = '{"speech":"Caf\\u00e9 stop, line two\\nend","actions":[]}'
        extractor = StreamingSpeechExtractor()

        results = [extractor.feed(char) for char in text]
        found = [r for r in results if r is not None]

        assert found == ["Café stop, line two\nend"]
        assert extractor.done
        assert extractor.speech == "Café stop, line two\nend"

    def test_escape_split_across_chunks(self):
        extractor = StreamingSpeechExtractor()

        assert extractor.feed('{"speech":"say \\') is None
        assert extractor.feed('"hi\\"') is None
        assert extractor.feed('",') == 'say "hi"'

    def test_malformed_follower_gives_up(self):
        extractor = StreamingSpeechExtractor()

        assert extractor.feed('{"speech":"oops" "actions"') is None
        assert extractor.done
        assert extractor.speech is None
        assert extractor.feed("}") is None
