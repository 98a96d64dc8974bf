"""Tests for the game master clients and prompt building."""

import asyncio
import json

import pytest
from aiohttp import test_utils, web
from conftest import FakeAnthropic, connection_error
from src.roadtrip.agents.game_master import (
    NDJSON_CONTENT_TYPE,
    AgentRequest,
    AnthropicGameMaster,
    GameMasterError,
    HttpGameMaster,
    _RecordReader,
    build_messages,
    stream_game_master,
)
from src.roadtrip.agents.prompts.gm_templates import GMPrompts
from src.roadtrip.agents.response_parser import ParseStage
from src.roadtrip.core.actions import CorrectGuess, NoAction, StartRound
from src.roadtrip.services.credit_ledger import InsufficientCreditsError, UserNotFoundError


def _request(**kwargs):
    defaults = {"transcript": "Is it the Golden Gate Bridge?", "game_state": {"phase": "playing"}}
    defaults.update(kwargs)
    return AgentRequest(**defaults)


class TestRecordReader:
    """Assembling replies from NDJSON records."""

    def test_speech_then_complete(self):
        heard = []
        reader = _RecordReader(heard.append)

        reader.handle({"type": "speech", "speech": "Nice!"})
        reader.handle({"type": "speech", "speech": "Nice again!"})
        reader.handle({
            "type": "complete",
            "speech": "Nice!",
            "actions": [{"type": "correct_guess", "player": "Sam", "points": 2}],
            "remainingCredits": 37,
        })

        response = reader.result()
        assert heard == ["Nice!"]
        assert response.actions == [CorrectGuess(player="Sam", points=2)]
        assert response.remaining_credits == 37

    def test_error_record_raises(self):
        reader = _RecordReader(None)

        with pytest.raises(GameMasterError, match="model overloaded"):
            reader.handle({"type": "error", "speech": "Sorry!", "error": "model overloaded"})

    def test_missing_complete_record(self):
        reader = _RecordReader(None)
        reader.handle({"type": "speech", "speech": "Hi"})
        reader.handle({"type": "heartbeat"})

        with pytest.raises(GameMasterError):
            reader.result()


def test_request_wire_format():
    request = _request(conversation_history=[{"role": "user", "content": "Hi"}], user_id="u1")

    assert request.to_wire() == {
        "userId": "u1",
        "gameState": {"phase": "playing"},
        "conversationHistory": [{"role": "user", "content": "Hi"}],
        "transcript": "Is it the Golden Gate Bridge?",
    }


def test_build_messages_limits_history():
    history = [{"role": "user" if i % 2 == 0 else "assistant", "content": str(i)} for i in range(20)]

    messages = build_messages(history, {"phase": "playing", "roundNumber": 2}, "Hint please")

    assert len(messages) == 13
    assert messages[0]["content"] == "8"
    assert messages[-1]["role"] == "user"
    assert "Phase: playing | Round: 2" in messages[-1]["content"]
    assert messages[-1]["content"].endswith('"Hint please"')


def test_state_description_strips_essay_and_describes_location():
    text = GMPrompts.state_description(
        {
            "currentRound": {"letter": "G", "essay": "Long essay text"},
            "location": {"latitude": 37.8, "longitude": -122.4, "city": "Sausalito", "region": "California"},
        },
        None,
    )

    assert "Long essay text" not in text
    assert "Players are near Sausalito, California" in text
    assert GMPrompts.location_context({"latitude": 1.5, "longitude": 2.5}) == "Players at GPS: 1.5, 2.5."
    assert GMPrompts.location_context(None) == "Unknown"


class TestAnthropicGameMaster:
    """Direct Claude calls through a fake streaming client."""

    def test_streams_speech_before_completion(self):
        async def scenario():
            reply = '{"speech":"I spy something orange!","actions":[{"type":"start_round","letter":"G","answer":"Golden Gate Bridge"}]}'
            client = FakeAnthropic([reply])
            game_master = AnthropicGameMaster(model="test-model", max_tokens=100, client=client)
            heard = []

            response = await game_master.respond(_request(), heard.append)

            assert heard == ["I spy something orange!"]
            assert response.speech == "I spy something orange!"
            assert isinstance(response.actions[0], StartRound)
            assert client.calls[0]["model"] == "test-model"
            assert client.calls[0]["system"] == GMPrompts.SYSTEM_PROMPT

        asyncio.run(scenario())

    def test_raw_reply(self):
        async def scenario():
            game_master = AnthropicGameMaster(client=FakeAnthropic(["Paris, obviously."]))

            response = await game_master.respond(_request())

            assert response.speech == "Paris, obviously."
            assert response.actions == [NoAction()]

        asyncio.run(scenario())

    def test_api_error_becomes_game_master_error(self):
        async def scenario():
            game_master = AnthropicGameMaster(client=FakeAnthropic([connection_error()]))

            with pytest.raises(GameMasterError):
                await game_master.respond(_request())

        asyncio.run(scenario())

    def test_close(self):
        async def scenario():
            client = FakeAnthropic()
            await AnthropicGameMaster(client=client).close()
            assert client.closed

        asyncio.run(scenario())


def test_stream_records_encode_actions():
    async def scenario():
        client = FakeAnthropic(['{"speech":"Nice!","actions":[{"type":"correct_guess","player":"Sam"}]}'])
        records = [r async for r in stream_game_master(client, [], "m", 10)]

        assert records[0] == {"type": "speech", "speech": "Nice!"}
        assert records[-1]["type"] == "complete"
        assert records[-1]["actions"] == [{"type": "correct_guess", "player": "Sam", "points": 1}]

    asyncio.run(scenario())


async def _serve(handler):
    app = web.Application()
    app.router.add_post("/api/gamemaster", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


class TestHttpGameMaster:
    """Hosted handler client against a local aiohttp server."""

    def test_ndjson_stream(self):
        async def scenario():
            received = []

            async def handler(request):
                received.append(await request.json())
                response = web.StreamResponse()
                response.content_type = NDJSON_CONTENT_TYPE
                await response.prepare(request)
                await response.write(b'{"type":"speech","speech":"Nice!"}\n')
                await response.write(b"not json\n\n")
                complete = {
                    "type": "complete",
                    "speech": "Nice!",
                    "actions": [{"type": "correct_guess", "player": "Sam", "points": 2}],
                    "remainingCredits": "unlimited",
                }
                await response.write(json.dumps(complete).encode("utf-8") + b"\n")
                await response.write_eof()
                return response

            server = await _serve(handler)
            game_master = HttpGameMaster(str(server.make_url("/")))
            heard = []
            try:
                response = await game_master.respond(_request(user_id="u1"), heard.append)
            finally:
                await game_master.close()
                await server.close()

            assert heard == ["Nice!"]
            assert response.actions == [CorrectGuess(player="Sam", points=2)]
            assert response.remaining_credits == "unlimited"
            assert received[0]["userId"] == "u1"
            assert received[0]["transcript"] == "Is it the Golden Gate Bridge?"

        asyncio.run(scenario())

    def test_undecodable_stream_bytes_are_replaced(self):
        """A Latin-1 byte in a record does not abort the turn."""
        async def scenario():
            async def handler(request):
                response = web.StreamResponse()
                response.content_type = NDJSON_CONTENT_TYPE
                await response.prepare(request)
                await response.write(b'{"type":"speech","speech":"caf\xe9"}\n')
                await response.write(b'{"type":"complete","speech":"Cafe time!","actions":[]}\n')
                await response.write_eof()
                return response

            server = await _serve(handler)
            game_master = HttpGameMaster(str(server.make_url("/")))
            heard = []
            try:
                response = await game_master.respond(_request(), heard.append)
            finally:
                await game_master.close()
                await server.close()

            assert heard == ["caf\ufffd"]
            assert response.speech == "Cafe time!"

        asyncio.run(scenario())

    def test_undecodable_plain_body(self):
        async def scenario():
            async def handler(request):
                return web.Response(
                    body=b"Bienvenue au caf\xe9!", headers={"Content-Type": "text/plain; charset=utf-8"}
                )

            server = await _serve(handler)
            game_master = HttpGameMaster(str(server.make_url("/")))
            try:
                response = await game_master.respond(_request())
            finally:
                await game_master.close()
                await server.close()

            assert response.speech == "Bienvenue au caf\ufffd!"
            assert response.stage == ParseStage.RAW
            assert response.actions == [NoAction()]

        asyncio.run(scenario())

    def test_plain_body_uses_parse_chain(self):
        async def scenario():
            async def handler(request):
                return web.Response(text='Here you go: {"speech":"Hi!","actions":[]}', content_type="text/plain")

            server = await _serve(handler)
            game_master = HttpGameMaster(str(server.make_url("/")))
            try:
                response = await game_master.respond(_request())
            finally:
                await game_master.close()
                await server.close()

            assert response.speech == "Hi!"
            assert response.stage == ParseStage.BRACES

        asyncio.run(scenario())

    def test_insufficient_credits(self):
        async def scenario():
            async def handler(request):
                return web.json_response(
                    {"error": "Insufficient credits", "credits": 2, "required": 10}, status=402
                )

            server = await _serve(handler)
            game_master = HttpGameMaster(str(server.make_url("/")))
            try:
                with pytest.raises(InsufficientCreditsError) as excinfo:
                    await game_master.respond(_request())
            finally:
                await game_master.close()
                await server.close()

            assert excinfo.value.credits == 2
            assert excinfo.value.required == 10

        asyncio.run(scenario())

    def test_unknown_user(self):
        async def scenario():
            async def handler(request):
                return web.json_response({"error": "User not found"}, status=401)

            server = await _serve(handler)
            game_master = HttpGameMaster(str(server.make_url("/")))
            try:
                with pytest.raises(UserNotFoundError):
                    await game_master.respond(_request(user_id="ghost"))
            finally:
                await game_master.close()
                await server.close()

        asyncio.run(scenario())

    def test_server_error(self):
        async def scenario():
            async def handler(request):
                return web.Response(status=500, text="boom")

            server = await _serve(handler)
            game_master = HttpGameMaster(str(server.make_url("/")))
            try:
                with pytest.raises(GameMasterError) as excinfo:
                    await game_master.respond(_request())
            finally:
                await game_master.close()
                await server.close()

            assert excinfo.value.status_code == 500

        asyncio.run(scenario())

    def test_unreachable_server(self):
        async def scenario():
            game_master = HttpGameMaster("http://127.0.0.1:1", timeout=2.0)
            try:
                with pytest.raises(GameMasterError):
                    await game_master.respond(_request())
            finally:
                await game_master.close()

        asyncio.run(scenario())
