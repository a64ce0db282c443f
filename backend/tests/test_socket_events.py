from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import socketio

from mathbattle.routers.auth import create_access_token
from mathbattle.routers.socket_events import register_socket_events
from mathbattle.services import battle_service


class FakeSio:
    """Collects handlers the way socketio.AsyncServer registers them."""

    def __init__(self):
        self.handlers = {}
        self.sessions = {}
        self.emit = AsyncMock()
        self.enter_room = AsyncMock()
        self.leave_room = AsyncMock()
        self.sleep = AsyncMock()
        self.start_background_task = MagicMock()

    def event(self, handler):
        self.handlers[handler.__name__] = handler
        return handler

    def on(self, name):
        def decorator(handler):
            self.handlers[name] = handler
            return handler
        return decorator

    async def save_session(self, sid, session):
        self.sessions[sid] = session

    async def get_session(self, sid):
        return self.sessions[sid]

    async def trigger(self, name, *args):
        return await self.handlers[name](*args)


@pytest.fixture
def sio():
    return FakeSio()


@pytest.fixture
def server(sio, hub, session_factory):
    register_socket_events(sio, hub, session_factory)
    return sio


def token_for(user):
    return create_access_token(user.username, user.id, timedelta(minutes=5))


async def connect(server, sid, user):
    await server.trigger("connect", sid, {}, {"token": token_for(user)})


def errors_to(server, sid):
    return [
        c.args[1]["message"]
        for c in server.emit.await_args_list
        if c.args[0] == "error" and c.kwargs.get("to") == sid
    ]


async def matched_battle(db, hub, creator, opponent, **kwargs):
    created = battle_service.create_battle(db, creator.id, number_of_rounds=3, **kwargs)
    await battle_service.join_battle(db, hub, opponent.id, created["battle_session"]["battle_code"])
    return created["battle_session"]["id"]


async def test_connect_without_token_is_refused(server):
    with pytest.raises(socketio.exceptions.ConnectionRefusedError):
        await server.trigger("connect", "sid-1", {}, None)


async def test_connect_with_bad_token_is_refused(server):
    with pytest.raises(socketio.exceptions.ConnectionRefusedError):
        await server.trigger("connect", "sid-1", {}, {"token": "not-a-jwt"})


async def test_connect_resumes_active_battle_rooms(server, hub, db, alice, bob):
    battle_id = await matched_battle(db, hub, alice, bob)
    finished = await matched_battle(db, hub, alice, bob)
    await battle_service.complete_battle(db, hub, alice.id, finished, 1.0)
    await battle_service.complete_battle(db, hub, bob.id, finished, 1.0)

    await connect(server, "sid-1", alice)

    assert hub.is_user_connected(alice.id)
    assert server.sessions["sid-1"] == {"user_id": str(alice.id), "username": "alice"}
    assert hub.get_battle_room_size(battle_id) == 1
    server.enter_room.assert_any_await("sid-1", f"battle_{battle_id}")
    assert server.enter_room.await_count == 1


async def test_connect_with_authorization_header(server, hub, alice):
    environ = {"HTTP_AUTHORIZATION": f"Bearer {token_for(alice)}"}

    await server.trigger("connect", "sid-1", environ)

    assert hub.is_user_connected(alice.id)


async def test_disconnect_drops_connection_and_rooms(server, hub, db, alice, bob):
    battle_id = await matched_battle(db, hub, alice, bob)
    await connect(server, "sid-1", alice)

    await server.trigger("disconnect", "sid-1")

    assert not hub.is_user_connected(alice.id)
    assert hub.get_battle_room_size(battle_id) == 0


async def test_join_public_battle_room(server, hub, db, alice, carol, events):
    battle_id = battle_service.create_battle(db, alice.id, number_of_rounds=3)["battle_session"]["id"]
    await connect(server, "sid-c", carol)

    await server.trigger("join-battle", "sid-c", {"battleId": str(battle_id)})

    assert hub.get_battle_room_size(battle_id) == 1
    joined = events("player-joined")
    assert joined == [{"userId": str(carol.id), "username": "carol", "battleId": str(battle_id)}]
    assert server.emit.await_args_list[-1].kwargs["skip_sid"] == "sid-c"


async def test_join_private_battle_as_outsider(server, hub, db, alice, bob, carol):
    battle_id = await matched_battle(db, hub, alice, bob, is_public=False)
    await connect(server, "sid-c", carol)

    await server.trigger("join-battle", "sid-c", {"battleId": str(battle_id)})

    assert errors_to(server, "sid-c") == ["Access denied to this private battle"]
    assert hub.get_battle_room_size(battle_id) == 0


async def test_join_unknown_or_malformed_battle(server, alice):
    await connect(server, "sid-1", alice)

    await server.trigger("join-battle", "sid-1", {"battleId": "nope"})
    await server.trigger("join-battle", "sid-1", {"battleId": "1b4e28ba-2fa1-11d2-883f-0016d3cca427"})

    assert errors_to(server, "sid-1") == ["Invalid battle id", "Battle not found"]


async def test_leave_battle_room(server, hub, db, alice, bob, events):
    battle_id = await matched_battle(db, hub, alice, bob)
    await connect(server, "sid-1", alice)

    await server.trigger("leave-battle", "sid-1", {"battleId": str(battle_id)})

    assert hub.get_battle_room_size(battle_id) == 0
    assert events("player-left")[0]["username"] == "alice"


async def test_submit_round_over_socket(server, hub, db, alice, bob, events):
    battle_id = await matched_battle(db, hub, alice, bob)
    await connect(server, "sid-1", alice)
    payload = {"battleId": str(battle_id), "roundNumber": "1", "userSymbol": "=", "responseTime": 1.5}

    await server.trigger("submit-round", "sid-1", payload)
    await server.trigger("submit-round", "sid-1", payload)

    submitted = events("round-submitted")
    assert len(submitted) == 1
    assert submitted[0]["roundNumber"] == 1
    assert submitted[0]["responseTime"] == 1.5
    assert errors_to(server, "sid-1") == ["You have already answered this round."]


async def test_submit_round_with_bad_symbol(server, hub, db, alice, bob):
    battle_id = await matched_battle(db, hub, alice, bob)
    await connect(server, "sid-1", alice)

    await server.trigger("submit-round", "sid-1", {"battleId": str(battle_id), "roundNumber": 1, "userSymbol": "?"})

    assert errors_to(server, "sid-1") == ["Invalid symbol. Must be >, <, or =."]


async def test_complete_over_socket(server, hub, db, alice, bob, events):
    battle_id = await matched_battle(db, hub, alice, bob)
    await connect(server, "sid-a", alice)
    await connect(server, "sid-b", bob)

    await server.trigger("complete-battle", "sid-a", {"battleId": str(battle_id), "totalTime": 4})
    await server.trigger("complete-battle", "sid-b", {"battleId": str(battle_id), "totalTime": 4})

    assert len(events("player-completed")) == 1
    finished = events("battle-completed")
    assert len(finished) == 1
    assert finished[0]["winner"]["username"] == "bob"


@pytest.mark.parametrize("field,value,message", [
    ("roundNumber", 2.9, "Round number must be an integer."),
    ("roundNumber", True, "Round number must be an integer."),
    ("responseTime", float("inf"), "Response time must be a finite number."),
    ("responseTime", float("nan"), "Response time must be a finite number."),
])
async def test_submit_round_rejects_malformed_numbers(server, hub, db, alice, bob, events, field, value, message):
    battle_id = await matched_battle(db, hub, alice, bob)
    await connect(server, "sid-1", alice)
    payload = {"battleId": str(battle_id), "roundNumber": 1, "userSymbol": ">", "responseTime": 1.0}
    payload[field] = value

    await server.trigger("submit-round", "sid-1", payload)

    assert errors_to(server, "sid-1") == [message]
    assert events("round-submitted") == []
    db.expire_all()
    assert all(r.creator_symbol is None for r in battle_service.load_battle(db, battle_id).rounds)


async def test_complete_rejects_non_finite_total_time(server, hub, db, alice, bob, events):
    battle_id = await matched_battle(db, hub, alice, bob)
    await connect(server, "sid-1", alice)

    await server.trigger("complete-battle", "sid-1", {"battleId": str(battle_id), "totalTime": float("nan")})

    assert errors_to(server, "sid-1") == ["Total time must be a finite number."]
    assert events("player-completed") == []
    db.expire_all()
    assert battle_service.load_battle(db, battle_id).creator_completed is False
