import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CREATE_TABLES", "false")

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mathbattle.db import Base, get_db
from mathbattle.main import create_app
from mathbattle.models.battle_round_details import BattleRoundDetail
from mathbattle.models.battle_sessions import BattleSession
from mathbattle.models.users import User
from mathbattle.routers.auth import create_access_token
from mathbattle.routers.battle_router import get_hub
from mathbattle.services.realtime_hub import RealtimeHub


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_sio():
    sio = MagicMock()
    sio.emit = AsyncMock()
    sio.enter_room = AsyncMock()
    sio.leave_room = AsyncMock()
    sio.sleep = AsyncMock()
    return sio


@pytest.fixture
def sio():
    return make_sio()


@pytest.fixture
def hub(sio):
    return RealtimeHub(sio, countdown_from=3, countdown_interval=0)


def emitted(sio, event):
    """Payloads of every `event` sent through the mocked server."""
    return [c.args[1] for c in sio.emit.await_args_list if c.args[0] == event]


@pytest.fixture
def events(sio):
    return lambda event: emitted(sio, event)


@pytest.fixture
def make_user(db):
    def _make(username, **kwargs):
        user = User(username=username, password="x", full_name=username.title(), **kwargs)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


def auth_headers(user):
    token = create_access_token(user.username, user.id, timedelta(minutes=5))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(session_factory, hub):
    app = create_app(session_factory=session_factory, create_tables=False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_hub] = lambda: hub
    return TestClient(app)


class BattleDriver:
    """Drives battles through the HTTP API."""

    def __init__(self, client, db):
        self.client = client
        self.db = db

    def create(self, user, **body):
        return self.client.post("/battle/create", json=body, headers=auth_headers(user))

    def create_ok(self, user, **body):
        response = self.create(user, **body)
        assert response.status_code == 201, response.text
        return response.json()

    def join(self, user, code):
        return self.client.post("/battle/join", json={"battle_code": code}, headers=auth_headers(user))

    def start(self, user, battle_id):
        return self.client.post("/battle/start", json={"battle_id": battle_id}, headers=auth_headers(user))

    def submit(self, user, battle_id, round_number, symbol, response_time=None):
        body = {
            "battle_session_id": battle_id,
            "round_number": round_number,
            "user_symbol": symbol,
        }
        if response_time is not None:
            body["response_time"] = response_time
        return self.client.post("/battle/submit-round", json=body, headers=auth_headers(user))

    def complete(self, user, battle_id, total_time=None):
        body = {"battle_session_id": battle_id}
        if total_time is not None:
            body["total_time"] = total_time
        return self.client.post("/battle/complete", json=body, headers=auth_headers(user))

    def get(self, user, battle_id):
        return self.client.get(f"/battle/{battle_id}", headers=auth_headers(user))

    def matched(self, creator, opponent, **body):
        """Created battle with an opponent already joined."""
        created = self.create_ok(creator, **body)
        response = self.join(opponent, created["battle_session"]["battle_code"])
        assert response.status_code == 200, response.text
        return created["battle_session"]["id"]

    def rounds(self, battle_id):
        self.db.expire_all()
        return (
            self.db.query(BattleRoundDetail)
            .join(BattleSession)
            .filter(BattleSession.id == _uuid(battle_id))
            .order_by(BattleRoundDetail.round_number)
            .all()
        )

    def battle(self, battle_id):
        self.db.expire_all()
        return self.db.get(BattleSession, _uuid(battle_id))

    def correct_symbol(self, battle_id, round_number):
        return self.rounds(battle_id)[round_number - 1].correct_symbol

    def wrong_symbol(self, battle_id, round_number):
        correct = self.correct_symbol(battle_id, round_number)
        return next(s for s in (">", "<", "=") if s != correct)

    def rig_round(self, battle_id, round_number, first, second, symbol):
        battle_round = self.rounds(battle_id)[round_number - 1]
        battle_round.first_number = first
        battle_round.second_number = second
        battle_round.correct_symbol = symbol
        self.db.commit()


def _uuid(value):
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


@pytest.fixture
def battles(client, db):
    return BattleDriver(client, db)
