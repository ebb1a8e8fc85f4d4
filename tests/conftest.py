import os
import threading

# Never touch a real database from the test suite
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import null
from sqlalchemy.orm import sessionmaker

from focusguard.database import Base, build_engine, get_db
from focusguard.main import app
from focusguard.models.sessions import FocusSession
from focusguard.models.users import User
from focusguard.utils.jwt import create_access_token
from focusguard_desktop.errors import EngineProcessError, SessionNotFound


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'focusguard.db'}")
    Base.metadata.create_all(bind=engine)
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


def make_user(db, email, name=None):
    user = User(email=email, name=name, total_focus_time=0, total_distraction_time=0, app_usage={})
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_closed_session(db, user, start_time, focus_time=0, distraction_time=0, app_usage=None):
    session = FocusSession(
        user_id=user.user_id,
        start_time=start_time,
        end_time=start_time,
        focus_time=focus_time,
        distraction_time=distraction_time,
        app_usage=app_usage or {},
        is_open=null(),
    )
    db.add(session)
    db.commit()
    return session


@pytest.fixture
def user(db):
    return make_user(db, "ada@example.com", "Ada")


@pytest.fixture
def other_user(db):
    return make_user(db, "grace@example.com", "Grace")


def bearer(user):
    token = create_access_token({"sub": str(user.user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(user):
    return bearer(user)


@pytest.fixture
def other_headers(other_user):
    return bearer(other_user)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# --------------------------------------------------------------------------- #
# Desktop fakes
# --------------------------------------------------------------------------- #

class FakeSupervisor:
    """Stands in for EngineSupervisor; events are fired by the test."""

    def __init__(self, fail=False):
        self.fail = fail
        self.listeners = []
        self.started = []
        self.stop_calls = 0

    def add_listener(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    async def start(self, session_id, token):
        if self.fail:
            raise EngineProcessError("engine executable not found")
        self.started.append((session_id, token))

    def stop(self):
        self.stop_calls += 1

    def emit(self, event, session_id):
        for listener in list(self.listeners):
            listener(event, session_id)


class FakeAPI:
    """Synchronous stand-in for FocusGuardAPI."""

    def __init__(self):
        self.token = "token-123"
        self.calls = []
        self.errors = {}
        self.current = None
        self.live = {
            "service": "Code.exe",
            "productivity": "Productive",
            "reason": "Editing source code",
            "timestamp": "2026-01-05T10:00:00",
        }
        self.session_id = "a" * 32
        # Set to a threading.Event to hold activate_session until the test releases it
        self.activate_gate = None
        self.activate_entered = threading.Event()

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        error = self.errors.get(name)
        if error is not None:
            raise error

    def _session(self, **extra):
        session = {
            "id": self.session_id,
            "startTime": datetime.now(timezone.utc).replace(tzinfo=None).isoformat(),
            "endTime": None,
            "focusTime": 0,
            "distractionTime": 0,
        }
        session.update(extra)
        return session

    def start_session(self):
        self._call("start_session")
        return self._session()

    def activate_session(self, session_id):
        self.activate_entered.set()
        if self.activate_gate is not None:
            self.activate_gate.wait(timeout=10)
        self._call("activate_session", session_id)
        return self._session()

    def stop_session(self, session_id):
        self._call("stop_session", session_id)
        return self._session(endTime=datetime.now(timezone.utc).replace(tzinfo=None).isoformat())

    def current_session(self):
        self._call("current_session")
        if self.current is None:
            raise SessionNotFound("No active session found", 404)
        return self.current

    def live_status(self):
        self._call("live_status")
        return self.live

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def fake_supervisor():
    return FakeSupervisor()


@pytest.fixture
def fake_api():
    return FakeAPI()
