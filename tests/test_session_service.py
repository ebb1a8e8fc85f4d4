import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from focusguard.models.sessions import FocusSession
from focusguard.services import session_service
from focusguard.services.session_service import SessionService
from focusguard.utils.constants import (
    ANALYSIS_INTERVAL_SECONDS,
    INITIALIZING_SERVICE,
    ANALYZING_PRODUCTIVITY,
    WAITING_REASON,
    WAITING_FIRST_POINT_REASON,
)
from focusguard.utils.exceptions import SessionNotFound, InvalidPayload, SessionStoreError


@pytest.fixture
def clock(monkeypatch):
    """Deterministic utcnow: every call advances one second."""
    state = {"now": datetime(2026, 1, 5, 9, 0, 0)}

    def fake_utcnow():
        state["now"] += timedelta(seconds=1)
        return state["now"]

    monkeypatch.setattr(session_service, "utcnow", fake_utcnow)
    return state


def open_sessions(db, user):
    db.expire_all()
    return db.query(FocusSession).filter(
        FocusSession.user_id == user.user_id,
        FocusSession.end_time.is_(None),
    ).all()


def test_start_creates_placeholder(db, user):
    session = SessionService.start_session(db, user.user_id)

    assert len(session.session_id) == 32
    assert session.end_time is None
    assert session.focus_time == 0
    assert session.distraction_time == 0
    assert session.app_usage == {}
    assert session.latest_service == INITIALIZING_SERVICE
    assert session.latest_productivity == ANALYZING_PRODUCTIVITY
    assert session.latest_reason == WAITING_REASON


def test_start_closes_stale_session(db, user, clock, caplog):
    stale = SessionService.start_session(db, user.user_id)
    stale_id = stale.session_id

    fresh = SessionService.start_session(db, user.user_id)

    stale = db.get(FocusSession, stale_id)
    assert stale.end_time is not None
    assert stale.end_time <= fresh.start_time
    assert [s.session_id for s in open_sessions(db, user)] == [fresh.session_id]
    assert "stale session" in caplog.text


def test_start_only_touches_own_sessions(db, user, other_user):
    theirs = SessionService.start_session(db, other_user.user_id)
    SessionService.start_session(db, user.user_id)

    assert [s.session_id for s in open_sessions(db, other_user)] == [theirs.session_id]


def test_second_open_row_is_rejected_by_the_database(db, user):
    db.add(FocusSession(user_id=user.user_id, start_time=datetime(2026, 1, 5), app_usage={}))
    db.commit()

    db.add(FocusSession(user_id=user.user_id, start_time=datetime(2026, 1, 5), app_usage={}))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_concurrent_starts_leave_one_open_session(session_factory, db, user):
    user_id = user.user_id
    barrier = threading.Barrier(6)
    started, failures = [], []

    def worker():
        local = session_factory()
        try:
            barrier.wait()
            started.append(SessionService.start_session(local, user_id).session_id)
        except SessionStoreError as e:
            failures.append(e)
        finally:
            local.close()

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert started
    assert len(open_sessions(db, user)) == 1


def test_start_database_error_rolls_back(db, user, monkeypatch):
    stale = SessionService.start_session(db, user.user_id)
    stale_id = stale.session_id
    commits = []

    def locked():
        commits.append(True)
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", locked)
    with pytest.raises(SessionStoreError):
        SessionService.start_session(db, user.user_id)

    # Not retried, and the stale session was not left closed
    assert len(commits) == 1
    assert [s.session_id for s in open_sessions(db, user)] == [stale_id]

    monkeypatch.undo()
    fresh = SessionService.start_session(db, user.user_id)
    assert [s.session_id for s in open_sessions(db, user)] == [fresh.session_id]


def test_activate_restamps_start_time(db, user, clock):
    session = SessionService.start_session(db, user.user_id)
    placeholder_start = session.start_time

    activated = SessionService.activate_session(db, session.session_id, user.user_id)

    assert activated.start_time > placeholder_start
    assert activated.end_time is None
    assert activated.focus_time == 0
    assert activated.distraction_time == 0
    assert activated.app_usage == {}


def test_activate_rejects_closed_and_foreign_sessions(db, user, other_user):
    session = SessionService.start_session(db, user.user_id)

    with pytest.raises(SessionNotFound):
        SessionService.activate_session(db, session.session_id, other_user.user_id)

    SessionService.stop_session(db, session.session_id, user.user_id)
    with pytest.raises(SessionNotFound):
        SessionService.activate_session(db, session.session_id, user.user_id)

    with pytest.raises(SessionNotFound):
        SessionService.activate_session(db, "does-not-exist", user.user_id)


def test_record_data_accumulates_session_and_user(db, user):
    session = SessionService.start_session(db, user.user_id)
    SessionService.activate_session(db, session.session_id, user.user_id)

    points = [
        (True, "Code.exe", "Editing source code"),
        (False, "YouTube", "Watching videos"),
        (True, "Code.exe", "Reading docs"),
        (True, "Code.exe", "Running tests"),
        (False, "YouTube", "Watching videos"),
        (True, "$Recycle.Bin", "Cleaning up"),
    ]
    for focus, app_name, activity in points:
        SessionService.record_session_data(
            db, session.session_id, user.user_id, focus=focus, app_name=app_name, activity=activity
        )

    db.expire_all()
    session = db.get(FocusSession, session.session_id)
    assert session.focus_time == 4 * ANALYSIS_INTERVAL_SECONDS
    assert session.distraction_time == 2 * ANALYSIS_INTERVAL_SECONDS
    assert session.focus_time + session.distraction_time == len(points) * ANALYSIS_INTERVAL_SECONDS
    assert session.app_usage == {
        "Code_exe": 3 * ANALYSIS_INTERVAL_SECONDS,
        "YouTube": 2 * ANALYSIS_INTERVAL_SECONDS,
        "_$Recycle_Bin": ANALYSIS_INTERVAL_SECONDS,
    }

    assert user.total_focus_time == session.focus_time
    assert user.total_distraction_time == session.distraction_time
    assert user.app_usage == session.app_usage

    # Raw name for display, last write wins
    assert session.latest_service == "$Recycle.Bin"
    assert session.latest_productivity == "Productive"
    assert session.latest_reason == "Cleaning up"
    assert session.latest_timestamp is not None


def test_record_data_adds_to_existing_lifetime_totals(db, user):
    user.total_focus_time = 100
    user.app_usage = {"Code_exe": 100}
    db.commit()

    session = SessionService.start_session(db, user.user_id)
    SessionService.record_session_data(
        db, session.session_id, user.user_id, focus=True, app_name="Code.exe", activity="Typing"
    )

    db.expire_all()
    assert user.total_focus_time == 100 + ANALYSIS_INTERVAL_SECONDS
    assert user.app_usage["Code_exe"] == 100 + ANALYSIS_INTERVAL_SECONDS


def test_record_data_on_closed_session_writes_nothing(db, user):
    session = SessionService.start_session(db, user.user_id)
    SessionService.stop_session(db, session.session_id, user.user_id)

    with pytest.raises(SessionNotFound):
        SessionService.record_session_data(
            db, session.session_id, user.user_id, focus=True, app_name="Code.exe", activity="Typing"
        )

    db.expire_all()
    session = db.get(FocusSession, session.session_id)
    assert session.focus_time == 0
    assert session.app_usage == {}
    assert user.total_focus_time == 0
    assert user.app_usage == {}


def test_record_data_on_foreign_session_is_not_found(db, user, other_user):
    session = SessionService.start_session(db, user.user_id)

    with pytest.raises(SessionNotFound):
        SessionService.record_session_data(
            db, session.session_id, other_user.user_id, focus=True, app_name="Code.exe", activity="x"
        )


@pytest.mark.parametrize(
    "focus, app_name, activity",
    [
        ("true", "Code.exe", "Typing"),
        (1, "Code.exe", "Typing"),
        (True, "", "Typing"),
        (True, None, "Typing"),
        (False, "Code.exe", None),
    ],
)
def test_record_data_rejects_invalid_payload(db, user, focus, app_name, activity):
    session = SessionService.start_session(db, user.user_id)

    with pytest.raises(InvalidPayload):
        SessionService.record_session_data(
            db, session.session_id, user.user_id, focus=focus, app_name=app_name, activity=activity
        )

    db.expire_all()
    assert db.get(FocusSession, session.session_id).focus_time == 0


def test_stop_closes_session_once(db, user, clock):
    session = SessionService.start_session(db, user.user_id)

    stopped = SessionService.stop_session(db, session.session_id, user.user_id)
    assert stopped.end_time is not None
    assert stopped.end_time >= stopped.start_time
    assert open_sessions(db, user) == []

    with pytest.raises(SessionNotFound):
        SessionService.stop_session(db, session.session_id, user.user_id)


def test_current_session(db, user):
    with pytest.raises(SessionNotFound):
        SessionService.get_current_session(db, user.user_id)

    session = SessionService.start_session(db, user.user_id)
    assert SessionService.get_current_session(db, user.user_id).session_id == session.session_id


def test_live_status_placeholder_then_latest(db, user):
    with pytest.raises(SessionNotFound):
        SessionService.get_live_status(db, user.user_id)

    session = SessionService.start_session(db, user.user_id)
    status = SessionService.get_live_status(db, user.user_id)
    assert status["service"] == INITIALIZING_SERVICE
    assert status["productivity"] == ANALYZING_PRODUCTIVITY
    assert status["reason"] == WAITING_FIRST_POINT_REASON
    assert isinstance(status["timestamp"], datetime)

    SessionService.record_session_data(
        db, session.session_id, user.user_id, focus=False, app_name="YouTube", activity="Watching"
    )
    status = SessionService.get_live_status(db, user.user_id)
    assert status["service"] == "YouTube"
    assert status["productivity"] == "Unproductive"
    assert status["reason"] == "Watching"


def test_get_session_checks_owner(db, user, other_user):
    session = SessionService.start_session(db, user.user_id)

    assert SessionService.get_session(db, session.session_id, user.user_id) is session
    with pytest.raises(SessionNotFound):
        SessionService.get_session(db, session.session_id, other_user.user_id)


def test_history_newest_first(db, user, clock):
    first = SessionService.start_session(db, user.user_id)
    second = SessionService.start_session(db, user.user_id)
    third = SessionService.start_session(db, user.user_id)

    history = SessionService.get_session_history(db, user.user_id)

    assert [s.session_id for s in history] == [third.session_id, second.session_id, first.session_id]


def test_user_stats_restores_app_names(db, user):
    user.total_focus_time = 30
    user.total_distraction_time = 10
    user.app_usage = {"Code_exe": 25, "_$Recycle_Bin": 15}
    db.commit()

    stats = SessionService.get_user_stats(user)

    assert stats == {
        "total_focus_time": 30,
        "total_distraction_time": 10,
        "app_usage": {"Code.exe": 25, "$Recycle.Bin": 15},
    }
