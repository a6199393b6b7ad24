import pytest
from sqlalchemy import update
from sqlmodel import Session

from jobelix.errors import ActiveSessionExists, SessionConflict, SessionNotFound
from jobelix.models.bot_session import BotSession
from jobelix.services import bot_sessions


def _concurrent_write(real_get, status: str):
    """Wrap get_owned_session so another writer moves the row to ``status``
    right after the first read, which still sees the session as running."""
    calls = []

    def wrapper(db: Session, session_id: str, user_id: int) -> BotSession:
        calls.append(session_id)
        current = real_get(db, session_id, user_id)
        if len(calls) > 1:
            return current
        db.exec(
            update(BotSession)
            .where(BotSession.id == session_id)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return BotSession(id=session_id, user_id=user_id, status="running")

    return wrapper


def test_counter_values_filters_non_numeric():
    values = bot_sessions._counter_values(
        {
            "jobs_found": 3,
            "jobs_applied": 2.0,
            "jobs_failed": None,
            "credits_used": False,
        }
    )
    assert values == {"jobs_found": 3, "jobs_applied": 2}


def test_counter_values_rejects_non_finite():
    assert bot_sessions._counter_values({"jobs_found": float("inf")}) == {}


def test_counter_values_rejects_out_of_range():
    values = bot_sessions._counter_values(
        {"jobs_found": 10**20, "jobs_applied": 1e300, "credits_used": 2**63 - 1}
    )
    assert values == {"credits_used": 2**63 - 1}


def test_counter_values_non_dict():
    assert bot_sessions._counter_values(None) == {}
    assert bot_sessions._counter_values("3") == {}


def test_start_session_rejects_existing_active(session: Session, user, make_bot_session):
    running = make_bot_session(user, status="running")
    with pytest.raises(ActiveSessionExists) as excinfo:
        bot_sessions.start_session(session, user.id)
    assert excinfo.value.session_id == running.id


def test_get_owned_session_filters_by_user(session: Session, user, other_user, make_bot_session):
    foreign = make_bot_session(other_user)
    with pytest.raises(SessionNotFound):
        bot_sessions.get_owned_session(session, foreign.id, user.id)


def test_heartbeat_losing_race_to_stop_reports_stopped(
    session: Session, user, make_bot_session, monkeypatch
):
    bot_session = make_bot_session(user, status="running")
    monkeypatch.setattr(
        bot_sessions,
        "get_owned_session",
        _concurrent_write(bot_sessions.get_owned_session, "stopped"),
    )

    with pytest.raises(SessionConflict) as excinfo:
        bot_sessions.record_heartbeat(
            session, bot_session.id, user.id, stats={"jobs_found": 9}
        )
    assert excinfo.value.stopped is True

    session.refresh(bot_session)
    assert bot_session.status == "stopped"
    assert bot_session.jobs_found == 0


def test_complete_losing_race_to_complete_reports_completed(
    session: Session, user, make_bot_session, monkeypatch
):
    bot_session = make_bot_session(user, status="running")
    monkeypatch.setattr(
        bot_sessions,
        "get_owned_session",
        _concurrent_write(bot_sessions.get_owned_session, "completed"),
    )

    with pytest.raises(SessionConflict) as excinfo:
        bot_sessions.complete_session(
            session, bot_session.id, user.id, success=False, error_message="late"
        )
    assert excinfo.value.completed is True

    session.refresh(bot_session)
    assert bot_session.status == "completed"
    assert bot_session.error_message is None


def test_stop_losing_race_to_stop_is_still_success(
    session: Session, user, make_bot_session, monkeypatch
):
    bot_session = make_bot_session(user, status="running")
    monkeypatch.setattr(
        bot_sessions,
        "get_owned_session",
        _concurrent_write(bot_sessions.get_owned_session, "stopped"),
    )

    message = bot_sessions.stop_session(session, bot_session.id, user.id)
    assert message == "Session already stopped"


def test_stop_losing_race_to_completion_conflicts(
    session: Session, user, make_bot_session, monkeypatch
):
    bot_session = make_bot_session(user, status="running")
    monkeypatch.setattr(
        bot_sessions,
        "get_owned_session",
        _concurrent_write(bot_sessions.get_owned_session, "completed"),
    )

    with pytest.raises(SessionConflict):
        bot_sessions.stop_session(session, bot_session.id, user.id)


def test_historical_totals_empty(session: Session, user):
    assert bot_sessions.historical_totals(session, user.id) == {
        "jobs_found": 0,
        "jobs_applied": 0,
        "jobs_failed": 0,
        "credits_used": 0,
    }
