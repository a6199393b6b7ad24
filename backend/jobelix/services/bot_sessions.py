"""Bot session lifecycle: start, heartbeat, complete, stop and status.

Every transition out of an active status is a single conditional UPDATE
filtered on ``status IN (starting, running)``. A row count of zero means
another request moved the session to a terminal status first; the row is then
re-read and the conflict reported against the status that won.

Cancellation is cooperative: stop only flips the status, and the automation
process finds out on its next heartbeat (409 ``stopped``) and exits.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, update
from sqlmodel import Session, select

from jobelix.errors import ActiveSessionExists, SessionConflict, SessionNotFound
from jobelix.models.bot_session import (
    ACTIVE_STATUSES,
    COMPLETED,
    COUNTER_FIELDS,
    FAILED,
    RUNNING,
    STARTING,
    STOPPED,
    TERMINAL_STATUSES,
    BotSession,
)

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Stopped by user"

# Sessions counted in lifetime totals. ``failed`` runs are left out, which
# may not be intended; pending product sign-off before changing it.
TOTALS_STATUSES = (COMPLETED, STOPPED)

MAX_COUNTER = 2**63 - 1


def _short(session_id: str) -> str:
    return session_id[:8]


def _counter_values(stats: Any) -> dict[str, int]:
    """Pick the counters the bot reported.

    Non-numeric, negative and out-of-range values are ignored. Counters are
    stored as 64-bit integers, so anything above MAX_COUNTER cannot be written.
    """
    if not isinstance(stats, dict):
        return {}
    values = {}
    for field in COUNTER_FIELDS:
        value = stats.get(field)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value) or value < 0 or value > MAX_COUNTER:
            continue
        values[field] = int(value)
    return values


def _conflict_for(status: str) -> SessionConflict:
    if status == STOPPED:
        return SessionConflict("Session has been stopped by user", stopped=True)
    return SessionConflict("Session already completed", completed=True)


def get_owned_session(db: Session, session_id: str, user_id: int) -> BotSession:
    bot_session = db.exec(
        select(BotSession).where(
            BotSession.id == session_id, BotSession.user_id == user_id
        )
    ).first()
    if not bot_session:
        raise SessionNotFound(session_id)
    return bot_session


def _update_if_active(
    db: Session, session_id: str, user_id: int, values: dict[str, Any]
) -> bool:
    result = db.exec(
        update(BotSession)
        .where(
            BotSession.id == session_id,
            BotSession.user_id == user_id,
            BotSession.status.in_(ACTIVE_STATUSES),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    applied = result.rowcount == 1
    db.commit()
    return applied


def _lost_race(db: Session, session_id: str, user_id: int) -> SessionConflict:
    current = get_owned_session(db, session_id, user_id)
    logger.info(
        f"Session {_short(session_id)} moved to {current.status} by a concurrent request"
    )
    return _conflict_for(current.status)


def start_session(
    db: Session,
    user_id: int,
    bot_version: str | None = None,
    platform: str | None = None,
) -> BotSession:
    existing = db.exec(
        select(BotSession).where(
            BotSession.user_id == user_id,
            BotSession.status.in_(ACTIVE_STATUSES),
        )
    ).first()
    if existing:
        raise ActiveSessionExists(existing.id)

    bot_session = BotSession(
        user_id=user_id,
        status=STARTING,
        bot_version=bot_version or "unknown",
        platform=platform or "unknown",
        last_heartbeat_at=datetime.utcnow(),
    )
    db.add(bot_session)
    db.commit()
    db.refresh(bot_session)
    logger.info(f"Session created: {bot_session.id} for user {user_id}")
    return bot_session


def record_heartbeat(
    db: Session,
    session_id: str,
    user_id: int,
    activity: str | None = None,
    details: Any = None,
    stats: Any = None,
) -> None:
    current = get_owned_session(db, session_id, user_id)
    if current.status in TERMINAL_STATUSES:
        raise _conflict_for(current.status)

    values: dict[str, Any] = {
        "last_heartbeat_at": datetime.utcnow(),
        "status": RUNNING,
    }
    if activity:
        values["current_activity"] = activity
    if details is not None:
        values["activity_details"] = details
    values.update(_counter_values(stats))

    if not _update_if_active(db, session_id, user_id, values):
        raise _lost_race(db, session_id, user_id)

    if activity:
        logger.info(f"Heartbeat {_short(session_id)}: {activity}")


def complete_session(
    db: Session,
    session_id: str,
    user_id: int,
    success: bool,
    error_message: str | None = None,
    error_details: Any = None,
    final_stats: Any = None,
) -> None:
    current = get_owned_session(db, session_id, user_id)
    if current.status in TERMINAL_STATUSES:
        raise _conflict_for(current.status)

    now = datetime.utcnow()
    values: dict[str, Any] = {
        "status": COMPLETED if success else FAILED,
        "completed_at": now,
        "last_heartbeat_at": now,
    }
    if not success and error_message:
        values["error_message"] = error_message
    if not success and error_details is not None:
        values["error_details"] = error_details
    values.update(_counter_values(final_stats))

    if not _update_if_active(db, session_id, user_id, values):
        raise _lost_race(db, session_id, user_id)

    outcome = "SUCCESS" if success else "FAILED"
    suffix = f" - {error_message}" if error_message else ""
    logger.info(f"Session {_short(session_id)} complete: {outcome}{suffix}")


def stop_session(db: Session, session_id: str, user_id: int) -> str:
    """Mark a session stopped on behalf of its owner. Returns the message for the user."""
    current = get_owned_session(db, session_id, user_id)
    if current.status == STOPPED:
        return "Session already stopped"
    if current.status in TERMINAL_STATUSES:
        raise SessionConflict("Cannot stop completed session", completed=True)

    values = {
        "status": STOPPED,
        "completed_at": datetime.utcnow(),
        "error_message": STOPPED_BY_USER,
    }
    if not _update_if_active(db, session_id, user_id, values):
        conflict = _lost_race(db, session_id, user_id)
        if conflict.stopped:
            return "Session already stopped"
        raise SessionConflict("Cannot stop completed session", completed=True)

    logger.info(f"Session {_short(session_id)} stopped by user {user_id}")
    return "Bot will stop after current operation completes"


def latest_session(db: Session, user_id: int, window_hours: int = 24) -> BotSession | None:
    since = datetime.utcnow() - timedelta(hours=window_hours)
    return db.exec(
        select(BotSession)
        .where(BotSession.user_id == user_id, BotSession.created_at >= since)
        .order_by(BotSession.created_at.desc())
        .limit(1)
    ).first()


def historical_totals(db: Session, user_id: int) -> dict[str, int]:
    columns = [
        func.coalesce(func.sum(getattr(BotSession, field)), 0) for field in COUNTER_FIELDS
    ]
    row = db.exec(
        select(*columns).where(
            BotSession.user_id == user_id,
            BotSession.status.in_(TOTALS_STATUSES),
        )
    ).one()
    return {field: int(value) for field, value in zip(COUNTER_FIELDS, row)}
