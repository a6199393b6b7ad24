from datetime import datetime, timedelta

from sqlmodel import Session, select

from jobelix.models.common import ApiCallLog
from jobelix.services.rate_limit import (
    RateLimitConfig,
    check_rate_limit,
    log_api_call,
    rate_limit_headers,
)

CONFIG = RateLimitConfig(endpoint="bot-start", hourly_limit=3, daily_limit=5)


def _log_at(session: Session, user_id: int, when: datetime, endpoint: str = "bot-start"):
    session.add(ApiCallLog(user_id=user_id, endpoint=endpoint, created_at=when))
    session.commit()


def test_fresh_user_is_allowed(session: Session, user):
    result = check_rate_limit(session, user.id, CONFIG)
    assert result.allowed
    assert result.hourly_remaining == 3
    assert result.daily_remaining == 5


def test_hourly_limit(session: Session, user):
    now = datetime.utcnow()
    for _ in range(3):
        _log_at(session, user.id, now - timedelta(minutes=10))
    result = check_rate_limit(session, user.id, CONFIG)
    assert not result.allowed
    assert result.hourly_count == 3
    assert result.hourly_remaining == 0


def test_daily_limit_counts_older_calls(session: Session, user):
    now = datetime.utcnow()
    for hours in (2, 3, 4, 5, 6):
        _log_at(session, user.id, now - timedelta(hours=hours))
    result = check_rate_limit(session, user.id, CONFIG)
    assert result.hourly_count == 0
    assert result.daily_count == 5
    assert not result.allowed


def test_calls_older_than_a_day_are_ignored(session: Session, user):
    _log_at(session, user.id, datetime.utcnow() - timedelta(days=2))
    result = check_rate_limit(session, user.id, CONFIG)
    assert result.daily_count == 0


def test_limits_are_per_user_and_endpoint(session: Session, user, other_user):
    now = datetime.utcnow()
    for _ in range(3):
        _log_at(session, other_user.id, now)
        _log_at(session, user.id, now, endpoint="work-preferences")
    assert check_rate_limit(session, user.id, CONFIG).allowed


def test_log_api_call(session: Session, user):
    log_api_call(session, user.id, "bot-start")
    rows = session.exec(select(ApiCallLog).where(ApiCallLog.user_id == user.id)).all()
    assert [row.endpoint for row in rows] == ["bot-start"]


def test_headers(session: Session, user):
    _log_at(session, user.id, datetime.utcnow())
    headers = rate_limit_headers(CONFIG, check_rate_limit(session, user.id, CONFIG))
    assert headers["X-RateLimit-Hourly-Limit"] == "3"
    assert headers["X-RateLimit-Hourly-Used"] == "1"
    assert headers["X-RateLimit-Daily-Remaining"] == "4"
