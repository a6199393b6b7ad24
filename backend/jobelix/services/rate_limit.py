"""Per-user, per-endpoint hourly/daily call limits backed by ``api_call_log``."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from jobelix.models.common import ApiCallLog

logger = logging.getLogger(__name__)

ENDPOINT_MESSAGES = {
    "bot-start": "The bot was launched too many times. Please try again in about an hour.",
}


@dataclass(frozen=True)
class RateLimitConfig:
    endpoint: str
    hourly_limit: int
    daily_limit: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    hourly_count: int
    daily_count: int
    hourly_remaining: int
    daily_remaining: int


def _count_since(db: Session, user_id: int, endpoint: str, since: datetime) -> int:
    return db.exec(
        select(func.count())
        .select_from(ApiCallLog)
        .where(
            ApiCallLog.user_id == user_id,
            ApiCallLog.endpoint == endpoint,
            ApiCallLog.created_at >= since,
        )
    ).one()


def check_rate_limit(db: Session, user_id: int, config: RateLimitConfig) -> RateLimitResult:
    now = datetime.utcnow()
    hourly = _count_since(db, user_id, config.endpoint, now - timedelta(hours=1))
    daily = _count_since(db, user_id, config.endpoint, now - timedelta(days=1))
    return RateLimitResult(
        allowed=hourly < config.hourly_limit and daily < config.daily_limit,
        hourly_count=hourly,
        daily_count=daily,
        hourly_remaining=max(0, config.hourly_limit - hourly),
        daily_remaining=max(0, config.daily_limit - daily),
    )


def log_api_call(db: Session, user_id: int, endpoint: str) -> None:
    """Record a successful call. Failing to record never fails the request."""
    try:
        db.add(ApiCallLog(user_id=user_id, endpoint=endpoint))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to log API call for {endpoint}")


def rate_limit_headers(config: RateLimitConfig, result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Hourly-Limit": str(config.hourly_limit),
        "X-RateLimit-Daily-Limit": str(config.daily_limit),
        "X-RateLimit-Hourly-Remaining": str(result.hourly_remaining),
        "X-RateLimit-Daily-Remaining": str(result.daily_remaining),
        "X-RateLimit-Hourly-Used": str(result.hourly_count),
        "X-RateLimit-Daily-Used": str(result.daily_count),
    }


def rate_limit_exceeded_response(
    config: RateLimitConfig, result: RateLimitResult
) -> JSONResponse:
    message = ENDPOINT_MESSAGES.get(
        config.endpoint, "You've reached the usage limit. Please try again later."
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded",
            "message": message,
            "hourly_limit": config.hourly_limit,
            "daily_limit": config.daily_limit,
            "hourly_remaining": result.hourly_remaining,
            "daily_remaining": result.daily_remaining,
            "hourly_used": result.hourly_count,
            "daily_used": result.daily_count,
        },
        headers=rate_limit_headers(config, result),
    )
