"""Bot session endpoints.

start, heartbeat and complete are called by the desktop automation process
with its API token (``token`` in the body or an ``Authorization: Bearer``
header). status and stop are called by the signed-in user from the browser.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictBool
from sqlmodel import Session

from jobelix.api.deps import get_bearer_token, get_current_user, resolve_api_token
from jobelix.config import settings
from jobelix.database import get_session
from jobelix.security import require_same_origin
from jobelix.services import bot_sessions
from jobelix.services.rate_limit import (
    RateLimitConfig,
    check_rate_limit,
    log_api_call,
    rate_limit_exceeded_response,
    rate_limit_headers,
)
from jobelix.services.user_cache import CachedUser

router = APIRouter(prefix="/autoapply/bot", tags=["bot"])


# --- Pydantic models ---


class StartRequest(BaseModel):
    token: str | None = None
    bot_version: str | None = None
    platform: str | None = None


class HeartbeatRequest(BaseModel):
    token: str | None = None
    session_id: str | None = None
    activity: str | None = None
    details: Any = None
    stats: Any = None


class CompleteRequest(BaseModel):
    token: str | None = None
    session_id: str | None = None
    success: StrictBool | None = None
    error_message: str | None = None
    error_details: Any = None
    final_stats: Any = None


class StopRequest(BaseModel):
    session_id: str | None = None


class BotSessionResponse(BaseModel):
    id: str
    user_id: int
    status: str
    current_activity: str | None
    activity_details: Any
    jobs_found: int
    jobs_applied: int
    jobs_failed: int
    credits_used: int
    error_message: str | None
    error_details: Any
    bot_version: str
    platform: str
    created_at: datetime
    started_at: datetime
    last_heartbeat_at: datetime | None
    completed_at: datetime | None
    updated_at: datetime


class HistoricalTotals(BaseModel):
    jobs_found: int = 0
    jobs_applied: int = 0
    jobs_failed: int = 0
    credits_used: int = 0


class StatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session: BotSessionResponse | None
    historical_totals: HistoricalTotals = Field(alias="historicalTotals")


# --- Helpers ---


def _bot_user_id(session: Session, body_token: str | None, header_token: str | None) -> int:
    return resolve_api_token(session, body_token or header_token)


def _bot_start_limits() -> RateLimitConfig:
    return RateLimitConfig(
        endpoint="bot-start",
        hourly_limit=settings.bot_start_hourly_limit,
        daily_limit=settings.bot_start_daily_limit,
    )


# --- Endpoints ---


@router.post("/start")
async def start(
    body: StartRequest,
    header_token: str | None = Depends(get_bearer_token),
    session: Session = Depends(get_session),
):
    if not (body.token or header_token):
        raise HTTPException(status_code=400, detail="Token is required")
    user_id = _bot_user_id(session, body.token, header_token)

    limits = _bot_start_limits()
    usage = check_rate_limit(session, user_id, limits)
    if not usage.allowed:
        return rate_limit_exceeded_response(limits, usage)

    bot_session = bot_sessions.start_session(
        session, user_id, bot_version=body.bot_version, platform=body.platform
    )
    log_api_call(session, user_id, limits.endpoint)
    usage = check_rate_limit(session, user_id, limits)
    return JSONResponse(
        content={"success": True, "session_id": bot_session.id},
        headers=rate_limit_headers(limits, usage),
    )


@router.post("/heartbeat")
async def heartbeat(
    body: HeartbeatRequest,
    header_token: str | None = Depends(get_bearer_token),
    session: Session = Depends(get_session),
):
    if not (body.token or header_token) or not body.session_id:
        raise HTTPException(status_code=400, detail="Token and session_id are required")
    user_id = _bot_user_id(session, body.token, header_token)

    bot_sessions.record_heartbeat(
        session,
        body.session_id,
        user_id,
        activity=body.activity,
        details=body.details,
        stats=body.stats,
    )
    return {"success": True}


@router.post("/complete")
async def complete(
    body: CompleteRequest,
    header_token: str | None = Depends(get_bearer_token),
    session: Session = Depends(get_session),
):
    if not (body.token or header_token) or not body.session_id or body.success is None:
        raise HTTPException(
            status_code=400,
            detail="Token, session_id, and success are required",
        )
    user_id = _bot_user_id(session, body.token, header_token)

    bot_sessions.complete_session(
        session,
        body.session_id,
        user_id,
        success=body.success,
        error_message=body.error_message,
        error_details=body.error_details,
        final_stats=body.final_stats,
    )
    return {"success": True}


@router.get("/status", response_model=StatusResponse)
async def status(
    session: Session = Depends(get_session),
    user: CachedUser = Depends(get_current_user),
):
    latest = bot_sessions.latest_session(
        session, user.id, window_hours=settings.status_window_hours
    )
    totals = bot_sessions.historical_totals(session, user.id)
    return StatusResponse(
        session=BotSessionResponse.model_validate(latest, from_attributes=True)
        if latest
        else None,
        historical_totals=HistoricalTotals(**totals),
    )


@router.post("/stop", dependencies=[Depends(require_same_origin)])
async def stop(
    body: StopRequest,
    session: Session = Depends(get_session),
    user: CachedUser = Depends(get_current_user),
):
    if not body.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")
    message = bot_sessions.stop_session(session, body.session_id, user.id)
    return {"success": True, "message": message}
