"""Domain errors raised by the services and the handlers that turn them into responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class SessionNotFound(Exception):
    """Session does not exist or belongs to another user."""


class SessionConflict(Exception):
    """Session is terminal and cannot accept the requested change."""

    def __init__(self, message: str, *, stopped: bool = False, completed: bool = False):
        super().__init__(message)
        self.message = message
        self.stopped = stopped
        self.completed = completed


class ActiveSessionExists(Exception):
    def __init__(self, session_id: str):
        super().__init__(f"Bot session {session_id} already running")
        self.session_id = session_id


async def session_not_found_handler(request: Request, exc: SessionNotFound) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"detail": "Session not found or unauthorized"},
    )


async def session_conflict_handler(request: Request, exc: SessionConflict) -> JSONResponse:
    content: dict = {"detail": exc.message}
    if exc.stopped:
        content["stopped"] = True
    if exc.completed:
        content["completed"] = True
    return JSONResponse(status_code=409, content=content)


async def active_session_handler(request: Request, exc: ActiveSessionExists) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": "Bot session already running", "session_id": exc.session_id},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info(f"Rejected malformed request to {request.url.path}")
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request body", "errors": jsonable_errors(exc)},
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Details stay in the server log only
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SessionNotFound, session_not_found_handler)
    app.add_exception_handler(SessionConflict, session_conflict_handler)
    app.add_exception_handler(ActiveSessionExists, active_session_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
