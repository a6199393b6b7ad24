import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

STARTING = "starting"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
STOPPED = "stopped"

ACTIVE_STATUSES = (STARTING, RUNNING)
TERMINAL_STATUSES = (COMPLETED, FAILED, STOPPED)

COUNTER_FIELDS = ("jobs_found", "jobs_applied", "jobs_failed", "credits_used")


def _new_session_id() -> str:
    return str(uuid.uuid4())


class BotSession(SQLModel, table=True):
    __tablename__ = "bot_sessions"

    id: str = Field(default_factory=_new_session_id, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    status: str = Field(default=STARTING, index=True)  # see ACTIVE_STATUSES / TERMINAL_STATUSES

    current_activity: str | None = Field(default=None)
    activity_details: Any = Field(default=None, sa_column=Column(JSON))

    jobs_found: int = Field(default=0)
    jobs_applied: int = Field(default=0)
    jobs_failed: int = Field(default=0)
    credits_used: int = Field(default=0)

    error_message: str | None = Field(default=None)
    error_details: Any = Field(default=None, sa_column=Column(JSON))

    bot_version: str = Field(default="unknown")
    platform: str = Field(default="unknown")

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    last_heartbeat_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
    )
