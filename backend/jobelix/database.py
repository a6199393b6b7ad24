"""Engine and request-scoped sessions for the account and bot session tables."""

from collections.abc import Generator

from sqlmodel import Session, SQLModel, create_engine

from jobelix.config import settings


def engine_options(database_url: str) -> dict:
    # Sync endpoints run in FastAPI's threadpool, so a SQLite connection may be
    # used from a thread other than the one that opened it.
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {}


engine = create_engine(settings.database_url, echo=False, **engine_options(settings.database_url))


def init_db() -> None:
    """Create the users, api token, call log and bot session tables if missing."""
    import jobelix.models  # noqa: F401 (model import populates the metadata)

    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
