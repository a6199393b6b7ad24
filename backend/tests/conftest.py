import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine, select
from sqlmodel.pool import StaticPool

from jobelix.auth import generate_api_token, hash_password
from jobelix.database import get_session
from jobelix.main import app
from jobelix.models.bot_session import BotSession
from jobelix.models.common import ApiToken
from jobelix.models.user import User
from jobelix.services.user_cache import UserCache


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    original_cache = app.state.user_cache
    app.state.user_cache = UserCache()
    client = TestClient(app)
    yield client
    app.state.user_cache = original_cache
    app.dependency_overrides.clear()


def create_user(session: Session, email: str, password: str = "password123") -> User:
    user = User(email=email, password_hash=hash_password(password), role="student")
    session.add(user)
    session.commit()
    session.refresh(user)
    session.add(ApiToken(user_id=user.id, token=generate_api_token()))
    session.commit()
    return user


def token_for(session: Session, user: User) -> str:
    return session.exec(select(ApiToken).where(ApiToken.user_id == user.id)).one().token


def login(client: TestClient, email: str, password: str = "password123") -> None:
    response = client.post(
        "/api/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200


@pytest.fixture
def user(session: Session) -> User:
    return create_user(session, "student@example.com")


@pytest.fixture
def bot_token(session: Session, user: User) -> str:
    return token_for(session, user)


@pytest.fixture
def user_client(client: TestClient, user: User) -> TestClient:
    """Client carrying the session cookie of ``user``."""
    login(client, user.email)
    return client


@pytest.fixture
def other_user(session: Session) -> User:
    return create_user(session, "other@example.com")


@pytest.fixture
def other_client(client: TestClient, other_user: User) -> TestClient:
    other = TestClient(app)
    login(other, other_user.email)
    return other


@pytest.fixture
def make_bot_session(session: Session):
    """Insert a bot session row directly, bypassing the API."""

    def _make(user: User, **fields) -> BotSession:
        bot_session = BotSession(user_id=user.id, **fields)
        session.add(bot_session)
        session.commit()
        session.refresh(bot_session)
        return bot_session

    return _make


@pytest.fixture
def other_bot_token(session: Session, other_user: User) -> str:
    return token_for(session, other_user)
