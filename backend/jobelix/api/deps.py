from datetime import datetime

from fastapi import Cookie, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session, select

from jobelix.auth import decode_token
from jobelix.database import get_session
from jobelix.models.common import ApiToken
from jobelix.models.user import User
from jobelix.services.user_cache import CachedUser, UserCache

SESSION_COOKIE = "jobelix_session"
REFRESH_COOKIE = "jobelix_refresh"

bearer = HTTPBearer(auto_error=False)


def get_user_cache(request: Request) -> UserCache:
    return request.app.state.user_cache


async def get_current_user(
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE),
    session: Session = Depends(get_session),
    cache: UserCache = Depends(get_user_cache),
) -> CachedUser:
    if not session_token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    cached = cache.get(session_token)
    if cached:
        return cached

    try:
        payload = decode_token(session_token)
        if payload.get("type") == "refresh":
            raise ValueError("Refresh token used as session")
        user_id = int(payload["sub"])
    except Exception:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")

    current = CachedUser(id=user.id, email=user.email, role=user.role)
    cache.set(session_token, current)
    return current


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> str | None:
    return credentials.credentials if credentials else None


def resolve_api_token(session: Session, token: str) -> int:
    """Map an automation token to its owner's user id, or raise 401."""
    api_token = session.exec(select(ApiToken).where(ApiToken.token == token)).first()
    if not api_token:
        raise HTTPException(status_code=401, detail="Invalid token")
    api_token.last_used_at = datetime.utcnow()
    session.add(api_token)
    session.commit()
    return api_token.user_id
