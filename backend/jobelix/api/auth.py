import logging
from datetime import datetime

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlmodel import Session, select

from jobelix.api.deps import (
    REFRESH_COOKIE,
    SESSION_COOKIE,
    get_current_user,
    get_user_cache,
)
from jobelix.auth import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_api_token,
    hash_password,
    verify_password,
)
from jobelix.config import settings
from jobelix.database import get_session
from jobelix.models.common import ApiToken
from jobelix.models.user import User
from jobelix.services.user_cache import CachedUser, UserCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

ROLES = {"student", "company"}
MIN_PASSWORD_LENGTH = 8


class SignupRequest(BaseModel):
    email: str
    password: str
    role: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    role: str


class ApiTokenResponse(BaseModel):
    token: str
    created_at: datetime
    last_used_at: datetime | None


def _set_auth_cookies(response: Response, user: User) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        create_access_token(user.id, user.email, user.role),
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        create_refresh_token(user.id),
        max_age=settings.refresh_token_expire_days * 24 * 3600,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


@router.post("/signup", response_model=UserResponse, status_code=201)
async def signup(body: SignupRequest, session: Session = Depends(get_session)):
    email = body.email.strip().lower()
    if not email or "@" not in email:
        raise HTTPException(status_code=400, detail="A valid email is required")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )
    role = body.role or "student"
    if role not in ROLES:
        raise HTTPException(
            status_code=400,
            detail=f"Role must be one of: {', '.join(sorted(ROLES))}",
        )

    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(email=email, password_hash=hash_password(body.password), role=role)
    session.add(user)
    session.commit()
    session.refresh(user)

    # Every account gets one automation token for the desktop bot
    session.add(ApiToken(user_id=user.id, token=generate_api_token()))
    session.commit()

    logger.info(f"Created {role} account {user.id}")
    return UserResponse(id=user.id, email=user.email, role=user.role)


@router.post("/login", response_model=UserResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: Session = Depends(get_session),
):
    user = session.exec(
        select(User).where(User.email == body.email.strip().lower())
    ).first()
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    _set_auth_cookies(response, user)
    return UserResponse(id=user.id, email=user.email, role=user.role)


@router.post("/refresh", response_model=UserResponse)
async def refresh(
    response: Response,
    refresh_token: str | None = Cookie(default=None, alias=REFRESH_COOKIE),
    session: Session = Depends(get_session),
):
    try:
        payload = decode_token(refresh_token or "")
        if payload.get("type") != "refresh":
            raise ValueError("Not a refresh token")
        user_id = int(payload["sub"])
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    _set_auth_cookies(response, user)
    return UserResponse(id=user.id, email=user.email, role=user.role)


@router.post("/logout")
async def logout(
    response: Response,
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE),
    cache: UserCache = Depends(get_user_cache),
):
    if session_token:
        cache.evict(session_token)
    response.delete_cookie(SESSION_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return {"detail": "Logged out"}


@router.get("/me", response_model=UserResponse)
async def me(user: CachedUser = Depends(get_current_user)):
    return UserResponse(id=user.id, email=user.email, role=user.role)


@router.get("/api-token", response_model=ApiTokenResponse)
async def get_api_token(
    session: Session = Depends(get_session),
    user: CachedUser = Depends(get_current_user),
):
    api_token = session.exec(
        select(ApiToken).where(ApiToken.user_id == user.id)
    ).first()
    if not api_token:
        raise HTTPException(status_code=404, detail="API token not found")
    return api_token
