"""
Inkhouse - Auth Routes
Account registration, login and profile for session-token callers.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db, get_session_factory
from app.core.security import (
    create_access_token,
    get_current_user,
    get_password_hash,
    verify_password,
)
from app.models.user import User
from app.schemas.schemas import TokenResponse, UserCreate, UserLogin, UserResponse
from app.services.rate_limiter import RateLimitConfig, RateLimiter, RateLimitUnavailableError

logger = logging.getLogger(__name__)
router = APIRouter()


def get_login_rate_limiter() -> RateLimiter:
    return RateLimiter(
        get_session_factory(),
        RateLimitConfig(
            limit=settings.LOGIN_RATE_LIMIT,
            window_seconds=settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
        ),
    )


def get_client_ip(request: Request) -> str:
    """Client IP, preferring proxy headers."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new user with email, username and password."""
    result = await db.execute(
        select(User).where(or_(User.email == user_data.email, User.username == user_data.username))
    )
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email or username already exists",
        )

    user = User(
        email=user_data.email,
        username=user_data.username,
        hashed_password=get_password_hash(user_data.password),
        display_name=user_data.display_name,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    await db.commit()

    token = create_access_token(data={"sub": str(user.id)})

    return TokenResponse(
        access_token=token,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Log in to your account",
    description="Authenticate with email or username and password to receive a JWT token.",
)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_login_rate_limiter),
):
    """Authenticate user and return JWT token."""
    client_ip = get_client_ip(request)
    try:
        rate_limit = await limiter.check(f"login:{client_ip}")
    except RateLimitUnavailableError as e:
        logger.error(str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Login is temporarily unavailable. Please try again later.",
        )
    if not rate_limit.allowed:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": "Too many login attempts. Please try again later."},
            headers=rate_limit.headers(),
        )

    result = await db.execute(
        select(User).where(or_(User.email == credentials.email, User.username == credentials.email))
    )
    user = result.scalars().first()

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.info(f"Failed login for {credentials.email!r} from {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is not active",
        )

    token = create_access_token(data={"sub": str(user.id)})

    return TokenResponse(
        access_token=token,
        user=UserResponse.model_validate(user),
    )


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user profile",
)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get the current user's profile."""
    return UserResponse.model_validate(current_user)
