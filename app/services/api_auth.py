"""
Inkhouse - API key authentication.

Keys look like ``ink_<64 hex chars>``. Only the SHA-256 digest and a short
display prefix are stored, so a presented key is looked up by its digest.
Authentication never raises for bad input: every outcome is an AuthResult.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import BackgroundTasks
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.api_key import APIKey
from app.models.user import User
from app.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

MISSING_HEADER = "Missing or malformed Authorization header. Use: Bearer <api_key>"
INVALID_KEY = "Invalid API key"
REVOKED_KEY = "API key has been revoked"
EXPIRED_KEY = "API key has expired"
INACTIVE_OWNER = "API key owner account is not active"


@dataclass(frozen=True)
class ApiKeyConfig:
    prefix: str = "ink_"
    secret_bytes: int = 32
    display_length: int = 12


@dataclass(frozen=True)
class GeneratedApiKey:
    key: str
    hash: str
    prefix: str


@dataclass(frozen=True)
class AuthResult:
    user_id: Optional[int] = None
    key_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def hash_api_key(key: str) -> str:
    """Hash an API key for storage."""
    return hashlib.sha256(key.encode()).hexdigest()


def generate_api_key(config: Optional[ApiKeyConfig] = None) -> GeneratedApiKey:
    """Generate a new key with its digest and display prefix."""
    config = config or ApiKeyConfig()
    key = f"{config.prefix}{secrets.token_hex(config.secret_bytes)}"
    return GeneratedApiKey(
        key=key,
        hash=hash_api_key(key),
        prefix=key[:config.display_length] + "...",
    )


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


class ApiKeyAuthenticator:
    """Resolves a bearer API key to its owning account."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[ApiKeyConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.config = config or ApiKeyConfig()
        self.clock = clock

    async def authenticate(
        self,
        authorization: Optional[str],
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> AuthResult:
        """Validate an Authorization header value.

        Store failures propagate; malformed or unknown credentials come
        back as an AuthResult carrying the reason.

        When ``background_tasks`` is given the last_used_at touch runs after
        the response is sent, otherwise it is awaited inline. Either way a
        failure there is logged and ignored.
        """
        token = extract_bearer_token(authorization)
        if token is None:
            return AuthResult(error=MISSING_HEADER)

        if not token.startswith(self.config.prefix):
            return AuthResult(error=INVALID_KEY)

        async with self.session_factory() as session:
            result = await session.execute(
                select(APIKey, User.status)
                .join(User, User.id == APIKey.user_id)
                .where(APIKey.key_hash == hash_api_key(token))
            )
            row = result.one_or_none()

        if row is None:
            return AuthResult(error=INVALID_KEY)

        api_key, owner_status = row
        if api_key.is_revoked:
            return AuthResult(error=REVOKED_KEY)
        if api_key.is_expired(ensure_utc(self.clock())):
            return AuthResult(error=EXPIRED_KEY)
        if owner_status != "active":
            return AuthResult(error=INACTIVE_OWNER)

        if background_tasks is not None:
            background_tasks.add_task(self.touch_last_used, api_key.id)
        else:
            await self.touch_last_used(api_key.id)

        return AuthResult(user_id=api_key.user_id, key_id=api_key.id)

    async def touch_last_used(self, key_id: str) -> None:
        """Best-effort last_used_at update."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(APIKey)
                        .where(APIKey.id == key_id)
                        .values(last_used_at=ensure_utc(self.clock()))
                        .execution_options(synchronize_session=False)
                    )
        except Exception as e:
            logger.warning(f"Failed to update last_used_at for API key {key_id}: {e}")
