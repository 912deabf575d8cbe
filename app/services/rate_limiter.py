"""
Inkhouse - Fixed-window rate limiter backed by the api_rate_limits table.

Each bucket owns one row. A request first tries a single conditional
UPDATE (count < limit and window still open) so concurrent requests for
the same bucket never lose increments. Only when that matches nothing do
we look at the row to decide between creating it, restarting an expired
window, or denying.

Creating a row also sweeps windows of other buckets that have already
expired, so one-off buckets such as per-IP login counters do not pile up.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.rate_limit import RateLimitWindow
from app.utils.dates import ensure_utc, isoformat_z, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limit configuration."""
    limit: int = 1000
    window_seconds: int = 3600

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError("limit must be at least 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.window_seconds)


@dataclass
class RateLimitResult:
    """Rate limit check result."""
    allowed: bool
    limit: int
    remaining: int
    reset: datetime

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": isoformat_z(self.reset),
        }

    def as_meta(self) -> dict:
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "reset": isoformat_z(self.reset),
        }


class RateLimitUnavailableError(RuntimeError):
    """The counter could not be settled after repeated concurrent conflicts."""


class RateLimiter:
    """Per-bucket fixed-window counter."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = 3,
    ):
        self.session_factory = session_factory
        self.config = config or RateLimitConfig()
        self.clock = clock
        self.max_attempts = max_attempts

    async def check_api_key(self, key_id: str) -> RateLimitResult:
        return await self.check(f"api_key:{key_id}")

    async def check(self, bucket: str) -> RateLimitResult:
        """Consume one request from the bucket if its quota allows it."""
        now = ensure_utc(self.clock())

        async with self.session_factory() as session:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    async with session.begin():
                        result = await self._attempt(session, bucket, now)
                except IntegrityError:
                    # Another request created the row first
                    logger.debug(f"Rate limit row for {bucket} created concurrently, attempt {attempt}")
                    continue

                if result is None:
                    continue
                if not result.allowed:
                    logger.warning(f"Rate limit exceeded for {bucket}: {self.config.limit} per {self.config.window_seconds}s")
                return result

        raise RateLimitUnavailableError(f"Could not settle rate limit for {bucket}")

    async def _attempt(self, session: AsyncSession, bucket: str, now: datetime) -> Optional[RateLimitResult]:
        limit = self.config.limit

        consumed = await session.execute(
            update(RateLimitWindow)
            .where(
                RateLimitWindow.bucket == bucket,
                RateLimitWindow.reset_at > now,
                RateLimitWindow.request_count < limit,
            )
            .values(request_count=RateLimitWindow.request_count + 1)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount == 1:
            row = (await session.execute(
                select(RateLimitWindow.request_count, RateLimitWindow.reset_at)
                .where(RateLimitWindow.bucket == bucket)
            )).one()
            return self._allowed(row.request_count, ensure_utc(row.reset_at))

        row = (await session.execute(
            select(RateLimitWindow.request_count, RateLimitWindow.reset_at)
            .where(RateLimitWindow.bucket == bucket)
        )).one_or_none()

        reset_at = now + self.config.window

        if row is None:
            session.add(RateLimitWindow(
                bucket=bucket,
                request_count=1,
                window_start=now,
                reset_at=reset_at,
            ))
            await session.flush()
            await self._prune_expired(session, bucket, now)
            return self._allowed(1, reset_at)

        current_reset = ensure_utc(row.reset_at)

        if current_reset <= now:
            restarted = await session.execute(
                update(RateLimitWindow)
                .where(
                    RateLimitWindow.bucket == bucket,
                    RateLimitWindow.reset_at <= now,
                )
                .values(request_count=1, window_start=now, reset_at=reset_at)
                .execution_options(synchronize_session=False)
            )
            if restarted.rowcount == 1:
                return self._allowed(1, reset_at)
            return None

        if row.request_count >= limit:
            return RateLimitResult(allowed=False, limit=limit, remaining=0, reset=current_reset)

        # The row changed between the increment and the read; try again
        return None

    async def _prune_expired(self, session: AsyncSession, bucket: str, now: datetime) -> None:
        pruned = await session.execute(
            delete(RateLimitWindow)
            .where(
                RateLimitWindow.reset_at <= now,
                RateLimitWindow.bucket != bucket,
            )
            .execution_options(synchronize_session=False)
        )
        if pruned.rowcount:
            logger.debug(f"Pruned {pruned.rowcount} expired rate limit windows")

    def _allowed(self, count: int, reset: datetime) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=self.config.limit,
            remaining=max(self.config.limit - count, 0),
            reset=reset,
        )
