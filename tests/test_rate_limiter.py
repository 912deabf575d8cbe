"""Tests for the store-backed fixed-window rate limiter."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.models.rate_limit import RateLimitWindow
from app.services.rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RateLimitUnavailableError,
)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock(START)


def limiter_for(session_factory, clock, limit=3, window_seconds=3600) -> RateLimiter:
    return RateLimiter(session_factory, RateLimitConfig(limit=limit, window_seconds=window_seconds), clock=clock)


@pytest.mark.asyncio
async def test_first_n_requests_allowed_with_decreasing_remaining(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=3)

    results = [await limiter.check_api_key("key-1") for _ in range(3)]

    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]
    assert all(r.limit == 3 for r in results)
    assert all(r.reset == START + timedelta(hours=1) for r in results)


@pytest.mark.asyncio
async def test_request_over_limit_is_denied_with_existing_reset(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=2)
    await limiter.check_api_key("key-1")
    clock.advance(minutes=10)
    await limiter.check_api_key("key-1")
    clock.advance(minutes=10)

    denied = await limiter.check_api_key("key-1")

    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset == START + timedelta(hours=1)


@pytest.mark.asyncio
async def test_denied_requests_do_not_increment_counter(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=1)
    await limiter.check("bucket")
    await limiter.check("bucket")
    await limiter.check("bucket")

    async with db_setup() as session:
        row = (await session.execute(
            select(RateLimitWindow).where(RateLimitWindow.bucket == "bucket")
        )).scalar_one()
    assert row.request_count == 1


@pytest.mark.asyncio
async def test_window_resets_after_reset_time(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=2)
    await limiter.check_api_key("key-1")
    await limiter.check_api_key("key-1")
    assert (await limiter.check_api_key("key-1")).allowed is False

    clock.advance(hours=1)
    fresh = await limiter.check_api_key("key-1")

    assert fresh.allowed is True
    assert fresh.remaining == 1
    assert fresh.reset == START + timedelta(hours=2)


@pytest.mark.asyncio
async def test_reset_time_never_moves_backwards(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=5, window_seconds=60)
    resets = []
    for _ in range(4):
        resets.append((await limiter.check("bucket")).reset)
        clock.advance(seconds=45)

    assert resets == sorted(resets)


@pytest.mark.asyncio
async def test_buckets_are_independent(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=1)

    assert (await limiter.check_api_key("key-a")).allowed is True
    assert (await limiter.check_api_key("key-a")).allowed is False
    assert (await limiter.check_api_key("key-b")).allowed is True


@pytest.mark.asyncio
async def test_new_window_sweeps_expired_buckets(db_setup, clock):
    limiter = limiter_for(db_setup, clock, window_seconds=60)
    await limiter.check("login:10.0.0.1")
    clock.advance(seconds=30)
    await limiter.check("login:10.0.0.2")
    clock.advance(seconds=45)

    await limiter.check("login:10.0.0.3")

    async with db_setup() as session:
        buckets = (await session.execute(select(RateLimitWindow.bucket))).scalars().all()
    assert sorted(buckets) == ["login:10.0.0.2", "login:10.0.0.3"]


@pytest.mark.asyncio
async def test_swept_bucket_starts_a_fresh_window(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=1, window_seconds=60)
    await limiter.check("a")
    clock.advance(seconds=61)
    await limiter.check("b")

    result = await limiter.check("a")

    assert result.allowed is True
    assert result.remaining == 0
    assert result.reset == clock.now + timedelta(seconds=60)


@pytest.mark.asyncio
async def test_unsettled_counter_raises(db_setup, clock):
    limiter = RateLimiter(db_setup, RateLimitConfig(), clock=clock, max_attempts=0)

    with pytest.raises(RateLimitUnavailableError):
        await limiter.check("bucket")


@pytest.mark.asyncio
async def test_concurrent_requests_never_exceed_limit(db_setup, clock):
    limiter = limiter_for(db_setup, clock, limit=5)
    await limiter.check("bucket")  # row exists before the burst

    results = await asyncio.gather(*[limiter.check("bucket") for _ in range(10)])

    assert sum(1 for r in results if r.allowed) == 4


def test_config_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        RateLimitConfig(limit=0)


def test_result_headers_and_meta():
    result = RateLimitResult(
        allowed=True,
        limit=1000,
        remaining=999,
        reset=datetime(2026, 1, 1, 13, 0, tzinfo=timezone.utc),
    )

    assert result.headers() == {
        "X-RateLimit-Limit": "1000",
        "X-RateLimit-Remaining": "999",
        "X-RateLimit-Reset": "2026-01-01T13:00:00.000Z",
    }
    assert result.as_meta() == {"limit": 1000, "remaining": 999, "reset": "2026-01-01T13:00:00.000Z"}
