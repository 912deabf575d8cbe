"""Tests for API key generation and the key authenticator."""

from datetime import timedelta

import pytest
from fastapi import BackgroundTasks
from sqlalchemy import select

from app.models.api_key import APIKey
from app.services.api_auth import (
    EXPIRED_KEY,
    INACTIVE_OWNER,
    INVALID_KEY,
    MISSING_HEADER,
    REVOKED_KEY,
    ApiKeyAuthenticator,
    extract_bearer_token,
    generate_api_key,
    hash_api_key,
)
from app.utils.dates import utcnow
from conftest import make_api_key, make_user


def test_generated_key_format():
    generated = generate_api_key()

    assert generated.key.startswith("ink_")
    assert len(generated.key) == len("ink_") + 64
    assert generated.hash == hash_api_key(generated.key)
    assert generated.prefix == generated.key[:12] + "..."
    assert generated.key not in generated.hash


def test_generated_keys_are_unique():
    assert generate_api_key().key != generate_api_key().key


@pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer ", "Token abc", "bearer ink_abc"])
def test_extract_bearer_token_rejects_malformed_headers(header):
    assert extract_bearer_token(header) is None


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer ink_abc") == "ink_abc"


@pytest.mark.asyncio
async def test_valid_key_resolves_owner(db_setup, session):
    user = await make_user(session)
    raw_key, api_key = await make_api_key(session, user)

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}")

    assert result.ok
    assert result.user_id == user.id
    assert result.key_id == api_key.id


@pytest.mark.asyncio
async def test_successful_auth_touches_last_used_at(db_setup, session):
    user = await make_user(session)
    raw_key, api_key = await make_api_key(session, user)
    assert api_key.last_used_at is None

    await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}")

    async with db_setup() as fresh:
        stored = (await fresh.execute(select(APIKey).where(APIKey.id == api_key.id))).scalar_one()
    assert stored.last_used_at is not None


@pytest.mark.asyncio
async def test_touch_is_deferred_to_background_tasks(db_setup, session):
    user = await make_user(session)
    raw_key, _ = await make_api_key(session, user)
    tasks = BackgroundTasks()

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}", tasks)

    assert result.ok
    assert len(tasks.tasks) == 1


@pytest.mark.asyncio
async def test_missing_header(db_setup):
    result = await ApiKeyAuthenticator(db_setup).authenticate(None)

    assert not result.ok
    assert result.error == MISSING_HEADER


@pytest.mark.asyncio
async def test_unknown_key(db_setup):
    unknown = generate_api_key().key

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {unknown}")

    assert result.error == INVALID_KEY


@pytest.mark.asyncio
async def test_key_without_prefix_is_invalid(db_setup):
    result = await ApiKeyAuthenticator(db_setup).authenticate("Bearer sk_live_something")

    assert result.error == INVALID_KEY


@pytest.mark.asyncio
async def test_revoked_key(db_setup, session):
    user = await make_user(session)
    raw_key, _ = await make_api_key(session, user, status="revoked")

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}")

    assert result.error == REVOKED_KEY


@pytest.mark.asyncio
async def test_expired_active_key(db_setup, session):
    user = await make_user(session)
    raw_key, _ = await make_api_key(session, user, expires_at=utcnow() - timedelta(minutes=1))

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}")

    assert result.error == EXPIRED_KEY


@pytest.mark.asyncio
async def test_future_expiry_is_accepted(db_setup, session):
    user = await make_user(session)
    raw_key, _ = await make_api_key(session, user, expires_at=utcnow() + timedelta(days=30))

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}")

    assert result.ok


@pytest.mark.asyncio
async def test_revoked_takes_precedence_over_expired(db_setup, session):
    user = await make_user(session)
    raw_key, _ = await make_api_key(
        session, user, status="revoked", expires_at=utcnow() - timedelta(days=1)
    )

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}")

    assert result.error == REVOKED_KEY


@pytest.mark.asyncio
async def test_suspended_owner(db_setup, session):
    user = await make_user(session, status="suspended")
    raw_key, _ = await make_api_key(session, user)

    result = await ApiKeyAuthenticator(db_setup).authenticate(f"Bearer {raw_key}")

    assert result.error == INACTIVE_OWNER
