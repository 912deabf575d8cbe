import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime
from typing import Optional, Tuple

import httpx
import pytest_asyncio

from app.core import database
from app.core.security import get_password_hash
from app.main import app
from app.models.api_key import APIKey
from app.models.post import Post
from app.models.user import User
from app.services.api_auth import generate_api_key


@pytest_asyncio.fixture
async def db_setup(tmp_path):
    """Fresh SQLite database file per test."""
    await database.init_database(f"sqlite+aiosqlite:///{tmp_path / 'inkhouse.db'}")
    await database.create_tables()
    yield database.get_session_factory()
    app.dependency_overrides.clear()
    await database.close_database()


@pytest_asyncio.fixture
async def session(db_setup):
    async with db_setup() as s:
        yield s


@pytest_asyncio.fixture
async def client(db_setup):
    async with httpx.AsyncClient(
        base_url="http://test",
        transport=httpx.ASGITransport(app=app),
    ) as c:
        yield c


async def make_user(
    session,
    username: str = "writer",
    password: str = "password123",
    status: str = "active",
) -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        hashed_password=get_password_hash(password),
        role="writer",
        status=status,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def make_api_key(
    session,
    user: User,
    status: str = "active",
    expires_at: Optional[datetime] = None,
    name: str = "test key",
) -> Tuple[str, APIKey]:
    generated = generate_api_key()
    api_key = APIKey(
        user_id=user.id,
        key_hash=generated.hash,
        key_prefix=generated.prefix,
        name=name,
        status=status,
        expires_at=expires_at,
    )
    session.add(api_key)
    await session.commit()
    await session.refresh(api_key)
    return generated.key, api_key


async def make_post(session, author: User, title: str = "Someone else's post", status: str = "draft") -> Post:
    post = Post(
        author_id=author.id,
        title=title,
        normalized_title=title.lower().replace(" ", "-"),
        content="<p>body</p>",
        status=status,
    )
    session.add(post)
    await session.commit()
    await session.refresh(post)
    return post


def bearer(key: str) -> dict:
    return {"Authorization": f"Bearer {key}"}
