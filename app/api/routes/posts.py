"""
Inkhouse - Public API v1: Posts
CRUD over the caller's own posts, authenticated with an API key.

Every request runs the same pipeline: authenticate the key, consume one
unit of the key's rate limit, check ownership, validate the body, then
touch the post store. The first failing stage answers the request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db, get_session_factory
from app.core.errors import ApiError, ErrorCode, translate_store_errors
from app.models.post import POST_STATUSES, Post
from app.schemas.schemas import PostCreate, PostUpdate, PublicPost, first_error_message
from app.services import posts as post_store
from app.services.api_auth import ApiKeyAuthenticator, ApiKeyConfig
from app.services.rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RateLimitUnavailableError,
)

logger = logging.getLogger(__name__)
router = APIRouter()

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Ids and offsets are bound as signed 64-bit integers
MAX_STORE_INT = 2 ** 63 - 1
MAX_PAGE = MAX_STORE_INT // MAX_PAGE_SIZE


@dataclass
class ApiContext:
    """The authenticated, rate-limited caller of a public API request."""
    user_id: int
    key_id: str
    rate_limit: RateLimitResult


def get_api_key_authenticator() -> ApiKeyAuthenticator:
    return ApiKeyAuthenticator(
        get_session_factory(),
        ApiKeyConfig(prefix=settings.API_KEY_PREFIX),
    )


def get_api_rate_limiter() -> RateLimiter:
    return RateLimiter(
        get_session_factory(),
        RateLimitConfig(
            limit=settings.API_RATE_LIMIT,
            window_seconds=settings.API_RATE_LIMIT_WINDOW_SECONDS,
        ),
    )


async def require_api_key(
    request: Request,
    background_tasks: BackgroundTasks,
    authorization: Optional[str] = Header(default=None),
    authenticator: ApiKeyAuthenticator = Depends(get_api_key_authenticator),
    limiter: RateLimiter = Depends(get_api_rate_limiter),
) -> ApiContext:
    """Authenticate the API key, then charge the request to its rate limit."""
    with translate_store_errors("authenticate API key"):
        auth = await authenticator.authenticate(authorization, background_tasks)
    if not auth.ok:
        raise ApiError(ErrorCode.UNAUTHORIZED, auth.error)

    # Error responses run the last_used_at touch too
    request.state.background = background_tasks

    try:
        with translate_store_errors("check rate limit"):
            rate_limit = await limiter.check_api_key(auth.key_id)
    except RateLimitUnavailableError as e:
        logger.error(str(e))
        raise ApiError(ErrorCode.SERVICE_UNAVAILABLE, "Rate limiter unavailable")

    # Error responses from here on carry the rate limit headers too
    request.state.rate_limit = rate_limit
    if not rate_limit.allowed:
        raise ApiError(ErrorCode.RATE_LIMITED, "Rate limit exceeded. Try again later.")

    return ApiContext(user_id=auth.user_id, key_id=auth.key_id, rate_limit=rate_limit)


def _success(
    ctx: ApiContext,
    data: Any,
    status_code: int = status.HTTP_200_OK,
    **meta: Any,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "data": data,
            "meta": {**meta, "rate_limit": ctx.rate_limit.as_meta()},
        },
        headers=ctx.rate_limit.headers(),
    )


def _parse_post_id(raw: str) -> int:
    try:
        post_id = int(raw)
    except ValueError:
        raise ApiError(ErrorCode.VALIDATION_ERROR, "Invalid post ID")
    if not 1 <= post_id <= MAX_STORE_INT:
        raise ApiError(ErrorCode.NOT_FOUND, "Post not found")
    return post_id


def _parse_int(raw: Optional[str], default: int, name: str) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ApiError(ErrorCode.VALIDATION_ERROR, f"{name} must be an integer")


async def _read_json_object(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ApiError(ErrorCode.VALIDATION_ERROR, "Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ApiError(ErrorCode.VALIDATION_ERROR, "Request body must be a JSON object")
    return body


async def _owned_post(db: AsyncSession, post_id: int, ctx: ApiContext) -> Post:
    with translate_store_errors("fetch post"):
        post = await post_store.get_post(db, post_id)
    if post is None:
        raise ApiError(ErrorCode.NOT_FOUND, "Post not found")
    if post.author_id != ctx.user_id:
        raise ApiError(ErrorCode.FORBIDDEN, "You do not have access to this post")
    return post


def _public(post: Post) -> dict:
    return PublicPost.from_post(post).model_dump(mode="json")


@router.get("", summary="List your posts")
async def list_posts(
    page: Optional[str] = Query(default=None, description="Page number, from 1"),
    limit: Optional[str] = Query(default=None, description="Page size, 1-100"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    ctx: ApiContext = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    page_number = min(MAX_PAGE, max(1, _parse_int(page, 1, "page")))
    page_size = min(MAX_PAGE_SIZE, max(1, _parse_int(limit, DEFAULT_PAGE_SIZE, "limit")))

    if status_filter is not None and status_filter not in POST_STATUSES:
        raise ApiError(ErrorCode.VALIDATION_ERROR, "Status must be draft, published, or archived")

    with translate_store_errors("fetch posts"):
        posts, total = await post_store.list_posts(
            db,
            author_id=ctx.user_id,
            page=page_number,
            limit=page_size,
            status=status_filter,
        )

    return _success(
        ctx,
        [_public(p) for p in posts],
        page=page_number,
        limit=page_size,
        total=total,
    )


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a post")
async def create_post(
    request: Request,
    ctx: ApiContext = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    body = await _read_json_object(request)
    try:
        data = PostCreate.model_validate(body)
    except ValidationError as e:
        raise ApiError(ErrorCode.VALIDATION_ERROR, first_error_message(e))

    with translate_store_errors("create post"):
        post = await post_store.create_post(db, ctx.user_id, data)
        await db.commit()

    return _success(ctx, _public(post), status_code=status.HTTP_201_CREATED)


@router.get("/{post_id}", summary="Get one of your posts")
async def get_post(
    post_id: str,
    ctx: ApiContext = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    post = await _owned_post(db, _parse_post_id(post_id), ctx)
    return _success(ctx, _public(post))


@router.patch("/{post_id}", summary="Update one of your posts")
async def update_post(
    post_id: str,
    request: Request,
    ctx: ApiContext = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    post = await _owned_post(db, _parse_post_id(post_id), ctx)

    body = await _read_json_object(request)
    try:
        changes = PostUpdate.model_validate(body).model_dump(exclude_unset=True)
    except ValidationError as e:
        raise ApiError(ErrorCode.VALIDATION_ERROR, first_error_message(e))
    if not changes:
        raise ApiError(ErrorCode.VALIDATION_ERROR, "No fields to update")

    with translate_store_errors("update post"):
        post = await post_store.update_post(db, post, changes)
        await db.commit()

    return _success(ctx, _public(post))


@router.delete("/{post_id}", summary="Delete one of your posts")
async def delete_post(
    post_id: str,
    ctx: ApiContext = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    post = await _owned_post(db, _parse_post_id(post_id), ctx)
    deleted_id = post.id

    with translate_store_errors("delete post"):
        await post_store.delete_post(db, post)
        await db.commit()

    return _success(ctx, {"id": deleted_id, "deleted": True})
