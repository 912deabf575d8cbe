"""
Inkhouse - API Key Management Routes
Issue, list and revoke API keys for the public API.
Authenticated with a session token.
"""

import logging
from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.security import get_current_user
from app.models.api_key import APIKey, KEY_STATUS_ACTIVE
from app.models.user import User
from app.schemas.schemas import APIKeyCreate, APIKeyCreatedResponse, APIKeyResponse
from app.services.api_auth import ApiKeyConfig, generate_api_key
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "",
    response_model=APIKeyCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an API key",
    description="Generate a new API key. The full key is returned only in this response.",
)
async def create_api_key(
    request: APIKeyCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a new API key."""
    # Expired keys keep status active but no longer count towards the cap
    active_count = await db.execute(
        select(func.count(APIKey.id)).where(
            APIKey.user_id == current_user.id,
            APIKey.status == KEY_STATUS_ACTIVE,
            or_(APIKey.expires_at.is_(None), APIKey.expires_at > utcnow()),
        )
    )
    if (active_count.scalar() or 0) >= settings.API_KEY_MAX_ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum of {settings.API_KEY_MAX_ACTIVE} active API keys allowed",
        )

    generated = generate_api_key(ApiKeyConfig(prefix=settings.API_KEY_PREFIX))

    expires_at = None
    if request.expires_in_days:
        expires_at = utcnow() + timedelta(days=request.expires_in_days)

    api_key = APIKey(
        user_id=current_user.id,
        key_hash=generated.hash,
        key_prefix=generated.prefix,
        name=request.name,
        expires_at=expires_at,
    )
    db.add(api_key)
    await db.flush()
    await db.refresh(api_key)
    await db.commit()

    logger.info(f"API key {api_key.id} created for user {current_user.id}")

    return APIKeyCreatedResponse(
        id=api_key.id,
        name=api_key.name,
        key_prefix=api_key.key_prefix,
        status=api_key.status,
        last_used_at=api_key.last_used_at,
        expires_at=api_key.expires_at,
        created_at=api_key.created_at,
        secret=generated.key,
    )


@router.get(
    "",
    response_model=List[APIKeyResponse],
    summary="List API keys",
    description="List all your API keys, newest first, including revoked ones.",
)
async def list_api_keys(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List user's API keys."""
    result = await db.execute(
        select(APIKey)
        .where(APIKey.user_id == current_user.id)
        .order_by(APIKey.created_at.desc())
    )
    keys = result.scalars().all()
    return [APIKeyResponse.model_validate(k) for k in keys]


@router.delete(
    "/{key_id}",
    summary="Revoke an API key",
    description="Permanently revoke an API key. The key is kept for its usage history.",
)
async def revoke_api_key(
    key_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Revoke an API key."""
    result = await db.execute(select(APIKey).where(APIKey.id == key_id))
    api_key = result.scalar_one_or_none()
    if not api_key:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API key not found")
    if api_key.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    if not api_key.is_revoked:
        api_key.revoke()
        await db.flush()
        await db.commit()
        logger.info(f"API key {api_key.id} revoked by user {current_user.id}")

    return {"success": True, "message": "API key revoked"}
