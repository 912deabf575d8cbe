"""
Inkhouse - Post store operations used by the public API.

Slug uniqueness is checked before writing rather than enforced by a lock,
so two concurrent writers deriving the same slug can both win; the next
writer to collide gets a timestamp suffix.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.post import Post
from app.schemas.schemas import PostCreate
from app.utils.dates import utcnow
from app.utils.slug import disambiguate, slugify

logger = logging.getLogger(__name__)


async def slug_in_use(db: AsyncSession, slug: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Post.id).where(Post.normalized_title == slug)
    if exclude_id is not None:
        query = query.where(Post.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.first() is not None


async def unique_slug(db: AsyncSession, title: str, exclude_id: Optional[int] = None) -> str:
    """Slug for a title, timestamp-suffixed when another post already uses it."""
    slug = slugify(title)
    if await slug_in_use(db, slug, exclude_id=exclude_id):
        slug = disambiguate(slug)
    return slug


async def list_posts(
    db: AsyncSession,
    author_id: int,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
) -> Tuple[List[Post], int]:
    """A page of an author's posts, newest-updated first, plus the total count."""
    filters = [Post.author_id == author_id]
    if status is not None:
        filters.append(Post.status == status)

    total = (await db.execute(select(func.count(Post.id)).where(*filters))).scalar() or 0

    result = await db.execute(
        select(Post)
        .where(*filters)
        .order_by(Post.updated_at.desc(), Post.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_post(db: AsyncSession, post_id: int) -> Optional[Post]:
    result = await db.execute(select(Post).where(Post.id == post_id))
    return result.scalar_one_or_none()


async def create_post(db: AsyncSession, author_id: int, data: PostCreate) -> Post:
    now = utcnow()
    post = Post(
        author_id=author_id,
        title=data.title,
        normalized_title=await unique_slug(db, data.title),
        description=data.description,
        content=data.content,
        category=data.category,
        image_url=data.image_url,
        status=data.status,
        featured=data.featured,
        allow_comments=data.allow_comments,
        pub_date=now if data.status == "published" else None,
        created_at=now,
        updated_at=now,
    )
    db.add(post)
    await db.flush()
    await db.refresh(post)
    logger.info(f"Post {post.id} created by user {author_id} ({post.status})")
    return post


async def update_post(db: AsyncSession, post: Post, changes: dict) -> Post:
    """Apply an already validated partial update."""
    now: datetime = utcnow()

    if "title" in changes and changes["title"] != post.title:
        post.normalized_title = await unique_slug(db, changes["title"], exclude_id=post.id)

    for field, value in changes.items():
        setattr(post, field, value)

    # pub_date is set once, on the first transition into published
    if changes.get("status") == "published" and post.pub_date is None:
        post.pub_date = now

    post.updated_at = now
    await db.flush()
    await db.refresh(post)
    return post


async def delete_post(db: AsyncSession, post: Post) -> None:
    await db.delete(post)
    await db.flush()
    logger.info(f"Post {post.id} deleted by user {post.author_id}")
