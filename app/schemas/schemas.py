"""
Inkhouse Backend - Pydantic Schemas
Request/response models for accounts, API keys and the public posts API.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from app.core.config import settings
from app.models.post import POST_STATUSES
from app.utils.dates import isoformat_z

API_KEY_EXPIRY_DAYS = (30, 90, 365)
CREATABLE_POST_STATUSES = ("draft", "published")
MAX_TITLE_LENGTH = 200


# ── Auth ─────────────────────────────────────────────────────────────────────
class UserCreate(BaseModel):
    email: str = Field(description="User email address")
    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_]+$")
    password: str = Field(min_length=8, description="Password (min 8 chars)")
    display_name: Optional[str] = None


class UserLogin(BaseModel):
    email: str = Field(description="Email address or username")
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    display_name: Optional[str]
    role: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ── API Keys ─────────────────────────────────────────────────────────────────
class APIKeyCreate(BaseModel):
    name: str
    expires_in_days: Optional[int] = Field(default=None, description="30, 90, 365 or null for never")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Key name is required")
        if len(value) > settings.API_KEY_NAME_MAX_LENGTH:
            raise ValueError(f"Key name must be {settings.API_KEY_NAME_MAX_LENGTH} characters or less")
        return value

    @field_validator("expires_in_days")
    @classmethod
    def _check_expiry(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value not in API_KEY_EXPIRY_DAYS:
            raise ValueError("expires_in_days must be one of 30, 90, 365 or null")
        return value


class APIKeyResponse(BaseModel):
    id: str
    name: str
    key_prefix: str
    status: str
    last_used_at: Optional[datetime]
    expires_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class APIKeyCreatedResponse(APIKeyResponse):
    secret: str = Field(description="Full API key. Shown only once.")


# ── Public API: Posts ────────────────────────────────────────────────────────
def _blank_to_none(value: Any) -> Any:
    if value == "":
        return None
    return value


class PostCreate(BaseModel):
    title: Optional[str] = Field(default=None, validate_default=True)
    content: Optional[str] = Field(default=None, validate_default=True)
    description: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    status: str = "draft"
    featured: bool = False
    allow_comments: bool = True

    @field_validator("title", mode="before")
    @classmethod
    def _title_required(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Title is required")
        value = value.strip()
        if len(value) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title must be {MAX_TITLE_LENGTH} characters or less")
        return value

    @field_validator("content", mode="before")
    @classmethod
    def _content_required(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Content is required")
        return value

    @field_validator("description", "category", "image_url", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("status", mode="before")
    @classmethod
    def _creatable_status(cls, value: Any) -> str:
        if value is None or value == "":
            return "draft"
        if value not in CREATABLE_POST_STATUSES:
            raise ValueError("Status must be draft or published")
        return value

    @field_validator("featured", mode="before")
    @classmethod
    def _featured_default(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("allow_comments", mode="before")
    @classmethod
    def _allow_comments_default(cls, value: Any) -> Any:
        return True if value is None else value


class PostUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    featured: Optional[bool] = None
    allow_comments: Optional[bool] = None
    status: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _title_not_empty(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Title cannot be empty")
        value = value.strip()
        if len(value) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title must be {MAX_TITLE_LENGTH} characters or less")
        return value

    @field_validator("content", mode="before")
    @classmethod
    def _content_not_empty(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Content cannot be empty")
        return value

    @field_validator("description", "category", "image_url", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("featured", "allow_comments", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _known_status(cls, value: Any) -> str:
        if value not in POST_STATUSES:
            raise ValueError("Status must be draft, published, or archived")
        return value


class PublicPost(BaseModel):
    id: int
    title: str
    slug: str
    description: Optional[str]
    content: str
    category: Optional[str]
    image_url: Optional[str]
    status: str
    featured: bool
    allow_comments: bool
    pub_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_post(cls, post) -> "PublicPost":
        return cls(
            id=post.id,
            title=post.title,
            slug=post.normalized_title,
            description=post.description,
            content=post.content,
            category=post.category,
            image_url=post.image_url,
            status=post.status,
            featured=post.featured,
            allow_comments=post.allow_comments,
            pub_date=post.pub_date,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )

    @field_serializer("pub_date", "created_at", "updated_at")
    def _iso(self, value: Optional[datetime]) -> Optional[str]:
        return isoformat_z(value) if value is not None else None


def first_error_message(exc: ValidationError) -> str:
    """Human-readable message for the first failing field."""
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    if error["type"] == "value_error":
        return str(error["ctx"]["error"])
    if error["type"] == "extra_forbidden":
        return f"Unknown field: {location}"
    return f"{location}: {error['msg']}" if location else error["msg"]
