"""Inkhouse - Database Models"""

from app.models.user import User
from app.models.post import Post
from app.models.api_key import APIKey
from app.models.rate_limit import RateLimitWindow

__all__ = ["User", "Post", "APIKey", "RateLimitWindow"]
