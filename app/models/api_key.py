"""
Inkhouse - API Key Model
Bearer credentials for the public API. Only the SHA-256 digest of the
secret is stored; rows are revoked, never deleted.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.dates import ensure_utc

KEY_STATUS_ACTIVE = "active"
KEY_STATUS_REVOKED = "revoked"


class APIKey(Base):
    __tablename__ = "api_keys"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    key_hash = Column(String(64), unique=True, nullable=False, index=True)
    key_prefix = Column(String(20), nullable=False)  # First 12 chars + "..." for display
    name = Column(String(100), nullable=False)
    status = Column(String(20), default=KEY_STATUS_ACTIVE, nullable=False)  # active, revoked
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL never expires
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("User", back_populates="api_keys")

    @property
    def is_revoked(self) -> bool:
        return self.status == KEY_STATUS_REVOKED

    def is_expired(self, now: datetime) -> bool:
        expires_at: Optional[datetime] = ensure_utc(self.expires_at)
        return expires_at is not None and expires_at <= now

    def revoke(self) -> None:
        # active -> revoked is the only transition
        self.status = KEY_STATUS_REVOKED

    def __repr__(self):
        return f"<APIKey(id={self.id}, prefix='{self.key_prefix}', status='{self.status}')>"
