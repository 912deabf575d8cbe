"""
Inkhouse - Rate Limit Window Model
One row per bucket (an API key id or a login IP) holding the fixed-window
counter. Updated only through single-statement atomic increments.
"""

from sqlalchemy import Column, Integer, String, DateTime

from app.core.database import Base


class RateLimitWindow(Base):
    __tablename__ = "api_rate_limits"

    bucket = Column(String(255), primary_key=True)  # e.g. "api_key:<id>", "login:<ip>"
    request_count = Column(Integer, default=0, nullable=False)
    window_start = Column(DateTime(timezone=True), nullable=False)
    reset_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<RateLimitWindow(bucket='{self.bucket}', count={self.request_count})>"
