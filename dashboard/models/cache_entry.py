"""Durable cache row mapped to `cache_entries` table."""

from sqlalchemy import Column, DateTime, String, Text

from dashboard.config.database import Base


class CacheRecord(Base):
    """One serialized cache payload per sanitized key."""

    __tablename__ = "cache_entries"

    key = Column(String(255), primary_key=True)
    payload = Column(Text, nullable=False)
    stored_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<CacheRecord {self.key}>"
