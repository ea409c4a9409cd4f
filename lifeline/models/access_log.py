"""Append-only protected-content access trail with SHA-256 hash chain."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String

from lifeline.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ProtectedAccessLog(Base):
    __tablename__ = "protected_access_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sequence = Column(Integer, nullable=False, unique=True)  # chain position, 1-based
    user_id = Column(String(36), nullable=False)
    content_id = Column(String(255), nullable=False)
    issuance_id = Column(String(36), nullable=True)
    action = Column(String(20), nullable=False, default="view")
    device_id = Column(String(100), default="unknown")
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(255), default="")
    prev_hash = Column(String(64), nullable=True)
    entry_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_access_content", "content_id", "created_at"),
        Index("idx_access_user", "user_id"),
    )
