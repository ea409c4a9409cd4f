import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String

from lifeline.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ViolationRecord(Base):
    """Append-only screenshot / recording incident log. Rows are never updated."""

    __tablename__ = "violation_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subscriber_id = Column(String(36), nullable=False)
    creator_id = Column(String(36), nullable=False)
    content_id = Column(String(255), nullable=False)
    kind = Column(String(20), nullable=False, default="screenshot")  # screenshot | recording | other
    warning_issued = Column(Boolean, nullable=False, default=False)
    detected_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_violation_subscriber", "subscriber_id", "detected_at"),
        Index("idx_violation_creator", "creator_id", "detected_at"),
    )


class ViolationCounter(Base):
    """Per-subscriber running total, incremented in the same transaction as the record insert."""

    __tablename__ = "violation_counters"

    subscriber_id = Column(String(36), primary_key=True)
    count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
