"""Content provenance: one current SHA-256 fingerprint per content item."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String, text

from lifeline.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ContentFingerprint(Base):
    """Fingerprint rows are never deleted.

    ``hash`` is immutable. A new hash for the same content id creates a new row
    and stamps ``superseded_at`` on the old one. Only ``anchored`` and
    ``anchor_reference`` change after insert (late anchor confirmation).
    """

    __tablename__ = "content_fingerprints"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_id = Column(String(255), nullable=False)
    hash = Column(String(64), nullable=False)
    anchored = Column(Boolean, nullable=False, default=False)
    anchor_reference = Column(String(255), nullable=True)
    anchor_network = Column(String(50), nullable=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    anchored_at = Column(DateTime(timezone=True), nullable=True)
    superseded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_fingerprint_content", "content_id"),
        # At most one current (non-superseded) fingerprint per content item.
        Index(
            "uq_fingerprint_current_content",
            "content_id",
            unique=True,
            sqlite_where=text("superseded_at IS NULL"),
            postgresql_where=text("superseded_at IS NULL"),
        ),
        Index("idx_fingerprint_hash", "hash"),
        Index("idx_fingerprint_pending", "anchored", "superseded_at"),
    )
