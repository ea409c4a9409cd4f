import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String

from lifeline.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class WatermarkIssuance(Base):
    """Append-only record of one watermark handed to one viewer."""

    __tablename__ = "watermark_issuances"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_id = Column(String(255), nullable=False)
    viewer_id = Column(String(36), nullable=False)
    embed_token = Column(String(64), nullable=False, unique=True)
    short_code = Column(String(24), nullable=False)
    kind = Column(String(20), nullable=False, default="invisible")  # visible | invisible | forensic
    issued_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_watermark_content", "content_id", "issued_at"),
        Index("idx_watermark_viewer", "viewer_id"),
        Index("idx_watermark_short_code", "short_code"),
    )
