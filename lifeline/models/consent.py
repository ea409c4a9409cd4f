"""Versioned consent documents and the signatures collected against them."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from lifeline.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ConsentDocument(Base):
    __tablename__ = "consent_documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    version = Column(String(20), nullable=False, unique=True)
    text = Column(Text, nullable=False)
    checksum = Column(String(64), nullable=False)
    minimum_read_seconds = Column(Integer, nullable=False, default=30)
    requires_scroll_to_bottom = Column(Boolean, nullable=False, default=True)
    requires_biometric = Column(Boolean, nullable=False, default=True)
    published_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_consent_document_published", "published_at"),
    )


class ConsentSignature(Base):
    """One row per successful signing. Only the revocation columns are ever updated."""

    __tablename__ = "consent_signatures"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False)
    document_version = Column(String(20), nullable=False)
    document_checksum = Column(String(64), nullable=False)
    signed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    biometric_verified = Column(Boolean, nullable=False, default=False)
    biometric_type = Column(String(30), nullable=True)
    biometric_hash = Column(String(64), nullable=True)
    scrolled_to_bottom = Column(Boolean, nullable=False, default=False)
    time_spent_reading_seconds = Column(Integer, nullable=False, default=0)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(255), default="")
    is_valid = Column(Boolean, nullable=False, default=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_reason = Column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_consent_signature_user", "user_id", "is_valid"),
        Index("idx_consent_signature_version", "document_version"),
    )
