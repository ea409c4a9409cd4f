"""Consent gate for NDA-protected content (Shadow Self reports).

A signature counts only for the document version it was made against. Publishing
a new version silently invalidates every older signature. Read time,
scroll-to-bottom and the biometric check are evaluated independently and all
must pass at signing time; a failed attempt leaves no record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.config import settings
from lifeline.core.exceptions import (
    AccountServiceError,
    BiometricRequiredError,
    DocumentChangedError,
    DocumentNotFoundError,
    IncompleteReadError,
    InsufficientReadTimeError,
    InvalidInputError,
)
from lifeline.core.hashing import compute_document_checksum
from lifeline.core.persistence import storage_guard
from lifeline.models.consent import ConsentDocument, ConsentSignature
from lifeline.services.account_service import AccountNotifier
from lifeline.services.biometric_service import BiometricVerifier

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_PATH = Path(__file__).resolve().parent.parent / "documents" / "shadow_self_nda.txt"


@dataclass(frozen=True)
class ReadingMetrics:
    time_spent_reading_seconds: int
    scrolled_to_bottom: bool


class ConsentGate:
    def __init__(
        self,
        db: AsyncSession,
        biometric: BiometricVerifier,
        accounts: AccountNotifier,
    ):
        self.db = db
        self.biometric = biometric
        self.accounts = accounts

    # ── Document store ──

    async def current_document_record(self) -> ConsentDocument | None:
        async with storage_guard(self.db, "consent document lookup", commit=False):
            result = await self.db.execute(
                select(ConsentDocument).order_by(ConsentDocument.published_at.desc()).limit(1)
            )
        return result.scalar_one_or_none()

    async def current_document(self) -> dict:
        doc = await self.current_document_record()
        if doc is None:
            raise DocumentNotFoundError()
        return {
            "version": doc.version,
            "text": doc.text,
            "checksum": doc.checksum,
            "minimum_read_seconds": doc.minimum_read_seconds,
            "requires_scroll_to_bottom": True,
            "requires_biometric": doc.requires_biometric,
            "published_at": doc.published_at.isoformat() if doc.published_at else None,
        }

    async def publish_document(
        self,
        version: str,
        text: str,
        minimum_read_seconds: int | None = None,
    ) -> ConsentDocument:
        """Publish a new document version and make it the current one."""
        version = (version or "").strip()
        if not version or not text or not text.strip():
            raise InvalidInputError("version and text are required")
        if minimum_read_seconds is not None and minimum_read_seconds < 0:
            raise InvalidInputError("minimum_read_seconds cannot be negative")

        async with storage_guard(self.db, "consent document lookup", commit=False):
            existing = await self.db.execute(
                select(ConsentDocument.id).where(ConsentDocument.version == version)
            )
        if existing.scalar_one_or_none() is not None:
            raise InvalidInputError(f"document version {version} already exists")

        doc = ConsentDocument(
            version=version,
            text=text,
            checksum=compute_document_checksum(text),
            minimum_read_seconds=(
                minimum_read_seconds
                if minimum_read_seconds is not None
                else settings.consent_minimum_read_seconds
            ),
            requires_scroll_to_bottom=True,
            requires_biometric=True,
            published_at=datetime.now(timezone.utc),
        )
        async with storage_guard(self.db, "consent document publication"):
            self.db.add(doc)
        logger.info("Consent document version %s published (checksum %s...)", version, doc.checksum[:12])
        return doc

    async def ensure_default_document(self) -> ConsentDocument:
        """Seed the packaged agreement when no document has been published yet."""
        doc = await self.current_document_record()
        if doc is not None:
            return doc
        text = DEFAULT_DOCUMENT_PATH.read_text(encoding="utf-8")
        return await self.publish_document(settings.consent_default_version, text)

    # ── Signing ──

    async def sign(
        self,
        user_id: str,
        biometric_proof: dict | None,
        reading_metrics: ReadingMetrics,
        *,
        document_checksum: str | None = None,
        ip_address: str | None = None,
        user_agent: str = "",
    ) -> ConsentSignature:
        doc = await self.current_document_record()
        if doc is None:
            raise DocumentNotFoundError()

        if document_checksum and document_checksum != doc.checksum:
            logger.warning("User %s signed against a stale document text (current %s)", user_id, doc.version)
            raise DocumentChangedError(doc.version)
        if reading_metrics.time_spent_reading_seconds < doc.minimum_read_seconds:
            raise InsufficientReadTimeError(doc.minimum_read_seconds)
        if not reading_metrics.scrolled_to_bottom:
            raise IncompleteReadError()

        result = await self.biometric.verify(user_id, biometric_proof)
        if not result.success:
            logger.info("Biometric check failed for user %s: %s", user_id, result.reason)
            raise BiometricRequiredError()

        signature = ConsentSignature(
            user_id=user_id,
            document_version=doc.version,
            document_checksum=doc.checksum,
            signed_at=datetime.now(timezone.utc),
            biometric_verified=True,
            biometric_type=result.biometric_type,
            biometric_hash=result.proof_hash,
            scrolled_to_bottom=True,
            time_spent_reading_seconds=reading_metrics.time_spent_reading_seconds,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255],
            is_valid=True,
        )
        async with storage_guard(self.db, "consent signing"):
            self.db.add(signature)
        logger.info("User %s signed consent document %s", user_id, doc.version)

        # The signature row is the source of truth; the account record is a mirror.
        try:
            await self.accounts.consent_satisfied(user_id, doc.version)
        except AccountServiceError:
            logger.warning("Account service not updated after consent by user %s", user_id)
        return signature

    async def is_consent_valid(self, user_id: str) -> bool:
        doc = await self.current_document_record()
        if doc is None:
            return False
        async with storage_guard(self.db, "consent lookup", commit=False):
            result = await self.db.execute(
                select(ConsentSignature.id)
                .where(
                    ConsentSignature.user_id == user_id,
                    ConsentSignature.document_version == doc.version,
                    ConsentSignature.is_valid.is_(True),
                    ConsentSignature.revoked_at.is_(None),
                )
                .limit(1)
            )
        return result.scalar_one_or_none() is not None

    async def get_signature(self, user_id: str) -> ConsentSignature | None:
        """Latest non-revoked signature for any version."""
        async with storage_guard(self.db, "consent signature lookup", commit=False):
            result = await self.db.execute(
                select(ConsentSignature)
                .where(ConsentSignature.user_id == user_id, ConsentSignature.is_valid.is_(True))
                .order_by(ConsentSignature.signed_at.desc())
                .limit(1)
            )
        return result.scalar_one_or_none()

    async def history(self, user_id: str) -> list[ConsentSignature]:
        async with storage_guard(self.db, "consent signature lookup", commit=False):
            result = await self.db.execute(
                select(ConsentSignature)
                .where(ConsentSignature.user_id == user_id)
                .order_by(ConsentSignature.signed_at.asc())
            )
        return list(result.scalars().all())

    async def revoke(self, user_id: str, reason: str) -> int:
        """Administratively revoke every valid signature of a user. History is kept."""
        if not reason or not reason.strip():
            raise InvalidInputError("a revocation reason is required")

        async with storage_guard(self.db, "consent revocation"):
            result = await self.db.execute(
                update(ConsentSignature)
                .where(ConsentSignature.user_id == user_id, ConsentSignature.is_valid.is_(True))
                .values(is_valid=False, revoked_at=datetime.now(timezone.utc), revoke_reason=reason[:500])
                .execution_options(synchronize_session="fetch")
            )
        revoked = result.rowcount or 0
        logger.info("Revoked %d consent signature(s) for user %s: %s", revoked, user_id, reason)

        if revoked:
            try:
                await self.accounts.consent_revoked(user_id, reason)
            except AccountServiceError:
                logger.warning("Account service not updated after consent revocation for user %s", user_id)
        return revoked
