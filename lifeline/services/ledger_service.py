"""Content fingerprinting and external ledger anchoring.

Hashing is local and never waits on the ledger. Anchoring is a separate,
time-bounded call: when the ledger is slow or down, the fingerprint is still
persisted with ``anchored=False`` and can be retried later through
``retry_anchor``. Verification is public and never raises for unknown hashes.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
from datetime import datetime, timezone

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.config import settings
from lifeline.core.exceptions import FingerprintNotFoundError, InvalidInputError
from lifeline.core.hashing import compute_fingerprint
from lifeline.core.locks import KeyedLocks
from lifeline.core.persistence import storage_guard
from lifeline.models.content_fingerprint import ContentFingerprint

logger = logging.getLogger(__name__)

_HASH_RE = re.compile(r"^[0-9a-f]{64}$")
BADGE_HASH_PREFIX = 16

content_locks = KeyedLocks()


class LedgerUnavailableError(Exception):
    """The external ledger rejected or could not process an anchor request."""


# ── Ledger clients ──

class LedgerClient:
    """Interface to an external append-only ledger."""

    network: str = ""

    async def anchor(self, content_hash: str) -> str:
        """Register a hash and return the ledger's reference for it."""
        raise NotImplementedError


class SimulatedLedgerClient(LedgerClient):
    """Returns a random transaction-style reference without any network I/O."""

    def __init__(self, network: str = "Polygon"):
        self.network = network

    async def anchor(self, content_hash: str) -> str:
        reference = f"0x{secrets.token_hex(32)}"
        logger.info("Simulated ledger anchor for hash %s... -> %s", content_hash[:12], reference[:18])
        return reference


class HttpLedgerClient(LedgerClient):
    """Anchors hashes through an HTTP anchoring gateway (POST {base_url}/anchors)."""

    def __init__(self, base_url: str, network: str = "Polygon", timeout_seconds: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.network = network
        self.timeout_seconds = timeout_seconds

    async def anchor(self, content_hash: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds)) as client:
                resp = await client.post(
                    f"{self.base_url}/anchors",
                    json={"hash": content_hash, "network": self.network},
                )
        except httpx.TimeoutException as exc:
            raise asyncio.TimeoutError() from exc
        except httpx.RequestError as exc:
            raise LedgerUnavailableError(f"ledger unreachable: {exc.__class__.__name__}") from exc

        if resp.status_code >= 400:
            raise LedgerUnavailableError(f"ledger returned HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise LedgerUnavailableError("ledger response is not JSON") from exc
        if not isinstance(body, dict):
            raise LedgerUnavailableError("ledger response is not a JSON object")

        reference = body.get("reference")
        if not reference:
            raise LedgerUnavailableError("ledger response missing reference")
        return str(reference)


def get_ledger_client() -> LedgerClient:
    """Build the ledger client selected by LEDGER_MODE."""
    if settings.ledger_mode == "http":
        return HttpLedgerClient(
            settings.ledger_url,
            network=settings.ledger_network,
            timeout_seconds=settings.ledger_timeout_seconds,
        )
    return SimulatedLedgerClient(network=settings.ledger_network)


# ── Fingerprint ledger ──

class ContentLedgerService:
    """Records, anchors and verifies content fingerprints."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: LedgerClient,
        *,
        timeout_seconds: float | None = None,
        locks: KeyedLocks | None = None,
    ):
        self.db = db
        self.ledger = ledger
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.ledger_timeout_seconds
        )
        self.locks = locks or content_locks

    @staticmethod
    def compute_fingerprint(content: bytes) -> str:
        return compute_fingerprint(content)

    async def current_fingerprint(self, content_id: str) -> ContentFingerprint | None:
        async with storage_guard(self.db, "fingerprint lookup", commit=False):
            result = await self.db.execute(
                select(ContentFingerprint)
                .where(
                    ContentFingerprint.content_id == content_id,
                    ContentFingerprint.superseded_at.is_(None),
                )
                .order_by(ContentFingerprint.recorded_at.desc())
                .limit(1)
            )
        return result.scalar_one_or_none()

    async def anchor(self, content_id: str, content_hash: str) -> ContentFingerprint:
        """Persist a fingerprint and try to anchor it on the external ledger.

        Re-anchoring the hash already current for ``content_id`` returns the
        existing row. A different hash supersedes the previous fingerprint.
        Anchors for the same content id are serialised, and the partial unique
        index on current rows rejects a second writer in another process.
        """
        if not content_id:
            raise InvalidInputError("content_id is required")
        content_hash = (content_hash or "").lower()
        if not _HASH_RE.match(content_hash):
            raise InvalidInputError("hash must be a 64-character hex SHA-256 digest")

        async with self.locks.get(content_id):
            existing = await self.current_fingerprint(content_id)
            if existing is not None and existing.hash == content_hash:
                return existing

            reference = await self._try_anchor(content_hash)
            now = datetime.now(timezone.utc)
            fingerprint = ContentFingerprint(
                content_id=content_id,
                hash=content_hash,
                anchored=reference is not None,
                anchor_reference=reference,
                anchor_network=self.ledger.network if reference else None,
                recorded_at=now,
                anchored_at=now if reference else None,
            )

            async with storage_guard(self.db, "fingerprint recording"):
                # Re-read inside the write: the ledger call may have taken seconds.
                existing = await self.current_fingerprint(content_id)
                if existing is not None and existing.hash == content_hash:
                    return existing
                if existing is not None:
                    existing.superseded_at = now
                    await self.db.flush()
                    logger.info(
                        "Fingerprint for content %s superseded (%s... -> %s...)",
                        content_id, existing.hash[:12], content_hash[:12],
                    )
                self.db.add(fingerprint)

        logger.info(
            "Fingerprint recorded for content %s: %s... anchored=%s",
            content_id, content_hash[:12], fingerprint.anchored,
        )
        return fingerprint

    async def hash_and_anchor(self, content_id: str, content: bytes) -> ContentFingerprint:
        return await self.anchor(content_id, compute_fingerprint(content))

    async def retry_anchor(self, content_id: str) -> ContentFingerprint:
        """Re-attempt anchoring for the current fingerprint of ``content_id``."""
        async with self.locks.get(content_id):
            fingerprint = await self.current_fingerprint(content_id)
            if fingerprint is None:
                raise FingerprintNotFoundError(content_id)
            if fingerprint.anchored:
                return fingerprint

            reference = await self._try_anchor(fingerprint.hash)
            if reference is None:
                return fingerprint

            async with storage_guard(self.db, "anchor confirmation"):
                fingerprint.anchored = True
                fingerprint.anchor_reference = reference
                fingerprint.anchor_network = self.ledger.network
                fingerprint.anchored_at = datetime.now(timezone.utc)
        logger.info("Late anchor confirmed for content %s", content_id)
        return fingerprint

    async def pending_anchors(self, limit: int = 100) -> list[ContentFingerprint]:
        """Current fingerprints still waiting for a ledger reference, oldest first."""
        async with storage_guard(self.db, "pending anchor lookup", commit=False):
            result = await self.db.execute(
                select(ContentFingerprint)
                .where(
                    ContentFingerprint.anchored.is_(False),
                    ContentFingerprint.superseded_at.is_(None),
                )
                .order_by(ContentFingerprint.recorded_at.asc())
                .limit(limit)
            )
        return list(result.scalars().all())

    async def verify(self, content_hash: str) -> dict:
        """Public lookup of a hash. Unknown or malformed hashes return found=False."""
        normalized = (content_hash or "").strip().lower()
        if not _HASH_RE.match(normalized):
            return {"found": False, "anchored": False, "message": "Content hash not found"}

        async with storage_guard(self.db, "fingerprint verification", commit=False):
            result = await self.db.execute(
                select(ContentFingerprint)
                .where(ContentFingerprint.hash == normalized)
                .order_by(ContentFingerprint.anchored.desc(), ContentFingerprint.recorded_at.asc())
                .limit(1)
            )
        fingerprint = result.scalar_one_or_none()
        if fingerprint is None:
            return {"found": False, "anchored": False, "message": "Content hash not found"}

        return {
            "found": True,
            "anchored": bool(fingerprint.anchored),
            "anchor_reference": fingerprint.anchor_reference,
            "recorded_at": fingerprint.recorded_at.isoformat() if fingerprint.recorded_at else None,
            "superseded": fingerprint.superseded_at is not None,
            "message": (
                "Content is authentic and anchored on the ledger"
                if fingerprint.anchored
                else "Content hash is recorded; ledger anchoring is pending"
            ),
        }

    async def badge(self, content_id: str) -> dict | None:
        """Display-safe trust badge, only for anchored content."""
        fingerprint = await self.current_fingerprint(content_id)
        if fingerprint is None or not fingerprint.anchored:
            return None

        timestamp = fingerprint.anchored_at or fingerprint.recorded_at
        return {
            "verified": True,
            "content_id": content_id,
            "hash": fingerprint.hash[:BADGE_HASH_PREFIX] + "...",
            "network": fingerprint.anchor_network or self.ledger.network,
            "anchor_reference": fingerprint.anchor_reference,
            "timestamp": timestamp.isoformat() if timestamp else None,
        }

    async def compare(self, content_id: str, content: bytes) -> dict:
        """Recompute a hash and compare it with the recorded one. Never mutates."""
        computed = compute_fingerprint(content)
        fingerprint = await self.current_fingerprint(content_id)
        if fingerprint is None:
            raise FingerprintNotFoundError(content_id)
        return {
            "content_id": content_id,
            "matches": computed == fingerprint.hash,
            "recorded_hash": fingerprint.hash,
            "computed_hash": computed,
        }

    async def _try_anchor(self, content_hash: str) -> str | None:
        try:
            return await asyncio.wait_for(self.ledger.anchor(content_hash), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Ledger anchor timed out after %.1fs for hash %s...; recording as pending",
                self.timeout_seconds, content_hash[:12],
            )
        except LedgerUnavailableError as exc:
            logger.warning("Ledger unavailable for hash %s...: %s", content_hash[:12], exc)
        return None
