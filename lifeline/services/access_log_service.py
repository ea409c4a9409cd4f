"""Append-only protected-content access log with SHA-256 hash chain.

Entries are linked in ``sequence`` order. Appends are serialised in-process
so concurrent grants cannot fork the chain; the unique ``sequence`` column
rejects a fork from a second process with a StorageError.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.core.hashing import compute_access_hash
from lifeline.core.locks import KeyedLocks
from lifeline.core.persistence import storage_guard
from lifeline.models.access_log import ProtectedAccessLog

logger = logging.getLogger(__name__)

_CHAIN_KEY = "protected-access-log"
chain_locks = KeyedLocks()


def _chain_timestamp(ts: datetime) -> str:
    # SQLite drops tzinfo on read, so the chain always hashes naive UTC.
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts.isoformat()


async def log_access(
    db: AsyncSession,
    user_id: str,
    content_id: str,
    *,
    issuance_id: str | None = None,
    action: str = "view",
    device_id: str = "unknown",
    ip_address: str | None = None,
    user_agent: str = "",
) -> ProtectedAccessLog:
    async with chain_locks.get(_CHAIN_KEY):
        async with storage_guard(db, "access logging"):
            latest = await db.execute(
                select(ProtectedAccessLog.sequence, ProtectedAccessLog.entry_hash)
                .order_by(ProtectedAccessLog.sequence.desc())
                .limit(1)
            )
            row = latest.first()
            prev_sequence, prev_hash = (row.sequence, row.entry_hash) if row else (0, None)

            created_at = datetime.now(timezone.utc)
            entry = ProtectedAccessLog(
                sequence=prev_sequence + 1,
                user_id=user_id,
                content_id=content_id,
                issuance_id=issuance_id,
                action=action,
                device_id=device_id or "unknown",
                ip_address=ip_address,
                user_agent=(user_agent or "")[:255],
                prev_hash=prev_hash,
                entry_hash=compute_access_hash(
                    prev_hash, user_id, content_id, issuance_id, action, _chain_timestamp(created_at),
                ),
                created_at=created_at,
            )
            db.add(entry)
    return entry


async def list_access(
    db: AsyncSession, content_id: str, *, limit: int = 50, offset: int = 0,
) -> list[ProtectedAccessLog]:
    async with storage_guard(db, "access log lookup", commit=False):
        result = await db.execute(
            select(ProtectedAccessLog)
            .where(ProtectedAccessLog.content_id == content_id)
            .order_by(ProtectedAccessLog.sequence.desc())
            .offset(offset)
            .limit(limit)
        )
    return list(result.scalars().all())


async def verify_access_chain(db: AsyncSession, limit: int = 1000) -> dict:
    async with storage_guard(db, "access log verification", commit=False):
        result = await db.execute(
            select(ProtectedAccessLog).order_by(ProtectedAccessLog.sequence.asc()).limit(limit)
        )
        entries = list(result.scalars().all())

    prev_hash = None
    checked = 0
    for entry in entries:
        expected = compute_access_hash(
            prev_hash, entry.user_id, entry.content_id, entry.issuance_id,
            entry.action, _chain_timestamp(entry.created_at),
        )
        if entry.prev_hash != prev_hash or expected != entry.entry_hash:
            logger.warning("Access log chain broken at entry %s", entry.id)
            return {"valid": False, "broken_at": entry.id, "entry_number": checked + 1}
        prev_hash = entry.entry_hash
        checked += 1

    return {"valid": True, "entries_checked": checked}
