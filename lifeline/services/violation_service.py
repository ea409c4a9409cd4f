"""Screenshot / screen-recording violation tracking.

Records are append-only and never deduplicated: every reported capture is a
separate incident. The insert and the per-subscriber counter increment run in
one transaction behind a per-subscriber lock, so the count handed to the
enforcement policy always includes the incident that was just written, even
when a client fires several reports at once.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.config import settings
from lifeline.core.exceptions import InvalidInputError
from lifeline.core.locks import KeyedLocks
from lifeline.core.persistence import storage_guard
from lifeline.models.violation import ViolationCounter, ViolationRecord
from lifeline.services.enforcement_policy import EnforcementDecision, enforcement_state, evaluate

logger = logging.getLogger(__name__)

VIOLATION_KINDS = ("screenshot", "recording", "other")

subscriber_locks = KeyedLocks()


class ViolationTracker:
    """Append-only violation log with read-after-write violation counts."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        limit: int | None = None,
        locks: KeyedLocks | None = None,
    ):
        self.db = db
        self.limit = limit if limit is not None else settings.three_strike_limit
        self.locks = locks or subscriber_locks

    async def record_and_count(
        self,
        subscriber_id: str,
        creator_id: str,
        content_id: str,
        kind: str = "screenshot",
    ) -> tuple[ViolationRecord, int]:
        """Append a violation and return it with the subscriber's new total."""
        if not subscriber_id or not creator_id or not content_id:
            raise InvalidInputError("subscriber_id, creator_id and content_id are required")
        if kind not in VIOLATION_KINDS:
            raise InvalidInputError(f"kind must be one of {', '.join(VIOLATION_KINDS)}")

        async with self.locks.get(subscriber_id):
            async with storage_guard(self.db, "violation recording"):
                now = datetime.now(timezone.utc)
                result = await self.db.execute(
                    update(ViolationCounter)
                    .where(ViolationCounter.subscriber_id == subscriber_id)
                    .values(count=ViolationCounter.count + 1, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    self.db.add(ViolationCounter(subscriber_id=subscriber_id, count=1, updated_at=now))
                    await self.db.flush()

                count = (
                    await self.db.execute(
                        select(ViolationCounter.count).where(ViolationCounter.subscriber_id == subscriber_id)
                    )
                ).scalar_one()

                record = ViolationRecord(
                    subscriber_id=subscriber_id,
                    creator_id=creator_id,
                    content_id=content_id,
                    kind=kind,
                    warning_issued=evaluate(count, self.limit) != EnforcementDecision.NONE,
                    detected_at=now,
                )
                self.db.add(record)

        logger.info(
            "Capture violation recorded: subscriber %s, content %s, kind %s (total %d)",
            subscriber_id, content_id, kind, count,
        )
        return record, count

    async def record(
        self,
        subscriber_id: str,
        creator_id: str,
        content_id: str,
        kind: str = "screenshot",
    ) -> ViolationRecord:
        record, _ = await self.record_and_count(subscriber_id, creator_id, content_id, kind)
        return record

    async def count_for(self, subscriber_id: str) -> int:
        """Total historical violations for a subscriber."""
        async with storage_guard(self.db, "violation count", commit=False):
            result = await self.db.execute(
                select(func.count(ViolationRecord.id)).where(ViolationRecord.subscriber_id == subscriber_id)
            )
        return result.scalar() or 0

    def evaluate(self, count: int) -> EnforcementDecision:
        return evaluate(count, self.limit)

    async def list_for_subscriber(
        self, subscriber_id: str, *, limit: int = 50, offset: int = 0,
    ) -> list[ViolationRecord]:
        async with storage_guard(self.db, "violation history", commit=False):
            result = await self.db.execute(
                select(ViolationRecord)
                .where(ViolationRecord.subscriber_id == subscriber_id)
                .order_by(ViolationRecord.detected_at.desc())
                .offset(offset)
                .limit(limit)
            )
        return list(result.scalars().all())

    async def list_for_creator(
        self, creator_id: str, *, limit: int = 50, offset: int = 0,
    ) -> list[ViolationRecord]:
        async with storage_guard(self.db, "violation history", commit=False):
            result = await self.db.execute(
                select(ViolationRecord)
                .where(ViolationRecord.creator_id == creator_id)
                .order_by(ViolationRecord.detected_at.desc())
                .offset(offset)
                .limit(limit)
            )
        return list(result.scalars().all())

    async def stats_for(self, subscriber_id: str) -> dict:
        async with storage_guard(self.db, "violation stats", commit=False):
            result = await self.db.execute(
                select(ViolationRecord.kind, ViolationRecord.detected_at)
                .where(ViolationRecord.subscriber_id == subscriber_id)
            )
            rows = result.all()
        by_kind = Counter(kind for kind, _ in rows)
        last = max((detected for _, detected in rows), default=None)
        total = len(rows)
        return {
            "subscriber_id": subscriber_id,
            "total": total,
            "by_kind": dict(by_kind),
            "last_violation_at": last.isoformat() if last else None,
            "limit": self.limit,
            "state": enforcement_state(total, self.limit).value,
        }
