"""Per-viewer watermark issuance and leak tracing."""

import logging
import secrets
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.config import settings
from lifeline.core.exceptions import InvalidInputError
from lifeline.core.hashing import compute_embed_token, short_code_for_token
from lifeline.core.persistence import storage_guard
from lifeline.models.watermark import WatermarkIssuance
from lifeline.services.media_watermark import WATERMARK_KINDS, embed_in_image, extract_from_image

logger = logging.getLogger(__name__)


class WatermarkIssuer:
    """Issues one unguessable embed token per (viewer, content, access)."""

    def __init__(self, db: AsyncSession, *, secret: str | None = None):
        self.db = db
        self.secret = secret or settings.watermark_secret

    async def issue(self, content_id: str, viewer_id: str, kind: str = "invisible") -> WatermarkIssuance:
        if not content_id or not viewer_id:
            raise InvalidInputError("content_id and viewer_id are required")
        if kind not in WATERMARK_KINDS:
            raise InvalidInputError(f"kind must be one of {', '.join(WATERMARK_KINDS)}")

        issued_at = datetime.now(timezone.utc)
        token = compute_embed_token(
            self.secret, content_id, viewer_id, issued_at.isoformat(), secrets.token_hex(16),
        )
        issuance = WatermarkIssuance(
            content_id=content_id,
            viewer_id=viewer_id,
            embed_token=token,
            short_code=short_code_for_token(token),
            kind=kind,
            issued_at=issued_at,
        )
        async with storage_guard(self.db, "watermark issuance"):
            self.db.add(issuance)

        logger.info("Watermark %s issued for content %s, viewer %s", issuance.short_code, content_id, viewer_id)
        return issuance

    async def list_for_content(
        self, content_id: str, *, limit: int = 100, offset: int = 0,
    ) -> list[WatermarkIssuance]:
        async with storage_guard(self.db, "watermark lookup", commit=False):
            result = await self.db.execute(
                select(WatermarkIssuance)
                .where(WatermarkIssuance.content_id == content_id)
                .order_by(WatermarkIssuance.issued_at.asc(), WatermarkIssuance.id.asc())
                .offset(offset)
                .limit(limit)
            )
        return list(result.scalars().all())

    async def find_by_token(self, embed_token: str) -> WatermarkIssuance | None:
        async with storage_guard(self.db, "watermark lookup", commit=False):
            result = await self.db.execute(
                select(WatermarkIssuance).where(WatermarkIssuance.embed_token == embed_token.lower())
            )
        return result.scalar_one_or_none()

    async def find_by_short_code(self, short_code: str) -> list[WatermarkIssuance]:
        # Short codes are display text; collisions are possible, so return every match.
        async with storage_guard(self.db, "watermark lookup", commit=False):
            result = await self.db.execute(
                select(WatermarkIssuance)
                .where(WatermarkIssuance.short_code == short_code.strip().upper())
                .order_by(WatermarkIssuance.issued_at.asc())
            )
        return list(result.scalars().all())

    def embed(self, issuance: WatermarkIssuance, media: bytes) -> bytes:
        return embed_in_image(media, issuance.embed_token, issuance.kind)

    async def trace(self, media: bytes) -> WatermarkIssuance | None:
        """Find the issuance whose token is embedded in a leaked image."""
        token = extract_from_image(media)
        if token is None:
            return None
        issuance = await self.find_by_token(token)
        if issuance is not None:
            logger.warning(
                "Leaked media traced to viewer %s (content %s, issued %s)",
                issuance.viewer_id, issuance.content_id, issuance.issued_at,
            )
        return issuance
