import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.database import get_db
from lifeline.models.content_fingerprint import ContentFingerprint
from lifeline.models.violation import ViolationRecord
from lifeline.models.watermark import WatermarkIssuance

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_VERSION = "0.1.0"


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    fingerprints = (await db.execute(select(func.count(ContentFingerprint.id)))).scalar() or 0
    issuances = (await db.execute(select(func.count(WatermarkIssuance.id)))).scalar() or 0
    violations = (await db.execute(select(func.count(ViolationRecord.id)))).scalar() or 0

    return {
        "status": "healthy",
        "version": _VERSION,
        "fingerprints_count": fingerprints,
        "watermarks_count": issuances,
        "violations_count": violations,
    }


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed, database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )
