from fastapi import APIRouter, Depends, Query

from lifeline.api.deps import decode_base64, get_watermark_issuer
from lifeline.core.auth import get_current_user_id
from lifeline.models.watermark import WatermarkIssuance
from lifeline.schemas.protection import TraceRequest
from lifeline.services.watermark_service import WatermarkIssuer

router = APIRouter(prefix="/watermarks", tags=["watermarks"])


def _issuance_dict(wm: WatermarkIssuance) -> dict:
    return {
        "id": wm.id,
        "content_id": wm.content_id,
        "viewer_id": wm.viewer_id,
        "short_code": wm.short_code,
        "kind": wm.kind,
        "issued_at": wm.issued_at.isoformat() if wm.issued_at else None,
    }


@router.get("/{content_id}")
async def list_watermarks(
    content_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    issuer: WatermarkIssuer = Depends(get_watermark_issuer),
    _user_id: str = Depends(get_current_user_id),
):
    issuances = await issuer.list_for_content(
        content_id, limit=page_size, offset=(page - 1) * page_size,
    )
    return {
        "content_id": content_id,
        "watermarks": [_issuance_dict(wm) for wm in issuances],
        "page": page,
        "page_size": page_size,
    }


@router.post("/trace")
async def trace_leak(
    req: TraceRequest,
    issuer: WatermarkIssuer = Depends(get_watermark_issuer),
    _user_id: str = Depends(get_current_user_id),
):
    """Identify the viewer whose watermark is embedded in a leaked image."""
    media = decode_base64(req.media_base64, "media_base64")
    issuance = await issuer.trace(media)
    if issuance is None:
        return {"traced": False}
    return {"traced": True, "watermark": _issuance_dict(issuance)}
