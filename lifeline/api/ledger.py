"""Content fingerprint and trust-badge endpoints.

Verification and badges are public; recording requires an authenticated user.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from lifeline.api.deps import decode_base64, get_ledger_service
from lifeline.core.auth import get_current_user_id, require_admin
from lifeline.models.content_fingerprint import ContentFingerprint
from lifeline.schemas.protection import ContentCompareRequest, FingerprintCreateRequest
from lifeline.services.ledger_service import ContentLedgerService

router = APIRouter(prefix="/ledger", tags=["content-ledger"])


def _fingerprint_dict(fp: ContentFingerprint) -> dict:
    return {
        "id": fp.id,
        "content_id": fp.content_id,
        "hash": fp.hash,
        "anchored": bool(fp.anchored),
        "anchor_reference": fp.anchor_reference,
        "anchor_network": fp.anchor_network,
        "recorded_at": fp.recorded_at.isoformat() if fp.recorded_at else None,
        "superseded": fp.superseded_at is not None,
    }


@router.post("/fingerprints", status_code=201)
async def create_fingerprint(
    req: FingerprintCreateRequest,
    ledger: ContentLedgerService = Depends(get_ledger_service),
    _user_id: str = Depends(get_current_user_id),
):
    content = decode_base64(req.content_base64, "content_base64")
    fingerprint = await ledger.hash_and_anchor(req.content_id, content)
    return _fingerprint_dict(fingerprint)


@router.get("/fingerprints/pending")
async def list_pending_fingerprints(
    limit: int = Query(100, ge=1, le=1000),
    ledger: ContentLedgerService = Depends(get_ledger_service),
    _admin_id: str = Depends(require_admin),
):
    pending = await ledger.pending_anchors(limit)
    return {"fingerprints": [_fingerprint_dict(fp) for fp in pending], "count": len(pending)}


@router.post("/fingerprints/{content_id}/compare")
async def compare_fingerprint(
    content_id: str,
    req: ContentCompareRequest,
    ledger: ContentLedgerService = Depends(get_ledger_service),
    _user_id: str = Depends(get_current_user_id),
):
    content = decode_base64(req.content_base64, "content_base64")
    return await ledger.compare(content_id, content)


@router.post("/fingerprints/{content_id}/retry")
async def retry_anchor(
    content_id: str,
    ledger: ContentLedgerService = Depends(get_ledger_service),
    _admin_id: str = Depends(require_admin),
):
    return _fingerprint_dict(await ledger.retry_anchor(content_id))


@router.get("/verify/{content_hash}")
async def verify_hash(
    content_hash: str,
    ledger: ContentLedgerService = Depends(get_ledger_service),
):
    """Public verification: unknown hashes are a normal result, not an error."""
    return await ledger.verify(content_hash)


@router.get("/badge/{content_id}")
async def trust_badge(
    content_id: str,
    ledger: ContentLedgerService = Depends(get_ledger_service),
):
    badge = await ledger.badge(content_id)
    if badge is None:
        raise HTTPException(status_code=404, detail="Trust badge not available for this content")
    return badge
