"""Protected content access and screen-capture reporting."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.api.deps import device_info, get_gateway, get_violation_tracker
from lifeline.core.auth import get_current_user_id, require_admin
from lifeline.core.exceptions import ForbiddenError
from lifeline.database import get_db
from lifeline.models.violation import ViolationRecord
from lifeline.schemas.protection import AccessRequest, CaptureReportRequest
from lifeline.services import access_log_service
from lifeline.services.gateway_service import DeviceInfo, ProtectedContentGateway
from lifeline.services.violation_service import ViolationTracker

router = APIRouter(prefix="/protected", tags=["protected-content"])


def _violation_dict(v: ViolationRecord) -> dict:
    return {
        "id": v.id,
        "subscriber_id": v.subscriber_id,
        "creator_id": v.creator_id,
        "content_id": v.content_id,
        "kind": v.kind,
        "warning_issued": v.warning_issued,
        "detected_at": v.detected_at.isoformat() if v.detected_at else None,
    }


@router.post("/captures")
async def report_capture(
    req: CaptureReportRequest,
    gateway: ProtectedContentGateway = Depends(get_gateway),
    user_id: str = Depends(get_current_user_id),
):
    outcome = await gateway.report_capture(user_id, req.creator_id, req.content_id, req.kind)
    return {
        "decision": outcome.decision.value,
        "violation_count": outcome.violation_count,
        "limit": outcome.limit,
        "violation": _violation_dict(outcome.record),
    }


@router.get("/violations/me")
async def my_violations(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    tracker: ViolationTracker = Depends(get_violation_tracker),
    user_id: str = Depends(get_current_user_id),
):
    records = await tracker.list_for_subscriber(user_id, limit=page_size, offset=(page - 1) * page_size)
    return {
        "violations": [_violation_dict(v) for v in records],
        "stats": await tracker.stats_for(user_id),
        "page": page,
        "page_size": page_size,
    }


@router.get("/creators/{creator_id}/violations")
async def creator_violations(
    creator_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    tracker: ViolationTracker = Depends(get_violation_tracker),
    user_id: str = Depends(get_current_user_id),
):
    if user_id != creator_id:
        raise ForbiddenError("Creators can only view violations on their own content")
    records = await tracker.list_for_creator(creator_id, limit=page_size, offset=(page - 1) * page_size)
    return {
        "creator_id": creator_id,
        "violations": [_violation_dict(v) for v in records],
        "page": page,
        "page_size": page_size,
    }


@router.get("/access-log/verify")
async def verify_access_log(
    limit: int = Query(1000, ge=1, le=10000),
    db: AsyncSession = Depends(get_db),
    _admin_id: str = Depends(require_admin),
):
    return await access_log_service.verify_access_chain(db, limit)


@router.get("/{content_id}/access-log")
async def content_access_log(
    content_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _admin_id: str = Depends(require_admin),
):
    entries = await access_log_service.list_access(db, content_id, limit=page_size, offset=(page - 1) * page_size)
    return {
        "content_id": content_id,
        "entries": [
            {
                "id": e.id, "user_id": e.user_id, "issuance_id": e.issuance_id,
                "action": e.action, "device_id": e.device_id,
                "sequence": e.sequence, "entry_hash": e.entry_hash, "created_at": str(e.created_at),
            }
            for e in entries
        ],
        "page": page,
        "page_size": page_size,
    }


@router.post("/{content_id}/access")
async def request_access(
    content_id: str,
    req: AccessRequest | None = None,
    gateway: ProtectedContentGateway = Depends(get_gateway),
    device: DeviceInfo = Depends(device_info),
    user_id: str = Depends(get_current_user_id),
):
    grant = await gateway.request_access(
        user_id, content_id, kind=(req.kind if req else "forensic"), device=device,
    )
    return {
        "granted": grant.granted,
        "content_id": grant.content_id,
        "watermark_token": grant.watermark_token,
        "short_code": grant.short_code,
        "kind": grant.kind,
        "issuance_id": grant.issuance_id,
        "issued_at": grant.issued_at.isoformat(),
    }
