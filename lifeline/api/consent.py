"""Consent (NDA) endpoints for protected content."""

from fastapi import APIRouter, Depends, Request

from lifeline.api.deps import get_consent_gate
from lifeline.core.auth import get_current_user_id, require_admin
from lifeline.schemas.protection import ConsentSignRequest, DocumentPublishRequest, RevokeRequest
from lifeline.services.consent_service import ConsentGate, ReadingMetrics

router = APIRouter(prefix="/consent", tags=["consent"])


@router.get("/document")
async def get_current_document(gate: ConsentGate = Depends(get_consent_gate)):
    return await gate.current_document()


@router.post("/sign", status_code=201)
async def sign_consent(
    req: ConsentSignRequest,
    request: Request,
    gate: ConsentGate = Depends(get_consent_gate),
    user_id: str = Depends(get_current_user_id),
):
    signature = await gate.sign(
        user_id,
        req.biometric_proof,
        ReadingMetrics(
            time_spent_reading_seconds=req.time_spent_reading_seconds,
            scrolled_to_bottom=req.scrolled_to_bottom,
        ),
        document_checksum=req.document_checksum,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", ""),
    )
    return {
        "id": signature.id,
        "document_version": signature.document_version,
        "document_checksum": signature.document_checksum,
        "signed_at": signature.signed_at.isoformat(),
        "biometric_type": signature.biometric_type,
        "is_valid": signature.is_valid,
    }


@router.get("/status")
async def consent_status(
    gate: ConsentGate = Depends(get_consent_gate),
    user_id: str = Depends(get_current_user_id),
):
    doc = await gate.current_document_record()
    signature = await gate.get_signature(user_id)
    return {
        "consent_valid": await gate.is_consent_valid(user_id),
        "current_version": doc.version if doc else None,
        "signed_version": signature.document_version if signature else None,
        "signed_at": signature.signed_at.isoformat() if signature else None,
    }


@router.post("/documents", status_code=201)
async def publish_document(
    req: DocumentPublishRequest,
    gate: ConsentGate = Depends(get_consent_gate),
    _admin_id: str = Depends(require_admin),
):
    doc = await gate.publish_document(req.version, req.text, req.minimum_read_seconds)
    return {
        "version": doc.version,
        "checksum": doc.checksum,
        "minimum_read_seconds": doc.minimum_read_seconds,
        "published_at": doc.published_at.isoformat(),
    }


@router.post("/{user_id}/revoke")
async def revoke_consent(
    user_id: str,
    req: RevokeRequest,
    gate: ConsentGate = Depends(get_consent_gate),
    _admin_id: str = Depends(require_admin),
):
    revoked = await gate.revoke(user_id, req.reason)
    return {"user_id": user_id, "revoked": revoked}
