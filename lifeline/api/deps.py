"""Per-request construction of the protection components.

Collaborator factories are separate dependencies so tests can swap them with
``app.dependency_overrides``.
"""

import base64
import binascii

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.core.exceptions import InvalidInputError
from lifeline.database import get_db
from lifeline.services.account_service import AccountNotifier, get_account_notifier
from lifeline.services.biometric_service import BiometricVerifier, get_biometric_verifier
from lifeline.services.consent_service import ConsentGate
from lifeline.services.gateway_service import DeviceInfo, ProtectedContentGateway
from lifeline.services.ledger_service import ContentLedgerService, LedgerClient, get_ledger_client
from lifeline.services.violation_service import ViolationTracker
from lifeline.services.watermark_service import WatermarkIssuer


def get_ledger_service(
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger_client),
) -> ContentLedgerService:
    return ContentLedgerService(db, ledger)


def get_watermark_issuer(db: AsyncSession = Depends(get_db)) -> WatermarkIssuer:
    return WatermarkIssuer(db)


def get_violation_tracker(db: AsyncSession = Depends(get_db)) -> ViolationTracker:
    return ViolationTracker(db)


def get_consent_gate(
    db: AsyncSession = Depends(get_db),
    biometric: BiometricVerifier = Depends(get_biometric_verifier),
    accounts: AccountNotifier = Depends(get_account_notifier),
) -> ConsentGate:
    return ConsentGate(db, biometric, accounts)


def get_gateway(
    db: AsyncSession = Depends(get_db),
    consent: ConsentGate = Depends(get_consent_gate),
    watermarks: WatermarkIssuer = Depends(get_watermark_issuer),
    violations: ViolationTracker = Depends(get_violation_tracker),
    accounts: AccountNotifier = Depends(get_account_notifier),
) -> ProtectedContentGateway:
    return ProtectedContentGateway(db, consent, watermarks, violations, accounts)


def device_info(request: Request) -> DeviceInfo:
    return DeviceInfo(
        device_id=request.headers.get("x-device-id", "unknown")[:100],
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", ""),
    )


def decode_base64(value: str, field_name: str) -> bytes:
    try:
        data = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError(f"{field_name} must be valid base64")
    if not data:
        raise InvalidInputError(f"{field_name} must not be empty")
    return data
