"""Protected content gateway.

Composes the consent gate, watermark issuer, violation tracker and access log
into the two client-facing flows: requesting protected content and reporting a
screen capture. The gateway decides and signals; account state belongs to the
account service.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.core.exceptions import AccountSuspendedError, ConsentRequiredError
from lifeline.models.violation import ViolationRecord
from lifeline.services import access_log_service
from lifeline.services.account_service import AccountNotifier
from lifeline.services.consent_service import ConsentGate
from lifeline.services.enforcement_policy import EnforcementDecision
from lifeline.services.violation_service import ViolationTracker
from lifeline.services.watermark_service import WatermarkIssuer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str = "unknown"
    ip_address: str | None = None
    user_agent: str = ""


@dataclass(frozen=True)
class AccessGrant:
    content_id: str
    issuance_id: str
    watermark_token: str
    short_code: str
    kind: str
    issued_at: datetime
    granted: bool = True


@dataclass(frozen=True)
class CaptureOutcome:
    decision: EnforcementDecision
    violation_count: int
    limit: int
    record: ViolationRecord = field(repr=False)


class ProtectedContentGateway:
    def __init__(
        self,
        db: AsyncSession,
        consent: ConsentGate,
        watermarks: WatermarkIssuer,
        violations: ViolationTracker,
        accounts: AccountNotifier,
    ):
        self.db = db
        self.consent = consent
        self.watermarks = watermarks
        self.violations = violations
        self.accounts = accounts

    async def request_access(
        self,
        user_id: str,
        content_id: str,
        *,
        kind: str = "forensic",
        device: DeviceInfo | None = None,
    ) -> AccessGrant:
        """Grant access to protected content, or fail closed.

        Nothing is issued or logged unless consent for the current document
        version is in place and the subscriber is not under enforcement.
        """
        if not await self.consent.is_consent_valid(user_id):
            doc = await self.consent.current_document_record()
            logger.info("Protected access denied for user %s: consent missing", user_id)
            raise ConsentRequiredError(doc.version if doc else None)

        count = await self.violations.count_for(user_id)
        if self.violations.evaluate(count) == EnforcementDecision.ENFORCE:
            logger.warning("Protected access denied for user %s: %d violations", user_id, count)
            raise AccountSuspendedError(count)

        issuance = await self.watermarks.issue(content_id, user_id, kind)

        device = device or DeviceInfo()
        await access_log_service.log_access(
            self.db,
            user_id,
            content_id,
            issuance_id=issuance.id,
            action="view",
            device_id=device.device_id,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
        )

        return AccessGrant(
            content_id=content_id,
            issuance_id=issuance.id,
            watermark_token=issuance.embed_token,
            short_code=issuance.short_code,
            kind=issuance.kind,
            issued_at=issuance.issued_at,
        )

    async def report_capture(
        self,
        user_id: str,
        creator_id: str,
        content_id: str,
        kind: str = "screenshot",
    ) -> CaptureOutcome:
        """Record a capture, evaluate the policy, and signal enforcement.

        The account service must confirm a suspension before the outcome is
        returned; if it cannot, AccountServiceError propagates and the
        violation stays recorded.
        """
        record, count = await self.violations.record_and_count(user_id, creator_id, content_id, kind)
        decision = self.violations.evaluate(count)

        if decision == EnforcementDecision.ENFORCE:
            await self.accounts.enforcement_triggered(user_id, count)
            logger.warning("Enforcement signalled for subscriber %s (%d violations)", user_id, count)
        elif decision == EnforcementDecision.WARN:
            logger.info("Final warning for subscriber %s (%d violations)", user_id, count)

        return CaptureOutcome(
            decision=decision,
            violation_count=count,
            limit=self.violations.limit,
            record=record,
        )
