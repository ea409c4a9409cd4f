"""Notifications to the external account / subscription service.

The protection pipeline never owns account state. It signals three facts:
consent satisfied, consent revoked, and enforcement triggered. Each call either
returns once the account service has confirmed it or raises
AccountServiceError.
"""

import logging

import httpx

from lifeline.config import settings
from lifeline.core.exceptions import AccountServiceError

logger = logging.getLogger(__name__)


class AccountNotifier:
    """Interface to the account / subscription collaborator."""

    async def consent_satisfied(self, user_id: str, document_version: str) -> None:
        raise NotImplementedError

    async def consent_revoked(self, user_id: str, reason: str) -> None:
        raise NotImplementedError

    async def enforcement_triggered(self, user_id: str, violation_count: int) -> None:
        raise NotImplementedError


class SimulatedAccountNotifier(AccountNotifier):
    """Logs notifications instead of delivering them (local development)."""

    async def consent_satisfied(self, user_id: str, document_version: str) -> None:
        logger.info("Consent satisfied for user %s (version %s)", user_id, document_version)

    async def consent_revoked(self, user_id: str, reason: str) -> None:
        logger.info("Consent revoked for user %s: %s", user_id, reason)

    async def enforcement_triggered(self, user_id: str, violation_count: int) -> None:
        logger.warning("Three-strike enforcement for user %s after %d violations", user_id, violation_count)


class HttpAccountNotifier(AccountNotifier):
    """Posts notifications to ACCOUNT_SERVICE_URL and waits for a 2xx answer."""

    def __init__(self, base_url: str, timeout_seconds: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    async def _post(self, path: str, payload: dict, action: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds)) as client:
                resp = await client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as exc:
            logger.error("Account service unreachable for %s: %s", action, exc.__class__.__name__)
            raise AccountServiceError(action) from exc
        if resp.status_code >= 400:
            logger.error("Account service rejected %s with HTTP %d", action, resp.status_code)
            raise AccountServiceError(action)

    async def consent_satisfied(self, user_id: str, document_version: str) -> None:
        await self._post(
            f"/accounts/{user_id}/consent",
            {"consent_valid": True, "document_version": document_version},
            "consent confirmation",
        )

    async def consent_revoked(self, user_id: str, reason: str) -> None:
        await self._post(
            f"/accounts/{user_id}/consent",
            {"consent_valid": False, "reason": reason},
            "consent revocation",
        )

    async def enforcement_triggered(self, user_id: str, violation_count: int) -> None:
        await self._post(
            f"/accounts/{user_id}/suspension",
            {"reason": "content_protection_violations", "violation_count": violation_count},
            "account suspension",
        )


def get_account_notifier() -> AccountNotifier:
    """Build the notifier selected by ACCOUNT_SERVICE_MODE."""
    if settings.account_service_mode == "http":
        return HttpAccountNotifier(
            settings.account_service_url,
            timeout_seconds=settings.account_service_timeout_seconds,
        )
    return SimulatedAccountNotifier()
