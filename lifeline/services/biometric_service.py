"""Biometric proof verification for consent signing.

The platform (Face ID, Touch ID, Android BiometricPrompt) performs the actual
check on device; the server only receives a signed assertion. Verifiers return
a BiometricResult and never raise for a rejected proof.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass

from lifeline.core.hashing import hash_biometric_proof

logger = logging.getLogger(__name__)

SUPPORTED_BIOMETRIC_TYPES = ("FACE_ID", "TOUCH_ID", "FINGERPRINT", "FACE_UNLOCK", "IRIS")


@dataclass(frozen=True)
class BiometricResult:
    success: bool
    biometric_type: str | None = None
    proof_hash: str | None = None
    reason: str = ""


class BiometricVerifier:
    """Interface for platform biometric attestation checks."""

    async def verify(self, user_id: str, proof: dict | None) -> BiometricResult:
        raise NotImplementedError


class PlatformAttestationVerifier(BiometricVerifier):
    """Accepts proofs that carry a supported type and a device assertion.

    When ``signing_secret`` is set, the assertion must also be the hex
    HMAC-SHA256 of ``"{user_id}:{challenge}"`` under that secret, which is how
    the mobile client's attestation relay signs successful biometric prompts.
    """

    def __init__(self, signing_secret: str = ""):
        self.signing_secret = signing_secret

    async def verify(self, user_id: str, proof: dict | None) -> BiometricResult:
        if not proof:
            return BiometricResult(success=False, reason="missing proof")

        biometric_type = str(proof.get("type", "")).upper()
        assertion = proof.get("assertion")
        if biometric_type not in SUPPORTED_BIOMETRIC_TYPES:
            return BiometricResult(success=False, reason="unsupported biometric type")
        if not assertion:
            return BiometricResult(success=False, biometric_type=biometric_type, reason="missing assertion")

        if self.signing_secret:
            challenge = str(proof.get("challenge", ""))
            expected = hmac.new(
                self.signing_secret.encode("utf-8"),
                f"{user_id}:{challenge}".encode("utf-8"),
                hashlib.sha256,
            ).hexdigest()
            if not hmac.compare_digest(expected, str(assertion)):
                logger.warning("Biometric assertion signature mismatch for user %s", user_id)
                return BiometricResult(success=False, biometric_type=biometric_type, reason="invalid assertion")

        return BiometricResult(
            success=True,
            biometric_type=biometric_type,
            proof_hash=hash_biometric_proof(proof),
        )


def get_biometric_verifier() -> BiometricVerifier:
    from lifeline.config import settings

    return PlatformAttestationVerifier(signing_secret=settings.biometric_signing_secret)
