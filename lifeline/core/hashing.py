"""SHA-256 helpers for content fingerprints, embed tokens and the access-log chain."""

import hashlib
import hmac
import json

from lifeline.core.exceptions import InvalidInputError

SHORT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def compute_fingerprint(content: bytes) -> str:
    """Deterministic SHA-256 hex digest of raw content bytes."""
    if content is None or len(content) == 0:
        raise InvalidInputError("Content to fingerprint must not be empty")
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def compute_document_checksum(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_embed_token(
    secret: str,
    content_id: str,
    viewer_id: str,
    issued_at_iso: str,
    salt: str,
) -> str:
    payload = "|".join([content_id, viewer_id, issued_at_iso, salt])
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def short_code_for_token(token: str) -> str:
    """Human-readable WM-XXXX-XXXX-XXXX-XXXX code derived from an embed token."""
    raw = bytes.fromhex(token)
    chars = [SHORT_CODE_ALPHABET[b % len(SHORT_CODE_ALPHABET)] for b in raw[:16]]
    segments = ["".join(chars[i:i + 4]) for i in range(0, 16, 4)]
    return "WM-" + "-".join(segments)


def hash_biometric_proof(proof: dict) -> str:
    """One-way digest of a biometric proof blob; the blob itself is never stored."""
    return hashlib.sha256(json.dumps(proof, sort_keys=True, default=str).encode("utf-8")).hexdigest()


def compute_access_hash(
    prev_hash: str | None,
    user_id: str,
    content_id: str,
    issuance_id: str | None,
    action: str,
    timestamp_iso: str,
) -> str:
    payload = "|".join([
        prev_hash or "GENESIS",
        user_id,
        content_id,
        issuance_id or "NONE",
        action,
        timestamp_iso,
    ])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
