"""HTTP-level tests for the /api/v1 protection routes."""

import base64
import hashlib
import io

from PIL import Image

from lifeline.core.hashing import compute_document_checksum

API = "/api/v1"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


async def _sign(client, auth_header, token, proof, seconds=45, scrolled=True, **extra):
    return await client.post(
        f"{API}/consent/sign",
        headers=auth_header(token),
        json={
            "biometric_proof": proof,
            "time_spent_reading_seconds": seconds,
            "scrolled_to_bottom": scrolled,
            **extra,
        },
    )


class TestAppShell:
    async def test_root(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.json()["health"] == "/api/v1/health"

    async def test_health_counts(self, client):
        resp = await client.get(f"{API}/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["violations_count"] == 0

    async def test_readiness(self, client):
        resp = await client.get(f"{API}/health/ready")
        assert resp.json() == {"status": "ready", "database": "connected"}

    async def test_security_headers(self, client):
        resp = await client.get("/")
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["Cache-Control"] == "no-store"


class TestLedgerRoutes:
    async def test_record_verify_and_badge(self, client, make_user, auth_header):
        _, token = make_user()
        resp = await client.post(
            f"{API}/ledger/fingerprints",
            headers=auth_header(token),
            json={"content_id": "report-1", "content_base64": _b64(b"shadow self report")},
        )
        assert resp.status_code == 201
        digest = hashlib.sha256(b"shadow self report").hexdigest()
        assert resp.json()["hash"] == digest
        assert resp.json()["anchored"] is True

        verified = await client.get(f"{API}/ledger/verify/{digest}")
        assert verified.status_code == 200
        assert verified.json()["found"] is True

        badge = await client.get(f"{API}/ledger/badge/report-1")
        assert badge.status_code == 200
        assert badge.json()["hash"] == digest[:16] + "..."

    async def test_recording_requires_auth(self, client):
        resp = await client.post(
            f"{API}/ledger/fingerprints",
            json={"content_id": "report-1", "content_base64": _b64(b"x")},
        )
        assert resp.status_code == 401

    async def test_invalid_base64(self, client, make_user, auth_header):
        _, token = make_user()
        resp = await client.post(
            f"{API}/ledger/fingerprints",
            headers=auth_header(token),
            json={"content_id": "report-1", "content_base64": "***"},
        )
        assert resp.status_code == 400

    async def test_unknown_hash_is_200(self, client):
        resp = await client.get(f"{API}/ledger/verify/{'0' * 64}")
        assert resp.status_code == 200
        assert resp.json()["found"] is False

    async def test_pending_content_has_no_badge(self, client, ledger, make_user, auth_header):
        ledger.mode = "down"
        _, token = make_user()
        await client.post(
            f"{API}/ledger/fingerprints",
            headers=auth_header(token),
            json={"content_id": "report-1", "content_base64": _b64(b"x")},
        )
        assert (await client.get(f"{API}/ledger/badge/report-1")).status_code == 404

    async def test_pending_and_retry_are_admin_only(self, client, ledger, make_user, admin_user, auth_header):
        ledger.mode = "down"
        _, token = make_user()
        await client.post(
            f"{API}/ledger/fingerprints",
            headers=auth_header(token),
            json={"content_id": "report-1", "content_base64": _b64(b"x")},
        )
        assert (await client.get(f"{API}/ledger/fingerprints/pending", headers=auth_header(token))).status_code == 403

        _, admin_token = admin_user
        pending = await client.get(f"{API}/ledger/fingerprints/pending", headers=auth_header(admin_token))
        assert pending.json()["count"] == 1

        ledger.mode = "ok"
        retried = await client.post(f"{API}/ledger/fingerprints/report-1/retry", headers=auth_header(admin_token))
        assert retried.status_code == 200
        assert retried.json()["anchored"] is True

    async def test_compare(self, client, make_user, auth_header):
        _, token = make_user()
        await client.post(
            f"{API}/ledger/fingerprints",
            headers=auth_header(token),
            json={"content_id": "report-1", "content_base64": _b64(b"original")},
        )
        resp = await client.post(
            f"{API}/ledger/fingerprints/report-1/compare",
            headers=auth_header(token),
            json={"content_base64": _b64(b"edited")},
        )
        assert resp.json()["matches"] is False

    async def test_compare_unknown_content(self, client, make_user, auth_header):
        _, token = make_user()
        resp = await client.post(
            f"{API}/ledger/fingerprints/missing/compare",
            headers=auth_header(token),
            json={"content_base64": _b64(b"x")},
        )
        assert resp.status_code == 404


class TestConsentRoutes:
    async def test_document_and_sign(self, client, consent_document, make_user, auth_header, valid_biometric):
        doc = await client.get(f"{API}/consent/document")
        assert doc.status_code == 200
        assert doc.json()["version"] == "1.0"

        _, token = make_user()
        resp = await _sign(client, auth_header, token, valid_biometric, document_checksum=doc.json()["checksum"])
        assert resp.status_code == 201
        assert resp.json()["document_version"] == "1.0"

        status = await client.get(f"{API}/consent/status", headers=auth_header(token))
        assert status.json()["consent_valid"] is True
        assert status.json()["signed_version"] == "1.0"

    async def test_no_document_is_404(self, client):
        assert (await client.get(f"{API}/consent/document")).status_code == 404

    async def test_read_too_fast_is_422(self, client, consent_document, make_user, auth_header, valid_biometric):
        _, token = make_user()
        resp = await _sign(client, auth_header, token, valid_biometric, seconds=10)
        assert resp.status_code == 422
        assert "30 seconds" in resp.json()["detail"]

    async def test_not_scrolled_is_422(self, client, consent_document, make_user, auth_header, valid_biometric):
        _, token = make_user()
        resp = await _sign(client, auth_header, token, valid_biometric, scrolled=False)
        assert resp.status_code == 422

    async def test_stale_checksum_is_409(self, client, consent_document, make_user, auth_header, valid_biometric):
        _, token = make_user()
        resp = await _sign(
            client, auth_header, token, valid_biometric,
            document_checksum=compute_document_checksum("old text"),
        )
        assert resp.status_code == 409

    async def test_publish_requires_admin(self, client, make_user, auth_header):
        _, token = make_user()
        resp = await client.post(
            f"{API}/consent/documents",
            headers=auth_header(token),
            json={"version": "2.0", "text": "New terms"},
        )
        assert resp.status_code == 403

    async def test_admin_publish_and_revoke(
        self, client, consent_document, make_user, admin_user, auth_header, valid_biometric, accounts,
    ):
        user_id, token = make_user()
        await _sign(client, auth_header, token, valid_biometric)
        _, admin_token = admin_user

        revoked = await client.post(
            f"{API}/consent/{user_id}/revoke",
            headers=auth_header(admin_token),
            json={"reason": "Shared a report"},
        )
        assert revoked.json() == {"user_id": user_id, "revoked": 1}
        assert accounts.revocations == [(user_id, "Shared a report")]

        published = await client.post(
            f"{API}/consent/documents",
            headers=auth_header(admin_token),
            json={"version": "2.0", "text": "New terms", "minimum_read_seconds": 60},
        )
        assert published.status_code == 201
        assert published.json()["minimum_read_seconds"] == 60


class TestProtectedRoutes:
    async def test_access_denied_without_consent(self, client, consent_document, make_user, auth_header):
        _, token = make_user()
        resp = await client.post(f"{API}/protected/report-1/access", headers=auth_header(token))
        assert resp.status_code == 403

    async def test_access_flow_and_trace(
        self, client, consent_document, make_user, auth_header, valid_biometric, png_bytes,
    ):
        user_id, token = make_user()
        await _sign(client, auth_header, token, valid_biometric)

        resp = await client.post(
            f"{API}/protected/report-1/access",
            headers={**auth_header(token), "X-Device-Id": "pixel-8"},
            json={"kind": "invisible"},
        )
        assert resp.status_code == 200
        grant = resp.json()
        assert grant["granted"] is True
        assert grant["kind"] == "invisible"

        listed = await client.get(f"{API}/watermarks/report-1", headers=auth_header(token))
        assert [wm["short_code"] for wm in listed.json()["watermarks"]] == [grant["short_code"]]

        from lifeline.services.media_watermark import embed_in_image

        leaked = embed_in_image(png_bytes(), grant["watermark_token"], "invisible")
        traced = await client.post(
            f"{API}/watermarks/trace", headers=auth_header(token), json={"media_base64": _b64(leaked)},
        )
        assert traced.json()["traced"] is True
        assert traced.json()["watermark"]["viewer_id"] == user_id

    async def test_trace_unmarked_media(self, client, make_user, auth_header):
        _, token = make_user()
        img = Image.new("RGB", (64, 64), (0, 0, 0))
        out = io.BytesIO()
        img.save(out, format="PNG")
        resp = await client.post(
            f"{API}/watermarks/trace", headers=auth_header(token), json={"media_base64": _b64(out.getvalue())},
        )
        assert resp.json() == {"traced": False}

    async def test_capture_reports_escalate(self, client, make_user, auth_header, accounts):
        user_id, token = make_user()
        decisions = []
        for _ in range(3):
            resp = await client.post(
                f"{API}/protected/captures",
                headers=auth_header(token),
                json={"creator_id": "creator-1", "content_id": "report-1", "kind": "screenshot"},
            )
            assert resp.status_code == 200
            decisions.append(resp.json()["decision"])
        assert decisions == ["none", "warn", "enforce"]
        assert accounts.enforcements == [(user_id, 3)]

        mine = await client.get(f"{API}/protected/violations/me", headers=auth_header(token))
        assert mine.json()["stats"]["total"] == 3
        assert mine.json()["stats"]["state"] == "enforced"

    async def test_capture_invalid_kind_is_422(self, client, make_user, auth_header):
        _, token = make_user()
        resp = await client.post(
            f"{API}/protected/captures",
            headers=auth_header(token),
            json={"creator_id": "creator-1", "content_id": "report-1", "kind": "photocopy"},
        )
        assert resp.status_code == 422

    async def test_creator_sees_only_own_violations(self, client, make_user, auth_header):
        creator_id, creator_token = make_user()
        _, subscriber_token = make_user()
        await client.post(
            f"{API}/protected/captures",
            headers=auth_header(subscriber_token),
            json={"creator_id": creator_id, "content_id": "report-1"},
        )

        own = await client.get(f"{API}/protected/creators/{creator_id}/violations", headers=auth_header(creator_token))
        assert len(own.json()["violations"]) == 1

        other = await client.get(
            f"{API}/protected/creators/{creator_id}/violations", headers=auth_header(subscriber_token),
        )
        assert other.status_code == 403

    async def test_access_log_admin_routes(
        self, client, consent_document, make_user, admin_user, auth_header, valid_biometric,
    ):
        _, token = make_user()
        await _sign(client, auth_header, token, valid_biometric)
        await client.post(f"{API}/protected/report-1/access", headers=auth_header(token))

        _, admin_token = admin_user
        log = await client.get(f"{API}/protected/report-1/access-log", headers=auth_header(admin_token))
        assert len(log.json()["entries"]) == 1

        chain = await client.get(f"{API}/protected/access-log/verify", headers=auth_header(admin_token))
        assert chain.json() == {"valid": True, "entries_checked": 1}

        assert (await client.get(f"{API}/protected/access-log/verify", headers=auth_header(token))).status_code == 403
