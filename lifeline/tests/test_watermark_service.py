"""Tests for WatermarkIssuer issuance and leak tracing."""

import re

import pytest

from lifeline.core.exceptions import InvalidInputError, WatermarkEmbedError
from lifeline.services.watermark_service import WatermarkIssuer

SHORT_CODE_RE = re.compile(r"^WM-[A-Z2-9]{4}-[A-Z2-9]{4}-[A-Z2-9]{4}-[A-Z2-9]{4}$")


class TestIssue:
    async def test_issue_returns_persisted_record(self, db):
        issuance = await WatermarkIssuer(db, secret="s").issue("report-1", "viewer-1")
        assert issuance.id
        assert issuance.content_id == "report-1"
        assert issuance.viewer_id == "viewer-1"
        assert issuance.kind == "invisible"
        assert len(issuance.embed_token) == 64
        assert SHORT_CODE_RE.match(issuance.short_code)

    async def test_tokens_unique_for_same_viewer_and_content(self, db):
        issuer = WatermarkIssuer(db, secret="s")
        tokens = {(await issuer.issue("report-1", "viewer-1")).embed_token for _ in range(20)}
        assert len(tokens) == 20

    async def test_tokens_differ_across_viewers(self, db):
        issuer = WatermarkIssuer(db, secret="s")
        a = await issuer.issue("report-1", "viewer-1")
        b = await issuer.issue("report-1", "viewer-2")
        assert a.embed_token != b.embed_token

    async def test_kind_is_recorded(self, db):
        issuance = await WatermarkIssuer(db).issue("report-1", "viewer-1", "forensic")
        assert issuance.kind == "forensic"

    async def test_unknown_kind_rejected(self, db):
        with pytest.raises(InvalidInputError):
            await WatermarkIssuer(db).issue("report-1", "viewer-1", "hologram")

    @pytest.mark.parametrize("content_id,viewer_id", [("", "v"), ("c", ""), (None, "v")])
    async def test_missing_ids_rejected(self, db, content_id, viewer_id):
        with pytest.raises(InvalidInputError):
            await WatermarkIssuer(db).issue(content_id, viewer_id)


class TestLookup:
    async def test_list_for_content_in_issue_order(self, db):
        issuer = WatermarkIssuer(db)
        first = await issuer.issue("report-1", "viewer-1")
        second = await issuer.issue("report-1", "viewer-2")
        await issuer.issue("report-2", "viewer-1")

        listed = await issuer.list_for_content("report-1")
        assert [wm.id for wm in listed] == [first.id, second.id]

    async def test_list_for_content_pagination(self, db):
        issuer = WatermarkIssuer(db)
        for i in range(5):
            await issuer.issue("report-1", f"viewer-{i}")
        page = await issuer.list_for_content("report-1", limit=2, offset=2)
        assert [wm.viewer_id for wm in page] == ["viewer-2", "viewer-3"]

    async def test_list_for_unknown_content_is_empty(self, db):
        assert await WatermarkIssuer(db).list_for_content("nothing") == []

    async def test_find_by_token(self, db):
        issuer = WatermarkIssuer(db)
        issuance = await issuer.issue("report-1", "viewer-1")
        found = await issuer.find_by_token(issuance.embed_token.upper())
        assert found.id == issuance.id

    async def test_find_by_short_code(self, db):
        issuer = WatermarkIssuer(db)
        issuance = await issuer.issue("report-1", "viewer-1")
        matches = await issuer.find_by_short_code(issuance.short_code.lower())
        assert [m.id for m in matches] == [issuance.id]


class TestTrace:
    async def test_trace_leaked_image_to_viewer(self, db, png_bytes):
        issuer = WatermarkIssuer(db)
        await issuer.issue("report-1", "viewer-1")
        leaker = await issuer.issue("report-1", "viewer-2")

        leaked = issuer.embed(leaker, png_bytes())
        traced = await issuer.trace(leaked)
        assert traced.id == leaker.id
        assert traced.viewer_id == "viewer-2"

    async def test_trace_unmarked_image(self, db, png_bytes):
        assert await WatermarkIssuer(db).trace(png_bytes()) is None

    async def test_trace_token_from_other_deployment(self, db, png_bytes):
        from lifeline.services.media_watermark import embed_in_image

        foreign = embed_in_image(png_bytes(), "ab" * 32)
        assert await WatermarkIssuer(db).trace(foreign) is None

    async def test_embed_refuses_unreadable_media(self, db):
        issuer = WatermarkIssuer(db)
        issuance = await issuer.issue("report-1", "viewer-1")
        with pytest.raises(WatermarkEmbedError):
            issuer.embed(issuance, b"not an image")
