from typing import Literal

from pydantic import BaseModel, Field


class FingerprintCreateRequest(BaseModel):
    content_id: str = Field(..., min_length=1, max_length=255)
    content_base64: str = Field(..., min_length=1)


class ContentCompareRequest(BaseModel):
    content_base64: str = Field(..., min_length=1)


class TraceRequest(BaseModel):
    media_base64: str = Field(..., min_length=1)


class ConsentSignRequest(BaseModel):
    biometric_proof: dict | None = None
    time_spent_reading_seconds: int = Field(..., ge=0)
    scrolled_to_bottom: bool
    document_checksum: str | None = Field(default=None, max_length=64)


class DocumentPublishRequest(BaseModel):
    version: str = Field(..., min_length=1, max_length=20)
    text: str = Field(..., min_length=1)
    minimum_read_seconds: int | None = Field(default=None, ge=0)


class RevokeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class AccessRequest(BaseModel):
    kind: Literal["visible", "invisible", "forensic"] = "forensic"


class CaptureReportRequest(BaseModel):
    creator_id: str = Field(..., min_length=1, max_length=36)
    content_id: str = Field(..., min_length=1, max_length=255)
    kind: Literal["screenshot", "recording", "other"] = "screenshot"
