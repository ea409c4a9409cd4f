from lifeline.models.content_fingerprint import ContentFingerprint
from lifeline.models.watermark import WatermarkIssuance
from lifeline.models.violation import ViolationCounter, ViolationRecord
from lifeline.models.consent import ConsentDocument, ConsentSignature
from lifeline.models.access_log import ProtectedAccessLog

__all__ = [
    "ContentFingerprint",
    "WatermarkIssuance",
    "ViolationRecord",
    "ViolationCounter",
    "ConsentDocument",
    "ConsentSignature",
    "ProtectedAccessLog",
]
