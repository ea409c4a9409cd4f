"""Embed and recover watermark tokens in still images.

Every kind carries the embed token as a least-significant-bit payload in the
blue channel, repeated across the image. ``visible`` additionally draws the
short code as a semi-transparent tiled overlay. Output is always PNG so the
payload survives re-encoding by us; lossy re-encoding by a third party is out
of reach for LSB marks.

Embedding never returns unmarked media: any failure raises WatermarkEmbedError.
"""

import hashlib
import io
import logging

import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from lifeline.core.exceptions import InvalidInputError, WatermarkEmbedError
from lifeline.core.hashing import short_code_for_token

logger = logging.getLogger(__name__)

WATERMARK_KINDS = ("visible", "invisible", "forensic")

_MAGIC = b"LLWM"
_TOKEN_BYTES = 32
_CHECK_BYTES = 4
_FRAME_BYTES = len(_MAGIC) + _TOKEN_BYTES + _CHECK_BYTES
_FRAME_BITS = _FRAME_BYTES * 8
_MAX_COPIES = 16
_MIN_SIDE = 32

_OVERLAY_ALPHA = 70
_OVERLAY_STEP = 140


def _frame_for(token: str) -> bytes:
    try:
        raw = bytes.fromhex(token)
    except (TypeError, ValueError):
        raise WatermarkEmbedError("embed token is not hex encoded")
    if len(raw) != _TOKEN_BYTES:
        raise WatermarkEmbedError("embed token has the wrong length")
    check = hashlib.sha256(raw).digest()[:_CHECK_BYTES]
    return _MAGIC + raw + check


def _load(media: bytes) -> Image.Image:
    if not media:
        raise WatermarkEmbedError("no media bytes supplied")
    try:
        img = Image.open(io.BytesIO(media))
        img.load()
    except (UnidentifiedImageError, OSError):
        raise WatermarkEmbedError("media is not a readable image")
    mode = "RGBA" if img.mode in ("RGBA", "LA") or "transparency" in img.info else "RGB"
    return img.convert(mode)


def _draw_overlay(img: Image.Image, text: str) -> Image.Image:
    base = img.convert("RGBA")
    layer = Image.new("RGBA", base.size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(layer)
    font = ImageFont.load_default()

    w, h = base.size
    for row, y in enumerate(range(0, h, _OVERLAY_STEP // 2)):
        offset = (row * _OVERLAY_STEP // 3) % _OVERLAY_STEP
        for x in range(-offset, w, _OVERLAY_STEP):
            draw.text((x, y), text, fill=(255, 255, 255, _OVERLAY_ALPHA), font=font)

    merged = Image.alpha_composite(base, layer)
    return merged.convert(img.mode)


def _write_bits(img: Image.Image, frame: bytes) -> Image.Image:
    arr = np.array(img, dtype=np.uint8)
    blue = arr[..., 2].reshape(-1)

    copies = min(_MAX_COPIES, blue.size // _FRAME_BITS)
    if copies < 1:
        raise WatermarkEmbedError("image is too small to carry a watermark")

    bits = np.unpackbits(np.frombuffer(frame, dtype=np.uint8))
    payload = np.tile(bits, copies)
    blue[: payload.size] = (blue[: payload.size] & 0xFE) | payload
    arr[..., 2] = blue.reshape(arr.shape[:2])
    return Image.fromarray(arr)


def _encode_png(img: Image.Image) -> bytes:
    out = io.BytesIO()
    img.save(out, format="PNG", optimize=False)
    return out.getvalue()


def embed_in_image(media: bytes, embed_token: str, kind: str = "invisible") -> bytes:
    """Return a PNG copy of ``media`` carrying ``embed_token``."""
    if kind not in WATERMARK_KINDS:
        raise InvalidInputError(f"kind must be one of {', '.join(WATERMARK_KINDS)}")

    frame = _frame_for(embed_token)
    img = _load(media)
    if min(img.size) < _MIN_SIDE:
        raise WatermarkEmbedError(f"image must be at least {_MIN_SIDE}px on each side")

    if kind == "visible":
        img = _draw_overlay(img, short_code_for_token(embed_token))

    marked = _encode_png(_write_bits(img, frame))

    # Read the mark back; a mark we cannot recover is as bad as no mark.
    if extract_from_image(marked) != embed_token:
        raise WatermarkEmbedError("embedded payload failed verification")

    logger.info("Embedded %s watermark (%d bytes out)", kind, len(marked))
    return marked


def extract_from_image(media: bytes) -> str | None:
    """Recover an embed token from a watermarked image, or None if absent."""
    try:
        img = Image.open(io.BytesIO(media))
        img.load()
    except (UnidentifiedImageError, OSError):
        return None
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGB")

    blue = np.array(img, dtype=np.uint8)[..., 2].reshape(-1)
    copies = min(_MAX_COPIES, blue.size // _FRAME_BITS)
    for i in range(copies):
        bits = blue[i * _FRAME_BITS:(i + 1) * _FRAME_BITS] & 1
        frame = np.packbits(bits).tobytes()
        if not frame.startswith(_MAGIC):
            continue
        raw = frame[len(_MAGIC):len(_MAGIC) + _TOKEN_BYTES]
        check = frame[len(_MAGIC) + _TOKEN_BYTES:]
        if hashlib.sha256(raw).digest()[:_CHECK_BYTES] == check:
            return raw.hex()
    return None


def embed_in_video(media: bytes, embed_token: str, kind: str = "invisible") -> bytes:
    raise WatermarkEmbedError("video watermarking is not supported")
