"""
images.py — Encoded image buffers and Pillow decode/encode helpers.
"""

from __future__ import annotations

import base64
import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError, RenderingError

JPEG_QUALITY = 95

_MIME_BY_EXT = {
    ".png":  "image/png",
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)


@dataclass(frozen=True)
class EncodedImage:
    """Bytes of an encoded image plus its MIME type."""
    data: bytes
    mime_type: str = "image/jpeg"

    @property
    def data_url(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{b64}"

    @property
    def size(self) -> Tuple[int, int]:
        with Image.open(io.BytesIO(self.data)) as img:
            return img.size

    @classmethod
    def from_data_url(cls, url: str) -> "EncodedImage":
        m = _DATA_URL_RE.match(url.strip())
        if not m:
            raise DecodeError("Invalid data URL")
        try:
            data = base64.b64decode(m.group("data"), validate=True)
        except ValueError as exc:
            raise DecodeError(f"Invalid base64 payload in data URL: {exc}") from exc
        return cls(data=data, mime_type=m.group("mime"))

    @classmethod
    def from_path(cls, path: Path) -> "EncodedImage":
        path = Path(path)
        mime = _MIME_BY_EXT.get(path.suffix.lower(), "application/octet-stream")
        return cls(data=path.read_bytes(), mime_type=mime)


def decode_image(data: bytes) -> Image.Image:
    """
    Decode image bytes into a fully loaded Pillow image.

    EXIF orientation is applied, so width/height match what a viewer shows
    and what the user clicked on.
    """
    if not data:
        raise DecodeError("Image data is empty")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc

    w, h = img.size
    if w <= 0 or h <= 0:
        raise DecodeError(f"Image has invalid dimensions {w}×{h}")
    return img


def encode_jpeg(img: Image.Image, quality: int = JPEG_QUALITY) -> EncodedImage:
    """Re-encode as RGB JPEG (no alpha ambiguity for the model)."""
    buf = io.BytesIO()
    try:
        img.convert("RGB").save(buf, "JPEG", quality=quality)
    except (OSError, ValueError) as exc:
        raise RenderingError(f"JPEG encoding failed: {exc}") from exc
    return EncodedImage(data=buf.getvalue(), mime_type="image/jpeg")
