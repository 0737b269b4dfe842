"""
normalizer.py — Letterbox arbitrary images into a fixed D×D square.

The model gets a consistent input shape, and the content box inside the
square is a pure function of the original size (see geometry.content_box),
so drop points and crops can be translated without looking at pixels.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from PIL import Image

from .errors import RenderingError
from .geometry import DEFAULT_DIMENSION, ContentBox, content_box
from .images import JPEG_QUALITY, EncodedImage, encode_jpeg

PAD_COLOR = (0, 0, 0)


@dataclass(frozen=True)
class NormalizedImage:
    image: Image.Image          # RGB, dimension × dimension
    encoded: EncodedImage       # JPEG bytes sent to the model
    box: ContentBox
    original_size: Tuple[int, int]

    @property
    def dimension(self) -> int:
        return self.box.dimension


def _new_canvas(size: Tuple[int, int], color=PAD_COLOR) -> Image.Image:
    try:
        return Image.new("RGB", size, color)
    except (ValueError, MemoryError) as exc:
        raise RenderingError(f"Could not allocate {size[0]}×{size[1]} canvas: {exc}") from exc


def normalize(
    image: Image.Image,
    dimension: int = DEFAULT_DIMENSION,
    fill=PAD_COLOR,
    quality: int = JPEG_QUALITY,
) -> NormalizedImage:
    """
    Scale `image` to fit a dimension² canvas, centred on an opaque fill.

    Transparent sources are composited onto the fill colour first. The
    input image is left untouched.
    """
    w, h = image.size
    box = content_box(w, h, dimension)

    canvas = _new_canvas((dimension, dimension), fill)
    src = image.convert("RGBA")
    if src.size != (box.width, box.height):
        src = src.resize((box.width, box.height), Image.LANCZOS)
    canvas.paste(src, (box.offset_x, box.offset_y), src)

    encoded = encode_jpeg(canvas, quality)
    return NormalizedImage(image=canvas, encoded=encoded, box=box, original_size=(w, h))
