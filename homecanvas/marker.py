"""
marker.py — Draw the drop-point marker on a normalized scene.

The marked copy serves two readers: the description model (which has to
see the dot to describe what is under it) and the user's debug view.
"""

from __future__ import annotations

from dataclasses import replace

from PIL import ImageDraw

from .errors import RenderingError
from .geometry import MappedPoint
from .images import JPEG_QUALITY, encode_jpeg
from .normalizer import NormalizedImage

MARKER_COLOR = (255, 0, 0)
MARKER_SCALE = 0.015
MIN_MARKER_RADIUS = 2.0


def marker_radius(width: int, height: int) -> float:
    return max(MIN_MARKER_RADIUS, min(width, height) * MARKER_SCALE)


def draw_marker(
    normalized: NormalizedImage,
    point: MappedPoint,
    color=MARKER_COLOR,
    quality: int = JPEG_QUALITY,
) -> NormalizedImage:
    """Return a copy of `normalized` with a filled dot at `point`."""
    try:
        marked = normalized.image.copy()
    except (ValueError, MemoryError) as exc:
        raise RenderingError(f"Could not copy canvas for marking: {exc}") from exc

    r = marker_radius(*marked.size)
    # Off-canvas points are clipped by Pillow, not rejected
    ImageDraw.Draw(marked).ellipse(
        [point.x - r, point.y - r, point.x + r, point.y + r],
        fill=color,
    )
    return replace(normalized, image=marked, encoded=encode_jpeg(marked, quality))
