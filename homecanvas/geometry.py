"""
geometry.py — Content-box math shared by the normalizer, mapper and cropper.

Every image that enters the pipeline is letterboxed into a D×D square.
The "content box" is the sub-rectangle the scaled source occupies:

  ┌──────────── D ────────────┐
  │        padding            │   offset_y
  ├───────────────────────────┤
  │      content box          │   height = round(D / aspect)
  ├───────────────────────────┤
  │        padding            │
  └───────────────────────────┘

Drop points arrive as percentages of the *original* image, so the box is
always recomputed from the original dimensions, never measured from pixels.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import DecodeError

DEFAULT_DIMENSION = 1024


@dataclass(frozen=True)
class ContentBox:
    offset_x: int
    offset_y: int
    width: int
    height: int
    dimension: int

    @property
    def right(self) -> int:
        return self.offset_x + self.width

    @property
    def bottom(self) -> int:
        return self.offset_y + self.height

    def as_crop(self) -> tuple:
        """Pillow crop tuple (left, upper, right, lower)."""
        return (self.offset_x, self.offset_y, self.right, self.bottom)


@dataclass(frozen=True)
class RelativePoint:
    """Drop point as percentages (0–100) of the displayed image."""
    x_percent: float
    y_percent: float

    @classmethod
    def clamped(cls, x_percent: float, y_percent: float) -> "RelativePoint":
        return cls(
            x_percent=min(100.0, max(0.0, float(x_percent))),
            y_percent=min(100.0, max(0.0, float(y_percent))),
        )

    @classmethod
    def from_fraction(cls, x: float, y: float) -> "RelativePoint":
        """Click position as 0–1 fractions of the displayed image rect."""
        return cls.clamped(x * 100.0, y * 100.0)


@dataclass(frozen=True)
class MappedPoint:
    """Pixel coordinate on the padded D×D canvas."""
    x: float
    y: float


def content_box(width: int, height: int, dimension: int = DEFAULT_DIMENSION) -> ContentBox:
    """
    Fit (width × height) inside a dimension² square, preserving aspect ratio.

    Landscape sources span the full width; portrait and square sources span
    the full height. Sizes are rounded to whole pixels (at least 1) and the
    box is centred with floor division.
    """
    if width <= 0 or height <= 0:
        raise DecodeError(f"Image has invalid dimensions {width}×{height}")
    if dimension <= 0:
        raise ValueError(f"target dimension must be positive, got {dimension}")

    aspect = width / height
    if aspect > 1:
        content_w = dimension
        content_h = max(1, round(dimension / aspect))
    else:
        content_h = dimension
        content_w = max(1, round(dimension * aspect))

    return ContentBox(
        offset_x=(dimension - content_w) // 2,
        offset_y=(dimension - content_h) // 2,
        width=content_w,
        height=content_h,
        dimension=dimension,
    )


def to_canvas_pixel(
    point: RelativePoint,
    original_width: int,
    original_height: int,
    dimension: int = DEFAULT_DIMENSION,
) -> MappedPoint:
    """
    Translate a content-relative drop point into padded-canvas pixels.

    Percentages are not clamped here: the input layer clamps, and anything
    outside 0–100 maps outside the content box.
    """
    box = content_box(original_width, original_height, dimension)
    return MappedPoint(
        x=box.offset_x + (point.x_percent / 100.0) * box.width,
        y=box.offset_y + (point.y_percent / 100.0) * box.height,
    )


def crop_region(
    original_width: int,
    original_height: int,
    dimension: int = DEFAULT_DIMENSION,
) -> ContentBox:
    """Region of a generated D×D image that corresponds to the original frame."""
    return content_box(original_width, original_height, dimension)


def to_relative(point: MappedPoint, box: ContentBox) -> RelativePoint:
    """Express a canvas pixel as percentages of the content box."""
    return RelativePoint(
        x_percent=(point.x - box.offset_x) / box.width * 100.0,
        y_percent=(point.y - box.offset_y) / box.height * 100.0,
    )
