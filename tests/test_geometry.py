"""Tests for content-box geometry and drop-point mapping."""

from __future__ import annotations

import pytest

from homecanvas.errors import DecodeError
from homecanvas.geometry import (
    MappedPoint,
    RelativePoint,
    content_box,
    crop_region,
    to_canvas_pixel,
    to_relative,
)

SIZES = [
    (1600, 900),
    (900, 1600),
    (512, 512),
    (1024, 600),
    (3000, 2000),
    (333, 1000),
    (4032, 3024),
    (7, 3),
    (5000, 10),
]


class TestContentBox:
    def test_landscape_scene(self):
        box = content_box(1600, 900, 1024)
        assert (box.offset_x, box.offset_y, box.width, box.height) == (0, 224, 1024, 576)

    def test_portrait_scene(self):
        box = content_box(900, 1600, 1024)
        assert (box.offset_x, box.offset_y, box.width, box.height) == (224, 0, 576, 1024)

    def test_square_fills_canvas(self):
        box = content_box(300, 300, 1024)
        assert (box.offset_x, box.offset_y, box.width, box.height) == (0, 0, 1024, 1024)

    @pytest.mark.parametrize("width,height", SIZES)
    def test_aspect_ratio_preserved_and_inside_canvas(self, width, height):
        d = 1024
        box = content_box(width, height, d)
        longest = max(width, height)
        assert abs(box.width - d * width / longest) <= 1
        assert abs(box.height - d * height / longest) <= 1
        assert box.offset_x >= 0 and box.offset_y >= 0
        assert box.offset_x + box.width <= d
        assert box.offset_y + box.height <= d

    def test_extreme_aspect_keeps_one_pixel(self):
        box = content_box(100000, 1, 1024)
        assert box.height == 1

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-5, 10)])
    def test_invalid_dimensions(self, width, height):
        with pytest.raises(DecodeError):
            content_box(width, height, 1024)

    def test_crop_region_matches_content_box(self):
        assert crop_region(1600, 900, 1024) == content_box(1600, 900, 1024)


class TestToCanvasPixel:
    def test_center_of_wide_scene(self):
        p = to_canvas_pixel(RelativePoint(50, 50), 1600, 900, 1024)
        assert p == MappedPoint(512.0, 512.0)

    @pytest.mark.parametrize("width,height", SIZES)
    def test_origin_maps_to_content_corner(self, width, height):
        box = content_box(width, height, 1024)
        p = to_canvas_pixel(RelativePoint(0, 0), width, height, 1024)
        assert (p.x, p.y) == (box.offset_x, box.offset_y)

    @pytest.mark.parametrize("width,height", SIZES)
    def test_full_percent_maps_to_far_corner(self, width, height):
        box = content_box(width, height, 1024)
        p = to_canvas_pixel(RelativePoint(100, 100), width, height, 1024)
        assert (p.x, p.y) == (box.offset_x + box.width, box.offset_y + box.height)

    @pytest.mark.parametrize("width,height", SIZES)
    def test_round_trip_through_crop_region(self, width, height):
        box = crop_region(width, height, 1024)
        for xp in (0, 25, 50, 75, 100):
            for yp in (0, 25, 50, 75, 100):
                mapped = to_canvas_pixel(RelativePoint(xp, yp), width, height, 1024)
                back = to_relative(mapped, box)
                assert back.x_percent == pytest.approx(xp, abs=1e-6)
                assert back.y_percent == pytest.approx(yp, abs=1e-6)

    def test_out_of_range_is_not_clamped(self):
        box = content_box(1600, 900, 1024)
        p = to_canvas_pixel(RelativePoint(150, -10), 1600, 900, 1024)
        assert p.x > box.right
        assert p.y < box.offset_y


class TestRelativePoint:
    def test_clamped(self):
        p = RelativePoint.clamped(-3, 140)
        assert (p.x_percent, p.y_percent) == (0.0, 100.0)

    def test_from_fraction(self):
        p = RelativePoint.from_fraction(0.25, 1.2)
        assert (p.x_percent, p.y_percent) == (25.0, 100.0)
