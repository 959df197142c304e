# tests/crop_widget/test_crop_widget_rendering.py

from __future__ import annotations

import numpy as np
import pytest

from stickycrop.crop_engine.geometry import Rect, Transform
from stickycrop.crop_widget.rendering import (
    MOVE_ACTION,
    apply_drag,
    array_to_pil,
    hit_test_action,
    render_view_pil,
    selection_svg,
)


def test_array_to_pil_grayscale_uses_colormap():
    img = array_to_pil(np.array([[0.0, 1.0], [2.0, 3.0]]), cmap="gray")
    assert img.mode == "RGB"
    assert img.size == (2, 2)
    assert img.getpixel((0, 0)) == (0, 0, 0)
    assert img.getpixel((1, 1)) == (255, 255, 255)


def test_array_to_pil_rgba_passthrough():
    rgba = np.zeros((4, 6, 4), dtype=np.uint8)
    rgba[..., 0] = 200
    img = array_to_pil(rgba)
    assert img.mode == "RGB"
    assert img.size == (6, 4)
    assert img.getpixel((0, 0)) == (200, 0, 0)


def test_array_to_pil_rejects_two_channels():
    with pytest.raises(ValueError):
        array_to_pil(np.zeros((4, 4, 2), dtype=np.uint8))


def test_render_view_fills_outside_image():
    red = array_to_pil(np.dstack([np.full((10, 10), 255, np.uint8)] + [np.zeros((10, 10), np.uint8)] * 2))
    out = render_view_pil(red, Transform(5, 5, 1, 1), 20, 20, background=(1, 2, 3))
    assert out.size == (20, 20)
    assert out.getpixel((0, 0)) == (1, 2, 3)
    assert out.getpixel((10, 10)) == (255, 0, 0)


def test_selection_svg_indicator_vs_box():
    assert selection_svg(Rect(0, 50, 0, 0)).startswith("<circle")
    box = selection_svg(Rect(1, 2, 3, 4), color="#ff0000")
    assert box.startswith("<rect")
    assert 'stroke="#ff0000"' in box


@pytest.mark.parametrize(
    "vx, vy, expected",
    [
        (50, 50, "w"),
        (150, 50, "e"),
        (100, 20, "n"),
        (100, 80, "s"),
        (150, 80, "se"),
        (100, 50, MOVE_ACTION),
        (10, 10, None),
    ],
)
def test_hit_test_action(vx, vy, expected):
    assert hit_test_action(vx, vy, Rect(50, 20, 100, 60), tol=5.0) == expected


def test_hit_test_indicator_moves():
    indicator = Rect(0, 50, 0, 0)
    assert hit_test_action(3, 52, indicator, tol=5.0) == MOVE_ACTION
    assert hit_test_action(20, 50, indicator, tol=5.0) is None


def test_apply_drag_move_and_resize():
    start = Rect(10, 10, 100, 50)
    assert apply_drag(MOVE_ACTION, start, 5, -5) == Rect(15, 5, 100, 50)
    assert apply_drag("e", start, 20, 0) == Rect(10, 10, 120, 50)
    # A west drag past the east edge stops at the minimum size.
    assert apply_drag("w", start, 200, 0, min_size=10) == Rect(100, 10, 10, 50)


def test_apply_drag_keeps_aspect_ratio():
    start = Rect(10, 10, 100, 50)
    assert apply_drag("e", start, 20, 0, aspect_ratio=2.0) == Rect(10, 10, 120, 60)
    assert apply_drag("n", start, 0, -10, aspect_ratio=2.0) == Rect(10, 0, 120, 60)
    assert apply_drag("nw", start, -10, 0, aspect_ratio=1.0) == Rect(0, -50, 110, 110)
