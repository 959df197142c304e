"""Visibility classification and display clipping for viewport-space rects.

Both functions work purely in viewport-space. The clipped rect is for display
only and must never be written back into the logical region.
"""

from __future__ import annotations

from enum import Enum

from stickycrop.crop_engine.geometry import Rect, ViewportBounds

DEFAULT_MIN_DISPLAY_SIZE = 10.0


class VisibilityState(Enum):
    """How much of a projected rect lies inside the viewport."""
    FULLY_VISIBLE = "fully_visible"
    PARTIALLY_VISIBLE = "partially_visible"
    OUT_OF_BOUNDS = "out_of_bounds"


def _intersects(rect: Rect, bounds: ViewportBounds) -> bool:
    return (
        rect.right >= 0.0
        and rect.x <= bounds.width
        and rect.bottom >= 0.0
        and rect.y <= bounds.height
    )


def classify_visibility(
    rect: Rect,
    bounds: ViewportBounds,
    min_display_size: float = DEFAULT_MIN_DISPLAY_SIZE,
) -> VisibilityState:
    """Classify a viewport-space rect against [0, width] x [0, height].

    Slivers narrower or shorter than `min_display_size` count as out of bounds.
    """
    if not rect.is_finite():
        return VisibilityState.OUT_OF_BOUNDS
    if rect.width < min_display_size or rect.height < min_display_size:
        return VisibilityState.OUT_OF_BOUNDS
    if not _intersects(rect, bounds):
        return VisibilityState.OUT_OF_BOUNDS

    if (
        rect.x >= 0.0
        and rect.y >= 0.0
        and rect.right <= bounds.width
        and rect.bottom <= bounds.height
    ):
        return VisibilityState.FULLY_VISIBLE
    return VisibilityState.PARTIALLY_VISIBLE


def _snap_axis(lo: float, hi: float, limit: float) -> float:
    # Entirely before the axis start -> 0, entirely past the end -> limit.
    if hi < 0.0:
        return 0.0
    if lo > limit:
        return limit
    return max(0.0, min(limit, lo))


def clip_to_bounds(rect: Rect, bounds: ViewportBounds) -> Rect:
    """Intersect `rect` with the viewport.

    When the intersection is empty the result is a zero-size indicator snapped
    to the viewport edge nearest to the off-screen rect on each axis.
    """
    left = max(rect.x, 0.0)
    top = max(rect.y, 0.0)
    right = min(rect.right, bounds.width)
    bottom = min(rect.bottom, bounds.height)

    if right >= left and bottom >= top and _intersects(rect, bounds):
        return Rect(left, top, right - left, bottom - top)

    return Rect(
        x=_snap_axis(rect.x, rect.right, bounds.width),
        y=_snap_axis(rect.y, rect.bottom, bounds.height),
        width=0.0,
        height=0.0,
    )
