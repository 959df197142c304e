# stickycrop/src/stickycrop/crop_engine/projector.py

from __future__ import annotations

from stickycrop.crop_engine.errors import InvalidTransformError
from stickycrop.crop_engine.geometry import Rect, Transform


def _require_valid(transform: Transform) -> None:
    if not transform.is_valid():
        raise InvalidTransformError(
            f"cannot invert transform: scale=({transform.scale_x}, {transform.scale_y}), "
            f"offset=({transform.offset_x}, {transform.offset_y})"
        )


def to_viewport(rect: Rect, transform: Transform) -> Rect:
    """Image-space rect -> viewport-space rect."""
    return Rect(
        x=transform.offset_x + rect.x * transform.scale_x,
        y=transform.offset_y + rect.y * transform.scale_y,
        width=rect.width * transform.scale_x,
        height=rect.height * transform.scale_y,
    )


def to_image(rect: Rect, transform: Transform) -> Rect:
    """Viewport-space rect -> image-space rect.

    Raises:
        InvalidTransformError: if either scale is zero or non-finite.
    """
    _require_valid(transform)
    return Rect(
        x=(rect.x - transform.offset_x) / transform.scale_x,
        y=(rect.y - transform.offset_y) / transform.scale_y,
        width=rect.width / transform.scale_x,
        height=rect.height / transform.scale_y,
    )


def point_to_viewport(x: float, y: float, transform: Transform) -> tuple[float, float]:
    """Image-space point -> viewport-space point."""
    return (
        transform.offset_x + x * transform.scale_x,
        transform.offset_y + y * transform.scale_y,
    )


def point_to_image(vx: float, vy: float, transform: Transform) -> tuple[float, float]:
    """Viewport-space point -> image-space point."""
    _require_valid(transform)
    return (
        (vx - transform.offset_x) / transform.scale_x,
        (vy - transform.offset_y) / transform.scale_y,
    )
