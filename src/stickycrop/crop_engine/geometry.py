# stickycrop/src/stickycrop/crop_engine/geometry.py

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, TypedDict


class RectDict(TypedDict):
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in (x, y, width, height) form.

    The same type carries image-space and viewport-space values; which space a
    value lives in is decided by the caller and only changed through the
    projector.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return self.x + 0.5 * self.width, self.y + 0.5 * self.height

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.width, self.height))

    def translated(self, dx: float, dy: float) -> Rect:
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    def with_delta(self, delta: PendingDelta | None) -> Rect:
        """Return self + delta (component-wise); None leaves self unchanged."""
        if delta is None:
            return self
        return Rect(
            self.x + delta.dx,
            self.y + delta.dy,
            self.width + delta.dwidth,
            self.height + delta.dheight,
        )

    def is_close(self, other: Rect, tol: float = 1e-6) -> bool:
        return (
            abs(self.x - other.x) <= tol
            and abs(self.y - other.y) <= tol
            and abs(self.width - other.width) <= tol
            and abs(self.height - other.height) <= tol
        )

    def to_dict(self) -> RectDict:
        return {
            "x": float(self.x),
            "y": float(self.y),
            "width": float(self.width),
            "height": float(self.height),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rect:
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )


EMPTY_RECT = Rect(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class Transform:
    """Image-space -> viewport-space mapping: viewport = offset + image * scale."""

    offset_x: float = 0.0
    offset_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0

    def is_valid(self) -> bool:
        if not all(math.isfinite(v) for v in (self.offset_x, self.offset_y, self.scale_x, self.scale_y)):
            return False
        return self.scale_x != 0.0 and self.scale_y != 0.0


@dataclass(frozen=True)
class ViewportBounds:
    """Size of the visible container in viewport-space."""

    width: float
    height: float


@dataclass(frozen=True)
class PendingDelta:
    """Uncommitted image-space adjustment to the logical region."""

    dx: float = 0.0
    dy: float = 0.0
    dwidth: float = 0.0
    dheight: float = 0.0

    def __add__(self, other: PendingDelta) -> PendingDelta:
        if not isinstance(other, PendingDelta):
            return NotImplemented
        return PendingDelta(
            self.dx + other.dx,
            self.dy + other.dy,
            self.dwidth + other.dwidth,
            self.dheight + other.dheight,
        )

    def is_zero(self, tol: float = 0.0) -> bool:
        return all(abs(v) <= tol for v in (self.dx, self.dy, self.dwidth, self.dheight))

    @classmethod
    def between(cls, before: Rect, after: Rect) -> PendingDelta:
        """Delta that turns `before` into `after`."""
        return cls(
            dx=after.x - before.x,
            dy=after.y - before.y,
            dwidth=after.width - before.width,
            dheight=after.height - before.height,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
