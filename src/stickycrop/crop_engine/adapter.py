# stickycrop/src/stickycrop/crop_engine/adapter.py

from __future__ import annotations

from typing import Any, Protocol, Tuple, runtime_checkable

from stickycrop.crop_engine.errors import InvalidTransformError
from stickycrop.crop_engine.geometry import Rect, Transform, ViewportBounds


@runtime_checkable
class CropRenderer(Protocol):
    """What the engine needs from the rendering/cropping collaborator."""

    def get_transform(self) -> Transform:
        ...

    def get_viewport_bounds(self) -> ViewportBounds:
        ...

    def get_displayed_selection(self) -> Rect:
        ...

    def set_displayed_selection(self, rect: Rect) -> None:
        ...

    def render_pixels(self, rect: Rect) -> Any:
        ...

    def natural_size(self) -> Tuple[int, int]:
        """(width, height) of the source image in pixels."""
        ...


class TransformAdapter:
    """Thin read side over a CropRenderer.

    Hands out one canonical, validated transform so the engine never has to
    reason about how the renderer lays out its image internally.
    """

    def __init__(self, renderer: CropRenderer) -> None:
        self.renderer = renderer

    def read_transform(self) -> Transform:
        """Return the current transform.

        Raises:
            InvalidTransformError: if the renderer reports a zero/non-finite scale.
        """
        transform = self.renderer.get_transform()
        if not transform.is_valid():
            raise InvalidTransformError(f"renderer reported invalid transform {transform}")
        return transform

    def read_bounds(self) -> ViewportBounds:
        return self.renderer.get_viewport_bounds()

    def read_displayed(self) -> Rect:
        return self.renderer.get_displayed_selection()

    def push_displayed(self, rect: Rect) -> None:
        self.renderer.set_displayed_selection(rect)

    def natural_size(self) -> Tuple[float, float]:
        w, h = self.renderer.natural_size()
        return float(w), float(h)
