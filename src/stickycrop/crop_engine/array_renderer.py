# stickycrop/src/stickycrop/crop_engine/array_renderer.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from stickycrop.crop_engine.geometry import EMPTY_RECT, Rect, Transform, ViewportBounds
from stickycrop.utils.logging import get_logger

logger = get_logger(__name__)

ZoomHandler = Callable[[float, float], bool]
TransformHandler = Callable[[], None]


@dataclass
class ImageView:
    """Pan/zoom state of an image shown inside a fixed-size viewport.

    `ratio` is viewport units per image pixel; offsets are where the image's
    top-left corner lands in viewport coordinates. The image may be panned
    partly or entirely out of the viewport.
    """

    img_width: int
    img_height: int
    view_width: float
    view_height: float
    offset_x: float = 0.0
    offset_y: float = 0.0
    ratio: float = 0.0

    def __post_init__(self) -> None:
        # ratio 0 means "not laid out yet": fit the image.
        if self.ratio == 0.0:
            self.reset()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImageView":
        return cls(**data)

    @property
    def fit_ratio(self) -> float:
        if self.img_width <= 0 or self.img_height <= 0:
            return 1.0
        return min(self.view_width / self.img_width, self.view_height / self.img_height)

    def transform(self) -> Transform:
        return Transform(self.offset_x, self.offset_y, self.ratio, self.ratio)

    # ------------------ core operations ------------------

    def reset(self) -> None:
        """Fit the whole image, centred."""
        self.ratio = self.fit_ratio
        self.offset_x = 0.5 * (self.view_width - self.img_width * self.ratio)
        self.offset_y = 0.5 * (self.view_height - self.img_height * self.ratio)

    def pan(self, dx: float, dy: float) -> None:
        """Move the image by (dx, dy) viewport units."""
        self.offset_x += dx
        self.offset_y += dy

    def zoom_around(self, vx: float, vy: float, ratio: float) -> None:
        """Set the zoom ratio keeping the image point under (vx, vy) fixed."""
        old = self.ratio
        ix = (vx - self.offset_x) / old
        iy = (vy - self.offset_y) / old
        self.ratio = ratio
        self.offset_x = vx - ix * ratio
        self.offset_y = vy - iy * ratio


class ArrayRenderer:
    """Headless renderer over a NumPy image.

    Implements the CropRenderer protocol: it owns the image view (pan/zoom),
    stores the displayed selection in viewport coordinates and renders pixel
    crops from the natural-size image.

    Events (via callback registration):
        on_zoom(handler): handler(new_ratio, old_ratio) -> bool; False vetoes the zoom
        on_transform_changed(handler): handler() after every pan/zoom
    """

    def __init__(
        self,
        image: np.ndarray,
        view_width: float,
        view_height: float,
        *,
        view: Optional[ImageView] = None,
    ) -> None:
        self.image = self._check_image(image)
        img_h, img_w = self.image.shape[:2]
        self.view = view or ImageView(
            img_width=img_w,
            img_height=img_h,
            view_width=float(view_width),
            view_height=float(view_height),
        )
        self._displayed: Rect = EMPTY_RECT

        self._zoom_handlers: List[ZoomHandler] = []
        self._transform_handlers: List[TransformHandler] = []

    @staticmethod
    def _check_image(image: np.ndarray) -> np.ndarray:
        arr = np.asarray(image)
        if arr.ndim not in (2, 3):
            raise ValueError(f"ArrayRenderer expects a 2D or 3D array, got ndim={arr.ndim}")
        return arr

    # ------------- CropRenderer protocol -------------

    def get_transform(self) -> Transform:
        return self.view.transform()

    def get_viewport_bounds(self) -> ViewportBounds:
        return ViewportBounds(self.view.view_width, self.view.view_height)

    def get_displayed_selection(self) -> Rect:
        return self._displayed

    def set_displayed_selection(self, rect: Rect) -> None:
        self._displayed = rect

    def natural_size(self) -> Tuple[int, int]:
        return self.view.img_width, self.view.img_height

    def render_pixels(self, rect: Rect) -> Optional[np.ndarray]:
        """Copy the image pixels under an image-space rect.

        Edges are rounded to whole pixels and clamped to the image. Returns None
        when nothing of the rect lies on the image.
        """
        img_h, img_w = self.image.shape[:2]
        x0 = max(0, min(img_w, int(round(rect.x))))
        x1 = max(0, min(img_w, int(round(rect.right))))
        y0 = max(0, min(img_h, int(round(rect.y))))
        y1 = max(0, min(img_h, int(round(rect.bottom))))
        if x1 <= x0 or y1 <= y0:
            return None
        return self.image[y0:y1, x0:x1].copy()

    # ------------- event registration -------------

    def on_zoom(self, handler: ZoomHandler) -> None:
        self._zoom_handlers.append(handler)

    def on_transform_changed(self, handler: TransformHandler) -> None:
        self._transform_handlers.append(handler)

    def connect(self, engine: Any) -> None:
        """Route zoom vetoes and transform notifications to a StickyCropEngine."""
        self.on_zoom(engine.on_zoom)
        self.on_transform_changed(engine.on_transform_changed)

    # ------------- pan / zoom -------------

    @property
    def ratio(self) -> float:
        return self.view.ratio

    def move(self, dx: float, dy: float) -> None:
        """Pan the image by (dx, dy) viewport units."""
        if dx == 0 and dy == 0:
            return
        self.view.pan(dx, dy)
        self._notify_transform()

    def move_to(self, offset_x: float, offset_y: float) -> None:
        self.move(offset_x - self.view.offset_x, offset_y - self.view.offset_y)

    def zoom(self, delta: float, pivot: Optional[Tuple[float, float]] = None) -> bool:
        """Relative zoom: positive delta zooms in, negative zooms out."""
        ratio = self.view.ratio
        if delta < 0:
            new_ratio = ratio / (1.0 - delta)
        else:
            new_ratio = ratio * (1.0 + delta)
        return self.zoom_to(new_ratio, pivot)

    def zoom_to(self, ratio: float, pivot: Optional[Tuple[float, float]] = None) -> bool:
        """Zoom to an absolute ratio around `pivot` (viewport centre by default).

        Returns False when a zoom handler vetoed the change.
        """
        old_ratio = self.view.ratio
        ratio = float(ratio)
        if ratio <= 0.0 or ratio == old_ratio:
            return False

        for handler in list(self._zoom_handlers):
            try:
                allowed = handler(ratio, old_ratio)
            except Exception:
                logger.exception("Error in zoom handler")
                continue
            if allowed is False:
                logger.debug(f"zoom to {ratio:.3f} vetoed")
                return False

        if pivot is None:
            pivot = (0.5 * self.view.view_width, 0.5 * self.view.view_height)
        self.view.zoom_around(pivot[0], pivot[1], ratio)
        self._notify_transform()
        return True

    def reset_view(self) -> None:
        self.view.reset()
        self._notify_transform()

    def replace_image(self, image: np.ndarray) -> None:
        """Swap the source image, refit the view and clear the displayed selection."""
        self.image = self._check_image(image)
        img_h, img_w = self.image.shape[:2]
        self.view = ImageView(
            img_width=img_w,
            img_height=img_h,
            view_width=self.view.view_width,
            view_height=self.view.view_height,
        )
        self._displayed = EMPTY_RECT
        self._notify_transform()

    def _notify_transform(self) -> None:
        for handler in list(self._transform_handlers):
            try:
                handler()
            except Exception:
                logger.exception("Error in transform_changed handler")
