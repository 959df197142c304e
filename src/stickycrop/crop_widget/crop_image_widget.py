# stickycrop/src/stickycrop/crop_widget/crop_image_widget.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
from nicegui import events, ui
from PIL import Image

from stickycrop.crop_engine.array_renderer import ArrayRenderer
from stickycrop.crop_engine.config import CropEngineConfig
from stickycrop.crop_engine.engine import StickyCropEngine
from stickycrop.crop_engine.geometry import Rect, RectDict
from stickycrop.crop_engine.projector import point_to_image
from stickycrop.utils.logging import get_logger

from .rendering import (
    apply_drag,
    array_to_pil,
    hit_test_action,
    render_view_pil,
    selection_svg,
)

logger = get_logger(__name__)


@dataclass
class CropWidgetConfig:
    # Display resolution (logical pixel grid of the viewport)
    display_width_px: int = 800
    display_height_px: int = 600

    # Wheel / zoom behavior
    zoom_step: float = 0.1                  # relative zoom per wheel notch / button

    # Pointer behavior
    edge_tolerance_px: float = 6.0          # edge hit-test tolerance (display px)
    min_box_size_px: float = 10.0           # smallest box a resize drag can produce
    enable_panning: bool = True
    pan_modifiers: Tuple[str, ...] = ("shift", "ctrl")

    # Selection appearance
    selection_color: str = "#3399ff"
    selection_line_width: float = 2.0
    indicator_radius: float = 6.0

    # Image appearance
    background: Tuple[int, int, int] = (32, 32, 32)
    image_border_width: int = 0


class CropImageWidget:
    """NiceGUI crop widget whose selection stays glued to the image under pan/zoom.

    - Input: 2D numpy array (grayscale, colormapped) or RGB(A) uint8 array.
    - Drag inside the box moves it, drag near an edge resizes it.
    - Shift/Ctrl + drag pans the image, mouse wheel zooms around the pointer.
    - Crop state lives in a StickyCropEngine; this class is the renderer side.

    Events (via callback registration):
        on_crop_data(handler): handler(crop_data_dict)
        on_region_committed(handler): handler(rect_dict)
    """

    def __init__(
        self,
        image: np.ndarray,
        *,
        vmin: float | None = None,
        vmax: float | None = None,
        cmap: str = "gray",
        parent=None,
        config: CropWidgetConfig | None = None,
        engine_config: CropEngineConfig | None = None,
    ) -> None:
        self.config = config if config is not None else CropWidgetConfig()
        self.DISPLAY_W = int(self.config.display_width_px)
        self.DISPLAY_H = int(self.config.display_height_px)

        self._vmin = vmin
        self._vmax = vmax
        self._cmap = cmap

        self.renderer = ArrayRenderer(image, self.DISPLAY_W, self.DISPLAY_H)
        self.engine = StickyCropEngine(self.renderer, config=engine_config)
        self.renderer.connect(self.engine)
        # Every reconcile/commit ends with a crop-data push; redraw then.
        self.engine.on_crop_data(lambda _data: self._redraw_overlay())

        self._source_pil = self._make_source_pil()

        # Interaction state
        self._mode: str = "idle"  # "idle", "editing", "panning"
        self._drag_action: Optional[str] = None
        self._drag_start: Optional[Tuple[float, float]] = None
        self._drag_rect: Optional[Rect] = None
        self._last_vx: Optional[float] = None
        self._last_vy: Optional[float] = None

        container = parent if parent is not None else ui.element("div").classes("w-full")

        with container:
            self.interactive = (
                ui.interactive_image(
                    self._render_view_pil(),
                    events=["mousedown", "mousemove", "mouseup"],
                )
                .classes("w-full")
                .style(self._image_style())
            )
            self.interactive.on_mouse(self._on_mouse)
            self.interactive.on("wheel", self._on_wheel)

        self.engine.on_ready()
        self._redraw_overlay()

        img_w, img_h = self.renderer.natural_size()
        logger.info(
            f"CropImageWidget initialized: image={img_w}x{img_h}, "
            f"display={self.DISPLAY_W}x{self.DISPLAY_H}, cmap={self._cmap}"
        )

    # ------------- public crop API -------------

    def get_crop_data(self) -> Optional[dict]:
        return self.engine.get_crop_data()

    def get_logical_region(self) -> Optional[RectDict]:
        region = self.engine.get_logical_region()
        return region.to_dict() if region is not None else None

    def get_cropped_image(
        self,
        width: int | None = None,
        height: int | None = None,
    ) -> Optional[Image.Image]:
        """Cropped pixels as a PIL image, optionally resampled to width x height."""
        pixels = self.engine.get_result()
        if pixels is None:
            return None
        img = array_to_pil(pixels, vmin=self._vmin, vmax=self._vmax, cmap=self._cmap)
        if width is not None and height is not None:
            img = img.resize((int(width), int(height)), Image.Resampling.LANCZOS)
        return img

    def reset_crop_box(self) -> None:
        """Drop the current selection and start over with the default box."""
        self._cancel_drag()
        self.engine.reset()
        self.engine.on_ready()
        self._redraw_overlay()

    def clear(self) -> None:
        self._cancel_drag()
        self.engine.clear()
        self._redraw_overlay()

    def set_aspect_ratio(self, ratio: float | None) -> None:
        self.engine.set_aspect_ratio(ratio)
        self._redraw_overlay()

    def replace_image(self, image: np.ndarray) -> None:
        """Show a new image; the selection is recreated for it."""
        self._cancel_drag()
        self.engine.reset()
        self.renderer.replace_image(image)
        self._source_pil = self._make_source_pil()
        self.engine.on_ready()
        self._update_image()

    # ------------- public viewport API -------------

    def zoom_in(self) -> bool:
        return self._zoom(self.config.zoom_step)

    def zoom_out(self) -> bool:
        return self._zoom(-self.config.zoom_step)

    def zoom_to(self, ratio: float) -> bool:
        if not self.renderer.zoom_to(ratio):
            return False
        self._update_image()
        return True

    def move_image(self, dx: float, dy: float) -> None:
        self.renderer.move(dx, dy)
        self._update_image()

    def reset_view(self) -> None:
        self.renderer.reset_view()
        self._update_image()

    # ------------- public event registration API -------------

    def on_crop_data(self, handler: Callable[[dict], None]) -> None:
        """Register callback for crop data updates.

        Handler is called with: crop data dict
        """
        self.engine.on_crop_data(handler)

    def on_region_committed(self, handler: Callable[[dict], None]) -> None:
        """Register callback for logical region commits.

        Handler is called with: rect dict
        """
        self.engine.on_region_committed(handler)

    # ------------- internals: rendering -------------

    def _make_source_pil(self) -> Image.Image:
        return array_to_pil(self.renderer.image, vmin=self._vmin, vmax=self._vmax, cmap=self._cmap)

    def _render_view_pil(self) -> Image.Image:
        return render_view_pil(
            self._source_pil,
            self.renderer.get_transform(),
            self.DISPLAY_W,
            self.DISPLAY_H,
            background=self.config.background,
        )

    def _image_style(self) -> str:
        return (
            f"aspect-ratio: {self.DISPLAY_W} / {self.DISPLAY_H}; "
            f"object-fit: contain; border: {self.config.image_border_width}px solid #666;"
        )

    def _update_image(self) -> None:
        """Redraw image + overlay."""
        self._rebase_drag()
        self.interactive.set_source(self._render_view_pil())
        self._redraw_overlay()

    def _redraw_overlay(self) -> None:
        rect = self.renderer.get_displayed_selection()
        if self.engine.get_logical_region() is None:
            self.interactive.content = ""
        else:
            self.interactive.content = selection_svg(
                rect,
                color=self.config.selection_color,
                line_width=self.config.selection_line_width,
                indicator_radius=self.config.indicator_radius,
            )
        self.interactive.update()

    def _zoom(self, delta: float, pivot: Optional[Tuple[float, float]] = None) -> bool:
        if not self.renderer.zoom(delta, pivot):
            return False
        self._update_image()
        return True

    # ------------- internals: events -------------

    def _rebase_drag(self) -> None:
        # The engine re-projects a held box on pan/zoom; keep dragging from there.
        if self._mode != "editing" or self._last_vx is None or self._last_vy is None:
            return
        self._drag_rect = self.renderer.get_displayed_selection()
        self._drag_start = (self._last_vx, self._last_vy)

    def _cancel_drag(self) -> None:
        self._mode = "idle"
        self._drag_action = None
        self._drag_start = None
        self._drag_rect = None

    def _pan_requested(self, e: events.MouseEventArguments) -> bool:
        if not self.config.enable_panning:
            return False
        mods = self.config.pan_modifiers
        return ("shift" in mods and e.shift) or ("ctrl" in mods and e.ctrl)

    def _on_mouse(self, e: events.MouseEventArguments) -> None:
        """Translate NiceGUI mouse events into engine edit/pan events."""
        vx = float(e.image_x)
        vy = float(e.image_y)

        # ---------- MOUSEDOWN (start edit / pan) ----------
        if e.type == "mousedown" and e.button == 0:
            self._last_vx, self._last_vy = vx, vy
            if self._pan_requested(e):
                self._mode = "panning"
                self._drag_start = (vx, vy)
                self.engine.on_edit_start("move")
                return

            if self.engine.get_logical_region() is None:
                return
            displayed = self.renderer.get_displayed_selection()
            action = hit_test_action(vx, vy, displayed, self.config.edge_tolerance_px)
            if action is None:
                return
            self._mode = "editing"
            self._drag_action = action
            self._drag_start = (vx, vy)
            self._drag_rect = displayed
            self.engine.on_edit_start(action)
            return

        # ---------- MOUSEMOVE ----------
        if e.type == "mousemove":
            last_vx, last_vy = self._last_vx, self._last_vy
            self._last_vx, self._last_vy = vx, vy
            if not (e.buttons & 1):
                return

            if self._mode == "panning" and last_vx is not None and last_vy is not None:
                self.renderer.move(vx - last_vx, vy - last_vy)
                self.engine.on_edit_move()
                self._update_image()
                return

            if (
                self._mode == "editing"
                and self._drag_action is not None
                and self._drag_start is not None
                and self._drag_rect is not None
            ):
                new_rect = apply_drag(
                    self._drag_action,
                    self._drag_rect,
                    vx - self._drag_start[0],
                    vy - self._drag_start[1],
                    aspect_ratio=self.engine.aspect_ratio,
                    min_size=self.config.min_box_size_px,
                )
                self.renderer.set_displayed_selection(new_rect)
                self.engine.on_edit_move()
                self._redraw_overlay()
            return

        # ---------- MOUSEUP (finish edit / pan) ----------
        if e.type == "mouseup" and e.button == 0:
            if self._mode in ("editing", "panning"):
                self.engine.on_edit_end()
            self._cancel_drag()
            self._redraw_overlay()

    def _on_wheel(self, e: events.GenericEventArguments) -> None:
        """Zoom around the last pointer position."""
        args = e.args or {}
        dy = args.get("deltaY", 0)
        if not isinstance(dy, (int, float)) or dy == 0:
            return

        delta = self.config.zoom_step if dy < 0 else -self.config.zoom_step
        pivot = None
        if self._last_vx is not None and self._last_vy is not None:
            pivot = (self._last_vx, self._last_vy)
        if self._zoom(delta, pivot) and pivot is not None:
            ix, iy = point_to_image(pivot[0], pivot[1], self.renderer.get_transform())
            logger.debug(f"Zoom: ratio={self.renderer.ratio:.3f}, image pivot=({ix:.1f}, {iy:.1f})")
