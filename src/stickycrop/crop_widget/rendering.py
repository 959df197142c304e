# stickycrop/src/stickycrop/crop_widget/rendering.py

"""Pure helpers for the crop widget: pixel mapping, SVG overlay, drag geometry.

Nothing here touches NiceGUI, so all of it can be exercised headless.
"""

from __future__ import annotations

from typing import Optional

import matplotlib
import numpy as np
from PIL import Image

from stickycrop.crop_engine.geometry import Rect, Transform

# Handle names follow the usual cropper convention: "all" moves the box,
# compass letters resize the matching edges.
MOVE_ACTION = "all"


def array_to_pil(
    arr: np.ndarray,
    vmin: float | None = None,
    vmax: float | None = None,
    cmap: str = "gray",
) -> Image.Image:
    """Map a NumPy image to an 8-bit RGB PIL image.

    2D arrays go through a colormap using vmin/vmax. 3D uint8 arrays with 3 or
    4 channels are taken as RGB(A) and converted directly.
    """
    arr = np.asarray(arr)
    if arr.ndim == 3:
        if arr.shape[2] not in (3, 4):
            raise ValueError(f"expected 3 or 4 channels, got {arr.shape[2]}")
        return Image.fromarray(np.clip(arr, 0, 255).astype(np.uint8)).convert("RGB")

    arr = arr.astype(float)
    if vmin is None:
        vmin = float(np.nanmin(arr))
    if vmax is None:
        vmax = float(np.nanmax(arr))

    if vmax <= vmin:
        vmax = vmin + 1e-6

    norm = (arr - vmin) / (vmax - vmin)
    norm = np.clip(norm, 0.0, 1.0)

    cmap_fn = matplotlib.colormaps[cmap]
    rgba = cmap_fn(norm)
    rgb = (rgba[..., :3] * 255).astype(np.uint8)
    return Image.fromarray(rgb)


def render_view_pil(
    source: Image.Image,
    transform: Transform,
    disp_w: int,
    disp_h: int,
    background: tuple[int, int, int] = (32, 32, 32),
) -> Image.Image:
    """Render `source` as seen through `transform` into a disp_w x disp_h canvas.

    PIL's affine transform maps each output pixel back into the source, so the
    coefficients are the inverse of image -> viewport.
    """
    sx = transform.scale_x
    sy = transform.scale_y
    data = (
        1.0 / sx, 0.0, -transform.offset_x / sx,
        0.0, 1.0 / sy, -transform.offset_y / sy,
    )
    return source.transform(
        (int(disp_w), int(disp_h)),
        Image.Transform.AFFINE,
        data,
        resample=Image.Resampling.BILINEAR,
        fillcolor=background,
    )


def selection_svg(
    rect: Rect,
    *,
    color: str = "#3399ff",
    line_width: float = 2.0,
    indicator_radius: float = 6.0,
) -> str:
    """SVG overlay for the displayed selection.

    A zero-size rect is the off-screen indicator and is drawn as a marker at
    the viewport edge instead of a box.
    """
    if rect.width <= 0.0 and rect.height <= 0.0:
        return (
            f'<circle cx="{rect.x}" cy="{rect.y}" r="{indicator_radius}" '
            f'fill="{color}" fill-opacity="0.6" stroke="{color}" '
            f'stroke-width="{line_width}" />'
        )
    return (
        f'<rect x="{rect.x}" y="{rect.y}" width="{rect.width}" height="{rect.height}" '
        f'stroke="{color}" stroke-width="{line_width}" stroke-dasharray="6 3" '
        f'fill="{color}" fill-opacity="0.1" />'
    )


def hit_test_action(vx: float, vy: float, rect: Rect, tol: float) -> Optional[str]:
    """Which drag action a press at (vx, vy) starts on `rect`, or None.

    Returns "all" for the body (or the zero-size indicator) and a compass
    string such as "n", "se" or "w" near edges.
    """
    if rect.width <= 0.0 and rect.height <= 0.0:
        if abs(vx - rect.x) <= tol and abs(vy - rect.y) <= tol:
            return MOVE_ACTION
        return None

    if not (rect.x - tol <= vx <= rect.right + tol and rect.y - tol <= vy <= rect.bottom + tol):
        return None

    action = ""
    if abs(vy - rect.y) <= tol:
        action += "n"
    elif abs(vy - rect.bottom) <= tol:
        action += "s"
    if abs(vx - rect.x) <= tol:
        action += "w"
    elif abs(vx - rect.right) <= tol:
        action += "e"

    if action:
        return action
    return MOVE_ACTION


def apply_drag(
    action: str,
    start: Rect,
    dx: float,
    dy: float,
    *,
    aspect_ratio: Optional[float] = None,
    min_size: float = 10.0,
) -> Rect:
    """Viewport-space rect after dragging `action` by (dx, dy) from `start`."""
    if action == MOVE_ACTION:
        return start.translated(dx, dy)

    left, top, right, bottom = start.x, start.y, start.right, start.bottom
    if "w" in action:
        left = min(left + dx, right - min_size)
    if "e" in action:
        right = max(right + dx, left + min_size)
    if "n" in action:
        top = min(top + dy, bottom - min_size)
    if "s" in action:
        bottom = max(bottom + dy, top + min_size)

    width = right - left
    height = bottom - top
    if aspect_ratio:
        horizontal = "e" in action or "w" in action
        if horizontal:
            height = width / aspect_ratio
            if "n" in action:
                top = bottom - height
        else:
            width = height * aspect_ratio
            if "w" in action:
                left = right - width

    return Rect(left, top, width, height)
