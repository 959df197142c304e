from __future__ import annotations

import numpy as np
from nicegui import ui

from stickycrop.crop_widget import CropImageWidget, CropWidgetConfig
from stickycrop.utils.logging import configure_logging


def create_demo_image(height: int = 480, width: int = 640) -> np.ndarray:
    """Simple demo image: crossed sine waves + noise."""
    x = np.linspace(0, 6 * np.pi, width)[None, :]
    y = np.linspace(0, 4 * np.pi, height)[:, None]
    img = 0.5 + 0.25 * np.sin(x) + 0.25 * np.cos(y)
    img += 0.05 * np.random.randn(height, width)
    return np.clip(img, 0.0, 1.0)


@ui.page("/")
def index() -> None:
    img = create_demo_image()

    with ui.row().classes("w-full gap-6"):
        with ui.column().classes("items-start gap-2 w-3/4"):
            ui.label("CropImageWidget demo").classes("text-lg font-bold")
            ui.label("Drag the box to move/resize, shift+drag to pan, wheel to zoom.")

            widget = CropImageWidget(
                img,
                cmap="viridis",
                config=CropWidgetConfig(display_width_px=640, display_height_px=480),
            )

            status = ui.label()

            def on_crop_data(data: dict) -> None:
                status.text = (
                    f"x={data['x']:.1f} y={data['y']:.1f} "
                    f"w={data['width']:.1f} h={data['height']:.1f} "
                    f"[{data['visibility']}{', deferred' if data['deferred'] else ''}]"
                )

            widget.on_crop_data(on_crop_data)
            widget.on_region_committed(
                lambda rect: ui.notify(f"Committed {rect['width']:.0f}x{rect['height']:.0f}", timeout=1.0)
            )

        with ui.column().classes("items-start gap-2 w-1/4"):
            ui.label("View")
            with ui.row():
                ui.button("+", on_click=widget.zoom_in)
                ui.button("-", on_click=widget.zoom_out)
                ui.button("1:1", on_click=lambda: widget.zoom_to(1.0))
                ui.button("Fit", on_click=widget.reset_view)
            with ui.row():
                ui.button("←", on_click=lambda: widget.move_image(-50, 0))
                ui.button("→", on_click=lambda: widget.move_image(50, 0))

            ui.label("Crop box")
            ui.select(
                {0: "free", 1.0: "1:1", 16 / 9: "16:9", 4 / 3: "4:3"},
                value=0,
                on_change=lambda e: widget.set_aspect_ratio(e.value or None),
            )
            with ui.row():
                ui.button("Reset", on_click=widget.reset_crop_box)
                ui.button("Clear", on_click=widget.clear)

            preview = ui.image().classes("w-48")

            def show_crop() -> None:
                cropped = widget.get_cropped_image(width=192, height=144)
                if cropped is None:
                    ui.notify("No crop result", type="warning")
                    return
                preview.set_source(cropped)

            ui.button("Crop", on_click=show_crop)


if __name__ in {"__main__", "__mp_main__"}:
    configure_logging(level="DEBUG")
    ui.run(reload=False)
