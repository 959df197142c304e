"""
stickycrop: crop selection that stays anchored to image pixels under pan and zoom.

This package provides:
- StickyCropEngine: image-space crop region, visibility classification, clipping
  and deferred-edit reconciliation, independent of any UI toolkit
- ArrayRenderer: headless pan/zoom renderer over a NumPy image
- CropImageWidget: NiceGUI widget hosting the engine (stickycrop.crop_widget)
- Logging utilities for library and application use

For logging configuration in standalone scripts/demos:
    ```python
    from stickycrop.utils.logging import configure_logging
    configure_logging(level="DEBUG")
    ```
"""

import logging

from stickycrop.crop_engine import (
    ArrayRenderer,
    CropEngineConfig,
    Rect,
    StickyCropEngine,
    Transform,
    ViewportBounds,
    VisibilityState,
)
from stickycrop.utils.logging import configure_logging, get_logger

# NullHandler so library logs don't reach root unless an application
# calls configure_logging() or sets up its own handlers.
_logger = logging.getLogger("stickycrop")
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())

__all__ = [
    "ArrayRenderer",
    "CropEngineConfig",
    "Rect",
    "StickyCropEngine",
    "Transform",
    "ViewportBounds",
    "VisibilityState",
    "configure_logging",
    "get_logger",
]

__version__ = "0.1.0"
