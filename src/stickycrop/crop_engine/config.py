# stickycrop/src/stickycrop/crop_engine/config.py

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional


@dataclass
class CropEngineConfig:
    # Visibility
    min_display_size: float = 10.0          # viewport units; thinner projections are out of bounds

    # Region guards (image-space)
    max_region_factor: float = 10.0         # max width/height as a multiple of the natural image size

    # Zoom limits (viewport units per image pixel)
    min_zoom_ratio: float = 0.1
    max_zoom_ratio: float = 3.0

    # Initial crop box
    auto_crop_area: float = 0.6             # fraction of the visible image covered by the default box
    aspect_ratio: Optional[float] = None    # width / height; None means free

    # Display comparison tolerance (viewport units)
    position_tolerance: float = 0.1

    def __post_init__(self) -> None:
        self.aspect_ratio = normalize_aspect_ratio(self.aspect_ratio)
        if not 0.0 < self.auto_crop_area <= 1.0:
            raise ValueError(f"auto_crop_area must be in (0, 1], got {self.auto_crop_area}")
        if self.min_zoom_ratio <= 0.0 or self.max_zoom_ratio < self.min_zoom_ratio:
            raise ValueError(
                f"invalid zoom limits: [{self.min_zoom_ratio}, {self.max_zoom_ratio}]"
            )


def normalize_aspect_ratio(ratio: Optional[float]) -> Optional[float]:
    """Map NaN, zero and negative ratios to None (free aspect)."""
    if ratio is None:
        return None
    r = float(ratio)
    if not math.isfinite(r) or r <= 0.0:
        return None
    return r
