"""Crop engine - keeps an image-space crop region anchored under pan and zoom."""

from .adapter import CropRenderer, TransformAdapter
from .array_renderer import ArrayRenderer, ImageView
from .config import CropEngineConfig
from .engine import ReconcilerState, StickyCropEngine
from .errors import (
    CropEngineError,
    DegenerateRegionError,
    InvalidTransformError,
    NoActiveRegionError,
)
from .geometry import PendingDelta, Rect, RectDict, Transform, ViewportBounds
from .projector import to_image, to_viewport
from .region_store import RegionStore
from .scheduler import DeferredScheduler
from .visibility import VisibilityState, classify_visibility, clip_to_bounds

__all__ = [
    "ArrayRenderer",
    "CropEngineConfig",
    "CropEngineError",
    "CropRenderer",
    "DeferredScheduler",
    "DegenerateRegionError",
    "ImageView",
    "InvalidTransformError",
    "NoActiveRegionError",
    "PendingDelta",
    "ReconcilerState",
    "Rect",
    "RectDict",
    "RegionStore",
    "StickyCropEngine",
    "Transform",
    "TransformAdapter",
    "ViewportBounds",
    "VisibilityState",
    "classify_visibility",
    "clip_to_bounds",
    "to_image",
    "to_viewport",
]
