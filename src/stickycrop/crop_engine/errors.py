"""Error taxonomy for the crop engine.

These are raised by the pure helpers (projector, region guards) and absorbed by
StickyCropEngine at its event entry points. None of them escapes the engine.
"""

from __future__ import annotations


class CropEngineError(Exception):
    """Base class for crop engine conditions."""


class InvalidTransformError(CropEngineError):
    """Transform has a zero or non-finite scale (or a non-finite offset)."""


class DegenerateRegionError(CropEngineError):
    """Rectangle is non-positive, non-finite, or implausibly large."""


class NoActiveRegionError(CropEngineError):
    """Operation needs a logical region but none exists."""
