# stickycrop/src/stickycrop/crop_engine/region_store.py

from __future__ import annotations

from typing import Optional

import numpy as np

from stickycrop.crop_engine.errors import NoActiveRegionError
from stickycrop.crop_engine.geometry import PendingDelta, Rect
from stickycrop.utils.logging import get_logger

logger = get_logger(__name__)


class RegionStore:
    """Authoritative logical crop region (image-space) plus its pending delta.

    The store also owns the pixel snapshot, keyed by the logical region it was
    captured against. Any change of the logical region drops the snapshot.
    """

    def __init__(self) -> None:
        self._logical: Optional[Rect] = None
        self._pending: Optional[PendingDelta] = None
        self._snapshot: Optional[np.ndarray] = None
        self._snapshot_region: Optional[Rect] = None

    # ------------- queries -------------

    @property
    def logical(self) -> Optional[Rect]:
        return self._logical

    @property
    def pending(self) -> Optional[PendingDelta]:
        return self._pending

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def effective(self) -> Optional[Rect]:
        """Logical region with the pending delta applied, or None."""
        if self._logical is None:
            return None
        return self._logical.with_delta(self._pending)

    @property
    def snapshot(self) -> Optional[np.ndarray]:
        """Snapshot pixels, only while they still match the logical region."""
        if self._snapshot is None or self._snapshot_region != self._logical:
            return None
        return self._snapshot

    # ------------- mutations -------------

    def commit(self, rect: Rect) -> None:
        """Make `rect` the logical region and drop any pending delta."""
        self._logical = rect
        self._pending = None
        self.invalidate_snapshot()
        logger.debug(f"commit: logical={rect}")

    def commit_pending(self) -> Rect:
        """Fold the pending delta into the logical region."""
        effective = self.effective()
        if effective is None:
            raise NoActiveRegionError("commit_pending without a logical region")
        self.commit(effective)
        return effective

    def accumulate(self, delta: PendingDelta) -> PendingDelta:
        """Add `delta` to the pending delta (sum, never overwrite)."""
        if self._logical is None:
            raise NoActiveRegionError("cannot defer an edit without a logical region")
        self._pending = delta if self._pending is None else self._pending + delta
        logger.debug(f"accumulate: delta={delta} pending={self._pending}")
        return self._pending

    def set_snapshot(self, pixels: np.ndarray) -> None:
        if self._logical is None:
            raise NoActiveRegionError("cannot capture a snapshot without a logical region")
        self._snapshot = pixels
        self._snapshot_region = self._logical

    def invalidate_snapshot(self) -> None:
        self._snapshot = None
        self._snapshot_region = None

    def clear(self) -> None:
        self._logical = None
        self._pending = None
        self.invalidate_snapshot()
