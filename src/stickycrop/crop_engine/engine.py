# stickycrop/src/stickycrop/crop_engine/engine.py

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from stickycrop.crop_engine.adapter import CropRenderer, TransformAdapter
from stickycrop.crop_engine.config import CropEngineConfig, normalize_aspect_ratio
from stickycrop.crop_engine.errors import (
    DegenerateRegionError,
    InvalidTransformError,
    NoActiveRegionError,
)
from stickycrop.crop_engine.geometry import EMPTY_RECT, PendingDelta, Rect, Transform
from stickycrop.crop_engine.projector import to_image, to_viewport
from stickycrop.crop_engine.region_store import RegionStore
from stickycrop.crop_engine.scheduler import DeferredScheduler
from stickycrop.crop_engine.visibility import (
    VisibilityState,
    classify_visibility,
    clip_to_bounds,
)
from stickycrop.utils.logging import get_logger

logger = get_logger(__name__)

# Reported when no region exists or nothing has been classified yet.
DEFAULT_VISIBILITY = VisibilityState.OUT_OF_BOUNDS

# Renderer action that drags the image itself rather than the crop box.
PAN_ACTION = "move"


class ReconcilerState(Enum):
    IDLE = "idle"
    EDITING = "editing"
    COMMITTED_VISIBLE = "committed_visible"
    DEFERRED_PARTIAL_EDIT = "deferred_partial_edit"


class StickyCropEngine:
    """Keeps a crop region anchored to image pixels while the image pans and zooms.

    The logical region lives in image-space and is only replaced by commits
    made while its projection is fully visible. Edits made against a clipped
    view are stored as an image-space pending delta and committed once the
    effective region (logical + pending) becomes fully visible again.

    Events (entry points called by the renderer/UI):
        on_ready(), on_edit_start(action), on_edit_move(), on_edit_end(),
        on_transform_changed(), on_zoom(ratio, old_ratio), on_pan_start(),
        on_pan_end()

    Listeners (via callback registration):
        on_crop_data(handler): handler(crop_data_dict)
        on_region_committed(handler): handler(rect_dict)
        on_visibility_changed(handler): handler(VisibilityState)

    Every condition (invalid transform, degenerate region, no region) is
    logged and absorbed; the engine keeps its last good state.
    """

    def __init__(
        self,
        renderer: CropRenderer,
        *,
        config: CropEngineConfig | None = None,
        scheduler: DeferredScheduler | None = None,
    ) -> None:
        self.config = config if config is not None else CropEngineConfig()
        self.renderer = renderer
        self.adapter = TransformAdapter(renderer)
        self.scheduler = scheduler if scheduler is not None else DeferredScheduler()
        self._store = RegionStore()

        self._state = ReconcilerState.IDLE
        self._visibility = DEFAULT_VISIBILITY

        # Edit session
        self._resume_state = ReconcilerState.IDLE  # state to return to if an edit is dropped
        self._edit_action: Optional[str] = None
        self._edit_baseline: Optional[Rect] = None  # image-space, captured at edit start
        self._edit_display: Optional[Rect] = None   # viewport-space, captured at edit start
        self._edit_transform: Optional[Transform] = None  # transform the held selection is drawn with
        self._panning = False

        self._queued_reconcile_epoch: Optional[int] = None
        self._in_transition = False

        self._crop_data_handlers: List[Callable[[dict], None]] = []
        self._region_committed_handlers: List[Callable[[dict], None]] = []
        self._visibility_changed_handlers: List[Callable[[VisibilityState], None]] = []

    # ------------- properties -------------

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def region_store(self) -> RegionStore:
        return self._store

    @property
    def has_deferred_update(self) -> bool:
        return self._store.has_pending

    @property
    def pending_delta(self) -> Optional[PendingDelta]:
        return self._store.pending

    @property
    def is_editing(self) -> bool:
        return self._state is ReconcilerState.EDITING

    @property
    def is_panning(self) -> bool:
        return self._panning

    @property
    def aspect_ratio(self) -> Optional[float]:
        return self.config.aspect_ratio

    # ------------- public query API -------------

    def get_logical_region(self) -> Optional[Rect]:
        """Last committed image-space region (pending delta not applied)."""
        return self._store.logical

    def get_effective_region(self) -> Optional[Rect]:
        """Logical region plus any pending delta."""
        return self._store.effective()

    def get_visibility_state(self) -> VisibilityState:
        if self._store.logical is None:
            return DEFAULT_VISIBILITY
        return self._visibility

    def get_result(self) -> Any:
        """Cropped pixels for the logical region.

        Returns the snapshot captured at the last fully-visible commit. Without
        a valid snapshot this falls back to rendering whatever the displayed
        selection currently covers, which may be clipped by the viewport.
        """
        snapshot = self._store.snapshot
        if snapshot is not None:
            return snapshot
        if self._store.logical is None:
            return None

        try:
            transform = self.adapter.read_transform()
            rect = to_image(self.adapter.read_displayed(), transform)
        except InvalidTransformError as e:
            logger.warning(f"get_result fallback skipped: {e}")
            return None
        if rect.width <= 0 or rect.height <= 0:
            logger.debug("get_result fallback skipped: displayed selection is empty")
            return None
        logger.debug(f"get_result: no snapshot, rendering displayed selection {rect}")
        return self._render(rect)

    def get_crop_data(self) -> Optional[Dict[str, Any]]:
        """Effective region plus the current scale, or None without a region."""
        effective = self._store.effective()
        if effective is None:
            return None
        data: Dict[str, Any] = dict(effective.to_dict())
        transform = self.renderer.get_transform()
        data["scale_x"] = transform.scale_x
        data["scale_y"] = transform.scale_y
        data["visibility"] = self.get_visibility_state().value
        data["deferred"] = self.has_deferred_update
        pending = self._store.pending
        data["pending"] = pending.to_dict() if pending is not None else None
        return data

    # ------------- public event registration API -------------

    def on_crop_data(self, handler: Callable[[dict], None]) -> None:
        """Register callback for crop data updates.

        Handler is called with: crop data dict (see get_crop_data)
        """
        self._crop_data_handlers.append(handler)

    def on_region_committed(self, handler: Callable[[dict], None]) -> None:
        """Register callback for logical region commits.

        Handler is called with: rect dict of the new logical region
        """
        self._region_committed_handlers.append(handler)

    def on_visibility_changed(self, handler: Callable[[VisibilityState], None]) -> None:
        """Register callback for visibility classification changes."""
        self._visibility_changed_handlers.append(handler)

    # ------------- lifecycle / commands -------------

    def on_ready(self) -> None:
        """Renderer finished laying out: create the default crop box if needed."""
        self._run_transition("ready", self._ready_impl)

    def initialize_region(self, rect: Rect) -> Optional[bool]:
        """Commit an explicit image-space region, replacing any current one.

        Returns True when committed and False when the rect was rejected. A
        call made from inside another engine transition is queued and
        returns None; it runs on the next drain.
        """
        return self._run_transition("initialize", lambda: self._initialize_impl(rect))

    def clear(self) -> None:
        """Drop region, pending delta and snapshot; cancel deferred work."""
        self._run_transition("clear", self._clear_impl)

    def reset(self) -> None:
        """Same as clear(): the engine returns to IDLE with no region."""
        self.clear()

    def set_aspect_ratio(self, ratio: Optional[float]) -> None:
        """Set width/height ratio (None, NaN or <= 0 means free).

        The current region is reshaped around its centre, keeping its width,
        and the change goes through the same commit-or-defer gate as an edit.
        """
        self._run_transition("aspect_ratio", lambda: self._aspect_ratio_impl(ratio))

    def reconcile_now(self) -> Optional[VisibilityState]:
        """Run the transform-change reconcile synchronously."""
        return self._run_transition("reconcile", self._reconcile)

    def settle(self) -> int:
        """Run all deferred work that is still current."""
        return self.scheduler.flush()

    # ------------- renderer events -------------

    def on_transform_changed(self) -> None:
        """Image was panned or zoomed: reconcile once the render cycle settles.

        During an edit the held selection is re-projected instead, so it stays
        on the same image pixels and the drift never reaches the edit delta.
        """
        if self.is_editing:
            self._run_transition("edit_rebase", self._rebase_edit)
            return
        self._schedule_reconcile("transform_changed")

    def on_zoom(self, ratio: float, old_ratio: Optional[float] = None) -> bool:
        """Veto zoom ratios outside the configured limits.

        Accepted zooms schedule a reconcile; it runs after the zoom is applied.
        During an edit the held selection follows the zoom instead.
        """
        if ratio > self.config.max_zoom_ratio or ratio < self.config.min_zoom_ratio:
            logger.debug(
                f"zoom vetoed: ratio={ratio:.3f} outside "
                f"[{self.config.min_zoom_ratio}, {self.config.max_zoom_ratio}]"
            )
            return False
        if not self.is_editing:
            self._schedule_reconcile("zoom")
        return True

    def on_edit_start(self, action: str = "all") -> None:
        """User grabbed the displayed selection (or the image, for `move`)."""
        if action == PAN_ACTION:
            self.on_pan_start()
            return
        self._run_transition("edit_start", lambda: self._edit_start_impl(action))

    def on_edit_move(self) -> None:
        """Pointer moved during an edit or pan."""
        if self._panning:
            self._schedule_reconcile("pan_move")
            return
        if not self.is_editing:
            return
        self._run_transition("edit_move", self._edit_move_impl)

    def on_edit_end(self) -> None:
        """User released the selection; commit or defer the edit."""
        if self._panning:
            self.on_pan_end()
            return
        self._run_transition("edit_end", self._edit_end_impl)

    def on_pan_start(self) -> None:
        if self.is_editing:
            logger.debug("pan start ignored while editing")
            return
        self.scheduler.begin_session()
        self._panning = True
        logger.debug("pan started")

    def on_pan_end(self) -> None:
        """Drag-pan finished: commit pending work if the region is fully visible."""
        if not self._panning:
            return
        self._panning = False
        self._schedule_reconcile("pan_end")
        logger.debug("pan ended")

    # ------------- internals: transitions -------------

    def _run_transition(self, name: str, fn: Callable[[], Any]) -> Any:
        # One transition at a time; re-entrant events wait on the queue.
        if self._in_transition:
            logger.debug(f"re-entrant '{name}' queued")
            self.scheduler.schedule(lambda: self._run_transition(name, fn), label=f"reentrant:{name}")
            return None
        self._in_transition = True
        try:
            return fn()
        finally:
            self._in_transition = False

    def _schedule_reconcile(self, label: str) -> None:
        epoch = self.scheduler.epoch
        if self._queued_reconcile_epoch == epoch:
            return
        self._queued_reconcile_epoch = epoch
        self.scheduler.schedule(self._run_deferred_reconcile, label=label)

    def _run_deferred_reconcile(self) -> None:
        self._queued_reconcile_epoch = None
        if self.is_editing:
            return
        self._run_transition("deferred_reconcile", self._reconcile)

    def _ready_impl(self) -> None:
        if self._store.logical is not None:
            self._reconcile()
            return
        try:
            rect = self._default_region()
        except (InvalidTransformError, DegenerateRegionError) as e:
            logger.warning(f"ready: no default crop box: {e}")
            return
        self._initialize_impl(rect)

    def _initialize_impl(self, rect: Rect) -> bool:
        try:
            self._guard_region(rect)
        except DegenerateRegionError as e:
            logger.warning(f"initialize_region rejected: {e}")
            return False
        self.scheduler.begin_session()
        self._store.commit(rect)
        self._state = ReconcilerState.COMMITTED_VISIBLE
        visibility = self._reconcile()
        if visibility is VisibilityState.FULLY_VISIBLE:
            self._capture_snapshot()
        self._notify_committed(rect)
        logger.info(f"crop region initialized: {rect}")
        return True

    def _clear_impl(self) -> None:
        self.scheduler.begin_session()
        self.scheduler.cancel_all()
        self._queued_reconcile_epoch = None
        self._store.clear()
        self._drop_edit()
        self._panning = False
        self._state = ReconcilerState.IDLE
        self._set_visibility(DEFAULT_VISIBILITY)
        self.adapter.push_displayed(EMPTY_RECT)
        logger.info("crop region cleared")

    def _aspect_ratio_impl(self, ratio: Optional[float]) -> None:
        self.config.aspect_ratio = normalize_aspect_ratio(ratio)
        effective = self._store.effective()
        if self.config.aspect_ratio is None or effective is None:
            return
        cx, cy = effective.center
        width = effective.width
        height = width / self.config.aspect_ratio
        reshaped = Rect(cx - 0.5 * width, cy - 0.5 * height, width, height)
        self._apply_delta(PendingDelta.between(effective, reshaped), source="aspect_ratio")

    def _edit_start_impl(self, action: str) -> None:
        if self.is_editing:
            logger.debug(f"edit_start({action}) ignored: edit already in progress")
            return
        if self._store.logical is None:
            logger.debug(f"edit_start({action}) ignored: {NoActiveRegionError.__name__}")
            return

        self.scheduler.begin_session()
        self._queued_reconcile_epoch = None
        displayed = self.adapter.read_displayed()
        try:
            transform = self.adapter.read_transform()
            baseline = to_image(displayed, transform)
        except InvalidTransformError as e:
            logger.warning(f"edit_start({action}) ignored: {e}")
            return

        self._resume_state = self._state
        self._edit_action = action
        self._edit_baseline = baseline
        self._edit_display = displayed
        self._edit_transform = transform
        self._state = ReconcilerState.EDITING
        logger.debug(f"edit started: action={action} baseline={baseline}")

    def _edit_move_impl(self) -> None:
        baseline = self._edit_baseline
        effective = self._store.effective()
        if baseline is None or effective is None:
            return
        try:
            current = to_image(self.adapter.read_displayed(), self.adapter.read_transform())
        except InvalidTransformError:
            return
        provisional = effective.with_delta(PendingDelta.between(baseline, current))
        data: Dict[str, Any] = dict(provisional.to_dict())
        data["editing"] = True
        self._notify_crop_data(data)

    def _edit_end_impl(self) -> None:
        if not self.is_editing:
            logger.debug("edit_end ignored: no edit in progress")
            return
        baseline = self._edit_baseline
        action = self._edit_action
        prior_display = self._edit_display
        self._state = self._resume_state
        self._drop_edit()
        if baseline is None:
            return

        try:
            post = to_image(self.adapter.read_displayed(), self.adapter.read_transform())
        except InvalidTransformError as e:
            logger.warning(f"edit_end({action}) dropped: {e}")
            if prior_display is not None:
                self.adapter.push_displayed(prior_display)
            return

        delta = PendingDelta.between(baseline, post)
        self._apply_delta(delta, source=f"edit:{action}", prior_display=prior_display)

    def _rebase_edit(self) -> None:
        """Re-project the held selection onto the current transform."""
        old = self._edit_transform
        if not self.is_editing or old is None:
            return
        try:
            new = self.adapter.read_transform()
            held = to_image(self.adapter.read_displayed(), old)
        except InvalidTransformError as e:
            logger.warning(f"edit rebase skipped: {e}")
            return

        self._edit_transform = new
        if self._edit_display is not None:
            self._edit_display = to_viewport(to_image(self._edit_display, old), new)
        self.adapter.push_displayed(to_viewport(held, new))
        logger.debug(f"held selection re-projected: {held}")

    def _drop_edit(self) -> None:
        self._edit_action = None
        self._edit_baseline = None
        self._edit_display = None
        self._edit_transform = None

    # ------------- internals: core reconcile -------------

    def _apply_delta(
        self,
        delta: PendingDelta,
        *,
        source: str,
        prior_display: Optional[Rect] = None,
    ) -> Optional[VisibilityState]:
        """Commit effective+delta if fully visible, else fold delta into pending."""
        effective = self._store.effective()
        if effective is None:
            logger.debug(f"{source} ignored: {NoActiveRegionError.__name__}")
            return None

        candidate = effective.with_delta(delta)
        try:
            self._guard_region(candidate)
            transform = self.adapter.read_transform()
        except (DegenerateRegionError, InvalidTransformError) as e:
            logger.warning(f"{source} rejected: {e}")
            if prior_display is not None:
                self.adapter.push_displayed(prior_display)
            return None

        bounds = self.adapter.read_bounds()
        projected = to_viewport(candidate, transform)
        visibility = classify_visibility(projected, bounds, self.config.min_display_size)

        if visibility is VisibilityState.FULLY_VISIBLE:
            self._store.commit(candidate)
            self._state = ReconcilerState.COMMITTED_VISIBLE
            self._set_visibility(visibility)
            self._push_display(clip_to_bounds(projected, bounds))
            self._capture_snapshot()
            self._notify_committed(candidate)
            logger.info(f"{source}: committed {candidate}")
        else:
            if not delta.is_zero():
                pending = self._store.accumulate(delta)
                self._state = ReconcilerState.DEFERRED_PARTIAL_EDIT
                logger.info(f"{source}: deferred ({visibility.value}), pending={pending}")
            self._set_visibility(visibility)
            self._push_display(clip_to_bounds(projected, bounds))

        self._notify_crop_data(self.get_crop_data())
        return visibility

    def _reconcile(self) -> Optional[VisibilityState]:
        """Project the effective region, classify, clip and display it.

        Commits the pending delta when the effective region is fully visible.
        Returns the classification, or None when the step was skipped.
        """
        effective = self._store.effective()
        if effective is None:
            return None

        try:
            transform = self.adapter.read_transform()
        except InvalidTransformError as e:
            logger.warning(f"reconcile skipped: {e}")
            return None
        try:
            self._guard_region(effective)
        except DegenerateRegionError as e:
            logger.warning(f"reconcile skipped, pending delta not applied: {e}")
            return None

        bounds = self.adapter.read_bounds()
        projected = to_viewport(effective, transform)
        visibility = classify_visibility(projected, bounds, self.config.min_display_size)
        self._set_visibility(visibility)
        self._push_display(clip_to_bounds(projected, bounds))

        if visibility is VisibilityState.FULLY_VISIBLE and self._store.has_pending:
            committed = self._store.commit_pending()
            self._state = ReconcilerState.COMMITTED_VISIBLE
            self._capture_snapshot()
            self._notify_committed(committed)
            logger.info(f"pending delta committed: logical={committed}")

        self._notify_crop_data(self.get_crop_data())
        return visibility

    def _push_display(self, rect: Rect) -> None:
        current = self.adapter.read_displayed()
        if current.is_close(rect, self.config.position_tolerance):
            return
        self.adapter.push_displayed(rect)

    def _guard_region(self, rect: Rect) -> None:
        """Raise DegenerateRegionError for non-positive or runaway rects."""
        if not rect.is_finite():
            raise DegenerateRegionError(f"non-finite region {rect}")
        if rect.width <= 0.0 or rect.height <= 0.0:
            raise DegenerateRegionError(f"non-positive size {rect.width}x{rect.height}")

        nat_w, nat_h = self.adapter.natural_size()
        factor = self.config.max_region_factor
        if rect.width > factor * nat_w or rect.height > factor * nat_h:
            raise DegenerateRegionError(
                f"size {rect.width:.1f}x{rect.height:.1f} exceeds "
                f"{factor}x natural size {nat_w:.0f}x{nat_h:.0f}"
            )
        if abs(rect.x) > factor * nat_w or abs(rect.y) > factor * nat_h:
            raise DegenerateRegionError(f"position ({rect.x:.1f}, {rect.y:.1f}) is implausible")

    def _default_region(self) -> Rect:
        """auto_crop_area of the visible image, centred, honouring the aspect ratio."""
        transform = self.adapter.read_transform()
        bounds = self.adapter.read_bounds()
        nat_w, nat_h = self.adapter.natural_size()

        image_on_screen = clip_to_bounds(to_viewport(Rect(0.0, 0.0, nat_w, nat_h), transform), bounds)
        if image_on_screen.width <= 0 or image_on_screen.height <= 0:
            raise DegenerateRegionError("image is not visible in the viewport")

        area = self.config.auto_crop_area
        width = image_on_screen.width * area
        height = image_on_screen.height * area
        ratio = self.config.aspect_ratio
        if ratio is not None:
            if width / height > ratio:
                width = height * ratio
            else:
                height = width / ratio

        cx, cy = image_on_screen.center
        box = Rect(cx - 0.5 * width, cy - 0.5 * height, width, height)
        return to_image(box, transform)

    def _capture_snapshot(self) -> None:
        logical = self._store.logical
        if logical is None:
            return
        self._store.invalidate_snapshot()
        pixels = self._render(logical)
        if pixels is None:
            logger.debug(f"snapshot not captured: nothing rendered for {logical}")
            return
        self._store.set_snapshot(pixels)

    def _render(self, rect: Rect) -> Any:
        try:
            return self.renderer.render_pixels(rect)
        except Exception:
            logger.exception(f"render_pixels failed for {rect}")
            return None

    # ------------- internals: notifications -------------

    def _set_visibility(self, visibility: VisibilityState) -> None:
        if visibility is self._visibility:
            return
        self._visibility = visibility
        for handler in list(self._visibility_changed_handlers):
            try:
                handler(visibility)
            except Exception:
                logger.exception("Error in visibility_changed handler")

    def _notify_committed(self, rect: Rect) -> None:
        for handler in list(self._region_committed_handlers):
            try:
                handler(rect.to_dict())
            except Exception:
                logger.exception("Error in region_committed handler")

    def _notify_crop_data(self, data: Optional[Dict[str, Any]]) -> None:
        if data is None:
            return
        for handler in list(self._crop_data_handlers):
            try:
                handler(data)
            except Exception:
                logger.exception("Error in crop_data handler")
