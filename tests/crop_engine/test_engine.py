# tests/crop_engine/test_engine.py

from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from stickycrop.crop_engine.array_renderer import ArrayRenderer
from stickycrop.crop_engine.config import CropEngineConfig
from stickycrop.crop_engine.engine import ReconcilerState, StickyCropEngine
from stickycrop.crop_engine.geometry import PendingDelta, Rect
from stickycrop.crop_engine.visibility import VisibilityState

REGION = Rect(100, 100, 200, 150)


def make_engine(image: np.ndarray, config: CropEngineConfig | None = None):
    """1000x800 image in a 500x400 viewport: fit gives offset (0,0), scale 0.5."""
    renderer = ArrayRenderer(image, 500, 400)
    engine = StickyCropEngine(renderer, config=config)
    renderer.connect(engine)
    return renderer, engine


@pytest.fixture
def setup(gradient_image):
    renderer, engine = make_engine(gradient_image)
    assert engine.initialize_region(REGION)
    return renderer, engine


def drag_displayed(renderer: ArrayRenderer, engine: StickyCropEngine, new_rect: Rect, action: str = "all"):
    engine.on_edit_start(action)
    renderer.set_displayed_selection(new_rect)
    engine.on_edit_move()
    engine.on_edit_end()


# ------------- scenarios -------------


def test_scenario_a_fully_visible(setup, gradient_image):
    renderer, engine = setup
    assert renderer.get_transform().scale_x == pytest.approx(0.5)
    assert renderer.get_displayed_selection() == Rect(50, 50, 100, 75)
    assert engine.get_visibility_state() is VisibilityState.FULLY_VISIBLE
    assert engine.state is ReconcilerState.COMMITTED_VISIBLE

    result = engine.get_result()
    assert result.shape == (150, 200)
    assert result[0, 0] == gradient_image[100, 100]


def test_scenario_b_pan_out_of_view_shows_left_indicator(setup):
    renderer, engine = setup
    renderer.move_to(-480, 0)
    # Reconcile is deferred until the current turn settles.
    assert renderer.get_displayed_selection() == Rect(50, 50, 100, 75)

    engine.settle()
    shown = renderer.get_displayed_selection()
    assert shown.x == 0.0
    assert shown.y == pytest.approx(50)
    assert shown.width == 0.0
    assert shown.height == 0.0
    assert engine.get_visibility_state() is VisibilityState.OUT_OF_BOUNDS
    assert engine.get_logical_region() == REGION


def test_scenario_c_and_d_deferred_edit_commits_when_visible(setup, gradient_image):
    renderer, engine = setup
    renderer.move_to(-480, 0)
    engine.settle()

    # C: drag the indicator 50 viewport units right (= 100 image units at 0.5).
    drag_displayed(renderer, engine, Rect(50, 50, 0, 0))
    assert engine.has_deferred_update
    assert engine.pending_delta.dx == pytest.approx(100)
    assert engine.pending_delta.dy == pytest.approx(0)
    assert engine.get_logical_region() == REGION
    assert engine.state is ReconcilerState.DEFERRED_PARTIAL_EDIT
    assert engine.get_effective_region().x == pytest.approx(200)

    # D: pan back; the effective region is fully visible and gets committed.
    renderer.move_to(0, 0)
    engine.settle()
    logical = engine.get_logical_region()
    assert logical.x == pytest.approx(200)
    assert logical.width == pytest.approx(200)
    assert not engine.has_deferred_update
    assert engine.state is ReconcilerState.COMMITTED_VISIBLE
    assert renderer.get_displayed_selection().is_close(Rect(100, 50, 100, 75))

    result = engine.get_result()
    assert result.shape == (150, 200)
    assert result[0, 0] == gradient_image[100, 200]


def test_scenario_e_reset(setup):
    renderer, engine = setup
    renderer.move_to(-480, 0)
    engine.settle()
    drag_displayed(renderer, engine, Rect(50, 50, 0, 0))

    engine.reset()
    assert engine.get_logical_region() is None
    assert engine.get_result() is None
    assert engine.get_visibility_state() is VisibilityState.OUT_OF_BOUNDS
    assert engine.state is ReconcilerState.IDLE
    assert not engine.has_deferred_update
    assert engine.get_crop_data() is None


# ------------- properties -------------


def test_reconcile_is_idempotent(setup):
    renderer, engine = setup
    renderer.move_to(-80, 30)
    engine.reconcile_now()
    first = renderer.get_displayed_selection()
    engine.reconcile_now()
    assert renderer.get_displayed_selection() == first


def test_delta_composition_matches_single_edit(gradient_image):
    # Two partial edits in sequence.
    r1, e1 = make_engine(gradient_image)
    e1.initialize_region(REGION)
    r1.move_to(-80, 0)
    e1.settle()
    assert e1.get_visibility_state() is VisibilityState.PARTIALLY_VISIBLE
    start = r1.get_displayed_selection()
    assert start.is_close(Rect(0, 50, 70, 75))

    drag_displayed(r1, e1, start.translated(10, 0))
    mid = r1.get_displayed_selection()
    drag_displayed(r1, e1, Rect(mid.x, mid.y, mid.width + 20, mid.height), action="e")
    assert e1.pending_delta.dx == pytest.approx(20)
    assert e1.pending_delta.dwidth == pytest.approx(40)
    assert e1.get_logical_region() == REGION

    # One edit carrying the summed delta.
    r2, e2 = make_engine(gradient_image)
    e2.initialize_region(REGION)
    r2.move_to(-80, 0)
    e2.settle()
    s = r2.get_displayed_selection()
    drag_displayed(r2, e2, Rect(s.x + 10, s.y, s.width + 20, s.height))

    for r, e in ((r1, e1), (r2, e2)):
        r.move_to(0, 0)
        e.settle()

    assert e1.get_logical_region().is_close(e2.get_logical_region())
    assert e1.get_logical_region().is_close(Rect(120, 100, 240, 150))


def test_transform_changes_never_commit_while_not_fully_visible(setup):
    renderer, engine = setup
    renderer.move_to(-480, 0)
    engine.settle()
    drag_displayed(renderer, engine, Rect(50, 50, 0, 0))

    for offset in (-470, -400, -300, -150, -110):
        renderer.move_to(offset, 0)
        engine.settle()
        assert engine.get_visibility_state() is not VisibilityState.FULLY_VISIBLE
        assert engine.get_logical_region() == REGION
        assert engine.has_deferred_update


def test_clipped_display_never_leaks_into_region(setup):
    renderer, engine = setup
    for offset in (-30, -60, -200, -480, 20, 0):
        renderer.move_to(offset, -40)
        engine.settle()
        assert engine.get_logical_region() == REGION
    renderer.move_to(0, 0)
    engine.settle()
    assert engine.get_logical_region() == REGION


# ------------- edits -------------


def test_fully_visible_edit_commits_immediately(setup, gradient_image):
    renderer, engine = setup
    committed: list[dict] = []
    engine.on_region_committed(committed.append)

    drag_displayed(renderer, engine, Rect(60, 70, 100, 75))
    assert engine.get_logical_region() == Rect(120, 140, 200, 150)
    assert not engine.has_deferred_update
    assert committed[-1] == {"x": 120.0, "y": 140.0, "width": 200.0, "height": 150.0}
    assert engine.get_result()[0, 0] == gradient_image[140, 120]


def test_edit_move_publishes_provisional_data(setup):
    renderer, engine = setup
    data: list[dict] = []
    engine.on_crop_data(data.append)

    engine.on_edit_start("all")
    renderer.set_displayed_selection(Rect(55, 50, 100, 75))
    engine.on_edit_move()
    assert data[-1]["editing"] is True
    assert data[-1]["x"] == pytest.approx(110)
    assert engine.get_logical_region() == REGION
    engine.on_edit_end()


def test_degenerate_edit_is_rejected(setup):
    renderer, engine = setup
    drag_displayed(renderer, engine, Rect(50, 50, -150, 75), action="w")
    assert engine.get_logical_region() == REGION
    assert not engine.has_deferred_update
    assert renderer.get_displayed_selection() == Rect(50, 50, 100, 75)
    assert engine.state is ReconcilerState.COMMITTED_VISIBLE


def test_runaway_pending_delta_is_not_displayed(setup):
    renderer, engine = setup
    engine.region_store.accumulate(PendingDelta(dwidth=1e7))
    assert engine.reconcile_now() is None
    assert renderer.get_displayed_selection() == Rect(50, 50, 100, 75)
    assert engine.get_logical_region() == REGION


def test_invalid_transform_keeps_prior_display(setup):
    renderer, engine = setup
    renderer.view.ratio = 0.0
    assert engine.reconcile_now() is None
    assert renderer.get_displayed_selection() == Rect(50, 50, 100, 75)

    engine.on_edit_start("all")
    assert engine.state is not ReconcilerState.EDITING


def test_edit_without_region_is_ignored(gradient_image):
    renderer, engine = make_engine(gradient_image)
    engine.on_edit_start("all")
    engine.on_edit_end()
    assert engine.state is ReconcilerState.IDLE
    assert engine.get_logical_region() is None
    assert engine.get_result() is None


def test_new_edit_session_cancels_stale_reconcile(setup):
    renderer, engine = setup
    renderer.move_to(-480, 0)  # reconcile queued
    engine.on_edit_start("all")
    engine.settle()
    assert renderer.get_displayed_selection() == Rect(50, 50, 100, 75)
    assert engine.state is ReconcilerState.EDITING


# ------------- pan / zoom -------------


def test_drag_pan_commits_pending_on_pan_end(setup):
    renderer, engine = setup
    renderer.move_to(-480, 0)
    engine.settle()
    drag_displayed(renderer, engine, Rect(50, 50, 0, 0))

    engine.on_edit_start("move")
    assert engine.is_panning
    renderer.move_to(0, 0)
    engine.on_edit_move()
    engine.on_edit_end()
    assert not engine.is_panning
    engine.settle()
    assert engine.get_logical_region().x == pytest.approx(200)
    assert not engine.has_deferred_update


def test_drag_pan_ending_off_screen_stays_deferred(setup):
    renderer, engine = setup
    renderer.move_to(-480, 0)
    engine.settle()
    drag_displayed(renderer, engine, Rect(50, 50, 0, 0))

    engine.on_pan_start()
    renderer.move(100, 0)
    engine.on_pan_end()
    engine.settle()
    assert engine.has_deferred_update
    assert engine.state is ReconcilerState.DEFERRED_PARTIAL_EDIT
    assert engine.get_logical_region() == REGION


def test_zoom_limits(setup):
    renderer, engine = setup
    assert not renderer.zoom_to(5.0)
    assert not renderer.zoom_to(0.05)
    assert renderer.ratio == pytest.approx(0.5)

    assert renderer.zoom_to(1.0)
    engine.settle()
    assert renderer.get_transform().offset_x == pytest.approx(-250)
    assert engine.get_visibility_state() is VisibilityState.PARTIALLY_VISIBLE
    assert renderer.get_displayed_selection().is_close(Rect(0, 0, 50, 50))
    assert engine.get_logical_region() == REGION


def test_visibility_listener(setup):
    renderer, engine = setup
    seen: list[VisibilityState] = []
    engine.on_visibility_changed(seen.append)
    renderer.move_to(-480, 0)
    engine.settle()
    renderer.move_to(0, 0)
    engine.settle()
    assert seen == [VisibilityState.OUT_OF_BOUNDS, VisibilityState.FULLY_VISIBLE]


# ------------- supplements -------------


def test_on_ready_creates_default_region(gradient_image):
    renderer, engine = make_engine(gradient_image)
    engine.on_ready()
    assert engine.get_logical_region().is_close(Rect(200, 160, 600, 480))
    assert renderer.get_displayed_selection().is_close(Rect(100, 80, 300, 240))


def test_on_ready_honours_aspect_ratio(gradient_image):
    renderer, engine = make_engine(gradient_image, CropEngineConfig(aspect_ratio=16 / 9))
    engine.on_ready()
    shown = renderer.get_displayed_selection()
    assert shown.width / shown.height == pytest.approx(16 / 9)
    assert shown.center == pytest.approx((250, 200))


def test_set_aspect_ratio_reshapes_around_centre(setup):
    renderer, engine = setup
    engine.set_aspect_ratio(2.0)
    assert engine.get_logical_region().is_close(Rect(100, 125, 200, 100))

    engine.set_aspect_ratio(float("nan"))
    assert engine.aspect_ratio is None
    assert engine.get_logical_region().is_close(Rect(100, 125, 200, 100))


def test_crop_data(setup):
    renderer, engine = setup
    data = engine.get_crop_data()
    assert data["x"] == 100.0
    assert data["scale_x"] == pytest.approx(0.5)
    assert data["visibility"] == "fully_visible"
    assert data["deferred"] is False


def test_get_result_falls_back_to_displayed_selection(setup, gradient_image):
    renderer, engine = setup
    engine.region_store.invalidate_snapshot()
    result = engine.get_result()
    assert result.shape == (150, 200)
    assert result[0, 0] == gradient_image[100, 100]


def test_handler_errors_are_swallowed(setup):
    renderer, engine = setup

    def bad_handler(_rect: dict) -> None:
        raise RuntimeError("handler failure")

    engine.on_region_committed(bad_handler)
    drag_displayed(renderer, engine, Rect(60, 50, 100, 75))
    assert engine.get_logical_region().x == pytest.approx(120)


class _ReentrantRenderer(ArrayRenderer):
    """Runs `reenter` from set_displayed_selection, once."""

    reenter: Callable[[], None] | None = None
    calls = 0

    def set_displayed_selection(self, rect: Rect) -> None:
        super().set_displayed_selection(rect)
        if self.reenter is not None and self.calls == 0:
            self.calls += 1
            self.reenter()


def test_reentrant_event_waits_for_current_transition(gradient_image):
    renderer = _ReentrantRenderer(gradient_image, 500, 400)
    engine = StickyCropEngine(renderer)
    renderer.reenter = engine.clear

    assert engine.initialize_region(REGION)
    assert engine.get_logical_region() == REGION

    engine.settle()
    assert engine.get_logical_region() is None


def test_queued_initialize_reports_none_then_commits(gradient_image):
    renderer = _ReentrantRenderer(gradient_image, 500, 400)
    engine = StickyCropEngine(renderer)
    inner_results: list = []
    other = Rect(0, 0, 100, 100)
    renderer.reenter = lambda: inner_results.append(engine.initialize_region(other))

    assert engine.initialize_region(REGION) is True
    assert inner_results == [None]
    assert engine.get_logical_region() == REGION

    engine.settle()
    assert engine.get_logical_region() == other


def test_rejected_initialize_reports_false(gradient_image):
    renderer, engine = make_engine(gradient_image)
    assert engine.initialize_region(Rect(0, 0, -5, 10)) is False
    assert engine.get_logical_region() is None


# ------------- transform changes during an edit -------------


def test_zoom_during_edit_keeps_region(setup):
    """Zooming while the box is held moves the box with the image, not the region."""
    renderer, engine = setup
    engine.on_edit_start("all")
    assert renderer.zoom_to(1.0)
    # Held selection follows the image: (100,100,200,150) at offset (-250,-200), scale 1.
    assert renderer.get_displayed_selection().is_close(Rect(-150, -100, 200, 150))
    engine.on_edit_end()

    assert engine.get_logical_region() == REGION
    assert not engine.has_deferred_update


def test_pan_during_edit_keeps_region(setup):
    renderer, engine = setup
    engine.on_edit_start("all")
    renderer.move(20, 0)
    assert renderer.get_displayed_selection().is_close(Rect(70, 50, 100, 75))
    engine.on_edit_end()

    assert engine.get_logical_region() == REGION
    assert engine.get_visibility_state() is VisibilityState.FULLY_VISIBLE


def test_drag_after_zoom_during_edit_is_measured_in_image_pixels(setup):
    renderer, engine = setup
    engine.on_edit_start("all")
    renderer.zoom_to(1.0)
    held = renderer.get_displayed_selection()
    renderer.set_displayed_selection(held.translated(10, 0))
    engine.on_edit_end()

    # Scale is 1 after the zoom, so 10 viewport units are 10 image pixels.
    assert engine.get_logical_region() == REGION
    assert engine.pending_delta.dx == pytest.approx(10)
    assert engine.pending_delta.dy == pytest.approx(0)
    assert engine.state is ReconcilerState.DEFERRED_PARTIAL_EDIT


def test_crop_data_reports_pending_delta(setup):
    renderer, engine = setup
    assert engine.get_crop_data()["pending"] is None
    renderer.move_to(-80, 0)
    engine.settle()
    drag_displayed(renderer, engine, Rect(10, 50, 70, 75))
    data = engine.get_crop_data()
    assert data["deferred"] is True
    assert data["pending"]["dx"] == pytest.approx(20)
