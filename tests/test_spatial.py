import pytest

from surveillance.filters import DrawMode
from surveillance.geometry import EmptyPolygon, InvalidCenter, InvalidRadius, polygon_from_lonlat, project_lonlat
from surveillance.spatial import SpatialSelectionController
from tests.conftest import FRANCE_RING


@pytest.fixture
def controller(three_records):
    ctrl = SpatialSelectionController()
    ctrl.load_base_set(three_records)
    return ctrl


def test_polygon_marks_inside_and_dims_outside(controller):
    controller.enter_draw_polygon()
    selection = controller.on_polygon_drawn(polygon_from_lonlat(FRANCE_RING))
    assert selection.included_ids == {"R1", "R2"}
    assert controller.dimmed == {"R1": False, "R2": False, "R3": True}
    assert controller.draw_mode is DrawMode.IDLE
    assert controller.geometry.kind == "polygon"


def test_draw_modes_are_mutually_exclusive(controller):
    assert controller.enter_draw_polygon() is DrawMode.DRAWING_POLYGON
    assert controller.enter_draw_buffer() is DrawMode.DRAWING_BUFFER
    assert controller.draw_mode is DrawMode.DRAWING_BUFFER


def test_entering_active_mode_again_turns_it_off(controller):
    controller.enter_draw_polygon()
    assert controller.enter_draw_polygon() is DrawMode.IDLE


def test_new_draw_session_resets_previous_selection(controller):
    controller.on_polygon_drawn(polygon_from_lonlat(FRANCE_RING))
    controller.enter_draw_buffer()
    assert controller.geometry is None
    assert not any(controller.dimmed.values())


def test_buffer_point_waits_for_radius(controller):
    controller.enter_draw_buffer()
    center = project_lonlat(2.0, 46.0)
    pending = controller.on_buffer_point_chosen(center)
    assert pending.center_lonlat() == pytest.approx([2.0, 46.0])
    assert controller.geometry is None
    assert controller.draw_mode is DrawMode.IDLE

    selection = controller.confirm_buffer(pending.center, 120)
    assert selection.included_ids == {"R1", "R2"}
    assert controller.pending is None
    assert controller.geometry.kind == "buffer"
    assert controller.geometry.to_dict()["radius_km"] == 120


def test_non_finite_buffer_centre_is_rejected(controller):
    controller.enter_draw_buffer()
    with pytest.raises(InvalidCenter):
        controller.on_buffer_point_chosen((float("inf"), 0.0))
    assert controller.pending is None
    assert controller.draw_mode is DrawMode.DRAWING_BUFFER


def test_small_buffer_can_select_nothing(controller):
    far_away = project_lonlat(-20.0, 30.0)
    selection = controller.confirm_buffer(far_away, 10)
    assert selection.is_active
    assert selection.included_ids == frozenset()
    assert all(controller.dimmed.values())


def test_invalid_radius_changes_nothing(controller):
    controller.on_polygon_drawn(polygon_from_lonlat(FRANCE_RING))
    center = project_lonlat(10.0, 51.0)
    controller.on_buffer_point_chosen(center)
    before = (controller.geometry, controller.pending, dict(controller.dimmed), controller.draw_mode)
    with pytest.raises(InvalidRadius):
        controller.confirm_buffer(center, 0)
    assert (controller.geometry, controller.pending, controller.dimmed, controller.draw_mode) == before


def test_recompute_against_new_base_set(controller, three_records):
    controller.on_polygon_drawn(polygon_from_lonlat(FRANCE_RING))
    measles_only = three_records[three_records["disease"] == "Measles"]
    selection = controller.recompute_against_base_set(measles_only)
    assert selection.included_ids == {"R1"}
    assert controller.dimmed == {"R1": False, "R3": True}


def test_recompute_without_geometry_is_none(controller, three_records):
    selection = controller.recompute_against_base_set(three_records)
    assert not selection.is_active
    assert not any(controller.dimmed.values())


def test_degenerate_polygon_resets_to_idle(controller):
    from shapely.geometry import Polygon

    controller.on_polygon_drawn(polygon_from_lonlat(FRANCE_RING))
    controller.enter_draw_polygon()
    with pytest.raises(EmptyPolygon):
        controller.on_polygon_drawn(Polygon([(0, 0), (1, 1), (1, 0), (0, 1)]))
    assert controller.geometry is None
    assert controller.draw_mode is DrawMode.IDLE


def test_cancel_keeps_existing_geometry(controller):
    controller.on_polygon_drawn(polygon_from_lonlat(FRANCE_RING))
    controller.on_buffer_point_chosen(project_lonlat(10.0, 51.0))
    controller.cancel()
    assert controller.pending is None
    assert controller.geometry is not None


def test_clear(controller):
    controller.on_polygon_drawn(polygon_from_lonlat(FRANCE_RING))
    controller.enter_draw_buffer()
    selection = controller.clear()
    assert not selection.is_active
    assert controller.geometry is None
    assert controller.draw_mode is DrawMode.IDLE
    assert not any(controller.dimmed.values())
