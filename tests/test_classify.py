"""Tests for plane classification and typed surface plane queries."""

from __future__ import annotations

import numpy as np
import pytest

from conftest import grid_quad, make_surface_plane
from packages.core.budget import WorkBudget, run_to_completion
from packages.core.types import BoundedPlane, OrientedBoundingBox, Plane, PlaneType, SurfacePlane, Vec3
from packages.spatial.classify import (
    SurfacePlaneSet,
    classify_plane,
    classify_planes,
    find_floor_and_ceiling,
    iter_classify_planes,
)
from packages.spatial.plane_finder import find_bounded_planes


def _bounded(normal, center_y: float, half: float = 1.0) -> BoundedPlane:
    center = np.array([0.0, center_y, 0.0])
    return BoundedPlane(
        plane=Plane.from_point_normal(center, normal),
        bounds=OrientedBoundingBox(
            center=Vec3.from_array(center),
            extents=Vec3(x=half, y=half, z=0.0),
        ),
    )


def _floor_of_area(area: float) -> SurfacePlane:
    return make_surface_plane(PlaneType.FLOOR, (0, -1.5, 0), (area / 2, 0.5), (0, 1, 0))


class TestClassifyPlane:
    def test_level_with_floor_anchor_is_floor(self):
        bp = _bounded([0, 0.95, 0], -1.2)
        assert classify_plane(bp, floor_y=-1.25, ceiling_y=1.2) == PlaneType.FLOOR

    def test_raised_upward_plane_is_table(self):
        bp = _bounded([0, 0.95, 0], 0.5)
        assert classify_plane(bp, floor_y=-1.25, ceiling_y=1.2) == PlaneType.TABLE

    def test_ceiling_and_underside(self):
        assert classify_plane(_bounded([0, -1, 0], 1.15), -1.5, 1.2) == PlaneType.CEILING
        assert classify_plane(_bounded([0, -1, 0], 0.3), -1.5, 1.2) == PlaneType.TABLE

    def test_plumb_plane_is_wall(self):
        assert classify_plane(_bounded([1, 0.05, 0], 0.0), -1.5, 1.2) == PlaneType.WALL

    def test_slanted_plane_is_unknown(self):
        assert classify_plane(_bounded([0, 0.5, 0.5], 0.0), -1.5, 1.2) == PlaneType.UNKNOWN


class TestFloorAndCeilingAnchors:
    def test_largest_wins(self):
        planes = [
            _bounded([0, 1, 0], -1.4, half=0.5),
            _bounded([0, 1, 0], -1.5, half=2.0),
            _bounded([0, -1, 0], 1.2, half=2.0),
            _bounded([0, 1, 0], 0.7, half=3.0),  # above the head: not a floor
        ]
        assert find_floor_and_ceiling(planes) == (pytest.approx(-1.5), pytest.approx(1.2))

    def test_first_wins_on_tie(self):
        planes = [_bounded([0, 1, 0], -1.4), _bounded([0, 1, 0], -1.6)]
        floor_y, _ = find_floor_and_ceiling(planes)
        assert floor_y == pytest.approx(-1.4)

    def test_missing_anchors_default_to_zero(self):
        assert find_floor_and_ceiling([_bounded([1, 0, 0], 0.0)]) == (0.0, 0.0)


class TestSurfacePlaneSet:
    def test_no_match_returns_sentinel(self):
        result = SurfacePlaneSet([]).get_floor_or_ceiling(PlaneType.FLOOR)
        assert result.area == 0
        assert result.type == PlaneType.UNKNOWN

    def test_single_match_returned_unchanged(self):
        floor = _floor_of_area(3.0)
        assert SurfacePlaneSet([floor]).get_floor_or_ceiling(PlaneType.FLOOR) == floor

    def test_largest_of_several(self):
        planes = SurfacePlaneSet([_floor_of_area(a) for a in (1.0, 5.0, 3.0)])
        assert planes.get_floor_or_ceiling(PlaneType.FLOOR).area == pytest.approx(5.0)

    def test_first_of_equal_areas(self):
        first = make_surface_plane(PlaneType.CEILING, (1, 1.2, 0), (1, 1), (0, -1, 0))
        second = make_surface_plane(PlaneType.CEILING, (-1, 1.2, 0), (1, 1), (0, -1, 0))
        assert SurfacePlaneSet([first, second]).ceiling == first

    def test_anchor_falls_back_to_floor(self, room_planes):
        with_ceiling = SurfacePlaneSet(room_planes.values())
        assert with_ceiling.anchor().type == PlaneType.CEILING

        no_ceiling = SurfacePlaneSet(p for k, p in room_planes.items() if k != "ceiling")
        assert no_ceiling.anchor().type == PlaneType.FLOOR

        assert SurfacePlaneSet([]).anchor().area == 0

    def test_tag_defaults_to_type_name(self):
        bp = _bounded([0, 1, 0], -1.5)
        assert SurfacePlane.from_bounded(bp, PlaneType.FLOOR).label == "Floor"
        assert SurfacePlane.empty().label == "Unknown"


class TestClassifyPlanes:
    def test_box_room(self, box_room_chunks):
        planes = classify_planes(find_bounded_planes(box_room_chunks))
        assert planes.counts() == {"wall": 4, "floor": 1, "ceiling": 1, "table": 0, "unknown": 0}
        assert planes.floor.bounds.center.y == pytest.approx(-1.5)
        assert planes.ceiling.bounds.center.y == pytest.approx(1.2)

    def test_table_in_room(self, box_room_chunks):
        table = grid_quad((0, -0.75, 0), (1.2, 0, 0), (0, 0, 0.8), 3, 2, (0, 1, 0))
        planes = classify_planes(find_bounded_planes(box_room_chunks + [table]))
        tables = planes.get_by_type(PlaneType.TABLE)
        assert len(tables) == 1
        assert tables[0].area == pytest.approx(0.96)

    def test_budgeted_form_matches(self, box_room_chunks, exhausted_clock):
        bounded = find_bounded_planes(box_room_chunks)
        budget = WorkBudget(frame_time=0.5, clock=exhausted_clock)
        planes = run_to_completion(iter_classify_planes(bounded, budget=budget))
        assert budget.slices == len(bounded)
        assert planes.counts() == classify_planes(bounded).counts()
