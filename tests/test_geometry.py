"""Tests for geometry primitives, mesh containers and the work budget."""

from __future__ import annotations

import numpy as np
import pytest

from packages.core.budget import WorkBudget, run_to_completion
from packages.core.geometry import (
    MeshData,
    TriangleMesh,
    fit_obb,
    plane_frame,
    project_onto_axis,
    snap_to_gravity,
)
from packages.core.types import OrientedBoundingBox, Plane, Quat, Vec3


class TestPlane:
    def test_normal_is_normalised(self):
        plane = Plane(normal=Vec3(x=0, y=2, z=0), offset=1.0)
        assert plane.normal.y == pytest.approx(1.0)

    def test_signed_distance(self):
        plane = Plane.from_point_normal([0, -1.5, 0], [0, 1, 0])
        assert plane.offset == pytest.approx(-1.5)
        assert plane.distance_to_point([3, 1.2, -2]) == pytest.approx(2.7)
        assert plane.distance_to_point(Vec3(x=0, y=-2, z=0)) == pytest.approx(-0.5)

    def test_zero_normal_rejected(self):
        with pytest.raises(ValueError):
            Plane(normal=Vec3(x=0, y=0, z=0), offset=0.0)


class TestOrientedBoundingBox:
    def test_negative_extents_rejected(self):
        with pytest.raises(ValueError):
            OrientedBoundingBox(extents=Vec3(x=-1, y=1, z=0))

    def test_contains_with_tolerance(self):
        box = OrientedBoundingBox(
            center=Vec3(x=0, y=-1.5, z=0),
            rotation=Quat.from_matrix(plane_frame(np.array([0, 1.0, 0]))),
            extents=Vec3(x=2.5, y=2.0, z=0.0),
        )
        assert box.contains([1.0, -1.5, 0.5])
        assert box.contains([1.0, -1.46, 0.5], tolerance=0.05)
        assert not box.contains([1.0, -1.4, 0.5], tolerance=0.05)
        assert not box.contains([3.0, -1.5, 0.0], tolerance=0.05)

    def test_corners(self):
        box = OrientedBoundingBox(extents=Vec3(x=1, y=2, z=0))
        corners = box.corners()
        assert corners.shape == (8, 3)
        assert np.allclose(corners.max(axis=0), [1, 2, 0])
        assert np.allclose(corners.min(axis=0), [-1, -2, 0])


class TestTriangleMesh:
    def test_bad_index_rejected(self):
        with pytest.raises(ValueError):
            TriangleMesh(np.zeros((3, 3)), np.array([[0, 1, 3]]))

    def test_from_meshes_merges_shared_vertices(self):
        a = MeshData(np.array([[0, 0, 0], [1, 0, 0], [0, 0, 1.0]]), np.array([[0, 2, 1]]))
        b = MeshData(np.array([[1, 0, 0], [0, 0, 1], [1, 0, 1.0]]), np.array([[0, 1, 2]]))
        mesh = TriangleMesh.from_meshes([a, b])
        assert mesh.triangle_count == 2
        assert len(mesh.vertices) == 4
        assert len(mesh.triangles) == 6

    def test_from_meshes_applies_transform(self):
        transform = np.eye(4)
        transform[:3, 3] = [0, -1.5, 0]
        chunk = MeshData(np.array([[0, 0, 0], [1, 0, 0], [0, 0, 1.0]]), np.array([[0, 2, 1]]), transform)
        mesh = TriangleMesh.from_meshes([chunk])
        assert np.allclose(mesh.vertices[:, 1], -1.5)

    def test_degenerate_faces_dropped(self):
        chunk = MeshData(
            np.array([[0, 0, 0], [1, 0, 0], [0, 0, 1.0], [2, 0, 0]]),
            np.array([[0, 2, 1], [0, 1, 3]]),
        )
        mesh = TriangleMesh.from_meshes([chunk])
        assert mesh.triangle_count == 1

    def test_face_normals_and_areas(self, box_room_mesh: TriangleMesh):
        normals = box_room_mesh.face_normals
        assert np.allclose(np.linalg.norm(normals, axis=1), 1.0)
        assert box_room_mesh.face_areas.sum() == pytest.approx(2 * 20 + 2 * 10.8 + 2 * 13.5)

    def test_normals_face_into_room(self, box_room_mesh: TriangleMesh):
        centroids = box_room_mesh.vertices[box_room_mesh.faces].mean(axis=1)
        to_centre = np.array([0.0, -0.15, 0.0]) - centroids
        assert np.all(np.einsum("ij,ij->i", box_room_mesh.face_normals, to_centre) > 0)

    def test_representative_vertices(self, box_room_mesh: TriangleMesh):
        firsts = box_room_mesh.representative_vertices([0, 1])
        assert np.allclose(firsts, box_room_mesh.vertices[box_room_mesh.faces[[0, 1], 0]])


class TestSnapToGravity:
    def test_near_vertical_snaps_to_up(self):
        tilt = np.radians(3)
        snapped = snap_to_gravity(np.array([[np.sin(tilt), np.cos(tilt), 0]]), 5.0)
        assert np.allclose(snapped, [[0, 1, 0]])

    def test_near_horizontal_becomes_plumb(self):
        tilt = np.radians(3)
        snapped = snap_to_gravity(np.array([[np.cos(tilt), -np.sin(tilt), 0]]), 5.0)
        assert np.allclose(snapped, [[1, 0, 0]])

    def test_slanted_normal_untouched(self):
        n = np.array([[0.0, np.sqrt(0.5), np.sqrt(0.5)]])
        assert np.allclose(snap_to_gravity(n, 5.0), n)


class TestObbFitting:
    def test_frame_is_right_handed(self):
        for normal in ([0, 1, 0], [0, -1, 0], [1, 0, 0], [0, 0, -1], [0.6, 0.0, 0.8]):
            axes = plane_frame(np.array(normal, dtype=float))
            assert np.linalg.det(axes) == pytest.approx(1.0)
            assert np.allclose(axes[:, 2], normal)

    def test_wall_local_x_is_vertical(self):
        points = np.array([[2.5, y, z] for y in (-1.5, 1.2) for z in (-2, 2)], dtype=float)
        box = fit_obb(points, np.array([-1.0, 0, 0]))
        assert box.extents.x * 2 == pytest.approx(2.7)
        assert box.extents.y * 2 == pytest.approx(4.0)
        assert np.allclose(box.axes()[:, 0], [0, 1, 0])

    def test_rotated_floor_uses_min_area_rectangle(self):
        angle = np.radians(30)
        rot = np.array([[np.cos(angle), -np.sin(angle)], [np.sin(angle), np.cos(angle)]])
        rect = np.array([[-2, -1], [2, -1], [2, 1], [-2, 1]], dtype=float) @ rot.T
        points = np.column_stack((rect[:, 0], np.full(4, -1.5), rect[:, 1]))
        box = fit_obb(points, np.array([0, 1.0, 0]))
        assert sorted([box.extents.x, box.extents.y]) == pytest.approx([1.0, 2.0])
        assert box.center.y == pytest.approx(-1.5)

    def test_project_onto_axis(self):
        spans = [np.array([[0, 0, -2], [0, 0, 1.0]]), np.array([[5, 0, 2.0]])]
        assert project_onto_axis(spans, np.array([0, 0, 2.0])) == pytest.approx(4.0)
        assert project_onto_axis([], np.array([1.0, 0, 0])) == 0.0


class TestWorkBudget:
    def test_unlimited_never_pauses(self):
        budget = WorkBudget()
        assert not budget.exhausted()
        assert not budget.pause()

    def test_non_positive_frame_time_rejected(self):
        with pytest.raises(ValueError):
            WorkBudget(frame_time=0)

    def test_pause_counts_slices(self, exhausted_clock):
        budget = WorkBudget(frame_time=0.5, clock=exhausted_clock)
        assert budget.pause()
        budget.start()
        assert budget.pause()
        assert budget.slices == 2

    def test_run_to_completion_returns_value(self):
        def steps():
            yield
            yield
            return 42

        assert run_to_completion(steps()) == 42
