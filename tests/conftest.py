"""Shared test fixtures – a synthetic triangulated box room.

Room is 5 m (x) × 4 m (z) × 2.7 m (y), Y up.  The scan origin (the
user's head) is at (0, 0, 0): floor at y = −1.5, ceiling at y = 1.2.
Every surface is a separate mesh chunk, triangulated on a ~0.5 m grid with
normals facing into the room.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from plyfile import PlyData, PlyElement

from packages.core.geometry import MeshData, TriangleMesh, plane_frame
from packages.core.types import OrientedBoundingBox, Plane, PlaneType, Quat, SurfacePlane, Vec3
from packages.spatial.mesh_source import StaticMeshSource

X_HALF = 2.5
Z_HALF = 2.0
FLOOR_Y = -1.5
CEILING_Y = 1.2
ROOM_HEIGHT = CEILING_Y - FLOOR_Y
ROOM_CENTRE = np.array([0.0, (FLOOR_Y + CEILING_Y) / 2, 0.0])


def grid_quad(corner, u, v, nu: int, nv: int, normal, name: str = "") -> MeshData:
    """Triangulate the parallelogram ``corner + s·u + t·v`` facing *normal*."""
    corner, u, v = (np.asarray(a, dtype=np.float64) for a in (corner, u, v))
    i, j = np.meshgrid(np.arange(nu + 1), np.arange(nv + 1), indexing="ij")
    vertices = corner + (i.reshape(-1, 1) / nu) * u + (j.reshape(-1, 1) / nv) * v

    def idx(a: int, b: int) -> int:
        return a * (nv + 1) + b

    faces = []
    for a in range(nu):
        for b in range(nv):
            faces.append((idx(a, b), idx(a + 1, b), idx(a + 1, b + 1)))
            faces.append((idx(a, b), idx(a + 1, b + 1), idx(a, b + 1)))
    faces = np.asarray(faces, dtype=np.int64)
    if np.dot(np.cross(u, v), normal) < 0:
        # keeps the first vertex of each triangle
        faces = faces[:, [0, 2, 1]]
    return MeshData(vertices, faces, name=name)


def make_room_chunks() -> dict[str, MeshData]:
    width, length = 2 * X_HALF, 2 * Z_HALF
    base = (-X_HALF, FLOOR_Y, -Z_HALF)
    up = (0.0, ROOM_HEIGHT, 0.0)
    return {
        "floor": grid_quad(base, (width, 0, 0), (0, 0, length), 10, 8, (0, 1, 0), "floor"),
        "ceiling": grid_quad(
            (-X_HALF, CEILING_Y, -Z_HALF), (width, 0, 0), (0, 0, length), 10, 8, (0, -1, 0), "ceiling",
        ),
        "wall_west": grid_quad(base, up, (0, 0, length), 6, 8, (1, 0, 0), "wall_west"),
        "wall_east": grid_quad(
            (X_HALF, FLOOR_Y, -Z_HALF), up, (0, 0, length), 6, 8, (-1, 0, 0), "wall_east",
        ),
        "wall_south": grid_quad(base, up, (width, 0, 0), 6, 10, (0, 0, 1), "wall_south"),
        "wall_north": grid_quad(
            (-X_HALF, FLOOR_Y, Z_HALF), up, (width, 0, 0), 6, 10, (0, 0, -1), "wall_north",
        ),
    }


def write_ply(path: Path, mesh: TriangleMesh) -> None:
    vertex = np.empty(len(mesh.vertices), dtype=[("x", "f4"), ("y", "f4"), ("z", "f4")])
    vertex["x"] = mesh.vertices[:, 0]
    vertex["y"] = mesh.vertices[:, 1]
    vertex["z"] = mesh.vertices[:, 2]
    face = np.empty(len(mesh.faces), dtype=[("vertex_indices", "i4", (3,))])
    face["vertex_indices"] = mesh.faces
    PlyData(
        [PlyElement.describe(vertex, "vertex"), PlyElement.describe(face, "face")],
        text=False,
    ).write(str(path))


def make_surface_plane(
    kind: PlaneType,
    center,
    half_extents: tuple[float, float],
    normal,
) -> SurfacePlane:
    """A classified plane whose box uses the same local frame as plane finding."""
    center = np.asarray(center, dtype=np.float64)
    axes = plane_frame(np.asarray(normal, dtype=np.float64))
    return SurfacePlane(
        type=kind,
        plane=Plane.from_point_normal(center, normal),
        bounds=OrientedBoundingBox(
            center=Vec3.from_array(center),
            rotation=Quat.from_matrix(axes),
            extents=Vec3(x=half_extents[0], y=half_extents[1], z=0.0),
        ),
    )


@pytest.fixture()
def room_chunks() -> dict[str, MeshData]:
    return make_room_chunks()


@pytest.fixture()
def box_room_chunks(room_chunks: dict[str, MeshData]) -> list[MeshData]:
    return list(room_chunks.values())


@pytest.fixture()
def box_room_mesh(box_room_chunks: list[MeshData]) -> TriangleMesh:
    return TriangleMesh.from_meshes(box_room_chunks)


@pytest.fixture()
def room_source(box_room_chunks: list[MeshData]) -> StaticMeshSource:
    return StaticMeshSource(box_room_chunks)


@pytest.fixture()
def room_ply(tmp_path: Path, box_room_mesh: TriangleMesh) -> Path:
    path = tmp_path / "room.ply"
    write_ply(path, box_room_mesh)
    return path


@pytest.fixture()
def room_planes() -> dict[str, SurfacePlane]:
    """Classified planes of the box room, built directly."""
    mid_y = (FLOOR_Y + CEILING_Y) / 2
    half_h = ROOM_HEIGHT / 2
    return {
        "floor": make_surface_plane(PlaneType.FLOOR, (0, FLOOR_Y, 0), (X_HALF, Z_HALF), (0, 1, 0)),
        "ceiling": make_surface_plane(PlaneType.CEILING, (0, CEILING_Y, 0), (X_HALF, Z_HALF), (0, -1, 0)),
        "wall_west": make_surface_plane(PlaneType.WALL, (-X_HALF, mid_y, 0), (half_h, Z_HALF), (1, 0, 0)),
        "wall_east": make_surface_plane(PlaneType.WALL, (X_HALF, mid_y, 0), (half_h, Z_HALF), (-1, 0, 0)),
        "wall_south": make_surface_plane(PlaneType.WALL, (0, mid_y, -Z_HALF), (half_h, X_HALF), (0, 0, 1)),
        "wall_north": make_surface_plane(PlaneType.WALL, (0, mid_y, Z_HALF), (half_h, X_HALF), (0, 0, -1)),
    }


@pytest.fixture()
def exhausted_clock():
    """A clock that advances one second per reading, so any budget runs out."""
    ticks = iter(range(10**9))
    return lambda: float(next(ticks))
