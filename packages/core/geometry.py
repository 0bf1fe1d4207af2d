"""Triangle mesh containers and small geometric helpers.

Everything here works in the scan frame: metres, **Y up**.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import numpy as np
import trimesh
from scipy.spatial import ConvexHull, QhullError

from packages.core.types import OrientedBoundingBox, Quat, Vec3

logger = logging.getLogger(__name__)

UP = np.array([0.0, 1.0, 0.0])

# faces smaller than this (m²) are treated as degenerate
_MIN_FACE_AREA = 1e-12


class MeshData:
    """One mesh chunk as handed out by the spatial mesh provider."""

    def __init__(
        self,
        vertices: np.ndarray,
        faces: np.ndarray,
        transform: Optional[np.ndarray] = None,
        name: str = "",
    ):
        """
        Initialize MeshData.

        Args:
            vertices: (N, 3) vertex positions in the chunk's local frame
            faces: (M, 3) vertex indices, one row per triangle
            transform: 4x4 local-to-world matrix (identity when omitted)
            name: Optional identifier of the chunk
        """
        self.vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        self.transform = (
            np.eye(4) if transform is None else np.asarray(transform, dtype=np.float64)
        )
        self.name = name
        _check_indices(self.faces, len(self.vertices))

    def world_vertices(self) -> np.ndarray:
        """Vertices with the local-to-world transform applied."""
        return trimesh.transformations.transform_points(self.vertices, self.transform)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)


class TriangleMesh:
    """Read-only view of a world-space triangle mesh.

    Triangle identity is the row index into ``faces``.  The flat
    ``triangles`` sequence (three vertex indices per triangle) is available
    for callers that expect the engine-style index buffer.
    """

    def __init__(self, vertices: np.ndarray, faces: np.ndarray):
        self.vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        _check_indices(self.faces, len(self.vertices))
        self.vertices.setflags(write=False)
        self.faces.setflags(write=False)
        self._trimesh: Optional[trimesh.Trimesh] = None

    @classmethod
    def from_meshes(
        cls,
        meshes: Iterable[MeshData],
        *,
        merge_vertices: bool = True,
        drop_degenerate: bool = True,
    ) -> TriangleMesh:
        """Combine mesh chunks into a single world-space mesh."""
        vertex_blocks = []
        face_blocks = []
        offset = 0
        for chunk in meshes:
            if chunk.vertex_count < 3 or len(chunk.faces) == 0:
                continue
            vertex_blocks.append(chunk.world_vertices())
            face_blocks.append(chunk.faces + offset)
            offset += chunk.vertex_count

        if not vertex_blocks:
            return cls(np.empty((0, 3)), np.empty((0, 3), dtype=np.int64))

        tm = trimesh.Trimesh(
            vertices=np.vstack(vertex_blocks),
            faces=np.vstack(face_blocks),
            process=False,
        )
        if merge_vertices:
            tm.merge_vertices()
        faces = np.asarray(tm.faces)
        if drop_degenerate and len(faces):
            keep = trimesh.triangles.area(tm.vertices[faces]) > _MIN_FACE_AREA
            if not keep.all():
                logger.debug("Dropping %d degenerate faces", int((~keep).sum()))
            faces = faces[keep]
        return cls(np.asarray(tm.vertices), faces)

    # ── derived data ────────────────────────────────────────────────
    @property
    def triangle_count(self) -> int:
        return len(self.faces)

    @property
    def triangles(self) -> np.ndarray:
        """Flat index buffer, ``3 * triangle_count`` long."""
        return self.faces.ravel()

    @property
    def trimesh(self) -> trimesh.Trimesh:
        if self._trimesh is None:
            self._trimesh = trimesh.Trimesh(
                vertices=np.array(self.vertices), faces=np.array(self.faces), process=False
            )
        return self._trimesh

    @property
    def face_normals(self) -> np.ndarray:
        if self.triangle_count == 0:
            return np.empty((0, 3))
        tri = self.vertices[self.faces]
        cross = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
        lengths = np.linalg.norm(cross, axis=1, keepdims=True)
        # degenerate faces keep a zero normal
        return np.divide(cross, lengths, out=np.zeros_like(cross), where=lengths > 0)

    @property
    def face_areas(self) -> np.ndarray:
        if self.triangle_count == 0:
            return np.empty(0)
        return trimesh.triangles.area(self.vertices[self.faces])

    def representative_vertices(self, face_ids: np.ndarray) -> np.ndarray:
        """First vertex of each listed triangle."""
        return self.vertices[self.faces[np.asarray(face_ids, dtype=np.int64), 0]]


def _check_indices(faces: np.ndarray, vertex_count: int) -> None:
    if faces.size and (faces.min() < 0 or faces.max() >= vertex_count):
        raise ValueError(
            f"face indices must lie in [0, {vertex_count}); "
            f"got range [{faces.min()}, {faces.max()}]"
        )


# ── gravity snapping ─────────────────────────────────────────────────

def snap_to_gravity(normals: np.ndarray, threshold_deg: float) -> np.ndarray:
    """Snap unit normals that are within *threshold_deg* of an axis-aligned orientation.

    * Normals close to ±Y become exactly ±Y (level floors, ceilings, tables).
    * Normals close to the horizontal plane lose their Y component
      (plumb walls).
    """
    normals = np.array(normals, dtype=np.float64, copy=True).reshape(-1, 3)
    if threshold_deg <= 0 or len(normals) == 0:
        return normals

    theta = np.radians(threshold_deg)
    ny = normals[:, 1]

    vertical = np.abs(ny) >= np.cos(theta)
    normals[vertical] = np.outer(np.sign(ny[vertical]), UP)

    horizontal = np.abs(ny) <= np.sin(theta)
    flat = normals[horizontal]
    flat[:, 1] = 0.0
    lengths = np.linalg.norm(flat, axis=1, keepdims=True)
    ok = lengths[:, 0] > 1e-12
    flat[ok] = flat[ok] / lengths[ok]
    normals[horizontal] = flat
    return normals


# ── oriented bounding boxes ──────────────────────────────────────────

def _min_area_rect_angle(points_2d: np.ndarray) -> float:
    """Return the rotation (radians) of the minimum-area rectangle around *points_2d*."""
    if len(points_2d) < 3:
        return 0.0
    try:
        hull = ConvexHull(points_2d)
    except QhullError:
        # collinear or coincident points
        return 0.0

    hull_pts = points_2d[hull.vertices]
    edges = np.roll(hull_pts, -1, axis=0) - hull_pts
    angles = np.unique(np.mod(np.arctan2(edges[:, 1], edges[:, 0]), np.pi / 2))

    best_angle = 0.0
    best_area = np.inf
    for angle in angles:
        c, s = np.cos(angle), np.sin(angle)
        rot = np.array([[c, -s], [s, c]])
        local = hull_pts @ rot
        span = local.max(axis=0) - local.min(axis=0)
        area = span[0] * span[1]
        if area < best_area - 1e-12:
            best_area = area
            best_angle = float(angle)
    return best_angle


def plane_frame(normal: np.ndarray, points: Optional[np.ndarray] = None) -> np.ndarray:
    """Right-handed (3, 3) frame whose columns are local x, y and the normal.

    Horizontal surfaces get the minimum-area rectangle orientation of
    *points*; every other surface gets local x along the in-plane vertical.
    """
    z = np.asarray(normal, dtype=np.float64)
    z = z / np.linalg.norm(z)

    if abs(z[1]) > 0.99:
        ref = np.array([1.0, 0.0, 0.0])
        e1 = ref - np.dot(ref, z) * z
        e1 /= np.linalg.norm(e1)
        e2 = np.cross(z, e1)
        angle = 0.0
        if points is not None and len(points):
            angle = _min_area_rect_angle(np.column_stack((points @ e1, points @ e2)))
        x = np.cos(angle) * e1 + np.sin(angle) * e2
    else:
        x = UP - np.dot(UP, z) * z
        x /= np.linalg.norm(x)

    y = np.cross(z, x)
    return np.column_stack((x, y, z))


def fit_obb(points: np.ndarray, normal: np.ndarray) -> OrientedBoundingBox:
    """Fit an oriented bounding box to *points* lying (roughly) on a plane."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(points) == 0:
        return OrientedBoundingBox()

    axes = plane_frame(normal, points)
    local = points @ axes
    mins = local.min(axis=0)
    maxs = local.max(axis=0)
    center = axes @ ((mins + maxs) / 2.0)
    extents = (maxs - mins) / 2.0

    return OrientedBoundingBox(
        center=Vec3.from_array(center),
        rotation=Quat.from_matrix(axes),
        extents=Vec3.from_array(np.maximum(extents, 0.0)),
    )


def project_onto_axis(corner_sets: Sequence[np.ndarray], axis: np.ndarray) -> float:
    """Span of all *corner_sets* projected onto *axis*."""
    if not corner_sets:
        return 0.0
    stacked = np.vstack(corner_sets)
    proj = stacked @ (np.asarray(axis, dtype=np.float64) / np.linalg.norm(axis))
    return float(proj.max() - proj.min())
