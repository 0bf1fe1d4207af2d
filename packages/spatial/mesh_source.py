"""Spatial mesh sources and mesh file loading.

Supported formats
-----------------
* **PLY** – via the ``plyfile`` library (vertex + face elements).
* **OBJ / GLB / STL / OFF …** – via ``trimesh.load``; scene files keep one
  chunk per geometry, each with its scene-graph transform.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

import numpy as np
import trimesh
from plyfile import PlyData

from packages.core.geometry import MeshData

logger = logging.getLogger(__name__)


class MeshSource(Protocol):
    """What the planner needs from the host's spatial-mesh provider."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def get_mesh_filters(self) -> list[MeshData]: ...


class StaticMeshSource:
    """A mesh source over a fixed list of chunks (recorded scans, tests)."""

    def __init__(self, meshes: Sequence[MeshData]):
        self._meshes = list(meshes)
        self.is_running = False

    def start(self) -> None:
        if not self.is_running:
            logger.info("Scanning started")
            self.is_running = True

    def stop(self) -> None:
        if self.is_running:
            logger.info("Scanning stopped")
            self.is_running = False

    def get_mesh_filters(self) -> list[MeshData]:
        # chunks with fewer than three vertices cannot hold a triangle
        return [m for m in self._meshes if m.vertex_count > 2 and len(m.faces)]


def _triangulate(polygons) -> np.ndarray:
    """Fan-triangulate a sequence of vertex-index polygons."""
    tris: list[tuple[int, int, int]] = []
    for poly in polygons:
        poly = [int(i) for i in poly]
        for k in range(1, len(poly) - 1):
            tris.append((poly[0], poly[k], poly[k + 1]))
    return np.asarray(tris, dtype=np.int64).reshape(-1, 3)


def load_ply_mesh(path: str | Path) -> list[MeshData]:
    """Read a binary or ASCII PLY mesh and return it as a single chunk."""
    logger.info("📄 Reading PLY mesh %s", Path(path).name)
    ply = PlyData.read(str(path))
    vertex = ply["vertex"]
    positions = np.column_stack(
        (
            np.asarray(vertex["x"], dtype=np.float64),
            np.asarray(vertex["y"], dtype=np.float64),
            np.asarray(vertex["z"], dtype=np.float64),
        )
    )

    element_names = [el.name for el in ply.elements]
    if "face" not in element_names:
        raise ValueError(f"PLY file {path} has no face element; a triangle mesh is required")
    face = ply["face"]
    prop_names = [p.name for p in face.properties]
    index_prop = next(
        (n for n in ("vertex_indices", "vertex_index") if n in prop_names), None
    )
    if index_prop is None:
        raise ValueError(f"PLY face element has no vertex index list (properties: {prop_names})")

    faces = _triangulate(face[index_prop])
    logger.info("✅ PLY mesh loaded: %d vertices, %d triangles", len(positions), len(faces))
    return [MeshData(positions, faces, name=Path(path).stem)]


def load_trimesh_mesh(path: str | Path) -> list[MeshData]:
    """Load any format trimesh understands, one chunk per scene geometry."""
    scene = trimesh.load(str(path), force="scene")
    chunks: list[MeshData] = []
    for node_name in scene.graph.nodes_geometry:
        transform, geometry_name = scene.graph[node_name]
        geometry = scene.geometry[geometry_name]
        if not isinstance(geometry, trimesh.Trimesh):
            continue
        chunks.append(
            MeshData(
                np.asarray(geometry.vertices),
                np.asarray(geometry.faces),
                transform=np.asarray(transform),
                name=str(node_name),
            )
        )
    if not chunks:
        raise ValueError(f"No triangle geometry found in {path}")
    logger.info(
        "Loaded %d mesh chunk(s), %d triangles",
        len(chunks), sum(len(c.faces) for c in chunks),
    )
    return chunks


def load_mesh(path: str | Path) -> list[MeshData]:
    """Auto-detect format and return the mesh chunks.

    Raises ``FileNotFoundError`` for a missing file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Mesh file not found: {path}")
    if p.suffix.lower() == ".ply":
        return load_ply_mesh(p)
    return load_trimesh_mesh(p)
