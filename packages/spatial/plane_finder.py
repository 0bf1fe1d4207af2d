"""Bounded plane detection on a triangulated room scan.

Triangles are snapped to gravity, region-grown into coplanar clusters over
shared edges, fused with coplanar neighbours that the mesh topology left
apart (e.g. two scan chunks of the same wall), and finally fitted with an
oriented bounding box.  Clusters whose box area is below ``min_area`` are
dropped.

The work is written as a budgeted generator (:func:`iter_find_bounded_planes`)
so a host with a frame loop can interleave it; :func:`find_bounded_planes`
runs it to completion and is what a background worker calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from packages.core.budget import Steps, WorkBudget, run_to_completion
from packages.core.config import PlaneFinderConfig
from packages.core.geometry import MeshData, TriangleMesh, fit_obb, snap_to_gravity
from packages.core.types import BoundedPlane, Plane, Vec3

logger = logging.getLogger(__name__)


@dataclass
class _Cluster:
    """Working state of one coplanar triangle cluster."""

    face_ids: np.ndarray
    normal: np.ndarray
    offset: float
    area: float
    aabb_min: np.ndarray = field(default_factory=lambda: np.zeros(3))
    aabb_max: np.ndarray = field(default_factory=lambda: np.zeros(3))


# ── region growing ───────────────────────────────────────────────────

def _coplanar_components(
    mesh: TriangleMesh,
    normals: np.ndarray,
    centroids: np.ndarray,
    normal_tolerance_deg: float,
    distance_tolerance: float,
) -> np.ndarray:
    """Label each face with the id of its coplanar, edge-connected component."""
    n = mesh.triangle_count
    adjacency = np.asarray(mesh.trimesh.face_adjacency, dtype=np.int64).reshape(-1, 2)
    if len(adjacency) == 0:
        return np.arange(n)

    a, b = adjacency[:, 0], adjacency[:, 1]
    aligned = np.einsum("ij,ij->i", normals[a], normals[b]) >= np.cos(
        np.radians(normal_tolerance_deg)
    )
    # distance of each centroid from the neighbour's plane, both ways
    gap_ab = np.abs(np.einsum("ij,ij->i", normals[a], centroids[b] - centroids[a]))
    gap_ba = np.abs(np.einsum("ij,ij->i", normals[b], centroids[a] - centroids[b]))
    linked = aligned & (np.maximum(gap_ab, gap_ba) < distance_tolerance)

    graph = coo_matrix(
        (np.ones(int(linked.sum()), dtype=np.int8), (a[linked], b[linked])),
        shape=(n, n),
    )
    _, labels = connected_components(graph, directed=False)
    return labels


def _make_cluster(
    mesh: TriangleMesh,
    face_ids: np.ndarray,
    normals: np.ndarray,
    centroids: np.ndarray,
    areas: np.ndarray,
    snap_threshold: float,
) -> Optional[_Cluster]:
    """Fit an area-weighted plane to *face_ids*; None for a zero-area cluster."""
    weights = areas[face_ids]
    total = float(weights.sum())
    if total <= 0:
        return None

    normal = (normals[face_ids] * weights[:, None]).sum(axis=0)
    length = np.linalg.norm(normal)
    if length < 1e-12:
        return None
    normal = snap_to_gravity(normal / length, snap_threshold)[0]
    offset = float(np.dot(centroids[face_ids].T @ weights / total, normal))

    points = mesh.vertices[np.unique(mesh.faces[face_ids])]
    return _Cluster(
        face_ids=face_ids,
        normal=normal,
        offset=offset,
        area=total,
        aabb_min=points.min(axis=0),
        aabb_max=points.max(axis=0),
    )


# ── coplanar cluster fusing ──────────────────────────────────────────

def _should_fuse(
    a: _Cluster,
    b: _Cluster,
    normal_threshold: float,
    offset_threshold: float,
    spatial_gap: float,
) -> bool:
    """Return True if clusters *a* and *b* are nearly coplanar and spatially close."""
    dot = float(np.dot(a.normal, b.normal))
    # opposite-facing surfaces (two sides of a thin wall) stay separate
    if dot < normal_threshold:
        return False

    if abs(a.offset - b.offset) > offset_threshold:
        return False

    gap = np.maximum(0.0, np.maximum(a.aabb_min, b.aabb_min) - np.minimum(a.aabb_max, b.aabb_max))
    return float(gap.max()) <= spatial_gap


def _merge_clusters(
    a: _Cluster,
    b: _Cluster,
    mesh: TriangleMesh,
    normals: np.ndarray,
    centroids: np.ndarray,
    areas: np.ndarray,
    snap_threshold: float,
) -> _Cluster:
    merged = _make_cluster(
        mesh,
        np.concatenate((a.face_ids, b.face_ids)),
        normals, centroids, areas, snap_threshold,
    )
    if merged is None:
        raise ValueError("cannot merge clusters without a plane-facing area")
    return merged


# ── public API ───────────────────────────────────────────────────────

def iter_find_bounded_planes(
    meshes: Iterable[MeshData],
    snap_to_gravity_threshold: Optional[float] = None,
    min_area: Optional[float] = None,
    *,
    config: Optional[PlaneFinderConfig] = None,
    budget: Optional[WorkBudget] = None,
) -> Steps[list[BoundedPlane]]:
    """Budgeted plane finding; yields whenever *budget* runs out.

    Explicit *snap_to_gravity_threshold* / *min_area* arguments override
    the values in *config*.
    """
    config = config or PlaneFinderConfig()
    budget = budget or WorkBudget()
    snap = config.snap_to_gravity_threshold if snap_to_gravity_threshold is None else snap_to_gravity_threshold
    min_area = config.min_area if min_area is None else min_area

    budget.start()
    mesh = TriangleMesh.from_meshes(meshes)
    if mesh.triangle_count == 0:
        logger.info("No triangles to search for planes")
        return []

    normals = snap_to_gravity(mesh.face_normals, snap)
    centroids = mesh.vertices[mesh.faces].mean(axis=1)
    areas = mesh.face_areas

    labels = _coplanar_components(
        mesh, normals, centroids, config.normal_tolerance_deg, config.distance_tolerance,
    )
    if budget.pause():
        yield
        budget.start()

    order = np.argsort(labels, kind="stable")
    boundaries = np.flatnonzero(np.diff(labels[order])) + 1
    clusters: list[_Cluster] = []
    for face_ids in np.split(order, boundaries):
        cluster = _make_cluster(mesh, face_ids, normals, centroids, areas, snap)
        if cluster is not None:
            clusters.append(cluster)
        if budget.pause():
            yield
            budget.start()

    logger.info(
        "  🔗 Grouped %s triangles into %d coplanar cluster(s)",
        f"{mesh.triangle_count:,}", len(clusters),
    )

    # Fuse until no more merges occur (transitive closure)
    fused = list(clusters)
    changed = True
    while changed:
        changed = False
        i = 0
        while i < len(fused):
            j = i + 1
            while j < len(fused):
                if _should_fuse(
                    fused[i], fused[j],
                    config.fuse_normal_threshold,
                    config.distance_tolerance,
                    config.fuse_spatial_gap,
                ):
                    fused[i] = _merge_clusters(
                        fused[i], fused[j], mesh, normals, centroids, areas, snap,
                    )
                    fused.pop(j)
                    changed = True
                else:
                    j += 1
            i += 1
            if budget.pause():
                yield
                budget.start()

    if len(fused) != len(clusters):
        logger.info("  🔗 Fused %d clusters down to %d", len(clusters), len(fused))

    planes: list[BoundedPlane] = []
    for cluster in fused:
        points = mesh.vertices[np.unique(mesh.faces[cluster.face_ids])]
        bounds = fit_obb(points, cluster.normal)
        candidate = BoundedPlane(
            plane=Plane(normal=Vec3.from_array(cluster.normal), offset=cluster.offset),
            bounds=bounds,
            triangle_count=len(cluster.face_ids),
        )
        if candidate.area >= min_area:
            planes.append(candidate)
        if budget.pause():
            yield
            budget.start()

    logger.info(
        "Found %d bounded plane(s) with area ≥ %.3f m² (snap=%.1f°)",
        len(planes), min_area, snap,
    )
    return planes


def find_bounded_planes(
    meshes: Iterable[MeshData],
    snap_to_gravity_threshold: Optional[float] = None,
    min_area: Optional[float] = None,
    *,
    config: Optional[PlaneFinderConfig] = None,
) -> list[BoundedPlane]:
    """Cluster mesh triangles into bounded planes (blocking)."""
    return run_to_completion(
        iter_find_bounded_planes(
            meshes, snap_to_gravity_threshold, min_area, config=config,
        )
    )
