"""Ray-cast visibility sampling: which triangles does a lamp light up?

For an origin (a lamp position) and a set of triangles, a ray is cast
toward each sampled triangle's representative (first) vertex.  The
triangle is *covered* when the ray gets there without striking anything
first and the vertex is within range; every other triangle stays in
*remaining*.  The ray queries go through :class:`RayCaster`, which wraps
the ``trimesh`` ray intersector and tells scan ("target") faces apart from
faces of other objects placed in the room.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import trimesh

from packages.core.budget import Steps, WorkBudget, run_to_completion
from packages.core.config import CoverageConfig
from packages.core.geometry import TriangleMesh

logger = logging.getLogger(__name__)

# hits closer than this to the origin are the origin's own surface
_SELF_HIT = 1e-9


class RayCaster:
    """First-hit ray queries against the scan plus optional occluders."""

    def __init__(self, target: TriangleMesh, occluders: Sequence[TriangleMesh] = ()):
        meshes = [target.trimesh] + [o.trimesh for o in occluders if o.triangle_count]
        self.mesh = meshes[0] if len(meshes) == 1 else trimesh.util.concatenate(meshes)
        self.face_is_target = np.zeros(len(self.mesh.faces), dtype=bool)
        self.face_is_target[: target.triangle_count] = True

    def first_hits(
        self,
        origins: np.ndarray,
        directions: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Cast one ray per row.

        Returns:
            Tuple of (distance, face_idx, is_target) arrays; rays that hit
            nothing get distance ``inf`` and face ``-1``.
        """
        n = len(origins)
        distances = np.full(n, np.inf)
        faces = np.full(n, -1, dtype=np.int64)
        if n == 0 or len(self.mesh.faces) == 0:
            return distances, faces, np.zeros(n, dtype=bool)

        locations, ray_idx, face_idx = self.mesh.ray.intersects_location(
            origins, directions, multiple_hits=True
        )
        if len(locations):
            hit_dist = np.linalg.norm(locations - origins[ray_idx], axis=1)
            ahead = hit_dist > _SELF_HIT
            ray_idx, face_idx, hit_dist = ray_idx[ahead], face_idx[ahead], hit_dist[ahead]
            # keep the closest hit per ray
            order = np.lexsort((hit_dist, ray_idx))
            ray_idx, face_idx, hit_dist = ray_idx[order], face_idx[order], hit_dist[order]
            first = np.unique(ray_idx, return_index=True)[1]
            distances[ray_idx[first]] = hit_dist[first]
            faces[ray_idx[first]] = face_idx[first]

        is_target = np.zeros(n, dtype=bool)
        hit = faces >= 0
        is_target[hit] = self.face_is_target[faces[hit]]
        return distances, faces, is_target


@dataclass
class CoverageSample:
    """Partition of a triangle subset into covered and remaining.

    ``covered`` and ``remaining`` hold face indices in the order they
    appeared in the subset; together they are exactly the subset.
    """

    covered: np.ndarray
    remaining: np.ndarray
    hit_distances: np.ndarray = field(default_factory=lambda: np.empty(0))
    sampled_count: int = 0

    @property
    def hit_count(self) -> int:
        """Illuminated triangle vertices."""
        return 3 * len(self.covered)

    @property
    def max_hit_distance(self) -> float:
        return float(self.hit_distances.max()) if len(self.hit_distances) else 0.0

    @property
    def total_hit_distance(self) -> float:
        return float(self.hit_distances.sum())


class VisibilityCoverageEngine:
    """Point-visibility oracle over a fixed scan mesh."""

    def __init__(
        self,
        mesh: TriangleMesh,
        occluders: Sequence[TriangleMesh] = (),
        config: Optional[CoverageConfig] = None,
        ray_caster: Optional[RayCaster] = None,
    ):
        self.mesh = mesh
        self.config = config or CoverageConfig()
        self.ray_caster = ray_caster or RayCaster(mesh, occluders)

    @property
    def total_triangles(self) -> int:
        return self.mesh.triangle_count

    def all_triangles(self) -> np.ndarray:
        return np.arange(self.mesh.triangle_count, dtype=np.int64)

    def iter_sample(
        self,
        origin,
        triangles,
        max_range: float = np.inf,
        *,
        stride: Optional[int] = None,
        budget: Optional[WorkBudget] = None,
    ) -> Steps[CoverageSample]:
        """Budgeted form of :meth:`sample`; yields between ray batches."""
        stride = stride or self.config.stride
        if stride <= 0:
            raise ValueError("stride must be positive")
        budget = budget or WorkBudget()
        budget.start()

        origin = np.asarray(origin, dtype=np.float64).reshape(3)
        subset = np.asarray(triangles, dtype=np.int64).ravel()
        n = len(subset)
        sampled_pos = np.arange(0, n, stride)
        covered_mask = np.zeros(n, dtype=bool)
        distance_blocks: list[np.ndarray] = []
        tolerance = self.config.hit_tolerance

        for start in range(0, len(sampled_pos), self.config.batch_size):
            pos = sampled_pos[start:start + self.config.batch_size]
            targets = self.mesh.representative_vertices(subset[pos])
            offsets = targets - origin
            vertex_dist = np.linalg.norm(offsets, axis=1)

            at_origin = vertex_dist <= _SELF_HIT
            directions = np.zeros_like(offsets)
            directions[~at_origin] = offsets[~at_origin] / vertex_dist[~at_origin, None]

            hit_dist, _, hit_target = self.ray_caster.first_hits(
                np.tile(origin, (int((~at_origin).sum()), 1)),
                directions[~at_origin],
            )
            first_dist = np.full(len(pos), np.inf)
            first_target = np.zeros(len(pos), dtype=bool)
            first_dist[~at_origin] = hit_dist
            first_target[~at_origin] = hit_target

            reaches = at_origin | (first_dist >= vertex_dist - tolerance)
            # where the ray stops on the scan: the vertex, or an earlier scan face
            target_hit = reaches | first_target
            stop_dist = np.where(reaches, vertex_dist, first_dist)

            if self.config.require_unobstructed:
                lit = reaches & (vertex_dist <= max_range)
            else:
                lit = target_hit & (stop_dist <= max_range)

            covered_mask[pos[lit]] = True
            distance_blocks.append(stop_dist[target_hit])

            if budget.pause():
                yield
                budget.start()

        result = CoverageSample(
            covered=subset[covered_mask],
            remaining=subset[~covered_mask],
            hit_distances=np.concatenate(distance_blocks) if distance_blocks else np.empty(0),
            sampled_count=len(sampled_pos),
        )
        logger.debug(
            "Sampled %d/%d triangles from %s: %d covered, %d remaining",
            result.sampled_count, n, np.round(origin, 3), len(result.covered), len(result.remaining),
        )
        return result

    def sample(
        self,
        origin,
        triangles,
        max_range: float = np.inf,
        *,
        stride: Optional[int] = None,
    ) -> CoverageSample:
        """Split *triangles* into covered / remaining as seen from *origin*."""
        return run_to_completion(self.iter_sample(origin, triangles, max_range, stride=stride))

    def coverage(self, remaining_count: int) -> float:
        """Percentage of all scan triangles that are no longer remaining."""
        total = self.total_triangles
        if total == 0:
            return 0.0
        return 100.0 * (1.0 - remaining_count / total)
