"""Power outlet validation and lamp candidate collection.

A "power outlet" is a point the user marks on a detected surface.  It is
accepted when it lies inside one of the classified planes; the lamp then
sits at a fixed offset from it depending on the surface type:

==========  =====================================================
Floor       1.5 m up (a standing lamp)
Ceiling     0.5 m down (a pendant)
Table       0.3 m up (a desk lamp)
Wall        0.3 m out on X and on Z, toward the room centre
==========  =====================================================

Every accepted outlet gets a coarse visibility sample whose summed hit
distance is its *range*; the planner visits candidates by descending range.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from packages.core.config import CoverageConfig, PlannerConfig
from packages.core.types import CandidatePosition, PlaneType, SurfacePlane, Vec3
from packages.lighting.coverage import VisibilityCoverageEngine
from packages.spatial.classify import SurfacePlaneSet

logger = logging.getLogger(__name__)

FLOOR_LAMP_HEIGHT = 1.5
PENDANT_DROP = 0.5
DESK_LAMP_HEIGHT = 0.3
WALL_LAMP_OFFSET = 0.3


def _sign(value: float) -> float:
    return 1.0 if value >= 0 else -1.0


def lamp_position_for(
    surface_plane: SurfacePlane,
    point,
    room_anchor: SurfacePlane,
) -> np.ndarray:
    """Where the lamp goes for an outlet at *point* on *surface_plane*.

    *room_anchor* is the ceiling, or the floor when no ceiling was found;
    wall lamps are pulled toward its horizontal centre.
    """
    p = np.asarray(point, dtype=np.float64).reshape(3)
    kind = surface_plane.type
    if kind == PlaneType.FLOOR:
        return p + np.array([0.0, FLOOR_LAMP_HEIGHT, 0.0])
    if kind == PlaneType.CEILING:
        return p - np.array([0.0, PENDANT_DROP, 0.0])
    if kind == PlaneType.TABLE:
        return p + np.array([0.0, DESK_LAMP_HEIGHT, 0.0])

    # walls and unknown surfaces
    centre = room_anchor.bounds.center
    return p + WALL_LAMP_OFFSET * np.array([
        _sign(centre.x - p[0]),
        0.0,
        _sign(centre.z - p[2]),
    ])


class PowerOutletPlacementValidator:
    """Matches a user-chosen point to the surface plane it lies on."""

    def __init__(self, containment_tolerance: float = 0.05):
        self.containment_tolerance = containment_tolerance

    def find_plane(self, point, surface_planes: Sequence[SurfacePlane]) -> Optional[SurfacePlane]:
        for plane in surface_planes:
            if plane.area > 0 and plane.bounds.contains(point, self.containment_tolerance):
                return plane
        return None

    def validate(
        self,
        point,
        surface_planes: SurfacePlaneSet,
    ) -> Optional[tuple[SurfacePlane, np.ndarray]]:
        """Return ``(plane, lamp_position)``, or None when no plane contains *point*.

        Planes are tried in order; the first whose box holds the point wins.
        """
        plane = self.find_plane(point, list(surface_planes))
        if plane is None:
            return None
        return plane, lamp_position_for(plane, point, surface_planes.anchor())


class CandidateCollector:
    """Accumulates validated outlets until enough candidates are collected."""

    def __init__(
        self,
        engine: VisibilityCoverageEngine,
        surface_planes: SurfacePlaneSet,
        config: Optional[PlannerConfig] = None,
        coverage_config: Optional[CoverageConfig] = None,
    ):
        self.engine = engine
        self.surface_planes = surface_planes
        self.config = config or PlannerConfig()
        self.coverage_config = coverage_config or engine.config
        self.validator = PowerOutletPlacementValidator(self.config.containment_tolerance)
        self.candidates: list[CandidatePosition] = []

    @property
    def required_count(self) -> int:
        return self.config.required_candidates

    @property
    def is_closed(self) -> bool:
        return len(self.candidates) >= self.required_count

    def add(self, point) -> bool:
        """Validate *point* and, if it lies on a surface, add a candidate.

        Returns True when the point was accepted.
        """
        if self.is_closed:
            logger.info("Collector closed (%d candidates); ignoring outlet", len(self.candidates))
            return False

        match = self.validator.validate(point, self.surface_planes)
        if match is None:
            logger.warning("Outlet at %s is not on any detected surface", np.round(point, 3))
            return False

        plane, lamp = match
        sample = self.engine.sample(
            lamp,
            self.engine.all_triangles(),
            np.inf,
            stride=self.coverage_config.candidate_stride,
        )
        candidate = CandidatePosition(
            surface_plane=plane,
            anchor=Vec3.from_array(point),
            lamp_position=Vec3.from_array(lamp),
            range=sample.total_hit_distance,
            max_hit_distance=sample.max_hit_distance,
            sample_hits=sample.hit_count,
        )
        self.candidates.append(candidate)
        logger.info(
            "💡 Candidate %d/%d on %s: range %.2f, %d sample hits",
            len(self.candidates), self.required_count, plane.label,
            candidate.range, candidate.sample_hits,
        )
        return True

    def add_all(self, points) -> int:
        """Feed points until the collector closes; returns how many were accepted."""
        accepted = 0
        for point in points:
            if self.is_closed:
                break
            if self.add(point):
                accepted += 1
        return accepted

    def ranked(self) -> list[CandidatePosition]:
        """Candidates by descending range; equal ranges keep insertion order."""
        return sorted(self.candidates, key=lambda c: c.range, reverse=True)
