"""Room volume estimation from the classified floor, ceiling and walls.

Height, width and length are derived independently from whichever anchor
planes are present.  Width and length get up to three candidates each
(floor, ceiling, walls); a candidate that disagrees with the others by
more than a factor of two is discarded before averaging, so a fragment of
a plane cannot drag the estimate down (or a stray one up).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from packages.core.geometry import project_onto_axis
from packages.core.types import RoomDimensions, SurfacePlane

logger = logging.getLogger(__name__)

# |n0 × n| below this means "parallel to the first wall"
_PARALLEL_CROSS = 0.5

FLOOR, CEILING, WALLS = 0, 1, 2


class VolumeCase(str, Enum):
    FLOOR_CEILING_WALLS = "floor+ceiling+walls"
    FLOOR_CEILING = "floor+ceiling"
    FLOOR_WALLS = "floor+walls"
    CEILING_WALLS = "ceiling+walls"
    WALLS = "walls"


def select_case(
    floor: SurfacePlane,
    ceiling: SurfacePlane,
    walls: Sequence[SurfacePlane],
) -> Optional[VolumeCase]:
    """Pick the formula for the available data, or None if none applies."""
    has_floor = floor.area > 0
    has_ceiling = ceiling.area > 0
    n_walls = len(walls)

    if has_floor and has_ceiling and n_walls >= 1:
        return VolumeCase.FLOOR_CEILING_WALLS
    if has_floor and has_ceiling:
        return VolumeCase.FLOOR_CEILING
    if has_floor and n_walls > 0:
        return VolumeCase.FLOOR_WALLS
    if has_ceiling and n_walls > 0:
        return VolumeCase.CEILING_WALLS
    if not has_floor and not has_ceiling and n_walls > 1:
        return VolumeCase.WALLS
    return None


# ── per-plane measurements ───────────────────────────────────────────

def plane_width_length(plane: SurfacePlane) -> tuple[float, float]:
    """The smaller in-plane box side is the width, the larger the length."""
    a = plane.bounds.extents.x * 2
    b = plane.bounds.extents.y * 2
    return min(a, b), max(a, b)


def wall_height(walls: Sequence[SurfacePlane]) -> float:
    """Tallest wall (local x of a wall box is vertical)."""
    return max(w.bounds.extents.x * 2 for w in walls)


def floor_ceiling_distance(floor: SurfacePlane, ceiling: SurfacePlane) -> float:
    point = np.array([floor.bounds.center.x, ceiling.bounds.center.y, floor.bounds.center.z])
    return abs(floor.plane.distance_to_point(point))


def _group_span(walls: Sequence[SurfacePlane]) -> float:
    if not walls:
        return 0.0
    if len(walls) == 1:
        return walls[0].bounds.extents.y * 2
    along = walls[0].bounds.axes()[:, 1]
    return project_onto_axis([w.bounds.corners() for w in walls], along)


def wall_width_length(walls: Sequence[SurfacePlane]) -> tuple[float, float]:
    """Width and length spanned by the walls.

    Walls are split into those parallel to the first wall and the rest;
    each group spans one horizontal room dimension.
    """
    if not walls:
        return 0.0, 0.0
    n0 = walls[0].plane.normal.to_array()
    parallel: list[SurfacePlane] = []
    orthogonal: list[SurfacePlane] = []
    for wall in walls:
        if np.linalg.norm(np.cross(n0, wall.plane.normal.to_array())) < _PARALLEL_CROSS:
            parallel.append(wall)
        else:
            orthogonal.append(wall)

    p = _group_span(parallel)
    o = _group_span(orthogonal)
    return min(p, o), max(p, o)


def reject_outliers(values: Sequence[float]) -> list[float]:
    """Zero every present value that another present value more than doubles.

    Absent candidates are 0 and stay 0.  With two present values the
    smaller is dropped when the larger is over twice it.  With three, the
    median decides which side is the outlier: values more than double or
    less than half of it are dropped, so ``[1, 1, 5]`` keeps the pair.
    """
    present = [v for v in values if v > 0]
    if len(present) < 2:
        return [float(v) for v in values]
    if len(present) == 2:
        largest = max(present)
        return [float(v) if v > 0 and v * 2 >= largest else 0.0 for v in values]
    median = float(np.median(present))
    return [
        float(v) if v > 0 and median / 2 <= v <= median * 2 else 0.0
        for v in values
    ]


def _mean_of_present(values: Sequence[float]) -> float:
    present = [v for v in values if v > 0]
    return float(np.mean(present)) if present else 0.0


# ── calculator ───────────────────────────────────────────────────────

class RoomVolumeCalculator:
    """Combines classified planes into a room-size estimate.

    :attr:`dimensions` holds the last successful estimate (all zero before
    the first one); a call with insufficient data leaves it unchanged.
    """

    def __init__(self) -> None:
        self.dimensions = RoomDimensions()
        self.case: Optional[VolumeCase] = None
        # index 0 = floor, 1 = ceiling, 2 = walls
        self.widths = [0.0, 0.0, 0.0]
        self.lengths = [0.0, 0.0, 0.0]

    @property
    def volume(self) -> float:
        return self.dimensions.volume

    def calculate(
        self,
        floor: SurfacePlane,
        ceiling: SurfacePlane,
        walls: Sequence[SurfacePlane],
    ) -> Optional[RoomDimensions]:
        """Estimate height, width, length and volume.

        Returns None (after logging) when no formula applies.
        """
        case = select_case(floor, ceiling, walls)
        if case is None:
            logger.warning(
                "Cannot calculate volume: floor=%.2f m², ceiling=%.2f m², %d wall(s)",
                floor.area, ceiling.area, len(walls),
            )
            return None

        widths = [0.0, 0.0, 0.0]
        lengths = [0.0, 0.0, 0.0]
        uses_floor = case in (VolumeCase.FLOOR_CEILING_WALLS, VolumeCase.FLOOR_CEILING, VolumeCase.FLOOR_WALLS)
        uses_ceiling = case in (VolumeCase.FLOOR_CEILING_WALLS, VolumeCase.FLOOR_CEILING, VolumeCase.CEILING_WALLS)
        uses_walls = case != VolumeCase.FLOOR_CEILING

        if case == VolumeCase.FLOOR_CEILING_WALLS:
            height = max(wall_height(walls), floor_ceiling_distance(floor, ceiling))
        elif case == VolumeCase.FLOOR_CEILING:
            height = floor_ceiling_distance(floor, ceiling)
        else:
            height = wall_height(walls)

        if uses_floor:
            widths[FLOOR], lengths[FLOOR] = plane_width_length(floor)
        if uses_ceiling:
            widths[CEILING], lengths[CEILING] = plane_width_length(ceiling)
        if uses_walls:
            widths[WALLS], lengths[WALLS] = wall_width_length(walls)

        # walls alone are a single source; nothing to compare against
        if case != VolumeCase.WALLS:
            widths = reject_outliers(widths)
            lengths = reject_outliers(lengths)

        width = _mean_of_present(widths)
        length = _mean_of_present(lengths)
        self.dimensions = RoomDimensions(
            height=height, width=width, length=length, volume=height * width * length,
        )
        self.case = case
        self.widths = widths
        self.lengths = lengths

        logger.info(
            "Room (%s): %.2f × %.2f × %.2f m → volume %.2f m³",
            case.value, width, length, height, self.dimensions.volume,
        )
        return self.dimensions
