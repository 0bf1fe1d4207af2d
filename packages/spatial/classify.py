"""Surface plane classification and typed plane queries."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, Sequence

from packages.core.budget import Steps, WorkBudget, run_to_completion
from packages.core.config import ClassifierConfig
from packages.core.types import BoundedPlane, PlaneType, SurfacePlane

logger = logging.getLogger(__name__)


def find_floor_and_ceiling(
    planes: Sequence[BoundedPlane],
    up_normal_threshold: float = 0.9,
) -> tuple[float, float]:
    """Return the ``(floor_y, ceiling_y)`` anchor heights.

    The floor is the largest upward-facing plane below the scan origin (the
    user's head), the ceiling the largest downward-facing plane above it.
    Largest area wins; on an exact tie the first one seen is kept.  Missing
    anchors default to 0.
    """
    floor_y = 0.0
    ceiling_y = 0.0
    max_floor_area = 0.0
    max_ceiling_area = 0.0

    for bp in planes:
        center_y = bp.bounds.center.y
        normal_y = bp.plane.normal.y
        if center_y < 0 and normal_y >= up_normal_threshold:
            if bp.area > max_floor_area:
                max_floor_area = bp.area
                floor_y = center_y
        elif center_y > 0 and normal_y <= -up_normal_threshold:
            if bp.area > max_ceiling_area:
                max_ceiling_area = bp.area
                ceiling_y = center_y

    return floor_y, ceiling_y


def classify_plane(
    bounded_plane: BoundedPlane,
    floor_y: float,
    ceiling_y: float,
    up_normal_threshold: float = 0.9,
    *,
    height_tolerance: float = 0.1,
    wall_normal_tolerance: float = 0.1,
) -> PlaneType:
    """Classify a bounded plane by normal direction and height.

    * Facing up: floor when level with the floor anchor, otherwise a table.
    * Facing down: ceiling when level with the ceiling anchor, otherwise a
      table (the underside of a shelf, say).
    * Plumb: wall.
    * Anything else: unknown.
    """
    normal_y = bounded_plane.plane.normal.y
    center_y = bounded_plane.bounds.center.y

    if normal_y >= up_normal_threshold:
        if center_y <= floor_y + height_tolerance:
            return PlaneType.FLOOR
        return PlaneType.TABLE
    if normal_y <= -up_normal_threshold:
        if center_y >= ceiling_y - height_tolerance:
            return PlaneType.CEILING
        return PlaneType.TABLE
    if abs(normal_y) <= wall_normal_tolerance:
        return PlaneType.WALL
    return PlaneType.UNKNOWN


class SurfacePlaneSet:
    """The classified planes of one scan, queryable by type.

    Built once per classification pass and read-only afterwards.
    """

    def __init__(self, planes: Iterable[SurfacePlane] = ()):
        self._planes: tuple[SurfacePlane, ...] = tuple(planes)

    def __iter__(self) -> Iterator[SurfacePlane]:
        return iter(self._planes)

    def __len__(self) -> int:
        return len(self._planes)

    def __getitem__(self, index: int) -> SurfacePlane:
        return self._planes[index]

    @property
    def planes(self) -> list[SurfacePlane]:
        return list(self._planes)

    def get_by_type(self, kind: PlaneType) -> list[SurfacePlane]:
        return [p for p in self._planes if p.type == kind]

    def get_floor_or_ceiling(self, kind: PlaneType) -> SurfacePlane:
        """Largest plane of *kind*, or the zero-area sentinel if there is none."""
        matches = self.get_by_type(kind)
        if not matches:
            return SurfacePlane.empty()
        if len(matches) == 1:
            return matches[0]
        # max() keeps the first of equal areas
        return max(matches, key=lambda p: p.area)

    @property
    def floor(self) -> SurfacePlane:
        return self.get_floor_or_ceiling(PlaneType.FLOOR)

    @property
    def ceiling(self) -> SurfacePlane:
        return self.get_floor_or_ceiling(PlaneType.CEILING)

    @property
    def walls(self) -> list[SurfacePlane]:
        return self.get_by_type(PlaneType.WALL)

    def anchor(self) -> SurfacePlane:
        """Ceiling if one was found, otherwise the floor (possibly the sentinel)."""
        ceiling = self.ceiling
        if ceiling.area > 0:
            return ceiling
        return self.floor

    def counts(self) -> dict[str, int]:
        return {kind.value: len(self.get_by_type(kind)) for kind in PlaneType}


def iter_classify_planes(
    bounded_planes: Sequence[BoundedPlane],
    config: Optional[ClassifierConfig] = None,
    *,
    budget: Optional[WorkBudget] = None,
) -> Steps[SurfacePlaneSet]:
    """Two passes: locate the floor / ceiling anchors, then label every plane."""
    config = config or ClassifierConfig()
    budget = budget or WorkBudget()
    budget.start()

    floor_y, ceiling_y = find_floor_and_ceiling(bounded_planes, config.up_normal_threshold)
    logger.debug("Anchors: floor_y=%.3f ceiling_y=%.3f", floor_y, ceiling_y)

    surface_planes: list[SurfacePlane] = []
    for bp in bounded_planes:
        kind = classify_plane(
            bp, floor_y, ceiling_y, config.up_normal_threshold,
            height_tolerance=config.height_tolerance,
            wall_normal_tolerance=config.wall_normal_tolerance,
        )
        surface_planes.append(SurfacePlane.from_bounded(bp, kind))
        if budget.pause():
            yield
            budget.start()

    result = SurfacePlaneSet(surface_planes)
    logger.info("Classified %d surface planes: %s", len(result), result.counts())
    return result


def classify_planes(
    bounded_planes: Sequence[BoundedPlane],
    config: Optional[ClassifierConfig] = None,
) -> SurfacePlaneSet:
    return run_to_completion(iter_classify_planes(bounded_planes, config))
