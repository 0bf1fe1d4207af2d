"""Scan session: turns a live mesh source into classified planes and a room size.

The host calls :meth:`ScanSession.process` every ``rescan_interval`` seconds
(or when the user presses "done").  Each call finds planes on a worker
thread, classifies them and decides whether the scan has enough data.
Once it has, or once ``max_scanning_time`` has passed, the source is
stopped, the room volume is estimated and the combined mesh is frozen for
lamp planning.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from packages.core.config import LightingConfig
from packages.core.geometry import TriangleMesh
from packages.core.types import RoomDimensions, ScanStatus
from packages.spatial.classify import SurfacePlaneSet, classify_planes
from packages.spatial.mesh_source import MeshSource
from packages.spatial.plane_finder import find_bounded_planes
from packages.spatial.volume import RoomVolumeCalculator, select_case

logger = logging.getLogger(__name__)


class ScanSession:
    """Drives one scanning phase from mesh source to room dimensions."""

    def __init__(self, source: MeshSource, config: Optional[LightingConfig] = None):
        self.source = source
        self.config = config or LightingConfig()
        self.calculator = RoomVolumeCalculator()
        self.surface_planes = SurfacePlaneSet()
        self.mesh: Optional[TriangleMesh] = None
        self.status = ScanStatus.KEEP_SCANNING

    @property
    def dimensions(self) -> RoomDimensions:
        return self.calculator.dimensions

    @property
    def is_finished(self) -> bool:
        return self.status != ScanStatus.KEEP_SCANNING

    def start(self) -> None:
        self.status = ScanStatus.KEEP_SCANNING
        self.source.start()

    def stop(self) -> None:
        self.source.stop()

    def _enough_to_stop(self) -> bool:
        s = self.surface_planes
        min_area = self.config.scan.min_anchor_area
        return s.floor.area >= min_area and s.ceiling.area >= min_area and len(s.walls) > 1

    def process(self, elapsed: float, manual: bool = False) -> ScanStatus:
        """Find and classify planes in the current mesh, then decide.

        Args:
            elapsed: Seconds since scanning started.
            manual: True when the user ended the scan; completes whenever
                any volume formula has the planes it needs.
        """
        if self.is_finished:
            return self.status

        meshes = self.source.get_mesh_filters()
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="plane-finder") as pool:
            future = pool.submit(find_bounded_planes, meshes, config=self.config.plane_finder)
            bounded = future.result()
        self.surface_planes = classify_planes(bounded, self.config.classifier)

        floor = self.surface_planes.floor
        ceiling = self.surface_planes.ceiling
        walls = self.surface_planes.walls

        if manual:
            status = (
                ScanStatus.COMPLETED
                if select_case(floor, ceiling, walls) is not None
                else ScanStatus.KEEP_SCANNING
            )
        elif self._enough_to_stop():
            status = ScanStatus.COMPLETED
        elif elapsed >= self.config.scan.max_scanning_time:
            status = ScanStatus.TIMED_OUT
        else:
            status = ScanStatus.KEEP_SCANNING

        if status == ScanStatus.KEEP_SCANNING:
            logger.info("Not enough spatial data yet (%.0f s); keep scanning", elapsed)
            return status

        self.stop()
        self.status = status
        self.mesh = TriangleMesh.from_meshes(meshes)
        self.calculator.calculate(floor, ceiling, walls)
        logger.info("Scanning %s after %.0f s", status.value.lower().replace("_", " "), elapsed)
        return status
