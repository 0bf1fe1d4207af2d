"""End-to-end pipeline: load a room scan mesh → produce a lighting recommendation JSON."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from packages.core.config import LightingConfig
from packages.core.errors import DataInsufficientError, NoCandidatesError
from packages.core.types import BrightnessPreference, LightingRecommendation, ScanStatus
from packages.lighting.coverage import VisibilityCoverageEngine
from packages.lighting.outlets import CandidateCollector
from packages.lighting.planner import LightingPlacementPlanner
from packages.spatial.mesh_source import StaticMeshSource, load_mesh
from packages.spatial.session import ScanSession

logger = logging.getLogger(__name__)


def recommend_lighting(
    mesh_path: str | Path,
    outlets: Iterable,
    preference: BrightnessPreference = BrightnessPreference.HIGH,
    config: Optional[LightingConfig] = None,
) -> LightingRecommendation:
    """Run the full recommendation pipeline on a single mesh file.

    1. Load the mesh chunks.
    2. Find and classify surface planes; estimate the room volume.
    3. Validate the outlet points and rank them by visibility range.
    4. Place lighting units until the preference's coverage is reached.

    Raises:
        DataInsufficientError: too few planes for any volume estimate.
        NoCandidatesError: no outlet lies on a detected surface.
    """
    config = config or LightingConfig()
    mesh_path = Path(mesh_path)
    logger.info("Loading %s …", mesh_path.name)
    chunks = load_mesh(mesh_path)

    session = ScanSession(StaticMeshSource(chunks), config)
    session.start()
    status = session.process(elapsed=0.0, manual=True)
    if status != ScanStatus.COMPLETED or session.mesh is None:
        session.stop()
        raise DataInsufficientError(
            f"Not enough surfaces in {mesh_path.name} to estimate the room: "
            f"{session.surface_planes.counts()}"
        )
    dimensions = session.dimensions

    engine = VisibilityCoverageEngine(session.mesh, config=config.coverage)
    collector = CandidateCollector(engine, session.surface_planes, config.planner)
    collector.add_all(outlets)
    if not collector.candidates:
        raise NoCandidatesError("None of the outlet points lies on a detected surface")

    planner = LightingPlacementPlanner(
        engine, collector.ranked(), dimensions.volume, preference, config.planner,
    )
    planner.start()
    result = planner.run()

    return LightingRecommendation(
        source_file=mesh_path.name,
        triangle_count=engine.total_triangles,
        preference=preference,
        planes=session.surface_planes.planes,
        dimensions=dimensions,
        candidates=collector.ranked(),
        units=result.units,
        coverage=result.coverage,
        exhausted=result.exhausted,
    )


def recommend_lighting_to_json(
    mesh_path: str | Path,
    outlets: Iterable,
    output_path: str | Path | None = None,
    **kwargs,
) -> str:
    """Run the pipeline and write the recommendation to a JSON file.

    Returns the JSON string.
    """
    recommendation = recommend_lighting(mesh_path, outlets, **kwargs)
    json_str = recommendation.model_dump_json(indent=2)

    if output_path is None:
        output_path = Path(mesh_path).with_suffix(".lighting.json")
    Path(output_path).write_text(json_str)
    logger.info("Wrote lighting recommendation → %s", output_path)
    return json_str
