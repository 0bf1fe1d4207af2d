"""CLI entry-point for the lighting recommendation pipeline."""

from __future__ import annotations

import logging

import click

from packages.core.config import CoverageConfig, LightingConfig, PlaneFinderConfig, PlannerConfig
from packages.core.errors import LightingPipelineError
from packages.core.types import BrightnessPreference
from packages.pipeline.process import recommend_lighting_to_json


def _parse_outlet(ctx, param, values):
    points = []
    for value in values:
        parts = value.split(",")
        try:
            point = tuple(float(p) for p in parts)
        except ValueError:
            raise click.BadParameter(f"{value!r} is not X,Y,Z") from None
        if len(point) != 3:
            raise click.BadParameter(f"{value!r} is not X,Y,Z")
        points.append(point)
    return points


@click.group()
def main():
    """Lighting setup recommendation from a triangulated room scan."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s | %(name)s | %(message)s",
    )


@main.command()
@click.argument("mesh_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--outlet", "outlets", multiple=True, required=True, callback=_parse_outlet,
    help="Power outlet position X,Y,Z (metres, Y up). Repeatable.",
)
@click.option(
    "--preference", type=click.Choice(["low", "medium", "high"], case_sensitive=False),
    default="high", show_default=True, help="Brightness preference.",
)
@click.option("-o", "--output", "output_file", default=None, help="Output JSON path.")
@click.option("--min-area", default=0.025, show_default=True, help="Minimum plane area (m²).")
@click.option("--stride", default=1, show_default=True, help="Sample every Nth triangle while placing.")
@click.option("--candidates", "required_candidates", default=3, show_default=True, help="Outlets to collect.")
def recommend(
    mesh_file: str,
    outlets: list[tuple[float, float, float]],
    preference: str,
    output_file: str | None,
    min_area: float,
    stride: int,
    required_candidates: int,
):
    """Recommend lamp positions and fixture types for a scanned room."""
    config = LightingConfig(
        plane_finder=PlaneFinderConfig(min_area=min_area),
        coverage=CoverageConfig(stride=stride),
        planner=PlannerConfig(required_candidates=required_candidates),
    )
    try:
        json_str = recommend_lighting_to_json(
            mesh_file,
            outlets,
            output_path=output_file,
            preference=BrightnessPreference[preference.upper()],
            config=config,
        )
    except LightingPipelineError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json_str)


if __name__ == "__main__":
    main()
