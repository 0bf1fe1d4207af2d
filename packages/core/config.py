"""Tunable parameters for plane finding, classification, coverage and planning."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class PlaneFinderConfig(BaseModel):
    """Parameters for clustering scan triangles into bounded planes."""

    snap_to_gravity_threshold: float = Field(
        default=5.0, ge=0.0, lt=45.0,
        description="Degrees within which normals snap to level / plumb",
    )
    min_area: float = Field(default=0.025, ge=0.0, description="Minimum OBB area (m²)")
    normal_tolerance_deg: float = Field(default=10.0, gt=0.0, le=90.0)
    distance_tolerance: float = Field(default=0.05, gt=0.0, description="Max plane offset difference (m)")
    fuse_normal_threshold: float = Field(default=0.95, gt=0.0, le=1.0)
    fuse_spatial_gap: float = Field(default=0.1, ge=0.0)


class ClassifierConfig(BaseModel):
    """Thresholds used when labelling bounded planes."""

    up_normal_threshold: float = Field(default=0.9, gt=0.0, le=1.0)
    height_tolerance: float = Field(default=0.1, ge=0.0, description="Floor / ceiling height slack (m)")
    wall_normal_tolerance: float = Field(default=0.1, ge=0.0, lt=1.0)


class CoverageConfig(BaseModel):
    """Visibility sampling density and ray batching."""

    stride: int = Field(default=1, description="Sample every Nth triangle during planning")
    candidate_stride: int = Field(default=100, description="Sample every Nth triangle for candidates")
    batch_size: int = Field(default=10000, description="Rays per intersector call")
    require_unobstructed: bool = True
    hit_tolerance: float = Field(default=1e-3, ge=0.0, description="Slack when a ray reaches its vertex (m)")

    @field_validator("stride", "candidate_stride", "batch_size")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


class PlannerConfig(BaseModel):
    """Candidate collection and placement parameters."""

    required_candidates: int = Field(default=3, ge=1)
    containment_tolerance: float = Field(default=0.05, ge=0.0)
    frame_time: Optional[float] = Field(
        default=None, gt=0.0,
        description="Work budget in seconds before yielding (None = run to completion)",
    )


class ScanConfig(BaseModel):
    """Scan session stop criteria."""

    max_scanning_time: float = Field(default=120.0, gt=0.0)
    rescan_interval: float = Field(default=30.0, gt=0.0)
    min_anchor_area: float = Field(default=10.0, ge=0.0, description="Floor / ceiling area (m²) to stop early")


class LightingConfig(BaseModel):
    """All pipeline configuration in one place."""

    plane_finder: PlaneFinderConfig = Field(default_factory=PlaneFinderConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    coverage: CoverageConfig = Field(default_factory=CoverageConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)

    @model_validator(mode="after")
    def _consistent(self) -> LightingConfig:
        if self.scan.rescan_interval > self.scan.max_scanning_time:
            raise ValueError("rescan_interval must not exceed max_scanning_time")
        return self
