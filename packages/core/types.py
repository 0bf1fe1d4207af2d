"""Pydantic models for surface planes, lighting units and the recommendation.

The recommendation is the structured JSON output of the lighting pipeline.
It describes the classified surface planes (walls, floor, ceiling, tables),
the estimated room dimensions, the accepted candidate positions and the
lighting units the planner placed on them.

Coordinates are in metres with **Y up**; the scan origin is the user's head.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from scipy.spatial.transform import Rotation


# ── tiny helpers ──────────────────────────────────────────────────────
class Vec3(BaseModel):
    """A 3-component vector (x, y, z) in metres."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float

    @classmethod
    def from_array(cls, v) -> Vec3:
        return cls(x=float(v[0]), y=float(v[1]), z=float(v[2]))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


class Quat(BaseModel):
    """Rotation quaternion in scalar-last ``(x, y, z, w)`` order."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> Quat:
        q = Rotation.from_matrix(matrix).as_quat()
        return cls(x=float(q[0]), y=float(q[1]), z=float(q[2]), w=float(q[3]))

    def to_matrix(self) -> np.ndarray:
        return Rotation.from_quat([self.x, self.y, self.z, self.w]).as_matrix()


# ── plane / bounds ───────────────────────────────────────────────────
class Plane(BaseModel):
    """An infinite plane in Hesse normal form ``n · x = d``."""

    model_config = ConfigDict(frozen=True)

    normal: Vec3
    offset: float = Field(description="Signed distance from origin (Hesse normal form: n·x = d)")

    @field_validator("normal")
    @classmethod
    def _unit_normal(cls, v: Vec3) -> Vec3:
        arr = v.to_array()
        norm = np.linalg.norm(arr)
        if norm < 1e-12:
            raise ValueError("plane normal must be non-zero")
        return Vec3.from_array(arr / norm)

    @classmethod
    def from_point_normal(cls, point, normal) -> Plane:
        n = np.asarray(normal, dtype=np.float64)
        n = n / np.linalg.norm(n)
        return cls(normal=Vec3.from_array(n), offset=float(np.dot(n, point)))

    def distance_to_point(self, point) -> float:
        """Signed distance; positive on the side the normal points to."""
        p = point.to_array() if isinstance(point, Vec3) else np.asarray(point, dtype=np.float64)
        return float(np.dot(self.normal.to_array(), p) - self.offset)


class OrientedBoundingBox(BaseModel):
    """Center, rotation and half-extents of a box.

    Local x and y lie in the surface, local z is the surface normal.  For
    walls local x is the in-plane vertical direction.
    """

    model_config = ConfigDict(frozen=True)

    center: Vec3 = Field(default_factory=lambda: Vec3(x=0.0, y=0.0, z=0.0))
    rotation: Quat = Field(default_factory=Quat)
    extents: Vec3 = Field(default_factory=lambda: Vec3(x=0.0, y=0.0, z=0.0))

    @field_validator("extents")
    @classmethod
    def _non_negative(cls, v: Vec3) -> Vec3:
        if min(v.x, v.y, v.z) < 0:
            raise ValueError("extents must be non-negative")
        return v

    def axes(self) -> np.ndarray:
        """Return the (3, 3) matrix whose columns are the local x, y, z axes."""
        return self.rotation.to_matrix()

    def corners(self) -> np.ndarray:
        """Return the eight (8, 3) world-space corners."""
        axes = self.axes()
        ext = self.extents.to_array()
        signs = np.array(
            [[sx, sy, sz] for sx in (-1, 1) for sy in (-1, 1) for sz in (-1, 1)],
            dtype=np.float64,
        )
        return self.center.to_array() + (signs * ext) @ axes.T

    def contains(self, point, tolerance: float = 0.0) -> bool:
        p = point.to_array() if isinstance(point, Vec3) else np.asarray(point, dtype=np.float64)
        local = (p - self.center.to_array()) @ self.axes()
        return bool(np.all(np.abs(local) <= self.extents.to_array() + tolerance))


# ── plane / surface types ────────────────────────────────────────────
class PlaneType(str, Enum):
    WALL = "wall"
    FLOOR = "floor"
    CEILING = "ceiling"
    TABLE = "table"
    UNKNOWN = "unknown"


def obb_area(bounds: OrientedBoundingBox) -> float:
    return (bounds.extents.x * 2) * (bounds.extents.y * 2)


class BoundedPlane(BaseModel):
    """A planar triangle cluster with a fitted oriented bounding box."""

    model_config = ConfigDict(frozen=True)

    plane: Plane
    bounds: OrientedBoundingBox
    triangle_count: int = 0

    @property
    def area(self) -> float:
        return obb_area(self.bounds)


class SurfacePlane(BaseModel):
    """A bounded plane classified as wall, floor, ceiling or table.

    A zero-area instance is the "not found" sentinel returned by typed
    queries; check ``area == 0`` before using ``plane`` or ``bounds``.
    """

    model_config = ConfigDict(frozen=True)

    type: PlaneType = PlaneType.UNKNOWN
    plane: Plane = Field(
        default_factory=lambda: Plane(normal=Vec3(x=0.0, y=1.0, z=0.0), offset=0.0)
    )
    bounds: OrientedBoundingBox = Field(default_factory=OrientedBoundingBox)
    tag: Optional[str] = None

    @computed_field
    @property
    def area(self) -> float:
        return obb_area(self.bounds)

    @property
    def label(self) -> str:
        return self.tag or self.type.value.capitalize()

    @classmethod
    def empty(cls) -> SurfacePlane:
        return cls()

    @classmethod
    def from_bounded(cls, bounded: BoundedPlane, kind: PlaneType) -> SurfacePlane:
        return cls(
            type=kind, plane=bounded.plane, bounds=bounded.bounds,
            tag=kind.value.capitalize(),
        )


# ── room dimensions ──────────────────────────────────────────────────
class RoomDimensions(BaseModel):
    """Estimated room size in metres / cubic metres."""

    model_config = ConfigDict(frozen=True)

    height: float = 0.0
    width: float = 0.0
    length: float = 0.0
    volume: float = 0.0


# ── lighting ─────────────────────────────────────────────────────────
class BrightnessPreference(int, Enum):
    """User preference; the value is the target coverage in percent."""

    LOW = 30
    MEDIUM = 50
    HIGH = 80


class FixtureType(str, Enum):
    A = "Type A"
    B = "Type B"
    C = "Type C"

    @property
    def lux(self) -> int:
        return _FIXTURE_VALUES[self][0]

    @property
    def durability(self) -> int:
        return _FIXTURE_VALUES[self][1]

    @property
    def watt(self) -> int:
        return _FIXTURE_VALUES[self][2]


# (lux, durability in years, watt)
_FIXTURE_VALUES: dict[FixtureType, tuple[int, int, int]] = {
    FixtureType.A: (4, 3, 100),
    FixtureType.B: (3, 4, 70),
    FixtureType.C: (1, 6, 10),
}


class LightingUnit(BaseModel):
    """A lamp the planner placed at a candidate position."""

    model_config = ConfigDict(frozen=True)

    position: Vec3
    plane_type: PlaneType
    fixture_type: FixtureType
    hits: int = Field(default=0, description="Number of triangle vertices this unit illuminates")
    max_range: float = 0.0

    @computed_field
    @property
    def lux(self) -> int:
        return self.fixture_type.lux

    @computed_field
    @property
    def durability(self) -> int:
        return self.fixture_type.durability

    @computed_field
    @property
    def watt(self) -> int:
        return self.fixture_type.watt

    @computed_field
    @property
    def energy_per_area(self) -> float:
        """Watt per illuminated surface unit (the lit disc of radius ``lux``)."""
        return self.watt / (math.pi * self.lux * self.lux)


class CandidatePosition(BaseModel):
    """A validated, plane-anchored point eligible for a lamp ("power outlet")."""

    model_config = ConfigDict(frozen=True)

    surface_plane: SurfacePlane
    anchor: Vec3
    lamp_position: Vec3
    range: float = Field(description="Sum of the initial visibility sample hit distances")
    max_hit_distance: float = 0.0
    sample_hits: int = 0


class PlannerState(str, Enum):
    IDLE = "idle"
    PLACING_FIRST = "placing_first"
    PLACING_FOLLOWING = "placing_following"
    DONE = "done"


class PlacementResult(BaseModel):
    """Completion result of one planning run."""

    model_config = ConfigDict(frozen=True)

    units: list[LightingUnit] = Field(default_factory=list)
    coverage: float = 0.0
    state: PlannerState = PlannerState.DONE
    exhausted: bool = False


# ── scan session status ──────────────────────────────────────────────
class ScanStatus(str, Enum):
    COMPLETED = "COMPLETED"
    KEEP_SCANNING = "KEEP_SCANNING"
    TIMED_OUT = "TIMED_OUT"


# ── recommendation ───────────────────────────────────────────────────
class LightingRecommendation(BaseModel):
    """Top-level result produced by the recommendation pipeline."""

    version: str = "0.1.0"
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    units_of_length: str = "metres"
    source_file: str = ""
    triangle_count: int = 0
    preference: BrightnessPreference = BrightnessPreference.HIGH
    planes: list[SurfacePlane] = Field(default_factory=list)
    dimensions: Optional[RoomDimensions] = None
    candidates: list[CandidatePosition] = Field(default_factory=list)
    units: list[LightingUnit] = Field(default_factory=list)
    coverage: float = 0.0
    exhausted: bool = False
