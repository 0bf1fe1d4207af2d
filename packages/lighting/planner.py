"""Greedy lamp placement.

The planner walks the ranked candidates (highest range first) and puts a
lamp on each until the scan coverage reaches the brightness preference:

    Idle → PlacingFirst → PlacingFollowing … → Done

The first fixture type is chosen from the room volume, every following one
from the coverage reached so far.  Each placement samples only the
triangles still unlit, so coverage never goes down and no triangle is
counted twice.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from packages.core.budget import Steps, WorkBudget, run_to_completion
from packages.core.config import PlannerConfig
from packages.core.types import (
    BrightnessPreference,
    CandidatePosition,
    FixtureType,
    LightingUnit,
    PlacementResult,
    PlannerState,
    Vec3,
)
from packages.lighting.coverage import VisibilityCoverageEngine

logger = logging.getLogger(__name__)


# ── fixture selection ────────────────────────────────────────────────

def select_first_fixture(preference: BrightnessPreference, volume: float) -> FixtureType:
    """Fixture for the first lamp, from the room volume (m³)."""
    if preference == BrightnessPreference.HIGH:
        return FixtureType.A if volume > 60 else FixtureType.B
    if preference == BrightnessPreference.MEDIUM:
        if volume > 70:
            return FixtureType.A
        if volume > 35:
            return FixtureType.B
        return FixtureType.C
    if volume > 120:
        return FixtureType.A
    if volume > 65:
        return FixtureType.B
    return FixtureType.C


def select_following_fixture(preference: BrightnessPreference, coverage: float) -> FixtureType:
    """Fixture for a following lamp, from the coverage (%) reached so far."""
    if preference == BrightnessPreference.HIGH:
        return FixtureType.A if coverage < 50 else FixtureType.B
    if preference == BrightnessPreference.MEDIUM:
        return FixtureType.A if coverage < 40 else FixtureType.B
    if coverage < 5:
        return FixtureType.A
    if coverage < 15:
        return FixtureType.B
    return FixtureType.C


def rank_candidates(candidates: Sequence[CandidatePosition]) -> list[CandidatePosition]:
    return sorted(candidates, key=lambda c: c.range, reverse=True)


# ── planner ──────────────────────────────────────────────────────────

class LightingPlacementPlanner:
    """Places lighting units on candidates until the preference is met.

    The planner owns the remaining-triangle set and the unit list for the
    session; units are replaced at their index, never mutated.
    ``preference`` may be changed between steps and is read at every step.
    """

    def __init__(
        self,
        engine: VisibilityCoverageEngine,
        candidates: Sequence[CandidatePosition],
        volume: float,
        preference: BrightnessPreference = BrightnessPreference.HIGH,
        config: Optional[PlannerConfig] = None,
    ):
        self.engine = engine
        self.candidates = rank_candidates(candidates)
        self.volume = volume
        self.preference = preference
        self.config = config or PlannerConfig()

        self.state = PlannerState.IDLE
        self.units: list[LightingUnit] = []
        self.remaining: np.ndarray = engine.all_triangles()
        self.result: Optional[PlacementResult] = None
        self._next_candidate = 0
        # triangles each unit could still light when it was placed
        self._unit_triangles: list[np.ndarray] = []
        # set while a placement sample is suspended mid-way
        self._placing = False

    @property
    def coverage(self) -> float:
        return self.engine.coverage(len(self.remaining))

    @property
    def candidates_left(self) -> int:
        return len(self.candidates) - self._next_candidate

    @property
    def is_placing(self) -> bool:
        return self._placing

    def _check_not_placing(self) -> None:
        if self._placing:
            raise RuntimeError("a placement is already in progress")

    def start(self) -> PlannerState:
        """Reset to a fresh run over all triangles."""
        self._check_not_placing()
        self.units = []
        self._unit_triangles = []
        self.remaining = self.engine.all_triangles()
        self.result = None
        self._next_candidate = 0
        if not self.candidates:
            logger.warning("No candidate positions; nothing to place")
            self._finish(exhausted=True)
        else:
            self.state = PlannerState.PLACING_FIRST
        return self.state

    # ── transitions ─────────────────────────────────────────────────
    def _finish(self, exhausted: bool) -> None:
        self.state = PlannerState.DONE
        self.result = PlacementResult(
            units=list(self.units),
            coverage=self.coverage,
            state=self.state,
            exhausted=exhausted,
        )
        if exhausted and self.candidates:
            logger.info(
                "Candidates exhausted at %.1f%% coverage (target %d%%)",
                self.result.coverage, self.preference.value,
            )
        else:
            logger.info(
                "✅ Placement done: %d unit(s), %.1f%% coverage",
                len(self.units), self.result.coverage,
            )

    def _iter_place(self, fixture: FixtureType, budget: Optional[WorkBudget]) -> Steps[None]:
        candidate = self.candidates[self._next_candidate]
        self._next_candidate += 1

        index = len(self.units)
        unit = LightingUnit(
            position=candidate.lamp_position,
            plane_type=candidate.surface_plane.type,
            fixture_type=fixture,
            max_range=candidate.max_hit_distance,
        )
        self.units.append(unit)
        available = self.remaining
        self._unit_triangles.append(available)

        self._placing = True
        try:
            sample = yield from self.engine.iter_sample(
                candidate.lamp_position.to_array(), available, float(fixture.lux), budget=budget,
            )
        finally:
            self._placing = False
        self.remaining = sample.remaining
        self.units[index] = unit.model_copy(update={"hits": sample.hit_count})
        logger.info(
            "Placed %s on %s at (%.2f, %.2f, %.2f): %d hits, coverage %.1f%%",
            fixture.value, candidate.surface_plane.label,
            unit.position.x, unit.position.y, unit.position.z,
            sample.hit_count, self.coverage,
        )

    def _iter_step(self, budget: Optional[WorkBudget] = None) -> Steps[PlannerState]:
        self._check_not_placing()
        if self.state == PlannerState.IDLE:
            self.start()
            if self.state == PlannerState.DONE:
                return self.state

        if self.state == PlannerState.PLACING_FIRST:
            fixture = select_first_fixture(self.preference, self.volume)
            yield from self._iter_place(fixture, budget)
            self.state = PlannerState.PLACING_FOLLOWING

        elif self.state == PlannerState.PLACING_FOLLOWING:
            coverage = self.coverage
            if coverage >= self.preference.value:
                self._finish(exhausted=False)
            elif self.candidates_left == 0:
                self._finish(exhausted=True)
            else:
                fixture = select_following_fixture(self.preference, coverage)
                yield from self._iter_place(fixture, budget)

        return self.state

    def step(self) -> PlannerState:
        """Perform one transition, including its coverage sample.

        Raises RuntimeError while a budgeted :meth:`iter_run` is suspended
        inside a placement; only one placement may touch the remaining set.
        """
        return run_to_completion(self._iter_step())

    def iter_run(self, budget: Optional[WorkBudget] = None) -> Steps[PlacementResult]:
        """Resumable form of :meth:`run`; yields whenever *budget* runs out."""
        budget = budget or WorkBudget(self.config.frame_time)
        budget.start()
        while self.state != PlannerState.DONE:
            yield from self._iter_step(budget)
            if budget.pause():
                yield
                budget.start()
        return self.result

    def run(self) -> PlacementResult:
        """Step until done and return the (single) placement result."""
        return run_to_completion(self.iter_run())

    # ── after planning ──────────────────────────────────────────────
    def reconfigure(
        self,
        index: int,
        fixture_type: Optional[FixtureType] = None,
        position=None,
    ) -> LightingUnit:
        """Change a placed unit's fixture or position and recount its hits.

        The unit is re-sampled against the triangles that were unlit when it
        was placed.  The remaining set and coverage are left as they are.
        """
        self._check_not_placing()
        if not 0 <= index < len(self.units):
            raise IndexError(f"no lighting unit at index {index}")

        unit = self.units[index]
        fixture = fixture_type or unit.fixture_type
        new_position = unit.position if position is None else (
            position if isinstance(position, Vec3) else Vec3.from_array(position)
        )
        sample = self.engine.sample(
            new_position.to_array(), self._unit_triangles[index], float(fixture.lux),
        )
        updated = unit.model_copy(
            update={"fixture_type": fixture, "position": new_position, "hits": sample.hit_count}
        )
        self.units[index] = updated
        logger.info("Reconfigured unit %d: %s, %d hits", index, fixture.value, updated.hits)
        return updated
