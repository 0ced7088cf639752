"""Quality gate for the refinement loop, as an explicit finite-state machine.

    generated ──► evaluated ──► persisted
                     │  ▲  └──► persisted_with_errors
                     ▼  │
                   refining

The loop terminates because ``refining`` is only entered while the attempt
counter is below the ceiling, and every pass through it increments the
counter. At most ``ceiling + 1`` evaluations happen per run.
"""

from dataclasses import dataclass
from typing import Optional

from curriculum_engine.models.enums import GateState

QUALITY_THRESHOLD = 80
MAX_REFINEMENT_ATTEMPTS = 2

TRANSITIONS: dict[GateState, frozenset[GateState]] = {
    GateState.GENERATED: frozenset({GateState.EVALUATED}),
    GateState.EVALUATED: frozenset({GateState.PERSISTED, GateState.PERSISTED_WITH_ERRORS, GateState.REFINING}),
    GateState.REFINING: frozenset({GateState.EVALUATED}),
    GateState.PERSISTED: frozenset(),
    GateState.PERSISTED_WITH_ERRORS: frozenset(),
}


class InvalidGateTransition(Exception):
    def __init__(self, current: GateState, target: GateState):
        self.current = current
        self.target = target
        super().__init__(f"Illegal quality gate transition {current.value} -> {target.value}")


class RefinementCeilingReached(Exception):
    """Recorded as a warning when output is persisted below the threshold; never raised by the gate."""

    def __init__(self, score: int, attempts: int, threshold: int = QUALITY_THRESHOLD):
        self.score = score
        self.attempts = attempts
        super().__init__(
            f"Refinement ceiling reached after {attempts} attempt(s); "
            f"persisting best-effort curriculum with quality {score} (threshold {threshold})"
        )


@dataclass(frozen=True)
class GateDecision:
    target: GateState
    score: int
    attempts: int
    warning: Optional[RefinementCeilingReached] = None

    @property
    def persist(self) -> bool:
        return self.target in (GateState.PERSISTED, GateState.PERSISTED_WITH_ERRORS)


class QualityGate:
    def __init__(self, threshold: int = QUALITY_THRESHOLD, ceiling: int = MAX_REFINEMENT_ATTEMPTS):
        self.threshold = threshold
        self.ceiling = ceiling

    @staticmethod
    def advance(current: GateState, target: GateState) -> GateState:
        if target not in TRANSITIONS[current]:
            raise InvalidGateTransition(current, target)
        return target

    def decide(self, score: int, attempts: int) -> GateDecision:
        """Persist when ``score >= threshold`` or ``attempts >= ceiling``; refine otherwise."""
        if score >= self.threshold:
            return GateDecision(GateState.PERSISTED, score, attempts)
        if attempts >= self.ceiling:
            return GateDecision(
                GateState.PERSISTED_WITH_ERRORS,
                score,
                attempts,
                RefinementCeilingReached(score, attempts, self.threshold),
            )
        return GateDecision(GateState.REFINING, score, attempts)

    def next_attempt(self, attempts: int) -> int:
        """Counter value after one refinement pass."""
        if attempts >= self.ceiling:
            raise InvalidGateTransition(GateState.EVALUATED, GateState.REFINING)
        return attempts + 1
