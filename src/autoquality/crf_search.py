"""CRF search algorithm for quality targeting.

Bounded binary search over the quality-level range. Each measured level is
recorded once; a midpoint that was already measured is branched on from its
recorded score without a new measurement.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .config import SearchConfig
from .utils import round_half_up

logger = logging.getLogger(__name__)

# Returns the aggregate score of a level, or None when it could not be measured
LevelEvaluator = Callable[[int], float | None]
# Called before each measurement with (iteration, max_iterations, level)
IterationCallback = Callable[[int, int, int], None]


@dataclass(frozen=True)
class CandidateResult:
    """A measured level and its aggregate score."""

    level: int
    score: float

    def meets(self, target: float) -> bool:
        return self.score >= target

    def to_dict(self) -> dict[str, float | int]:
        return {"crf": self.level, "score": self.score}


@dataclass
class SearchState:
    """Current bracket, iteration count and measured candidates."""

    low: int
    high: int
    iterations: int = 0
    results: list[CandidateResult] = field(default_factory=list)

    @classmethod
    def initial(cls, config: SearchConfig) -> SearchState:
        return cls(low=config.min_level, high=config.max_level)

    @property
    def bracket_empty(self) -> bool:
        return self.low > self.high

    def lookup(self, level: int) -> CandidateResult | None:
        for result in self.results:
            if result.level == level:
                return result
        return None

    def record(self, level: int, score: float) -> CandidateResult:
        if self.lookup(level) is not None:
            raise ValueError(f"CRF {level} has already been measured")
        result = CandidateResult(level, score)
        self.results.append(result)
        return result


def next_level(state: SearchState) -> int:
    """Midpoint of the bracket, rounding .5 up."""
    return round_half_up((state.low + state.high) / 2)


def narrow(state: SearchState, level: int, score: float | None, target: float) -> bool:
    """Shrink the bracket around a measured level.

    A failed measurement (``score is None``) is treated like a level that is
    too aggressive to probe further and moves ``low`` past it.

    Returns:
        True if the level met the target
    """
    if score is None:
        state.low = level + 1
        return False
    if score >= target:
        state.low = level + 1
        return True
    state.high = level - 1
    return False


def branch_on_recorded(state: SearchState, result: CandidateResult, target: float) -> None:
    """Narrow from an already-measured level without measuring it again.

    A met target moves ``high`` below the level, a miss moves ``low`` past it.
    """
    if result.meets(target):
        state.high = result.level - 1
    else:
        state.low = result.level + 1


def select_winner(
    results: list[CandidateResult], target: float
) -> tuple[CandidateResult | None, bool]:
    """Pick the result to apply.

    Returns:
        (winner, degraded): the last candidate meeting the target, else the
        highest-scoring candidate flagged as degraded, else (None, False)
    """
    feasible = [r for r in results if r.meets(target)]
    if feasible:
        return feasible[-1], False
    if not results:
        return None, False

    best = results[0]
    for result in results[1:]:
        if result.score >= best.score:
            best = result
    return best, True


@dataclass(frozen=True)
class SearchOutcome:
    winner: CandidateResult | None
    degraded: bool
    iterations: int
    results: tuple[CandidateResult, ...]

    @property
    def found(self) -> bool:
        return self.winner is not None


def run_search(
    config: SearchConfig,
    target: float,
    evaluate: LevelEvaluator,
    on_iteration: IterationCallback | None = None,
    format_score: Callable[[float], str] = lambda s: f"{s:.2f}",
    state: SearchState | None = None,
) -> SearchOutcome:
    """Run the bounded binary search.

    Args:
        config: Level range, iteration budget and prefer-smaller policy
        target: Score a level must reach (in the active metric's scale)
        evaluate: Measures one level; None on failure
        on_iteration: Progress hook, called before each measurement
        format_score: Score formatter for log lines
        state: Starting state, e.g. one seeded with earlier measurements;
            a fresh bracket over the config range when None

    Returns:
        SearchOutcome with the winner (None when nothing could be measured)
    """
    if state is None:
        state = SearchState.initial(config)

    while not state.bracket_empty and state.iterations < config.max_iterations:
        state.iterations += 1
        level = next_level(state)

        existing = state.lookup(level)
        if existing is not None:
            # Measured levels always fall outside the bracket after narrow(),
            # so this only triggers for a state seeded with prior results
            branch_on_recorded(state, existing, target)
            logger.debug(
                "CRF %d already measured (%s), bracket now %d-%d",
                level,
                format_score(existing.score),
                state.low,
                state.high,
            )
            continue

        logger.info("[%d/%d] Testing CRF %d...", state.iterations, config.max_iterations, level)
        if on_iteration is not None:
            on_iteration(state.iterations, config.max_iterations, level)

        score = evaluate(level)
        if score is None:
            logger.warning("Measurement failed for CRF %d, skipping...", level)
            _ = narrow(state, level, None, target)
            continue

        _ = state.record(level, score)
        logger.info("CRF %d: %s", level, format_score(score))

        met = narrow(state, level, score, target)
        if met and not config.prefer_smaller_file:
            break

    winner, degraded = select_winner(state.results, target)
    if winner is not None and degraded:
        logger.warning(
            "No CRF met target %s. Using best found: CRF %d (%s)",
            format_score(target),
            winner.level,
            format_score(winner.score),
        )

    return SearchOutcome(
        winner=winner,
        degraded=degraded,
        iterations=state.iterations,
        results=tuple(state.results),
    )
