"""Tests for the bounded binary CRF search."""

from collections import Counter

import pytest

from autoquality.config import SearchConfig
from autoquality.crf_search import (
    CandidateResult,
    SearchState,
    branch_on_recorded,
    narrow,
    next_level,
    run_search,
    select_winner,
)

SCORES = {18: 97.0, 19: 96.5, 20: 96.0, 21: 94.5, 22: 94.0, 23: 93.0, 24: 92.0}


class CountingEvaluator:
    """Scores levels from a table and counts how often each level is measured."""

    def __init__(self, scores: dict[int, float | None]):
        self.scores = scores
        self.calls: Counter[int] = Counter()
        self.order: list[int] = []

    def __call__(self, level: int) -> float | None:
        self.calls[level] += 1
        self.order.append(level)
        return self.scores.get(level)


class TestNextLevel:
    """Tests for midpoint selection."""

    def test_rounds_half_up(self):
        """Test that .5 midpoints round up like the host's Math.round."""
        assert next_level(SearchState(low=18, high=23)) == 21
        assert next_level(SearchState(low=18, high=28)) == 23
        assert next_level(SearchState(low=20, high=21)) == 21

    def test_single_level_bracket(self):
        """Test that a one-level bracket picks that level."""
        assert next_level(SearchState(low=20, high=20)) == 20


class TestNarrow:
    """Tests for bracket narrowing."""

    def test_feasible_moves_low_up(self):
        """Test that a level meeting the target moves low past it."""
        state = SearchState(low=18, high=28)
        assert narrow(state, 23, 96.0, 95.0)
        assert (state.low, state.high) == (24, 28)

    def test_infeasible_moves_high_down(self):
        """Test that a level missing the target moves high below it."""
        state = SearchState(low=18, high=28)
        assert not narrow(state, 23, 94.0, 95.0)
        assert (state.low, state.high) == (18, 22)

    def test_failed_measurement_moves_low_up(self):
        """Test that a failed measurement skips upward."""
        state = SearchState(low=18, high=28)
        assert not narrow(state, 23, None, 95.0)
        assert (state.low, state.high) == (24, 28)

    def test_score_equal_to_target_is_feasible(self):
        """Test that meeting the target exactly counts as feasible."""
        state = SearchState(low=18, high=28)
        assert narrow(state, 23, 95.0, 95.0)


class TestBranchOnRecorded:
    """Tests for narrowing from an already-measured level."""

    def test_met_target_moves_high_down(self):
        """Test that a recorded level meeting the target caps the bracket below it."""
        state = SearchState(low=18, high=24)
        branch_on_recorded(state, CandidateResult(21, 96.0), 95.0)
        assert (state.low, state.high) == (18, 20)

    def test_missed_target_moves_low_up(self):
        """Test that a recorded level below the target raises the bracket past it."""
        state = SearchState(low=18, high=24)
        branch_on_recorded(state, CandidateResult(21, 94.5), 95.0)
        assert (state.low, state.high) == (22, 24)


class TestSelectWinner:
    """Tests for winner selection."""

    def test_last_feasible_wins(self):
        """Test that the last feasible candidate is the winner."""
        results = [CandidateResult(21, 94.5), CandidateResult(19, 96.5), CandidateResult(20, 96.0)]
        winner, degraded = select_winner(results, 95.0)
        assert winner == CandidateResult(20, 96.0)
        assert not degraded

    def test_best_score_when_nothing_feasible(self):
        """Test the degraded path picks the highest score."""
        results = [CandidateResult(21, 94.5), CandidateResult(18, 97.0), CandidateResult(19, 96.5)]
        winner, degraded = select_winner(results, 99.0)
        assert winner == CandidateResult(18, 97.0)
        assert degraded

    def test_tie_prefers_later_result(self):
        """Test that equal best scores resolve to the later measurement."""
        results = [CandidateResult(22, 90.0), CandidateResult(20, 90.0)]
        winner, _ = select_winner(results, 95.0)
        assert winner is not None and winner.level == 20

    def test_no_results(self):
        """Test that no measurements means no winner."""
        assert select_winner([], 95.0) == (None, False)

    def test_record_rejects_duplicate_level(self):
        """Test that a level cannot be recorded twice."""
        state = SearchState(low=18, high=28)
        _ = state.record(20, 96.0)
        with pytest.raises(ValueError):
            _ = state.record(20, 95.0)


class TestRunSearch:
    """Tests for the full search loop."""

    def test_prefer_smaller_converges_to_highest_feasible(self):
        """Test that the search ends on the highest level meeting the target."""
        config = SearchConfig(min_level=18, max_level=24, target_score=95.0)
        evaluator = CountingEvaluator(SCORES)
        outcome = run_search(config, 95.0, evaluator)

        assert evaluator.order == [21, 19, 20]
        assert outcome.winner == CandidateResult(20, 96.0)
        assert not outcome.degraded
        assert outcome.iterations == 3

    def test_degraded_when_target_unreachable(self):
        """Test that the best measured level is returned when none meets the target."""
        config = SearchConfig(min_level=18, max_level=24, target_score=99.0)
        evaluator = CountingEvaluator(SCORES)
        outcome = run_search(config, 99.0, evaluator)

        assert evaluator.order == [21, 19, 18]
        assert outcome.winner == CandidateResult(18, 97.0)
        assert outcome.degraded

    def test_stops_at_first_feasible_without_prefer_smaller(self):
        """Test early exit when smaller files are not preferred."""
        config = SearchConfig(
            min_level=18, max_level=24, target_score=93.0, prefer_smaller_file=False
        )
        evaluator = CountingEvaluator(SCORES)
        outcome = run_search(config, 93.0, evaluator)

        assert evaluator.order == [21]
        assert outcome.winner == CandidateResult(21, 94.5)

    def test_each_level_measured_at_most_once(self):
        """Test memoization over a search that revisits no level."""
        config = SearchConfig(min_level=10, max_level=40, max_iterations=20)
        scores = {level: 100.0 - level for level in range(10, 41)}
        evaluator = CountingEvaluator(scores)
        _ = run_search(config, 75.5, evaluator)

        assert evaluator.calls
        assert max(evaluator.calls.values()) == 1

    def test_iteration_budget_caps_search(self):
        """Test that the loop never exceeds max_iterations."""
        config = SearchConfig(min_level=0, max_level=51, max_iterations=3)
        evaluator = CountingEvaluator({level: 99.0 for level in range(52)})
        outcome = run_search(config, 95.0, evaluator)

        assert outcome.iterations == 3
        assert len(evaluator.order) == 3

    def test_bracket_shrinks_every_iteration(self):
        """Test that low/high move strictly closer after each measurement."""
        config = SearchConfig(min_level=18, max_level=28, max_iterations=10)
        widths: list[int] = []
        state_levels: list[int] = []

        def on_iteration(iteration: int, max_iterations: int, level: int) -> None:
            state_levels.append(level)

        evaluator = CountingEvaluator({level: 120.0 - 5 * level for level in range(18, 29)})
        outcome = run_search(config, 10.0, evaluator, on_iteration=on_iteration)

        low, high = 18, 28
        for result in outcome.results:
            if result.meets(10.0):
                low = result.level + 1
            else:
                high = result.level - 1
            widths.append(high - low)
        assert all(b < a for a, b in zip(widths, widths[1:]))
        assert state_levels == [r.level for r in outcome.results]

    def test_all_measurements_fail(self):
        """Test that no successful measurement yields no winner."""
        config = SearchConfig(min_level=18, max_level=28)
        evaluator = CountingEvaluator({})
        outcome = run_search(config, 95.0, evaluator)

        assert not outcome.found
        assert outcome.results == ()
        # Each failure pushes low upward until the bracket is empty
        assert evaluator.order == [23, 26, 28]

    def test_progress_callback_receives_budget(self):
        """Test that the iteration hook sees the iteration number and budget."""
        config = SearchConfig(min_level=18, max_level=24, max_iterations=6)
        seen: list[tuple[int, int, int]] = []
        _ = run_search(
            config,
            95.0,
            CountingEvaluator(SCORES),
            on_iteration=lambda i, m, lvl: seen.append((i, m, lvl)),
        )
        assert seen == [(1, 6, 21), (2, 6, 19), (3, 6, 20)]

    def test_seeded_level_is_not_measured_again(self):
        """Test that a level recorded before the search is branched on, not re-measured."""
        config = SearchConfig(min_level=18, max_level=24, max_iterations=6)
        state = SearchState(low=18, high=24, results=[CandidateResult(21, 94.5)])
        evaluator = CountingEvaluator(SCORES)
        outcome = run_search(config, 95.0, evaluator, state=state)

        assert evaluator.order == [23, 22]
        assert outcome.iterations == 3
        assert outcome.winner == CandidateResult(21, 94.5)
        assert outcome.degraded

    def test_seeded_feasible_level_narrows_downward(self):
        """Test the memo branch when the recorded level meets the target."""
        config = SearchConfig(min_level=18, max_level=24, max_iterations=6)
        state = SearchState(low=18, high=24, results=[CandidateResult(21, 96.0)])
        evaluator = CountingEvaluator(SCORES)
        outcome = run_search(config, 95.0, evaluator, state=state)

        assert evaluator.order == [19, 20]
        assert outcome.iterations == 3
        assert outcome.winner == CandidateResult(20, 96.0)
        assert evaluator.calls[21] == 0
