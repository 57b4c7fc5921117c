"""Tests for the disruption-driven rebalancer.

Tests that the rebalancer:
- Always honors disruptions (forced flips)
- Repairs islands and over-length runs with minimal local flips
- Moves full 14-day windows back into the 6-8 band
- Records provenance and is idempotent on its own output
- Settles clustered and seeded random multi-day batches
- Validates inputs at the boundary and ignores dates outside the calendar
"""

import random

import pytest

from custody.schedule.calendar import changed_dates, count_transitions, guardian_day_counts, with_change
from custody.schedule.errors import MalformedDateError, UnknownGuardianError
from custody.schedule.pattern import generate
from custody.schedule.rebalancer import rebalance
from custody.schedule.service import rebalance_with_summary
from custody.schedule.validators import find_islands, find_long_runs


def _pattern(calendar) -> str:
    return "".join(calendar.assignments())


class TestScenarios:
    """Worked examples over the 9-day and 14-day baselines."""

    def test_single_day_flip_at_block_edge(self, nine_day_base, rules):
        """Test that disrupting a block edge only flips that day."""
        result = rebalance(nine_day_base, {"2024-06-04": "B"}, rules)

        assert _pattern(result) == "AAAABBAAA"
        assert changed_dates(nine_day_base, result) == ["2024-06-04"]
        day = result["2024-06-04"]
        assert day.is_disrupted
        assert day.disrupted_by == "B"
        assert day.original_assigned_to == "B"

    def test_mid_block_flip_is_consolidated(self, nine_day_base, rules):
        """Test that a mid-block disruption leaves no single-night runs."""
        result = rebalance(nine_day_base, {"2024-06-05": "B"}, rules)

        assert result["2024-06-05"].assigned_to == "A"
        assert find_islands(result) == []
        assert find_long_runs(result, rules.forbidden_run_length) == []
        assert _pattern(result) == "BAAAABBAA"
        assert changed_dates(nine_day_base, result) == [
            "2024-06-01",
            "2024-06-04",
            "2024-06-05",
            "2024-06-07",
        ]

    def test_fortnight_moves_back_into_band(self, fortnight_base, rules):
        """Test that an out-of-band window gets the best-scoring swap."""
        result = rebalance(fortnight_base, {"2024-06-04": "B"}, rules)

        assert _pattern(result) == "AAAABBAABBBBAA"
        assert guardian_day_counts(result, rules) == {"A": 8, "B": 6}
        assert count_transitions(result) == 4
        assert result["2024-06-09"].original_assigned_to == "A"
        assert not result["2024-06-09"].is_disrupted

    def test_advisory_block_is_respected(self, fortnight_base, rules):
        """Test that a day the target guardian soft-blocked is not swapped to them."""
        base = with_change(fortnight_base, "2024-06-09", {"advisory_blocks": ["B"]})

        result = rebalance(base, {"2024-06-04": "B"}, rules)

        assert result["2024-06-09"].assigned_to == "A"
        assert _pattern(result) == "AAAABBAAABBBBA"
        assert result["2024-06-09"].advisory_blocks == ("B",)

    def test_partial_trailing_window_not_corrected(self, nine_day_base, rules):
        """Test that a window shorter than 14 days gets no fairness swaps."""
        result = rebalance(nine_day_base, {}, rules)

        assert result == nine_day_base


class TestProperties:
    """Invariants over every single-day disruption of a 4-week rotation."""

    @pytest.fixture
    def four_weeks(self, rules):
        return generate("2024-06-01", "A", 28, rules)

    def test_every_single_disruption(self, four_weeks, rules):
        """Test disruption-wins, no islands and the run bound for each day."""
        for key in four_weeks.keys():
            guardian = four_weeks[key].assigned_to
            result = rebalance(four_weeks, {key: guardian}, rules)

            assert result[key].assigned_to != guardian, key
            assert result.keys() == four_weeks.keys()
            assert find_islands(result) == [], key
            assert find_long_runs(result, rules.forbidden_run_length) == [], key

    def test_idempotent_re_rebalance(self, four_weeks, rules):
        """Test that rebalancing a rebalanced calendar with no disruptions is a no-op."""
        for key in four_weeks.keys()[::3]:
            once = rebalance(four_weeks, {key: four_weeks[key].assigned_to}, rules)

            assert rebalance(once, {}, rules) == once, key

    def test_batch_is_order_independent(self, four_weeks, rules):
        """Test that declaration order of a batch does not matter."""
        forward = {"2024-06-05": "B", "2024-06-12": "A", "2024-06-20": "B"}
        backward = dict(reversed(list(forward.items())))

        assert rebalance(four_weeks, forward, rules) == rebalance(four_weeks, backward, rules)

    def test_provenance_on_every_changed_day(self, four_weeks, rules):
        """Test that each changed day records its original guardian."""
        result = rebalance(four_weeks, {"2024-06-05": "B", "2024-06-17": "A"}, rules)

        for key in changed_dates(four_weeks, result):
            assert result[key].original_assigned_to == four_weeks[key].assigned_to

    def test_previous_disruption_stays_locked(self, nine_day_base, rules):
        """Test that a day disrupted in an earlier pass keeps its assignment."""
        first = rebalance(nine_day_base, {"2024-06-05": "B"}, rules)
        second = rebalance(first, {"2024-06-02": "A"}, rules)

        assert second["2024-06-05"].assigned_to == "A"
        assert second["2024-06-05"].is_disrupted
        assert second["2024-06-02"].assigned_to == "B"


def _assert_settled(base, disruptions, result, rules) -> None:
    for key, guardian in disruptions.items():
        assert result[key].assigned_to != guardian, key
        assert result[key].is_disrupted, key
    assert result.keys() == base.keys()
    assert find_islands(result) == []
    assert find_long_runs(result, rules.forbidden_run_length) == []
    assert rebalance(result, {}, rules) == result


class TestMultiDayDisruptions:
    """Several disruptions at once, including clusters that need wide repairs."""

    @pytest.mark.parametrize(
        ("pattern", "disruptions"),
        [
            ("AAABBBAAABBBAA", {"2024-06-02": "A", "2024-06-04": "A", "2024-06-10": "B"}),
            ("BBBAAABBBAAABB", {"2024-06-05": "A", "2024-06-07": "B", "2024-06-10": "B", "2024-06-11": "A"}),
        ],
    )
    def test_clustered_disruptions_leave_valid_structure(self, calendar_from, rules, pattern, disruptions):
        """Test that close disruptions are repaired without islands and re-rebalance is a no-op."""
        base = calendar_from(pattern)

        result = rebalance(base, disruptions, rules)

        _assert_settled(base, disruptions, result, rules)

    def test_nights_between_disruptions_are_forced(self, calendar_from, rules):
        """Test that the only valid fill between close disruptions is the one chosen."""
        base = calendar_from("BBBAAABBBAAABB")

        result = rebalance(base, {"2024-06-05": "A", "2024-06-07": "B", "2024-06-10": "B", "2024-06-11": "A"}, rules)

        assert _pattern(result)[5:11] == "BAAAAB"


class TestRandomizedDisruptions:
    """Seeded random batches of non-adjacent disruptions over 2-6 week rotations."""

    @staticmethod
    def _case(seed: int, rules):
        rng = random.Random(seed)
        base = generate("2024-06-01", rng.choice("AB"), rng.randint(14, 42), rules)
        keys = base.keys()
        wanted = rng.randint(2, 5)
        indices: list[int] = []
        for i in rng.sample(range(len(keys)), len(keys)):
            if all(abs(i - j) > 1 for j in indices):
                indices.append(i)
            if len(indices) == wanted:
                break
        disruptions = {keys[i]: rng.choice("AB") for i in sorted(indices)}
        return base, disruptions

    @pytest.mark.parametrize("seed", range(40))
    def test_random_batch_settles(self, seed, rules):
        """Test disruption-wins, structure and idempotence for a random batch."""
        base, disruptions = self._case(seed, rules)

        result = rebalance(base, disruptions, rules)

        _assert_settled(base, disruptions, result, rules)

    @pytest.mark.parametrize("seed", range(40, 50))
    def test_random_batch_then_follow_up(self, seed, rules):
        """Test that a second batch on a rebalanced calendar keeps the first batch honored."""
        base, first = self._case(seed, rules)
        once = rebalance(base, first, rules)
        keys = base.keys()
        follow_up = {
            key: guardian
            for key, guardian in self._case(seed + 1000, rules)[1].items()
            if key in keys and all(abs(keys.index(key) - keys.index(k)) > 1 for k in first)
        }

        twice = rebalance(once, follow_up, rules)

        for key, guardian in first.items():
            assert twice[key].assigned_to != guardian, key
        _assert_settled(once, follow_up, twice, rules)


class TestInputs:
    """Boundary validation and degenerate inputs."""

    def test_missing_date_is_ignored(self, nine_day_base, rules):
        """Test that a disruption outside the calendar is a no-op."""
        result = rebalance(nine_day_base, {"2024-07-15": "A"}, rules)

        assert result == nine_day_base

    def test_unknown_guardian_raises(self, nine_day_base, rules):
        """Test that a disruption naming an unknown guardian is rejected."""
        with pytest.raises(UnknownGuardianError):
            rebalance(nine_day_base, {"2024-06-04": "C"}, rules)

    def test_malformed_date_raises(self, nine_day_base, rules):
        """Test that a malformed disruption key is rejected."""
        with pytest.raises(MalformedDateError):
            rebalance(nine_day_base, {"June 4th": "B"}, rules)

    def test_empty_calendar(self, rules):
        """Test that an empty calendar rebalances to itself."""
        empty = generate("2024-06-01", "A", 0, rules)

        assert len(rebalance(empty, {"2024-06-01": "A"}, rules)) == 0

    def test_disrupting_the_non_assigned_guardian(self, nine_day_base, rules):
        """Test that disrupting the guardian who does not have the day only flags it."""
        result = rebalance(nine_day_base, {"2024-06-02": "B"}, rules)

        assert result["2024-06-02"].assigned_to == "A"
        assert result["2024-06-02"].is_disrupted
        assert result["2024-06-02"].original_assigned_to is None


def test_rebalance_with_summary(fortnight_base, rules):
    """Test that the service wraps the result with a summary."""
    result = rebalance_with_summary(fortnight_base, {"2024-06-04": "B"}, rules)

    assert result.summary.changed_count == 2
    assert result.summary.guardian_a_days == 8
    assert result.summary.guardian_b_days == 6
    assert result.summary.transition_count == 4
    assert _pattern(result.calendar) == "AAAABBAABBBBAA"
