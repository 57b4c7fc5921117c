"""Tests for the validated optimizer pass.

Tests that optimizer output:
- Is applied only when it passes the shared validator and adds no handoffs
- Falls back to the rebalancer result on rejection, error, timeout or absence
- Surfaces the reason in the explanation
"""

import asyncio

import pytest

from custody.optimizer.refine import build_request, describe_run_structure, refine_with_optimizer
from custody.optimizer.types import OptimizerChange, OptimizerError, OptimizerRequest, OptimizerResponse
from custody.preview import stage
from custody.schedule.rebalancer import rebalance


class FakeOptimizer:
    """Optimizer returning a canned response and recording requests."""

    def __init__(self, response: OptimizerResponse | None = None, error: Exception | None = None, delay: float = 0.0):
        self.response = response or OptimizerResponse()
        self.error = error
        self.delay = delay
        self.requests: list[OptimizerRequest] = []

    async def propose(self, request: OptimizerRequest) -> OptimizerResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


def _change(date: str, from_guardian: str, to_guardian: str) -> OptimizerChange:
    return OptimizerChange(date=date, from_guardian=from_guardian, to_guardian=to_guardian, reason="fewer handoffs")


@pytest.mark.asyncio
async def test_five_night_run_is_rejected(nine_day_base, rules):
    """Test that an optimizer change creating a 5-night run falls back with a reason."""
    optimizer = FakeOptimizer(OptimizerResponse(changes=[_change("2024-06-05", "B", "A")], explanation="merge"))
    overlay = stage.mark_disrupted(stage.init(nine_day_base), "2024-06-04", "B", rules)

    overlay = await stage.run_rebalance(overlay, rules, optimizer, timeout=1.0)

    expected = rebalance(nine_day_base, {"2024-06-04": "B"}, rules)
    assert stage.effective(overlay) == expected
    assert "rejected" in overlay.explanation
    assert "longer than 4 nights" in overlay.explanation
    assert len(optimizer.requests) == 1


@pytest.mark.asyncio
async def test_valid_improvement_is_applied(calendar_from, rules):
    """Test that a valid change set with fewer handoffs is kept."""
    calendar = calendar_from("AABBAABB")
    changes = [
        _change("2024-06-05", "A", "B"),
        _change("2024-06-06", "A", "B"),
        _change("2024-06-07", "B", "A"),
        _change("2024-06-08", "B", "A"),
    ]
    optimizer = FakeOptimizer(OptimizerResponse(changes=changes, explanation="Merged two blocks"))

    outcome = await refine_with_optimizer(calendar, {"2024-06-03": "A"}, rules, optimizer)

    assert outcome.used_optimizer
    assert "".join(outcome.calendar.assignments()) == "AABBBBAA"
    assert outcome.calendar["2024-06-05"].original_assigned_to == "A"
    assert outcome.explanation == "Merged two blocks"
    assert outcome.rejection_reason is None


@pytest.mark.asyncio
async def test_change_to_disruptor_is_rejected(calendar_from, rules):
    """Test that a change handing a disrupted day back to its disruptor is refused."""
    calendar = calendar_from("AABBAABB")
    optimizer = FakeOptimizer(OptimizerResponse(changes=[_change("2024-06-03", "B", "A")]))

    outcome = await refine_with_optimizer(calendar, {"2024-06-03": "A"}, rules, optimizer)

    assert not outcome.used_optimizer
    assert outcome.calendar == calendar
    assert "unavailable" in outcome.rejection_reason


@pytest.mark.asyncio
async def test_unknown_date_is_rejected(calendar_from, rules):
    """Test that a change outside the calendar is refused."""
    calendar = calendar_from("AABBAABB")
    optimizer = FakeOptimizer(OptimizerResponse(changes=[_change("2024-08-01", "A", "B")]))

    outcome = await refine_with_optimizer(calendar, {"2024-06-03": "A"}, rules, optimizer)

    assert outcome.calendar == calendar
    assert "unknown date" in outcome.rejection_reason


@pytest.mark.asyncio
async def test_more_transitions_is_rejected(calendar_from, rules):
    """Test that a valid but handoff-increasing proposal is refused."""
    calendar = calendar_from("AAAABBBB")
    changes = [
        _change("2024-06-03", "A", "B"),
        _change("2024-06-04", "A", "B"),
        _change("2024-06-05", "B", "A"),
        _change("2024-06-06", "B", "A"),
    ]
    optimizer = FakeOptimizer(OptimizerResponse(changes=changes))

    outcome = await refine_with_optimizer(calendar, {"2024-06-01": "B"}, rules, optimizer)

    assert outcome.calendar == calendar
    assert "increases transitions" in outcome.rejection_reason


@pytest.mark.asyncio
async def test_optimizer_error_falls_back(nine_day_base, rules):
    """Test that an optimizer error is reported, not raised."""
    optimizer = FakeOptimizer(error=OptimizerError("NETWORK_ERROR", "connection refused"))
    rebalanced = rebalance(nine_day_base, {"2024-06-04": "B"}, rules)

    outcome = await refine_with_optimizer(rebalanced, {"2024-06-04": "B"}, rules, optimizer)

    assert outcome.calendar == rebalanced
    assert "NETWORK_ERROR" in outcome.explanation


@pytest.mark.asyncio
async def test_unexpected_exception_falls_back(nine_day_base, rules):
    """Test that any optimizer exception falls back to the rebalancer result."""
    optimizer = FakeOptimizer(error=RuntimeError("boom"))
    rebalanced = rebalance(nine_day_base, {"2024-06-04": "B"}, rules)

    outcome = await refine_with_optimizer(rebalanced, {"2024-06-04": "B"}, rules, optimizer)

    assert outcome.calendar == rebalanced
    assert "boom" in outcome.explanation


@pytest.mark.asyncio
async def test_timeout_falls_back(nine_day_base, rules):
    """Test that a slow optimizer is cut off and the rebalancer result stands."""
    optimizer = FakeOptimizer(OptimizerResponse(changes=[_change("2024-06-05", "B", "A")]), delay=1.0)
    overlay = stage.mark_disrupted(stage.init(nine_day_base), "2024-06-04", "B", rules)

    overlay = await stage.run_rebalance(overlay, rules, optimizer, timeout=0.01)

    assert stage.effective(overlay) == rebalance(nine_day_base, {"2024-06-04": "B"}, rules)
    assert "timed out" in overlay.explanation


@pytest.mark.asyncio
async def test_empty_changes_is_no_improvement(nine_day_base, rules):
    """Test that an empty change list keeps the rebalancer result."""
    optimizer = FakeOptimizer(OptimizerResponse(explanation="Already optimal"))
    rebalanced = rebalance(nine_day_base, {"2024-06-04": "B"}, rules)

    outcome = await refine_with_optimizer(rebalanced, {"2024-06-04": "B"}, rules, optimizer)

    assert not outcome.used_optimizer
    assert outcome.explanation.startswith("Already optimal")


@pytest.mark.asyncio
async def test_no_optimizer_configured(nine_day_base, rules):
    """Test the default path with no optimizer."""
    outcome = await refine_with_optimizer(nine_day_base, {"2024-06-04": "B"}, rules)

    assert outcome.calendar == nine_day_base
    assert "not configured" in outcome.explanation


def test_build_request(nine_day_base, rules):
    """Test that the request describes the window around the disruptions."""
    request = build_request(nine_day_base, {"2024-06-04": "B", "2030-01-01": "B"}, rules)

    assert request.disrupted_dates == ["2024-06-04"]
    assert request.disrupting_guardian == "B"
    assert request.window_start == "2024-06-01"
    assert request.window_end == "2024-06-09"
    assert request.current_transition_count == 2
    assert "2024-06-04 (Tue): B" in request.run_structure


def test_build_request_without_dates_in_range(nine_day_base, rules):
    """Test that no request is built when no disrupted date is in the calendar."""
    assert build_request(nine_day_base, {"2030-01-01": "B"}, rules) is None


def test_describe_run_structure(nine_day_base):
    """Test the textual run description sent to the optimizer."""
    text = describe_run_structure(nine_day_base)

    assert text.splitlines()[0] == "2024-06-01 (Sat): A"
    assert ">>> RUN: A has 3 nights (2024-06-01 to 2024-06-03) <<<" in text
    assert ">>> RUN: B has 3 nights (2024-06-04 to 2024-06-06) <<<" in text


def test_describe_run_structure_window(nine_day_base):
    """Test that days outside the window are omitted."""
    text = describe_run_structure(nine_day_base, "2024-06-05", "2024-06-07")

    assert "2024-06-04" not in text.split(">>>")[0]
    assert "2024-06-05 (Wed): B" in text
    assert "2024-06-08" not in "\n".join(line for line in text.splitlines() if not line.startswith(">>>"))
