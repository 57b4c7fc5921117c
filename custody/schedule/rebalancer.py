"""Rebalancer - repairs a custody calendar after disruptions.

Pass order over the horizon:
1. Forced flips: every disrupted day goes to the other guardian and is locked.
2. Structural repair: each single-night island or over-length run is fixed
   with the cheapest set of flips of unlocked days around it; the
   neighborhood widens up to the whole calendar when a local fix does not
   exist. Repair repeats until no fixable violation is left.
3. Windowed fairness: each full accounting window outside the target band
   moves nights from the over-assigned guardian, greedily, without ever
   creating an island or an over-length run, until a sweep changes nothing.

Running the passes again over their own output changes nothing. All checks
operate on a flat list of assignments with index-bounded lookback/lookahead;
the calendar is only rebuilt once at the end.
"""

from collections import Counter
from dataclasses import dataclass, field

from loguru import logger

from custody.schedule.calendar import ensure_calendar_integrity, ensure_disruptions_valid, with_changes
from custody.schedule.types import Calendar, CalendarDateKey, DisruptionSet, GuardianId, ScheduleRules

# Candidate scoring for the fairness pass.
ADJACENT_RUN_SCORE = 3
BRIDGE_RUN_SCORE = 5
CONSOLIDATION_MIN_LENGTH = 3

# (flips, differences from base, transitions, advisory conflicts)
RepairCost = tuple[int, int, int, int]
RunState = tuple[GuardianId, int]
_NO_COST: RepairCost = (0, 0, 0, 0)


def _add_cost(a: RepairCost, b: RepairCost) -> RepairCost:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2], a[3] + b[3])


@dataclass
class _Workspace:
    keys: list[CalendarDateKey]
    assign: list[GuardianId]
    base: list[GuardianId]
    locked: list[bool]
    advisory: list[tuple[GuardianId, ...]]
    rules: ScheduleRules
    disrupted_by: dict[CalendarDateKey, GuardianId] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.assign)

    def at(self, i: int, overrides: dict[int, GuardianId] | None = None) -> GuardianId:
        if overrides and i in overrides:
            return overrides[i]
        return self.assign[i]


def _span_is_valid(ws: _Workspace, lo: int, hi: int, overrides: dict[int, GuardianId] | None = None) -> bool:
    """Check every run touching [lo, hi] for islands and over-length runs."""
    n = ws.size
    i = lo
    while i > 0 and ws.at(i - 1, overrides) == ws.at(lo, overrides):
        i -= 1
    while i <= hi:
        guardian = ws.at(i, overrides)
        j = i
        while j + 1 < n and ws.at(j + 1, overrides) == guardian:
            j += 1
        length = j - i + 1
        if length > ws.rules.max_run_length:
            return False
        if length == 1 and 0 < i and j < n - 1:
            return False
        i = j + 1
    return True


def _invalid_runs(ws: _Workspace) -> list[tuple[int, int]]:
    runs: list[tuple[int, int]] = []
    n = ws.size
    i = 0
    while i < n:
        j = i
        while j + 1 < n and ws.assign[j + 1] == ws.assign[i]:
            j += 1
        length = j - i + 1
        if length > ws.rules.max_run_length or (length == 1 and 0 < i and j < n - 1):
            runs.append((i, j))
        i = j + 1
    return runs


class _SegmentRepair:
    """Cheapest valid reassignment of the unlocked days in positions lo..hi.

    Days outside the segment are fixed context: the run entering from the
    left and the run leaving to the right must come out valid as well.
    Candidates are compared on (flips, differences from base, transitions,
    advisory conflicts); remaining ties go to flipping the earliest day.

    Solved as a suffix DP over (guardian, current run length) states, so the
    work is linear in the segment length.
    """

    def __init__(self, ws: _Workspace, lo: int, hi: int) -> None:
        self.ws = ws
        self.lo = lo
        self.hi = hi
        self.max_run = ws.rules.max_run_length
        self.left = self._left_context()
        self.right = self._right_context()

    def _left_context(self) -> RunState | None:
        if self.lo == 0:
            return None
        guardian = self.ws.assign[self.lo - 1]
        length = 1
        while self.lo - 1 - length >= 0 and self.ws.assign[self.lo - 1 - length] == guardian:
            length += 1
        return guardian, length

    def _right_context(self) -> tuple[GuardianId, int, bool] | None:
        n = self.ws.size
        if self.hi == n - 1:
            return None
        guardian = self.ws.assign[self.hi + 1]
        j = self.hi + 1
        while j + 1 < n and self.ws.assign[j + 1] == guardian:
            j += 1
        return guardian, j - self.hi, j == n - 1

    def _options(self, i: int) -> list[GuardianId]:
        current = self.ws.assign[i]
        if self.ws.locked[i]:
            return [current]
        return [self.ws.rules.other(current), current]

    def _step(self, i: int, prev: RunState | None, guardian: GuardianId) -> RunState | None:
        if prev is None:
            return guardian, 1
        prev_guardian, length = prev
        if guardian == prev_guardian:
            return (guardian, length + 1) if length < self.max_run else None
        # A one-night run closing here is an island unless it sits on the first day.
        if length == 1 and i - 1 > 0:
            return None
        return guardian, 1

    def _local_cost(self, i: int, prev: RunState | None, guardian: GuardianId) -> RepairCost:
        flipped = guardian != self.ws.assign[i]
        return (
            int(flipped),
            int(guardian != self.ws.base[i]),
            int(prev is not None and guardian != prev[0]),
            int(flipped and guardian in self.ws.advisory[i]),
        )

    def _terminal_cost(self, state: RunState) -> RepairCost | None:
        if self.right is None:
            return _NO_COST
        guardian, length = state
        next_guardian, next_length, reaches_end = self.right
        if guardian == next_guardian:
            return _NO_COST if length + next_length <= self.max_run else None
        if length == 1 and self.hi > 0:
            return None
        if next_length == 1 and not reaches_end:
            return None
        return (0, 0, 1, 0)

    def _best(
        self,
        i: int,
        prev: RunState | None,
        following: dict[RunState, RepairCost],
    ) -> tuple[RepairCost, GuardianId, RunState] | None:
        best: tuple[RepairCost, GuardianId, RunState] | None = None
        for guardian in self._options(i):
            state = self._step(i, prev, guardian)
            if state is None or state not in following:
                continue
            total = _add_cost(self._local_cost(i, prev, guardian), following[state])
            if best is None or total < best[0]:
                best = (total, guardian, state)
        return best

    def solve(self) -> dict[int, GuardianId] | None:
        """Return the flips to apply, or None when no valid assignment exists."""
        states = [
            (guardian, length) for guardian in self.ws.rules.guardians for length in range(1, self.max_run + 1)
        ]
        following: dict[RunState, RepairCost] = {}
        for state in states:
            cost = self._terminal_cost(state)
            if cost is not None:
                following[state] = cost

        # tables[k]: cheapest completion after position lo + k, by run state.
        tables = [following]
        for i in range(self.hi, self.lo, -1):
            current: dict[RunState, RepairCost] = {}
            for prev in states:
                best = self._best(i, prev, following)
                if best is not None:
                    current[prev] = best[0]
            following = current
            tables.append(following)
        tables.reverse()

        overrides: dict[int, GuardianId] = {}
        prev = self.left
        for k, i in enumerate(range(self.lo, self.hi + 1)):
            best = self._best(i, prev, tables[k])
            if best is None:
                return None
            _, guardian, prev = best
            if guardian != self.ws.assign[i]:
                overrides[i] = guardian
        return overrides


def _repair_cluster(ws: _Workspace, start: int, end: int) -> dict[int, GuardianId] | None:
    """Repair one invalid run, widening the neighborhood up to the whole calendar.

    Returns:
        Flips to apply, or None if no assignment of the unlocked days is valid
    """
    radius = ws.rules.max_run_length + 1
    while True:
        lo = max(0, start - radius)
        hi = min(ws.size - 1, end + radius)
        overrides = _SegmentRepair(ws, lo, hi).solve()
        if overrides:
            return overrides
        if lo == 0 and hi == ws.size - 1:
            return None
        radius *= 2


def _repair_structure(ws: _Workspace) -> int:
    """Repair islands and over-length runs until none is fixable. Returns clusters fixed."""
    repaired = 0
    unrepairable: set[tuple[int, int]] = set()
    while True:
        bad = next((run for run in _invalid_runs(ws) if run not in unrepairable), None)
        if bad is None:
            return repaired
        overrides = _repair_cluster(ws, *bad)
        if overrides is None:
            start, end = bad
            logger.warning(
                "Could not repair run structure",
                start_date=ws.keys[start],
                end_date=ws.keys[end],
            )
            unrepairable.add(bad)
            continue
        for i, guardian in overrides.items():
            ws.assign[i] = guardian
        repaired += 1


def _run_length_through(ws: _Workspace, i: int, guardian: GuardianId) -> int:
    """Length of the guardian's run through index i if i were assigned to guardian."""
    length = 1
    j = i - 1
    while j >= 0 and ws.assign[j] == guardian:
        length += 1
        j -= 1
    j = i + 1
    while j < ws.size and ws.assign[j] == guardian:
        length += 1
        j += 1
    return length


def _swap_score(ws: _Workspace, i: int, target: GuardianId) -> int:
    before = i > 0 and ws.assign[i - 1] == target
    after = i < ws.size - 1 and ws.assign[i + 1] == target
    score = 0
    if before or after:
        score += ADJACENT_RUN_SCORE
    if before and after:
        score += BRIDGE_RUN_SCORE
    length = _run_length_through(ws, i, target)
    if length >= CONSOLIDATION_MIN_LENGTH:
        score += length
    return score


def _balance_window(ws: _Workspace, start: int, end: int) -> int:
    """Move nights inside one window toward the target band. Returns swaps applied."""
    rules = ws.rules
    counts = Counter(ws.assign[start : end + 1])
    a_days, b_days = counts[rules.guardian_a], counts[rules.guardian_b]
    if rules.window_min <= a_days <= rules.window_max and rules.window_min <= b_days <= rules.window_max:
        return 0

    over = rules.guardian_a if a_days > b_days else rules.guardian_b
    under = rules.other(over)
    swaps_needed = max(counts[over] - rules.window_max, rules.window_min - counts[under])
    if swaps_needed <= 0:
        return 0

    candidates = [
        i
        for i in range(start, end + 1)
        if ws.assign[i] == over and not ws.locked[i] and under not in ws.advisory[i]
    ]

    applied = 0
    for _ in range(min(swaps_needed, len(candidates))):
        scored = [
            (-_swap_score(ws, i, under), i)
            for i in candidates
            if _span_is_valid(ws, max(0, i - 1), min(ws.size - 1, i + 1), {i: under})
        ]
        if not scored:
            logger.info(
                "Partial fairness correction",
                window_start=ws.keys[start],
                window_end=ws.keys[end],
                swaps_needed=swaps_needed,
                swaps_applied=applied,
            )
            break
        _, chosen = min(scored)
        ws.assign[chosen] = under
        candidates.remove(chosen)
        applied += 1
    return applied


def _balance_windows(ws: _Workspace) -> int:
    """Balance every full window, repeating until a sweep applies no swap.

    A swap near a window edge can unblock a candidate in the neighboring
    window, so a single sweep is not always a fixed point.
    """
    window = ws.rules.window_days
    total = 0
    while True:
        swaps = 0
        for start in range(0, ws.size, window):
            end = start + window - 1
            if end >= ws.size:
                # Trailing partial window: only the horizon-wide bound applies.
                break
            swaps += _balance_window(ws, start, end)
        if swaps == 0:
            return total
        total += swaps


def _workspace(base: Calendar, rules: ScheduleRules) -> _Workspace:
    days = base.values()
    assignments = [day.assigned_to for day in days]
    return _Workspace(
        keys=base.keys(),
        assign=list(assignments),
        base=assignments,
        locked=[day.is_disrupted for day in days],
        advisory=[day.advisory_blocks for day in days],
        rules=rules,
    )


def _apply_forced_flips(ws: _Workspace, disruptions: DisruptionSet) -> None:
    index = {key: i for i, key in enumerate(ws.keys)}
    for key in sorted(disruptions):
        guardian = disruptions[key]
        i = index.get(key)
        if i is None:
            logger.debug("Disruption outside calendar range ignored", date=key, guardian=guardian)
            continue
        ws.assign[i] = ws.rules.other(guardian)
        ws.locked[i] = True
        ws.disrupted_by[key] = guardian


def _materialize(base: Calendar, ws: _Workspace) -> Calendar:
    patches: dict[CalendarDateKey, dict] = {}
    for i, key in enumerate(ws.keys):
        if ws.assign[i] != ws.base[i]:
            patches[key] = {"assigned_to": ws.assign[i]}
    for key, guardian in ws.disrupted_by.items():
        patches.setdefault(key, {}).update({"is_disrupted": True, "disrupted_by": guardian})
    return with_changes(base, patches)


def rebalance(base: Calendar, disruptions: DisruptionSet, rules: ScheduleRules) -> Calendar:
    """Repair a calendar after one or more disruptions.

    All disruptions are processed together in a single pass, so the result
    does not depend on the order they were declared in.

    Args:
        base: Calendar before the disruptions
        disruptions: Date -> guardian who is unavailable that day
        rules: Schedule rules

    Returns:
        New Calendar honoring every disruption, with no islands or
        over-length runs wherever a local repair exists, and windows moved
        toward the fairness band

    Raises:
        UnknownGuardianError: If a disruption or day references an unknown guardian
        MalformedDateError: If a disruption key is not a YYYY-MM-DD day
    """
    ensure_disruptions_valid(disruptions, rules)
    ensure_calendar_integrity(base, rules)
    if len(base) == 0:
        return base

    ws = _workspace(base, rules)
    _apply_forced_flips(ws, disruptions)
    repaired = _repair_structure(ws)
    swaps = _balance_windows(ws)

    result = _materialize(base, ws)
    logger.info(
        "Rebalance complete",
        disruptions=len(disruptions),
        applied_disruptions=len(ws.disrupted_by),
        repaired_clusters=repaired,
        fairness_swaps=swaps,
        changed=sum(1 for i in range(ws.size) if ws.assign[i] != ws.base[i]),
    )
    return result
