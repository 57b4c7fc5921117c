"""Proposal approval workflow.

State machine:
    pending -> accepted   (reviewer other than the creator)
    pending -> rejected   (reviewer other than the creator, optional reason)
    pending -> withdrawn  (creator only)
    pending -> expired    (detected lazily on any read once expires_at passes)

Every transition is one-way. Violations come back as
WorkflowResult(success=False) naming the current status.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from loguru import logger

from custody.config.settings import settings
from custody.preview.stage import PreviewOverlay, diff, effective
from custody.proposals.metrics import (
    compute_affected_range,
    compute_fairness_impact,
    compute_proposal_confidence,
    compute_transition_delta,
)
from custody.proposals.store import ProposalStore
from custody.proposals.types import Proposal, ProposalStats, ProposalStatus, WorkflowErrorCode, WorkflowResult
from custody.schedule.types import Calendar, CalendarDateKey, ChangeRecord, GuardianId, ScheduleRules

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _failure(code: WorkflowErrorCode, error: str, proposal: Proposal | None = None) -> WorkflowResult:
    return WorkflowResult(success=False, error=error, code=code, proposal=proposal)


def _changes_between(base: Calendar, proposed: Calendar, disrupted_dates: list[CalendarDateKey]) -> list[ChangeRecord]:
    disrupted = set(disrupted_dates)
    return [
        ChangeRecord(
            date=key,
            from_guardian=base[key].assigned_to,
            to_guardian=day.assigned_to,
            cause="disruption" if key in disrupted else "auto_balance",
        )
        for key, day in proposed.days.items()
        if day.assigned_to != base[key].assigned_to
    ]


class ProposalWorkflow:
    """Create proposals and move them through their lifecycle.

    Args:
        store: Injected proposal store
        rules: Schedule rules (guardian ids, fairness bound)
        clock: Returns the current UTC time. Defaults to the system clock.
        ttl_days: Days until a pending proposal expires. Defaults to settings.
    """

    def __init__(
        self,
        store: ProposalStore,
        rules: ScheduleRules,
        clock: Clock | None = None,
        ttl_days: int | None = None,
    ) -> None:
        self.store = store
        self.rules = rules
        self.clock = clock or _utc_now
        self.ttl = timedelta(days=ttl_days if ttl_days is not None else settings.proposal_ttl_days)

    def _is_expired(self, proposal: Proposal) -> bool:
        return proposal.status == "pending" and proposal.expires_at <= self.clock()

    def _refresh(self, proposal: Proposal) -> Proposal:
        if not self._is_expired(proposal):
            return proposal
        expired = proposal.model_copy(update={"status": "expired"})
        self.store.save(expired)
        logger.info("Proposal expired", proposal_id=proposal.id, expires_at=proposal.expires_at.isoformat())
        return expired

    def _all(self) -> list[Proposal]:
        return [self._refresh(proposal) for proposal in self.store.list()]

    def create(
        self,
        created_by: GuardianId,
        title: str,
        base_calendar: Calendar,
        proposed_calendar: Calendar,
        *,
        message: str = "",
        disrupted_dates: list[CalendarDateKey] | None = None,
        changes: list[ChangeRecord] | None = None,
    ) -> WorkflowResult:
        """Create a pending proposal with computed metrics.

        Args:
            created_by: Guardian creating the proposal
            title: Short title
            base_calendar: Calendar the changes are relative to
            proposed_calendar: Calendar that acceptance would commit
            message: Message to the reviewer
            disrupted_dates: Dates that prompted the proposal
            changes: Precomputed changes (e.g. a preview diff); derived when omitted

        Returns:
            WorkflowResult holding the new proposal
        """
        if created_by not in self.rules.guardians:
            return _failure("forbidden", f"Unknown guardian: {created_by}")
        if not title.strip():
            return _failure("invalid_input", "Proposal title must not be empty")
        if base_calendar.keys() != proposed_calendar.keys():
            return _failure("invalid_input", "Proposed calendar must cover the same dates as the base calendar")

        disrupted = sorted(disrupted_dates or [])
        if changes is None:
            changes = _changes_between(base_calendar, proposed_calendar, disrupted)

        delta = compute_transition_delta(base_calendar, proposed_calendar)
        fairness = compute_fairness_impact(proposed_calendar, self.rules)
        now = self.clock()
        proposal = Proposal(
            id=str(uuid.uuid4()),
            created_by=created_by,
            created_at=now,
            expires_at=now + self.ttl,
            title=title,
            message=message,
            disrupted_dates=disrupted,
            base_calendar=base_calendar,
            proposed_calendar=proposed_calendar,
            changes=changes,
            affected_range=compute_affected_range(changes, disrupted),
            transition_delta=delta,
            fairness_impact=fairness,
            confidence=compute_proposal_confidence(proposed_calendar, changes, disrupted, delta, fairness, self.rules),
        )
        self.store.save(proposal)
        logger.info(
            "Proposal created",
            proposal_id=proposal.id,
            created_by=created_by,
            change_count=len(changes),
            confidence=proposal.confidence,
        )
        return WorkflowResult(success=True, proposal=proposal)

    def create_from_overlay(
        self,
        overlay: PreviewOverlay,
        created_by: GuardianId,
        title: str,
        message: str = "",
    ) -> WorkflowResult:
        """Snapshot a preview overlay's diff as a proposal."""
        return self.create(
            created_by,
            title,
            overlay.base,
            effective(overlay),
            message=message,
            disrupted_dates=list(overlay.disruptions),
            changes=diff(overlay),
        )

    def get(self, proposal_id: str) -> Proposal | None:
        """Fetch a proposal, persisting lazy expiry if it has lapsed."""
        proposal = self.store.get(proposal_id)
        if proposal is None:
            return None
        return self._refresh(proposal)

    def list_for(self, guardian: GuardianId) -> list[Proposal]:
        """Proposals the guardian created or is asked to review, newest first.

        With exactly two guardians every proposal is one or the other, so a
        known guardian sees all of them.
        """
        if guardian not in self.rules.guardians:
            return []
        return sorted(self._all(), key=lambda p: p.created_at, reverse=True)

    def pending_for(self, guardian: GuardianId) -> list[Proposal]:
        """Pending proposals awaiting this guardian's review."""
        return [
            proposal
            for proposal in self.list_for(guardian)
            if proposal.status == "pending" and proposal.created_by != guardian and proposal.reviewed_by is None
        ]

    def _resolve(
        self,
        proposal_id: str,
        actor: GuardianId,
        status: ProposalStatus,
        rejection_reason: str | None = None,
        current_calendar: Calendar | None = None,
    ) -> WorkflowResult:
        proposal = self.get(proposal_id)
        if proposal is None:
            return _failure("not_found", f"Proposal not found: {proposal_id}")
        if actor not in self.rules.guardians:
            return _failure("forbidden", f"Unknown guardian: {actor}", proposal)
        if proposal.status != "pending":
            return _failure("invalid_state", f"Proposal is not pending (current status: {proposal.status})", proposal)

        if status == "withdrawn":
            if actor != proposal.created_by:
                return _failure("forbidden", "Only the creator can withdraw a proposal", proposal)
        elif actor == proposal.created_by:
            verb = "accept" if status == "accepted" else "reject"
            return _failure("forbidden", f"Cannot {verb} your own proposal", proposal)
        if current_calendar is not None and current_calendar != proposal.base_calendar:
            logger.warning("Stale proposal not resolved", proposal_id=proposal_id, actor=actor)
            return _failure("invalid_state", "Committed calendar changed since the proposal was created", proposal)

        update: dict = {"status": status, "reviewed_at": self.clock(), "reviewed_by": actor}
        if status == "rejected":
            update["rejection_reason"] = rejection_reason
        resolved = proposal.model_copy(update=update)
        self.store.save(resolved)
        logger.info("Proposal resolved", proposal_id=proposal_id, status=status, actor=actor)
        return WorkflowResult(success=True, proposal=resolved)

    def accept(
        self,
        proposal_id: str,
        reviewer: GuardianId,
        current_calendar: Calendar | None = None,
    ) -> WorkflowResult:
        """Accept a pending proposal.

        When `current_calendar` is given it must still equal the proposal's
        base calendar; otherwise the proposal is stale and stays pending.
        """
        return self._resolve(proposal_id, reviewer, "accepted", current_calendar=current_calendar)

    def reject(self, proposal_id: str, reviewer: GuardianId, reason: str | None = None) -> WorkflowResult:
        return self._resolve(proposal_id, reviewer, "rejected", rejection_reason=reason)

    def withdraw(self, proposal_id: str, requester: GuardianId) -> WorkflowResult:
        return self._resolve(proposal_id, requester, "withdrawn")

    def cleanup_expired(self) -> int:
        """Persist `expired` for every lapsed pending proposal. Returns how many."""
        expired = sum(1 for proposal in self.store.list() if self._is_expired(proposal))
        if expired:
            self._all()
            logger.info("Expired proposals cleaned up", count=expired)
        return expired

    def stats(self) -> ProposalStats:
        proposals = self._all()
        return ProposalStats(
            total=len(proposals),
            pending=sum(1 for p in proposals if p.status == "pending"),
            accepted=sum(1 for p in proposals if p.status == "accepted"),
            rejected=sum(1 for p in proposals if p.status == "rejected"),
            expired=sum(1 for p in proposals if p.status == "expired"),
            withdrawn=sum(1 for p in proposals if p.status == "withdrawn"),
        )
