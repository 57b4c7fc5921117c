"""Proposal store abstraction.

One store is constructed per process and injected into the workflow.
"""

from typing import Protocol

from custody.proposals.types import Proposal


class ProposalStore(Protocol):
    def get(self, proposal_id: str) -> Proposal | None: ...

    def save(self, proposal: Proposal) -> None: ...

    def list(self) -> list[Proposal]: ...


class InMemoryProposalStore:
    """Dict-backed ProposalStore for tests and single-process deployments."""

    def __init__(self) -> None:
        self._proposals: dict[str, Proposal] = {}

    def get(self, proposal_id: str) -> Proposal | None:
        return self._proposals.get(proposal_id)

    def save(self, proposal: Proposal) -> None:
        self._proposals[proposal.id] = proposal

    def list(self) -> list[Proposal]:
        return list(self._proposals.values())
