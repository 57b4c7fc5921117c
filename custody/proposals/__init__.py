"""Proposals module - approval workflow for shareable rebalancing proposals."""

from custody.proposals.store import InMemoryProposalStore, ProposalStore
from custody.proposals.types import Proposal, ProposalStats, ProposalStatus, WorkflowResult
from custody.proposals.workflow import ProposalWorkflow

__all__ = [
    "InMemoryProposalStore",
    "Proposal",
    "ProposalStats",
    "ProposalStatus",
    "ProposalStore",
    "ProposalWorkflow",
    "WorkflowResult",
]
