"""Optimizer boundary - contract, HTTP client and validated refinement pass."""

from custody.optimizer.client import HttpProposalOptimizer
from custody.optimizer.refine import OptimizationOutcome, describe_run_structure, refine_with_optimizer
from custody.optimizer.types import (
    OptimizerChange,
    OptimizerError,
    OptimizerRequest,
    OptimizerResponse,
    ProposalOptimizer,
)

__all__ = [
    "HttpProposalOptimizer",
    "OptimizationOutcome",
    "OptimizerChange",
    "OptimizerError",
    "OptimizerRequest",
    "OptimizerResponse",
    "ProposalOptimizer",
    "describe_run_structure",
    "refine_with_optimizer",
]
