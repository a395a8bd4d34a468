"""
Hypothetical index evaluation.
"""

from indexadvisor.evaluation.evaluator import (
    EvaluationResult,
    HypotheticalEvaluator,
    PhaseTimer,
    apportion_benefit,
    mark_used_candidates,
)
from indexadvisor.evaluation.guard import ReentrancyGuard

__all__ = [
    "EvaluationResult",
    "HypotheticalEvaluator",
    "PhaseTimer",
    "ReentrancyGuard",
    "apportion_benefit",
    "mark_used_candidates",
]
