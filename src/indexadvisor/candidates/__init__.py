"""
Index candidate generation.

Module responsibilities:
- model.py: Candidate and its total order
- merge.py: ordered, de-duplicating merge of candidate lists
- composite.py: multi-column candidates from conjunct candidates
- scanner.py: query tree walk producing candidates
- relevance.py: removal of ineligible / already-indexed candidates
"""

from indexadvisor.candidates.composite import build_composite_candidates
from indexadvisor.candidates.merge import merge_candidates
from indexadvisor.candidates.model import (
    Candidate,
    compare_candidates,
    format_candidates,
    is_sorted,
)
from indexadvisor.candidates.relevance import (
    matches_existing_index,
    remove_irrelevant_candidates,
)
from indexadvisor.candidates.scanner import CandidateScanner, ScopeStack

__all__ = [
    "Candidate",
    "CandidateScanner",
    "ScopeStack",
    "build_composite_candidates",
    "compare_candidates",
    "format_candidates",
    "is_sorted",
    "matches_existing_index",
    "merge_candidates",
    "remove_irrelevant_candidates",
]
