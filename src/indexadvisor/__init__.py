"""index-advisor - multi-column index recommendations from a SQL workload."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from indexadvisor.exceptions import (
    IndexAdvisorError,
    ConfigurationError,
    WorkloadError,
    CatalogError,
    OracleError,
    PersistenceError,
    BudgetError,
)

from indexadvisor.config import Config, SelectionStrategy, get_config, reset_config

# Candidate generation
from indexadvisor.candidates import (
    Candidate,
    CandidateScanner,
    build_composite_candidates,
    compare_candidates,
    merge_candidates,
    remove_irrelevant_candidates,
)

# Evaluation and selection
from indexadvisor.evaluation import EvaluationResult, HypotheticalEvaluator
from indexadvisor.advisory import (
    AdvisoryEntry,
    AdvisoryRecord,
    MemoryAdvisoryStore,
    select_exact,
    select_greedy,
)
from indexadvisor.query.builder import build_query_tree
from indexadvisor.workload import WorkloadAdvisor, WorkloadReport

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "IndexAdvisorError",
    "ConfigurationError",
    "WorkloadError",
    "CatalogError",
    "OracleError",
    "PersistenceError",
    "BudgetError",
    # Config
    "Config",
    "SelectionStrategy",
    "get_config",
    "reset_config",
    # Candidates
    "Candidate",
    "CandidateScanner",
    "build_composite_candidates",
    "compare_candidates",
    "merge_candidates",
    "remove_irrelevant_candidates",
    # Evaluation
    "EvaluationResult",
    "HypotheticalEvaluator",
    # Advisory
    "AdvisoryEntry",
    "AdvisoryRecord",
    "MemoryAdvisoryStore",
    "select_exact",
    "select_greedy",
    # Front end / driver
    "build_query_tree",
    "WorkloadAdvisor",
    "WorkloadReport",
]
