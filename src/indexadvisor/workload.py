"""
Workload driver.

Splits a workload into statements, resolves each one and runs it through
the evaluator. A failing statement is recorded and the run goes on; only
an unreadable workload stops it.

Usage:
    advisor = WorkloadAdvisor(catalog, oracle, MemoryAdvisoryStore())
    report = advisor.run(Path("workload.sql").read_text())
    print(report.analysed, report.recorded)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import sqlparse

from indexadvisor.advisory.store import AdvisorySink
from indexadvisor.catalog.base import Catalog
from indexadvisor.config import Config, get_config
from indexadvisor.evaluation.evaluator import EvaluationResult, HypotheticalEvaluator
from indexadvisor.exceptions import (
    CatalogError,
    IndexAdvisorError,
    WorkloadError,
)
from indexadvisor.oracle.base import CostOracle
from indexadvisor.query.builder import QueryBuilder

logger = logging.getLogger(__name__)


@dataclass
class StatementFailure:
    """A statement whose evaluation was aborted."""

    index: int
    sql: str
    error: IndexAdvisorError

    def to_dict(self) -> dict:
        return {"index": self.index, "sql": self.sql, **self.error.to_dict()}


@dataclass
class WorkloadReport:
    """Summary of one advisory run."""

    statements: int = 0
    analysed: int = 0
    skipped: int = 0
    recorded: int = 0
    failures: list[StatementFailure] = field(default_factory=list)
    results: list[EvaluationResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def split_statements(text: str) -> list[str]:
    """Split workload text into statements, dropping comments and blanks."""
    statements = []
    for raw in sqlparse.split(text):
        stmt = sqlparse.format(raw, strip_comments=True).strip().rstrip(";").strip()
        if stmt:
            statements.append(stmt)
    return statements


def read_workload(path: Path) -> str:
    """Read a workload file, raising WorkloadError if it cannot be read."""
    try:
        return Path(path).read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise WorkloadError(f"Could not read workload: {e}", source=str(path)) from e


class WorkloadAdvisor:
    """Runs every statement of a workload through the evaluator."""

    def __init__(
        self,
        catalog: Catalog,
        oracle: CostOracle,
        sink: AdvisorySink,
        config: Config | None = None,
    ) -> None:
        self.catalog = catalog
        self.config = config or get_config()
        self.builder = QueryBuilder(catalog)
        self.evaluator = HypotheticalEvaluator(catalog, oracle, sink, self.config)

    def run(self, text: str) -> WorkloadReport:
        return self.run_statements(split_statements(text))

    def run_statements(self, statements: Iterable[str]) -> WorkloadReport:
        report = WorkloadReport()

        for i, sql in enumerate(statements, start=1):
            report.statements += 1

            try:
                query = self.builder.build(sql)
            except WorkloadError as e:
                logger.warning("Skipping statement %d: %s", i, e.message)
                report.skipped += 1
                continue
            except CatalogError as e:
                logger.warning("Statement %d failed: %s", i, e.message)
                report.failures.append(StatementFailure(i, sql, e))
                continue

            try:
                result = self.evaluator.evaluate(query)
            except IndexAdvisorError as e:
                logger.warning("Statement %d failed: %s", i, e.message)
                report.failures.append(StatementFailure(i, sql, e))
                continue

            report.analysed += 1
            report.recorded += result.recorded
            report.results.append(result)

        logger.info(
            "Workload: %d statement(s), %d analysed, %d skipped, %d failed, %d record(s)",
            report.statements, report.analysed, report.skipped,
            len(report.failures), report.recorded,
        )
        return report
