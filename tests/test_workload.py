"""
Tests for workload splitting and the workload driver.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeOracle
from indexadvisor.exceptions import CatalogError, OracleError, WorkloadError
from indexadvisor.workload import WorkloadAdvisor, read_workload, split_statements


WORKLOAD = """
-- nightly report
SELECT * FROM orders WHERE customer_id = 42 AND created_at > now();

/* not analysable */
UPDATE orders SET status = 'done' WHERE id = 7;

SELECT * FROM nowhere WHERE id = 1;

SELECT id FROM customers WHERE region = 'EU';
"""


class TestSplitStatements:
    def test_comments_and_blanks_are_dropped(self) -> None:
        statements = split_statements(WORKLOAD)
        assert len(statements) == 4
        assert statements[0] == "SELECT * FROM orders WHERE customer_id = 42 AND created_at > now()"
        assert all(not s.endswith(";") for s in statements)
        assert not any(s.startswith("--") for s in statements)

    def test_semicolons_inside_literals(self) -> None:
        statements = split_statements("SELECT ';' FROM orders; SELECT 2")
        assert statements == ["SELECT ';' FROM orders", "SELECT 2"]

    def test_empty(self) -> None:
        assert split_statements("  \n-- nothing here\n") == []


class TestReadWorkload:
    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "workload.sql"
        path.write_text("SELECT 1;")
        assert read_workload(path) == "SELECT 1;"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(WorkloadError) as exc_info:
            read_workload(tmp_path / "missing.sql")
        assert exc_info.value.source.endswith("missing.sql")


class TestWorkloadAdvisor:
    def test_run(self, catalog, store, config) -> None:
        oracle = FakeOracle(chooses={(100, (2, 4)), (200, (3,))})
        report = WorkloadAdvisor(catalog, oracle, store, config).run(WORKLOAD)

        assert report.statements == 4
        assert report.analysed == 2
        assert report.skipped == 1
        assert report.recorded == 2
        assert not report.ok

        [failure] = report.failures
        assert failure.index == 3
        assert isinstance(failure.error, CatalogError)
        assert failure.to_dict()["error_type"] == "CatalogError"

        entries = store.entries(catalog)
        assert [(e.table, e.columns) for e in entries] == [
            ("customers", ("region",)),
            ("orders", ("customer_id", "created_at")),
        ]

    def test_oracle_failure_aborts_only_that_statement(self, catalog, store, config) -> None:
        oracle = FakeOracle(fail="estimate")
        report = WorkloadAdvisor(catalog, oracle, store, config).run_statements([
            "SELECT * FROM orders WHERE customer_id = 1",
            "SELECT * FROM customers WHERE region = 'EU'",
        ])
        assert report.statements == 2
        assert report.analysed == 0
        assert [type(f.error) for f in report.failures] == [OracleError, OracleError]
        assert oracle.scope_depth == 0

    def test_statements_without_candidates_still_count(self, catalog, store, config) -> None:
        report = WorkloadAdvisor(catalog, FakeOracle(), store, config).run_statements([
            "SELECT count(*) FROM orders",
        ])
        assert report.analysed == 1
        assert report.recorded == 0
        assert report.ok
