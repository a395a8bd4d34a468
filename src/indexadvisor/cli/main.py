"""
index-advisor CLI - multi-column index recommendations for PostgreSQL.

Usage:
    index-advisor candidates schema.yaml workload.sql
    index-advisor advise workload.sql --dsn postgresql://localhost/app --budget 10M
    index-advisor select advice.json --budget 512K --exact
    index-advisor --help
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from indexadvisor import __version__
from indexadvisor.advisory.records import AdvisoryEntry
from indexadvisor.advisory.selector import compute_config_size, parse_size, select
from indexadvisor.advisory.store import ADVISORY_TABLE_DDL, MemoryAdvisoryStore
from indexadvisor.candidates.relevance import remove_irrelevant_candidates
from indexadvisor.candidates.scanner import CandidateScanner
from indexadvisor.catalog.static import StaticCatalog
from indexadvisor.config import Config, SelectionStrategy, get_config, load_config_from_file
from indexadvisor.exceptions import IndexAdvisorError
from indexadvisor.output import candidates_table, create_index_statements, recommendation_lines
from indexadvisor.query.builder import QueryBuilder
from indexadvisor.workload import read_workload, split_statements

app = typer.Typer(
    name="index-advisor",
    help="Multi-column index advisor for PostgreSQL workloads",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"index-advisor version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log candidate lists and timings."),
    ] = False,
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="JSON or YAML configuration file."),
    ] = None,
) -> None:
    """index-advisor - recommend multi-column indexes for a SQL workload."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )
    try:
        ctx.obj = load_config_from_file(config_file) if config_file else get_config()
    except IndexAdvisorError as e:
        _fail(e.message, e)


def _config(ctx: typer.Context) -> Config:
    return ctx.obj if isinstance(ctx.obj, Config) else get_config()


def _fail(message: str, error: IndexAdvisorError | None = None) -> None:
    error_console.print(f"[red]Error:[/red] {escape(message)}")
    hint = getattr(error, "hint", None)
    if hint:
        error_console.print(f"\n[dim]{escape(hint)}[/dim]")
    raise typer.Exit(code=1)


def _strategy(exact: bool, config: Config) -> SelectionStrategy:
    return SelectionStrategy.EXACT if exact else config.selection_strategy


def _emit(entries: list[AdvisoryEntry], numbers: list[int], output: Optional[Path]) -> None:
    for line in recommendation_lines(entries, numbers):
        console.print(line, markup=False, highlight=False, soft_wrap=True)

    statements = create_index_statements(entries, numbers)
    if output is not None:
        output.write_text("".join(f"{s}\n" for s in statements))
        console.print(f"[dim]Wrote {len(statements)} statement(s) to {output}[/dim]")
    else:
        for stmt in statements:
            console.print(stmt, markup=False, highlight=False, soft_wrap=True)


def _report(
    entries: list[AdvisoryEntry],
    budget: Optional[str],
    strategy: SelectionStrategy,
    output: Optional[Path],
) -> None:
    """Apply the budget if it is exceeded, then print advice and DDL."""
    numbers = list(range(1, len(entries) + 1))

    if budget is not None:
        budget_kb = parse_size(budget)
        if compute_config_size(entries) > budget_kb:
            selection = select(entries, budget_kb, strategy)
            entries = selection.entries
            numbers = [i + 1 for i in selection.indices]

    _emit(entries, numbers, output)


@app.command()
def candidates(
    ctx: typer.Context,
    schema_file: Annotated[
        Path,
        typer.Argument(help="Schema description (JSON or YAML)", exists=True, readable=True),
    ],
    workload_file: Annotated[
        Path,
        typer.Argument(help="SQL workload, statements separated by ';'"),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output candidates as JSON"),
    ] = False,
) -> None:
    """
    List the index candidates of each statement, without a database.

    Examples:

        $ index-advisor candidates schema.yaml workload.sql
    """
    config = _config(ctx)
    try:
        catalog = StaticCatalog.from_file(schema_file)
        text = read_workload(workload_file)
    except IndexAdvisorError as e:
        _fail(e.message, e)

    builder = QueryBuilder(catalog)
    scanner = CandidateScanner(catalog, config)
    results = []

    for i, sql in enumerate(split_statements(text), start=1):
        try:
            query = builder.build(sql)
        except IndexAdvisorError as e:
            error_console.print(f"[yellow]Statement {i} skipped:[/yellow] {escape(e.message)}")
            continue

        found = remove_irrelevant_candidates(scanner.scan(query), catalog)
        results.append((i, sql, found))

    if json_output:
        payload = [
            {
                "statement": i,
                "sql": sql,
                "candidates": [
                    {"table": catalog.relation_name(c.relid), "columns": list(c.columns)}
                    for c in found
                ],
            }
            for i, sql, found in results
        ]
        console.print_json(json.dumps(payload))
        return

    for i, sql, found in results:
        if not found:
            console.print(f"[dim]Statement {i}: no candidates[/dim]")
            continue
        console.print(candidates_table(f"Statement {i}", found, catalog))


@app.command()
def advise(
    ctx: typer.Context,
    workload_file: Annotated[
        Path,
        typer.Argument(help="SQL workload, statements separated by ';'"),
    ],
    dsn: Annotated[
        str,
        typer.Option("--dsn", "-d", help="PostgreSQL connection string", envvar="DATABASE_URL"),
    ],
    budget: Annotated[
        Optional[str],
        typer.Option("--budget", "-b", help="Size budget: number of KB, or with K/M/G suffix"),
    ] = None,
    exact: Annotated[
        bool,
        typer.Option("--exact", help="Use the exact (knapsack) selector instead of greedy"),
    ] = False,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="File for the CREATE INDEX statements"),
    ] = None,
    save: Annotated[
        bool,
        typer.Option("--save/--no-save", help="Also record advice in the advisory table"),
    ] = False,
) -> None:
    """
    Evaluate a workload against PostgreSQL + hypopg and recommend indexes.

    Examples:

        $ index-advisor advise workload.sql --dsn postgresql://localhost/app
        $ index-advisor advise workload.sql -d $DATABASE_URL --budget 10M -o indexes.sql
    """
    config = _config(ctx)

    try:
        text = read_workload(workload_file)
        if budget is not None:
            parse_size(budget)
    except IndexAdvisorError as e:
        _fail(e.message, e)

    try:
        import psycopg
    except ImportError:
        _fail("psycopg not installed. Install with: pip install 'psycopg[binary]'")

    from indexadvisor.advisory.store import PostgresAdvisoryStore
    from indexadvisor.catalog.postgres import PostgresCatalog
    from indexadvisor.oracle.hypopg import HypoPGOracle
    from indexadvisor.workload import WorkloadAdvisor

    try:
        conn = psycopg.connect(dsn, autocommit=True)
    except psycopg.Error as e:
        _fail(f"Could not connect to database: {e}")

    with conn:
        catalog = PostgresCatalog(conn)
        oracle = HypoPGOracle(conn, catalog, config)
        try:
            oracle.check_extension()
        except IndexAdvisorError as e:
            _fail(e.message, e)

        if save:
            sink = PostgresAdvisoryStore(conn, config.advisory_table)
        else:
            sink = MemoryAdvisoryStore()

        report = WorkloadAdvisor(catalog, oracle, sink, config).run(text)

        for failure in report.failures:
            error_console.print(
                f"[yellow]Statement {failure.index} failed:[/yellow] {escape(failure.error.message)}"
            )

        try:
            entries = sink.entries() if save else sink.entries(catalog)
        except IndexAdvisorError as e:
            _fail(e.message, e)

    console.print(
        f"[dim]{report.statements} statement(s), {report.analysed} analysed, "
        f"{report.skipped} skipped, {len(report.failures)} failed[/dim]"
    )

    try:
        _report(entries, budget, _strategy(exact, config), output)
    except IndexAdvisorError as e:
        _fail(e.message, e)


@app.command("select")
def select_command(
    ctx: typer.Context,
    records_file: Annotated[
        Path,
        typer.Argument(
            help="JSON list of advisory entries (table, columns, size_kb, benefit)",
            exists=True,
            readable=True,
        ),
    ],
    budget: Annotated[
        str,
        typer.Option("--budget", "-b", help="Size budget: number of KB, or with K/M/G suffix"),
    ],
    exact: Annotated[
        bool,
        typer.Option("--exact", help="Use the exact (knapsack) selector instead of greedy"),
    ] = False,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="File for the CREATE INDEX statements"),
    ] = None,
) -> None:
    """
    Choose advisory entries that fit a size budget.

    Entries are considered in file order; sort them by benefit/size first
    for the greedy selector.
    """
    config = _config(ctx)

    try:
        data = json.loads(records_file.read_text())
        if not isinstance(data, list):
            _fail("Records file must contain a JSON list")
        entries = [AdvisoryEntry.model_validate(item) for item in data]
    except (json.JSONDecodeError, ValidationError) as e:
        _fail(f"Malformed records file: {e}")

    try:
        budget_kb = parse_size(budget)
        selection = select(entries, budget_kb, _strategy(exact, config))
    except IndexAdvisorError as e:
        _fail(e.message, e)

    _emit(selection.entries, [i + 1 for i in selection.indices], output)


@app.command()
def ddl() -> None:
    """Print the DDL of the advisory table."""
    sys.stdout.write(ADVISORY_TABLE_DDL)


if __name__ == "__main__":
    app()
