"""CLI entry point sending a finished test run to TestRail."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import typer

from coverrail.testrail_reporter.models.results import (
    AggregatedResults,
    CoverageSummary,
)
from coverrail.testrail_reporter.reporter import TestRailReporter
from coverrail.testrail_reporter.settings import ConfigFileError

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,  # Force reconfiguration even if already set up
)
logger = logging.getLogger(__name__)

app = typer.Typer()


def _read_json(path: Path) -> object:
    """Read a JSON document, raising ValueError on any problem."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValueError(f"Cannot read {path}: {e}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}")


def load_results(results_path: Path, coverage_path: Path | None) -> AggregatedResults:
    """Load jest ``--json`` results and an optional istanbul coverage summary."""
    data = _read_json(results_path)
    if not isinstance(data, dict):
        raise ValueError(f"Test results in {results_path} must be a JSON object")

    try:
        results = AggregatedResults.model_validate(data)
        if coverage_path is not None:
            summary = _read_json(coverage_path)
            if not isinstance(summary, dict):
                raise ValueError(f"Coverage in {coverage_path} must be a JSON object")
            coverage = CoverageSummary.from_istanbul(summary)
            results = results.model_copy(update={"coverage": coverage})
    except ValueError as e:
        raise ValueError(f"Invalid test results: {e}")

    return results


@app.command()
def main(
    results: Path = typer.Option(..., help="Path to the test runner JSON results"),  # noqa: B008
    coverage_summary: Path | None = typer.Option(  # noqa: B008
        None, help="Path to an istanbul coverage-summary.json"
    ),
    options: str = typer.Option(
        "{}", help="JSON reporter options, overridden by TESTRAIL_* variables"
    ),
) -> None:
    """Send test results and coverage to a TestRail coverage case."""
    try:
        reporter_options = json.loads(options)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in options: {e}", err=True)
        raise typer.Exit(code=1)

    if not isinstance(reporter_options, dict):
        typer.echo("Error: Options must be a JSON object", err=True)
        raise typer.Exit(code=1)

    try:
        aggregated = load_results(results, coverage_summary)
    except ValueError as e:
        logger.error(f"Failed to load test results: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    try:
        reporter = TestRailReporter({}, reporter_options)
    except ConfigFileError as e:
        logger.error(f"Failed to load configuration: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    logger.info(f"Branch: {reporter.branch}, build: {reporter.build_no}")
    outcome = asyncio.run(reporter.on_run_complete({}, aggregated))

    if outcome is not None:
        typer.echo(outcome.model_dump_json(indent=2))


if __name__ == "__main__":  # pragma: no cover
    app()
