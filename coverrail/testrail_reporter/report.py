"""Text report attached to the coverage case."""

from coverrail.testrail_reporter.models.results import AggregatedResults, CoverageStat

RESULTS_HEADING = "# Unit / Component test results:"
COVERAGE_HEADING = "# Unit tests Coverage:"


def _number(value: float) -> str:
    """Format a number without a trailing ``.0`` for whole values."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coverage_row(label: str, stat: CoverageStat) -> str:
    return (
        f"|| {label} | {_number(stat.pct)}% | {stat.total} | "
        f"{stat.covered} | {stat.skipped}"
    )


def format_report(results: AggregatedResults) -> str:
    """Render suite and test counts, plus coverage when it is available."""
    lines = [
        RESULTS_HEADING,
        "||| Type       | Total | Passed | Skipped | Failed",
        (
            f"|| Test Suites | {results.num_total_test_suites} | "
            f"{results.num_passed_test_suites} | {results.num_pending_test_suites} | "
            f"{results.num_failed_test_suites}"
        ),
        (
            f"|| Tests       | {results.num_total_tests} | "
            f"{results.num_passed_tests} | {results.num_pending_tests} | "
            f"{results.num_failed_tests}"
        ),
    ]

    coverage = results.coverage
    if (
        coverage is not None
        and coverage.branches is not None
        and coverage.branches.pct
        and coverage.functions is not None
        and coverage.statements is not None
        and coverage.lines is not None
    ):
        lines += [
            "",
            COVERAGE_HEADING,
            "",
            "||| Type      | Percentage | Total | Covered | Skipped",
            _coverage_row("functions ", coverage.functions),
            _coverage_row("statements", coverage.statements),
            _coverage_row("lines     ", coverage.lines),
            _coverage_row("branches  ", coverage.branches),
        ]

    return "\n".join(lines)
