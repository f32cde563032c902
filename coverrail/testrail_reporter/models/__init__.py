"""Data models for configuration, aggregated results and TestRail runs."""

from coverrail.testrail_reporter.models.config import ReporterConfig
from coverrail.testrail_reporter.models.results import (
    AggregatedResults,
    CoverageStat,
    CoverageSummary,
)
from coverrail.testrail_reporter.models.run import (
    STATUS_FAILED,
    STATUS_PASSED,
    PlanEntry,
    ReconcileOutcome,
    Run,
    TestRailTest,
)

__all__ = [
    "STATUS_FAILED",
    "STATUS_PASSED",
    "AggregatedResults",
    "CoverageStat",
    "CoverageSummary",
    "PlanEntry",
    "ReconcileOutcome",
    "ReporterConfig",
    "Run",
    "TestRailTest",
]
