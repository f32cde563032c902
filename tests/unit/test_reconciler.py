"""Tests for run reconciliation."""

import time
from unittest.mock import AsyncMock

import pytest

from coverrail.testrail_reporter.client import TestRailApiError, TestRailClient
from coverrail.testrail_reporter.models.config import ReporterConfig
from coverrail.testrail_reporter.models.run import PlanEntry, Run, TestRailTest
from coverrail.testrail_reporter.reconciler import (
    PlanEntryReconciler,
    ReconcileError,
    ReferenceRunReconciler,
    create_reconciler,
    merge_description,
)

REPORT = "# Unit / Component test results:"


@pytest.fixture
def config() -> ReporterConfig:
    """Create a complete reporter configuration."""
    return ReporterConfig(
        enabled=True,
        host="https://testrail.example.com",
        user="user",
        api_key="key",
        project_id=1,
        suite_id=2,
        coverage_case_id=123,
        reference="refs",
    )


@pytest.fixture
def client() -> AsyncMock:
    """Create a TestRail client double."""
    client = AsyncMock(spec=TestRailClient)
    client.get_runs.return_value = []
    client.get_tests.return_value = [TestRailTest(id=1, case_id=234)]
    client.update_run.return_value = Run(id=123, refs="refs")
    client.add_run.return_value = Run(id=77, refs="refs")
    client.add_results_for_cases.return_value = [{"id": 1}]
    return client


def test_merge_description_appends_once() -> None:
    """merge_description replaces earlier copies before appending."""
    addition = "\nreport"
    once = merge_description("intro", addition)
    assert once == "intro\nreport"
    assert merge_description(once, addition) == once
    assert merge_description(None, addition) == addition


def test_create_reconciler_variant(config: ReporterConfig, client: AsyncMock) -> None:
    """A plan id selects the plan entry variant."""
    assert isinstance(create_reconciler(config, client), ReferenceRunReconciler)
    plan_config = config.model_copy(update={"plan_id": 9})
    assert isinstance(create_reconciler(plan_config, client), PlanEntryReconciler)


async def test_reconcile_creates_run(config: ReporterConfig, client: AsyncMock) -> None:
    """Without a run carrying the reference a new run is added."""
    client.get_runs.return_value = [Run(id=5, refs="other")]

    outcome = await ReferenceRunReconciler(config, client).reconcile(
        "main#42", "refs", REPORT, failed=False
    )

    assert outcome.action == "created"
    assert outcome.run_id == 77
    assert outcome.results_sent == 1
    client.get_runs.assert_awaited_once_with(1, is_completed=0)
    client.add_run.assert_awaited_once_with(
        1,
        {
            "suite_id": 2,
            "include_all": False,
            "case_ids": [123],
            "name": "main#42",
            "description": REPORT,
            "refs": "refs",
        },
    )
    client.get_tests.assert_not_awaited()
    client.update_run.assert_not_awaited()
    client.add_results_for_cases.assert_awaited_once_with(
        77, [{"case_id": 123, "status_id": 1, "comment": REPORT}]
    )


async def test_reconcile_create_uses_configured_description(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """A configured description replaces the report on new runs."""
    config = config.model_copy(update={"run_description": "Nightly coverage"})

    await ReferenceRunReconciler(config, client).reconcile(
        "main#42", "refs", REPORT, failed=False
    )

    payload = client.add_run.await_args.args[1]
    assert payload["description"] == "Nightly coverage"


async def test_reconcile_updates_matching_run(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """A run carrying the reference is updated instead of creating one."""
    client.get_runs.return_value = [
        Run(id=5, refs=""),
        Run(id=123, refs="refs", description="previous"),
    ]

    outcome = await ReferenceRunReconciler(config, client).reconcile(
        "main#42", "refs", REPORT, failed=True
    )

    assert outcome.action == "updated"
    assert outcome.run_id == 123
    client.get_tests.assert_awaited_once_with(123)
    client.update_run.assert_awaited_once_with(
        123,
        {"description": f"previous\n{REPORT}", "case_ids": [234, 123]},
    )
    client.add_run.assert_not_awaited()
    client.add_results_for_cases.assert_awaited_once_with(
        123, [{"case_id": 123, "status_id": 5, "comment": REPORT}]
    )


async def test_reconcile_update_keeps_duplicate_case_ids(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """The coverage case is appended even when the run already has it."""
    client.get_runs.return_value = [Run(id=123, refs="refs", description="")]
    client.get_tests.return_value = [TestRailTest(case_id=123)]

    await ReferenceRunReconciler(config, client).reconcile(
        "main#42", "refs", REPORT, failed=False
    )

    assert client.update_run.await_args.args[1]["case_ids"] == [123, 123]


async def test_reconcile_update_twice_is_idempotent(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """Updating the same run twice keeps a single copy of the report."""
    reconciler = ReferenceRunReconciler(config, client)
    client.get_runs.return_value = [Run(id=123, refs="refs", description="intro")]

    await reconciler.reconcile("main#42", "refs", REPORT, failed=False)
    first = client.update_run.await_args.args[1]["description"]

    client.get_runs.return_value = [Run(id=123, refs="refs", description=first)]
    await reconciler.reconcile("main#42", "refs", REPORT, failed=False)
    second = client.update_run.await_args.args[1]["description"]

    assert first == f"intro\n{REPORT}"
    assert second == first
    assert second.count(REPORT) == 1


async def test_reconcile_runs_fetch_error_aborts(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """An error listing runs skips every later call."""
    client.get_runs.side_effect = TestRailApiError(
        "mock/url", 400, {"error": "error message"}
    )

    with pytest.raises(TestRailApiError):
        await ReferenceRunReconciler(config, client).reconcile(
            "main#42", "refs", REPORT, failed=False
        )

    client.get_tests.assert_not_awaited()
    client.update_run.assert_not_awaited()
    client.add_run.assert_not_awaited()
    client.add_results_for_cases.assert_not_awaited()


async def test_reconcile_closes_stale_runs(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """Old uncompleted runs are closed when run_close_after_days is set."""
    config = config.model_copy(update={"run_close_after_days": 7})
    now = int(time.time())
    client.get_runs.return_value = [
        Run(id=1, refs="old", created_on=now - 30 * 86400),
        Run(id=2, refs="recent", created_on=now - 86400),
        Run(id=3, refs="unknown age"),
        Run(id=123, refs="refs", description="", created_on=now - 30 * 86400),
    ]

    outcome = await ReferenceRunReconciler(config, client).reconcile(
        "main#42", "refs", REPORT, failed=False
    )

    assert outcome.closed_run_ids == [1]
    client.close_run.assert_awaited_once_with(1)


async def test_reconcile_close_failure_is_logged(
    config: ReporterConfig, client: AsyncMock, caplog: pytest.LogCaptureFixture
) -> None:
    """A run that cannot be closed is logged; other stale runs still close."""
    config = config.model_copy(update={"run_close_after_days": 7})
    now = int(time.time())
    client.get_runs.return_value = [
        Run(id=1, refs="old", created_on=now - 30 * 86400),
        Run(id=2, refs="older", created_on=now - 60 * 86400),
    ]
    client.close_run.side_effect = [
        TestRailApiError("mock/url", 403, {"error": "no permission"}),
        Run(id=2, is_completed=True),
    ]

    outcome = await ReferenceRunReconciler(config, client).reconcile(
        "main#42", "refs", REPORT, failed=False
    )

    assert outcome.results_sent == 1
    assert outcome.closed_run_ids == [2]
    assert client.close_run.await_count == 2
    errors = [r.getMessage() for r in caplog.records if r.levelname == "ERROR"]
    assert errors == [
        "[TestRail] Closing stale test run 1 failed: "
        "{'url': 'mock/url', 'status': 403, 'message': {'error': 'no permission'}}"
    ]


async def test_reconcile_keeps_runs_without_close_threshold(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """No run is closed when run_close_after_days is unset."""
    client.get_runs.return_value = [Run(id=1, refs="old", created_on=0)]

    outcome = await ReferenceRunReconciler(config, client).reconcile(
        "main#42", "refs", REPORT, failed=False
    )

    assert outcome.closed_run_ids == []
    client.close_run.assert_not_awaited()


async def test_plan_entry_reconcile(config: ReporterConfig, client: AsyncMock) -> None:
    """The plan variant adds a plan entry and reports to its first run."""
    config = config.model_copy(update={"plan_id": 9})
    client.add_plan_entry.return_value = PlanEntry(
        id="abc", runs=[Run(id=31), Run(id=32)]
    )

    outcome = await PlanEntryReconciler(config, client).reconcile(
        "main#42", "main#42", REPORT, failed=True
    )

    assert outcome.action == "plan_entry"
    assert outcome.run_id == 31
    client.get_runs.assert_not_awaited()
    client.add_run.assert_not_awaited()
    assert client.add_plan_entry.await_args.args[0] == 9
    assert client.add_plan_entry.await_args.args[1]["refs"] == "main#42"
    client.add_results_for_cases.assert_awaited_once_with(
        31, [{"case_id": 123, "status_id": 5, "comment": REPORT}]
    )


async def test_plan_entry_without_runs(
    config: ReporterConfig, client: AsyncMock
) -> None:
    """A plan entry without runs is an error."""
    config = config.model_copy(update={"plan_id": 9})
    client.add_plan_entry.return_value = PlanEntry(id="abc", runs=[])

    with pytest.raises(ReconcileError, match="contains no runs"):
        await PlanEntryReconciler(config, client).reconcile(
            "main#42", "main#42", REPORT, failed=False
        )

    client.add_results_for_cases.assert_not_awaited()
