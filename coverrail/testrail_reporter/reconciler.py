"""Decide which TestRail run receives the coverage result, then send it."""

import logging
import time
from abc import ABC, abstractmethod

import aiohttp

from coverrail.testrail_reporter.client import TestRailApiError, TestRailClient
from coverrail.testrail_reporter.models.config import ReporterConfig
from coverrail.testrail_reporter.models.run import (
    STATUS_FAILED,
    STATUS_PASSED,
    ReconcileOutcome,
    Run,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class ReconcileError(RuntimeError):
    """Raised when TestRail returns something the reconciler cannot use."""


def merge_description(existing: str | None, addition: str) -> str:
    """Append ``addition`` to ``existing`` once, dropping earlier copies of it."""
    return (existing or "").replace(addition, "") + addition


class RunReconciler(ABC):
    """Abstract base for the ways a run is obtained for the coverage result."""

    def __init__(self, config: ReporterConfig, client: TestRailClient) -> None:
        """Initialize reconciler with the effective config and an API client."""
        self.config = config
        self.client = client

    @abstractmethod
    async def reconcile(
        self, name: str, refs: str, report: str, failed: bool
    ) -> ReconcileOutcome:
        """Obtain a run and attach the coverage result to it.

        Args:
            name: Rendered run name
            refs: Rendered run reference
            report: Report text, used as result comment and default description
            failed: Whether any test of the suite failed

        Returns:
            What was done on the TestRail side

        Raises:
            TestRailApiError: If any API call fails; later calls are skipped.
                Failures to close stale runs are logged instead
            ReconcileError: If TestRail returns no usable run

        """

    def _run_payload(self, name: str, refs: str, report: str) -> dict[str, object]:
        return {
            "suite_id": self.config.suite_id,
            "include_all": False,
            "case_ids": [self.config.coverage_case_id],
            "name": name,
            "description": self.config.run_description or report,
            "refs": refs,
        }

    async def _send_result(self, run_id: int, report: str, failed: bool) -> int:
        """Add the single coverage case result and return how many were stored."""
        result = {
            "case_id": self.config.coverage_case_id,
            "status_id": STATUS_FAILED if failed else STATUS_PASSED,
            "comment": report,
        }
        stored = await self.client.add_results_for_cases(run_id, [result])
        return len(stored)


class ReferenceRunReconciler(RunReconciler):
    """Reuse the uncompleted run whose reference matches, or create a run."""

    async def reconcile(
        self, name: str, refs: str, report: str, failed: bool
    ) -> ReconcileOutcome:
        """Update the matching run or add a new one, then send the result."""
        runs = await self.client.get_runs(self.config.project_id, is_completed=0)
        existing = next((run for run in runs if run.refs == refs), None)

        if existing is not None:
            await self._update_run(existing, report)
            logger.debug(f"Test run updated: {name}")
            run_id = existing.id
            action = "updated"
        else:
            new_run = await self.client.add_run(
                self.config.project_id, self._run_payload(name, refs, report)
            )
            logger.debug(f"Test run added: {name}")
            run_id = new_run.id
            action = "created"

        results_sent = await self._send_result(run_id, report, failed)
        closed = await self._close_stale_runs(runs, keep=run_id)

        return ReconcileOutcome(
            action=action,
            run_id=run_id,
            name=name,
            results_sent=results_sent,
            closed_run_ids=closed,
        )

    async def _update_run(self, run: Run, report: str) -> None:
        tests = await self.client.get_tests(run.id)
        # Not deduplicated
        case_ids = [test.case_id for test in tests]
        case_ids.append(self.config.coverage_case_id)

        addition = "\n" + (self.config.run_description or report)
        await self.client.update_run(
            run.id,
            {
                "description": merge_description(run.description, addition),
                "case_ids": case_ids,
            },
        )

    async def _close_stale_runs(self, runs: list[Run], keep: int) -> list[int]:
        """Close uncompleted runs created more than run_close_after_days ago.

        A run that cannot be closed is logged and skipped; the result has
        already been stored at this point.
        """
        days = self.config.run_close_after_days
        if not days:
            return []

        cutoff = time.time() - days * SECONDS_PER_DAY
        closed: list[int] = []
        for run in runs:
            if run.id == keep or run.created_on is None or run.created_on >= cutoff:
                continue
            try:
                await self.client.close_run(run.id)
            except TestRailApiError as e:
                logger.error(
                    f"[TestRail] Closing stale test run {run.id} failed: {e.to_dict()}"
                )
                continue
            except (aiohttp.ClientError, TimeoutError) as e:
                logger.error(f"[TestRail] Closing stale test run {run.id} failed: {e}")
                continue
            logger.info(f"[TestRail] Closed stale test run {run.id}: {run.name}")
            closed.append(run.id)

        return closed


class PlanEntryReconciler(RunReconciler):
    """Add a new entry to the configured test plan and use its first run."""

    async def reconcile(
        self, name: str, refs: str, report: str, failed: bool
    ) -> ReconcileOutcome:
        """Add a plan entry, then send the result to the entry's first run."""
        entry = await self.client.add_plan_entry(
            self.config.plan_id, self._run_payload(name, refs, report)
        )
        logger.debug(f"Test plan entry added: {name}")

        if not entry.runs:
            raise ReconcileError(f"Plan entry {entry.id or name!r} contains no runs")

        run_id = entry.runs[0].id
        results_sent = await self._send_result(run_id, report, failed)

        return ReconcileOutcome(
            action="plan_entry",
            run_id=run_id,
            name=name,
            results_sent=results_sent,
        )


def create_reconciler(config: ReporterConfig, client: TestRailClient) -> RunReconciler:
    """Pick the plan entry variant when a plan id is configured."""
    if config.use_plan:
        return PlanEntryReconciler(config, client)
    return ReferenceRunReconciler(config, client)
