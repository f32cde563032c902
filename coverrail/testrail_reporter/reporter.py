"""Reporter the test runner instantiates and notifies when the run completes."""

import logging
import os
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import aiohttp
from pydantic import ValidationError

from coverrail.testrail_reporter.client import TestRailApiError, TestRailClient
from coverrail.testrail_reporter.models.config import ReporterConfig
from coverrail.testrail_reporter.models.results import AggregatedResults
from coverrail.testrail_reporter.models.run import ReconcileOutcome
from coverrail.testrail_reporter.reconciler import ReconcileError, create_reconciler
from coverrail.testrail_reporter.report import format_report
from coverrail.testrail_reporter.settings import load_config
from coverrail.testrail_reporter.templating import (
    DEFAULT_PLAN_REFERENCE,
    render_name,
    render_reference,
)

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "master"
DEFAULT_BUILD_NO = "unknown"

ClientFactory = Callable[[str, str, str], TestRailClient]


def verify_config(config: ReporterConfig) -> bool:
    """Check that everything needed to reach TestRail is configured.

    Logs one warning per missing item. A disabled config is never valid and
    logs nothing.
    """
    if not config.enabled:
        return False

    if not config.host:
        logger.warning("[TestRail] Hostname was not provided.")

    if not config.user or not config.api_key:
        logger.warning("[TestRail] Username or api key was not provided.")

    if not config.project_id:
        logger.warning("[TestRail] Project id was not provided.")

    if not config.coverage_case_id:
        logger.warning("[TestRail] Coverage testcase id was not provided.")

    if not config.suite_id:
        logger.warning("[TestRail] Suite id was not provided.")

    return bool(
        config.host
        and config.user
        and config.api_key
        and config.project_id
        and config.coverage_case_id
        and config.suite_id
    )


class TestRailReporter:
    """Sends the suite summary and coverage to a TestRail coverage case."""

    __test__ = False

    def __init__(
        self,
        global_config: Any = None,
        options: Mapping[str, object] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Resolve the configuration once for the lifetime of the reporter.

        Args:
            global_config: Test runner configuration, unused
            options: Reporter options, overridden by TESTRAIL_* variables
            environ: Environment to read, defaults to ``os.environ``
            cwd: Directory holding ``.testrailrc``, defaults to the working dir
            client_factory: Builds the API client from host, user and key
            clock: Returns the time used for ``%DATE%``

        Raises:
            ConfigFileError: If strict config file mode is on and
                ``.testrailrc`` is missing or invalid

        """
        env = os.environ if environ is None else environ
        self.config = load_config(options or {}, env, cwd or Path.cwd())
        self.branch = env.get(self.config.branch_env) or DEFAULT_BRANCH
        self.build_no = env.get(self.config.build_no_env) or DEFAULT_BUILD_NO
        self._client_factory = client_factory or TestRailClient
        self._clock = clock or datetime.now

    def render_name(self) -> str:
        """Render the configured run name template."""
        return render_name(
            self.config.run_name,
            self.branch,
            self.build_no,
            self._clock(),
            self.config.date_format,
        )

    def render_reference(self) -> str:
        """Render the reference, with the default of the active run variant."""
        default = DEFAULT_PLAN_REFERENCE if self.config.use_plan else ""
        return render_reference(
            self.config.reference, self.branch, self.build_no, default=default
        )

    async def on_run_complete(
        self,
        contexts: Any,
        results: AggregatedResults | Mapping[str, object],
    ) -> ReconcileOutcome | None:
        """Report the finished test run to TestRail.

        Never raises: failures are logged and ``None`` is returned.
        """
        if not verify_config(self.config):
            return None

        if not isinstance(results, AggregatedResults):
            try:
                results = AggregatedResults.model_validate(results)
            except ValidationError as e:
                logger.error(f"[TestRail] Test results could not be read: {e}")
                return None

        name = self.render_name()
        refs = self.render_reference()
        report = format_report(results)

        # verify_config guarantees the credentials are set
        client = self._client_factory(
            str(self.config.host), str(self.config.user), str(self.config.api_key)
        )
        reconciler = create_reconciler(self.config, client)

        try:
            outcome = await reconciler.reconcile(name, refs, report, results.failed)
        except TestRailApiError as e:
            logger.error(
                f"[TestRail] Sending report to TestRail failed: {e.to_dict()}"
            )
            return None
        except (aiohttp.ClientError, TimeoutError, ReconcileError) as e:
            logger.error(f"[TestRail] Sending report to TestRail failed: {e}")
            return None

        if outcome.results_sent:
            logger.info("[TestRail] Sending report to TestRail successful")
        else:
            logger.warning(f"[TestRail] TestRail stored no result for run {name}")

        return outcome
