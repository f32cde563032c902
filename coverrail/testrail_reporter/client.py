"""Async client for the TestRail API v2."""

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import aiohttp
from pydantic import ValidationError

from coverrail.testrail_reporter.models.run import PlanEntry, Run, TestRailTest

logger = logging.getLogger(__name__)


class TestRailApiError(RuntimeError):
    """Raised when TestRail answers with an error status or an unusable body."""

    __test__ = False

    def __init__(self, url: str, status: int, message: object) -> None:
        """Store the failed request details."""
        super().__init__(f"TestRail API request failed: {status} {url} {message}")
        self.url = url
        self.status = status
        self.message = message

    def to_dict(self) -> dict[str, object]:
        """Return the error as a ``{url, status, message}`` mapping."""
        return {"url": self.url, "status": self.status, "message": self.message}


class TestRailClient:
    """Minimal TestRail client covering runs, plans, tests and results."""

    __test__ = False

    def __init__(self, host: str, user: str, api_key: str) -> None:
        """Initialize client with server URL and credentials."""
        if "://" not in host:
            host = f"https://{host}"
        self.base_url = f"{host.rstrip('/')}/index.php?/api/v2"
        self._auth = aiohttp.BasicAuth(user, api_key)

    async def get_runs(self, project_id: int, is_completed: int = 0) -> list[Run]:
        """List runs of a project, filtered by completion."""
        return await self._request(
            "GET",
            f"get_runs/{project_id}&is_completed={is_completed}",
            parse=lambda data: [
                Run.model_validate(item) for item in self._items(data, "runs")
            ],
        )

    async def get_tests(self, run_id: int) -> list[TestRailTest]:
        """List the tests of a run."""
        return await self._request(
            "GET",
            f"get_tests/{run_id}",
            parse=lambda data: [
                TestRailTest.model_validate(item)
                for item in self._items(data, "tests")
            ],
        )

    async def add_run(self, project_id: int, payload: Mapping[str, object]) -> Run:
        """Create a run in a project."""
        return await self._request(
            "POST", f"add_run/{project_id}", payload, parse=Run.model_validate
        )

    async def update_run(self, run_id: int, payload: Mapping[str, object]) -> Run:
        """Update description, cases or other fields of a run."""
        return await self._request(
            "POST", f"update_run/{run_id}", payload, parse=Run.model_validate
        )

    async def close_run(self, run_id: int) -> Run:
        """Close a run, archiving its tests and results."""
        return await self._request(
            "POST", f"close_run/{run_id}", {}, parse=Run.model_validate
        )

    async def add_plan_entry(
        self, plan_id: int, payload: Mapping[str, object]
    ) -> PlanEntry:
        """Add an entry (one or more runs) to a test plan."""
        return await self._request(
            "POST",
            f"add_plan_entry/{plan_id}",
            payload,
            parse=PlanEntry.model_validate,
        )

    async def add_results_for_cases(
        self, run_id: int, results: Sequence[Mapping[str, object]]
    ) -> list[object]:
        """Add results to a run, addressing tests by case id."""
        data = await self._request(
            "POST", f"add_results_for_cases/{run_id}", {"results": list(results)}
        )
        return data if isinstance(data, list) else []

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, object] | None = None,
        parse: Callable[[object], Any] | None = None,
    ) -> Any:
        """Send one request and return the decoded, optionally parsed, body.

        Error statuses, bodies that are not JSON and bodies ``parse`` rejects
        all raise ``TestRailApiError``.
        """
        url = f"{self.base_url}/{endpoint}"
        headers = {"Content-Type": "application/json"}
        logger.debug(f"{method} {url}")

        async with aiohttp.ClientSession() as session:
            async with session.request(
                method,
                url,
                headers=headers,
                auth=self._auth,
                json=dict(payload) if payload is not None else None,
            ) as response:
                text = await response.text()
                if response.status >= 400:
                    raise TestRailApiError(
                        str(response.url), response.status, self._decode(text)
                    )

                try:
                    data = json.loads(text)
                except ValueError:
                    raise TestRailApiError(
                        str(response.url), response.status, text
                    ) from None

                if parse is None:
                    return data
                try:
                    return parse(data)
                except ValidationError as e:
                    raise TestRailApiError(
                        str(response.url),
                        response.status,
                        e.errors(include_url=False, include_context=False),
                    ) from e

    @staticmethod
    def _decode(text: str) -> object:
        """Decode an error body as JSON when possible."""
        try:
            return json.loads(text)
        except ValueError:
            return text

    @staticmethod
    def _items(data: object, key: str) -> list[Mapping[str, object]]:
        """Unwrap bare and paginated list responses."""
        if isinstance(data, Mapping):
            data = data.get(key, [])
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, Mapping)]
