"""Models for aggregated test results handed over by the test runner."""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CoverageStat(BaseModel):
    """Coverage numbers for one metric kind."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    pct: float = Field(default=0.0, description="Covered percentage")
    total: int = Field(default=0, description="Number of items")
    covered: int = Field(default=0, description="Number of covered items")
    skipped: int = Field(default=0, description="Number of skipped items")


class CoverageSummary(BaseModel):
    """Coverage summary per metric kind."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    statements: CoverageStat | None = None
    branches: CoverageStat | None = None
    functions: CoverageStat | None = None
    lines: CoverageStat | None = None

    @classmethod
    def from_istanbul(cls, data: Mapping[str, object]) -> "CoverageSummary":
        """Build a summary from an istanbul ``coverage-summary.json`` document.

        Both the whole document (with its ``total`` block) and the ``total``
        block alone are accepted.
        """
        total = data.get("total", data)
        if not isinstance(total, Mapping):
            raise ValueError("Coverage summary has no 'total' block")
        return cls.model_validate(dict(total))


class AggregatedResults(BaseModel):
    """Suite-level counts reported once the test run has finished."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    num_total_tests: int = 0
    num_passed_tests: int = 0
    num_pending_tests: int = 0
    num_failed_tests: int = 0
    num_total_test_suites: int = 0
    num_passed_test_suites: int = 0
    num_pending_test_suites: int = 0
    num_failed_test_suites: int = 0
    coverage: CoverageSummary | None = None

    @property
    def failed(self) -> bool:
        """Whether at least one test failed."""
        return self.num_failed_tests > 0
