"""Models for TestRail runs, tests and reconciliation outcomes."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

STATUS_PASSED = 1
STATUS_FAILED = 5


class Run(BaseModel):
    """A TestRail test run, as returned by the API."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., description="Run id")
    name: str = Field(default="", description="Run name")
    description: str | None = Field(default=None, description="Run description")
    refs: str | None = Field(default=None, description="Reference string")
    is_completed: bool = Field(default=False, description="Whether the run is closed")
    created_on: int | None = Field(
        default=None, description="Creation time as a unix timestamp"
    )
    url: str | None = Field(default=None, description="Link to the run")


class TestRailTest(BaseModel):
    """A test (case instance) inside a TestRail run."""

    __test__ = False

    model_config = ConfigDict(extra="ignore")

    id: int = Field(default=0, description="Test id")
    case_id: int = Field(..., description="Case the test was created from")
    run_id: int | None = Field(default=None, description="Run holding the test")
    status_id: int | None = Field(default=None, description="Latest status")


class PlanEntry(BaseModel):
    """An entry of a TestRail test plan, grouping one or more runs."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default="", description="Entry id (a GUID)")
    suite_id: int | None = Field(default=None, description="Suite of the entry")
    name: str = Field(default="", description="Entry name")
    runs: list[Run] = Field(default_factory=list, description="Runs of the entry")


class ReconcileOutcome(BaseModel):
    """What a reconciliation did on the TestRail side."""

    action: Literal["created", "updated", "plan_entry"] = Field(
        ..., description="How the run was obtained"
    )
    run_id: int = Field(..., description="Run receiving the result")
    name: str = Field(..., description="Rendered run name")
    results_sent: int = Field(
        default=0, description="Number of results acknowledged by TestRail"
    )
    closed_run_ids: list[int] = Field(
        default_factory=list, description="Stale runs closed on the way"
    )
