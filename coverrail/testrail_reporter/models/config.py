"""Effective reporter configuration."""

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_RUN_NAME = "%BRANCH%#%BUILD% - %DATE%"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Single-letter prefixes TestRail shows in front of identifiers
ID_PREFIXES = {
    "project_id": "P",
    "suite_id": "S",
    "plan_id": "R",
    "coverage_case_id": "C",
}


def parse_id(value: object, prefix: str) -> int:
    """Parse a TestRail identifier such as "P12" or 12.

    Only the uppercase prefix is stripped, so "p12" does not parse.

    Returns 0 when the value is missing, unparsable or not positive.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        return value if value > 0 else 0

    text = str(value).strip()
    if text[:1] == prefix:
        text = text[1:].strip()

    try:
        number = int(text)
    except ValueError:
        return 0
    return number if number > 0 else 0


def parse_count(value: object) -> int:
    """Parse a non-negative integer, falling back to 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = int(str(value).strip())
    except ValueError:
        return 0
    return max(number, 0)


class ReporterConfig(BaseModel):
    """Configuration resolved once per reporter instance."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    enabled: bool = Field(default=False, description="Send reports to TestRail")
    host: str | None = Field(default=None, description="TestRail server URL")
    user: str | None = Field(default=None, description="TestRail user name")
    api_key: str | None = Field(default=None, description="TestRail API key")
    project_id: int = Field(default=0, description="Project id (P prefix allowed)")
    suite_id: int = Field(default=0, description="Suite id (S prefix allowed)")
    plan_id: int = Field(default=0, description="Test plan id (R prefix allowed)")
    coverage_case_id: int = Field(
        default=0, description="Case receiving the result (C prefix allowed)"
    )
    run_name: str = Field(default=DEFAULT_RUN_NAME, description="Run name template")
    run_description: str | None = Field(
        default=None, description="Fixed run description, replaces the report"
    )
    reference: str | None = Field(default=None, description="Run reference template")
    branch_env: str = Field(
        default="BRANCH", description="Environment variable holding the branch"
    )
    build_no_env: str = Field(
        default="BUILD_NUMBER",
        description="Environment variable holding the build number",
    )
    date_format: str = Field(
        default=DEFAULT_DATE_FORMAT,
        description=(
            "strftime pattern for %DATE%; moment.js tokens such as YYYY-MM-DD"
            " are not translated and appear literally"
        ),
    )
    run_close_after_days: int = Field(
        default=0, description="Close uncompleted runs older than this many days"
    )
    strict_config_file: bool = Field(
        default=False, description="Fail when .testrailrc is missing or invalid"
    )

    @field_validator(*ID_PREFIXES, mode="before")
    @classmethod
    def _strip_id_prefix(cls, value: object, info: ValidationInfo) -> int:
        return parse_id(value, ID_PREFIXES[info.field_name])

    @field_validator("run_close_after_days", mode="before")
    @classmethod
    def _parse_days(cls, value: object) -> int:
        return parse_count(value)

    @property
    def use_plan(self) -> bool:
        """Whether runs are added as entries of a test plan."""
        return self.plan_id != 0
