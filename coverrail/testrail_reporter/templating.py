"""Placeholder substitution for run names and references."""

from datetime import datetime

BRANCH_TOKEN = "%BRANCH%"
BUILD_TOKEN = "%BUILD%"
DATE_TOKEN = "%DATE%"

DEFAULT_PLAN_REFERENCE = f"{BRANCH_TOKEN}#{BUILD_TOKEN}"


def _substitute(template: str, branch: str, build_no: str) -> str:
    # Only the first occurrence of each token is replaced
    return template.replace(BRANCH_TOKEN, branch, 1).replace(BUILD_TOKEN, build_no, 1)


def render_name(
    template: str,
    branch: str,
    build_no: str,
    now: datetime,
    date_format: str,
) -> str:
    """Render a run name, e.g. ``"%BRANCH%#%BUILD% - %DATE%"``."""
    name = _substitute(template, branch, build_no)
    return name.replace(DATE_TOKEN, now.strftime(date_format), 1)


def render_reference(
    template: str | None,
    branch: str,
    build_no: str,
    default: str = "",
) -> str:
    """Render the reference string used to find a reusable run.

    An unset template falls back to ``default``, which is rendered too.
    """
    return _substitute(template or default, branch, build_no)
