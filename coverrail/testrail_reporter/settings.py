"""Configuration resolution for the TestRail reporter.

Values come from four sources. Precedence (highest to lowest):
1. TESTRAIL_* environment variables
2. Explicit options given to the reporter
3. The JSON dotfile ``.testrailrc`` in the working directory
4. Defaults declared on ReporterConfig
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path

from coverrail.testrail_reporter.models.config import ReporterConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".testrailrc"

ENV_VARS = {
    "enabled": "TESTRAIL_ENABLED",
    "host": "TESTRAIL_HOST",
    "user": "TESTRAIL_USER",
    "api_key": "TESTRAIL_API_KEY",
    "project_id": "TESTRAIL_PROJECT_ID",
    "suite_id": "TESTRAIL_SUITE_ID",
    "plan_id": "TESTRAIL_PLAN_ID",
    "coverage_case_id": "TESTRAIL_COVERAGE_CASE_ID",
    "run_name": "TESTRAIL_RUN_NAME",
    "run_description": "TESTRAIL_RUN_DESCRIPTION",
    "reference": "TESTRAIL_REFERENCE",
    "branch_env": "TESTRAIL_BRANCH_ENV",
    "build_no_env": "TESTRAIL_BUILD_NO_ENV",
    "date_format": "TESTRAIL_DATE_FORMAT",
    "run_close_after_days": "TESTRAIL_RUN_CLOSE_AFTER_DAYS",
    "strict_config_file": "TESTRAIL_STRICT_CONFIG_FILE",
}


class ConfigFileError(ValueError):
    """Raised when a strict config file is missing or not valid JSON."""


def _normalize_keys(values: Mapping[str, object]) -> dict[str, object]:
    """Map camelCase aliases and snake_case names onto field names."""
    names: dict[str, str] = {}
    for name, field in ReporterConfig.model_fields.items():
        names[name] = name
        if field.alias:
            names[field.alias] = name

    return {names[key]: value for key, value in values.items() if key in names}


def _first(*values: object) -> object:
    """Return the first value that is neither None nor an empty string."""
    for value in values:
        if value is None or value == "":
            continue
        return value
    return None


def _is_true(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def load_config_file(path: Path, strict: bool = False) -> dict[str, object]:
    """Load the JSON config file.

    Args:
        path: Location of the config file
        strict: Raise instead of ignoring a missing or malformed file

    Returns:
        The parsed object, or an empty dict when the file is empty or, in
        lenient mode, missing or invalid

    Raises:
        ConfigFileError: In strict mode, if the file is missing or invalid

    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        if strict:
            raise ConfigFileError(f"Cannot read config file {path}: {e}") from e
        logger.debug(f"No config file at {path}")
        return {}

    if not text.strip():
        return {}

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        if strict:
            raise ConfigFileError(f"Invalid JSON in {path}: {e}") from e
        logger.debug(f"Ignoring invalid config file {path}: {e}")
        return {}

    if not isinstance(data, dict):
        if strict:
            raise ConfigFileError(f"Config file {path} must contain a JSON object")
        return {}

    return data


def resolve_config(
    file_config: Mapping[str, object],
    options: Mapping[str, object],
    environ: Mapping[str, str],
) -> ReporterConfig:
    """Merge file values, explicit options and environment into one config.

    Each field takes the first of environment, option and file value that is
    neither ``None`` nor an empty string.
    """
    file_values = _normalize_keys(file_config)
    option_values = _normalize_keys(options)

    values: dict[str, object] = {}
    for name, env_var in ENV_VARS.items():
        value = _first(
            environ.get(env_var), option_values.get(name), file_values.get(name)
        )
        if value is not None:
            values[name] = value

    values["enabled"] = environ.get(ENV_VARS["enabled"]) == "true" or bool(
        _first(option_values.get("enabled"), file_values.get("enabled"))
    )
    values["strict_config_file"] = _is_true(values.get("strict_config_file", False))

    return ReporterConfig(**values)


def is_strict(options: Mapping[str, object], environ: Mapping[str, str]) -> bool:
    """Decide whether the config file must exist and be valid JSON."""
    value = _first(
        environ.get(ENV_VARS["strict_config_file"]),
        _normalize_keys(options).get("strict_config_file"),
    )
    return _is_true(value)


def load_config(
    options: Mapping[str, object],
    environ: Mapping[str, str],
    cwd: Path,
) -> ReporterConfig:
    """Load ``.testrailrc`` from ``cwd`` and resolve the effective config.

    Raises:
        ConfigFileError: If strict mode is on and the file is unusable

    """
    strict = is_strict(options, environ)
    file_config = load_config_file(cwd / CONFIG_FILE_NAME, strict=strict)
    return resolve_config(file_config, options, environ)
