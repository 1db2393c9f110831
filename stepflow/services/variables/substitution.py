"""
Placeholder substitution for command templates and working directories.

Supports ``${NAME}`` and ``${NAME:default}``. Sources are merged with
precedence project < pipeline < secrets.
"""

import re
from collections.abc import Mapping

from stepflow.utils.logger import logger

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


def merge_sources(
    variables: Mapping[str, str] | None = None,
    secrets: Mapping[str, str] | None = None,
    project_variables: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge substitution sources, later sources overriding earlier ones."""
    return {**(project_variables or {}), **(variables or {}), **(secrets or {})}


def substitute(
    template: str,
    variables: Mapping[str, str] | None = None,
    secrets: Mapping[str, str] | None = None,
    project_variables: Mapping[str, str] | None = None,
) -> str:
    """Replace placeholders in a template string.

    Unknown placeholders without a default are left untouched and logged by
    name only.

    Args:
        template: String containing ``${NAME}`` placeholders
        variables: Pipeline-scope values
        secrets: Resolved secret values; override every other source
        project_variables: Project-scope values; lowest precedence

    Returns:
        The substituted string
    """
    values = merge_sources(variables, secrets, project_variables)

    def replace(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        default = match.group(2)
        if name in values:
            return values[name]
        if default is not None:
            return default.strip()
        logger.warning(f"Variable '{name}' not found and no default provided")
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replace, template)


def extract_variables(template: str) -> list[str]:
    """List placeholder names in order of first appearance, without duplicates."""
    names: list[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template):
        name = match.group(1).strip()
        if name not in names:
            names.append(name)
    return names


def find_missing_variables(
    template: str,
    variables: Mapping[str, str] | None = None,
    secrets: Mapping[str, str] | None = None,
    project_variables: Mapping[str, str] | None = None,
) -> list[str]:
    """List placeholders that have neither a value nor a default.

    A name counts as covered when any of its occurrences carries a default.
    """
    values = merge_sources(variables, secrets, project_variables)
    with_default = {
        match.group(1).strip()
        for match in PLACEHOLDER_PATTERN.finditer(template)
        if match.group(2) is not None
    }
    return [
        name
        for name in extract_variables(template)
        if name not in values and name not in with_default
    ]
