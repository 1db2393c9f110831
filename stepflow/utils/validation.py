"""
Name validation utilities for Stepflow.

Variable and secret reference names become environment variable names on the
executor, so they share one naming rule.
"""

import re

from ..exceptions import InvalidVariableNameError

VARIABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def validate_variable_name(name: str) -> str:
    """
    Check a variable name.

    Names start with a letter or underscore and contain only letters, digits,
    underscores and hyphens.

    Args:
        name: The name to check

    Returns:
        The name, unchanged

    Raises:
        InvalidVariableNameError: If the name is empty or malformed
    """
    if not name:
        raise InvalidVariableNameError("Variable name cannot be empty")
    if not VARIABLE_NAME_PATTERN.match(name):
        raise InvalidVariableNameError(
            f"Invalid variable name '{name}': must start with a letter or underscore "
            "and contain only letters, numbers, underscores, and hyphens"
        )
    return name
