"""
Variables and secrets: scoped declarations, vault access, resolution and
placeholder substitution.
"""

from .resolver import VariableResolver, VariableSource
from .service import VariableService
from .substitution import extract_variables, find_missing_variables, substitute
from .vault import HttpSecretVault, SecretVault

__all__ = [
    "HttpSecretVault",
    "SecretVault",
    "VariableResolver",
    "VariableService",
    "VariableSource",
    "extract_variables",
    "find_missing_variables",
    "substitute",
]
