"""
In-memory template registry.

Holds the immutable built-in templates plus user-defined templates. The
registry hands out copies, so callers can never alter a stored template.

Example:
    registry = TemplateRegistry()
    for template in registry.recommended("react"):
        print(template.key)

    exported = registry.export_json("react-build")
"""

import json
from collections.abc import Iterable

from pydantic import ValidationError as PydanticValidationError

from stepflow.exceptions import (
    BuiltinTemplateConflictError,
    BuiltinTemplateReadOnlyError,
    TemplateAlreadyExistsError,
    TemplateFormatError,
    TemplateNotFoundError,
    TemplateReferenceError,
)
from stepflow.models.base import new_id
from stepflow.models.template import Template, TemplateUpdate
from stepflow.utils.logger import logger

from .builtin import builtin_templates
from .generator import template_reference_errors

REQUIRED_FIELDS = ("key", "name", "description", "steps")


def parse_template_json(text: str) -> Template:
    """Parse and check an exported template document.

    Raises:
        TemplateFormatError: If the text is not JSON, misses a required field,
            fails validation, or references undeclared step keys
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TemplateFormatError(f"Invalid JSON format: {e.msg}") from e

    if not isinstance(data, dict):
        raise TemplateFormatError("Invalid template format: expected a JSON object")

    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise TemplateFormatError(
            f"Invalid template format: missing required fields: {', '.join(missing)}"
        )

    try:
        template = Template.model_validate(data)
    except PydanticValidationError as e:
        raise TemplateFormatError(f"Invalid template format: {e.error_count()} errors") from e

    errors = template_reference_errors(template)
    if errors:
        raise TemplateFormatError(f"Invalid template format: {'; '.join(errors)}")
    return template


class TemplateRegistry:
    """Built-in and user templates indexed by key.

    Args:
        user_templates: User templates to register at construction.
        include_builtins: Seed the registry with the built-in templates.
    """

    def __init__(
        self,
        user_templates: Iterable[Template] = (),
        include_builtins: bool = True,
    ):
        self._builtins: dict[str, Template] = {}
        self._user: dict[str, Template] = {}
        if include_builtins:
            for template in builtin_templates():
                self._builtins[template.key] = template
        for template in user_templates:
            self.add(template)

    def __contains__(self, key: str) -> bool:
        return key in self._builtins or key in self._user

    def __len__(self) -> int:
        return len(self._builtins) + len(self._user)

    def _all(self) -> list[Template]:
        return [*self._builtins.values(), *self._user.values()]

    # Queries

    def list_templates(self) -> list[Template]:
        """All templates, built-ins first."""
        return [t.model_copy(deep=True) for t in self._all()]

    def templates_for_framework(self, framework: str) -> list[Template]:
        return [t.model_copy(deep=True) for t in self._all() if t.framework == framework]

    def recommended(self, framework: str | None = None) -> list[Template]:
        """All templates, those matching ``framework`` first."""
        if not framework:
            return self.list_templates()
        matching = self.templates_for_framework(framework)
        others = [t.model_copy(deep=True) for t in self._all() if t.framework != framework]
        return [*matching, *others]

    def find(self, key: str) -> Template | None:
        template = self._builtins.get(key) or self._user.get(key)
        return template.model_copy(deep=True) if template else None

    def get(self, key: str) -> Template:
        """Get a template by key.

        Raises:
            TemplateNotFoundError: If no template has this key
        """
        template = self.find(key)
        if template is None:
            raise TemplateNotFoundError(key)
        return template

    def is_builtin(self, key: str) -> bool:
        return key in self._builtins

    # Mutations

    def add(self, template: Template) -> Template:
        """Register a user template.

        A template without ``id`` gets a fresh one.

        Raises:
            BuiltinTemplateConflictError: If a built-in template has the same key
            TemplateAlreadyExistsError: If a user template has the same key
        """
        if template.key in self._builtins:
            raise BuiltinTemplateConflictError(template.key)
        if template.key in self._user:
            raise TemplateAlreadyExistsError(template.key)
        stored = template.model_copy(deep=True)
        if stored.id is None:
            stored.id = new_id()
        self._user[stored.key] = stored
        return stored.model_copy(deep=True)

    def import_json(self, text: str) -> Template:
        """Import a template exported by ``export_json``.

        Raises:
            TemplateFormatError: If the document is malformed
            BuiltinTemplateConflictError: If the key belongs to a built-in template
            TemplateAlreadyExistsError: If the key belongs to a user template
        """
        template = parse_template_json(text)
        # An exported template's identity belongs to the registry it came from
        template.id = None
        imported = self.add(template)
        logger.info(f"Template '{imported.key}' imported")
        return imported

    def export_json(self, key: str) -> str:
        """Serialize a template to the JSON document accepted by ``import_json``.

        Raises:
            TemplateNotFoundError: If no template has this key
        """
        template = self.get(key)
        return template.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    def update(self, key: str, data: TemplateUpdate) -> Template:
        """Apply a partial update to a user template. The key never changes.

        Raises:
            TemplateNotFoundError: If no template has this key
            BuiltinTemplateReadOnlyError: If the template is built-in
            TemplateReferenceError: If the updated steps reference undeclared keys
        """
        if key in self._builtins:
            raise BuiltinTemplateReadOnlyError(key)
        current = self._user.get(key)
        if current is None:
            raise TemplateNotFoundError(key)

        changes = data.model_dump(exclude_unset=True)
        merged = Template.model_validate(
            {**current.model_dump(), **changes, "key": current.key, "id": current.id}
        )
        for step in merged.steps:
            for dep in step.depends_on:
                if dep not in {s.key for s in merged.steps if s.key}:
                    raise TemplateReferenceError(key, step.key or step.name, dep)

        self._user[key] = merged
        logger.info(f"Template '{key}' updated")
        return merged.model_copy(deep=True)

    def delete(self, key: str) -> None:
        """Remove a user template.

        Raises:
            TemplateNotFoundError: If no template has this key
            BuiltinTemplateReadOnlyError: If the template is built-in
        """
        if key in self._builtins:
            raise BuiltinTemplateReadOnlyError(key)
        if self._user.pop(key, None) is None:
            raise TemplateNotFoundError(key)
        logger.info(f"Template '{key}' deleted")
