"""Service layer keeping the template registry and the template table in sync."""

from stepflow.models.base import new_id
from stepflow.models.pipeline import PipelineCreate
from stepflow.models.template import (
    PipelineTemplate,
    Template,
    TemplateCustomizations,
    TemplateUpdate,
)
from stepflow.repositories.template_repository import TemplateRepository
from stepflow.types import JSONDict
from stepflow.utils.logger import logger

from .generator import generate_pipeline
from .registry import TemplateRegistry, parse_template_json


def _row_data(template: Template) -> JSONDict:
    return template.model_dump(mode="json", by_alias=True, exclude={"id"})


class TemplateService:
    """Template queries, generation, and persisted user-template changes."""

    def __init__(self, template_repo: TemplateRepository, registry: TemplateRegistry):
        """Initialize template service.

        Args:
            template_repo: Template repository instance
            registry: Registry shared by the application
        """
        self.template_repo = template_repo
        self.registry = registry

    async def load(self) -> int:
        """Register every stored user template that the registry does not know yet.

        Returns:
            Number of templates registered
        """
        loaded = 0
        for row in await self.template_repo.list_ordered():
            if row.key in self.registry:
                continue
            template = Template.model_validate({**row.data, "key": row.key, "id": row.id})
            self.registry.add(template)
            loaded += 1
        logger.info(f"Loaded {loaded} user templates")
        return loaded

    def list_templates(self, framework: str | None = None) -> list[Template]:
        if framework:
            return self.registry.templates_for_framework(framework)
        return self.registry.list_templates()

    def recommended(self, framework: str | None = None) -> list[Template]:
        return self.registry.recommended(framework)

    def get(self, key: str) -> Template:
        return self.registry.get(key)

    def export_json(self, key: str) -> str:
        return self.registry.export_json(key)

    def generate(
        self,
        key: str,
        project_id: str,
        project_name: str,
        customizations: TemplateCustomizations | None = None,
    ) -> PipelineCreate:
        """Generate an unsaved pipeline from the template with this key."""
        return generate_pipeline(self.registry.get(key), project_id, project_name, customizations)

    async def import_json(self, text: str) -> Template:
        """Import and persist a user template.

        Raises:
            TemplateFormatError: If the document is malformed
            BuiltinTemplateConflictError: If the key belongs to a built-in template
            TemplateAlreadyExistsError: If the key belongs to a user template
        """
        parsed = parse_template_json(text)
        parsed.id = new_id()
        template = self.registry.add(parsed)
        try:
            await self.template_repo.create(
                PipelineTemplate(id=parsed.id, key=template.key, data=_row_data(template))
            )
        except Exception:
            self.registry.delete(template.key)
            raise
        logger.info(f"Template '{template.key}' imported and stored")
        return template

    async def update(self, key: str, data: TemplateUpdate) -> Template:
        """Update a user template in the registry and the database.

        Raises:
            TemplateNotFoundError: If no template has this key
            BuiltinTemplateReadOnlyError: If the template is built-in
        """
        previous = self.registry.find(key)
        template = self.registry.update(key, data)
        try:
            row = await self.template_repo.find_by_key(key)
            if row is not None:
                await self.template_repo.update(row, {"data": _row_data(template)})
        except Exception:
            self._restore(key, previous)
            raise
        return template

    async def delete(self, key: str) -> None:
        """Delete a user template from the registry and the database.

        Raises:
            TemplateNotFoundError: If no template has this key
            BuiltinTemplateReadOnlyError: If the template is built-in
        """
        previous = self.registry.find(key)
        self.registry.delete(key)
        try:
            row = await self.template_repo.find_by_key(key)
            if row is not None:
                await self.template_repo.delete(row)
        except Exception:
            self._restore(key, previous)
            raise

    def _restore(self, key: str, previous: Template | None) -> None:
        # The registry must match the table after a failed write
        if key in self.registry:
            self.registry.delete(key)
        if previous is not None:
            self.registry.add(previous)
