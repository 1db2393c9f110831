"""Database-backed tests for the variable, pipeline and template services."""

import json

import pytest
from pydantic import ValidationError

from stepflow.exceptions import (
    DatabaseIntegrityError,
    EntityAlreadyExistsError,
    PipelineNotFoundError,
    SecretReferenceNotFoundError,
    TemplateAlreadyExistsError,
    VariableNotFoundError,
)
from stepflow.models import (
    PipelineCreate,
    PipelineUpdate,
    SecretReferenceCreate,
    TemplateUpdate,
    VariableCreate,
    VariableScope,
    VariableUpdate,
)
from stepflow.repositories import TemplateRepository
from stepflow.services.pipeline_service import DatabasePipelineSource
from stepflow.services.templates import TemplateRegistry, TemplateService
from tests.utils import make_step

pytestmark = pytest.mark.asyncio

PROJECT = VariableScope.project("proj-1")


def _pipeline_payload(**fields) -> PipelineCreate:
    return PipelineCreate(
        project_id=fields.pop("project_id", "proj-1"),
        name=fields.pop("name", "Build"),
        steps=fields.pop("steps", [make_step("install"), make_step("build", "install")]),
        variables=fields.pop("variables", [VariableCreate(name="NODE_VERSION", value="20")]),
        secrets=fields.pop(
            "secrets", [SecretReferenceCreate(id="vault-npm-token", name="NPM_TOKEN")]
        ),
        **fields,
    )


# ─── VariableService ────────────────────────────────────────────────────────


class TestVariableService:
    """Tests for VariableService."""

    async def test_create_and_list(self, variable_service):
        await variable_service.create_variable(PROJECT, VariableCreate(name="B", value="2"))
        await variable_service.create_variable(PROJECT, VariableCreate(name="A", value="1"))

        variables = await variable_service.list_variables(PROJECT)

        assert [(v.name, v.value) for v in variables] == [("A", "1"), ("B", "2")]
        assert variables[0].owner_id == "proj-1"

    async def test_scopes_are_isolated(self, variable_service):
        await variable_service.create_variable(PROJECT, VariableCreate(name="A", value="1"))
        other = VariableScope.pipeline("proj-1")
        assert await variable_service.list_variables(other) == []
        await variable_service.create_variable(other, VariableCreate(name="A", value="2"))
        assert (await variable_service.get_variable(PROJECT, "A")).value == "1"

    async def test_duplicate_name(self, variable_service):
        await variable_service.create_variable(PROJECT, VariableCreate(name="A"))
        with pytest.raises(EntityAlreadyExistsError):
            await variable_service.create_variable(PROJECT, VariableCreate(name="A"))

    async def test_update_set_and_delete(self, variable_service):
        await variable_service.create_variable(
            PROJECT, VariableCreate(name="A", value="1", description="first")
        )

        updated = await variable_service.update_variable(PROJECT, "A", VariableUpdate(value="2"))
        assert updated.value == "2"
        assert updated.description == "first"

        replaced = await variable_service.set_variable(PROJECT, VariableCreate(name="A", value="3"))
        assert replaced.value == "3"
        assert replaced.description is None

        await variable_service.delete_variable(PROJECT, "A")
        with pytest.raises(VariableNotFoundError):
            await variable_service.get_variable(PROJECT, "A")
        with pytest.raises(VariableNotFoundError):
            await variable_service.delete_variable(PROJECT, "A")

    async def test_secrets(self, variable_service):
        await variable_service.add_secret(PROJECT, SecretReferenceCreate(id="k1", name="TOKEN"))
        with pytest.raises(EntityAlreadyExistsError):
            await variable_service.add_secret(
                PROJECT, SecretReferenceCreate(id="k2", name="TOKEN")
            )

        secrets = await variable_service.replace_secrets(
            PROJECT, [SecretReferenceCreate(id="k3", name="OTHER")]
        )
        assert [(s.name, s.id) for s in secrets] == [("OTHER", "k3")]

        await variable_service.remove_secret(PROJECT, "OTHER")
        assert await variable_service.list_secrets(PROJECT) == []
        with pytest.raises(SecretReferenceNotFoundError):
            await variable_service.remove_secret(PROJECT, "OTHER")

    async def test_failed_replace_keeps_old_variables(self, variable_service):
        await variable_service.create_variable(PROJECT, VariableCreate(name="KEEP", value="1"))

        with pytest.raises(DatabaseIntegrityError):
            await variable_service.replace_variables(
                PROJECT, [VariableCreate(name="X", value="1"), VariableCreate(name="X", value="2")]
            )

        assert [v.name for v in await variable_service.list_variables(PROJECT)] == ["KEEP"]


# ─── PipelineService ────────────────────────────────────────────────────────


class TestPipelineService:
    """Tests for PipelineService."""

    async def test_create_and_get(self, pipeline_service):
        created = await pipeline_service.create(_pipeline_payload())

        pipeline = await pipeline_service.get(created.id)

        assert pipeline.name == "Build"
        assert [s.id for s in pipeline.steps] == ["install", "build"]
        assert pipeline.steps[1].depends_on == ["install"]
        assert pipeline.steps[0].kind.marker == "block-install"
        assert [(v.name, v.value) for v in pipeline.variables] == [("NODE_VERSION", "20")]
        assert pipeline.secret_ids == ["vault-npm-token"]
        assert pipeline.execution_context.working_directory == "${PROJECT_PATH}"

    async def test_unknown_pipeline(self, pipeline_service):
        with pytest.raises(PipelineNotFoundError):
            await pipeline_service.get("nope")

    async def test_list_by_project(self, pipeline_service):
        await pipeline_service.create(_pipeline_payload(name="One"))
        await pipeline_service.create(_pipeline_payload(name="Two"))
        await pipeline_service.create(_pipeline_payload(name="Elsewhere", project_id="proj-2"))

        names = [p.name for p in await pipeline_service.list_by_project("proj-1")]
        assert sorted(names) == ["One", "Two"]

    async def test_update_replaces_lists(self, pipeline_service):
        created = await pipeline_service.create(_pipeline_payload())

        updated = await pipeline_service.update(
            created.id,
            PipelineUpdate(
                description="nightly",
                steps=[make_step("only")],
                variables=[VariableCreate(name="CI", value="true")],
            ),
        )

        assert updated.name == "Build"
        assert updated.description == "nightly"
        assert [s.id for s in updated.steps] == ["only"]
        assert [v.name for v in updated.variables] == ["CI"]
        assert updated.secret_ids == ["vault-npm-token"]
        assert updated.updated_at >= created.updated_at

    async def test_duplicate_declaration_names_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate variable names: X"):
            PipelineUpdate(variables=[VariableCreate(name="X"), VariableCreate(name="X")])
        with pytest.raises(ValidationError, match="Duplicate secret reference names: TOKEN"):
            _pipeline_payload(
                secrets=[
                    SecretReferenceCreate(id="k1", name="TOKEN"),
                    SecretReferenceCreate(id="k2", name="TOKEN"),
                ]
            )

    async def test_failed_update_keeps_everything(self, pipeline_service):
        created = await pipeline_service.create(_pipeline_payload())
        # Skips validation so the clash reaches the database
        data = PipelineUpdate.model_construct(
            name="Renamed",
            variables=[VariableCreate(name="X", value="1"), VariableCreate(name="X", value="2")],
        )

        with pytest.raises(DatabaseIntegrityError):
            await pipeline_service.update(created.id, data)

        pipeline = await pipeline_service.get(created.id)
        assert pipeline.name == "Build"
        assert [(v.name, v.value) for v in pipeline.variables] == [("NODE_VERSION", "20")]

    async def test_set_enabled(self, pipeline_service):
        created = await pipeline_service.create(_pipeline_payload())
        assert not (await pipeline_service.set_enabled(created.id, False)).enabled
        assert (await pipeline_service.set_enabled(created.id, True)).enabled

    async def test_duplicate(self, pipeline_service):
        created = await pipeline_service.create(_pipeline_payload())

        copy = await pipeline_service.duplicate(created.id)

        assert copy.id != created.id
        assert copy.name == "Build (copy)"
        assert copy.steps == created.steps
        assert [v.name for v in copy.variables] == ["NODE_VERSION"]
        assert copy.secret_ids == ["vault-npm-token"]
        assert (await pipeline_service.duplicate(created.id, name="Named")).name == "Named"

    async def test_delete_clears_pipeline_scope(self, pipeline_service, variable_service):
        created = await pipeline_service.create(_pipeline_payload())
        scope = VariableScope.pipeline(created.id)

        await pipeline_service.delete(created.id)

        with pytest.raises(PipelineNotFoundError):
            await pipeline_service.get(created.id)
        assert await variable_service.list_variables(scope) == []
        assert await variable_service.list_secrets(scope) == []

    async def test_invalid_graph_is_stored_and_reported(self, pipeline_service):
        created = await pipeline_service.create(
            _pipeline_payload(steps=[make_step("a", "missing")])
        )

        result = await pipeline_service.validate(created.id)
        plan = await pipeline_service.plan(created.id)

        assert result.errors == ["Step 'a' depends on unknown step 'missing'"]
        assert not plan.valid
        assert plan.waves == []

    async def test_plan(self, pipeline_service):
        created = await pipeline_service.create(_pipeline_payload())
        plan = await pipeline_service.plan(created.id)
        assert plan.valid
        assert plan.waves == [["install"], ["build"]]


async def test_database_pipeline_source(database, pipeline_service):
    created = await pipeline_service.create(_pipeline_payload())
    source = DatabasePipelineSource(database)

    pipeline = await source.get_pipeline(created.id)
    variables = await source.list_variables(VariableScope.pipeline(created.id))
    secrets = await source.list_secrets(VariableScope.pipeline(created.id))

    assert pipeline.name == "Build"
    assert [v.name for v in variables] == ["NODE_VERSION"]
    assert [s.id for s in secrets] == ["vault-npm-token"]


# ─── TemplateService ────────────────────────────────────────────────────────


class TestTemplateService:
    """Tests for TemplateService."""

    def _document(self, key: str = "team-build") -> str:
        return json.dumps(
            {
                "key": key,
                "name": "Team Build",
                "description": "Our build",
                "framework": "react",
                "steps": [
                    {"key": "install", "name": "Install", "config": {"command": "npm ci"}},
                    {"key": "build", "name": "Build", "dependsOn": ["install"]},
                ],
            }
        )

    async def test_import_persists_and_reloads(self, template_service, test_session):
        imported = await template_service.import_json(self._document())
        assert imported.id is not None

        registry = TemplateRegistry()
        fresh = TemplateService(TemplateRepository(test_session), registry)
        assert await fresh.load() == 1

        loaded = registry.get("team-build")
        assert loaded.id == imported.id
        assert [s.key for s in loaded.steps] == ["install", "build"]
        assert loaded.steps[1].depends_on == ["install"]
        assert await fresh.load() == 0

    async def test_import_conflict(self, template_service):
        await template_service.import_json(self._document())
        with pytest.raises(TemplateAlreadyExistsError):
            await template_service.import_json(self._document())

    async def test_update_and_delete_persist(self, template_service, test_session):
        await template_service.import_json(self._document())
        await template_service.update("team-build", TemplateUpdate(description="Updated"))

        registry = TemplateRegistry()
        fresh = TemplateService(TemplateRepository(test_session), registry)
        await fresh.load()
        assert registry.get("team-build").description == "Updated"

        await template_service.delete("team-build")
        assert await TemplateRepository(test_session).find_by_key("team-build") is None

    async def test_failed_import_leaves_registry_unchanged(self, template_service, monkeypatch):
        async def failing_create(entity, commit=True):
            raise DatabaseIntegrityError("Conflicting data was not saved")

        monkeypatch.setattr(template_service.template_repo, "create", failing_create)
        with pytest.raises(DatabaseIntegrityError):
            await template_service.import_json(self._document())
        assert "team-build" not in template_service.registry

    async def test_failed_update_and_delete_restore_registry(self, template_service, monkeypatch):
        imported = await template_service.import_json(self._document())

        async def failing_write(*args, **kwargs):
            raise DatabaseIntegrityError("Conflicting data was not saved")

        monkeypatch.setattr(template_service.template_repo, "update", failing_write)
        with pytest.raises(DatabaseIntegrityError):
            await template_service.update("team-build", TemplateUpdate(description="Updated"))
        assert template_service.registry.get("team-build").description == "Our build"

        monkeypatch.setattr(template_service.template_repo, "delete", failing_write)
        with pytest.raises(DatabaseIntegrityError):
            await template_service.delete("team-build")
        restored = template_service.registry.get("team-build")
        assert restored.id == imported.id
        assert restored.description == "Our build"

    async def test_generate(self, template_service):
        pipeline = template_service.generate("react-build", "proj-1", "Shop")
        assert pipeline.name == "Shop - React Build Pipeline"
        assert len(pipeline.steps) == 4

    async def test_list_by_framework(self, template_service):
        await template_service.import_json(self._document())
        keys = [t.key for t in template_service.list_templates("react")]
        assert keys == ["react-build", "team-build"]
