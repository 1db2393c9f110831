"""Tests for pipeline generation and the template registry."""

import json

import pytest

from stepflow.exceptions import (
    BuiltinTemplateConflictError,
    BuiltinTemplateReadOnlyError,
    TemplateAlreadyExistsError,
    TemplateFormatError,
    TemplateNotFoundError,
    TemplateReferenceError,
)
from stepflow.models import (
    Template,
    TemplateCustomizations,
    TemplateStepKind,
    TemplateUpdate,
)
from stepflow.services.pipeline.graph import plan_waves
from stepflow.services.templates import (
    BUILTIN_TEMPLATE_DATA,
    TemplateRegistry,
    generate_pipeline,
    slugify,
)
from stepflow.services.templates.generator import stringify


def _template(steps: list[dict], key: str = "custom", **fields) -> Template:
    return Template.model_validate(
        {"key": key, "name": "Custom", "description": "Custom template", "steps": steps, **fields}
    )


# ─── Generation ─────────────────────────────────────────────────────────────


class TestGeneratePipeline:
    """Tests for generate_pipeline."""

    def test_keys_become_step_ids(self):
        template = _template(
            [
                {"key": "a", "name": "Step A", "config": {"command": "echo a"}},
                {"key": "b", "name": "Step B", "dependsOn": ["a"]},
            ]
        )
        pipeline = generate_pipeline(template, "proj-1", "Proj")
        assert [s.id for s in pipeline.steps] == ["a", "b"]
        assert pipeline.steps[1].depends_on == ["a"]
        assert pipeline.steps[0].config == {"command": "echo a"}

    def test_step_without_key_uses_slug(self):
        template = _template([{"name": "Run  Unit Tests"}])
        pipeline = generate_pipeline(template, "proj-1", "Proj")
        assert pipeline.steps[0].id == "run-unit-tests"

    def test_kind_carries_execution_type(self):
        template = _template([{"key": "img", "name": "Image", "type": "docker_command"}])
        kind = generate_pipeline(template, "proj-1", "Proj").steps[0].kind
        assert isinstance(kind, TemplateStepKind)
        assert kind.marker == "template-docker_command-img"

    def test_undeclared_dependency_rejected(self):
        template = _template(
            [{"key": "a", "name": "A"}, {"key": "b", "name": "B", "dependsOn": ["ghost"]}]
        )
        with pytest.raises(TemplateReferenceError):
            generate_pipeline(template, "proj-1", "Proj")

    def test_react_build(self):
        template = TemplateRegistry().get("react-build")
        pipeline = generate_pipeline(template, "proj-1", "Proj")

        assert pipeline.name == "Proj - React Build Pipeline"
        assert pipeline.project_id == "proj-1"
        assert pipeline.secrets == []
        assert plan_waves(pipeline.steps) == [
            ["install-deps"],
            ["lint-code", "run-tests"],
            ["build-project"],
        ]
        assert {v.name: v.value for v in pipeline.variables} == {
            "NODE_VERSION": "18",
            "BUILD_ENV": "production",
        }
        assert pipeline.execution_context.sdk_type == "node"

    def test_customizations(self):
        template = TemplateRegistry().get("react-build")
        customizations = TemplateCustomizations(
            variables={"NODE_VERSION": 20, "UNDECLARED": "x"},
            enabled_steps=["install-deps", "build-project"],
        )
        pipeline = generate_pipeline(template, "proj-1", "Proj", customizations)

        enabled = {s.id: s.enabled for s in pipeline.steps}
        assert enabled == {
            "install-deps": True,
            "lint-code": False,
            "run-tests": False,
            "build-project": True,
        }
        values = {v.name: v.value for v in pipeline.variables}
        assert values["NODE_VERSION"] == "20"
        assert "UNDECLARED" not in values

    def test_every_builtin_generates_a_valid_pipeline(self):
        registry = TemplateRegistry()
        for data in BUILTIN_TEMPLATE_DATA:
            pipeline = generate_pipeline(registry.get(data["key"]), "p", "P")
            assert len(pipeline.steps) == len(data["steps"])


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, ""), (True, "true"), (False, "false"), (8080, "8080"), (2.0, "2"), (1.5, "1.5"), ("x", "x")],
)
def test_stringify(value, expected):
    assert stringify(value) == expected


def test_slugify():
    assert slugify("  Build Docker Image ") == "build-docker-image"


# ─── Registry ───────────────────────────────────────────────────────────────


class TestTemplateRegistry:
    """Tests for TemplateRegistry."""

    def test_builtins_loaded(self):
        registry = TemplateRegistry()
        assert len(registry) == len(BUILTIN_TEMPLATE_DATA)
        assert registry.is_builtin("react-build")
        assert registry.get("react-build").is_builtin

    def test_returned_templates_are_copies(self):
        registry = TemplateRegistry()
        template = registry.get("react-build")
        template.name = "Changed"
        template.steps.clear()
        assert registry.get("react-build").name == "React Build Pipeline"
        assert len(registry.get("react-build").steps) == 4

    def test_unknown_key(self):
        with pytest.raises(TemplateNotFoundError):
            TemplateRegistry().get("nope")

    def test_recommended_puts_framework_first(self):
        recommended = TemplateRegistry().recommended("vue")
        assert recommended[0].key == "vue-build"
        assert len(recommended) == len(BUILTIN_TEMPLATE_DATA)

    def test_templates_for_framework(self):
        keys = [t.key for t in TemplateRegistry().templates_for_framework("rust")]
        assert keys == ["rust-build"]

    def test_export_import_round_trip(self):
        registry = TemplateRegistry()
        data = json.loads(registry.export_json("react-build"))
        assert "dependsOn" in data["steps"][1]
        data["key"] = "my-react"

        imported = registry.import_json(json.dumps(data))

        assert imported.key == "my-react"
        assert imported.id is not None
        assert not imported.is_builtin
        original = registry.get("react-build")
        assert imported.steps == original.steps
        assert imported.variables == original.variables

    def test_import_builtin_key_conflicts(self):
        registry = TemplateRegistry()
        with pytest.raises(BuiltinTemplateConflictError):
            registry.import_json(registry.export_json("react-build"))

    def test_import_twice(self):
        registry = TemplateRegistry()
        text = json.dumps(
            {"key": "mine", "name": "Mine", "description": "d", "steps": [{"name": "Go"}]}
        )
        registry.import_json(text)
        with pytest.raises(TemplateAlreadyExistsError):
            registry.import_json(text)

    @pytest.mark.parametrize(
        "text",
        [
            "{not json",
            "[1, 2]",
            json.dumps({"key": "x", "name": "X", "description": "d"}),
            json.dumps({"key": "x", "name": "X", "description": "d", "steps": "nope"}),
            json.dumps(
                {
                    "key": "x",
                    "name": "X",
                    "description": "d",
                    "steps": [{"key": "a", "name": "A", "dependsOn": ["ghost"]}],
                }
            ),
        ],
    )
    def test_malformed_import(self, text):
        registry = TemplateRegistry()
        with pytest.raises(TemplateFormatError):
            registry.import_json(text)
        assert len(registry) == len(BUILTIN_TEMPLATE_DATA)

    def test_builtins_are_read_only(self):
        registry = TemplateRegistry()
        with pytest.raises(BuiltinTemplateReadOnlyError):
            registry.update("react-build", TemplateUpdate(name="Hacked"))
        with pytest.raises(BuiltinTemplateReadOnlyError):
            registry.delete("react-build")

    def test_update_user_template(self):
        registry = TemplateRegistry()
        added = registry.add(_template([{"key": "a", "name": "A"}], key="mine"))

        updated = registry.update("mine", TemplateUpdate(name="Renamed", tags=["x"]))

        assert updated.key == "mine"
        assert updated.id == added.id
        assert updated.name == "Renamed"
        assert registry.get("mine").tags == ["x"]

    def test_update_rejects_dangling_reference(self):
        registry = TemplateRegistry()
        registry.add(_template([{"key": "a", "name": "A"}], key="mine"))
        with pytest.raises(TemplateReferenceError):
            registry.update(
                "mine",
                TemplateUpdate.model_validate(
                    {"steps": [{"key": "b", "name": "B", "dependsOn": ["a"]}]}
                ),
            )
        assert registry.get("mine").steps[0].key == "a"

    def test_delete_user_template(self):
        registry = TemplateRegistry()
        registry.add(_template([{"name": "A"}], key="mine"))
        registry.delete("mine")
        assert "mine" not in registry
        with pytest.raises(TemplateNotFoundError):
            registry.delete("mine")

    def test_registry_without_builtins(self):
        registry = TemplateRegistry(include_builtins=False)
        assert len(registry) == 0
        registry.add(_template([{"name": "A"}], key="react-build"))
        assert not registry.is_builtin("react-build")
