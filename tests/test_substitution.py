"""Unit tests for placeholder substitution helpers."""

import pytest
from pydantic import ValidationError

from stepflow.exceptions import InvalidVariableNameError
from stepflow.models import SecretReferenceCreate, VariableCreate
from stepflow.services.variables.substitution import (
    extract_variables,
    find_missing_variables,
    merge_sources,
    substitute,
)
from stepflow.utils.validation import validate_variable_name


class TestSubstitute:
    """Tests for substitute."""

    def test_replaces_known_placeholders(self):
        result = substitute(
            "cd ${PROJECT_PATH} && npm run ${TARGET}",
            {"PROJECT_PATH": "/srv/app", "TARGET": "build"},
        )
        assert result == "cd /srv/app && npm run build"

    def test_default_used_when_missing(self):
        assert substitute("node:${NODE_VERSION:18}") == "node:18"

    def test_value_wins_over_default(self):
        assert substitute("node:${NODE_VERSION:18}", {"NODE_VERSION": "20"}) == "node:20"

    def test_unknown_placeholder_left_untouched(self):
        assert substitute("echo ${UNKNOWN}") == "echo ${UNKNOWN}"

    def test_precedence_project_pipeline_secret(self):
        result = substitute(
            "${TOKEN}",
            variables={"TOKEN": "pipeline"},
            secrets={"TOKEN": "secret"},
            project_variables={"TOKEN": "project"},
        )
        assert result == "secret"
        assert substitute("${A}", {"A": "pipeline"}, project_variables={"A": "project"}) == "pipeline"


def test_merge_sources_precedence():
    merged = merge_sources({"A": "p", "B": "p"}, {"B": "s"}, {"A": "proj", "C": "proj"})
    assert merged == {"A": "p", "B": "s", "C": "proj"}


def test_extract_variables_deduplicates_in_order():
    assert extract_variables("${B} ${A:x} ${B}") == ["B", "A"]


def test_find_missing_variables():
    template = "${HOST}:${PORT:8080}/${PATH_PREFIX}"
    assert find_missing_variables(template, {"HOST": "localhost"}) == ["PATH_PREFIX"]


class TestValidateVariableName:
    """Tests for validate_variable_name."""

    @pytest.mark.parametrize("name", ["API_KEY", "_private", "node-version", "a1"])
    def test_accepts_valid_names(self, name):
        assert validate_variable_name(name) == name

    @pytest.mark.parametrize("name", ["", "1ABC", "has space", "dot.name"])
    def test_rejects_invalid_names(self, name):
        with pytest.raises(InvalidVariableNameError):
            validate_variable_name(name)

    @pytest.mark.parametrize(
        "build",
        [
            lambda name: VariableCreate(name=name),
            lambda name: SecretReferenceCreate(id="vault-key", name=name),
        ],
    )
    def test_models_apply_the_same_rule(self, build):
        with pytest.raises(ValidationError, match="must start with a letter or underscore"):
            build("1ABC")
