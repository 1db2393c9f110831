"""
Pipeline generation from templates.

Template steps reference each other by template-local keys. Generation first
maps every key to a concrete step ID, then rewrites ``depends_on`` through
that map, so generated pipelines never carry raw keys.
"""

import re

from stepflow.exceptions import PipelineValidationError, TemplateReferenceError
from stepflow.models.pipeline import PipelineCreate, Step, TemplateStepKind
from stepflow.models.template import (
    DefaultValue,
    Template,
    TemplateCustomizations,
    TemplateStep,
)
from stepflow.models.variable import VariableCreate
from stepflow.services.pipeline.graph import validate_steps
from stepflow.utils.logger import logger

_WHITESPACE = re.compile(r"\s+")


def slugify(name: str) -> str:
    """Lowercase a step name and join its words with hyphens."""
    return _WHITESPACE.sub("-", name.strip().lower())


def step_id_for(step: TemplateStep) -> str:
    """Concrete step ID: the template key, or a slug of the name without one."""
    return step.key or slugify(step.name)


def stringify(value: DefaultValue | None) -> str:
    """Render a variable value the way it is stored, as a string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def template_reference_errors(template: Template) -> list[str]:
    """List dependency keys that the template does not declare."""
    keys = {step.key for step in template.steps if step.key}
    errors = []
    for step in template.steps:
        for dep in step.depends_on:
            if dep not in keys:
                errors.append(
                    f"Step '{step_id_for(step)}' depends on undeclared key '{dep}'"
                )
    return errors


def generate_pipeline(
    template: Template,
    project_id: str,
    project_name: str,
    customizations: TemplateCustomizations | None = None,
) -> PipelineCreate:
    """Build an unsaved pipeline from a template.

    Args:
        template: Source template
        project_id: Project the pipeline will belong to
        project_name: Used to name the pipeline "<project> - <template>"
        customizations: Variable overrides and the set of enabled step keys

    Returns:
        Pipeline payload ready to be created

    Raises:
        TemplateReferenceError: If a step depends on a key the template does not declare
        PipelineValidationError: If the generated steps do not form a valid graph
    """
    customizations = customizations or TemplateCustomizations()

    key_to_id: dict[str, str] = {}
    for template_step in template.steps:
        if template_step.key:
            key_to_id[template_step.key] = step_id_for(template_step)

    steps: list[Step] = []
    for template_step in template.steps:
        step_id = step_id_for(template_step)
        depends_on = []
        for dep in template_step.depends_on:
            if dep not in key_to_id:
                raise TemplateReferenceError(template.key, step_id, dep)
            depends_on.append(key_to_id[dep])

        enabled = template_step.enabled
        if customizations.enabled_steps is not None:
            enabled = enabled and (
                step_id in customizations.enabled_steps
                or (template_step.key or "") in customizations.enabled_steps
            )

        steps.append(
            Step(
                id=step_id,
                kind=TemplateStepKind(execution_type=template_step.type, step_id=step_id),
                name=template_step.name,
                config=dict(template_step.config),
                depends_on=depends_on,
                enabled=enabled,
            )
        )

    result = validate_steps(steps)
    if not result.valid:
        raise PipelineValidationError(result.errors)

    variables = []
    for declared in template.variables:
        if declared.name in customizations.variables:
            value = customizations.variables[declared.name]
        else:
            value = declared.default_value
        variables.append(
            VariableCreate(
                name=declared.name,
                type=declared.type,
                value=stringify(value),
                description=declared.description,
            )
        )

    unknown = set(customizations.variables) - {v.name for v in template.variables}
    if unknown:
        logger.debug(
            f"Template '{template.key}' ignores undeclared variables: {', '.join(sorted(unknown))}"
        )

    logger.info(
        f"Generated pipeline from template '{template.key}' for project {project_id} "
        f"with {len(steps)} steps"
    )
    return PipelineCreate(
        project_id=project_id,
        name=f"{project_name} - {template.name}",
        description=template.description,
        steps=steps,
        variables=variables,
        secrets=[],
        execution_context=template.execution_context.to_context(),
        enabled=True,
    )
