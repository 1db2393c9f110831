"""
Dependency graph validation and wave planning.

Both functions are pure: they read a list of steps and never raise for
malformed input. ``plan_waves`` expects a list that already passed
``validate_steps``.

Example:
    from stepflow.services.pipeline.graph import plan_waves, validate_steps

    result = validate_steps(pipeline.steps)
    if result.valid:
        waves = plan_waves(pipeline.steps)
        # [["install"], ["lint", "test"], ["build"]]
"""

from collections.abc import Iterable, Sequence
from enum import Enum

from stepflow.models.pipeline import Step, ValidationResult
from stepflow.utils.logger import logger


class _Colour(Enum):
    WHITE = 0
    GREY = 1
    BLACK = 2


def dependency_map(steps: Iterable[Step]) -> dict[str, list[str]]:
    """Map each step ID to its declared dependencies.

    The first declaration wins when an ID is duplicated.
    """
    deps: dict[str, list[str]] = {}
    for step in steps:
        deps.setdefault(step.id, list(step.depends_on))
    return deps


def _find_cycles(deps: dict[str, list[str]]) -> list[list[str]]:
    """Three-colour depth-first search over ``depends_on`` edges.

    Returns one path per back edge found, starting and ending at the same ID.
    """
    colour = dict.fromkeys(deps, _Colour.WHITE)
    cycles: list[list[str]] = []

    for root in deps:
        if colour[root] is not _Colour.WHITE:
            continue

        # Explicit stack of (node, iterator over its deps) avoids recursion limits
        path: list[str] = [root]
        stack = [(root, iter(deps[root]))]
        colour[root] = _Colour.GREY

        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                colour[node] = _Colour.BLACK
                stack.pop()
                path.pop()
                continue
            if child not in colour:
                # Dangling reference, reported separately
                continue
            if colour[child] is _Colour.GREY:
                start = path.index(child)
                cycles.append([*path[start:], child])
            elif colour[child] is _Colour.WHITE:
                colour[child] = _Colour.GREY
                path.append(child)
                stack.append((child, iter(deps[child])))

    return cycles


def validate_steps(steps: Sequence[Step]) -> ValidationResult:
    """Check a pipeline's steps form a well-formed dependency graph.

    Checks run in order and every violation is reported:
    duplicate IDs, dependencies on unknown steps, then cycles.

    Args:
        steps: Steps in declaration order.

    Returns:
        ValidationResult with ``valid`` False and a non-empty error list when
        the graph is malformed.
    """
    errors: list[str] = []

    seen: set[str] = set()
    reported: set[str] = set()
    for step in steps:
        if step.id in seen and step.id not in reported:
            errors.append(f"Duplicate step ID: '{step.id}'")
            reported.add(step.id)
        seen.add(step.id)

    for step in steps:
        for dep in step.depends_on:
            if dep not in seen:
                errors.append(f"Step '{step.id}' depends on unknown step '{dep}'")

    for cycle in _find_cycles(dependency_map(steps)):
        errors.append(f"Circular dependency detected: {' -> '.join(cycle)}")

    return ValidationResult(valid=not errors, errors=errors)


def plan_waves(steps: Sequence[Step]) -> list[list[str]]:
    """Group steps into waves that may run concurrently.

    Wave 0 holds the steps without dependencies; every later wave holds the
    steps whose dependencies all sit in earlier waves. Order inside a wave
    follows declaration order.

    Args:
        steps: Steps that passed ``validate_steps``.

    Returns:
        Ordered list of waves of step IDs. On a cyclic input, the waves
        built before no further progress was possible.
    """
    deps = dependency_map(steps)
    remaining = list(deps)
    placed: set[str] = set()
    waves: list[list[str]] = []

    while remaining:
        wave = [step_id for step_id in remaining if all(d in placed for d in deps[step_id])]
        if not wave:
            logger.warning(
                f"Planning stopped with {len(remaining)} unplaceable steps: {', '.join(remaining)}"
            )
            break
        waves.append(wave)
        placed.update(wave)
        remaining = [step_id for step_id in remaining if step_id not in placed]

    return waves


def transitive_dependents(steps: Sequence[Step], step_id: str) -> list[str]:
    """All steps that depend on ``step_id`` directly or indirectly.

    Returned in declaration order.
    """
    deps = dependency_map(steps)
    found: set[str] = set()
    frontier = [step_id]
    while frontier:
        current = frontier.pop()
        for candidate, candidate_deps in deps.items():
            if current in candidate_deps and candidate not in found:
                found.add(candidate)
                frontier.append(candidate)
    return [sid for sid in deps if sid in found]


def transitive_dependencies(steps: Sequence[Step], step_id: str) -> list[str]:
    """All steps ``step_id`` depends on directly or indirectly, in declaration order."""
    deps = dependency_map(steps)
    found: set[str] = set()
    frontier = list(deps.get(step_id, []))
    while frontier:
        current = frontier.pop()
        if current in found or current not in deps:
            continue
        found.add(current)
        frontier.extend(deps[current])
    return [sid for sid in deps if sid in found]
