"""
Pipeline planning and execution.

Graph validation and wave planning are pure functions. The orchestrator owns
runs: it submits plans to a remote executor, applies the events the executor
pushes back, and records snapshots in the execution state store.
"""

from .executor import PlannedStep, RemoteExecutor, SubmissionPlan, TaskiqRemoteExecutor
from .graph import (
    dependency_map,
    plan_waves,
    transitive_dependencies,
    transitive_dependents,
    validate_steps,
)
from .orchestrator import ExecutionOrchestrator, PipelineLoader
from .state_store import ExecutionStateStore

__all__ = [
    "ExecutionOrchestrator",
    "ExecutionStateStore",
    "PipelineLoader",
    "PlannedStep",
    "RemoteExecutor",
    "SubmissionPlan",
    "TaskiqRemoteExecutor",
    "dependency_map",
    "plan_waves",
    "transitive_dependencies",
    "transitive_dependents",
    "validate_steps",
]
