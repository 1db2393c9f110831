"""In-memory collaborators for orchestrator, resolver and API tests."""

from collections.abc import Awaitable, Callable, Sequence

from stepflow.exceptions import (
    PipelineNotFoundError,
    SecretDecryptionError,
    SecretNotFoundError,
    SubmissionError,
)
from stepflow.models import (
    BlockStepKind,
    PipelineRead,
    SecretReferenceRead,
    Step,
    VariableRead,
    VariableScope,
)
from stepflow.models.base import utcnow
from stepflow.services.pipeline.executor import SubmissionPlan
from stepflow.types import Environment


def make_step(step_id: str, *depends_on: str, **fields: object) -> Step:
    """Build a step backed by the block ``block-<step_id>``."""
    return Step(
        id=step_id,
        kind=BlockStepKind(block_id=f"block-{step_id}"),
        name=fields.pop("name", step_id.title()),  # type: ignore[arg-type]
        depends_on=list(depends_on),
        **fields,  # type: ignore[arg-type]
    )


def make_pipeline(
    steps: list[Step],
    pipeline_id: str = "pipe-1",
    project_id: str = "proj-1",
    **fields: object,
) -> PipelineRead:
    now = utcnow()
    return PipelineRead(
        id=pipeline_id,
        project_id=project_id,
        name=fields.pop("name", "Test pipeline"),  # type: ignore[arg-type]
        steps=steps,
        created_at=now,
        updated_at=now,
        **fields,  # type: ignore[arg-type]
    )


class InMemoryPipelineSource:
    """Pipelines and scope declarations kept in dictionaries."""

    def __init__(self, *pipelines: PipelineRead):
        self.pipelines = {p.id: p for p in pipelines}
        self.variables: dict[str, list[VariableRead]] = {}
        self.secrets: dict[str, list[SecretReferenceRead]] = {}

    def add_variable(self, scope: VariableScope, name: str, value: str) -> None:
        self.variables.setdefault(str(scope), []).append(
            VariableRead(name=name, value=value, scope=scope.level, owner_id=scope.owner_id)
        )

    def add_secret(self, scope: VariableScope, name: str, secret_id: str) -> None:
        self.secrets.setdefault(str(scope), []).append(
            SecretReferenceRead(id=secret_id, name=name, scope=scope.level, owner_id=scope.owner_id)
        )

    async def get_pipeline(self, pipeline_id: str) -> PipelineRead:
        if pipeline_id not in self.pipelines:
            raise PipelineNotFoundError(pipeline_id)
        return self.pipelines[pipeline_id].model_copy(deep=True)

    async def list_variables(self, scope: VariableScope) -> Sequence[VariableRead]:
        return list(self.variables.get(str(scope), []))

    async def list_secrets(self, scope: VariableScope) -> Sequence[SecretReferenceRead]:
        return list(self.secrets.get(str(scope), []))


class FakeVault:
    """Vault answering from a dictionary; IDs in ``broken`` fail to decrypt."""

    def __init__(self, secrets: dict[str, str] | None = None, broken: set[str] | None = None):
        self.secrets = secrets or {}
        self.broken = broken or set()
        self.requests: list[str] = []

    async def decrypt(self, secret_id: str) -> str:
        self.requests.append(secret_id)
        if secret_id in self.broken:
            raise SecretDecryptionError(secret_id, "bad key")
        if secret_id not in self.secrets:
            raise SecretNotFoundError(secret_id)
        return self.secrets[secret_id]


class FakeExecutor:
    """Records every request instead of reaching a real executor.

    Args:
        on_submit: Awaited with the new execution ID before ``submit`` returns,
            to simulate events that arrive before the submission completes.
    """

    def __init__(self, on_submit: Callable[[str], Awaitable[None]] | None = None):
        self.submissions: list[tuple[SubmissionPlan, Environment]] = []
        self.cancelled: list[str] = []
        self.retried: list[tuple[str, str]] = []
        self.on_submit = on_submit
        self.fail_submit = False
        self.fail_control = False
        self._counter = 0

    @property
    def last_plan(self) -> SubmissionPlan:
        return self.submissions[-1][0]

    @property
    def last_env(self) -> Environment:
        return self.submissions[-1][1]

    async def submit(self, plan: SubmissionPlan, env: Environment) -> str:
        if self.fail_submit:
            raise SubmissionError("Executor unavailable")
        self._counter += 1
        execution_id = f"exec-{self._counter}"
        self.submissions.append((plan, dict(env)))
        if self.on_submit is not None:
            await self.on_submit(execution_id)
        return execution_id

    async def cancel(self, execution_id: str) -> None:
        if self.fail_control:
            raise SubmissionError("Executor unavailable")
        self.cancelled.append(execution_id)

    async def retry_step(self, execution_id: str, step_id: str) -> None:
        if self.fail_control:
            raise SubmissionError("Executor unavailable")
        self.retried.append((execution_id, step_id))

