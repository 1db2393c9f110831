"""
Remote executor interface and its TaskIQ implementation.

Stepflow never runs steps. It hands a plan and the resolved environment to a
remote executor, which reports progress back as ExecutionEvent payloads
posted to ``/api/executions/events``.
"""

from typing import Protocol

from sqlmodel import Field, SQLModel
from taskiq import AsyncBroker
from taskiq.exceptions import SendTaskError
from taskiq.kicker import AsyncKicker

from stepflow.exceptions import SubmissionError
from stepflow.models.pipeline import ExecutionContext
from stepflow.settings import settings
from stepflow.types import Environment, ExecutionPlan, StepConfig
from stepflow.utils.logger import logger

from .broker import CANCEL_TASK, RETRY_STEP_TASK, SUBMIT_TASK, get_broker


class PlannedStep(SQLModel):
    """What the executor needs to run one step."""

    id: str
    name: str
    marker: str
    config: StepConfig = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    timeout: float


class SubmissionPlan(SQLModel):
    """Everything sent to the executor except the environment."""

    pipeline_id: str
    project_id: str
    waves: ExecutionPlan
    steps: list[PlannedStep]
    execution_context: ExecutionContext


class RemoteExecutor(Protocol):
    """Runs submitted plans and reports back through the event channel."""

    async def submit(self, plan: SubmissionPlan, env: Environment) -> str:
        """Start a run.

        Returns:
            The execution ID the executor will use in its events

        Raises:
            SubmissionError: If the executor rejected or did not receive the plan
        """
        ...

    async def cancel(self, execution_id: str) -> None: ...

    async def retry_step(self, execution_id: str, step_id: str) -> None: ...


def default_events_url() -> str:
    root = settings.root_url.rstrip("/")
    return f"http://{settings.host}:{settings.port}{root}/api/executions/events"


class TaskiqRemoteExecutor:
    """Sends executor commands as TaskIQ messages.

    The TaskIQ task ID of the submission becomes the execution ID.

    Args:
        broker: Broker the executor workers listen on; defaults to the shared broker.
        events_url: Where workers post ExecutionEvent payloads.
    """

    def __init__(self, broker: AsyncBroker | None = None, events_url: str | None = None):
        self.broker = broker or get_broker()
        self.events_url = events_url or default_events_url()

    def _kicker(self, task_name: str, **labels: str) -> AsyncKicker:
        return AsyncKicker(task_name=task_name, broker=self.broker, labels={}).with_labels(
            **labels
        )

    async def submit(self, plan: SubmissionPlan, env: Environment) -> str:
        """Send a plan to the executor.

        Raises:
            SubmissionError: If the message could not be sent
        """
        kicker = self._kicker(SUBMIT_TASK, pipeline_id=plan.pipeline_id, project_id=plan.project_id)
        try:
            task = await kicker.kiq(plan.model_dump(mode="json"), env, events_url=self.events_url)
        except SendTaskError as e:
            logger.error(f"Submitting pipeline '{plan.pipeline_id}' failed: {e!r}")
            raise SubmissionError(f"Failed to submit pipeline '{plan.pipeline_id}'") from e

        logger.info(
            f"Pipeline '{plan.pipeline_id}' submitted as execution {task.task_id} "
            f"({len(plan.steps)} steps, {len(plan.waves)} waves)"
        )
        return task.task_id

    async def cancel(self, execution_id: str) -> None:
        """Ask the executor to stop an execution.

        Raises:
            SubmissionError: If the message could not be sent
        """
        try:
            await self._kicker(CANCEL_TASK, execution_id=execution_id).kiq(execution_id)
        except SendTaskError as e:
            raise SubmissionError(f"Failed to send cancel for execution {execution_id}") from e

    async def retry_step(self, execution_id: str, step_id: str) -> None:
        """Ask the executor to run a failed step again.

        Raises:
            SubmissionError: If the message could not be sent
        """
        try:
            await self._kicker(RETRY_STEP_TASK, execution_id=execution_id).kiq(
                execution_id, step_id
            )
        except SendTaskError as e:
            raise SubmissionError(
                f"Failed to send retry of step '{step_id}' for execution {execution_id}"
            ) from e
