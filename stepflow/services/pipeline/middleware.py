"""
TaskIQ middleware for executor messages.

ExecutorLoggingMiddleware logs every message sent to the remote executor,
tagged with the execution and pipeline it belongs to. Message arguments are
never logged: submissions carry the resolved environment.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from taskiq import TaskiqMiddleware

from stepflow.utils.logger import logger

if TYPE_CHECKING:
    from taskiq import TaskiqMessage, TaskiqResult


class ExecutorLoggingMiddleware(TaskiqMiddleware):
    """Logs executor task send and completion events."""

    @staticmethod
    def _log_prefix(message: TaskiqMessage) -> str:
        execution_id = message.labels.get("execution_id", "")
        pipeline_id = message.labels.get("pipeline_id", "")
        parts = []
        if pipeline_id:
            parts.append(f"pipeline={pipeline_id}")
        if execution_id:
            parts.append(f"execution={execution_id}")
        return f"[{' '.join(parts)}] " if parts else ""

    async def pre_send(self, message: TaskiqMessage) -> TaskiqMessage:
        """Log before a task message is sent to the broker.

        Args:
            message: The outgoing task message.

        Returns:
            The message unchanged.
        """
        prefix = self._log_prefix(message)
        logger.debug(f"{prefix}Sending '{message.task_name}' (id={message.task_id})")
        return message

    async def post_execute(self, message: TaskiqMessage, result: TaskiqResult[Any]) -> None:
        """Log after a task ran in a worker sharing this broker.

        Args:
            message: The executed task message.
            result: The task execution result.
        """
        prefix = self._log_prefix(message)
        if result.is_err:
            logger.error(
                f"{prefix}Task '{message.task_name}' (id={message.task_id}) failed: {result.error}"
            )
        else:
            logger.info(
                f"{prefix}Task '{message.task_name}' (id={message.task_id}) "
                f"completed in {result.execution_time:.3f}s"
            )
