"""
Execution API router.

Read access to the execution history, run control (cancel, retry), the event
endpoint the remote executor posts to, and a WebSocket live feed.
"""

import asyncio
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from stepflow.api.dependencies import OrchestratorDep
from stepflow.exceptions import BusinessRuleViolationError, ExecutionNotFoundError
from stepflow.models import (
    ExecutionEvent,
    ExecutionMetrics,
    ExecutionProgress,
    ExecutionStatus,
    PipelineExecution,
    StepStatus,
)
from stepflow.services.pipeline.orchestrator import ExecutionOrchestrator
from stepflow.types import MessageResponse
from stepflow.utils.logger import logger

router = APIRouter(
    responses={
        404: {"description": "Not found"},
        409: {"description": "Conflict"},
        502: {"description": "Remote executor error"},
    },
)

# Close code sent when a live feed is requested for an unknown execution
WS_EXECUTION_NOT_FOUND = 4404


def _ends_feed(event: ExecutionEvent, execution: PipelineExecution | None) -> bool:
    """Whether an event reports the recorded end of its execution."""
    if event.step_id is not None or event.status == StepStatus.SKIPPED:
        return False
    final = ExecutionStatus(event.status.value)
    return final.is_terminal and execution is not None and execution.status == final


@router.get("", response_model=list[PipelineExecution])
async def list_executions(
    orchestrator: OrchestratorDep,
    pipeline_id: str | None = None,
    project_id: str | None = None,
    status: ExecutionStatus | None = None,
    triggered_by: str | None = None,
) -> list[PipelineExecution]:
    """List recorded executions, newest first."""
    return orchestrator.store.list_executions(
        pipeline_id=pipeline_id,
        project_id=project_id,
        status=status,
        triggered_by=triggered_by,
    )


@router.delete("", response_model=dict[str, list[str]])
async def purge_executions(
    orchestrator: OrchestratorDep,
    pipeline_id: str | None = None,
    finished_before: Annotated[
        datetime | None, Query(description="Only purge executions finished before this time")
    ] = None,
) -> dict[str, list[str]]:
    """Drop finished executions from history. Running executions are kept."""
    return {"purged": orchestrator.purge(pipeline_id=pipeline_id, finished_before=finished_before)}


@router.post("/events", status_code=status.HTTP_202_ACCEPTED)
async def push_event(event: ExecutionEvent, orchestrator: OrchestratorDep) -> MessageResponse:
    """Receive a status update from the remote executor."""
    await orchestrator.handle_event(event)
    return {"status": "accepted"}


@router.get("/{execution_id}", response_model=PipelineExecution)
async def get_execution(execution_id: str, orchestrator: OrchestratorDep) -> PipelineExecution:
    return orchestrator.get_execution(execution_id)


@router.get("/{execution_id}/progress", response_model=ExecutionProgress)
async def get_progress(execution_id: str, orchestrator: OrchestratorDep) -> ExecutionProgress:
    return orchestrator.store.progress(execution_id)


@router.get("/{execution_id}/metrics", response_model=ExecutionMetrics)
async def get_metrics(execution_id: str, orchestrator: OrchestratorDep) -> ExecutionMetrics:
    return orchestrator.store.metrics(execution_id)


@router.delete("/{execution_id}", status_code=status.HTTP_204_NO_CONTENT)
async def purge_execution(execution_id: str, orchestrator: OrchestratorDep) -> None:
    """Drop one finished execution from history.

    Raises:
        ExecutionNotFoundError: If the execution is unknown (404)
        BusinessRuleViolationError: If the execution is still running (409)
    """
    execution = orchestrator.get_execution(execution_id)
    if not orchestrator.purge(execution_id=execution_id):
        raise BusinessRuleViolationError(
            f"Execution '{execution_id}' is {execution.status.value} and cannot be purged"
        )


@router.post("/{execution_id}/cancel", response_model=PipelineExecution)
async def cancel_execution(execution_id: str, orchestrator: OrchestratorDep) -> PipelineExecution:
    """Ask the executor to stop the run and cancel every step that never started."""
    return await orchestrator.cancel(execution_id)


@router.post("/{execution_id}/steps/{step_id}/retry", response_model=PipelineExecution)
async def retry_step(
    execution_id: str, step_id: str, orchestrator: OrchestratorDep
) -> PipelineExecution:
    """Run a failed step again."""
    return await orchestrator.retry_step(execution_id, step_id)


@router.websocket("/{execution_id}/ws")
async def execution_feed(websocket: WebSocket, execution_id: str) -> None:
    """Live feed of one execution.

    Sends a ``snapshot`` message first, then one ``event`` message per
    orchestrator event, and closes after the execution finishes.
    """
    orchestrator: ExecutionOrchestrator = websocket.app.state.orchestrator
    queue: asyncio.Queue[ExecutionEvent] = asyncio.Queue()

    # Subscribe before taking the snapshot so no event falls in between
    unsubscribe = orchestrator.subscribe(execution_id, queue.put_nowait)
    try:
        try:
            snapshot = orchestrator.get_execution(execution_id)
        except ExecutionNotFoundError:
            await websocket.close(code=WS_EXECUTION_NOT_FOUND)
            return

        await websocket.accept()
        await websocket.send_json(
            {"type": "snapshot", "execution": snapshot.model_dump(mode="json")}
        )
        if snapshot.status.is_terminal:
            await websocket.close()
            return

        while True:
            event = await queue.get()
            await websocket.send_json({"type": "event", "event": event.model_dump(mode="json")})
            if _ends_feed(event, orchestrator.store.get(execution_id)):
                break
        # Events of the same update are queued together
        while not queue.empty():
            event = queue.get_nowait()
            await websocket.send_json({"type": "event", "event": event.model_dump(mode="json")})
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug(f"Live feed client of execution {execution_id} disconnected")
    finally:
        unsubscribe()
