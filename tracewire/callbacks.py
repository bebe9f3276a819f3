"""Ingestion of step reports pushed back by the remote engine."""

from __future__ import annotations

import logging
from typing import Any, Dict, Literal, Optional

from pydantic import Field

from .constants import FINAL_OUTPUT_ACTION, SERVICE_NAME
from .contracts import WireModel, utcnow
from .persistence import (
    CommunicationTrace,
    ExecutionUpdate,
    OrchestratorRepository,
    WorkflowExecution,
)

logger = logging.getLogger(__name__)


class StepCallback(WireModel):
    """A step report sent by a remote workflow while it runs."""

    workflow_id: str = Field(..., min_length=1)
    step: str = Field(..., min_length=1)
    step_index: int = Field(..., ge=1)
    trace_id: str = Field(..., min_length=1)
    output: Optional[Any] = None
    execution_id: Optional[str] = None
    status: Literal["success", "failed", "in_progress"] = "success"
    error_message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class CallbackReceipt(WireModel):
    success: bool = True
    trace_id: str
    execution_id: str
    trace_record_id: str


class CallbackProcessor:
    """Records step callbacks as traces on the execution they belong to.

    The ``final-output`` step closes the execution with its output.
    """

    def __init__(self, repository: OrchestratorRepository) -> None:
        self.repository = repository

    async def process(self, callback: StepCallback) -> CallbackReceipt:
        execution = await self._execution_for(callback)
        now = utcnow()
        output = callback.output
        if output is not None and not isinstance(output, dict):
            output = {"value": output}

        trace = await self.repository.create_trace(
            CommunicationTrace(
                trace_id=callback.trace_id,
                attempt_number=callback.step_index,
                execution_id=execution.id,
                source_service="n8n",
                destination_service=SERVICE_NAME,
                workflow_id=callback.workflow_id,
                action=callback.step,
                user_id="system",
                requested_at=now,
                responded_at=now,
                duration_ms=0,
                request_payload={"step": callback.step, "stepIndex": callback.step_index},
                response_payload=output,
                overall_status=callback.status,
                error_detail=callback.error_message,
                external_execution_id=callback.execution_id,
                details=callback.details,
            )
        )

        if callback.step == FINAL_OUTPUT_ACTION and callback.status != "in_progress":
            await self.repository.update_execution(
                execution.id,
                ExecutionUpdate(
                    status="completed" if callback.status == "success" else "failed",
                    final_output=output,
                    external_execution_id=callback.execution_id,
                ),
            )
            logger.info(
                f"Execution {execution.id} closed by final-output callback "
                f"status={callback.status}"
            )

        logger.debug(
            f"{callback.workflow_id}/{callback.step}: received "
            f"(trace_id={callback.trace_id}, step={callback.step_index})"
        )
        return CallbackReceipt(
            trace_id=callback.trace_id,
            execution_id=execution.id,
            trace_record_id=trace.id,
        )

    async def _execution_for(self, callback: StepCallback) -> WorkflowExecution:
        execution = await self.repository.get_execution_by_trigger_trace(
            callback.trace_id
        )
        if execution is not None:
            return execution
        execution = await self.repository.create_execution(
            WorkflowExecution(
                workflow_id=callback.workflow_id,
                trigger_trace_id=callback.trace_id,
                external_execution_id=callback.execution_id,
                status="running",
                user_id="system",
            )
        )
        logger.info(
            f"Created execution {execution.id} for callback trace_id={callback.trace_id}"
        )
        return execution
