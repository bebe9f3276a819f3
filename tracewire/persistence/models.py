"""Data models for persisted traces and executions."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from ..contracts import WireModel, utcnow

TraceStatus = Literal["pending", "in_progress", "success", "failed"]
ExecutionStatus = Literal["pending", "running", "completed", "failed"]

TERMINAL_EXECUTION_STATUSES = ("completed", "failed")


def new_record_id() -> str:
    return str(uuid.uuid4())


class CommunicationTrace(WireModel):
    """Audit record of one service call, correlated by ``trace_id``."""

    id: str = Field(default_factory=new_record_id)
    trace_id: str
    attempt_number: int = 1
    execution_id: Optional[str] = None
    source_service: str
    destination_service: str
    workflow_id: str
    action: Optional[str] = None
    user_id: str
    requested_at: datetime = Field(default_factory=utcnow)
    responded_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    request_payload: Optional[dict[str, Any]] = None
    response_payload: Optional[dict[str, Any]] = None
    overall_status: TraceStatus = "in_progress"
    error_code: Optional[str] = None
    error_detail: Optional[str] = None
    external_execution_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    @property
    def is_completed(self) -> bool:
        return self.responded_at is not None


class TraceCompletion(WireModel):
    """Fields written when a trace receives its response."""

    responded_at: datetime = Field(default_factory=utcnow)
    duration_ms: int
    response_payload: Optional[dict[str, Any]] = None
    overall_status: TraceStatus
    error_code: Optional[str] = None
    error_detail: Optional[str] = None
    external_execution_id: Optional[str] = None


class WorkflowExecution(WireModel):
    """Lifecycle of one workflow run."""

    id: str = Field(default_factory=new_record_id)
    workflow_id: str
    external_execution_id: Optional[str] = None
    status: ExecutionStatus = "pending"
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    trigger_trace_id: Optional[str] = None
    final_output: Optional[dict[str, Any]] = None
    user_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXECUTION_STATUSES


class ExecutionUpdate(WireModel):
    """Partial update for an execution; ``None`` fields are left untouched.

    ``final_output`` passed explicitly as ``None`` clears the stored output.
    """

    status: Optional[ExecutionStatus] = None
    external_execution_id: Optional[str] = None
    final_output: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    completed_at: Optional[datetime] = None


def apply_execution_update(
    execution: WorkflowExecution, update: ExecutionUpdate
) -> WorkflowExecution:
    """Return ``execution`` with ``update`` applied.

    ``completed_at`` is kept set exactly when the status is terminal.
    """

    changes = update.model_dump(exclude_none=True)
    if "final_output" in update.model_fields_set and update.final_output is None:
        changes["final_output"] = None
    result = execution.model_copy(update=changes)
    if result.status in TERMINAL_EXECUTION_STATUSES:
        if result.completed_at is None:
            result.completed_at = utcnow()
    else:
        result.completed_at = None
    return result
