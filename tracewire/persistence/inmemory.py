"""In-memory implementation of the orchestrator repository."""

from __future__ import annotations

from typing import Dict

from ..exceptions import RecordNotFoundError, TraceAlreadyCompletedError
from .models import (
    CommunicationTrace,
    ExecutionUpdate,
    TraceCompletion,
    WorkflowExecution,
    apply_execution_update,
)
from .repository import OrchestratorRepository


class InMemoryOrchestratorRepository(OrchestratorRepository):
    """Store traces and executions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._traces: Dict[str, CommunicationTrace] = {}
        self._executions: Dict[str, WorkflowExecution] = {}

    # ------------------------------------------------------------------
    # Traces
    async def create_trace(self, trace: CommunicationTrace) -> CommunicationTrace:
        stored = trace.model_copy(deep=True)
        self._traces[stored.id] = stored
        return stored.model_copy(deep=True)

    async def complete_trace(
        self, record_id: str, completion: TraceCompletion
    ) -> CommunicationTrace:
        trace = self._traces.get(record_id)
        if trace is None:
            raise RecordNotFoundError(f"Trace record {record_id} not found")
        if trace.is_completed:
            raise TraceAlreadyCompletedError(record_id)
        changes = completion.model_dump(exclude_none=True)
        updated = trace.model_copy(update=changes, deep=True)
        self._traces[record_id] = updated
        return updated.model_copy(deep=True)

    async def get_trace(self, record_id: str) -> CommunicationTrace | None:
        trace = self._traces.get(record_id)
        return trace.model_copy(deep=True) if trace else None

    async def get_traces_by_trace_id(self, trace_id: str) -> list[CommunicationTrace]:
        rows = [t for t in self._traces.values() if t.trace_id == trace_id]
        rows.sort(key=lambda t: (t.attempt_number, t.requested_at))
        return [t.model_copy(deep=True) for t in rows]

    async def get_recent_traces(
        self, limit: int = 50, offset: int = 0
    ) -> list[CommunicationTrace]:
        rows = sorted(self._traces.values(), key=lambda t: t.requested_at, reverse=True)
        return [t.model_copy(deep=True) for t in rows[offset : offset + limit]]

    async def count_traces(self) -> int:
        return len(self._traces)

    async def get_execution_traces(
        self, execution_id: str
    ) -> list[CommunicationTrace]:
        rows = [t for t in self._traces.values() if t.execution_id == execution_id]
        rows.sort(key=lambda t: (t.requested_at, t.attempt_number))
        return [t.model_copy(deep=True) for t in rows]

    # ------------------------------------------------------------------
    # Executions
    async def create_execution(
        self, execution: WorkflowExecution
    ) -> WorkflowExecution:
        stored = apply_execution_update(execution, ExecutionUpdate())
        self._executions[stored.id] = stored
        return stored.model_copy(deep=True)

    async def update_execution(
        self, execution_id: str, update: ExecutionUpdate
    ) -> WorkflowExecution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise RecordNotFoundError(f"Execution {execution_id} not found")
        updated = apply_execution_update(execution, update)
        self._executions[execution_id] = updated
        return updated.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def get_execution_by_trigger_trace(
        self, trace_id: str
    ) -> WorkflowExecution | None:
        for execution in self._executions.values():
            if execution.trigger_trace_id == trace_id:
                return execution.model_copy(deep=True)
        return None

    async def get_workflow_executions(
        self, workflow_id: str, limit: int = 20
    ) -> list[WorkflowExecution]:
        rows = [e for e in self._executions.values() if e.workflow_id == workflow_id]
        rows.sort(key=lambda e: e.started_at, reverse=True)
        return [e.model_copy(deep=True) for e in rows[:limit]]

    async def get_running_executions(
        self, workflow_id: str
    ) -> list[WorkflowExecution]:
        return [
            e.model_copy(deep=True)
            for e in self._executions.values()
            if e.workflow_id == workflow_id and e.status == "running"
        ]
