"""Repository abstraction for trace and execution persistence."""

from __future__ import annotations

from typing import Protocol

from .models import (
    CommunicationTrace,
    ExecutionUpdate,
    TraceCompletion,
    WorkflowExecution,
)


class TraceRepository(Protocol):
    """Append-only store of communication traces."""

    async def create_trace(self, trace: CommunicationTrace) -> CommunicationTrace:
        """Persist a new trace row."""

    async def complete_trace(
        self, record_id: str, completion: TraceCompletion
    ) -> CommunicationTrace:
        """Record the response for a trace. Allowed once per row."""

    async def get_trace(self, record_id: str) -> CommunicationTrace | None:
        """Retrieve a trace row by its record id."""

    async def get_traces_by_trace_id(self, trace_id: str) -> list[CommunicationTrace]:
        """All rows sharing a correlation id, ordered by attempt."""

    async def get_recent_traces(
        self, limit: int = 50, offset: int = 0
    ) -> list[CommunicationTrace]:
        """Most recent traces first."""

    async def count_traces(self) -> int:
        """Total number of trace rows."""

    async def get_execution_traces(
        self, execution_id: str
    ) -> list[CommunicationTrace]:
        """Traces linked to an execution, in request order."""


class ExecutionRepository(Protocol):
    """Store of workflow execution lifecycles."""

    async def create_execution(
        self, execution: WorkflowExecution
    ) -> WorkflowExecution:
        """Persist a new execution."""

    async def update_execution(
        self, execution_id: str, update: ExecutionUpdate
    ) -> WorkflowExecution:
        """Apply a partial update and return the stored execution."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution by id."""

    async def get_execution_by_trigger_trace(
        self, trace_id: str
    ) -> WorkflowExecution | None:
        """Execution started by the given correlation id, if any."""

    async def get_workflow_executions(
        self, workflow_id: str, limit: int = 20
    ) -> list[WorkflowExecution]:
        """Executions for a workflow, newest first."""

    async def get_running_executions(
        self, workflow_id: str
    ) -> list[WorkflowExecution]:
        """Executions for a workflow still in ``running`` status."""


class OrchestratorRepository(TraceRepository, ExecutionRepository, Protocol):
    """Combined store used by the router, monitor and HTTP layer."""
