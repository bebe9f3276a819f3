"""PostgreSQL implementation of the orchestrator repository."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from ..exceptions import RecordNotFoundError, TraceAlreadyCompletedError
from .models import (
    CommunicationTrace,
    ExecutionUpdate,
    TraceCompletion,
    WorkflowExecution,
    apply_execution_update,
)
from .repository import OrchestratorRepository
from .sqlite import EXECUTION_COLUMNS, JSON_COLUMNS, TRACE_COLUMNS


def _row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    data = dict(row)
    for column in JSON_COLUMNS.intersection(data):
        if isinstance(data[column], str):
            data[column] = json.loads(data[column])
    return data


def _params(columns: tuple[str, ...], record: dict) -> list[Any]:
    return [
        json.dumps(record.get(c)) if c in JSON_COLUMNS and record.get(c) is not None
        else record.get(c)
        for c in columns
    ]


class PostgresOrchestratorRepository(OrchestratorRepository):
    """Persist traces and executions using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS communication_traces (
                id TEXT PRIMARY KEY,
                trace_id TEXT NOT NULL,
                attempt_number INTEGER NOT NULL DEFAULT 1,
                execution_id TEXT,
                source_service TEXT NOT NULL,
                destination_service TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                action TEXT,
                user_id TEXT NOT NULL,
                requested_at TIMESTAMPTZ NOT NULL,
                responded_at TIMESTAMPTZ,
                duration_ms INTEGER,
                request_payload JSONB,
                response_payload JSONB,
                overall_status TEXT NOT NULL,
                error_code TEXT,
                error_detail TEXT,
                external_execution_id TEXT,
                details JSONB
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                external_execution_id TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                completed_at TIMESTAMPTZ,
                trigger_trace_id TEXT,
                final_output JSONB,
                user_id TEXT,
                metadata JSONB
            )
            """
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_traces_trace_id ON communication_traces (trace_id);
            CREATE INDEX IF NOT EXISTS idx_traces_execution_id ON communication_traces (execution_id);
            CREATE INDEX IF NOT EXISTS idx_traces_workflow_id ON communication_traces (workflow_id);
            CREATE INDEX IF NOT EXISTS idx_traces_requested_at ON communication_traces (requested_at);
            CREATE INDEX IF NOT EXISTS idx_traces_execution_attempt ON communication_traces (execution_id, attempt_number);
            CREATE INDEX IF NOT EXISTS idx_executions_workflow_id ON workflow_executions (workflow_id);
            CREATE INDEX IF NOT EXISTS idx_executions_started_at ON workflow_executions (started_at);
            CREATE INDEX IF NOT EXISTS idx_executions_trigger_trace_id ON workflow_executions (trigger_trace_id);
            CREATE INDEX IF NOT EXISTS idx_executions_workflow_started ON workflow_executions (workflow_id, started_at);
            """
        )

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    async def _execute(self, query: str, *params: Any) -> None:
        conn = await self._connect()
        try:
            await conn.execute(query, *params)
        finally:
            await conn.close()

    async def _insert(self, table: str, columns: tuple[str, ...], record: dict) -> None:
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        await self._execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            *_params(columns, record),
        )

    async def _replace(self, table: str, columns: tuple[str, ...], record: dict) -> None:
        fields = tuple(c for c in columns if c != "id")
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(fields, start=1))
        await self._execute(
            f"UPDATE {table} SET {assignments} WHERE id = ${len(fields) + 1}",
            *_params(fields, record),
            record["id"],
        )

    async def _traces(self, where: str, *params: Any) -> list[CommunicationTrace]:
        rows = await self._fetch(
            f"SELECT {', '.join(TRACE_COLUMNS)} FROM communication_traces {where}",
            *params,
        )
        return [CommunicationTrace(**_row_to_dict(r)) for r in rows]

    async def _executions(self, where: str, *params: Any) -> list[WorkflowExecution]:
        rows = await self._fetch(
            f"SELECT {', '.join(EXECUTION_COLUMNS)} FROM workflow_executions {where}",
            *params,
        )
        return [WorkflowExecution(**_row_to_dict(r)) for r in rows]

    # ------------------------------------------------------------------
    async def create_trace(self, trace: CommunicationTrace) -> CommunicationTrace:
        await self._insert("communication_traces", TRACE_COLUMNS, trace.model_dump())
        return trace

    async def complete_trace(
        self, record_id: str, completion: TraceCompletion
    ) -> CommunicationTrace:
        trace = await self.get_trace(record_id)
        if trace is None:
            raise RecordNotFoundError(f"Trace record {record_id} not found")
        if trace.is_completed:
            raise TraceAlreadyCompletedError(record_id)
        updated = trace.model_copy(update=completion.model_dump(exclude_none=True))
        await self._replace("communication_traces", TRACE_COLUMNS, updated.model_dump())
        return updated

    async def get_trace(self, record_id: str) -> CommunicationTrace | None:
        rows = await self._traces("WHERE id = $1", record_id)
        return rows[0] if rows else None

    async def get_traces_by_trace_id(self, trace_id: str) -> list[CommunicationTrace]:
        return await self._traces(
            "WHERE trace_id = $1 ORDER BY attempt_number, requested_at", trace_id
        )

    async def get_recent_traces(
        self, limit: int = 50, offset: int = 0
    ) -> list[CommunicationTrace]:
        return await self._traces(
            "ORDER BY requested_at DESC LIMIT $1 OFFSET $2", limit, offset
        )

    async def count_traces(self) -> int:
        rows = await self._fetch("SELECT COUNT(*) AS total FROM communication_traces")
        return int(rows[0]["total"]) if rows else 0

    async def get_execution_traces(
        self, execution_id: str
    ) -> list[CommunicationTrace]:
        return await self._traces(
            "WHERE execution_id = $1 ORDER BY requested_at, attempt_number",
            execution_id,
        )

    # ------------------------------------------------------------------
    async def create_execution(
        self, execution: WorkflowExecution
    ) -> WorkflowExecution:
        stored = apply_execution_update(execution, ExecutionUpdate())
        await self._insert("workflow_executions", EXECUTION_COLUMNS, stored.model_dump())
        return stored

    async def update_execution(
        self, execution_id: str, update: ExecutionUpdate
    ) -> WorkflowExecution:
        execution = await self.get_execution(execution_id)
        if execution is None:
            raise RecordNotFoundError(f"Execution {execution_id} not found")
        updated = apply_execution_update(execution, update)
        await self._replace("workflow_executions", EXECUTION_COLUMNS, updated.model_dump())
        return updated

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        rows = await self._executions("WHERE id = $1", execution_id)
        return rows[0] if rows else None

    async def get_execution_by_trigger_trace(
        self, trace_id: str
    ) -> WorkflowExecution | None:
        rows = await self._executions(
            "WHERE trigger_trace_id = $1 ORDER BY started_at LIMIT 1", trace_id
        )
        return rows[0] if rows else None

    async def get_workflow_executions(
        self, workflow_id: str, limit: int = 20
    ) -> list[WorkflowExecution]:
        return await self._executions(
            "WHERE workflow_id = $1 ORDER BY started_at DESC LIMIT $2",
            workflow_id,
            limit,
        )

    async def get_running_executions(
        self, workflow_id: str
    ) -> list[WorkflowExecution]:
        return await self._executions(
            "WHERE workflow_id = $1 AND status = 'running' ORDER BY started_at",
            workflow_id,
        )
