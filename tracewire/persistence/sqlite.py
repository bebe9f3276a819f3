"""SQLite implementation of the orchestrator repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..exceptions import RecordNotFoundError, TraceAlreadyCompletedError
from .models import (
    CommunicationTrace,
    ExecutionUpdate,
    TraceCompletion,
    WorkflowExecution,
    apply_execution_update,
)
from .repository import OrchestratorRepository

TRACE_COLUMNS = (
    "id",
    "trace_id",
    "attempt_number",
    "execution_id",
    "source_service",
    "destination_service",
    "workflow_id",
    "action",
    "user_id",
    "requested_at",
    "responded_at",
    "duration_ms",
    "request_payload",
    "response_payload",
    "overall_status",
    "error_code",
    "error_detail",
    "external_execution_id",
    "details",
)

EXECUTION_COLUMNS = (
    "id",
    "workflow_id",
    "external_execution_id",
    "status",
    "started_at",
    "completed_at",
    "trigger_trace_id",
    "final_output",
    "user_id",
    "metadata",
)

JSON_COLUMNS = {
    "request_payload",
    "response_payload",
    "details",
    "final_output",
    "metadata",
}
DATETIME_COLUMNS = {"requested_at", "responded_at", "started_at", "completed_at"}


def _to_db(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in JSON_COLUMNS:
        return json.dumps(value)
    if column in DATETIME_COLUMNS:
        return value.isoformat()
    return value


def _from_db(row: sqlite3.Row) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for column in row.keys():
        value = row[column]
        if value is not None and column in JSON_COLUMNS:
            value = json.loads(value)
        elif value is not None and column in DATETIME_COLUMNS:
            value = datetime.fromisoformat(value)
        data[column] = value
    return data


class SQLiteOrchestratorRepository(OrchestratorRepository):
    """Persist traces and executions using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
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
                requested_at TEXT NOT NULL,
                responded_at TEXT,
                duration_ms INTEGER,
                request_payload TEXT,
                response_payload TEXT,
                overall_status TEXT NOT NULL,
                error_code TEXT,
                error_detail TEXT,
                external_execution_id TEXT,
                details TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                external_execution_id TEXT,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                trigger_trace_id TEXT,
                final_output TEXT,
                user_id TEXT,
                metadata TEXT
            )
            """
        )
        for statement in (
            "CREATE INDEX IF NOT EXISTS idx_traces_trace_id ON communication_traces (trace_id)",
            "CREATE INDEX IF NOT EXISTS idx_traces_execution_id ON communication_traces (execution_id)",
            "CREATE INDEX IF NOT EXISTS idx_traces_workflow_id ON communication_traces (workflow_id)",
            "CREATE INDEX IF NOT EXISTS idx_traces_requested_at ON communication_traces (requested_at)",
            "CREATE INDEX IF NOT EXISTS idx_traces_execution_attempt ON communication_traces (execution_id, attempt_number)",
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow_id ON workflow_executions (workflow_id)",
            "CREATE INDEX IF NOT EXISTS idx_executions_started_at ON workflow_executions (started_at)",
            "CREATE INDEX IF NOT EXISTS idx_executions_trigger_trace_id ON workflow_executions (trigger_trace_id)",
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow_started ON workflow_executions (workflow_id, started_at)",
        ):
            cur.execute(statement)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    async def _insert(self, table: str, columns: tuple[str, ...], record: dict) -> None:
        placeholders = ", ".join("?" for _ in columns)
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            *(_to_db(c, record.get(c)) for c in columns),
        )

    async def _replace(self, table: str, columns: tuple[str, ...], record: dict) -> None:
        assignments = ", ".join(f"{c} = ?" for c in columns if c != "id")
        await asyncio.to_thread(
            self._execute,
            f"UPDATE {table} SET {assignments} WHERE id = ?",
            *(_to_db(c, record.get(c)) for c in columns if c != "id"),
            record["id"],
        )

    async def _traces(self, where: str, *params: Any) -> list[CommunicationTrace]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {', '.join(TRACE_COLUMNS)} FROM communication_traces {where}",
            *params,
        )
        return [CommunicationTrace(**_from_db(r)) for r in rows]

    async def _executions(self, where: str, *params: Any) -> list[WorkflowExecution]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {', '.join(EXECUTION_COLUMNS)} FROM workflow_executions {where}",
            *params,
        )
        return [WorkflowExecution(**_from_db(r)) for r in rows]

    # ------------------------------------------------------------------
    # Traces
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
        rows = await self._traces("WHERE id = ?", record_id)
        return rows[0] if rows else None

    async def get_traces_by_trace_id(self, trace_id: str) -> list[CommunicationTrace]:
        return await self._traces(
            "WHERE trace_id = ? ORDER BY attempt_number, requested_at", trace_id
        )

    async def get_recent_traces(
        self, limit: int = 50, offset: int = 0
    ) -> list[CommunicationTrace]:
        return await self._traces(
            "ORDER BY requested_at DESC LIMIT ? OFFSET ?", limit, offset
        )

    async def count_traces(self) -> int:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT COUNT(*) AS total FROM communication_traces"
        )
        return int(row["total"]) if row else 0

    async def get_execution_traces(
        self, execution_id: str
    ) -> list[CommunicationTrace]:
        return await self._traces(
            "WHERE execution_id = ? ORDER BY requested_at, attempt_number",
            execution_id,
        )

    # ------------------------------------------------------------------
    # Executions
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
        rows = await self._executions("WHERE id = ?", execution_id)
        return rows[0] if rows else None

    async def get_execution_by_trigger_trace(
        self, trace_id: str
    ) -> WorkflowExecution | None:
        rows = await self._executions(
            "WHERE trigger_trace_id = ? ORDER BY started_at LIMIT 1", trace_id
        )
        return rows[0] if rows else None

    async def get_workflow_executions(
        self, workflow_id: str, limit: int = 20
    ) -> list[WorkflowExecution]:
        return await self._executions(
            "WHERE workflow_id = ? ORDER BY started_at DESC LIMIT ?", workflow_id, limit
        )

    async def get_running_executions(
        self, workflow_id: str
    ) -> list[WorkflowExecution]:
        return await self._executions(
            "WHERE workflow_id = ? AND status = 'running' ORDER BY started_at",
            workflow_id,
        )
