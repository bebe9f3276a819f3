"""Polling of asynchronous executions on the remote engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import RemoteConfig
from .constants import REMOTE_EXECUTION_FAILED
from .exceptions import RecordNotFoundError, RemoteCallError
from .executors import ExecutionStatusReport, RemoteExecutor
from .persistence import ExecutionUpdate, OrchestratorRepository

logger = logging.getLogger(__name__)


class ExecutionMonitor:
    """Follows executions the remote engine accepted but had not finished.

    Each poll asks the engine for the execution's status. A finished report
    moves the execution to ``completed`` or ``failed``; running out of
    attempts leaves it ``running``.
    """

    def __init__(
        self,
        repository: OrchestratorRepository,
        remote_executor: RemoteExecutor,
        config: Optional[RemoteConfig] = None,
    ) -> None:
        self.repository = repository
        self.remote_executor = remote_executor
        self.config = config or remote_executor.config

    async def check(self, execution_id: str) -> ExecutionStatusReport:
        """Fetch the remote status once and apply it if the run has finished."""

        execution = await self.repository.get_execution(execution_id)
        if execution is None:
            raise RecordNotFoundError(f"Execution {execution_id} not found")
        if not execution.external_execution_id:
            raise RecordNotFoundError(
                f"Execution {execution_id} has no remote execution id to poll"
            )

        report = await self.remote_executor.get_execution_status(
            execution.external_execution_id
        )
        if report.finished and not execution.is_terminal:
            await self.repository.update_execution(
                execution_id,
                ExecutionUpdate(
                    status="completed" if report.status == "success" else "failed",
                    completed_at=report.stopped_at,
                    final_output=_final_output(execution.workflow_id, report),
                ),
            )
            logger.info(
                f"Execution {execution_id} finished remotely with status={report.status}"
            )
        return report

    async def poll(
        self,
        execution_id: str,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> ExecutionStatusReport:
        """Poll until the remote execution finishes or attempts run out."""

        interval = self.config.poll_interval_seconds if interval is None else interval
        max_attempts = max_attempts or self.config.poll_max_attempts
        report: Optional[ExecutionStatusReport] = None

        for attempt in range(1, max_attempts + 1):
            try:
                report = await self.check(execution_id)
            except RemoteCallError as exc:
                logger.warning(
                    f"Polling execution {execution_id} failed (attempt {attempt}): {exc}"
                )
            else:
                if report.finished:
                    return report
                logger.debug(
                    f"Execution {execution_id} still {report.status} (attempt {attempt})"
                )
            if attempt < max_attempts:
                await asyncio.sleep(interval)

        if report is not None:
            return report
        execution = await self.repository.get_execution(execution_id)
        return ExecutionStatusReport(
            execution_id=(execution.external_execution_id if execution else None)
            or execution_id,
            status="unknown",
            error_message=f"Status check gave no answer after {max_attempts} attempts",
        )


def _final_output(workflow_id: str, report: ExecutionStatusReport) -> dict:
    output = {
        "success": report.status == "success",
        "metadata": {
            "workflowId": workflow_id,
            "externalExecutionId": report.execution_id,
            "lastNodeExecuted": report.last_node_executed,
        },
    }
    if report.status != "success":
        output["error"] = {
            "code": REMOTE_EXECUTION_FAILED,
            "message": report.error_message or "Remote execution failed",
            "retryable": True,
        }
    return output
