"""Workflow router: dispatches workflow calls and records their traces."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .constants import DUPLICATE_ATTEMPT, EXECUTION_ERROR, UNKNOWN_WORKFLOW
from .contracts import (
    SourceService,
    WorkflowContext,
    WorkflowInput,
    WorkflowOutput,
    generate_trace_id,
    utcnow,
)
from .executors import LocalExecutor, RemoteExecutor, WebhookSyncResult
from .persistence import (
    CommunicationTrace,
    ExecutionUpdate,
    OrchestratorRepository,
    TraceCompletion,
    WorkflowExecution,
)
from .registry import (
    LocalTarget,
    RemoteTarget,
    WorkflowDefinition,
    WorkflowRegistry,
)

logger = logging.getLogger(__name__)


class WorkflowRouter:
    """Resolves a workflow id and runs it on its registered executor.

    Every dispatch of a known workflow writes one trace row before the
    executor runs and completes that row once afterwards. The router never
    retries and never lets an executor exception reach the caller.
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        repository: OrchestratorRepository,
        local_executor: Optional[LocalExecutor] = None,
        remote_executor: Optional[RemoteExecutor] = None,
    ) -> None:
        self.registry = registry
        self.repository = repository
        self.local_executor = local_executor or LocalExecutor()
        self.remote_executor = remote_executor or RemoteExecutor()

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self.registry.get(workflow_id)

    def list_workflows(self) -> List[WorkflowDefinition]:
        return list(self.registry.workflows)

    async def sync_webhooks(self) -> List[WebhookSyncResult]:
        """Discover and cache webhook URLs for the registry's remote workflows."""
        return await self.remote_executor.discover_webhooks(self.registry.workflows)

    async def trigger(
        self,
        workflow_id: str,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
        user_id: str = "anonymous",
        source_service: SourceService = "bilko",
        trace_id: Optional[str] = None,
        attempt: int = 1,
    ) -> WorkflowOutput:
        """Build the input envelope for a caller and dispatch it."""

        workflow_input = WorkflowInput(
            action=action,
            payload=payload or {},
            context=WorkflowContext(
                user_id=user_id,
                trace_id=trace_id or generate_trace_id(),
                source_service=source_service,
                attempt=attempt,
            ),
        )
        return await self.dispatch(workflow_id, workflow_input)

    async def dispatch(
        self, workflow_id: str, workflow_input: WorkflowInput
    ) -> WorkflowOutput:
        definition = self.registry.get(workflow_id)
        if definition is None:
            logger.warning(f"Dispatch rejected: unknown workflow_id={workflow_id}")
            return WorkflowOutput.failure(
                workflow_id,
                UNKNOWN_WORKFLOW,
                f"Workflow '{workflow_id}' not found in registry",
                retryable=False,
            )

        context = workflow_input.context
        destination = definition.target.kind

        previous = await self.repository.get_traces_by_trace_id(context.trace_id)
        if any(
            t.attempt_number == context.attempt
            and t.workflow_id == workflow_id
            and t.destination_service == destination
            for t in previous
        ):
            logger.warning(
                f"Attempt {context.attempt} already recorded for "
                f"trace_id={context.trace_id} workflow_id={workflow_id}"
            )
            return WorkflowOutput.failure(
                workflow_id,
                DUPLICATE_ATTEMPT,
                f"Attempt {context.attempt} of trace '{context.trace_id}' "
                "was already dispatched; increment the attempt to retry",
                retryable=False,
            )

        execution = await self._open_execution(workflow_id, workflow_input)
        trace = await self.repository.create_trace(
            CommunicationTrace(
                trace_id=context.trace_id,
                attempt_number=context.attempt,
                execution_id=execution.id,
                source_service=context.source_service,
                destination_service=destination,
                workflow_id=workflow_id,
                action=workflow_input.action,
                user_id=context.user_id,
                requested_at=utcnow(),
                request_payload=workflow_input.to_wire(),
                overall_status="in_progress",
            )
        )
        logger.info(
            f"Dispatching workflow_id={workflow_id} mode={destination} "
            f"trace_id={context.trace_id} attempt={context.attempt} "
            f"execution_id={execution.id}"
        )

        try:
            output = await self._execute(definition, workflow_input)
        except Exception as exc:
            logger.exception(
                f"Workflow {workflow_id} raised for trace_id={context.trace_id}"
            )
            output = WorkflowOutput.failure(
                workflow_id,
                EXECUTION_ERROR,
                str(exc) or type(exc).__name__,
                retryable=bool(getattr(exc, "retryable", False)),
                details={"exceptionType": type(exc).__name__},
            )

        responded_at = utcnow()
        duration_ms = int((responded_at - trace.requested_at).total_seconds() * 1000)
        output.metadata.execution_id = execution.id
        if not output.success and output.metadata.duration_ms == 0:
            output.metadata.duration_ms = duration_ms

        await self.repository.complete_trace(
            trace.id,
            TraceCompletion(
                responded_at=responded_at,
                duration_ms=duration_ms,
                response_payload=output.to_wire(),
                overall_status="success" if output.success else "failed",
                error_code=output.error.code if output.error else None,
                error_detail=output.error.message if output.error else None,
                external_execution_id=output.metadata.external_execution_id,
            ),
        )
        await self._close_execution(execution, output)

        logger.info(
            f"Workflow {workflow_id} finished success={output.success} "
            f"trace_id={context.trace_id} duration_ms={duration_ms}"
        )
        return output

    async def _open_execution(
        self, workflow_id: str, workflow_input: WorkflowInput
    ) -> WorkflowExecution:
        context = workflow_input.context
        execution = await self.repository.get_execution_by_trigger_trace(
            context.trace_id
        )
        if execution is not None and execution.workflow_id == workflow_id:
            # A retry of the same logical call reopens its execution.
            return await self.repository.update_execution(
                execution.id, ExecutionUpdate(status="running", final_output=None)
            )
        return await self.repository.create_execution(
            WorkflowExecution(
                workflow_id=workflow_id,
                status="running",
                trigger_trace_id=context.trace_id,
                user_id=context.user_id,
                metadata={
                    "action": workflow_input.action,
                    "sourceService": context.source_service,
                },
            )
        )

    async def _close_execution(
        self, execution: WorkflowExecution, output: WorkflowOutput
    ) -> WorkflowExecution:
        external_id = output.metadata.external_execution_id
        stored = await self.repository.get_execution(execution.id)
        if stored is not None and stored.is_terminal:
            # Closed meanwhile by a callback, the monitor or a later attempt.
            logger.info(
                f"Execution {execution.id} already {stored.status}; "
                f"keeping it for trace_id={execution.trigger_trace_id}"
            )
            if external_id and not stored.external_execution_id:
                return await self.repository.update_execution(
                    execution.id, ExecutionUpdate(external_execution_id=external_id)
                )
            return stored
        if output.success and not output.metadata.completed:
            update = ExecutionUpdate(status="running", external_execution_id=external_id)
        else:
            update = ExecutionUpdate(
                status="completed" if output.success else "failed",
                external_execution_id=external_id,
                final_output=output.to_wire(),
            )
        return await self.repository.update_execution(execution.id, update)

    async def _execute(
        self, definition: WorkflowDefinition, workflow_input: WorkflowInput
    ) -> WorkflowOutput:
        target = definition.target
        if isinstance(target, LocalTarget):
            return await self.local_executor.run(
                target.handler, workflow_input, definition.id
            )
        if isinstance(target, RemoteTarget):
            return await self.remote_executor.call(
                definition.id, target.endpoint, workflow_input
            )
        raise TypeError(f"Unsupported workflow target: {target!r}")
