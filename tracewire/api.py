"""
FastAPI application exposing workflow dispatch, executions and audits.

Endpoints:
- GET  /workflows                    registered workflows
- GET  /workflows/{id}               one workflow definition
- POST /workflows/sync                discover and cache remote webhook URLs
- POST /workflows/{id}/trigger       dispatch a workflow
- GET  /workflows/{id}/executions    executions of a workflow, newest first
- POST /workflows/callback           step reports from the remote engine
- GET  /executions/{id}              execution plus its traces
- POST /audit/validate               validate an execution against a manifest
- GET  /traces                       most recent traces
- GET  /webhooks                     cached webhook URLs
- DELETE /webhooks                   forget cached webhook URLs
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import Field

from .callbacks import CallbackProcessor, StepCallback
from .constants import AUDIT_FAILED, DEFAULT_EXECUTION_LIST_LIMIT
from .contracts import SourceService, WireModel, generate_trace_id
from .exceptions import RemoteCallError
from .router import WorkflowRouter
from .validation import StepValidator

logger = logging.getLogger(__name__)


class TriggerRequest(WireModel):
    action: str = "execute"
    payload: Dict[str, Any] = Field(default_factory=dict)
    user_id: str = "anonymous"
    source_service: SourceService = "bilko"
    trace_id: Optional[str] = None
    attempt: int = Field(default=1, ge=1)


class AuditRequest(WireModel):
    manifest_id: str
    execution_id: str
    up_to_step: Optional[str] = None


def create_app(
    router: WorkflowRouter,
    validator: Optional[StepValidator] = None,
    callbacks: Optional[CallbackProcessor] = None,
) -> FastAPI:
    """Build the HTTP surface around an already-configured router."""

    repository = router.repository
    validator = validator or StepValidator()
    callbacks = callbacks or CallbackProcessor(repository)

    app = FastAPI(
        title="Tracewire API",
        description="Workflow dispatch, execution tracking and trace audits.",
    )

    @app.get("/workflows")
    async def list_workflows() -> Dict[str, Any]:
        return {"workflows": [w.model_dump() for w in router.list_workflows()]}

    @app.get("/workflows/{workflow_id}")
    async def get_workflow(workflow_id: str) -> Dict[str, Any]:
        workflow = router.get_workflow(workflow_id)
        if workflow is None:
            raise HTTPException(status_code=404, detail=f"Workflow {workflow_id} not found")
        return workflow.model_dump()

    @app.post("/workflows/sync")
    async def sync_webhooks() -> Dict[str, Any]:
        try:
            results = await router.sync_webhooks()
        except RemoteCallError as exc:
            logger.warning(f"Webhook sync failed: {exc}")
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {
            "results": [r.to_wire() for r in results],
            "webhooks": router.remote_executor.cache.all(),
        }

    @app.post("/workflows/callback")
    async def receive_callback(callback: StepCallback) -> Dict[str, Any]:
        receipt = await callbacks.process(callback)
        return receipt.to_wire()

    @app.post("/workflows/{workflow_id}/trigger")
    async def trigger_workflow(workflow_id: str, request: TriggerRequest) -> JSONResponse:
        workflow = router.get_workflow(workflow_id)
        trace_id = request.trace_id or generate_trace_id()
        output = await router.trigger(
            workflow_id,
            request.action,
            request.payload,
            user_id=request.user_id,
            source_service=request.source_service,
            trace_id=trace_id,
            attempt=request.attempt,
        )
        if workflow is None:
            return JSONResponse(status_code=404, content=output.to_wire())

        if workflow.mode == "local" or not output.success or output.metadata.completed:
            return JSONResponse(
                status_code=200 if output.success else 400, content=output.to_wire()
            )

        body = {
            "executionId": output.metadata.execution_id,
            "traceId": trace_id,
            "accepted": True,
            "completed": False,
        }
        return JSONResponse(status_code=202, content=body)

    @app.get("/workflows/{workflow_id}/executions")
    async def list_executions(
        workflow_id: str,
        limit: int = Query(DEFAULT_EXECUTION_LIST_LIMIT, ge=1, le=100),
    ) -> Dict[str, Any]:
        executions = await repository.get_workflow_executions(workflow_id, limit)
        return {"executions": [e.to_wire() for e in executions]}

    @app.get("/executions/{execution_id}")
    async def get_execution(execution_id: str) -> Dict[str, Any]:
        execution = await repository.get_execution(execution_id)
        if execution is None:
            raise HTTPException(
                status_code=404, detail=f"Execution {execution_id} not found"
            )
        traces = await repository.get_execution_traces(execution_id)
        return {
            "execution": execution.to_wire(),
            "traces": [t.to_wire() for t in traces],
        }

    @app.post("/audit/validate")
    async def validate_execution(request: AuditRequest) -> Dict[str, Any]:
        execution = await repository.get_execution(request.execution_id)
        if execution is None:
            raise HTTPException(
                status_code=404, detail=f"Execution {request.execution_id} not found"
            )
        traces = await repository.get_execution_traces(request.execution_id)
        report = validator.validate(
            request.manifest_id, traces, up_to_step=request.up_to_step
        )
        if report is None:
            raise HTTPException(
                status_code=404,
                detail=f"{AUDIT_FAILED}: manifest {request.manifest_id} not available",
            )
        return report.to_wire()

    @app.get("/traces")
    async def list_traces(
        limit: int = Query(50, ge=1, le=100),
        offset: int = Query(0, ge=0),
    ) -> Dict[str, Any]:
        traces = await repository.get_recent_traces(limit, offset)
        total = await repository.count_traces()
        return {"traces": [t.to_wire() for t in traces], "total": total}

    @app.get("/webhooks")
    async def list_webhooks() -> Dict[str, Any]:
        return {"webhooks": router.remote_executor.cache.all()}

    @app.delete("/webhooks")
    async def clear_webhooks() -> Dict[str, Any]:
        router.remote_executor.cache.clear()
        return {"cleared": True}

    return app
