"""Execution of workflows on the remote engine through webhooks."""

from __future__ import annotations

import logging
import os
import time
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional

import httpx

from ..config import RemoteConfig
from ..constants import REMOTE_CALL_FAILED, WEBHOOK_NOT_CONFIGURED
from ..contracts import WireModel, WorkflowInput, WorkflowOutput
from ..exceptions import RemoteCallError
from ..registry import RemoteTarget, WorkflowDefinition
from .webhook_cache import WebhookUrlCache

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
WEBHOOK_NODE_TYPE = "n8n-nodes-base.webhook"
ACCEPTED_STATUSES = {"accepted", "running", "waiting"}
REMOTE_STATUS_MAP = {
    "success": "success",
    "error": "error",
    "crashed": "error",
    "canceled": "error",
    "running": "running",
    "new": "running",
    "waiting": "waiting",
}


class ExecutionStatusReport(WireModel):
    """State of an execution as reported by the remote engine."""

    execution_id: str
    status: Literal["success", "error", "running", "waiting", "unknown"]
    finished: bool = False
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    last_node_executed: Optional[str] = None
    error_message: Optional[str] = None


class WebhookSyncResult(WireModel):
    """Outcome of webhook discovery for one registry entry."""

    workflow_id: str
    name: str
    action: Literal["cached", "skipped"]
    remote_workflow_id: Optional[str] = None
    webhook_url: Optional[str] = None
    reason: Optional[str] = None


def _is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


class RemoteExecutor:
    """Posts ``WorkflowInput`` envelopes to webhook URLs.

    The endpoint reference of a registry entry is resolved through the
    webhook cache first, then as a literal URL, then as an environment
    variable name.
    """

    def __init__(
        self,
        cache: Optional[WebhookUrlCache] = None,
        config: Optional[RemoteConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.cache = cache if cache is not None else WebhookUrlCache()
        self.config = config or RemoteConfig()
        self._client = client
        self._environ = environ if environ is not None else os.environ

    def resolve_endpoint(self, workflow_id: str, endpoint_ref: str) -> Optional[str]:
        cached = self.cache.get(workflow_id)
        if cached:
            return cached
        if _is_url(endpoint_ref):
            return endpoint_ref
        return self._environ.get(endpoint_ref) or None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, **kwargs)

    async def call(
        self,
        workflow_id: str,
        endpoint_ref: str,
        workflow_input: WorkflowInput,
        timeout: Optional[float] = None,
    ) -> WorkflowOutput:
        """Send ``workflow_input`` to the workflow's webhook.

        Network errors, timeouts, non-2xx responses and unparseable bodies
        all produce a retryable ``REMOTE_CALL_FAILED`` output. A 202 response,
        or a body whose ``status`` is accepted/running/waiting, yields a
        successful output with ``metadata.completed`` set to ``False``.
        """

        url = self.resolve_endpoint(workflow_id, endpoint_ref)
        if not url:
            logger.warning(
                f"No webhook URL for workflow_id={workflow_id} (ref {endpoint_ref})"
            )
            return WorkflowOutput.failure(
                workflow_id,
                WEBHOOK_NOT_CONFIGURED,
                f"Webhook URL not found for '{workflow_id}'. "
                f"Set {endpoint_ref} or cache the URL after syncing the engine.",
                retryable=False,
            )

        context = workflow_input.context
        body = workflow_input.to_wire()
        body["traceId"] = context.trace_id
        if self.config.callback_url:
            body["callbackUrl"] = self.config.callback_url
        headers = {
            "X-Tracewire-User-Id": context.user_id,
            "X-Tracewire-Request-Id": f"req_{uuid.uuid4().hex[:12]}",
            "X-Tracewire-Trace-Id": context.trace_id,
            "X-Tracewire-Timestamp": context.requested_at.isoformat(),
            "X-Tracewire-Attempt": str(context.attempt),
        }

        start = time.perf_counter()

        def _failure(message: str, **details: Any) -> WorkflowOutput:
            logger.warning(
                f"Remote call failed for workflow_id={workflow_id} "
                f"trace_id={context.trace_id}: {message}"
            )
            return WorkflowOutput.failure(
                workflow_id,
                REMOTE_CALL_FAILED,
                message,
                retryable=True,
                details=details or None,
                duration_ms=int((time.perf_counter() - start) * 1000),
            )

        try:
            response = await self._request(
                "POST",
                url,
                json=body,
                headers=headers,
                timeout=timeout or self.config.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            return _failure(f"Remote call timed out: {exc}", reason="timeout")
        except httpx.HTTPError as exc:
            return _failure(f"Remote call failed: {exc}", reason="network")

        if not response.is_success:
            return _failure(
                f"Remote engine responded with HTTP {response.status_code}",
                reason="http_status",
                status=response.status_code,
                body=response.text[:500],
            )

        try:
            reply = response.json()
        except ValueError:
            return _failure(
                "Remote engine returned a malformed response body",
                reason="malformed_body",
                status=response.status_code,
            )
        if not isinstance(reply, dict):
            return _failure(
                "Remote engine returned a non-object response body",
                reason="malformed_body",
                status=response.status_code,
            )

        duration_ms = int((time.perf_counter() - start) * 1000)
        metadata = reply.get("metadata") if isinstance(reply.get("metadata"), dict) else {}
        external_id = metadata.get("executionId") or reply.get("executionId")
        if external_id is not None:
            external_id = str(external_id)
        if external_id == context.trace_id:
            external_id = None

        if reply.get("success") is False:
            error = reply.get("error") if isinstance(reply.get("error"), dict) else {}
            return WorkflowOutput.failure(
                workflow_id,
                str(error.get("code") or reply.get("code") or REMOTE_CALL_FAILED),
                error.get("message")
                or reply.get("message")
                or "Remote workflow reported a failure",
                retryable=bool(error.get("retryable", True)),
                details=error.get("details"),
                duration_ms=duration_ms,
                external_execution_id=external_id,
            )

        accepted = response.status_code == 202 or reply.get("status") in ACCEPTED_STATUSES
        data = reply.get("data") if isinstance(reply.get("data"), dict) else reply
        if accepted:
            logger.info(
                f"Remote engine accepted workflow_id={workflow_id} "
                f"trace_id={context.trace_id} external_execution_id={external_id}"
            )
        return WorkflowOutput.ok(
            workflow_id,
            data,
            duration_ms=duration_ms,
            external_execution_id=external_id,
            completed=not accepted,
        )

    def _api_root(self) -> str:
        if not self.config.api_base_url or not self.config.api_key:
            raise RemoteCallError("Remote engine API base URL or key not configured")
        root = self.config.api_base_url.rstrip("/")
        if root.endswith(API_PREFIX):
            root = root[: -len(API_PREFIX)]
        return root

    async def _api_get(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        url = f"{self._api_root()}{API_PREFIX}{path}"
        headers = {"X-N8N-API-KEY": self.config.api_key, "Accept": "application/json"}
        try:
            response = await self._request(
                "GET",
                url,
                headers=headers,
                params=params,
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise RemoteCallError(f"Request to {path} failed: {exc}") from exc
        if not response.is_success:
            raise RemoteCallError(
                f"Request to {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteCallError(f"Response from {path} is not JSON") from exc
        if not isinstance(data, dict):
            raise RemoteCallError(f"Response from {path} is not an object")
        return data

    async def get_execution_status(
        self, external_execution_id: str
    ) -> ExecutionStatusReport:
        """Fetch the state of an execution from the engine's REST API.

        Raises:
            RemoteCallError: If the API is not configured or the request fails.
        """

        data = await self._api_get(f"/executions/{external_execution_id}")
        return _parse_execution(external_execution_id, data)

    async def list_remote_workflows(self) -> List[Dict[str, Any]]:
        """All workflows defined on the engine, following pagination."""

        workflows: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            page = await self._api_get("/workflows", {"cursor": cursor} if cursor else None)
            workflows.extend(w for w in page.get("data") or [] if isinstance(w, dict))
            next_cursor = page.get("nextCursor")
            if not next_cursor or next_cursor == cursor:
                return workflows
            cursor = next_cursor

    async def discover_webhooks(
        self, workflows: Iterable[WorkflowDefinition]
    ) -> List[WebhookSyncResult]:
        """Cache webhook URLs for registry entries that exist on the engine.

        Entries are matched to engine workflows by name. The webhook path is
        taken from the engine workflow's webhook node, falling back to the
        entry's ``webhook_path`` when the engine returns no node definitions.
        Local entries are ignored.

        Raises:
            RemoteCallError: If the engine's workflow list cannot be fetched.
        """

        by_name = {w.get("name"): w for w in await self.list_remote_workflows()}
        results: List[WebhookSyncResult] = []
        for definition in workflows:
            target = definition.target
            if not isinstance(target, RemoteTarget):
                continue
            existing = by_name.get(definition.name)
            if existing is None:
                results.append(
                    WebhookSyncResult(
                        workflow_id=definition.id,
                        name=definition.name,
                        action="skipped",
                        reason="Workflow not found on the remote engine",
                    )
                )
                continue

            path = _webhook_node_path(existing) or target.webhook_path
            url = f"{self._api_root()}/webhook/{path.lstrip('/')}" if path else None
            if url:
                self.cache.set(definition.id, url)
            remote_id = existing.get("id")
            results.append(
                WebhookSyncResult(
                    workflow_id=definition.id,
                    name=definition.name,
                    action="cached" if url else "skipped",
                    remote_workflow_id=str(remote_id) if remote_id is not None else None,
                    webhook_url=url,
                    reason=None if url else "No webhook node or webhook_path",
                )
            )

        cached = sum(1 for r in results if r.action == "cached")
        logger.info(f"Webhook discovery cached {cached} of {len(results)} remote workflows")
        return results


def _webhook_node_path(workflow: Dict[str, Any]) -> Optional[str]:
    for node in workflow.get("nodes") or []:
        if not isinstance(node, dict) or node.get("type") != WEBHOOK_NODE_TYPE:
            continue
        parameters = node.get("parameters")
        if isinstance(parameters, dict) and parameters.get("path"):
            return str(parameters["path"])
    return None


def _parse_execution(execution_id: str, data: Dict[str, Any]) -> ExecutionStatusReport:
    finished = bool(data.get("finished"))
    raw_status = data.get("status")
    if raw_status is None:
        status = "success" if finished else "running"
    else:
        status = REMOTE_STATUS_MAP.get(str(raw_status), "unknown")
    if status in ("success", "error"):
        finished = True

    run_data = data.get("data")
    result_data = run_data.get("resultData") if isinstance(run_data, dict) else None
    if not isinstance(result_data, dict):
        result_data = {}
    error = result_data.get("error")
    if not isinstance(error, dict):
        error = {}
    return ExecutionStatusReport(
        execution_id=str(data.get("id") or execution_id),
        status=status,
        finished=finished,
        started_at=data.get("startedAt"),
        stopped_at=data.get("stoppedAt"),
        last_node_executed=result_data.get("lastNodeExecuted"),
        error_message=error.get("message"),
    )
