"""Executors that run a workflow locally or on the remote engine."""

from __future__ import annotations

from .local import HandlerResult, LocalExecutor, LocalHandler
from .remote import ExecutionStatusReport, RemoteExecutor, WebhookSyncResult
from .webhook_cache import WebhookUrlCache

__all__ = [
    "ExecutionStatusReport",
    "HandlerResult",
    "LocalExecutor",
    "LocalHandler",
    "RemoteExecutor",
    "WebhookSyncResult",
    "WebhookUrlCache",
]
