"""Built-in local workflow handlers."""

from __future__ import annotations

from typing import Any, Dict

from .contracts import WorkflowInput
from .executors import LocalExecutor


async def rules_audit(workflow_input: WorkflowInput) -> Dict[str, Any]:
    return {
        "success": True,
        "data": {
            "findings": [],
            "action": workflow_input.action,
            "payload": workflow_input.payload,
            "message": "Rules audit completed with no automated findings.",
        },
    }


async def code_audit(workflow_input: WorkflowInput) -> Dict[str, Any]:
    return {
        "success": True,
        "data": {
            "findings": [],
            "action": workflow_input.action,
            "payload": workflow_input.payload,
            "message": "Code audit completed with no automated findings.",
        },
    }


def register_default_handlers(executor: LocalExecutor) -> LocalExecutor:
    """Register the handlers referenced by the bundled registry."""
    executor.register("rulesAudit", rules_audit)
    executor.register("codeAudit", code_audit)
    return executor
