"""Request and response envelopes exchanged with workflows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SourceService = Literal["replit-shell", "bilko", "n8n"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_trace_id() -> str:
    """Return a new correlation id of the form ``trace_<16 hex chars>``."""
    return f"trace_{uuid.uuid4().hex[:16]}"


class WireModel(BaseModel):
    """Base model serialised with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Return a JSON-compatible dict using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


class WorkflowContext(WireModel):
    """Caller context carried with every workflow invocation."""

    user_id: str
    trace_id: str = Field(default_factory=generate_trace_id)
    requested_at: datetime = Field(default_factory=utcnow)
    source_service: SourceService = "bilko"
    attempt: int = Field(default=1, ge=1)


class WorkflowInput(WireModel):
    """Standard input envelope handed to local handlers and remote webhooks."""

    action: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    context: WorkflowContext

    def next_attempt(self) -> "WorkflowInput":
        """Copy of this input for a retry of the same logical call."""
        context = self.context.model_copy(
            update={"attempt": self.context.attempt + 1, "requested_at": utcnow()}
        )
        return self.model_copy(update={"context": context})


class WorkflowError(WireModel):
    code: str
    message: str
    retryable: bool = False
    details: Optional[Dict[str, Any]] = None


class OutputMetadata(WireModel):
    workflow_id: str
    execution_id: Optional[str] = None
    external_execution_id: Optional[str] = None
    executed_at: datetime = Field(default_factory=utcnow)
    duration_ms: int = 0
    # False when a remote engine only accepted the run and will finish later.
    completed: bool = True


class WorkflowOutput(WireModel):
    """Standard output envelope returned by every dispatch."""

    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[WorkflowError] = None
    metadata: OutputMetadata

    @classmethod
    def ok(
        cls, workflow_id: str, data: Optional[Dict[str, Any]] = None, **metadata: Any
    ) -> "WorkflowOutput":
        return cls(
            success=True,
            data=data or {},
            metadata=OutputMetadata(workflow_id=workflow_id, **metadata),
        )

    @classmethod
    def failure(
        cls,
        workflow_id: str,
        code: str,
        message: str,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
        **metadata: Any,
    ) -> "WorkflowOutput":
        return cls(
            success=False,
            error=WorkflowError(
                code=code, message=message, retryable=retryable, details=details
            ),
            metadata=OutputMetadata(workflow_id=workflow_id, **metadata),
        )
