"""Pydantic models describing registry entries."""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class LocalTarget(BaseModel):
    """Run the workflow with an in-process handler."""

    kind: Literal["local"] = "local"
    handler: str

    @field_validator("handler")
    @classmethod
    def _ensure_handler(cls, v: str) -> str:
        if not v:
            raise ValueError("handler must be a non-empty string")
        return v


class RemoteTarget(BaseModel):
    """Run the workflow on the remote engine via its webhook."""

    kind: Literal["n8n"] = "n8n"
    endpoint: str = Field(..., description="Environment variable name or URL")
    webhook_path: Optional[str] = Field(
        default=None, description="Path under /webhook/ used when discovering the URL"
    )


WorkflowTarget = Annotated[Union[LocalTarget, RemoteTarget], Field(discriminator="kind")]


class WorkflowDefinition(BaseModel):
    """Catalog entry for a single workflow."""

    id: str
    name: str
    description: str = ""
    instructions: str = ""
    category: str = "general"
    target: WorkflowTarget

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_mode(cls, data: Any) -> Any:
        # Registry files may also use ``mode`` with ``handler``/``endpoint``.
        if isinstance(data, dict) and "target" not in data and "mode" in data:
            data = dict(data)
            mode = data.pop("mode")
            if mode == "local":
                data["target"] = {"kind": "local", "handler": data.pop("handler", "")}
            else:
                data["target"] = {
                    "kind": mode,
                    "endpoint": data.pop("endpoint", ""),
                    "webhook_path": data.pop("webhook_path", None),
                }
        return data

    @property
    def mode(self) -> str:
        return self.target.kind


class WorkflowRegistry(BaseModel):
    """Root document for the workflow registry."""

    version: str = "1.0.0"
    workflows: List[WorkflowDefinition] = Field(default_factory=list)

    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return next((w for w in self.workflows if w.id == workflow_id), None)

    def __contains__(self, workflow_id: object) -> bool:
        return any(w.id == workflow_id for w in self.workflows)
