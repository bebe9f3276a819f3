"""Workflow registry: maps workflow ids to their execution target."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import yaml

from ..exceptions import WorkflowNotFoundError
from .models import (
    LocalTarget,
    RemoteTarget,
    WorkflowDefinition,
    WorkflowRegistry,
    WorkflowTarget,
)

DEFAULT_REGISTRY_PATH = Path(__file__).with_name("workflows.yaml")


def load_registry(path: Optional[str | Path] = None) -> WorkflowRegistry:
    """Load a registry document from YAML or JSON.

    Falls back to the registry bundled with the package when ``path`` is
    not given.
    """

    registry_path = Path(path) if path else DEFAULT_REGISTRY_PATH
    text = registry_path.read_text()
    if registry_path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    return WorkflowRegistry.model_validate(data)


def require_workflow(
    registry: WorkflowRegistry, workflow_id: str
) -> WorkflowDefinition:
    """Return the definition for ``workflow_id`` or raise ``WorkflowNotFoundError``."""

    definition = registry.get(workflow_id)
    if definition is None:
        raise WorkflowNotFoundError(workflow_id)
    return definition


__all__ = [
    "DEFAULT_REGISTRY_PATH",
    "LocalTarget",
    "RemoteTarget",
    "WorkflowDefinition",
    "WorkflowRegistry",
    "WorkflowTarget",
    "load_registry",
    "require_workflow",
]
