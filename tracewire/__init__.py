"""Tracewire: workflow dispatch with correlated tracing and step audits."""

from .callbacks import CallbackProcessor, StepCallback
from .contracts import (
    OutputMetadata,
    WorkflowContext,
    WorkflowError,
    WorkflowInput,
    WorkflowOutput,
)
from .executors import LocalExecutor, RemoteExecutor, WebhookUrlCache
from .monitor import ExecutionMonitor
from .persistence import get_repository
from .registry import WorkflowRegistry, load_registry
from .router import WorkflowRouter
from .validation import StepValidator, ValidationReport

__version__ = "0.1.0"
__all__ = [
    "CallbackProcessor",
    "ExecutionMonitor",
    "LocalExecutor",
    "OutputMetadata",
    "RemoteExecutor",
    "StepCallback",
    "StepValidator",
    "ValidationReport",
    "WebhookUrlCache",
    "WorkflowContext",
    "WorkflowError",
    "WorkflowInput",
    "WorkflowOutput",
    "WorkflowRegistry",
    "WorkflowRouter",
    "get_repository",
    "load_registry",
]
