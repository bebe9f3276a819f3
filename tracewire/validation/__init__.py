"""Manifest-driven validation of execution traces."""

from __future__ import annotations

from .manifest import (
    DEFAULT_MANIFEST_DIR,
    ManifestLoader,
    ManifestStep,
    StepValidation,
    WorkflowManifest,
)
from .validator import (
    DEFAULT_RESOLVERS,
    CheckResult,
    PayloadResolver,
    StepResult,
    StepValidator,
    TraceData,
    ValidationReport,
    check_step,
    resolve_final_output,
    resolve_probe_trace,
)

__all__ = [
    "DEFAULT_MANIFEST_DIR",
    "DEFAULT_RESOLVERS",
    "CheckResult",
    "ManifestLoader",
    "ManifestStep",
    "PayloadResolver",
    "StepResult",
    "StepValidation",
    "StepValidator",
    "TraceData",
    "ValidationReport",
    "WorkflowManifest",
    "check_step",
    "resolve_final_output",
    "resolve_probe_trace",
]
