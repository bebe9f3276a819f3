"""Step validator: checks collected traces against a workflow manifest."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional, Sequence

import yaml
from pydantic import Field

from ..constants import AUDIT_FAILED, FINAL_OUTPUT_ACTION, PROBE_ACTION_PREFIX
from ..contracts import WireModel
from .manifest import ManifestLoader, ManifestStep

logger = logging.getLogger(__name__)

StepStatus = Literal["pass", "fail", "missing"]


class TraceData(WireModel):
    """The slice of a trace the validator looks at."""

    action: Optional[str] = None
    overall_status: str = "success"
    response_payload: Optional[Dict[str, Any]] = None


class CheckResult(WireModel):
    check: str
    passed: bool
    detail: str


class StepResult(WireModel):
    step_id: str
    step_name: str
    status: StepStatus
    checks: List[CheckResult] = Field(default_factory=list)


class ValidationReport(WireModel):
    workflow_id: str
    manifest_version: str
    steps_checked: int
    passed: int
    failed: int
    missing: int
    steps: List[StepResult] = Field(default_factory=list)


PayloadResolver = Callable[[ManifestStep, Sequence[TraceData]], Optional[Dict[str, Any]]]


def resolve_probe_trace(
    step: ManifestStep, traces: Sequence[TraceData]
) -> Optional[Dict[str, Any]]:
    """Payload of the step's own ``ts-parse-<id>`` trace, if one was recorded."""

    action = f"{PROBE_ACTION_PREFIX}{step.id}"
    trace = next((t for t in traces if t.action == action), None)
    if trace is None:
        return None
    return trace.response_payload or {}


def resolve_final_output(
    step: ManifestStep, traces: Sequence[TraceData]
) -> Optional[Dict[str, Any]]:
    """The ``data`` object of the final-output trace when it carries the step's key."""

    if not step.output_key:
        return None
    trace = next((t for t in traces if t.action == FINAL_OUTPUT_ACTION), None)
    if trace is None or not trace.response_payload:
        return None
    data = trace.response_payload.get("data")
    if isinstance(data, dict) and step.output_key in data:
        return data
    return None


DEFAULT_RESOLVERS: tuple[PayloadResolver, ...] = (
    resolve_probe_trace,
    resolve_final_output,
)


def _as_trace_data(trace: Any) -> TraceData:
    if isinstance(trace, TraceData):
        return trace
    if isinstance(trace, Mapping):
        return TraceData.model_validate(trace)
    return TraceData(
        action=trace.action,
        overall_status=trace.overall_status,
        response_payload=trace.response_payload,
    )


def check_step(step: ManifestStep, payload: Dict[str, Any]) -> StepResult:
    """Apply the step's validation rules to a resolved payload."""

    validation = step.validation
    if validation is None:
        return StepResult(
            step_id=step.id,
            step_name=step.name,
            status="pass",
            checks=[
                CheckResult(
                    check="no_rules",
                    passed=True,
                    detail="No validation rules defined, auto-pass",
                )
            ],
        )

    checks: List[CheckResult] = []
    for key in validation.required or []:
        present = payload.get(key) is not None
        checks.append(
            CheckResult(
                check=f"required:{key}",
                passed=present,
                detail=f'Key "{key}" present'
                if present
                else f'Key "{key}" missing from output',
            )
        )

    for key, minimum in (validation.min_count or {}).items():
        value = payload.get(key)
        count = len(value) if isinstance(value, (list, tuple)) else 0
        passed = count >= minimum
        checks.append(
            CheckResult(
                check=f"minCount:{key}>={minimum}",
                passed=passed,
                detail=f"{key} has {count} items (>= {minimum})"
                if passed
                else f"{key} has {count} items, expected >= {minimum}",
            )
        )

    return StepResult(
        step_id=step.id,
        step_name=step.name,
        status="pass" if all(c.passed for c in checks) else "fail",
        checks=checks,
    )


class StepValidator:
    """Produces a pass/fail/missing report per manifest step.

    For each step the resolvers are tried in order and the first payload
    found is checked. Steps no resolver can find data for are ``missing``.
    """

    def __init__(
        self,
        loader: Optional[ManifestLoader] = None,
        resolvers: Sequence[PayloadResolver] = DEFAULT_RESOLVERS,
    ) -> None:
        self.loader = loader or ManifestLoader()
        self.resolvers = tuple(resolvers)

    def validate(
        self,
        manifest_id: str,
        traces: Iterable[Any],
        up_to_step: Optional[str] = None,
    ) -> Optional[ValidationReport]:
        """Validate ``traces`` against manifest ``manifest_id``.

        Returns ``None`` when the manifest does not exist or cannot be read.
        When ``up_to_step`` names a step, only the steps up to and including
        it are checked; an unknown ``up_to_step`` checks every step.
        """

        try:
            manifest = self.loader.load(manifest_id)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.error(f"{AUDIT_FAILED}: could not load manifest {manifest_id}: {exc}")
            return None
        if manifest is None:
            logger.info(f"No manifest found for {manifest_id}")
            return None

        steps = manifest.steps
        if up_to_step:
            index = next((i for i, s in enumerate(steps) if s.id == up_to_step), None)
            if index is not None:
                steps = steps[: index + 1]

        trace_data = [_as_trace_data(t) for t in traces]
        results = [self._validate_step(step, trace_data) for step in steps]

        return ValidationReport(
            workflow_id=manifest_id,
            manifest_version=manifest.version,
            steps_checked=len(steps),
            passed=sum(1 for r in results if r.status == "pass"),
            failed=sum(1 for r in results if r.status == "fail"),
            missing=sum(1 for r in results if r.status == "missing"),
            steps=results,
        )

    def _validate_step(
        self, step: ManifestStep, traces: Sequence[TraceData]
    ) -> StepResult:
        for resolver in self.resolvers:
            payload = resolver(step, traces)
            if payload is not None:
                return check_step(step, payload)
        return StepResult(
            step_id=step.id,
            step_name=step.name,
            status="missing",
            checks=[
                CheckResult(
                    check="trace_exists",
                    passed=False,
                    detail=f"No trace found for step {step.id}",
                )
            ],
        )
