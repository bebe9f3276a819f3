"""Tests for the workflow input/output envelopes."""

import re

import pytest
from pydantic import ValidationError

from tracewire.contracts import (
    WorkflowContext,
    WorkflowInput,
    WorkflowOutput,
    generate_trace_id,
)


def test_generate_trace_id_format():
    trace_id = generate_trace_id()
    assert re.fullmatch(r"trace_[0-9a-f]{16}", trace_id)
    assert generate_trace_id() != trace_id


def test_workflow_input_uses_camel_case_on_the_wire():
    workflow_input = WorkflowInput(
        action="audit",
        payload={"ruleSet": "core"},
        context=WorkflowContext(user_id="u1", trace_id="trace_abc", attempt=2),
    )
    wire = workflow_input.to_wire()
    assert wire["context"]["userId"] == "u1"
    assert wire["context"]["traceId"] == "trace_abc"
    assert wire["context"]["sourceService"] == "bilko"
    assert wire["context"]["attempt"] == 2
    assert wire["payload"] == {"ruleSet": "core"}


def test_workflow_input_accepts_wire_keys():
    workflow_input = WorkflowInput.model_validate(
        {
            "action": "execute",
            "context": {
                "userId": "u2",
                "traceId": "trace_0000000000000001",
                "requestedAt": "2026-10-17T08:00:00+00:00",
                "sourceService": "replit-shell",
            },
        }
    )
    assert workflow_input.context.user_id == "u2"
    assert workflow_input.context.source_service == "replit-shell"
    assert workflow_input.payload == {}


def test_context_rejects_zero_attempt_and_unknown_source():
    with pytest.raises(ValidationError):
        WorkflowContext(user_id="u", attempt=0)
    with pytest.raises(ValidationError):
        WorkflowContext(user_id="u", source_service="elsewhere")


def test_next_attempt_keeps_trace_id():
    first = WorkflowInput(action="run", context=WorkflowContext(user_id="u"))
    retry = first.next_attempt()
    assert retry.context.trace_id == first.context.trace_id
    assert retry.context.attempt == 2
    assert first.context.attempt == 1


def test_output_helpers():
    ok = WorkflowOutput.ok("rules-audit", {"findings": []}, duration_ms=5)
    assert ok.success is True
    assert ok.error is None
    assert ok.metadata.workflow_id == "rules-audit"
    assert ok.metadata.duration_ms == 5
    assert ok.metadata.completed is True

    failed = WorkflowOutput.failure(
        "echo-test", "REMOTE_CALL_FAILED", "boom", retryable=True
    )
    wire = failed.to_wire()
    assert wire["success"] is False
    assert wire["data"] is None
    assert wire["error"] == {
        "code": "REMOTE_CALL_FAILED",
        "message": "boom",
        "retryable": True,
        "details": None,
    }
    assert wire["metadata"]["workflowId"] == "echo-test"
