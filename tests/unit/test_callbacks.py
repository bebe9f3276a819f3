import pytest
from pydantic import ValidationError

from tracewire.callbacks import CallbackProcessor, StepCallback
from tracewire.persistence import InMemoryOrchestratorRepository, WorkflowExecution


@pytest.mark.asyncio
async def test_callbacks_attach_to_triggering_execution():
    repo = InMemoryOrchestratorRepository()
    execution = await repo.create_execution(
        WorkflowExecution(
            workflow_id="european-football-daily",
            status="running",
            trigger_trace_id="trace_cb",
        )
    )
    processor = CallbackProcessor(repo)

    receipt = await processor.process(
        StepCallback.model_validate(
            {
                "workflowId": "european-football-daily",
                "step": "ts-parse-extract-topics",
                "stepIndex": 1,
                "traceId": "trace_cb",
                "output": {"topics": ["a", "b", "c"]},
                "executionId": "n8n-1",
            }
        )
    )
    assert receipt.execution_id == execution.id

    trace = await repo.get_trace(receipt.trace_record_id)
    assert trace.source_service == "n8n"
    assert trace.destination_service == "tracewire"
    assert trace.action == "ts-parse-extract-topics"
    assert trace.attempt_number == 1
    assert trace.response_payload == {"topics": ["a", "b", "c"]}
    assert trace.is_completed

    still_running = await repo.get_execution(execution.id)
    assert still_running.status == "running"


@pytest.mark.asyncio
async def test_final_output_closes_execution():
    repo = InMemoryOrchestratorRepository()
    processor = CallbackProcessor(repo)

    receipt = await processor.process(
        StepCallback(
            workflow_id="european-football-daily",
            step="final-output",
            step_index=5,
            trace_id="trace_unknown",
            output={"success": True, "data": {"post": "text"}},
        )
    )

    execution = await repo.get_execution(receipt.execution_id)
    assert execution.trigger_trace_id == "trace_unknown"
    assert execution.status == "completed"
    assert execution.completed_at is not None
    assert execution.final_output == {"success": True, "data": {"post": "text"}}


@pytest.mark.asyncio
async def test_failed_final_output_and_scalar_output():
    repo = InMemoryOrchestratorRepository()
    processor = CallbackProcessor(repo)

    first = await processor.process(
        StepCallback(
            workflow_id="echo-test",
            step="echo",
            step_index=1,
            trace_id="trace_x",
            output="pong",
        )
    )
    trace = await repo.get_trace(first.trace_record_id)
    assert trace.response_payload == {"value": "pong"}

    final = await processor.process(
        StepCallback(
            workflow_id="echo-test",
            step="final-output",
            step_index=2,
            trace_id="trace_x",
            status="failed",
            error_message="node crashed",
        )
    )
    assert final.execution_id == first.execution_id
    execution = await repo.get_execution(final.execution_id)
    assert execution.status == "failed"
    assert len(await repo.get_execution_traces(execution.id)) == 2


def test_callback_requires_step_index():
    with pytest.raises(ValidationError):
        StepCallback(workflow_id="w", step="s", step_index=0, trace_id="t")
