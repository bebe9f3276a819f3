from datetime import datetime, timedelta, timezone

import pytest

from tracewire.exceptions import RecordNotFoundError, TraceAlreadyCompletedError
from tracewire.persistence import (
    CommunicationTrace,
    ExecutionUpdate,
    InMemoryOrchestratorRepository,
    SQLiteOrchestratorRepository,
    TraceCompletion,
    WorkflowExecution,
)

T0 = datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryOrchestratorRepository()
    return SQLiteOrchestratorRepository(tmp_path / "traces.db")


def _trace(trace_id="trace_1", attempt=1, **overrides) -> CommunicationTrace:
    fields = dict(
        trace_id=trace_id,
        attempt_number=attempt,
        source_service="bilko",
        destination_service="local",
        workflow_id="rules-audit",
        action="audit",
        user_id="u1",
        request_payload={"action": "audit"},
    )
    fields.update(overrides)
    return CommunicationTrace(**fields)


@pytest.mark.asyncio
async def test_trace_create_and_complete(repo):
    created = await repo.create_trace(_trace(requested_at=T0))
    assert created.overall_status == "in_progress"
    assert created.responded_at is None

    completed = await repo.complete_trace(
        created.id,
        TraceCompletion(
            responded_at=T0 + timedelta(milliseconds=120),
            duration_ms=120,
            response_payload={"success": True},
            overall_status="success",
            external_execution_id="ext-9",
        ),
    )
    assert completed.overall_status == "success"
    assert completed.duration_ms == 120
    assert completed.external_execution_id == "ext-9"

    stored = await repo.get_trace(created.id)
    assert stored.response_payload == {"success": True}
    assert stored.request_payload == {"action": "audit"}
    assert stored.responded_at == T0 + timedelta(milliseconds=120)


@pytest.mark.asyncio
async def test_trace_completes_only_once(repo):
    created = await repo.create_trace(_trace())
    completion = TraceCompletion(duration_ms=1, overall_status="failed", error_code="X")
    await repo.complete_trace(created.id, completion)
    with pytest.raises(TraceAlreadyCompletedError):
        await repo.complete_trace(created.id, completion)
    with pytest.raises(RecordNotFoundError):
        await repo.complete_trace("missing", completion)


@pytest.mark.asyncio
async def test_attempts_share_trace_id(repo):
    await repo.create_trace(_trace(attempt=2, requested_at=T0 + timedelta(seconds=5)))
    await repo.create_trace(_trace(attempt=1, requested_at=T0))
    await repo.create_trace(_trace(trace_id="trace_other"))

    attempts = await repo.get_traces_by_trace_id("trace_1")
    assert [t.attempt_number for t in attempts] == [1, 2]
    assert await repo.count_traces() == 3


@pytest.mark.asyncio
async def test_recent_traces_paging(repo):
    for i in range(5):
        await repo.create_trace(
            _trace(trace_id=f"trace_{i}", requested_at=T0 + timedelta(minutes=i))
        )

    first_page = await repo.get_recent_traces(limit=2)
    assert [t.trace_id for t in first_page] == ["trace_4", "trace_3"]
    second_page = await repo.get_recent_traces(limit=2, offset=2)
    assert [t.trace_id for t in second_page] == ["trace_2", "trace_1"]


@pytest.mark.asyncio
async def test_execution_lifecycle(repo):
    execution = await repo.create_execution(
        WorkflowExecution(
            workflow_id="echo-test", status="running", trigger_trace_id="trace_1"
        )
    )
    assert execution.completed_at is None

    await repo.create_trace(_trace(execution_id=execution.id, requested_at=T0))
    await repo.create_trace(_trace(requested_at=T0))
    traces = await repo.get_execution_traces(execution.id)
    assert len(traces) == 1

    found = await repo.get_execution_by_trigger_trace("trace_1")
    assert found.id == execution.id

    done = await repo.update_execution(
        execution.id,
        ExecutionUpdate(status="completed", final_output={"success": True}),
    )
    assert done.status == "completed"
    assert done.completed_at is not None
    assert done.final_output == {"success": True}
    assert done.trigger_trace_id == "trace_1"

    reopened = await repo.update_execution(execution.id, ExecutionUpdate(status="running"))
    assert reopened.completed_at is None
    assert reopened.final_output == {"success": True}

    cleared = await repo.update_execution(
        execution.id, ExecutionUpdate(status="running", final_output=None)
    )
    assert cleared.final_output is None
    assert (await repo.get_execution(execution.id)).final_output is None

    with pytest.raises(RecordNotFoundError):
        await repo.update_execution("missing", ExecutionUpdate(status="failed"))
    assert await repo.get_execution("missing") is None


@pytest.mark.asyncio
async def test_workflow_executions_newest_first(repo):
    for i in range(3):
        await repo.create_execution(
            WorkflowExecution(
                id=f"exec-{i}",
                workflow_id="european-football-daily",
                status="running" if i == 1 else "completed",
                started_at=T0 + timedelta(hours=i),
            )
        )
    await repo.create_execution(WorkflowExecution(workflow_id="echo-test"))

    executions = await repo.get_workflow_executions("european-football-daily")
    assert [e.id for e in executions] == ["exec-2", "exec-1", "exec-0"]
    limited = await repo.get_workflow_executions("european-football-daily", limit=1)
    assert [e.id for e in limited] == ["exec-2"]

    running = await repo.get_running_executions("european-football-daily")
    assert [e.id for e in running] == ["exec-1"]
