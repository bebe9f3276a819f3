import httpx
import pytest

from tracewire.config import RemoteConfig
from tracewire.exceptions import RecordNotFoundError
from tracewire.executors import RemoteExecutor
from tracewire.monitor import ExecutionMonitor
from tracewire.persistence import InMemoryOrchestratorRepository, WorkflowExecution

CONFIG = RemoteConfig(
    api_base_url="https://n8n.example.com",
    api_key="k",
    poll_interval_seconds=0,
    poll_max_attempts=3,
)


def _monitor(handler):
    repo = InMemoryOrchestratorRepository()
    remote = RemoteExecutor(
        config=CONFIG,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        environ={},
    )
    return ExecutionMonitor(repo, remote), repo


async def _running(repo, external_id="n8n-1"):
    return await repo.create_execution(
        WorkflowExecution(
            workflow_id="european-football-daily",
            status="running",
            external_execution_id=external_id,
        )
    )


@pytest.mark.asyncio
async def test_poll_until_finished():
    answers = iter(
        [
            {"id": "n8n-1", "finished": False, "status": "running"},
            {
                "id": "n8n-1",
                "finished": True,
                "status": "success",
                "stoppedAt": "2026-10-17T08:05:00+00:00",
                "data": {"resultData": {"lastNodeExecuted": "Final Output"}},
            },
        ]
    )

    def handler(request):
        return httpx.Response(200, json=next(answers))

    monitor, repo = _monitor(handler)
    execution = await _running(repo)

    report = await monitor.poll(execution.id)
    assert report.status == "success"
    assert report.finished is True

    stored = await repo.get_execution(execution.id)
    assert stored.status == "completed"
    assert stored.completed_at.isoformat() == "2026-10-17T08:05:00+00:00"
    assert stored.final_output["success"] is True
    assert stored.final_output["metadata"]["lastNodeExecuted"] == "Final Output"


@pytest.mark.asyncio
async def test_remote_error_marks_execution_failed():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "id": "n8n-1",
                "finished": False,
                "status": "crashed",
                "data": {"resultData": {"error": {"message": "out of memory"}}},
            },
        )

    monitor, repo = _monitor(handler)
    execution = await _running(repo)
    report = await monitor.check(execution.id)

    assert report.status == "error"
    stored = await repo.get_execution(execution.id)
    assert stored.status == "failed"
    assert stored.final_output["error"]["code"] == "REMOTE_EXECUTION_FAILED"
    assert stored.final_output["error"]["message"] == "out of memory"


@pytest.mark.asyncio
async def test_poll_gives_up_and_leaves_running():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    monitor, repo = _monitor(handler)
    execution = await _running(repo)
    report = await monitor.poll(execution.id)

    assert len(calls) == 3
    assert report.status == "unknown"
    assert report.execution_id == "n8n-1"
    assert (await repo.get_execution(execution.id)).status == "running"


@pytest.mark.asyncio
async def test_check_requires_external_id():
    monitor, repo = _monitor(lambda request: httpx.Response(200, json={}))
    with pytest.raises(RecordNotFoundError):
        await monitor.check("missing")

    execution = await _running(repo, external_id=None)
    with pytest.raises(RecordNotFoundError):
        await monitor.check(execution.id)


@pytest.mark.asyncio
async def test_poll_survives_non_object_status_body():
    monitor, repo = _monitor(lambda request: httpx.Response(200, json=[{"status": "success"}]))
    execution = await _running(repo)
    report = await monitor.poll(execution.id)

    assert report.status == "unknown"
    assert (await repo.get_execution(execution.id)).status == "running"
