import httpx
from fastapi.testclient import TestClient

from tracewire.api import create_app
from tracewire.config import RemoteConfig
from tracewire.executors import LocalExecutor, RemoteExecutor
from tracewire.handlers import register_default_handlers
from tracewire.persistence import InMemoryOrchestratorRepository
from tracewire.registry import load_registry
from tracewire.router import WorkflowRouter


def _client(remote_handler=None, config=None):
    remote_handler = remote_handler or (
        lambda request: httpx.Response(202, json={"executionId": "n8n-42", "status": "accepted"})
    )
    router = WorkflowRouter(
        load_registry(),
        InMemoryOrchestratorRepository(),
        register_default_handlers(LocalExecutor()),
        RemoteExecutor(
            config=config,
            client=httpx.AsyncClient(transport=httpx.MockTransport(remote_handler)),
            environ={"N8N_WEBHOOK_EUROPEAN_FOOTBALL_DAILY": "https://hooks/efd"},
        ),
    )
    return TestClient(create_app(router))


def test_list_and_get_workflows():
    client = _client()
    resp = client.get("/workflows")
    assert resp.status_code == 200
    ids = [w["id"] for w in resp.json()["workflows"]]
    assert "rules-audit" in ids and "echo-test" in ids

    assert client.get("/workflows/rules-audit").json()["target"]["handler"] == "rulesAudit"
    assert client.get("/workflows/nope").status_code == 404


def test_trigger_local_workflow_returns_output():
    client = _client()
    resp = client.post(
        "/workflows/rules-audit/trigger",
        json={"action": "audit", "payload": {"scope": "all"}, "userId": "u1"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["findings"] == []

    execution_id = body["metadata"]["executionId"]
    detail = client.get(f"/executions/{execution_id}").json()
    assert detail["execution"]["status"] == "completed"
    assert len(detail["traces"]) == 1
    assert detail["traces"][0]["destinationService"] == "local"


def test_trigger_unknown_workflow_is_404():
    client = _client()
    resp = client.post("/workflows/nope/trigger", json={})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "UNKNOWN_WORKFLOW"
    assert client.get("/traces").json()["total"] == 0


def test_trigger_remote_workflow_is_accepted():
    client = _client()
    resp = client.post(
        "/workflows/european-football-daily/trigger",
        json={"traceId": "trace_api", "userId": "u1"},
    )
    assert resp.status_code == 202
    body = resp.json()
    assert body["traceId"] == "trace_api"
    assert body["accepted"] is True
    assert body["completed"] is False

    executions = client.get("/workflows/european-football-daily/executions").json()
    assert [e["id"] for e in executions["executions"]] == [body["executionId"]]
    assert executions["executions"][0]["status"] == "running"
    assert executions["executions"][0]["externalExecutionId"] == "n8n-42"


def test_trigger_remote_workflow_failure_is_400():
    client = _client(lambda request: httpx.Response(500, text="boom"))
    resp = client.post("/workflows/european-football-daily/trigger", json={})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "REMOTE_CALL_FAILED"
    assert body["error"]["retryable"] is True


def test_callback_then_audit():
    client = _client()
    trigger = client.post(
        "/workflows/european-football-daily/trigger", json={"traceId": "trace_audit"}
    ).json()

    steps = [
        ("ts-parse-extract-topics", {"topics": ["a", "b", "c"]}),
        ("ts-parse-select-topic", {"selectedTopic": "a"}),
    ]
    for index, (step, output) in enumerate(steps, start=1):
        resp = client.post(
            "/workflows/callback",
            json={
                "workflowId": "european-football-daily",
                "step": step,
                "stepIndex": index,
                "traceId": "trace_audit",
                "output": output,
            },
        )
        assert resp.status_code == 200
        assert resp.json()["executionId"] == trigger["executionId"]

    report = client.post(
        "/audit/validate",
        json={
            "manifestId": "european-football-daily",
            "executionId": trigger["executionId"],
            "upToStep": "select-topic",
        },
    )
    assert report.status_code == 200
    assert report.json()["passed"] == 2
    assert report.json()["stepsChecked"] == 2


def test_audit_not_found_cases():
    client = _client()
    missing_execution = client.post(
        "/audit/validate",
        json={"manifestId": "european-football-daily", "executionId": "nope"},
    )
    assert missing_execution.status_code == 404

    execution_id = client.post("/workflows/rules-audit/trigger", json={}).json()[
        "metadata"
    ]["executionId"]
    missing_manifest = client.post(
        "/audit/validate",
        json={"manifestId": "rules-audit", "executionId": execution_id},
    )
    assert missing_manifest.status_code == 404


def test_traces_paging():
    client = _client()
    for _ in range(3):
        client.post("/workflows/code-audit/trigger", json={})
    page = client.get("/traces", params={"limit": 2}).json()
    assert page["total"] == 3
    assert len(page["traces"]) == 2


def test_trigger_remote_workflow_completed_inline_returns_output():
    client = _client(
        lambda request: httpx.Response(
            200, json={"success": True, "data": {"headline": "done"}, "executionId": "n8n-7"}
        )
    )
    resp = client.post(
        "/workflows/european-football-daily/trigger", json={"traceId": "trace_sync"}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == {"headline": "done"}
    assert body["metadata"]["completed"] is True
    assert body["metadata"]["externalExecutionId"] == "n8n-7"

    detail = client.get(f"/executions/{body['metadata']['executionId']}").json()
    assert detail["execution"]["status"] == "completed"


def _engine(request):
    if request.url.path == "/api/v1/workflows":
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "wf-9",
                        "name": "European Football Daily",
                        "nodes": [
                            {
                                "type": "n8n-nodes-base.webhook",
                                "parameters": {"path": "efd-live"},
                            }
                        ],
                    }
                ],
                "nextCursor": None,
            },
        )
    return httpx.Response(202, json={"executionId": "n8n-1", "status": "accepted"})


def test_sync_list_and_clear_webhooks():
    client = _client(
        _engine, RemoteConfig(api_base_url="https://n8n.example", api_key="key")
    )
    assert client.get("/webhooks").json() == {"webhooks": {}}

    resp = client.post("/workflows/sync")
    assert resp.status_code == 200
    body = resp.json()
    by_id = {r["workflowId"]: r for r in body["results"]}
    assert by_id["european-football-daily"]["action"] == "cached"
    assert by_id["european-football-daily"]["remoteWorkflowId"] == "wf-9"
    assert by_id["echo-test"]["action"] == "skipped"
    assert "rules-audit" not in by_id
    assert body["webhooks"] == {
        "european-football-daily": "https://n8n.example/webhook/efd-live"
    }
    assert client.get("/webhooks").json() == {"webhooks": body["webhooks"]}

    assert client.delete("/webhooks").json() == {"cleared": True}
    assert client.get("/webhooks").json() == {"webhooks": {}}


def test_sync_without_api_config_is_502():
    client = _client()
    resp = client.post("/workflows/sync")
    assert resp.status_code == 502
    assert "not configured" in resp.json()["detail"]
