"""
Live output over WebSocket (and the SSE endpoint's not-found path).
"""
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from nmapdeck.engine.scan_orchestrator import MSG_SUCCESS
from nmapdeck.server.api import create_app
from nmapdeck.server.state import ApplicationState

pytestmark = pytest.mark.integration


@pytest.fixture
def client(local_config, fake_supervisor):
    state = ApplicationState(config=local_config, supervisor=fake_supervisor)
    with TestClient(create_app(state=state)) as c:
        yield c


def _drain(ws):
    events = []
    while True:
        event = ws.receive_json()
        events.append(event)
        if event["event"] == "scan-complete":
            return events


def test_websocket_streams_until_completion(client):
    scan_id = client.post("/api/scan", json={
        "target": "10.0.0.1 10.0.0.2",
        "options": {"delaySeconds": 0},
        "theme": "vader",
    }).json()["scanId"]

    with client.websocket_connect(f"/ws/scans/{scan_id}") as ws:
        events = _drain(ws)

    progress = [e["data"]["data"] for e in events if e["event"] == "scan-progress"]
    assert progress[0] == "[*] Target 1/1: 10.0.0.1 10.0.0.2\n"
    assert "Nmap scan report for 10.0.0.1 10.0.0.2\n" in progress

    done = events[-1]
    assert done["scanId"] == scan_id
    assert done["data"]["success"] is True
    assert done["data"]["code"] == 0
    assert done["data"]["message"] == MSG_SUCCESS
    assert done["data"]["theme"] == "vader"
    assert [e["sequence"] for e in events] == list(range(1, len(events) + 1))


def test_websocket_since_resumes_after_sequence(client):
    scan_id = client.post("/api/scan", json={"target": "10.0.0.1"}).json()["scanId"]

    with client.websocket_connect(f"/ws/scans/{scan_id}") as ws:
        everything = _drain(ws)
    with client.websocket_connect(f"/ws/scans/{scan_id}?since=2") as ws:
        resumed = _drain(ws)

    assert resumed == everything[2:]


def test_websocket_sees_stopped_completion(client, fake_supervisor):
    fake_supervisor.block = True
    scan_id = client.post("/api/scan", json={"target": "10.0.0.1"}).json()["scanId"]

    with client.websocket_connect(f"/ws/scans/{scan_id}") as ws:
        first = ws.receive_json()
        assert first["data"]["data"].startswith("[*] Target 1/1")
        client.post(f"/api/scan/{scan_id}/stop")
        events = _drain(ws)

    completions = [e for e in events if e["event"] == "scan-complete"]
    assert len(completions) == 1
    assert completions[0]["data"]["stopped"] is True
    assert completions[0]["data"]["success"] is False


def test_websocket_unknown_scan_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/scans/does-not-exist") as ws:
            ws.receive_json()
    assert exc.value.code == 4404


def test_sse_unknown_scan_is_404(client):
    resp = client.get("/api/scan/does-not-exist/events")
    assert resp.status_code == 404
    assert resp.json()["success"] is False
