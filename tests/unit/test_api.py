from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from deliverable_approval import __version__
from deliverable_approval.server.app import create_app

PNG_URI = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def client(settings, seeded) -> Iterator[TestClient]:
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def base(seeded) -> str:
    return f"/api/portal/{seeded.token}/deliverables/{seeded.deliverable_id}/approval"


def _two_step_payload() -> dict:
    return {
        "workflowType": "multi_step",
        "steps": [
            {"stepNumber": 1, "name": "Design review", "approverType": "client"},
            {
                "stepNumber": 2,
                "name": "Final sign-off",
                "approverType": "specific_user",
                "approverId": "user-42",
            },
        ],
    }


def test_health(client: TestClient) -> None:
    assert client.get("/api/health").json() == {"status": "ok", "version": __version__}


def test_unknown_portal_and_deliverable(client: TestClient, seeded) -> None:
    resp = client.get(f"/api/portal/nope/deliverables/{seeded.deliverable_id}/approval")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Portal not found"

    resp = client.get(f"/api/portal/{seeded.token}/deliverables/nope/approval")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Deliverable not found"


def test_get_without_workflow_returns_null(client: TestClient, base: str) -> None:
    resp = client.get(base)
    assert resp.status_code == 200
    assert resp.json() is None


def test_full_multi_step_flow(client: TestClient, base: str) -> None:
    created = client.post(base, json=_two_step_payload())
    assert created.status_code == 200
    body = created.json()
    assert body["status"] == "pending"
    assert body["currentStep"] == 1
    assert body["workflowType"] == "multi_step"
    assert [s["stepNumber"] for s in body["steps"]] == [1, 2]
    assert body["steps"][0]["approverName"] == "Acme Corp"
    assert body["history"][0]["action"] == "workflow_created"
    assert body["history"][0]["actorName"] == "Acme Corp"

    step_one, step_two = (s["id"] for s in body["steps"])

    resp = client.post(f"{base}/actions", json={"stepId": step_one, "action": "approve"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_progress"
    assert resp.json()["currentStep"] == 2

    resp = client.post(
        f"{base}/actions",
        json={"stepId": step_two, "action": "approve", "comments": "Looks great"},
    )
    body = resp.json()
    assert body["status"] == "approved"
    assert body["currentStep"] is None
    assert body["steps"][1]["comments"] == "Looks great"
    assert body["history"][0]["metadata"]["resulting_status"] == "approved"

    fetched = client.get(base).json()
    assert fetched["id"] == body["id"]
    assert len(fetched["history"]) == 3


def test_out_of_order_and_terminal_errors(client: TestClient, base: str) -> None:
    body = client.post(base, json=_two_step_payload()).json()
    step_one, step_two = (s["id"] for s in body["steps"])

    resp = client.post(f"{base}/actions", json={"stepId": step_two, "action": "approve"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "step_out_of_order"
    assert resp.json()["detail"]

    client.post(f"{base}/actions", json={"stepId": step_one, "action": "reject"})
    resp = client.post(f"{base}/actions", json={"stepId": step_one, "action": "approve"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "workflow_terminal"


def test_action_without_workflow_is_not_found(client: TestClient, base: str) -> None:
    resp = client.post(f"{base}/actions", json={"stepId": "x", "action": "approve"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "workflow_not_found"


def test_invalid_definitions_are_unprocessable(client: TestClient, base: str) -> None:
    steps = _two_step_payload()["steps"]
    resp = client.post(base, json={"workflowType": "parallel", "steps": steps})
    assert resp.status_code == 422
    assert resp.json()["error"] == "unsupported_workflow_type"

    resp = client.post(base, json={"workflowType": "multi_step"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_step_sequence"

    # Unknown enum values are rejected by request validation.
    resp = client.post(base, json={"workflowType": "round_robin"})
    assert resp.status_code == 422


def test_redefinition_needs_force(client: TestClient, base: str) -> None:
    body = client.post(base, json=_two_step_payload()).json()
    client.post(f"{base}/actions", json={"stepId": body["steps"][0]["id"], "action": "approve"})

    resp = client.post(base, json={"workflowType": "simple"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "redefinition_refused"

    resp = client.post(base, json={"workflowType": "simple", "force": True})
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"
    assert [s["name"] for s in resp.json()["steps"]] == ["Approbation"]


def test_signature_captures_transport_metadata(client: TestClient, base: str) -> None:
    body = client.post(base, json={"workflowType": "simple"}).json()

    resp = client.post(
        f"{base}/signatures",
        json={
            "stepId": body["steps"][0]["id"],
            "signatureData": PNG_URI,
            "signatureMethod": "draw",
        },
        headers={"X-Forwarded-For": "198.51.100.4, 10.0.0.1", "User-Agent": "PortalBrowser/2.0"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "pending"
    (signature,) = body["signatures"]
    assert signature["ipAddress"] == "198.51.100.4"
    assert signature["userAgent"] == "PortalBrowser/2.0"
    assert signature["signerName"] == "Acme Corp"
    assert body["history"][0]["action"] == "signature_added"


def test_signature_rejects_client_supplied_audit_fields(client: TestClient, base: str) -> None:
    client.post(base, json={"workflowType": "simple"})
    resp = client.post(
        f"{base}/signatures",
        json={"signatureData": PNG_URI, "signatureMethod": "draw", "ipAddress": "1.2.3.4"},
    )
    assert resp.status_code == 422


def test_invalid_signature_payload(client: TestClient, base: str) -> None:
    client.post(base, json={"workflowType": "simple"})
    resp = client.post(
        f"{base}/signatures", json={"signatureData": "not an image", "signatureMethod": "draw"}
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_signature_payload"


def test_restart_after_revision(client: TestClient, base: str) -> None:
    body = client.post(base, json=_two_step_payload()).json()
    client.post(
        f"{base}/actions",
        json={
            "stepId": body["steps"][0]["id"],
            "action": "request_revision",
            "comments": "Please redo the hero image",
        },
    )

    resp = client.post(f"{base}/restart")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "pending"
    assert body["currentStep"] == 1
    assert all(s["status"] == "pending" for s in body["steps"])
    assert body["history"][0]["action"] == "workflow_restarted"
