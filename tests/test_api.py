"""API tests with TestClient (in-memory store bound on app.state)."""

from __future__ import annotations

import os

import pytest
from conftest import FIXED_NOW
from fastapi.testclient import TestClient

from caseflow.api import app
from caseflow.case_lifecycle import CaseStatus
from caseflow.normalizer import normalize
from caseflow.store import InMemoryCaseStore
from caseflow.workflow import CaseWorkflow

ADMIN_HEADERS = {"X-API-Key": "k_admin"}
AGENT_HEADERS = {"X-API-Key": "k_agent"}
H1_HEADERS = {"X-API-Key": "k_h1"}
H2_HEADERS = {"X-API-Key": "k_h2"}
FINANCE_HEADERS = {"X-API-Key": "k_fin"}
READ_ONLY_HEADERS = {"X-API-Key": "k_ro"}

S = CaseStatus


@pytest.fixture
def store() -> InMemoryCaseStore:
    return InMemoryCaseStore()


@pytest.fixture
def api_client(store, directory, two_doc_gate, sqlite_url):
    """Client whose workflow uses an in-memory store; /health still probes the SQLite engine."""
    os.environ["CASEFLOW_API_KEYS"] = ",".join(
        [
            "admin_1:k_admin",
            "agent_1:k_agent",
            "hosp_user_1:k_h1",
            "hosp_user_2:k_h2",
            "finance_1:k_fin",
            "client_1:k_ro:read_only",
            "ghost:k_ghost",
        ]
    )
    app.state.directory = directory
    app.state.workflow = CaseWorkflow(store, directory, two_doc_gate, clock=lambda: FIXED_NOW)
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.state.workflow = None
        app.state.directory = None
        os.environ.pop("CASEFLOW_API_KEYS", None)


def _put(store, **fields) -> None:
    data = {"id": "case_t1", "agent_id": "agent_1", "client_id": "client_1"}
    data.update(fields)
    store.put(normalize(data))


def test_health(api_client: TestClient) -> None:
    resp = api_client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["db_status"] == "ok"
    assert "workflow_version" in data and "engine_version" in data


def test_correlation_id_echoed(api_client: TestClient) -> None:
    resp = api_client.get("/health", headers={"X-Correlation-ID": "corr-abc"})
    assert resp.headers["X-Correlation-ID"] == "corr-abc"
    generated = api_client.get("/health").headers["X-Correlation-ID"]
    assert len(generated) == 36


def test_missing_or_invalid_key_is_401(api_client: TestClient) -> None:
    assert api_client.get("/cases").status_code == 401
    assert api_client.get("/cases", headers={"X-API-Key": "nope"}).status_code == 401


def test_key_for_unknown_user_is_401(api_client: TestClient) -> None:
    resp = api_client.get("/cases", headers={"X-API-Key": "k_ghost"})
    assert resp.status_code == 401


def test_read_only_key_cannot_write(api_client: TestClient) -> None:
    assert api_client.get("/cases", headers=READ_ONLY_HEADERS).status_code == 200
    resp = api_client.post("/cases", json={}, headers=READ_ONLY_HEADERS)
    assert resp.status_code == 403


def test_create_case_camel_case_response(api_client: TestClient) -> None:
    resp = api_client.post(
        "/cases",
        json={"clientInfo": {"name": "Ana", "nationality": "PT"}, "priority": "high"},
        headers=AGENT_HEADERS,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "new"
    assert data["agentId"] == "agent_1"
    assert data["priority"] == "high"
    assert data["clientInfo"]["name"] == "Ana"
    assert data["clientInfo"]["passport"] == "Not provided"
    assert data["statusHistory"][0]["status"] == "new"
    assert data["visa"]["status"] == "not_started"


def test_hospital_cannot_create_case(api_client: TestClient) -> None:
    assert api_client.post("/cases", json={}, headers=H1_HEADERS).status_code == 403


def test_get_case_404_and_403(api_client: TestClient, store) -> None:
    assert api_client.get("/cases/case_missing", headers=ADMIN_HEADERS).status_code == 404
    _put(store)
    assert api_client.get("/cases/case_t1", headers=H2_HEADERS).status_code == 403
    assert api_client.get("/cases/case_t1", headers=AGENT_HEADERS).json()["id"] == "case_t1"


def test_actions_report_blocked_moves_and_missing_documents(api_client: TestClient, store) -> None:
    _put(store, status="case_agent_review")
    resp = api_client.get("/cases/case_t1/actions", headers=AGENT_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["legalNextStatuses"] == []
    assert data["blocked"] == [
        {
            "status": "admin_review",
            "reasons": ["All required intake documents must be uploaded"],
        }
    ]
    assert data["documents"]["missing"] == ["passport_front", "medical_reports"]
    assert data["statusLabel"] == "Agent Review"
    assert data["progressIndex"] == 1


def test_document_upload_then_transition(api_client: TestClient, store) -> None:
    _put(store, status="case_agent_review")
    for doc_type in ("passport_front", "medical_reports"):
        resp = api_client.post(
            "/cases/case_t1/documents",
            json={"type": doc_type, "name": f"{doc_type}.pdf", "size": 2048},
            headers=AGENT_HEADERS,
        )
        assert resp.status_code == 200
    resp = api_client.post(
        "/cases/case_t1/transitions", json={"status": "admin_review"}, headers=AGENT_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "admin_review"


def test_disallowed_transition_is_409_with_reasons(api_client: TestClient, store) -> None:
    _put(store, status="case_agent_review")
    resp = api_client.post(
        "/cases/case_t1/transitions", json={"status": "admin_review"}, headers=AGENT_HEADERS
    )
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["reasons"] == ["All required intake documents must be uploaded"]
    assert "case_agent_review -> admin_review" in detail["message"]


def test_unknown_status_is_422(api_client: TestClient, store) -> None:
    _put(store)
    resp = api_client.post(
        "/cases/case_t1/transitions", json={"status": "on_hold"}, headers=AGENT_HEADERS
    )
    assert resp.status_code == 422


def test_rejection_without_note_is_422(api_client: TestClient, store) -> None:
    _put(store, status="assigned_to_hospital", assigned_hospital="H1")
    resp = api_client.post(
        "/cases/case_t1/transitions", json={"status": "case_rejected"}, headers=H1_HEADERS
    )
    assert resp.status_code == 422
    resp = api_client.post(
        "/cases/case_t1/transitions",
        json={"status": "case_rejected", "note": "insufficient records"},
        headers=H1_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["statusHistory"][-1]["note"] == "insufficient records"


def test_assignment_via_transition_and_endpoint(api_client: TestClient, store) -> None:
    _put(store, status="admin_review")
    resp = api_client.post(
        "/cases/case_t1/transitions",
        json={"status": "assigned_to_hospital", "hospitalId": "H1"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["assignedHospital"] == "H1"
    assert data["status"] == "assigned_to_hospital"

    _put(store, id="case_t2", status="admin_review")
    both = api_client.post(
        "/cases/case_t2/assignment",
        json={"hospitalId": "H1", "universityId": "U1"},
        headers=ADMIN_HEADERS,
    )
    assert both.status_code == 422
    ok = api_client.post(
        "/cases/case_t2/assignment", json={"universityId": "U1"}, headers=ADMIN_HEADERS
    )
    assert ok.status_code == 200
    assert ok.json()["assignedUniversity"] == "U1"


def test_list_cases_scoped_and_filtered(api_client: TestClient, store) -> None:
    _put(store, id="c1", assigned_hospital="H1", status="hospital_review")
    _put(store, id="c2", agent_id="agent_9")
    all_ids = {c["id"] for c in api_client.get("/cases", headers=ADMIN_HEADERS).json()}
    assert all_ids == {"c1", "c2"}
    mine = api_client.get("/cases", headers=AGENT_HEADERS).json()
    assert [c["id"] for c in mine] == ["c1"]
    assert [c["id"] for c in api_client.get("/cases", headers=H1_HEADERS).json()] == ["c1"]
    filtered = api_client.get(
        "/cases", params={"status": "hospital_review", "agent_id": "agent_1"}, headers=ADMIN_HEADERS
    ).json()
    assert [c["id"] for c in filtered] == ["c1"]
    limited = api_client.get("/cases", params={"limit": 1}, headers=ADMIN_HEADERS).json()
    assert len(limited) == 1


def test_stats(api_client: TestClient, store) -> None:
    _put(store, id="c1", status="admin_review", priority="urgent")
    _put(store, id="c2", status="case_closed")
    data = api_client.get("/cases/stats", headers=ADMIN_HEADERS).json()
    assert data == {"total": 2, "active": 1, "pending": 1, "completed": 1, "urgent": 1}


def test_comment_payment_and_visa_endpoints(api_client: TestClient, store) -> None:
    _put(store, status="visa_processing_payments")
    resp = api_client.post(
        "/cases/case_t1/comments", json={"message": "Fees received"}, headers=FINANCE_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["comments"][-1]["userRole"] == "finance"

    resp = api_client.post(
        "/cases/case_t1/payments",
        json={"type": "visa", "amount": 160, "currency": "USD", "status": "completed"},
        headers=FINANCE_HEADERS,
    )
    assert resp.status_code == 200
    payment_id = resp.json()["payments"][0]["id"]
    resp = api_client.patch(
        f"/cases/case_t1/payments/{payment_id}", json={"reference": "TX-1"}, headers=ADMIN_HEADERS
    )
    assert resp.json()["payments"][0]["reference"] == "TX-1"
    assert api_client.delete("/cases/case_t1/payments/pay_x", headers=ADMIN_HEADERS).status_code == 404
    assert api_client.post(
        "/cases/case_t1/payments", json={"amount": 1}, headers=AGENT_HEADERS
    ).status_code == 403

    resp = api_client.post(
        "/cases/case_t1/transitions", json={"status": "visa_approved"}, headers=ADMIN_HEADERS
    )
    visa = resp.json()["visa"]
    assert visa["status"] == "approved"
    assert visa["issueDate"] == "2026-03-01"
    assert visa["expiryDate"] == "2027-03-01"
    resp = api_client.patch(
        "/cases/case_t1/visa", json={"visaNumber": "IN-55"}, headers=ADMIN_HEADERS
    )
    assert resp.json()["visa"]["visaNumber"] == "IN-55"


def test_treatment_plan_and_document_verification(api_client: TestClient, store) -> None:
    _put(store, status="case_accepted", assigned_hospital="H1")
    resp = api_client.put(
        "/cases/case_t1/treatment-plan",
        json={"diagnosis": "CAD", "estimatedCost": 9000, "doctorName": "Dr. Iyer"},
        headers=H1_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["treatmentPlan"]["doctorName"] == "Dr. Iyer"

    resp = api_client.post(
        "/cases/case_t1/documents",
        json={"type": "lab_blood", "name": "cbc.pdf"},
        headers=H1_HEADERS,
    )
    doc_id = resp.json()["documents"][0]["id"]
    resp = api_client.post(
        f"/cases/case_t1/documents/{doc_id}/verification",
        json={"status": "verified"},
        headers=ADMIN_HEADERS,
    )
    assert resp.json()["documents"][0]["verificationStatus"] == "verified"
    resp = api_client.post(
        "/cases/case_t1/documents",
        json={"type": "visa_copy", "name": "visa.pdf"},
        headers=H1_HEADERS,
    )
    assert resp.status_code == 422
    resp = api_client.delete(f"/cases/case_t1/documents/{doc_id}", headers=H1_HEADERS)
    assert resp.json()["documents"] == []


def test_workflow_graph_json_and_dot(api_client: TestClient) -> None:
    data = api_client.get("/workflow/graph").json()
    assert "guards" in data and "roles" in data
    assert data["roles"]["finance"]["visa_processing_documents"][0]["to"] == "visa_processing_payments"
    resp = api_client.get("/workflow/graph", params={"format": "dot"})
    assert resp.status_code == 200
    assert resp.text.startswith("digraph caseflow {")
    assert api_client.get("/workflow/graph", params={"format": "png"}).status_code == 422


def test_lifespan_builds_sql_workflow(tmp_path) -> None:
    """Without a pre-bound workflow the app wires a SQL store from config."""
    db_file = tmp_path / "lifespan.db"
    config_file = tmp_path / "api_config.yaml"
    config_file.write_text(f'database:\n  url: "sqlite:///{db_file}"\n')
    os.environ["CASEFLOW_CONFIG_PATH"] = str(config_file)
    os.environ["CASEFLOW_API_KEYS"] = "dev:dev_key"
    app.state.workflow = None
    try:
        with TestClient(app) as client:
            resp = client.post("/cases", json={}, headers={"X-API-Key": "dev_key"})
            assert resp.status_code == 200
            case_id = resp.json()["id"]
            got = client.get(f"/cases/{case_id}", headers={"X-API-Key": "dev_key"})
            assert got.json()["status"] == S.NEW.value
        assert db_file.exists()
    finally:
        app.state.workflow = None
        app.state.directory = None
        os.environ.pop("CASEFLOW_CONFIG_PATH", None)
        os.environ.pop("CASEFLOW_API_KEYS", None)
