"""Tests for case pipeline reports."""

from __future__ import annotations

import csv
import json
from datetime import timedelta
from pathlib import Path

from conftest import FIXED_NOW, make_case
from sqlalchemy import select

from caseflow.audit_context import set_audit_context
from caseflow.case_lifecycle import CaseStatus
from caseflow.db import session_scope
from caseflow.documents import DocumentRequirementGate, DocumentType
from caseflow.models import AuditLog
from caseflow.reporting import FIELDNAMES, case_report_row, generate_case_report
from caseflow.schemas import CaseDocument


def _doc(doc_type: DocumentType) -> CaseDocument:
    return CaseDocument(id=f"doc_{doc_type.value}", type=doc_type, name=f"{doc_type.value}.pdf")


def test_report_row_has_ids_not_client_details(two_doc_gate) -> None:
    case = make_case(
        status=CaseStatus.ADMIN_REVIEW,
        client_info={"name": "Ana Lima", "passport": "P1234567"},
        created_at=FIXED_NOW - timedelta(days=3),
    )
    case = case.model_copy(update={"documents": [_doc(DocumentType.PASSPORT_FRONT)]})
    row = case_report_row(case, two_doc_gate, FIXED_NOW)
    assert set(row) == set(FIELDNAMES)
    assert row["case_id"] == "case_t1"
    assert row["client_id"] == "client_1"
    assert "Ana Lima" not in json.dumps(row)
    assert row["status_label"] == "Admin Review"
    assert row["document_count"] == 1
    assert row["missing_intake_documents"] == 1
    assert row["days_open"] == 3.0


def test_report_row_counts_completed_payments_only(two_doc_gate) -> None:
    case = make_case(
        payments=[
            {"id": "p1", "type": "visa", "amount": 100.0, "status": "completed"},
            {"id": "p2", "type": "travel", "amount": 50.0, "status": "pending"},
        ]
    )
    assert case_report_row(case, two_doc_gate, FIXED_NOW)["payments_completed_total"] == 100.0


def test_generate_case_report_writes_json_csv_and_audit(sqlite_url, config_path, tmp_path: Path) -> None:
    set_audit_context("report-test", "admin_1")
    cases = [
        make_case(id="case_a", status=CaseStatus.NEW),
        make_case(id="case_b", status=CaseStatus.HOSPITAL_REVIEW, priority="urgent"),
        make_case(id="case_c", status=CaseStatus.CASE_CLOSED),
    ]
    out_dir = tmp_path / "reports"
    with session_scope() as session:
        json_path, csv_path = generate_case_report(session, cases, out_dir, config_path=config_path)

    data = json.loads(Path(json_path).read_text())
    assert "generated_at" in data
    assert data["stats"] == {"total": 3, "active": 2, "pending": 1, "completed": 1, "urgent": 1}
    assert [r["case_id"] for r in data["cases"]] == ["case_a", "case_b", "case_c"]
    # Gate comes from the config file: passport_front + medical_reports
    assert data["cases"][0]["missing_intake_documents"] == 2

    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        assert reader.fieldnames == FIELDNAMES
        assert len(list(reader)) == 3

    with session_scope() as session:
        row = session.execute(
            select(AuditLog).where(AuditLog.action == "generate_report")
        ).scalar_one()
        assert row.actor == "admin_1"
        assert row.correlation_id == "report-test"
        assert row.details_json["case_count"] == 3
        assert len(row.details_json["config_hash"]) == 64


def test_from_config_gate_matches_report(loaded_config) -> None:
    gate = DocumentRequirementGate.from_config(loaded_config)
    case = make_case()
    assert case_report_row(case, gate)["missing_intake_documents"] == 2
