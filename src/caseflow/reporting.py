"""Case pipeline report generation (JSON + CSV)."""

from __future__ import annotations

import csv
import json
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from caseflow import ENGINE_VERSION, WORKFLOW_VERSION
from caseflow.audit_context import get_actor, get_correlation_id
from caseflow.case_lifecycle import progress_index, progress_percentage, status_label
from caseflow.config import get_config, get_config_hash
from caseflow.documents import DocumentRequirementGate
from caseflow.models import AuditLog
from caseflow.schemas import CaseRecord, as_utc
from caseflow.workflow import compute_stats

FIELDNAMES = [
    "case_id",
    "status",
    "status_label",
    "progress_index",
    "progress_percentage",
    "priority",
    "track",
    "client_id",
    "agent_id",
    "assigned_hospital",
    "assigned_university",
    "visa_status",
    "document_count",
    "missing_intake_documents",
    "payments_completed_total",
    "comment_count",
    "created_at",
    "updated_at",
    "days_open",
]


def case_report_row(
    case: CaseRecord, gate: DocumentRequirementGate, now: datetime | None = None
) -> dict[str, Any]:
    """One flat report row. Ids only; client details are never exported."""
    now = now or datetime.now(UTC)
    missing = gate.intake_required(case.track) - case.uploaded_document_types
    return {
        "case_id": case.id,
        "status": case.status.value,
        "status_label": status_label(case.status, case.track),
        "progress_index": progress_index(case.status),
        "progress_percentage": round(progress_percentage(case.status), 2),
        "priority": case.priority.value,
        "track": case.track.value,
        "client_id": case.client_id,
        "agent_id": case.agent_id,
        "assigned_hospital": case.assigned_hospital,
        "assigned_university": case.assigned_university,
        "visa_status": case.visa.status.value,
        "document_count": len(case.documents),
        "missing_intake_documents": len(missing),
        "payments_completed_total": round(
            sum(p.amount for p in case.payments if p.status == "completed"), 2
        ),
        "comment_count": len(case.comments),
        "created_at": case.created_at.isoformat(),
        "updated_at": case.updated_at.isoformat(),
        "days_open": round((now - as_utc(case.created_at)).total_seconds() / 86400.0, 2),
    }


def generate_case_report(
    session,
    cases: Iterable[CaseRecord],
    output_dir: str | Path,
    output_prefix: str = "cases",
    config_path: str | None = None,
) -> tuple[str, str]:
    """
    Write JSON (rows + stats) and CSV (rows) for the given cases.
    Writes audit log with counts, duration, config_hash, workflow_version.
    Returns (path_json, path_csv).
    """
    start = time.perf_counter()
    config = get_config(config_path)
    config_hash = get_config_hash(config)
    gate = DocumentRequirementGate.from_config(config)
    path = Path(output_dir)
    path.mkdir(parents=True, exist_ok=True)
    now = datetime.now(UTC)
    ts_suffix = now.strftime("%Y%m%d_%H%M%S")
    json_path = path / f"{output_prefix}_{ts_suffix}.json"
    csv_path = path / f"{output_prefix}_{ts_suffix}.csv"

    cases = list(cases)
    records = [case_report_row(c, gate, now) for c in cases]
    stats = compute_stats(cases)

    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(
            {
                "generated_at": now.isoformat(),
                "stats": {
                    "total": stats.total,
                    "active": stats.active,
                    "pending": stats.pending,
                    "completed": stats.completed,
                    "urgent": stats.urgent,
                },
                "cases": records,
            },
            f,
            indent=2,
        )

    with open(csv_path, "w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=FIELDNAMES, extrasaction="ignore")
        w.writeheader()
        for rec in records:
            w.writerow(rec)

    duration = time.perf_counter() - start
    session.add(
        AuditLog(
            correlation_id=get_correlation_id(),
            action="generate_report",
            entity_type="report",
            entity_id=ts_suffix,
            actor=get_actor(),
            details_json={
                "case_count": len(records),
                "duration_seconds": round(duration, 3),
                "config_hash": config_hash,
                "workflow_version": WORKFLOW_VERSION,
                "engine_version": ENGINE_VERSION,
                "output_json": str(json_path),
                "output_csv": str(csv_path),
            },
        )
    )
    return str(json_path), str(csv_path)
