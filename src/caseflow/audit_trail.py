"""Append-only audit trail: status history and activity log on a case.

Every function returns a new CaseRecord; the input case and its existing
entries are never modified.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from caseflow.case_lifecycle import CaseStatus
from caseflow.normalizer import generate_id
from caseflow.schemas import (
    ActingUser,
    ActivityLogEntry,
    CaseRecord,
    StatusHistoryEntry,
    utcnow,
)


class ActivityAction(StrEnum):
    CASE_CREATED = "Case Created"
    STATUS_UPDATED = "Status Updated"
    HOSPITAL_ASSIGNED = "Hospital Assigned"
    UNIVERSITY_ASSIGNED = "University Assigned"
    DOCUMENT_UPLOADED = "Document Uploaded"
    DOCUMENT_REMOVED = "Document Removed"
    DOCUMENT_VERIFIED = "Document Verified"
    DOCUMENT_REJECTED = "Document Rejected"
    PAYMENT_ADDED = "Payment Added"
    PAYMENT_UPDATED = "Payment Updated"
    PAYMENT_DELETED = "Payment Deleted"
    COMMENT_ADDED = "Comment Added"
    TREATMENT_PLAN_SAVED = "Treatment Plan Saved"
    VISA_UPDATED = "Visa Updated"


def activity_entry(
    case_id: str,
    actor: ActingUser,
    action: ActivityAction | str,
    details: str = "",
    at: datetime | None = None,
) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=generate_id("log"),
        case_id=case_id,
        user_id=actor.id,
        user_name=actor.name,
        user_role=actor.role,
        action=str(action),
        details=details,
        timestamp=at or utcnow(),
    )


def record_activity(
    case: CaseRecord,
    actor: ActingUser,
    action: ActivityAction | str,
    details: str = "",
    at: datetime | None = None,
) -> CaseRecord:
    """Append one activity-log entry and bump updated_at."""
    at = at or utcnow()
    entry = activity_entry(case.id, actor, action, details, at)
    return case.model_copy(
        update={"activity_log": [*case.activity_log, entry], "updated_at": at}
    )


def record_status_change(
    case: CaseRecord,
    new_status: CaseStatus,
    actor: ActingUser,
    note: str | None = None,
    at: datetime | None = None,
) -> CaseRecord:
    """Move case to new_status, appending a history entry and a matching activity entry."""
    at = at or utcnow()
    history_entry = StatusHistoryEntry(
        status=new_status,
        timestamp=at,
        actor_id=actor.id,
        actor_name=actor.name,
        note=note,
    )
    details = f"Status changed from {case.status.value} to {new_status.value}"
    if note:
        details = f"{details}: {note}"
    moved = case.model_copy(
        update={
            "status": new_status,
            "status_history": [*case.status_history, history_entry],
        }
    )
    return record_activity(moved, actor, ActivityAction.STATUS_UPDATED, details, at)


@dataclass(frozen=True)
class TimelineEvent:
    timestamp: datetime
    kind: str  # "status" or "activity"
    actor_id: str
    actor_name: str
    summary: str
    status: CaseStatus | None = None


def timeline(case: CaseRecord) -> list[TimelineEvent]:
    """Status history and activity log merged, newest first."""
    events = [
        TimelineEvent(
            timestamp=h.timestamp,
            kind="status",
            actor_id=h.actor_id,
            actor_name=h.actor_name,
            summary=h.note or h.status.value,
            status=h.status,
        )
        for h in case.status_history
    ]
    events.extend(
        TimelineEvent(
            timestamp=a.timestamp,
            kind="activity",
            actor_id=a.user_id,
            actor_name=a.user_name,
            summary=f"{a.action}: {a.details}" if a.details else a.action,
        )
        for a in case.activity_log
    )
    # stable sort keeps status entries ahead of same-instant activity entries
    return sorted(events, key=lambda e: e.timestamp, reverse=True)
