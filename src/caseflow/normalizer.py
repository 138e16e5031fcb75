"""Normalize-before-persist: turn any partial case data into a valid CaseRecord.

normalize() is total. Missing or malformed parts are replaced by defaults or
dropped with a warning; it never raises on bad input.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from caseflow.case_lifecycle import CaseStatus, Priority, parse_status
from caseflow.schemas import (
    ActivityLogEntry,
    AttenderInfo,
    CaseDocument,
    CaseRecord,
    ClientInfo,
    Comment,
    PaymentRecord,
    StatusHistoryEntry,
    TreatmentPlan,
    VisaInfo,
    as_utc,
    utcnow,
)

log = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
_DATETIME = TypeAdapter(datetime)

CREATED_NOTE = "Case created"


def generate_id(prefix: str) -> str:
    """`<prefix>_<epoch ms>_<9 random base36 chars>`."""
    rand = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{rand}"


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        v = data.get(k)
        if v is not None:
            return v
    return None


def _clean_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _parse_dt(v: Any, default: datetime) -> datetime:
    if v is None:
        return default
    try:
        return as_utc(_DATETIME.validate_python(v))
    except ValidationError:
        log.warning("Unparseable timestamp replaced with default")
        return default


def _valid_entries(
    model: type[BaseModel], raw: Any, label: str, case_id: str
) -> list[Any]:
    """Validate each list entry against model; drop the malformed ones."""
    if raw is None:
        return []
    if not isinstance(raw, list | tuple):
        log.warning("case %s: %s is not a list; replaced with empty list", case_id, label)
        return []
    out: list[Any] = []
    dropped = 0
    for item in raw:
        if isinstance(item, model):
            out.append(item)
            continue
        if not isinstance(item, Mapping):
            dropped += 1
            continue
        try:
            out.append(model.model_validate(dict(item)))
        except ValidationError:
            dropped += 1
    if dropped:
        log.warning("case %s: dropped %d malformed %s entries", case_id, dropped, label)
    return out


def _optional_model(model: type[BaseModel], raw: Any, label: str, case_id: str) -> Any:
    if raw is None or isinstance(raw, model):
        return raw
    if not isinstance(raw, Mapping):
        log.warning("case %s: malformed %s dropped", case_id, label)
        return None
    try:
        return model.model_validate(dict(raw))
    except ValidationError:
        log.warning("case %s: malformed %s dropped", case_id, label)
        return None


def _priority(raw: Any, case_id: str) -> Priority:
    if raw is None:
        return Priority.MEDIUM
    try:
        return Priority(str(raw).strip().lower())
    except ValueError:
        log.warning("case %s: invalid priority replaced with medium", case_id)
        return Priority.MEDIUM


def _status(raw: Any, case_id: str) -> CaseStatus:
    if raw is None:
        return CaseStatus.NEW
    status = parse_status(raw)
    if status is None:
        log.warning("case %s: invalid status replaced with new", case_id)
        return CaseStatus.NEW
    return status


def _backfill_case_id(entries: list[Any], case_id: str) -> list[Any]:
    return [e if e.case_id == case_id else e.model_copy(update={"case_id": case_id}) for e in entries]


def normalize(partial: Mapping[str, Any] | CaseRecord | None) -> CaseRecord:
    """Complete partial case data with defaults. Accepts snake_case or camelCase keys."""
    if isinstance(partial, CaseRecord):
        data: Mapping[str, Any] = dict(partial)
    elif isinstance(partial, Mapping):
        data = partial
    else:
        if partial is not None:
            log.warning("normalize got %s; starting from an empty case", type(partial).__name__)
        data = {}

    case_id = _clean_str(data.get("id")) or generate_id("case")
    client_id = _clean_str(_pick(data, "client_id", "clientId")) or generate_id("client")
    agent_id = _clean_str(_pick(data, "agent_id", "agentId")) or generate_id("agent")
    now = utcnow()
    created_at = _parse_dt(_pick(data, "created_at", "createdAt"), now)
    updated_at = _parse_dt(_pick(data, "updated_at", "updatedAt"), created_at)

    seed = StatusHistoryEntry(
        status=CaseStatus.NEW, timestamp=created_at, actor_id=agent_id, note=CREATED_NOTE
    )
    history = _valid_entries(
        StatusHistoryEntry, _pick(data, "status_history", "statusHistory"), "status_history", case_id
    )
    if not history or history[0].status is not CaseStatus.NEW:
        history = [seed, *history]

    client_raw = _pick(data, "client_info", "clientInfo")
    try:
        client_info = ClientInfo.model_validate(client_raw if client_raw is not None else {})
    except ValidationError:
        log.warning("case %s: malformed client_info replaced with defaults", case_id)
        client_info = ClientInfo()

    visa = _optional_model(VisaInfo, data.get("visa"), "visa", case_id) or VisaInfo()

    assigned_hospital = _clean_str(_pick(data, "assigned_hospital", "assignedHospital"))
    assigned_university = _clean_str(_pick(data, "assigned_university", "assignedUniversity"))
    if assigned_hospital and assigned_university:
        log.warning(
            "case %s: both hospital %s and university %s assigned; keeping both",
            case_id,
            assigned_hospital,
            assigned_university,
        )

    activity = _valid_entries(
        ActivityLogEntry, _pick(data, "activity_log", "activityLog"), "activity_log", case_id
    )
    comments = _valid_entries(Comment, data.get("comments"), "comments", case_id)

    return CaseRecord(
        id=case_id,
        client_id=client_id,
        agent_id=agent_id,
        status=_status(data.get("status"), case_id),
        status_history=history,
        documents=_valid_entries(CaseDocument, data.get("documents"), "documents", case_id),
        client_info=client_info,
        attender_info=_optional_model(
            AttenderInfo, _pick(data, "attender_info", "attenderInfo"), "attender_info", case_id
        ),
        assigned_hospital=assigned_hospital,
        assigned_university=assigned_university,
        treatment_plan=_optional_model(
            TreatmentPlan, _pick(data, "treatment_plan", "treatmentPlan"), "treatment_plan", case_id
        ),
        payments=_valid_entries(PaymentRecord, data.get("payments"), "payments", case_id),
        visa=visa,
        comments=_backfill_case_id(comments, case_id),
        activity_log=_backfill_case_id(activity, case_id),
        priority=_priority(data.get("priority"), case_id),
        created_at=created_at,
        updated_at=updated_at,
    )
