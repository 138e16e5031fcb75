"""CaseStore: keyed persistence of CaseRecords with secondary indexes.

Single logical writer per case, last write wins. No locking or versioning.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from caseflow.audit_context import get_actor, get_correlation_id
from caseflow.db import session_scope
from caseflow.models import AuditLog, CaseRow
from caseflow.normalizer import normalize
from caseflow.schemas import CaseRecord

log = logging.getLogger(__name__)

IndexField = Literal["client", "agent", "hospital", "university", "status"]
INDEX_FIELDS: tuple[str, ...] = ("client", "agent", "hospital", "university", "status")


class CaseStoreError(Exception):
    """Persistence failed."""


class CaseStoreConflict(CaseStoreError):
    """add() of an id that already exists."""

    def __init__(self, case_id: str) -> None:
        super().__init__(f"Case {case_id} already exists")
        self.case_id = case_id


class CaseStore(Protocol):
    def get(self, case_id: str) -> CaseRecord | None: ...

    def put(self, case: CaseRecord) -> None: ...

    def add(self, case: CaseRecord) -> None: ...

    def list_by_index(self, field: IndexField, value: str) -> list[CaseRecord]: ...

    def list_all(self) -> list[CaseRecord]: ...


def _index_value(case: CaseRecord, field: str) -> str | None:
    if field == "client":
        return case.client_id
    if field == "agent":
        return case.agent_id
    if field == "hospital":
        return case.assigned_hospital
    if field == "university":
        return case.assigned_university
    if field == "status":
        return case.status.value
    raise ValueError(f"Unknown index field: {field!r}. Use one of {INDEX_FIELDS}")


class InMemoryCaseStore:
    """Dict-backed store for tests and the in-process API fixture. Keeps insertion order."""

    def __init__(self) -> None:
        self._cases: dict[str, CaseRecord] = {}

    def get(self, case_id: str) -> CaseRecord | None:
        case = self._cases.get(case_id)
        return case.model_copy(deep=True) if case is not None else None

    def put(self, case: CaseRecord) -> None:
        self._cases[case.id] = case.model_copy(deep=True)

    def add(self, case: CaseRecord) -> None:
        if case.id in self._cases:
            raise CaseStoreConflict(case.id)
        self.put(case)

    def list_by_index(self, field: IndexField, value: str) -> list[CaseRecord]:
        if field not in INDEX_FIELDS:
            raise ValueError(f"Unknown index field: {field!r}. Use one of {INDEX_FIELDS}")
        return [
            c.model_copy(deep=True) for c in self._cases.values() if _index_value(c, field) == value
        ]

    def list_all(self) -> list[CaseRecord]:
        return [c.model_copy(deep=True) for c in self._cases.values()]


_COLUMNS = {
    "client": CaseRow.client_id,
    "agent": CaseRow.agent_id,
    "hospital": CaseRow.assigned_hospital,
    "university": CaseRow.assigned_university,
    "status": CaseRow.status,
}


def _row_to_case(row: CaseRow) -> CaseRecord:
    try:
        return CaseRecord.model_validate(row.payload)
    except ValidationError:
        log.warning("Stored payload for case %s failed validation; normalizing", row.id)
        return normalize(row.payload)


def _apply(row: CaseRow, case: CaseRecord) -> None:
    row.client_id = case.client_id
    row.agent_id = case.agent_id
    row.status = case.status.value
    row.assigned_hospital = case.assigned_hospital
    row.assigned_university = case.assigned_university
    row.priority = case.priority.value
    row.payload = case.to_payload()
    row.created_at = case.created_at
    row.updated_at = case.updated_at


def _audit(action: str, case: CaseRecord) -> AuditLog:
    return AuditLog(
        correlation_id=get_correlation_id(),
        action=action,
        entity_type="case",
        entity_id=case.id,
        actor=get_actor(),
        details_json={
            "status": case.status.value,
            "history_len": len(case.status_history),
            "activity_len": len(case.activity_log),
        },
    )


class SqlCaseStore:
    """SQLAlchemy-backed store; requires init_db() first. Every write appends a chained audit row."""

    def get(self, case_id: str) -> CaseRecord | None:
        try:
            with session_scope() as session:
                row = session.get(CaseRow, case_id)
                return _row_to_case(row) if row is not None else None
        except SQLAlchemyError as e:
            raise CaseStoreError(str(e)) from e

    def put(self, case: CaseRecord) -> None:
        try:
            with session_scope() as session:
                row = session.get(CaseRow, case.id)
                if row is None:
                    row = CaseRow(id=case.id)
                    session.add(row)
                _apply(row, case)
                session.add(_audit("case_saved", case))
        except SQLAlchemyError as e:
            raise CaseStoreError(str(e)) from e

    def add(self, case: CaseRecord) -> None:
        try:
            with session_scope() as session:
                if session.get(CaseRow, case.id) is not None:
                    raise CaseStoreConflict(case.id)
                row = CaseRow(id=case.id)
                _apply(row, case)
                session.add(row)
                session.add(_audit("case_created", case))
        except IntegrityError as e:
            raise CaseStoreConflict(case.id) from e
        except SQLAlchemyError as e:
            raise CaseStoreError(str(e)) from e

    def list_by_index(self, field: IndexField, value: str) -> list[CaseRecord]:
        if field not in _COLUMNS:
            raise ValueError(f"Unknown index field: {field!r}. Use one of {INDEX_FIELDS}")
        stmt = select(CaseRow).where(_COLUMNS[field] == value).order_by(CaseRow.created_at)
        return self._select(stmt)

    def list_all(self) -> list[CaseRecord]:
        return self._select(select(CaseRow).order_by(CaseRow.created_at))

    def _select(self, stmt) -> list[CaseRecord]:
        try:
            with session_scope() as session:
                return [_row_to_case(r) for r in session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            raise CaseStoreError(str(e)) from e
