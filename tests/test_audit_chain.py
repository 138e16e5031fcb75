"""Tests for audit log hash chain (tamper resistance)."""

from __future__ import annotations

from sqlalchemy import create_engine, select, text

from caseflow.audit_context import set_audit_context
from caseflow.db import session_scope, verify_audit_chain
from caseflow.models import AuditLog


def test_audit_log_has_prev_hash_and_row_hash(sqlite_url) -> None:
    """After adding AuditLog, row has prev_hash and row_hash set."""
    set_audit_context("chain-test", "test")
    with session_scope() as session:
        session.add(AuditLog(action="test_action", entity_type="test", entity_id="1", actor="test"))
    with session_scope() as session:
        row = session.execute(
            select(AuditLog.prev_hash, AuditLog.row_hash).order_by(AuditLog.id.desc()).limit(1)
        ).first()
    assert row is not None
    assert row[0] is None, "first row has no predecessor"
    assert row[1] is not None and len(row[1]) == 64, "row_hash must be SHA256 hex"


def test_second_row_links_to_first(sqlite_url) -> None:
    set_audit_context("chain-two", "test")
    with session_scope() as session:
        session.add(AuditLog(action="first", entity_type="e", entity_id="1", actor="a"))
    with session_scope() as session:
        session.add(AuditLog(action="second", entity_type="e", entity_id="2", actor="a"))
    with session_scope() as session:
        rows = session.execute(
            select(AuditLog.id, AuditLog.prev_hash, AuditLog.row_hash).order_by(AuditLog.id)
        ).fetchall()
    assert len(rows) == 2
    assert rows[1][1] == rows[0][2], "Chain: second.prev_hash == first.row_hash"


def test_rows_in_one_flush_chain_in_order(sqlite_url) -> None:
    with session_scope() as session:
        session.add(AuditLog(action="a", entity_type="e", entity_id="1"))
        session.add(AuditLog(action="b", entity_type="e", entity_id="2"))
    with session_scope() as session:
        assert verify_audit_chain(session) == []
        rows = session.execute(select(AuditLog).order_by(AuditLog.id)).scalars().all()
        assert rows[0].actor == "system"
        assert rows[0].ts is not None


def test_untouched_chain_verifies(sqlite_url) -> None:
    set_audit_context("verify-ok", "test")
    for i in range(3):
        with session_scope() as session:
            session.add(
                AuditLog(action="step", entity_type="case", entity_id=str(i), details_json={"i": i})
            )
    with session_scope() as session:
        assert verify_audit_chain(session) == []


def test_tampering_breaks_verification(sqlite_url) -> None:
    """Changing details_json behind the ORM leaves row_hash stale; verification flags the row."""
    set_audit_context("tamper-test", "test")
    with session_scope() as session:
        session.add(
            AuditLog(
                action="case_saved",
                entity_type="case",
                entity_id="case_1",
                actor="a",
                details_json={"status": "new"},
            )
        )
    with session_scope() as session:
        row_id = session.execute(
            select(AuditLog.id).order_by(AuditLog.id.desc()).limit(1)
        ).scalar_one()

    engine = create_engine(sqlite_url)
    with engine.connect() as conn:
        conn.execute(
            text("UPDATE audit_logs SET details_json = :new WHERE id = :id"),
            {"new": '{"status": "case_closed"}', "id": row_id},
        )
        conn.commit()
    engine.dispose()

    with session_scope() as session:
        assert verify_audit_chain(session) == [row_id]
