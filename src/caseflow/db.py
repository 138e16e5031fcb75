"""SQLAlchemy 2.x engine and session (SQLite and Postgres)."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from logging import getLogger

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker

from caseflow.models import AuditLog, Base

logger = getLogger(__name__)

# Module-level engine/session_factory; set via init_db()
_engine = None
_SessionLocal: sessionmaker[Session] | None = None

_IS_SQLITE = False


def _audit_row_canonical(row: AuditLog) -> str:
    """Canonical string for hashing (excludes id, prev_hash, row_hash)."""
    # naive form: SQLite returns DateTime without tzinfo on reload
    ts_str = row.ts.replace(tzinfo=None).isoformat() if row.ts else ""
    details = json.dumps(row.details_json or {}, sort_keys=True)
    return f"{row.correlation_id or ''}|{row.action}|{row.entity_type}|{row.entity_id}|{ts_str}|{row.actor}|{details}"


def _row_hash(prev_hash: str | None, row: AuditLog) -> str:
    payload = (prev_hash or "") + _audit_row_canonical(row)
    return hashlib.sha256(payload.encode()).hexdigest()


def _compute_audit_chain(session: Session) -> None:
    """Set prev_hash and row_hash on new AuditLog instances (tamper resistance)."""
    new_logs = [o for o in session.new if isinstance(o, AuditLog)]
    if not new_logs:
        return
    prev_hash: str | None = None
    stmt = select(AuditLog.row_hash).order_by(AuditLog.id.desc()).limit(1)
    result = session.execute(stmt).scalar_one_or_none()
    if result is not None:
        prev_hash = result
    for row in new_logs:
        if row.ts is None:
            row.ts = datetime.now(UTC)
        if row.actor is None:
            row.actor = "system"
        row.prev_hash = prev_hash
        row.row_hash = _row_hash(prev_hash, row)
        prev_hash = row.row_hash


def _before_flush_audit_chain(session, flush_context, instances) -> None:
    _compute_audit_chain(session)


def verify_audit_chain(session: Session) -> list[int]:
    """Recompute the chain in id order; return ids of rows whose stored hashes do not match."""
    broken: list[int] = []
    prev_hash: str | None = None
    for row in session.execute(select(AuditLog).order_by(AuditLog.id)).scalars():
        if row.prev_hash != prev_hash or row.row_hash != _row_hash(prev_hash, row):
            broken.append(row.id)
        prev_hash = row.row_hash
    if broken:
        logger.warning("Audit chain verification failed for %d rows", len(broken))
    return broken


def init_db(database_url: str, echo: bool = False) -> None:
    """Create engine and session factory. Call once at startup.
    SQLite: create_all. Postgres: engine only (schema via Alembic).
    """
    global _engine, _SessionLocal, _IS_SQLITE
    _IS_SQLITE = "sqlite" in database_url
    connect_args = {} if not _IS_SQLITE else {"check_same_thread": False}
    _engine = create_engine(
        database_url,
        echo=echo,
        connect_args=connect_args,
    )
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    if not event.contains(Session, "before_flush", _before_flush_audit_chain):
        event.listen(Session, "before_flush", _before_flush_audit_chain)

    if _IS_SQLITE:
        Base.metadata.create_all(bind=_engine)
    # Postgres: schema is applied via Alembic (migrate target); do not create_all here


def get_engine():
    """Return the global engine. Raises if init_db() was not called."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _SessionLocal


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope for a block."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
