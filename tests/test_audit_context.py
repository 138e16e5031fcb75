"""Tests for audit context (correlation_id, actor and acting-user traceability)."""

from caseflow.audit_context import (
    get_actor,
    get_acting_user,
    get_audit_context,
    get_correlation_id,
    set_acting_user,
    set_audit_context,
)
from caseflow.case_lifecycle import UserRole
from caseflow.schemas import ActingUser


def test_set_and_get_context() -> None:
    """When context is set, get_audit_context and get_correlation_id/get_actor return those values."""
    set_audit_context("corr-123", "admin_1")
    cid, actor = get_audit_context()
    assert cid == "corr-123"
    assert actor == "admin_1"
    assert get_correlation_id() == "corr-123"
    assert get_actor() == "admin_1"


def test_get_correlation_id_generated_when_unset() -> None:
    """When correlation_id is not set, get_correlation_id returns a generated UUID."""
    set_audit_context(None, "system")
    cid = get_correlation_id()
    assert len(cid) == 36
    assert cid.count("-") == 4


def test_get_actor_default_system_when_unset() -> None:
    set_audit_context("x", None)
    assert get_actor() == "system"
    set_audit_context(None, None)
    _, actor = get_audit_context()
    assert actor == "system"


def test_acting_user_drives_actor() -> None:
    """Binding the authenticated user sets the actor id and keeps the correlation id."""
    set_audit_context("req-9", "anonymous")
    user = ActingUser(id="agent_1", name="Sam Agent", role=UserRole.AGENT)
    set_acting_user(user)
    assert get_acting_user() == user
    assert get_actor() == "agent_1"
    assert get_correlation_id() == "req-9"


def test_new_context_clears_acting_user() -> None:
    set_acting_user(ActingUser(id="admin_1", role=UserRole.ADMIN))
    set_audit_context("next-run", "cli")
    assert get_acting_user() is None
    assert get_actor() == "cli"
