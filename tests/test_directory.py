"""Tests for the YAML-backed user/hospital/university directory."""

from __future__ import annotations

from pathlib import Path

import pytest

from caseflow.case_lifecycle import CaseTrack, UserRole
from caseflow.directory import directory_from_config, load_directory


def test_load_directory_from_yaml(tmp_path) -> None:
    path = tmp_path / "directory.yaml"
    path.write_text(
        """
users:
  - {id: agent_1, name: Sam Agent, role: agent, agent_type: hospital}
  - {id: hosp_user_1, name: H1 Desk, role: hospital, hospitalIds: [H1]}
hospitals:
  - {id: H1, name: Harbor Hospital, city: Chennai}
universities:
  - {id: U1, name: Uplands University}
"""
    )
    directory = load_directory(path)
    agent = directory.get_user("agent_1")
    assert agent.role is UserRole.AGENT
    assert agent.agent_type is CaseTrack.HOSPITAL
    assert directory.get_user("hosp_user_1").hospital_ids == ["H1"]
    assert directory.get_hospital("H1").city == "Chennai"
    assert directory.get_university("U1").name == "Uplands University"
    assert directory.get_user("nobody") is None
    assert [u.id for u in directory.users()] == ["agent_1", "hosp_user_1"]


def test_invalid_role_raises_value_error(tmp_path) -> None:
    path = tmp_path / "directory.yaml"
    path.write_text("users:\n  - {id: x, role: superuser}\n")
    with pytest.raises(ValueError, match="Invalid directory file"):
        load_directory(path)


def test_directory_from_config_missing_or_unset() -> None:
    assert directory_from_config({}).users() == []
    assert directory_from_config({"directory": {"path": "/no/such/file.yaml"}}).users() == []


def test_shipped_directory_loads() -> None:
    path = Path(__file__).resolve().parent.parent / "config" / "directory.yaml"
    directory = directory_from_config({"directory": {"path": str(path)}})
    assert directory.get_user("admin_1").role is UserRole.ADMIN
    assert directory.get_hospital("hosp_1") is not None
