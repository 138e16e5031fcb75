"""Pytest fixtures: users, in-memory workflow, sample config, SQLite DB."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Ensure all tests use SQLite by default; ignore DATABASE_URL from the environment.
os.environ.pop("DATABASE_URL", None)
os.environ.pop("CASEFLOW_DATABASE_URL", None)

from caseflow.case_lifecycle import CaseStatus, CaseTrack, UserRole
from caseflow.config import get_config
from caseflow.db import init_db
from caseflow.directory import InMemoryDirectory
from caseflow.documents import DocumentRequirementGate, DocumentType
from caseflow.normalizer import normalize
from caseflow.schemas import ActingUser, Hospital, University
from caseflow.store import InMemoryCaseStore
from caseflow.workflow import CaseWorkflow

FIXED_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)

ADMIN = ActingUser(id="admin_1", name="Ada Admin", role=UserRole.ADMIN)
AGENT = ActingUser(id="agent_1", name="Sam Agent", role=UserRole.AGENT, agent_type=CaseTrack.HOSPITAL)
UNI_AGENT = ActingUser(
    id="agent_2", name="Uma Agent", role=UserRole.AGENT, agent_type=CaseTrack.UNIVERSITY
)
OTHER_AGENT = ActingUser(id="agent_9", name="Other Agent", role=UserRole.AGENT)
HOSPITAL_H1 = ActingUser(id="hosp_user_1", name="H1 Desk", role=UserRole.HOSPITAL, hospital_ids=["H1"])
HOSPITAL_H2 = ActingUser(id="hosp_user_2", name="H2 Desk", role=UserRole.HOSPITAL, hospital_ids=["H2"])
UNIVERSITY_U1 = ActingUser(
    id="uni_user_1", name="U1 Admissions", role=UserRole.UNIVERSITY, university_ids=["U1"]
)
FINANCE = ActingUser(id="finance_1", name="Fin Reviewer", role=UserRole.FINANCE)
CLIENT = ActingUser(id="client_1", name="Client One", role=UserRole.CLIENT)

ALL_USERS = [
    ADMIN,
    AGENT,
    UNI_AGENT,
    OTHER_AGENT,
    HOSPITAL_H1,
    HOSPITAL_H2,
    UNIVERSITY_U1,
    FINANCE,
    CLIENT,
]

# Two-document intake list keeps workflow tests short.
TWO_DOC_INTAKE = [DocumentType.PASSPORT_FRONT, DocumentType.MEDICAL_REPORTS]


def make_case(**fields):
    """Normalized case owned by agent_1 and client_1 unless overridden."""
    data = {"id": "case_t1", "agent_id": "agent_1", "client_id": "client_1"}
    data.update(fields)
    return normalize(data)


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(
        users=ALL_USERS,
        hospitals=[Hospital(id="H1", name="Harbor Hospital"), Hospital(id="H2", name="Hill Hospital")],
        universities=[University(id="U1", name="Uplands University")],
    )


@pytest.fixture
def store() -> InMemoryCaseStore:
    return InMemoryCaseStore()


@pytest.fixture
def two_doc_gate() -> DocumentRequirementGate:
    return DocumentRequirementGate({CaseTrack.HOSPITAL: TWO_DOC_INTAKE})


@pytest.fixture
def workflow(store, directory, two_doc_gate) -> CaseWorkflow:
    """In-memory workflow with a fixed clock and the two-document intake gate."""
    return CaseWorkflow(store, directory, two_doc_gate, clock=lambda: FIXED_NOW)


@pytest.fixture
def case_at():
    """Factory: store a hospital-track case at the given status and return it."""

    def _make(store: InMemoryCaseStore, status: CaseStatus, **fields):
        case = make_case(status=status, **fields)
        store.put(case)
        return case

    return _make


@pytest.fixture
def config_path(tmp_path: Path) -> str:
    """Return path to a temporary config dir with default.yaml."""
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    (cfg_dir / "default.yaml").write_text(
        """
app:
  log_level: INFO
database:
  url: "sqlite:///:memory:"
  echo: false
workflow:
  visa_validity_days: 180
  visa_number_prefix: TV
documents:
  required:
    hospital: [passport_front, medical_reports]
"""
    )
    return str(cfg_dir / "default.yaml")


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """Initialize a file SQLite DB and return its URL."""
    url = f"sqlite:///{tmp_path / 'caseflow_test.db'}"
    init_db(url, echo=False)
    return url


@pytest.fixture
def loaded_config(config_path: str) -> dict:
    return get_config(config_path)
