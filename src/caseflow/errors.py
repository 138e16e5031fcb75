"""Workflow boundary errors. The core (policy, gate, normalizer) never raises these."""

from __future__ import annotations

from caseflow.case_lifecycle import CaseStatus
from caseflow.documents import DocumentType


class WorkflowError(Exception):
    """Base for errors raised by CaseWorkflow before any write."""


class CaseNotFoundError(WorkflowError):
    def __init__(self, case_id: str) -> None:
        super().__init__(f"Case {case_id} not found")
        self.case_id = case_id


class RecordNotFoundError(WorkflowError):
    """A document or payment id that is not on the case."""

    def __init__(self, kind: str, record_id: str, case_id: str) -> None:
        super().__init__(f"{kind.capitalize()} {record_id} not found on case {case_id}")
        self.kind = kind
        self.record_id = record_id


class TransitionNotAllowedError(WorkflowError):
    def __init__(
        self, current: CaseStatus, target: CaseStatus, reasons: tuple[str, ...] | list[str] = ()
    ) -> None:
        msg = f"Transition {current.value} -> {target.value} not allowed"
        if reasons:
            msg = f"{msg}: {'; '.join(reasons)}"
        super().__init__(msg)
        self.current = current
        self.target = target
        self.reasons = tuple(reasons)


class NoteRequiredError(WorkflowError):
    def __init__(self, target: CaseStatus) -> None:
        super().__init__(f"A note is required to move a case to {target.value}")
        self.target = target


class DocumentTypeNotAllowedError(WorkflowError):
    def __init__(self, doc_type: DocumentType, status: CaseStatus) -> None:
        super().__init__(f"Document type {doc_type.value} cannot be uploaded at {status.value}")
        self.doc_type = doc_type
        self.status = status


class PermissionDeniedError(WorkflowError):
    pass


class AssignmentRequiredError(WorkflowError):
    pass
