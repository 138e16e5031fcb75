"""Tests for the document requirement gate."""

from __future__ import annotations

from caseflow.case_lifecycle import CaseStatus, CaseTrack, UserRole
from caseflow.documents import (
    ACADEMIC,
    DOCUMENT_TYPE_LABELS,
    FINANCIAL,
    INTAKE_REQUIRED,
    DocumentRequirementGate,
    DocumentType,
    parse_document_types,
)

S = CaseStatus
D = DocumentType


def test_every_document_type_has_a_label() -> None:
    assert set(DOCUMENT_TYPE_LABELS) == set(DocumentType)


def test_default_hospital_intake_requires_seven_documents() -> None:
    gate = DocumentRequirementGate()
    req = gate.evaluate(UserRole.AGENT, S.CASE_AGENT_REVIEW, [])
    assert len(req.required) == 7
    assert set(req.missing) == INTAKE_REQUIRED[CaseTrack.HOSPITAL]
    assert not req.complete


def test_missing_shrinks_as_documents_arrive() -> None:
    gate = DocumentRequirementGate({CaseTrack.HOSPITAL: [D.PASSPORT_FRONT, D.MEDICAL_REPORTS]})
    req = gate.evaluate(UserRole.AGENT, S.CASE_AGENT_REVIEW, [D.PASSPORT_FRONT])
    assert req.required == (D.PASSPORT_FRONT, D.MEDICAL_REPORTS)
    assert req.missing == (D.MEDICAL_REPORTS,)
    assert D.PASSPORT_FRONT not in req.available
    done = gate.evaluate(UserRole.AGENT, S.CASE_AGENT_REVIEW, ["passport_front", "medical_reports"])
    assert done.complete


def test_results_are_in_declaration_order() -> None:
    gate = DocumentRequirementGate()
    req = gate.evaluate(UserRole.AGENT, S.NEW, [])
    order = list(DocumentType)
    assert list(req.available) == sorted(req.available, key=order.index)
    assert list(req.required) == sorted(req.required, key=order.index)


def test_university_intake_uses_academic_documents() -> None:
    gate = DocumentRequirementGate()
    req = gate.evaluate(UserRole.AGENT, S.NEW, [], CaseTrack.UNIVERSITY)
    assert set(req.required) == {
        D.PASSPORT_FRONT,
        D.ACADEMIC_CERTIFICATES,
        D.TRANSCRIPTS,
        D.ENGLISH_PROFICIENCY,
    }
    assert ACADEMIC <= set(req.available)
    assert D.LAB_BLOOD not in req.available


def test_visa_copy_required_after_approval() -> None:
    gate = DocumentRequirementGate()
    req = gate.evaluate(UserRole.AGENT, S.VISA_APPROVED, [])
    assert req.required == (D.VISA_COPY,)
    assert req.available == (D.VISA_COPY,)
    assert gate.evaluate(UserRole.AGENT, S.VISA_APPROVED, [D.VISA_COPY]).complete


def test_admin_may_upload_anything_anywhere() -> None:
    gate = DocumentRequirementGate()
    for status in CaseStatus:
        assert gate.is_document_type_allowed(D.ADMISSION_LETTER, UserRole.ADMIN, status)
        assert gate.evaluate(UserRole.ADMIN, status, []).required == ()


def test_finance_limited_to_financial_documents() -> None:
    gate = DocumentRequirementGate()
    req = gate.evaluate(UserRole.FINANCE, S.INVOICE_UPLOADED, [])
    assert set(req.available) == FINANCIAL
    assert not gate.is_document_type_allowed(D.VISA_COPY, UserRole.FINANCE, S.INVOICE_UPLOADED)


def test_unlisted_combination_is_empty_not_an_error() -> None:
    gate = DocumentRequirementGate()
    req = gate.evaluate(UserRole.CLIENT, S.NEW, [])
    assert req.available == () and req.required == () and req.missing == ()
    assert req.complete
    assert not gate.is_document_type_allowed(D.PASSPORT_FRONT, UserRole.AGENT, S.TICKET_BOOKING)


def test_receiving_parties_only_on_their_track() -> None:
    gate = DocumentRequirementGate()
    assert gate.is_document_type_allowed(
        D.LAB_BLOOD, UserRole.HOSPITAL, S.TREATMENT_IN_PROGRESS, CaseTrack.HOSPITAL
    )
    assert not gate.is_document_type_allowed(
        D.LAB_BLOOD, UserRole.HOSPITAL, S.TREATMENT_IN_PROGRESS, CaseTrack.UNIVERSITY
    )
    assert gate.is_document_type_allowed(
        D.TRANSCRIPTS, UserRole.UNIVERSITY, S.CASE_ACCEPTED, CaseTrack.UNIVERSITY
    )
    assert not gate.is_document_type_allowed(
        D.TRANSCRIPTS, UserRole.UNIVERSITY, S.CASE_ACCEPTED, CaseTrack.HOSPITAL
    )


def test_from_config_overrides_intake_list() -> None:
    gate = DocumentRequirementGate.from_config(
        {"documents": {"required": {"hospital": ["passport_front"]}}}
    )
    assert gate.intake_required(CaseTrack.HOSPITAL) == {D.PASSPORT_FRONT}
    assert gate.intake_required(CaseTrack.UNIVERSITY) == INTAKE_REQUIRED[CaseTrack.UNIVERSITY]
    assert DocumentRequirementGate.from_config({}).intake_required(CaseTrack.HOSPITAL) == (
        INTAKE_REQUIRED[CaseTrack.HOSPITAL]
    )


def test_parse_document_types_skips_unknown_values() -> None:
    assert parse_document_types(["Passport_Front", "selfie", D.VISA_COPY]) == {
        D.PASSPORT_FRONT,
        D.VISA_COPY,
    }
