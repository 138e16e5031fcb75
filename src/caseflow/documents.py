"""Document requirement gate: which document types a role may upload, and which are required.

The table is static and keyed by (role, track, status). Each entry lists the
permitted and required subsets of DocumentType:

    available = permitted - already uploaded
    missing   = required  - already uploaded

Only one workflow edge (agent review -> admin review) is blocked by missing
documents; every other status merely reports them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from caseflow.case_lifecycle import CaseStatus, CaseTrack, UserRole


class DocumentType(StrEnum):
    PASSPORT_FRONT = "passport_front"
    PASSPORT_BACK = "passport_back"
    MEDICAL_REPORTS = "medical_reports"
    TREATMENT_RECORDS = "treatment_records"
    ATTENDER_PASSPORT = "attender_passport"
    ATTENDER_ID = "attender_id"
    PATIENT_PHOTO = "patient_photo"
    MEDICAL_PRESCRIPTION = "medical_prescription"
    LAB_BLOOD = "lab_blood"
    LAB_URINE = "lab_urine"
    LAB_XRAY = "lab_xray"
    RADIOLOGY_CT = "radiology_ct"
    RADIOLOGY_MRI = "radiology_mri"
    RADIOLOGY_ULTRASOUND = "radiology_ultrasound"
    DOCTOR_REFERRAL = "doctor_referral"
    INSURANCE_DOCS = "insurance_docs"
    PREVIOUS_DISCHARGE = "previous_discharge"
    VACCINATION_RECORDS = "vaccination_records"
    ALLERGY_INFO = "allergy_info"
    MEDICATION_LIST = "medication_list"
    OTHER_MEDICAL = "other_medical"
    VISA_APPLICATION = "visa_application"
    VISA_COPY = "visa_copy"
    FLIGHT_TICKETS = "flight_tickets"
    TRAVEL_INSURANCE = "travel_insurance"
    HOTEL_BOOKING = "hotel_booking"
    PAYMENT_RECEIPT = "payment_receipt"
    HOSPITAL_INVOICE = "hospital_invoice"
    CREDIT_PAYMENT_PROOF = "credit_payment_proof"
    BANK_TRANSFER = "bank_transfer"
    ACADEMIC_CERTIFICATES = "academic_certificates"
    TRANSCRIPTS = "transcripts"
    DEGREE_CERTIFICATE = "degree_certificate"
    MARK_SHEETS = "mark_sheets"
    ENGLISH_PROFICIENCY = "english_proficiency"
    STATEMENT_OF_PURPOSE = "statement_of_purpose"
    RECOMMENDATION_LETTERS = "recommendation_letters"
    FINANCIAL_DOCUMENTS = "financial_documents"
    ADMISSION_LETTER = "admission_letter"


D = DocumentType

DOCUMENT_TYPE_LABELS: dict[DocumentType, str] = {
    D.PASSPORT_FRONT: "Passport Copy (Front)",
    D.PASSPORT_BACK: "Passport Copy (Back)",
    D.MEDICAL_REPORTS: "Recent Medical Reports",
    D.TREATMENT_RECORDS: "Previous Treatment Records",
    D.ATTENDER_PASSPORT: "Attender/Guardian Passport",
    D.ATTENDER_ID: "Attender/Guardian ID Proof",
    D.PATIENT_PHOTO: "Patient Photo",
    D.MEDICAL_PRESCRIPTION: "Medical Prescription",
    D.LAB_BLOOD: "Lab Reports - Blood Test",
    D.LAB_URINE: "Lab Reports - Urine Test",
    D.LAB_XRAY: "Lab Reports - X-Ray",
    D.RADIOLOGY_CT: "Radiology - CT Scan",
    D.RADIOLOGY_MRI: "Radiology - MRI",
    D.RADIOLOGY_ULTRASOUND: "Radiology - Ultrasound",
    D.DOCTOR_REFERRAL: "Doctor Referral Letter",
    D.INSURANCE_DOCS: "Insurance Documents",
    D.PREVIOUS_DISCHARGE: "Previous Hospital Discharge Summary",
    D.VACCINATION_RECORDS: "Vaccination Records",
    D.ALLERGY_INFO: "Allergy Information",
    D.MEDICATION_LIST: "Current Medication List",
    D.OTHER_MEDICAL: "Other Medical Documents",
    D.VISA_APPLICATION: "Visa Application Form",
    D.VISA_COPY: "Visa Copy",
    D.FLIGHT_TICKETS: "Flight Tickets",
    D.TRAVEL_INSURANCE: "Travel Insurance",
    D.HOTEL_BOOKING: "Hotel Booking Confirmation",
    D.PAYMENT_RECEIPT: "Payment Receipts",
    D.HOSPITAL_INVOICE: "Invoice from Hospital",
    D.CREDIT_PAYMENT_PROOF: "Credit Payment Proof",
    D.BANK_TRANSFER: "Bank Transfer Documents",
    D.ACADEMIC_CERTIFICATES: "Academic Certificates",
    D.TRANSCRIPTS: "Transcripts",
    D.DEGREE_CERTIFICATE: "Degree Certificate",
    D.MARK_SHEETS: "Mark Sheets",
    D.ENGLISH_PROFICIENCY: "English Proficiency Test",
    D.STATEMENT_OF_PURPOSE: "Statement of Purpose",
    D.RECOMMENDATION_LETTERS: "Recommendation Letters",
    D.FINANCIAL_DOCUMENTS: "Financial Documents",
    D.ADMISSION_LETTER: "Admission Letter",
}

ALL_TYPES = frozenset(DocumentType)

INITIAL = frozenset(
    {
        D.PASSPORT_FRONT,
        D.PASSPORT_BACK,
        D.MEDICAL_REPORTS,
        D.TREATMENT_RECORDS,
        D.ATTENDER_PASSPORT,
        D.ATTENDER_ID,
        D.PATIENT_PHOTO,
        D.MEDICAL_PRESCRIPTION,
        D.LAB_BLOOD,
        D.LAB_URINE,
        D.LAB_XRAY,
        D.RADIOLOGY_CT,
        D.RADIOLOGY_MRI,
        D.RADIOLOGY_ULTRASOUND,
        D.DOCTOR_REFERRAL,
        D.INSURANCE_DOCS,
        D.PREVIOUS_DISCHARGE,
        D.VACCINATION_RECORDS,
        D.ALLERGY_INFO,
        D.MEDICATION_LIST,
        D.OTHER_MEDICAL,
    }
)
TRAVEL = frozenset(
    {D.VISA_APPLICATION, D.VISA_COPY, D.FLIGHT_TICKETS, D.TRAVEL_INSURANCE, D.HOTEL_BOOKING}
)
FINANCIAL = frozenset(
    {D.PAYMENT_RECEIPT, D.HOSPITAL_INVOICE, D.CREDIT_PAYMENT_PROOF, D.BANK_TRANSFER}
)
TREATMENT = frozenset(
    {
        D.MEDICAL_REPORTS,
        D.TREATMENT_RECORDS,
        D.LAB_BLOOD,
        D.LAB_URINE,
        D.LAB_XRAY,
        D.RADIOLOGY_CT,
        D.RADIOLOGY_MRI,
        D.RADIOLOGY_ULTRASOUND,
        D.MEDICAL_PRESCRIPTION,
        D.OTHER_MEDICAL,
    }
)
DISCHARGE = frozenset({D.PREVIOUS_DISCHARGE, D.MEDICAL_REPORTS, D.MEDICAL_PRESCRIPTION})
ACADEMIC = frozenset(
    {
        D.ACADEMIC_CERTIFICATES,
        D.TRANSCRIPTS,
        D.DEGREE_CERTIFICATE,
        D.MARK_SHEETS,
        D.ENGLISH_PROFICIENCY,
        D.STATEMENT_OF_PURPOSE,
        D.RECOMMENDATION_LETTERS,
        D.FINANCIAL_DOCUMENTS,
        D.ADMISSION_LETTER,
    }
)
# Identity documents a university-track agent collects alongside academic ones.
STUDENT_IDENTITY = frozenset(
    {D.PASSPORT_FRONT, D.PASSPORT_BACK, D.PATIENT_PHOTO, D.ATTENDER_PASSPORT, D.ATTENDER_ID}
)

# Intake documents an agent must collect before handing the case to admin review.
INTAKE_REQUIRED: dict[CaseTrack, frozenset[DocumentType]] = {
    CaseTrack.HOSPITAL: frozenset(
        {
            D.PASSPORT_FRONT,
            D.PASSPORT_BACK,
            D.MEDICAL_REPORTS,
            D.TREATMENT_RECORDS,
            D.ATTENDER_PASSPORT,
            D.ATTENDER_ID,
            D.PATIENT_PHOTO,
        }
    ),
    CaseTrack.UNIVERSITY: frozenset(
        {D.PASSPORT_FRONT, D.ACADEMIC_CERTIFICATES, D.TRANSCRIPTS, D.ENGLISH_PROFICIENCY}
    ),
}

INTAKE_STATUSES = (CaseStatus.NEW, CaseStatus.CASE_AGENT_REVIEW)

_NO_DOCUMENTS: frozenset[DocumentType] = frozenset()


@dataclass(frozen=True)
class DocumentRule:
    permitted: frozenset[DocumentType]
    required: frozenset[DocumentType] = _NO_DOCUMENTS


@dataclass(frozen=True)
class DocumentRequirements:
    """Result of evaluating the gate; tuples are in DocumentType declaration order."""

    available: tuple[DocumentType, ...]
    required: tuple[DocumentType, ...]
    missing: tuple[DocumentType, ...]

    @property
    def complete(self) -> bool:
        return not self.missing


RuleKey = tuple[UserRole, CaseTrack, CaseStatus]

_EMPTY_RULE = DocumentRule(permitted=_NO_DOCUMENTS)


def _ordered(types: Iterable[DocumentType]) -> tuple[DocumentType, ...]:
    wanted = set(types)
    return tuple(t for t in DocumentType if t in wanted)


def parse_document_types(values: Iterable[Any]) -> frozenset[DocumentType]:
    """Coerce strings to DocumentType, silently skipping unknown values."""
    out: set[DocumentType] = set()
    for v in values or ():
        try:
            out.add(DocumentType(str(v).strip().lower()))
        except ValueError:
            continue
    return frozenset(out)


def build_rules(
    intake_required: Mapping[CaseTrack, frozenset[DocumentType]] | None = None,
) -> dict[RuleKey, DocumentRule]:
    """Build the (role, track, status) -> DocumentRule table."""
    required = dict(INTAKE_REQUIRED)
    if intake_required:
        required.update(intake_required)
    rules: dict[RuleKey, DocumentRule] = {}
    S = CaseStatus

    for track in CaseTrack:
        intake_permitted = INITIAL if track is CaseTrack.HOSPITAL else ACADEMIC | STUDENT_IDENTITY
        for status in INTAKE_STATUSES:
            rules[(UserRole.AGENT, track, status)] = DocumentRule(
                permitted=intake_permitted | required[track], required=required[track]
            )
        rules[(UserRole.AGENT, track, S.VISA_APPROVED)] = DocumentRule(
            permitted=frozenset({D.VISA_COPY}), required=frozenset({D.VISA_COPY})
        )
        rules[(UserRole.AGENT, track, S.VISA_COPY_UPLOADED)] = DocumentRule(
            permitted=frozenset({D.VISA_COPY})
        )
        rules[(UserRole.AGENT, track, S.PASS_TRAVEL_DOCUMENTATION)] = DocumentRule(TRAVEL)
        rules[(UserRole.AGENT, track, S.CREDIT_PAYMENT_UPLOAD)] = DocumentRule(
            frozenset({D.CREDIT_PAYMENT_PROOF})
        )

        for status in CaseStatus:
            rules[(UserRole.ADMIN, track, status)] = DocumentRule(ALL_TYPES)

        for status in (S.VISA_PROCESSING_PAYMENTS, S.CREDIT_PAYMENT_UPLOAD, S.INVOICE_UPLOADED):
            rules[(UserRole.FINANCE, track, status)] = DocumentRule(FINANCIAL)

    # Receiving parties only handle cases on their own track.
    hospital = CaseTrack.HOSPITAL
    for status in (S.CASE_ACCEPTED, S.TREATMENT_PLAN_UPLOADED, S.TREATMENT_IN_PROGRESS):
        rules[(UserRole.HOSPITAL, hospital, status)] = DocumentRule(TREATMENT)
    for status in (S.FINAL_REPORT_MEDICINE, S.DISCHARGE_PROCESS):
        rules[(UserRole.HOSPITAL, hospital, status)] = DocumentRule(DISCHARGE)

    university = CaseTrack.UNIVERSITY
    for status in (
        S.CASE_AGENT_REVIEW,
        S.ADMIN_REVIEW,
        S.ASSIGNED_TO_HOSPITAL,
        S.HOSPITAL_REVIEW,
        S.CASE_ACCEPTED,
        S.VISA_PROCESSING_DOCUMENTS,
        S.VISA_APPROVED,
    ):
        rules[(UserRole.UNIVERSITY, university, status)] = DocumentRule(ACADEMIC)
    return rules


class DocumentRequirementGate:
    """Pure lookup over the document rule table."""

    def __init__(
        self, intake_required: Mapping[CaseTrack, Iterable[DocumentType | str]] | None = None
    ) -> None:
        overrides = (
            {CaseTrack(k): parse_document_types(v) for k, v in intake_required.items()}
            if intake_required
            else None
        )
        self._rules = build_rules(overrides)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> DocumentRequirementGate:
        """Build from the `documents.required` config section (per-track lists)."""
        required = (config.get("documents") or {}).get("required") or {}
        return cls({CaseTrack(k): v for k, v in required.items()} if required else None)

    def rule_for(self, role: UserRole, status: CaseStatus, track: CaseTrack) -> DocumentRule:
        return self._rules.get((role, track, status), _EMPTY_RULE)

    def evaluate(
        self,
        role: UserRole,
        status: CaseStatus,
        uploaded: Iterable[DocumentType | str],
        track: CaseTrack = CaseTrack.HOSPITAL,
    ) -> DocumentRequirements:
        rule = self.rule_for(role, status, track)
        have = parse_document_types(uploaded)
        return DocumentRequirements(
            available=_ordered(rule.permitted - have),
            required=_ordered(rule.required),
            missing=_ordered(rule.required - have),
        )

    def is_document_type_allowed(
        self,
        doc_type: DocumentType,
        role: UserRole,
        status: CaseStatus,
        track: CaseTrack = CaseTrack.HOSPITAL,
    ) -> bool:
        """True when role may upload doc_type at status, ignoring what is already uploaded."""
        return doc_type in self.rule_for(role, status, track).permitted

    def intake_required(self, track: CaseTrack) -> frozenset[DocumentType]:
        return self.rule_for(UserRole.AGENT, CaseStatus.CASE_AGENT_REVIEW, track).required
