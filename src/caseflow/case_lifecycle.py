"""Case status lifecycle: closed enumerations, trunk order, declared graph, progress."""

from __future__ import annotations

from enum import StrEnum


class CaseStatus(StrEnum):
    NEW = "new"
    CASE_AGENT_REVIEW = "case_agent_review"
    ADMIN_REVIEW = "admin_review"
    ASSIGNED_TO_HOSPITAL = "assigned_to_hospital"
    HOSPITAL_REVIEW = "hospital_review"
    CASE_ACCEPTED = "case_accepted"
    CASE_REJECTED = "case_rejected"
    TREATMENT_PLAN_UPLOADED = "treatment_plan_uploaded"
    PASS_TRAVEL_DOCUMENTATION = "pass_travel_documentation"
    VISA_PROCESSING_DOCUMENTS = "visa_processing_documents"
    VISA_PROCESSING_PAYMENTS = "visa_processing_payments"
    VISA_APPROVED = "visa_approved"
    VISA_REJECTED = "visa_rejected"
    VISA_REAPPLY = "visa_reapply"
    VISA_TERMINATE = "visa_terminate"
    VISA_COPY_UPLOADED = "visa_copy_uploaded"
    CREDIT_PAYMENT_UPLOAD = "credit_payment_upload"
    INVOICE_UPLOADED = "invoice_uploaded"
    TICKET_BOOKING = "ticket_booking"
    PATIENT_MANIFEST = "patient_manifest"
    ADMIT_FORMAT_UPLOADED = "admit_format_uploaded"
    FRRO_REGISTRATION = "frro_registration"
    TREATMENT_IN_PROGRESS = "treatment_in_progress"
    FINAL_REPORT_MEDICINE = "final_report_medicine"
    DISCHARGE_PROCESS = "discharge_process"
    CASE_CLOSED = "case_closed"


class UserRole(StrEnum):
    ADMIN = "admin"
    AGENT = "agent"
    HOSPITAL = "hospital"
    UNIVERSITY = "university"
    FINANCE = "finance"
    CLIENT = "client"


class CaseTrack(StrEnum):
    """Hospital-track (medical) or university-track (education) case."""

    HOSPITAL = "hospital"
    UNIVERSITY = "university"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class VisaStatus(StrEnum):
    NOT_STARTED = "not_started"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"
    REAPPLY = "reapply"


S = CaseStatus

# Happy path, intake to closure.
TRUNK: tuple[CaseStatus, ...] = (
    S.NEW,
    S.CASE_AGENT_REVIEW,
    S.ADMIN_REVIEW,
    S.ASSIGNED_TO_HOSPITAL,
    S.HOSPITAL_REVIEW,
    S.CASE_ACCEPTED,
    S.TREATMENT_PLAN_UPLOADED,
    S.PASS_TRAVEL_DOCUMENTATION,
    S.VISA_PROCESSING_DOCUMENTS,
    S.VISA_PROCESSING_PAYMENTS,
    S.VISA_APPROVED,
    S.VISA_COPY_UPLOADED,
    S.CREDIT_PAYMENT_UPLOAD,
    S.INVOICE_UPLOADED,
    S.TICKET_BOOKING,
    S.PATIENT_MANIFEST,
    S.ADMIT_FORMAT_UPLOADED,
    S.FRRO_REGISTRATION,
    S.TREATMENT_IN_PROGRESS,
    S.FINAL_REPORT_MEDICINE,
    S.DISCHARGE_PROCESS,
    S.CASE_CLOSED,
)

# Excursion state -> trunk node it is displayed at (its fork point).
EXCURSION_ANCHORS: dict[CaseStatus, CaseStatus] = {
    S.CASE_REJECTED: S.HOSPITAL_REVIEW,
    S.VISA_REJECTED: S.VISA_PROCESSING_PAYMENTS,
    S.VISA_TERMINATE: S.VISA_PROCESSING_PAYMENTS,
    S.VISA_REAPPLY: S.VISA_PROCESSING_DOCUMENTS,
}

TERMINAL_STATUSES = frozenset({S.CASE_CLOSED, S.VISA_TERMINATE})

# Moving into these requires a non-empty note from the actor.
NOTE_REQUIRED_STATUSES = frozenset({S.CASE_REJECTED, S.VISA_REJECTED, S.VISA_TERMINATE})

# Declared one-edge graph. Every role table in transition_policy must stay inside it.
TRANSITION_GRAPH: dict[CaseStatus, frozenset[CaseStatus]] = {
    S.NEW: frozenset({S.CASE_AGENT_REVIEW}),
    S.CASE_AGENT_REVIEW: frozenset({S.ADMIN_REVIEW}),
    S.ADMIN_REVIEW: frozenset({S.ASSIGNED_TO_HOSPITAL}),
    S.ASSIGNED_TO_HOSPITAL: frozenset({S.HOSPITAL_REVIEW, S.CASE_ACCEPTED, S.CASE_REJECTED}),
    S.HOSPITAL_REVIEW: frozenset({S.CASE_ACCEPTED, S.CASE_REJECTED}),
    S.CASE_ACCEPTED: frozenset({S.TREATMENT_PLAN_UPLOADED}),
    S.CASE_REJECTED: frozenset({S.ASSIGNED_TO_HOSPITAL, S.ADMIN_REVIEW}),
    S.TREATMENT_PLAN_UPLOADED: frozenset({S.PASS_TRAVEL_DOCUMENTATION}),
    S.PASS_TRAVEL_DOCUMENTATION: frozenset({S.VISA_PROCESSING_DOCUMENTS}),
    S.VISA_PROCESSING_DOCUMENTS: frozenset({S.VISA_PROCESSING_PAYMENTS}),
    S.VISA_PROCESSING_PAYMENTS: frozenset({S.VISA_APPROVED, S.VISA_REJECTED}),
    S.VISA_APPROVED: frozenset({S.VISA_COPY_UPLOADED}),
    S.VISA_REJECTED: frozenset({S.VISA_REAPPLY, S.VISA_TERMINATE}),
    S.VISA_REAPPLY: frozenset({S.VISA_PROCESSING_DOCUMENTS}),
    S.VISA_TERMINATE: frozenset(),
    S.VISA_COPY_UPLOADED: frozenset({S.CREDIT_PAYMENT_UPLOAD}),
    S.CREDIT_PAYMENT_UPLOAD: frozenset({S.INVOICE_UPLOADED}),
    S.INVOICE_UPLOADED: frozenset({S.TICKET_BOOKING}),
    S.TICKET_BOOKING: frozenset({S.PATIENT_MANIFEST}),
    S.PATIENT_MANIFEST: frozenset({S.ADMIT_FORMAT_UPLOADED}),
    S.ADMIT_FORMAT_UPLOADED: frozenset({S.FRRO_REGISTRATION}),
    S.FRRO_REGISTRATION: frozenset({S.TREATMENT_IN_PROGRESS}),
    S.TREATMENT_IN_PROGRESS: frozenset({S.FINAL_REPORT_MEDICINE}),
    S.FINAL_REPORT_MEDICINE: frozenset({S.DISCHARGE_PROCESS}),
    S.DISCHARGE_PROCESS: frozenset({S.CASE_CLOSED}),
    S.CASE_CLOSED: frozenset(),
}

STATUS_LABELS: dict[CaseStatus, str] = {
    S.NEW: "New",
    S.CASE_AGENT_REVIEW: "Agent Review",
    S.ADMIN_REVIEW: "Admin Review",
    S.ASSIGNED_TO_HOSPITAL: "Assigned to Hospital",
    S.HOSPITAL_REVIEW: "Hospital Review",
    S.CASE_ACCEPTED: "Case Accepted",
    S.CASE_REJECTED: "Case Rejected",
    S.TREATMENT_PLAN_UPLOADED: "Treatment Plan Uploaded",
    S.PASS_TRAVEL_DOCUMENTATION: "Travel Documentation",
    S.VISA_PROCESSING_DOCUMENTS: "Visa Documents",
    S.VISA_PROCESSING_PAYMENTS: "Visa Payments",
    S.VISA_APPROVED: "Visa Approved",
    S.VISA_REJECTED: "Visa Rejected",
    S.VISA_REAPPLY: "Visa Reapply",
    S.VISA_TERMINATE: "Case Terminated",
    S.VISA_COPY_UPLOADED: "Visa Copy Uploaded",
    S.CREDIT_PAYMENT_UPLOAD: "Credit Payment",
    S.INVOICE_UPLOADED: "Invoice Uploaded",
    S.TICKET_BOOKING: "Ticket Booking",
    S.PATIENT_MANIFEST: "Patient Manifest",
    S.ADMIT_FORMAT_UPLOADED: "Admit Format Uploaded",
    S.FRRO_REGISTRATION: "FRRO Registration",
    S.TREATMENT_IN_PROGRESS: "Treatment in Progress",
    S.FINAL_REPORT_MEDICINE: "Final Report & Medicine",
    S.DISCHARGE_PROCESS: "Discharge Process",
    S.CASE_CLOSED: "Case Closed",
}

# University-track cases reuse the hospital-named states.
_UNIVERSITY_LABELS: dict[CaseStatus, str] = {
    S.ASSIGNED_TO_HOSPITAL: "Assigned to University",
    S.HOSPITAL_REVIEW: "University Review",
    S.TREATMENT_PLAN_UPLOADED: "Program Plan Uploaded",
    S.TREATMENT_IN_PROGRESS: "Program in Progress",
}


def parse_status(value: object) -> CaseStatus | None:
    """Return the CaseStatus for value, or None when it is not a known status."""
    if isinstance(value, CaseStatus):
        return value
    try:
        return CaseStatus(str(value).strip().lower())
    except ValueError:
        return None


def status_label(status: CaseStatus, track: CaseTrack = CaseTrack.HOSPITAL) -> str:
    if track is CaseTrack.UNIVERSITY and status in _UNIVERSITY_LABELS:
        return _UNIVERSITY_LABELS[status]
    return STATUS_LABELS[status]


def is_trunk_status(status: CaseStatus) -> bool:
    return status in TRUNK


def progress_index(status: CaseStatus) -> int:
    """Trunk position of status; excursion states report their fork point."""
    anchor = EXCURSION_ANCHORS.get(status, status)
    return TRUNK.index(anchor)


def progress_percentage(status: CaseStatus) -> float:
    return (progress_index(status) + 1) / len(TRUNK) * 100.0


def graph_edges() -> list[tuple[CaseStatus, CaseStatus]]:
    """Flatten TRANSITION_GRAPH into (from, to) pairs in trunk-then-excursion order."""
    order = list(TRUNK) + [s for s in CaseStatus if s not in TRUNK]
    return [(src, dst) for src in order for dst in sorted(TRANSITION_GRAPH[src])]
