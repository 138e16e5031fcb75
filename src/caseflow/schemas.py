"""Pydantic v2 schemas: case record, sub-records, acting user, API bodies."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from caseflow.case_lifecycle import CaseStatus, CaseTrack, Priority, UserRole, VisaStatus
from caseflow.documents import DocumentType

NAME_SENTINEL = "Patient/Student Name"
NOT_PROVIDED = "Not provided"
NOT_SPECIFIED = "Not specified"


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(dt: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


class CamelModel(BaseModel):
    """Accepts snake_case or the legacy camelCase keys; serializes camelCase by alias."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("*", mode="after")
    @classmethod
    def naive_datetimes_as_utc(cls, v: Any) -> Any:
        return as_utc(v) if isinstance(v, datetime) else v


class FrozenEntry(CamelModel):
    """Audit and sub-record entries are immutable once written."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class StatusHistoryEntry(FrozenEntry):
    status: CaseStatus
    timestamp: datetime = Field(default_factory=utcnow)
    actor_id: str = Field(default="", validation_alias=AliasChoices("actor_id", "actorId", "by"))
    actor_name: str = Field(
        default="", validation_alias=AliasChoices("actor_name", "actorName", "byName")
    )
    note: str | None = None


class ActivityLogEntry(FrozenEntry):
    id: str
    case_id: str = ""
    user_id: str = ""
    user_name: str = ""
    user_role: UserRole = UserRole.ADMIN
    action: str
    details: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class CaseDocument(FrozenEntry):
    id: str
    type: DocumentType
    name: str
    uploaded_by: str = ""
    uploaded_at: datetime = Field(default_factory=utcnow)
    size: int = Field(default=0, ge=0)
    mime_type: str = "application/octet-stream"
    blob_ref: str | None = None
    extracted_text: str | None = None
    verification_status: Literal["pending", "verified", "rejected"] | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None


class ClientInfo(CamelModel):
    name: str = NAME_SENTINEL
    dob: str = NOT_PROVIDED
    passport: str = NOT_PROVIDED
    nationality: str = NOT_SPECIFIED
    condition: str = NOT_SPECIFIED
    phone: str = NOT_PROVIDED
    email: str = NOT_PROVIDED
    address: str = NOT_PROVIDED
    emergency_contact: str = NOT_PROVIDED
    emergency_phone: str = NOT_PROVIDED

    @model_validator(mode="before")
    @classmethod
    def drop_blank_fields(cls, data: Any) -> Any:
        """Blank or null subfields fall back to the display sentinels."""
        if isinstance(data, BaseModel):
            return data
        if not isinstance(data, dict):
            return {}
        return {
            k: (v.strip() if isinstance(v, str) else str(v))
            for k, v in data.items()
            if v is not None and not (isinstance(v, str) and not v.strip())
        }


class AttenderInfo(CamelModel):
    name: str = ""
    relationship: str = ""
    passport: str = ""
    phone: str = ""
    email: str = ""


class TreatmentPlan(FrozenEntry):
    id: str
    diagnosis: str = ""
    proposed_treatment: str = ""
    estimated_duration: str = ""
    estimated_cost: float = Field(default=0.0, ge=0)
    currency: str = "USD"
    doctor_name: str = ""
    department: str = ""
    notes: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str = ""


class PaymentRecord(FrozenEntry):
    id: str
    type: Literal["visa", "treatment", "travel", "other"] = "other"
    amount: float
    currency: str = "USD"
    status: Literal["pending", "completed", "failed"] = "pending"
    method: str = ""
    reference: str = ""
    paid_on: datetime = Field(
        default_factory=utcnow, validation_alias=AliasChoices("paid_on", "paidOn", "date")
    )
    processed_by: str | None = None
    notes: str | None = None


class VisaInfo(FrozenEntry):
    status: VisaStatus = VisaStatus.NOT_STARTED
    application_date: date | None = None
    visa_number: str | None = None
    issue_date: date | None = None
    expiry_date: date | None = None
    notes: str | None = None


class Comment(FrozenEntry):
    id: str
    case_id: str = ""
    user_id: str = ""
    user_name: str = ""
    user_role: UserRole = UserRole.CLIENT
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    is_preset: bool = False


class CaseRecord(CamelModel):
    """A patient or student journey. Build through normalizer.normalize, not directly."""

    id: str
    client_id: str
    agent_id: str
    status: CaseStatus = CaseStatus.NEW
    status_history: list[StatusHistoryEntry]
    documents: list[CaseDocument] = []
    client_info: ClientInfo = Field(default_factory=ClientInfo)
    attender_info: AttenderInfo | None = None
    assigned_hospital: str | None = None
    assigned_university: str | None = None
    treatment_plan: TreatmentPlan | None = None
    payments: list[PaymentRecord] = []
    visa: VisaInfo = Field(default_factory=VisaInfo)
    comments: list[Comment] = []
    activity_log: list[ActivityLogEntry] = []
    priority: Priority = Priority.MEDIUM
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def track(self) -> CaseTrack:
        return CaseTrack.UNIVERSITY if self.assigned_university else CaseTrack.HOSPITAL

    @property
    def uploaded_document_types(self) -> frozenset[DocumentType]:
        return frozenset(d.type for d in self.documents)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe dict for persistence (snake_case keys)."""
        return self.model_dump(mode="json")


class ActingUser(CamelModel):
    """The authenticated user a request or CLI run acts as."""

    id: str
    name: str = ""
    role: UserRole
    email: str = ""
    hospital_ids: list[str] = []
    university_ids: list[str] = []
    agent_type: CaseTrack | None = None


SYSTEM_USER = ActingUser(id="system", name="System", role=UserRole.ADMIN)


class Hospital(CamelModel):
    id: str
    name: str
    city: str = ""
    specialties: list[str] = []


class University(CamelModel):
    id: str
    name: str
    city: str = ""
    programs: list[str] = []


# --- API bodies ---
class CaseCreateRequest(CamelModel):
    """Body for POST /cases. Everything is optional; the normalizer fills gaps."""

    client_id: str | None = None
    client_info: dict[str, Any] | None = None
    attender_info: AttenderInfo | None = None
    priority: Priority | None = None
    assigned_hospital: str | None = None
    assigned_university: str | None = None


class TransitionRequest(CamelModel):
    """Body for POST /cases/{id}/transitions."""

    status: CaseStatus
    note: str | None = None
    hospital_id: str | None = None
    university_id: str | None = None
    visa_number: str | None = None


class AssignmentRequest(CamelModel):
    hospital_id: str | None = None
    university_id: str | None = None
    note: str | None = None

    @model_validator(mode="after")
    def exactly_one_target(self) -> AssignmentRequest:
        if bool(self.hospital_id) == bool(self.university_id):
            raise ValueError("Provide exactly one of hospital_id or university_id")
        return self


class DocumentUploadRequest(CamelModel):
    type: DocumentType
    name: str = Field(..., min_length=1)
    size: int = Field(default=0, ge=0)
    mime_type: str = "application/pdf"
    blob_ref: str | None = None
    extracted_text: str | None = None


class DocumentVerificationRequest(CamelModel):
    status: Literal["verified", "rejected"]
    notes: str | None = None


class CommentRequest(CamelModel):
    message: str = Field(..., min_length=1)
    is_preset: bool = False


class PaymentCreateRequest(CamelModel):
    type: Literal["visa", "treatment", "travel", "other"] = "other"
    amount: float = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    status: Literal["pending", "completed", "failed"] = "pending"
    method: str = ""
    reference: str = ""
    notes: str | None = None


class PaymentUpdateRequest(CamelModel):
    """Partial update; only provided fields change."""

    amount: float | None = Field(default=None, ge=0)
    status: Literal["pending", "completed", "failed"] | None = None
    method: str | None = None
    reference: str | None = None
    notes: str | None = None


class TreatmentPlanRequest(CamelModel):
    diagnosis: str = ""
    proposed_treatment: str = ""
    estimated_duration: str = ""
    estimated_cost: float = Field(default=0.0, ge=0)
    currency: str = "USD"
    doctor_name: str = ""
    department: str = ""
    notes: str = ""


class VisaUpdateRequest(CamelModel):
    application_date: date | None = None
    visa_number: str | None = None
    issue_date: date | None = None
    expiry_date: date | None = None
    notes: str | None = None


class BlockedTransitionResponse(CamelModel):
    status: CaseStatus
    reasons: list[str]


class DocumentRequirementsResponse(CamelModel):
    available: list[DocumentType]
    required: list[DocumentType]
    missing: list[DocumentType]


class CaseActionsResponse(CamelModel):
    """What the acting user may do next with a case, and why other moves are blocked."""

    case_id: str
    status: CaseStatus
    status_label: str
    progress_index: int
    progress_percentage: float
    legal_next_statuses: list[CaseStatus]
    blocked: list[BlockedTransitionResponse]
    documents: DocumentRequirementsResponse


class CaseStatsResponse(CamelModel):
    total: int
    active: int
    pending: int
    completed: int
    urgent: int
