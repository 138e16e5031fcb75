"""CaseWorkflow: the caller layer over the lifecycle core.

Each user action loads the case, checks the policy, raises blocking errors
before any write, applies status + sub-record + audit changes as one plan,
normalizes and saves with a single put.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from caseflow.audit_trail import ActivityAction, record_activity, record_status_change
from caseflow.case_lifecycle import (
    NOTE_REQUIRED_STATUSES,
    CaseStatus,
    CaseTrack,
    Priority,
    UserRole,
    VisaStatus,
)
from caseflow.directory import Directory, InMemoryDirectory
from caseflow.documents import DOCUMENT_TYPE_LABELS, DocumentRequirementGate, DocumentRequirements
from caseflow.errors import (
    AssignmentRequiredError,
    CaseNotFoundError,
    DocumentTypeNotAllowedError,
    NoteRequiredError,
    PermissionDeniedError,
    RecordNotFoundError,
    TransitionNotAllowedError,
)
from caseflow.normalizer import CREATED_NOTE, generate_id, normalize
from caseflow.schemas import (
    ActingUser,
    CaseDocument,
    CaseRecord,
    Comment,
    DocumentUploadRequest,
    PaymentCreateRequest,
    PaymentRecord,
    PaymentUpdateRequest,
    StatusHistoryEntry,
    TreatmentPlan,
    TreatmentPlanRequest,
    VisaUpdateRequest,
    utcnow,
)
from caseflow.store import CaseStore, CaseStoreError
from caseflow.transition_policy import (
    DEFAULT_POLICY,
    OWNERSHIP_ROLES,
    BlockedTransition,
    StatusTransitionPolicy,
    TransitionContext,
    build_context,
    is_assigned_owner,
)

log = logging.getLogger(__name__)

S = CaseStatus

ACTIVE_EXCLUDED = frozenset({S.CASE_CLOSED, S.VISA_TERMINATE})
PENDING_STATUSES = frozenset({S.ADMIN_REVIEW, S.HOSPITAL_REVIEW})
# Finance sees cases in its handoff/observation states or with any payment recorded.
FINANCE_STATUSES = frozenset(
    {S.VISA_PROCESSING_DOCUMENTS, S.VISA_PROCESSING_PAYMENTS, S.CREDIT_PAYMENT_UPLOAD}
)
_VISA_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_STATUS_ORDER = {s: i for i, s in enumerate(CaseStatus)}

_INTAKE_KEYS = (
    "client_id",
    "clientId",
    "client_info",
    "clientInfo",
    "attender_info",
    "attenderInfo",
    "priority",
    "assigned_hospital",
    "assignedHospital",
    "assigned_university",
    "assignedUniversity",
)


def sort_statuses(statuses: Iterable[CaseStatus]) -> list[CaseStatus]:
    return sorted(statuses, key=_STATUS_ORDER.__getitem__)


def case_visible_to(case: CaseRecord, user: ActingUser) -> bool:
    """Whether user may see case at all (list, read, comment)."""
    role = user.role
    if role is UserRole.ADMIN:
        return True
    if role in (UserRole.AGENT, UserRole.HOSPITAL, UserRole.UNIVERSITY):
        return is_assigned_owner(case, user)
    if role is UserRole.FINANCE:
        return case.status in FINANCE_STATUSES or bool(case.payments)
    return case.client_id == user.id


@dataclass(frozen=True)
class CaseActions:
    case: CaseRecord
    legal: list[CaseStatus]
    blocked: list[BlockedTransition]
    documents: DocumentRequirements


@dataclass(frozen=True)
class CaseStats:
    total: int
    active: int
    pending: int
    completed: int
    urgent: int


def compute_stats(cases: Iterable[CaseRecord]) -> CaseStats:
    cases = list(cases)
    return CaseStats(
        total=len(cases),
        active=sum(1 for c in cases if c.status not in ACTIVE_EXCLUDED),
        pending=sum(1 for c in cases if c.status in PENDING_STATUSES),
        completed=sum(1 for c in cases if c.status is S.CASE_CLOSED),
        urgent=sum(1 for c in cases if c.priority is Priority.URGENT),
    )


class CaseWorkflow:
    """Synchronous service; store, directory and gate are injected."""

    def __init__(
        self,
        store: CaseStore,
        directory: Directory | None = None,
        gate: DocumentRequirementGate | None = None,
        policy: StatusTransitionPolicy | None = None,
        *,
        visa_validity_days: int = 365,
        visa_number_prefix: str = "VISA",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.directory = directory if directory is not None else InMemoryDirectory()
        self.gate = gate or DocumentRequirementGate()
        self.policy = policy or DEFAULT_POLICY
        self.visa_validity_days = visa_validity_days
        self.visa_number_prefix = visa_number_prefix
        self._clock = clock

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], store: CaseStore, directory: Directory | None = None
    ) -> CaseWorkflow:
        wf = config.get("workflow") or {}
        return cls(
            store,
            directory,
            DocumentRequirementGate.from_config(config),
            visa_validity_days=int(wf.get("visa_validity_days", 365)),
            visa_number_prefix=str(wf.get("visa_number_prefix", "VISA")),
        )

    # --- queries ---

    def _load(self, case_id: str) -> CaseRecord:
        case = self.store.get(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        return case

    def get_case(self, case_id: str, user: ActingUser | None = None) -> CaseRecord:
        case = self._load(case_id)
        if user is not None and not case_visible_to(case, user):
            raise PermissionDeniedError(f"User {user.id} cannot view case {case_id}")
        return case

    def list_cases(
        self, user: ActingUser | None = None, field: str | None = None, value: str | None = None
    ) -> list[CaseRecord]:
        """All cases (or one index slice) that user may see; newest first."""
        if field is not None and value is not None:
            cases = self.store.list_by_index(field, value)  # type: ignore[arg-type]
        else:
            cases = self.store.list_all()
        if user is not None:
            cases = [c for c in cases if case_visible_to(c, user)]
        return sorted(cases, key=lambda c: c.created_at, reverse=True)

    def stats(self, user: ActingUser | None = None) -> CaseStats:
        return compute_stats(self.list_cases(user))

    def context_for(
        self, case: CaseRecord, user: ActingUser, *, proposed_assignment: bool = False
    ) -> TransitionContext:
        return build_context(case, user, self.gate, proposed_assignment=proposed_assignment)

    def legal_next_statuses(self, case: CaseRecord, user: ActingUser) -> frozenset[CaseStatus]:
        return self.policy.legal_next_statuses(user.role, case.status, self.context_for(case, user))

    def document_requirements(self, case: CaseRecord, user: ActingUser) -> DocumentRequirements:
        return self.gate.evaluate(user.role, case.status, case.uploaded_document_types, case.track)

    def legal_actions(self, case_id: str, user: ActingUser) -> CaseActions:
        case = self.get_case(case_id, user)
        ctx = self.context_for(case, user)
        return CaseActions(
            case=case,
            legal=sort_statuses(self.policy.legal_next_statuses(user.role, case.status, ctx)),
            blocked=self.policy.blocked_transitions(user.role, case.status, ctx),
            documents=self.document_requirements(case, user),
        )

    # --- persistence ---

    def _save(self, case: CaseRecord) -> CaseRecord:
        saved = normalize(case)
        self.store.put(saved)
        return saved

    def create_case(self, data: Mapping[str, Any] | None, user: ActingUser) -> CaseRecord:
        """Start a case at `new`. Store conflicts are retried once with a fresh id, then swallowed."""
        if user.role not in (UserRole.AGENT, UserRole.ADMIN):
            raise PermissionDeniedError(f"Role {user.role.value} cannot create cases")
        data = data or {}
        now = self._clock()
        partial: dict[str, Any] = {k: data[k] for k in _INTAKE_KEYS if data.get(k) is not None}
        agent_id = user.id
        if user.role is UserRole.ADMIN:
            agent_id = data.get("agent_id") or data.get("agentId") or user.id
        partial.update(
            {
                "agent_id": agent_id,
                "status": S.NEW,
                "status_history": [
                    StatusHistoryEntry(
                        status=S.NEW,
                        timestamp=now,
                        actor_id=user.id,
                        actor_name=user.name,
                        note=CREATED_NOTE,
                    )
                ],
                "created_at": now,
                "updated_at": now,
            }
        )
        case = normalize(partial)
        case = record_activity(case, user, ActivityAction.CASE_CREATED, "New case created", now)
        try:
            self.store.add(case)
        except CaseStoreError as first:
            log.warning("Create of case %s failed (%s); retrying with a new id", case.id, first)
            case = normalize(case.model_copy(update={"id": generate_id("case")}))
            try:
                self.store.add(case)
            except CaseStoreError:
                log.exception("Create of case %s failed after retry; not persisted", case.id)
                return case
        log.info("Case %s created by %s", case.id, user.id)
        return case

    # --- transitions ---

    def _require_legal(
        self, case: CaseRecord, user: ActingUser, target: CaseStatus, ctx: TransitionContext
    ) -> None:
        if target in self.policy.legal_next_statuses(user.role, case.status, ctx):
            return
        reasons: tuple[str, ...] = ()
        for b in self.policy.blocked_transitions(user.role, case.status, ctx):
            if b.target is target:
                reasons = b.reasons
        if not reasons:
            reasons = (f"Role {user.role.value} has no transition {case.status.value} -> {target.value}",)
        raise TransitionNotAllowedError(case.status, target, reasons)

    def _visa_for(
        self, case: CaseRecord, target: CaseStatus, note: str | None, visa_number: str | None
    ) -> dict[str, Any] | None:
        """Visa sub-record changes that travel with a status change, or None."""
        today = self._clock().date()
        visa = case.visa
        if target is S.VISA_PROCESSING_DOCUMENTS:
            if case.status is S.VISA_REAPPLY:
                # a reapplication starts a fresh application
                return {"status": VisaStatus.PROCESSING, "application_date": today, "notes": None}
            return {
                "status": VisaStatus.PROCESSING,
                "application_date": visa.application_date or today,
            }
        if target is S.VISA_APPROVED:
            number = visa.visa_number or visa_number or self._generate_visa_number(today)
            return {
                "status": VisaStatus.APPROVED,
                "application_date": visa.application_date or today,
                "visa_number": number,
                "issue_date": today,
                "expiry_date": today + timedelta(days=self.visa_validity_days),
            }
        if target is S.VISA_REJECTED:
            return {"status": VisaStatus.REJECTED, "notes": note}
        if target is S.VISA_REAPPLY:
            return {"status": VisaStatus.REAPPLY}
        return None

    def _generate_visa_number(self, today: date) -> str:
        suffix = "".join(secrets.choice(_VISA_SUFFIX_ALPHABET) for _ in range(6))
        return f"{self.visa_number_prefix}-{today:%Y%m%d}-{suffix}"

    def apply_transition(
        self,
        case_id: str,
        target: CaseStatus,
        user: ActingUser,
        note: str | None = None,
        *,
        visa_number: str | None = None,
    ) -> CaseRecord:
        """Move a case to target as user. Raises before any write if not allowed."""
        case = self._load(case_id)
        self._require_legal(case, user, target, self.context_for(case, user))
        note = note.strip() if note else None
        if target in NOTE_REQUIRED_STATUSES and not note:
            raise NoteRequiredError(target)

        at = self._clock()
        visa_changes = self._visa_for(case, target, note, visa_number)
        if visa_changes is not None:
            case = case.model_copy(update={"visa": case.visa.model_copy(update=visa_changes)})
        case = record_status_change(case, target, user, note, at)
        log.info("Case %s moved to %s by %s", case.id, target.value, user.id)
        return self._save(case)

    def assign(
        self,
        case_id: str,
        user: ActingUser,
        *,
        hospital_id: str | None = None,
        university_id: str | None = None,
        note: str | None = None,
    ) -> CaseRecord:
        """Assign a hospital or university and move the case to assigned_to_hospital."""
        if bool(hospital_id) == bool(university_id):
            raise AssignmentRequiredError("Provide exactly one of hospital_id or university_id")
        case = self._load(case_id)
        if hospital_id:
            found = self.directory.get_hospital(hospital_id)
            name = found.name if found else hospital_id
            replaced = case.assigned_university
            proposed = case.model_copy(
                update={"assigned_hospital": hospital_id, "assigned_university": None}
            )
            action = ActivityAction.HOSPITAL_ASSIGNED
        else:
            found = self.directory.get_university(university_id)  # type: ignore[arg-type]
            name = found.name if found else str(university_id)
            replaced = case.assigned_hospital
            proposed = case.model_copy(
                update={"assigned_university": university_id, "assigned_hospital": None}
            )
            action = ActivityAction.UNIVERSITY_ASSIGNED
        if found is None:
            log.warning("Assigning case %s to %s not in directory", case_id, hospital_id or university_id)

        ctx = self.context_for(proposed, user, proposed_assignment=True)
        self._require_legal(proposed, user, S.ASSIGNED_TO_HOSPITAL, ctx)
        if replaced:
            log.info("Case %s: cleared previous assignment %s", case_id, replaced)

        at = self._clock()
        updated = record_activity(proposed, user, action, f"Case assigned to {name}", at)
        updated = record_status_change(
            updated, S.ASSIGNED_TO_HOSPITAL, user, note or f"Assigned to {name}", at
        )
        log.info("Case %s assigned to %s by %s", case_id, hospital_id or university_id, user.id)
        return self._save(updated)

    # --- sub-records ---

    def _require_owner(self, case: CaseRecord, user: ActingUser) -> None:
        if user.role in OWNERSHIP_ROLES and not is_assigned_owner(case, user):
            raise PermissionDeniedError(f"User {user.id} is not assigned to case {case.id}")

    def _require_role(self, user: ActingUser, *roles: UserRole) -> None:
        if user.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise PermissionDeniedError(f"Requires role {allowed}; got {user.role.value}")

    def add_document(
        self, case_id: str, user: ActingUser, upload: DocumentUploadRequest
    ) -> CaseRecord:
        case = self._load(case_id)
        self._require_owner(case, user)
        if not self.gate.is_document_type_allowed(upload.type, user.role, case.status, case.track):
            raise DocumentTypeNotAllowedError(upload.type, case.status)
        at = self._clock()
        doc = CaseDocument(
            id=generate_id("doc"),
            type=upload.type,
            name=upload.name,
            uploaded_by=user.id,
            uploaded_at=at,
            size=upload.size,
            mime_type=upload.mime_type,
            blob_ref=upload.blob_ref,
            extracted_text=upload.extracted_text,
            verification_status="pending",
        )
        updated = case.model_copy(update={"documents": [*case.documents, doc]})
        updated = record_activity(
            updated,
            user,
            ActivityAction.DOCUMENT_UPLOADED,
            f"{DOCUMENT_TYPE_LABELS[upload.type]} uploaded",
            at,
        )
        return self._save(updated)

    def _document(self, case: CaseRecord, doc_id: str) -> CaseDocument:
        for d in case.documents:
            if d.id == doc_id:
                return d
        raise RecordNotFoundError("document", doc_id, case.id)

    def remove_document(self, case_id: str, doc_id: str, user: ActingUser) -> CaseRecord:
        case = self._load(case_id)
        doc = self._document(case, doc_id)
        if user.role is not UserRole.ADMIN and doc.uploaded_by != user.id:
            raise PermissionDeniedError("Only the uploader or an admin can remove a document")
        updated = case.model_copy(
            update={"documents": [d for d in case.documents if d.id != doc_id]}
        )
        updated = record_activity(
            updated,
            user,
            ActivityAction.DOCUMENT_REMOVED,
            f"{DOCUMENT_TYPE_LABELS[doc.type]} removed",
            self._clock(),
        )
        return self._save(updated)

    def verify_document(
        self,
        case_id: str,
        doc_id: str,
        user: ActingUser,
        status: str,
        notes: str | None = None,
    ) -> CaseRecord:
        self._require_role(user, UserRole.ADMIN)
        if status not in ("verified", "rejected"):
            raise ValueError(f"status must be verified or rejected, got {status!r}")
        case = self._load(case_id)
        doc = self._document(case, doc_id)
        at = self._clock()
        verified = doc.model_copy(
            update={
                "verification_status": status,
                "verified_by": user.id,
                "verified_at": at,
                "verification_notes": notes,
            }
        )
        updated = case.model_copy(
            update={"documents": [verified if d.id == doc_id else d for d in case.documents]}
        )
        action = (
            ActivityAction.DOCUMENT_VERIFIED if status == "verified" else ActivityAction.DOCUMENT_REJECTED
        )
        details = f"{DOCUMENT_TYPE_LABELS[doc.type]} {status}"
        if notes:
            details = f"{details}: {notes}"
        return self._save(record_activity(updated, user, action, details, at))

    def add_comment(
        self, case_id: str, user: ActingUser, message: str, *, is_preset: bool = False
    ) -> CaseRecord:
        case = self.get_case(case_id, user)
        message = message.strip()
        if not message:
            raise ValueError("Comment message must not be empty")
        at = self._clock()
        comment = Comment(
            id=generate_id("comment"),
            case_id=case.id,
            user_id=user.id,
            user_name=user.name,
            user_role=user.role,
            message=message,
            timestamp=at,
            is_preset=is_preset,
        )
        updated = case.model_copy(update={"comments": [*case.comments, comment]})
        updated = record_activity(
            updated, user, ActivityAction.COMMENT_ADDED, f"Comment by {user.role.value}", at
        )
        return self._save(updated)

    def add_payment(
        self, case_id: str, user: ActingUser, payment: PaymentCreateRequest
    ) -> CaseRecord:
        self._require_role(user, UserRole.ADMIN, UserRole.FINANCE)
        case = self._load(case_id)
        at = self._clock()
        record = PaymentRecord(
            id=generate_id("pay"),
            type=payment.type,
            amount=payment.amount,
            currency=payment.currency.upper(),
            status=payment.status,
            method=payment.method,
            reference=payment.reference,
            paid_on=at,
            processed_by=user.id,
            notes=payment.notes,
        )
        updated = case.model_copy(update={"payments": [*case.payments, record]})
        details = f"{record.type} payment of {record.amount:.2f} {record.currency} ({record.status})"
        return self._save(record_activity(updated, user, ActivityAction.PAYMENT_ADDED, details, at))

    def _payment(self, case: CaseRecord, payment_id: str) -> PaymentRecord:
        for p in case.payments:
            if p.id == payment_id:
                return p
        raise RecordNotFoundError("payment", payment_id, case.id)

    def update_payment(
        self, case_id: str, payment_id: str, user: ActingUser, changes: PaymentUpdateRequest
    ) -> CaseRecord:
        self._require_role(user, UserRole.ADMIN, UserRole.FINANCE)
        case = self._load(case_id)
        current = self._payment(case, payment_id)
        fields = changes.model_dump(exclude_none=True)
        revised = current.model_copy(update={**fields, "processed_by": user.id})
        updated = case.model_copy(
            update={"payments": [revised if p.id == payment_id else p for p in case.payments]}
        )
        details = f"Payment {payment_id} updated: {', '.join(sorted(fields)) or 'no fields'}"
        return self._save(
            record_activity(updated, user, ActivityAction.PAYMENT_UPDATED, details, self._clock())
        )

    def delete_payment(self, case_id: str, payment_id: str, user: ActingUser) -> CaseRecord:
        self._require_role(user, UserRole.ADMIN, UserRole.FINANCE)
        case = self._load(case_id)
        removed = self._payment(case, payment_id)
        updated = case.model_copy(
            update={"payments": [p for p in case.payments if p.id != payment_id]}
        )
        details = f"{removed.type} payment of {removed.amount:.2f} {removed.currency} deleted"
        return self._save(
            record_activity(updated, user, ActivityAction.PAYMENT_DELETED, details, self._clock())
        )

    def save_treatment_plan(
        self, case_id: str, user: ActingUser, plan: TreatmentPlanRequest
    ) -> CaseRecord:
        """Save (or replace) the treatment/program plan. Receiving party or admin only."""
        self._require_role(user, UserRole.ADMIN, UserRole.HOSPITAL, UserRole.UNIVERSITY)
        case = self._load(case_id)
        self._require_owner(case, user)
        at = self._clock()
        saved = TreatmentPlan(
            id=generate_id("plan"), created_at=at, created_by=user.id, **plan.model_dump()
        )
        label = "Program plan" if case.track is CaseTrack.UNIVERSITY else "Treatment plan"
        updated = case.model_copy(update={"treatment_plan": saved})
        return self._save(
            record_activity(updated, user, ActivityAction.TREATMENT_PLAN_SAVED, f"{label} saved", at)
        )

    def update_visa(self, case_id: str, user: ActingUser, changes: VisaUpdateRequest) -> CaseRecord:
        """Edit visa details. The visa status itself only moves with case transitions."""
        self._require_role(user, UserRole.ADMIN)
        case = self._load(case_id)
        fields = changes.model_dump(exclude_none=True)
        updated = case.model_copy(update={"visa": case.visa.model_copy(update=fields)})
        details = f"Visa fields updated: {', '.join(sorted(fields)) or 'none'}"
        return self._save(
            record_activity(updated, user, ActivityAction.VISA_UPDATED, details, self._clock())
        )
