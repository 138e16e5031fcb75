"""Cases API router: explicit registration for /cases endpoints."""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.requests import Request

from caseflow.auth import require_user, require_write_user
from caseflow.case_lifecycle import (
    CaseStatus,
    progress_index,
    progress_percentage,
    status_label,
)
from caseflow.errors import (
    CaseNotFoundError,
    PermissionDeniedError,
    RecordNotFoundError,
    TransitionNotAllowedError,
    WorkflowError,
)
from caseflow.schemas import (
    ActingUser,
    AssignmentRequest,
    BlockedTransitionResponse,
    CaseActionsResponse,
    CaseCreateRequest,
    CaseRecord,
    CaseStatsResponse,
    CommentRequest,
    DocumentRequirementsResponse,
    DocumentUploadRequest,
    DocumentVerificationRequest,
    PaymentCreateRequest,
    PaymentUpdateRequest,
    TransitionRequest,
    TreatmentPlanRequest,
    VisaUpdateRequest,
)
from caseflow.workflow import CaseWorkflow

cases_router = APIRouter(tags=["cases"])


def get_workflow(request: Request) -> CaseWorkflow:
    """CaseWorkflow bound at app startup (app.state.workflow)."""
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(status_code=503, detail="Workflow not initialized")
    return workflow


@contextmanager
def _http_errors() -> Generator[None, None, None]:
    """Map workflow boundary errors to HTTP status codes."""
    try:
        yield
    except (CaseNotFoundError, RecordNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    except TransitionNotAllowedError as e:
        raise HTTPException(
            status_code=409, detail={"message": str(e), "reasons": list(e.reasons)}
        ) from e
    except (WorkflowError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@cases_router.post("/cases", response_model=CaseRecord)
def create_case(
    body: CaseCreateRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    """Create a case at `new`. Missing client details are filled with placeholders."""
    with _http_errors():
        return workflow.create_case(body.model_dump(exclude_none=True), user)


@cases_router.get("/cases", response_model=list[CaseRecord])
def list_cases(
    status: CaseStatus | None = Query(None),
    client_id: str | None = Query(None),
    agent_id: str | None = Query(None),
    hospital_id: str | None = Query(None),
    university_id: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    user: ActingUser = Depends(require_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> list[CaseRecord]:
    """List cases visible to the caller, newest first, with optional index filters."""
    filters = [
        ("status", status.value if status else None),
        ("client", client_id),
        ("agent", agent_id),
        ("hospital", hospital_id),
        ("university", university_id),
    ]
    active = [(f, v) for f, v in filters if v is not None]
    if active:
        field, value = active[0]
        cases = workflow.list_cases(user, field, value)
    else:
        cases = workflow.list_cases(user)
    for field, value in active[1:]:
        cases = [c for c in cases if _index_matches(c, field, value)]
    return cases[:limit]


def _index_matches(case: CaseRecord, field: str, value: str) -> bool:
    return {
        "status": case.status.value,
        "client": case.client_id,
        "agent": case.agent_id,
        "hospital": case.assigned_hospital,
        "university": case.assigned_university,
    }[field] == value


@cases_router.get("/cases/stats", response_model=CaseStatsResponse)
def case_stats(
    user: ActingUser = Depends(require_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseStatsResponse:
    s = workflow.stats(user)
    return CaseStatsResponse(
        total=s.total, active=s.active, pending=s.pending, completed=s.completed, urgent=s.urgent
    )


@cases_router.get("/cases/{case_id}", response_model=CaseRecord)
def get_case(
    case_id: str,
    user: ActingUser = Depends(require_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.get_case(case_id, user)


@cases_router.get("/cases/{case_id}/actions", response_model=CaseActionsResponse)
def case_actions(
    case_id: str,
    user: ActingUser = Depends(require_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseActionsResponse:
    """Legal next statuses for the caller, blocked candidates with reasons, document requirements."""
    with _http_errors():
        actions = workflow.legal_actions(case_id, user)
    case = actions.case
    return CaseActionsResponse(
        case_id=case.id,
        status=case.status,
        status_label=status_label(case.status, case.track),
        progress_index=progress_index(case.status),
        progress_percentage=round(progress_percentage(case.status), 2),
        legal_next_statuses=actions.legal,
        blocked=[
            BlockedTransitionResponse(status=b.target, reasons=list(b.reasons))
            for b in actions.blocked
        ],
        documents=DocumentRequirementsResponse(
            available=list(actions.documents.available),
            required=list(actions.documents.required),
            missing=list(actions.documents.missing),
        ),
    )


@cases_router.post("/cases/{case_id}/transitions", response_model=CaseRecord)
def transition_case(
    case_id: str,
    body: TransitionRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    """Move the case to body.status. Assignment targets route through the assign operation."""
    with _http_errors():
        if body.status is CaseStatus.ASSIGNED_TO_HOSPITAL and (
            body.hospital_id or body.university_id
        ):
            return workflow.assign(
                case_id,
                user,
                hospital_id=body.hospital_id,
                university_id=body.university_id,
                note=body.note,
            )
        return workflow.apply_transition(
            case_id, body.status, user, body.note, visa_number=body.visa_number
        )


@cases_router.post("/cases/{case_id}/assignment", response_model=CaseRecord)
def assign_case(
    case_id: str,
    body: AssignmentRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.assign(
            case_id,
            user,
            hospital_id=body.hospital_id,
            university_id=body.university_id,
            note=body.note,
        )


@cases_router.post("/cases/{case_id}/documents", response_model=CaseRecord)
def upload_document(
    case_id: str,
    body: DocumentUploadRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    """Record document metadata; the blob itself lives in external storage (blob_ref)."""
    with _http_errors():
        return workflow.add_document(case_id, user, body)


@cases_router.delete("/cases/{case_id}/documents/{doc_id}", response_model=CaseRecord)
def remove_document(
    case_id: str,
    doc_id: str,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.remove_document(case_id, doc_id, user)


@cases_router.post(
    "/cases/{case_id}/documents/{doc_id}/verification", response_model=CaseRecord
)
def verify_document(
    case_id: str,
    doc_id: str,
    body: DocumentVerificationRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.verify_document(case_id, doc_id, user, body.status, body.notes)


@cases_router.post("/cases/{case_id}/comments", response_model=CaseRecord)
def add_comment(
    case_id: str,
    body: CommentRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.add_comment(case_id, user, body.message, is_preset=body.is_preset)


@cases_router.post("/cases/{case_id}/payments", response_model=CaseRecord)
def add_payment(
    case_id: str,
    body: PaymentCreateRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.add_payment(case_id, user, body)


@cases_router.patch("/cases/{case_id}/payments/{payment_id}", response_model=CaseRecord)
def update_payment(
    case_id: str,
    payment_id: str,
    body: PaymentUpdateRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.update_payment(case_id, payment_id, user, body)


@cases_router.delete("/cases/{case_id}/payments/{payment_id}", response_model=CaseRecord)
def delete_payment(
    case_id: str,
    payment_id: str,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.delete_payment(case_id, payment_id, user)


@cases_router.put("/cases/{case_id}/treatment-plan", response_model=CaseRecord)
def save_treatment_plan(
    case_id: str,
    body: TreatmentPlanRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.save_treatment_plan(case_id, user, body)


@cases_router.patch("/cases/{case_id}/visa", response_model=CaseRecord)
def update_visa(
    case_id: str,
    body: VisaUpdateRequest,
    user: ActingUser = Depends(require_write_user),
    workflow: CaseWorkflow = Depends(get_workflow),
) -> CaseRecord:
    with _http_errors():
        return workflow.update_visa(case_id, user, body)
