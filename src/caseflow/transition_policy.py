"""Transition-authorization policy: (role, status) -> guarded candidate next statuses.

The table is data, not code. Each candidate carries named guards evaluated
against a TransitionContext; a failing guard removes the candidate from the
legal set and never raises. Candidates for agent, hospital and university
roles are implicitly guarded by ownership of the case.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from caseflow.case_lifecycle import (
    TRANSITION_GRAPH,
    CaseStatus,
    CaseTrack,
    UserRole,
    VisaStatus,
    graph_edges,
)
from caseflow.documents import DocumentRequirementGate
from caseflow.schemas import ActingUser, CaseRecord


@dataclass(frozen=True)
class TransitionContext:
    """Facts about the case and acting user that guards read."""

    is_assigned_owner: bool = False
    documents_complete: bool = False
    has_treatment_plan: bool = False
    has_assignment: bool = False
    visa_status: VisaStatus = VisaStatus.NOT_STARTED


@dataclass(frozen=True)
class Guard:
    name: str
    description: str
    check: Callable[[TransitionContext], bool]

    def __call__(self, ctx: TransitionContext) -> bool:
        return self.check(ctx)


IS_ASSIGNED_OWNER = Guard(
    "is_assigned_owner",
    "Acting user must own or be bound to this case",
    lambda c: c.is_assigned_owner,
)
DOCUMENTS_COMPLETE = Guard(
    "documents_complete",
    "All required intake documents must be uploaded",
    lambda c: c.documents_complete,
)
HAS_TREATMENT_PLAN = Guard(
    "has_treatment_plan",
    "A treatment plan must be saved on the case",
    lambda c: c.has_treatment_plan,
)
HAS_ASSIGNMENT = Guard(
    "has_assignment",
    "A hospital or university must be assigned",
    lambda c: c.has_assignment,
)
VISA_DECISION_PENDING = Guard(
    "visa_decision_pending",
    "Visa must not already be approved or rejected",
    lambda c: c.visa_status not in (VisaStatus.APPROVED, VisaStatus.REJECTED),
)
VISA_REJECTED = Guard(
    "visa_rejected",
    "Visa must be in rejected state",
    lambda c: c.visa_status is VisaStatus.REJECTED,
)

GUARDS: dict[str, Guard] = {
    g.name: g
    for g in (
        IS_ASSIGNED_OWNER,
        DOCUMENTS_COMPLETE,
        HAS_TREATMENT_PLAN,
        HAS_ASSIGNMENT,
        VISA_DECISION_PENDING,
        VISA_REJECTED,
    )
}

# Roles whose every candidate additionally requires ownership of the case.
OWNERSHIP_ROLES = frozenset({UserRole.AGENT, UserRole.HOSPITAL, UserRole.UNIVERSITY})


@dataclass(frozen=True)
class Candidate:
    target: CaseStatus
    guards: tuple[Guard, ...] = ()


@dataclass(frozen=True)
class BlockedTransition:
    target: CaseStatus
    reasons: tuple[str, ...]
    guards: tuple[str, ...]


PolicyTable = Mapping[UserRole, Mapping[CaseStatus, tuple[Candidate, ...]]]

S = CaseStatus
C = Candidate

_RECEIVING_PARTY: dict[CaseStatus, tuple[Candidate, ...]] = {
    S.ASSIGNED_TO_HOSPITAL: (C(S.HOSPITAL_REVIEW), C(S.CASE_ACCEPTED), C(S.CASE_REJECTED)),
    S.HOSPITAL_REVIEW: (C(S.CASE_ACCEPTED), C(S.CASE_REJECTED)),
    S.CASE_ACCEPTED: (C(S.TREATMENT_PLAN_UPLOADED, (HAS_TREATMENT_PLAN,)),),
    S.TREATMENT_PLAN_UPLOADED: (C(S.PASS_TRAVEL_DOCUMENTATION),),
    S.PATIENT_MANIFEST: (C(S.ADMIT_FORMAT_UPLOADED),),
    S.FRRO_REGISTRATION: (C(S.TREATMENT_IN_PROGRESS),),
    S.TREATMENT_IN_PROGRESS: (C(S.FINAL_REPORT_MEDICINE),),
    S.FINAL_REPORT_MEDICINE: (C(S.DISCHARGE_PROCESS),),
    S.DISCHARGE_PROCESS: (C(S.CASE_CLOSED),),
}

POLICY_TABLE: dict[UserRole, dict[CaseStatus, tuple[Candidate, ...]]] = {
    UserRole.ADMIN: {
        S.ADMIN_REVIEW: (C(S.ASSIGNED_TO_HOSPITAL, (HAS_ASSIGNMENT,)),),
        S.CASE_REJECTED: (
            C(S.ASSIGNED_TO_HOSPITAL, (HAS_ASSIGNMENT,)),
            C(S.ADMIN_REVIEW),
        ),
        S.PASS_TRAVEL_DOCUMENTATION: (C(S.VISA_PROCESSING_DOCUMENTS),),
        S.VISA_PROCESSING_PAYMENTS: (
            C(S.VISA_APPROVED, (VISA_DECISION_PENDING,)),
            C(S.VISA_REJECTED, (VISA_DECISION_PENDING,)),
        ),
        S.VISA_REJECTED: (C(S.VISA_REAPPLY, (VISA_REJECTED,)), C(S.VISA_TERMINATE)),
        S.VISA_REAPPLY: (C(S.VISA_PROCESSING_DOCUMENTS),),
        S.CREDIT_PAYMENT_UPLOAD: (C(S.INVOICE_UPLOADED),),
        S.INVOICE_UPLOADED: (C(S.TICKET_BOOKING),),
        S.TICKET_BOOKING: (C(S.PATIENT_MANIFEST),),
        S.ADMIT_FORMAT_UPLOADED: (C(S.FRRO_REGISTRATION),),
    },
    UserRole.AGENT: {
        S.NEW: (C(S.CASE_AGENT_REVIEW),),
        S.CASE_AGENT_REVIEW: (C(S.ADMIN_REVIEW, (DOCUMENTS_COMPLETE,)),),
        S.VISA_APPROVED: (C(S.VISA_COPY_UPLOADED),),
        S.VISA_COPY_UPLOADED: (C(S.CREDIT_PAYMENT_UPLOAD),),
    },
    UserRole.HOSPITAL: dict(_RECEIVING_PARTY),
    UserRole.UNIVERSITY: dict(_RECEIVING_PARTY),
    UserRole.FINANCE: {
        S.VISA_PROCESSING_DOCUMENTS: (C(S.VISA_PROCESSING_PAYMENTS),),
    },
    UserRole.CLIENT: {},
}


def is_assigned_owner(case: CaseRecord, user: ActingUser) -> bool:
    """Ownership or binding of user to case, per role."""
    role = user.role
    if role is UserRole.AGENT:
        # agent_type None is a legacy agent that handles both tracks
        return case.agent_id == user.id and user.agent_type in (None, case.track)
    if role is UserRole.HOSPITAL:
        return (
            case.track is CaseTrack.HOSPITAL
            and case.assigned_hospital is not None
            and case.assigned_hospital in user.hospital_ids
        )
    if role is UserRole.UNIVERSITY:
        return (
            case.assigned_university is not None
            and case.assigned_university in user.university_ids
        )
    if role is UserRole.CLIENT:
        return case.client_id == user.id
    return True


def build_context(
    case: CaseRecord,
    user: ActingUser,
    gate: DocumentRequirementGate,
    *,
    proposed_assignment: bool = False,
) -> TransitionContext:
    """Derive guard facts. proposed_assignment counts an assignment about to be applied."""
    requirements = gate.evaluate(
        UserRole.AGENT, S.CASE_AGENT_REVIEW, case.uploaded_document_types, case.track
    )
    return TransitionContext(
        is_assigned_owner=is_assigned_owner(case, user),
        documents_complete=requirements.complete,
        has_treatment_plan=case.treatment_plan is not None,
        has_assignment=proposed_assignment
        or bool(case.assigned_hospital or case.assigned_university),
        visa_status=case.visa.status,
    )


class StatusTransitionPolicy:
    """Evaluates the role table against a context. Pure; holds no case state."""

    def __init__(self, table: PolicyTable | None = None) -> None:
        self._table = table if table is not None else POLICY_TABLE

    def candidates(self, role: UserRole, current: CaseStatus) -> tuple[Candidate, ...]:
        return tuple(self._table.get(role, {}).get(current, ()))

    def _guards_for(self, role: UserRole, candidate: Candidate) -> tuple[Guard, ...]:
        if role in OWNERSHIP_ROLES:
            return (IS_ASSIGNED_OWNER, *candidate.guards)
        return candidate.guards

    def legal_next_statuses(
        self, role: UserRole, current: CaseStatus, context: TransitionContext
    ) -> frozenset[CaseStatus]:
        return frozenset(
            cand.target
            for cand in self.candidates(role, current)
            if all(g(context) for g in self._guards_for(role, cand))
        )

    def blocked_transitions(
        self, role: UserRole, current: CaseStatus, context: TransitionContext
    ) -> list[BlockedTransition]:
        """Candidates omitted from the legal set, with their failing guards."""
        blocked: list[BlockedTransition] = []
        for cand in self.candidates(role, current):
            failing = [g for g in self._guards_for(role, cand) if not g(context)]
            if failing:
                blocked.append(
                    BlockedTransition(
                        target=cand.target,
                        reasons=tuple(g.description for g in failing),
                        guards=tuple(g.name for g in failing),
                    )
                )
        return blocked

    def edges_outside_graph(self) -> list[tuple[UserRole, CaseStatus, CaseStatus]]:
        """Role-table edges not present in the declared graph (should be empty)."""
        return [
            (role, src, cand.target)
            for role, rows in self._table.items()
            for src, cands in rows.items()
            for cand in cands
            if cand.target not in TRANSITION_GRAPH[src]
        ]

    def describe(self) -> dict[str, Any]:
        """Serializable view of the table for docs and diagrams."""
        roles: dict[str, Any] = {}
        for role, rows in self._table.items():
            roles[role.value] = {
                src.value: [
                    {
                        "to": cand.target.value,
                        "guards": [g.name for g in self._guards_for(role, cand)],
                    }
                    for cand in cands
                ]
                for src, cands in rows.items()
            }
        return {
            "guards": {name: g.description for name, g in GUARDS.items()},
            "roles": roles,
        }

    def to_dot(self) -> str:
        """Graphviz DOT of the declared graph, edges labelled with the roles that may take them."""
        takers: dict[tuple[CaseStatus, CaseStatus], list[str]] = {}
        for role, rows in self._table.items():
            for src, cands in rows.items():
                for cand in cands:
                    takers.setdefault((src, cand.target), []).append(role.value)
        lines = ["digraph caseflow {", "  rankdir=LR;"]
        for src, dst in graph_edges():
            label = ",".join(takers.get((src, dst), []))
            lines.append(f'  "{src.value}" -> "{dst.value}" [label="{label}"];')
        lines.append("}")
        return "\n".join(lines) + "\n"


DEFAULT_POLICY = StatusTransitionPolicy()


def legal_next_statuses(
    role: UserRole, current: CaseStatus, context: TransitionContext
) -> frozenset[CaseStatus]:
    return DEFAULT_POLICY.legal_next_statuses(role, current, context)


def blocked_transitions(
    role: UserRole, current: CaseStatus, context: TransitionContext
) -> list[BlockedTransition]:
    return DEFAULT_POLICY.blocked_transitions(role, current, context)
