"""Typer CLI: init-db, create-case, show/list cases, actions, transition, comments, graph, reports, serve-api."""

from __future__ import annotations

import json
import os
import uuid
from pathlib import Path

import typer

from caseflow.audit_context import set_acting_user, set_audit_context
from caseflow.case_lifecycle import (
    CaseStatus,
    Priority,
    parse_status,
    progress_percentage,
    status_label,
)
from caseflow.config import get_config
from caseflow.db import init_db, session_scope, verify_audit_chain
from caseflow.directory import directory_from_config
from caseflow.errors import WorkflowError
from caseflow.logging_config import setup_logging
from caseflow.reporting import generate_case_report
from caseflow.schemas import SYSTEM_USER, ActingUser
from caseflow.store import SqlCaseStore
from caseflow.transition_policy import DEFAULT_POLICY
from caseflow.workflow import CaseWorkflow

app = typer.Typer(help="Caseflow case workflow CLI")

_AS_HELP = "Acting user id from the directory (default: system admin, or CASEFLOW_ACTOR)"


def _ensure_db(config_path: str | None = None) -> None:
    config = get_config(config_path)
    db_url = config.get("database", {}).get("url", "sqlite:///./data/caseflow.db")
    if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
        Path(db_url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)
    echo = config.get("database", {}).get("echo", False)
    setup_logging(config.get("app", {}).get("log_level", "INFO"))
    init_db(db_url, echo=echo)


def _workflow(config_path: str | None, as_user: str | None) -> tuple[CaseWorkflow, ActingUser]:
    """Init DB, build the workflow, bind audit context to the acting user."""
    _ensure_db(config_path)
    cfg = get_config(config_path)
    directory = directory_from_config(cfg)
    user_id = as_user or os.environ.get("CASEFLOW_ACTOR")
    if user_id:
        user = directory.get_user(user_id)
        if user is None:
            typer.echo(f"User {user_id} not found in directory", err=True)
            raise typer.Exit(1)
    else:
        user = SYSTEM_USER
    set_audit_context(str(uuid.uuid4()), user.id)
    set_acting_user(user)
    return CaseWorkflow.from_config(cfg, SqlCaseStore(), directory), user


@app.command("init-db")
def init_db_cmd(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Create tables (SQLite) or connect (Postgres: run Alembic migrations first)."""
    _ensure_db(config)
    typer.echo("Database initialized.")


@app.command("create-case")
def create_case_cmd(
    client_name: str | None = typer.Option(None, "--client-name", help="Patient/student name"),
    client_id: str | None = typer.Option(None, "--client-id", help="Client id (generated if omitted)"),
    nationality: str | None = typer.Option(None, "--nationality"),
    condition: str | None = typer.Option(None, "--condition", help="Medical condition or program"),
    priority: str = typer.Option("medium", "--priority", help="low | medium | high | urgent"),
    agent_id: str | None = typer.Option(None, "--agent-id", help="Owning agent (admin only)"),
    as_user: str | None = typer.Option(None, "--as", help=_AS_HELP),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Create a case at status new (audited)."""
    if priority not in {p.value for p in Priority}:
        typer.echo(f"priority must be one of {sorted(p.value for p in Priority)}", err=True)
        raise typer.Exit(1)
    workflow, user = _workflow(config, as_user)
    data = {
        "client_id": client_id,
        "agent_id": agent_id,
        "priority": priority,
        "client_info": {"name": client_name, "nationality": nationality, "condition": condition},
    }
    try:
        case = workflow.create_case(data, user)
    except WorkflowError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e
    typer.echo(f"Created case {case.id} (status={case.status.value}, priority={case.priority.value})")


@app.command("show-case")
def show_case_cmd(
    case_id: str = typer.Argument(..., help="Case id"),
    as_user: str | None = typer.Option(None, "--as", help=_AS_HELP),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Print the full case record as JSON."""
    workflow, user = _workflow(config, as_user)
    try:
        case = workflow.get_case(case_id, user)
    except WorkflowError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e
    typer.echo(json.dumps(case.to_payload(), indent=2))


@app.command("list-cases")
def list_cases_cmd(
    status: str | None = typer.Option(None, "--status"),
    agent: str | None = typer.Option(None, "--agent"),
    client: str | None = typer.Option(None, "--client"),
    hospital: str | None = typer.Option(None, "--hospital"),
    university: str | None = typer.Option(None, "--university"),
    as_user: str | None = typer.Option(None, "--as", help=_AS_HELP),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """List cases visible to the acting user (first given filter wins)."""
    workflow, user = _workflow(config, as_user)
    filters = [
        ("status", status),
        ("agent", agent),
        ("client", client),
        ("hospital", hospital),
        ("university", university),
    ]
    field, value = next(((f, v) for f, v in filters if v), (None, None))
    cases = workflow.list_cases(user, field, value)
    if not cases:
        typer.echo("No cases.")
        return
    for c in cases:
        typer.echo(
            f"{c.id}  {c.status.value:<26} {c.priority.value:<7} "
            f"{progress_percentage(c.status):5.1f}%  agent={c.agent_id}"
        )


@app.command("actions")
def actions_cmd(
    case_id: str = typer.Argument(..., help="Case id"),
    as_user: str | None = typer.Option(None, "--as", help=_AS_HELP),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Show legal next statuses, blocked moves with reasons, and document requirements."""
    workflow, user = _workflow(config, as_user)
    try:
        actions = workflow.legal_actions(case_id, user)
    except WorkflowError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e
    case = actions.case
    typer.echo(f"Case {case.id}: {status_label(case.status, case.track)} ({case.status.value})")
    typer.echo(f"Acting as {user.id} ({user.role.value})")
    typer.echo("Legal next: " + (", ".join(s.value for s in actions.legal) or "(none)"))
    for b in actions.blocked:
        typer.echo(f"Blocked {b.target.value}: {'; '.join(b.reasons)}")
    if actions.documents.missing:
        typer.echo("Missing documents: " + ", ".join(d.value for d in actions.documents.missing))


@app.command("transition")
def transition_cmd(
    case_id: str = typer.Argument(..., help="Case id"),
    status: str = typer.Argument(..., help="Target status"),
    note: str | None = typer.Option(None, "--note", help="Required for rejection/termination"),
    hospital: str | None = typer.Option(None, "--hospital", help="Assign hospital (assigned_to_hospital)"),
    university: str | None = typer.Option(
        None, "--university", help="Assign university (assigned_to_hospital)"
    ),
    visa_number: str | None = typer.Option(None, "--visa-number", help="On visa_approved"),
    as_user: str | None = typer.Option(None, "--as", help=_AS_HELP),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Move a case to a new status as the acting user (audited)."""
    target = parse_status(status)
    if target is None:
        typer.echo(f"Unknown status {status!r}", err=True)
        raise typer.Exit(1)
    if (hospital or university) and target is not CaseStatus.ASSIGNED_TO_HOSPITAL:
        typer.echo(
            f"--hospital/--university only apply to {CaseStatus.ASSIGNED_TO_HOSPITAL.value}, "
            f"not {target.value}",
            err=True,
        )
        raise typer.Exit(1)
    workflow, user = _workflow(config, as_user)
    try:
        if hospital or university:
            case = workflow.assign(
                case_id, user, hospital_id=hospital, university_id=university, note=note
            )
        else:
            case = workflow.apply_transition(case_id, target, user, note, visa_number=visa_number)
    except WorkflowError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e
    typer.echo(f"Case {case.id} is now {case.status.value}")


@app.command("add-comment")
def add_comment_cmd(
    case_id: str = typer.Argument(..., help="Case id"),
    message: str = typer.Option(..., "--message", "-m", help="Comment text"),
    as_user: str | None = typer.Option(None, "--as", help=_AS_HELP),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Add a comment to a case (audited)."""
    workflow, user = _workflow(config, as_user)
    try:
        workflow.add_comment(case_id, user, message)
    except (WorkflowError, ValueError) as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e
    typer.echo(f"Added comment to case {case_id}")


@app.command("export-graph")
def export_graph_cmd(
    fmt: str = typer.Option("json", "--format", "-f", help="json | dot"),
    output: str | None = typer.Option(None, "--output", "-o", help="File path (default: stdout)"),
) -> None:
    """Export the role transition table (JSON) or declared graph (Graphviz DOT)."""
    if fmt not in ("json", "dot"):
        typer.echo("format must be json or dot", err=True)
        raise typer.Exit(1)
    text = (
        DEFAULT_POLICY.to_dot()
        if fmt == "dot"
        else json.dumps(DEFAULT_POLICY.describe(), indent=2) + "\n"
    )
    if output:
        Path(output).write_text(text, encoding="utf-8")
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(text, nl=False)


@app.command("generate-reports")
def generate_reports_cmd(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
    output_dir: str | None = typer.Option(None, "--output", "-o", help="Output directory"),
) -> None:
    """Generate case pipeline reports (JSON + CSV)."""
    workflow, _user = _workflow(config, None)
    cfg = get_config(config)
    out = output_dir or cfg.get("reporting", {}).get("output_dir", "./reports")
    cases = workflow.list_cases()
    with session_scope() as session:
        jp, cp = generate_case_report(session, cases, out, config_path=config)
    typer.echo(f"Reports: {jp}, {cp}")


@app.command("verify-audit")
def verify_audit_cmd(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Recompute the audit log hash chain; exit 1 if any row was altered."""
    _ensure_db(config)
    with session_scope() as session:
        broken = verify_audit_chain(session)
    if broken:
        typer.echo(f"Audit chain broken at rows: {broken}", err=True)
        raise typer.Exit(1)
    typer.echo("Audit chain OK")


@app.command("serve-api")
def serve_api(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
    host: str | None = typer.Option(None, "--host", "-h", help="Bind host"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
) -> None:
    """Start the FastAPI server."""
    cfg = get_config(config)
    h = host or os.environ.get("CASEFLOW_API_HOST") or cfg.get("api", {}).get("host", "0.0.0.0")
    _pe = os.environ.get("CASEFLOW_API_PORT", "")
    p = (
        port
        if port is not None
        else (int(_pe) if _pe and _pe.isdigit() else None) or cfg.get("api", {}).get("port", 8000)
    )
    _ensure_db(config)
    if config:
        os.environ["CASEFLOW_CONFIG_PATH"] = config
    import uvicorn

    uvicorn.run(
        "caseflow.api:app",
        host=h,
        port=p,
        reload=False,
    )


if __name__ == "__main__":
    app()
