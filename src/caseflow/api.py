"""FastAPI app: case workflow endpoints, workflow graph, health."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from caseflow import ENGINE_VERSION, WORKFLOW_VERSION
from caseflow.audit_context import set_audit_context
from caseflow.cases_api import cases_router
from caseflow.config import get_config
from caseflow.db import init_db
from caseflow.directory import directory_from_config
from caseflow.logging_config import setup_logging
from caseflow.store import SqlCaseStore
from caseflow.transition_policy import DEFAULT_POLICY
from caseflow.workflow import CaseWorkflow


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may pre-bind app.state.workflow with an in-memory store.
    if getattr(app.state, "workflow", None) is None:
        config = get_config()
        setup_logging(config.get("app", {}).get("log_level", "INFO"))
        db_url = config.get("database", {}).get("url", "sqlite:///./data/caseflow.db")
        echo = config.get("database", {}).get("echo", False)
        init_db(db_url, echo=echo)
        directory = directory_from_config(config)
        app.state.directory = directory
        app.state.workflow = CaseWorkflow.from_config(config, SqlCaseStore(), directory)
    yield
    # no cleanup needed for SQLite


app = FastAPI(title="Caseflow API", version="0.1.0", lifespan=lifespan)


class AuditContextMiddleware(BaseHTTPMiddleware):
    """Set correlation_id per request; echo X-Correlation-ID in response.
    The acting user is bound later by require_user from the API key; unauthenticated routes stay anonymous.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_audit_context(correlation_id, "anonymous")
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


app.add_middleware(AuditContextMiddleware)

app.include_router(cases_router)


@app.get("/health")
def health() -> dict[str, Any]:
    """Liveness and version; db_status indicates DB connectivity."""
    from sqlalchemy import text

    from caseflow.db import get_engine

    db_status = "unknown"
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception:
        db_status = "error"
    return {
        "status": "ok",
        "engine_version": ENGINE_VERSION,
        "workflow_version": WORKFLOW_VERSION,
        "db_status": db_status,
    }


@app.get("/workflow/graph", response_model=None)
def workflow_graph(fmt: str = Query("json", alias="format", pattern="^(json|dot)$")) -> Any:
    """Transition table per role (JSON) or the declared graph as Graphviz DOT."""
    if fmt == "dot":
        return PlainTextResponse(DEFAULT_POLICY.to_dot(), media_type="text/vnd.graphviz")
    return DEFAULT_POLICY.describe()
