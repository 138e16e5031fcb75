#!/usr/bin/env python3
"""
Caseflow Dashboard – view the case pipeline, stats, and case reports in the browser.
Run: streamlit run scripts/dashboard.py
Requires the API to be running (caseflow serve-api) unless using report-only fallback.
"""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any

import pandas as pd
import streamlit as st

# --- Config (env + sidebar) ---
DEFAULT_API_BASE = os.environ.get("CASEFLOW_DASHBOARD_API", "http://127.0.0.1:8000")
DEFAULT_API_KEY = os.environ.get("CASEFLOW_DASHBOARD_API_KEY", "dev_key")
DEFAULT_REPORTS_DIR = os.environ.get("CASEFLOW_REPORTS_DIR", "reports")
REQUEST_TIMEOUT = int(os.environ.get("CASEFLOW_DASHBOARD_TIMEOUT", "10"))
CACHE_TTL = int(os.environ.get("CASEFLOW_DASHBOARD_CACHE_TTL", "60"))
MAX_CASES = int(os.environ.get("CASEFLOW_DASHBOARD_MAX_CASES", "500"))
REPORT_PREVIEW_ROWS = int(os.environ.get("CASEFLOW_DASHBOARD_REPORT_PREVIEW", "100"))


def _fetch_json(url: str, api_key: str, timeout: int = REQUEST_TIMEOUT) -> Any:
    req = urllib.request.Request(
        url, headers={"Accept": "application/json", "X-API-Key": api_key}
    )
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode())


@st.cache_data(ttl=CACHE_TTL)
def _cached_cases(
    base: str, api_key: str, limit: int, status: str | None
) -> tuple[list[dict], str | None]:
    try:
        path = f"{base.rstrip('/')}/cases?limit={limit}"
        if status:
            path += f"&status={status}"
        data = _fetch_json(path, api_key)
        return (data if isinstance(data, list) else [], None)
    except (urllib.error.URLError, OSError, ValueError) as e:
        return ([], str(e))


@st.cache_data(ttl=CACHE_TTL)
def _cached_stats(base: str, api_key: str) -> tuple[dict, str | None]:
    try:
        data = _fetch_json(f"{base.rstrip('/')}/cases/stats", api_key)
        return (data if isinstance(data, dict) else {}, None)
    except (urllib.error.URLError, OSError, ValueError) as e:
        return ({}, str(e))


def _latest_report_json(reports_dir: Path) -> Path | None:
    if not reports_dir.exists():
        return None
    jsons = sorted(reports_dir.glob("cases_*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
    return jsons[0] if jsons else None


def _load_report_preview(path: Path, max_rows: int) -> tuple[list[dict], dict, str | None]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return ((data.get("cases") or [])[:max_rows], data.get("stats") or {}, None)
    except (OSError, ValueError) as e:
        return ([], {}, str(e))


def _case_rows(cases: list[dict]) -> list[dict]:
    """Flatten API case payloads (camelCase) into table rows; ids only, no client details."""
    rows = []
    for c in cases:
        history = c.get("statusHistory") or []
        rows.append(
            {
                "id": c.get("id"),
                "status": c.get("status"),
                "priority": c.get("priority"),
                "agent": c.get("agentId"),
                "hospital": c.get("assignedHospital") or "—",
                "university": c.get("assignedUniversity") or "—",
                "visa": (c.get("visa") or {}).get("status"),
                "documents": len(c.get("documents") or []),
                "transitions": max(0, len(history) - 1),
                "updated_at": str(c.get("updatedAt", ""))[:19],
            }
        )
    return rows


def main() -> None:
    st.set_page_config(
        page_title="Caseflow", page_icon="🧭", layout="wide", initial_sidebar_state="expanded"
    )
    st.title("🧭 Caseflow")
    st.caption("Case pipeline, stats & reports · Live from API and reports/")

    reports_dir = Path(DEFAULT_REPORTS_DIR)
    with st.sidebar:
        st.markdown("### ⚙️ Settings")
        api_base = st.text_input("API base URL", value=DEFAULT_API_BASE)
        api_key = st.text_input("API key", value=DEFAULT_API_KEY, type="password")
        status_filter = st.text_input("Status filter", value="", help="e.g. admin_review")
        if st.button("🔄 Refresh data", use_container_width=True):
            _cached_cases.clear()
            _cached_stats.clear()
            st.rerun()
        st.caption(f"Cache {CACHE_TTL}s · Max {MAX_CASES} cases")

    cases_data, cases_err = _cached_cases(api_base, api_key, MAX_CASES, status_filter or None)
    stats, stats_err = _cached_stats(api_base, api_key)
    api_ok = not (cases_err or stats_err)

    if not api_ok:
        st.warning("⚠️ API unreachable. Showing report files only. Start it with `caseflow serve-api`.")
        if cases_err:
            st.caption(f"Cases: {cases_err}")

    report_path = _latest_report_json(reports_dir)
    if not stats and report_path:
        _, stats, _ = _load_report_preview(report_path, 0)

    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric("Total", stats.get("total", "—"))
    col2.metric("Active", stats.get("active", "—"))
    col3.metric("Pending review", stats.get("pending", "—"))
    col4.metric("Completed", stats.get("completed", "—"))
    col5.metric("Urgent", stats.get("urgent", "—"))
    st.divider()

    tab_overview, tab_cases, tab_report = st.tabs(["📈 Overview", "📋 Cases", "📄 Report"])

    with tab_overview:
        if cases_data:
            counts = pd.Series([c.get("status") or "unknown" for c in cases_data]).value_counts()
            st.subheader("Cases by status")
            st.bar_chart(counts.to_frame("count"), width="stretch")
        else:
            st.info("No case data yet. Create cases via the API or CLI.")

    with tab_cases:
        if cases_data:
            st.dataframe(pd.DataFrame(_case_rows(cases_data)), width="stretch", hide_index=True)
            if len(cases_data) >= MAX_CASES:
                st.caption(f"Showing first {MAX_CASES} cases.")
        else:
            st.info("No cases. Create via API (POST /cases) or `caseflow create-case`.")

    with tab_report:
        if report_path:
            preview, _, err = _load_report_preview(report_path, REPORT_PREVIEW_ROWS)
            if err:
                st.error(f"Could not load report: {err}")
            elif preview:
                st.caption(f"Preview from {report_path.name} (first {len(preview)} cases)")
                st.dataframe(preview, width="stretch", hide_index=True)
            else:
                st.caption(f"File {report_path.name} has no cases array.")
        else:
            st.info(f"No case report in {reports_dir}. Run `caseflow generate-reports`.")


if __name__ == "__main__":
    main()
