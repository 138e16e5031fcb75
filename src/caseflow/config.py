"""Configuration loading from YAML + environment overrides."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from caseflow.case_lifecycle import CaseTrack
from caseflow.documents import DocumentType


def _load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


class AppSettings(BaseSettings):
    """App-level settings with env override."""

    model_config = SettingsConfigDict(
        env_prefix="CASEFLOW_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    config_path: str = Field(default="config/default.yaml", alias="CASEFLOW_CONFIG_PATH")
    log_level: str | None = Field(default=None, alias="CASEFLOW_LOG_LEVEL")
    database_url: str | None = Field(default=None, alias="CASEFLOW_DATABASE_URL")
    api_host: str = Field(default="0.0.0.0", alias="CASEFLOW_API_HOST")
    api_port: int = Field(default=8000, alias="CASEFLOW_API_PORT")


def validate_document_requirements(config: dict[str, Any]) -> None:
    """Raise ValueError if documents.required names an unknown track or document type."""
    required = (config.get("documents") or {}).get("required") or {}
    if not isinstance(required, dict):
        raise ValueError("documents.required must be a mapping of track -> list of document types")
    known_tracks = {t.value for t in CaseTrack}
    known_types = {d.value for d in DocumentType}
    for track, types in required.items():
        if track not in known_tracks:
            raise ValueError(
                f"documents.required: unknown track {track!r}. Use one of {sorted(known_tracks)}"
            )
        if not isinstance(types, list) or not types:
            raise ValueError(f"documents.required.{track} must be a non-empty list")
        unknown = [t for t in types if str(t) not in known_types]
        if unknown:
            raise ValueError(f"documents.required.{track}: unknown document types {unknown}")


def validate_workflow(config: dict[str, Any]) -> None:
    """Raise ValueError if workflow.visa_validity_days is not a positive integer."""
    wf = config.get("workflow") or {}
    days = wf.get("visa_validity_days", 365)
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValueError(f"workflow.visa_validity_days must be a positive integer, got {days!r}")


def get_config(config_path: str | None = None) -> dict[str, Any]:
    """Load merged config from YAML and apply env overrides via AppSettings."""
    settings = AppSettings()
    path = config_path or settings.config_path
    if not Path(path).exists():
        cfg = _default_config()
        if settings.database_url or os.environ.get("DATABASE_URL"):
            cfg["database"]["url"] = os.environ.get("DATABASE_URL") or settings.database_url
        return cfg
    base = _deep_merge(_default_config(), _load_yaml(path))
    config_dir = Path(path).parent
    if "default" in path or path == "config/default.yaml":
        dev_path = config_dir / "dev.yaml"
        if dev_path.exists() and os.environ.get("CASEFLOW_ENV") == "dev":
            base = _deep_merge(base, _load_yaml(str(dev_path)))
    local_path = config_dir / "local.yaml"
    if local_path.exists():
        base = _deep_merge(base, _load_yaml(str(local_path)))
    # Env overrides (DATABASE_URL standard for Docker/Postgres; CASEFLOW_DATABASE_URL for app)
    db_url = os.environ.get("DATABASE_URL") or settings.database_url
    if db_url:
        base.setdefault("database", {})["url"] = db_url
    if settings.log_level:
        base.setdefault("app", {})["log_level"] = settings.log_level
    validate_document_requirements(base)
    validate_workflow(base)
    return base


def _default_config() -> dict[str, Any]:
    return {
        "app": {"name": "caseflow", "env": "default", "log_level": "INFO"},
        "database": {"url": "sqlite:///./data/caseflow.db", "echo": False},
        "workflow": {"visa_validity_days": 365, "visa_number_prefix": "VISA"},
        "documents": {"required": {}},
        "directory": {"path": None},
        "reporting": {"output_dir": "./reports"},
        "api": {"host": "0.0.0.0", "port": 8000},
    }


def get_config_hash(config: dict[str, Any]) -> str:
    """SHA256 of resolved config for audit reproducibility (canonical key order)."""
    canonical = yaml.dump(config, default_flow_style=False, sort_keys=True, allow_unicode=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
