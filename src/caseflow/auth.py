"""API key authentication and acting-user binding. Optional scopes: read_only vs read_write."""

from __future__ import annotations

import os
from contextvars import ContextVar

from fastapi import HTTPException
from starlette.requests import Request

from caseflow.audit_context import set_acting_user
from caseflow.case_lifecycle import UserRole
from caseflow.directory import Directory, InMemoryDirectory
from caseflow.schemas import ActingUser

# When CASEFLOW_API_KEYS is empty or unset, we default to a single dev key (dev-only, not for production).
_DEFAULT_DEV_KEYS = {"dev": "dev_key"}
_DEFAULT_SCOPE = "read_write"

DEV_USER = ActingUser(id="dev", name="Developer", role=UserRole.ADMIN)

_current_scope: ContextVar[str] = ContextVar("api_key_scope", default=_DEFAULT_SCOPE)


def parse_api_keys_env() -> tuple[dict[str, str], dict[str, str]]:
    """Parse CASEFLOW_API_KEYS env var into user_id->key and key->scope.
    Format: 'user1:key1,user2:key2:read_only' (optional :scope, default read_write).
    Returns (user_to_key, key_to_scope)."""
    raw = os.environ.get("CASEFLOW_API_KEYS", "").strip()
    if not raw:
        keys = dict(_DEFAULT_DEV_KEYS)
        scopes = {v: _DEFAULT_SCOPE for v in keys.values()}
        return keys, scopes
    user_to_key: dict[str, str] = {}
    key_to_scope: dict[str, str] = {}
    for part in raw.split(","):
        part = part.strip()
        if ":" in part:
            parts = part.split(":")
            user_id = parts[0].strip()
            key = parts[1].strip() if len(parts) > 1 else ""
            scope = parts[2].strip() if len(parts) > 2 else _DEFAULT_SCOPE
            if user_id and key:
                user_to_key[user_id] = key
                key_to_scope[key] = (
                    scope if scope in ("read_only", "read_write") else _DEFAULT_SCOPE
                )
    if not user_to_key:
        keys = dict(_DEFAULT_DEV_KEYS)
        scopes = {v: _DEFAULT_SCOPE for v in keys.values()}
        return keys, scopes
    return user_to_key, key_to_scope


def get_directory(request: Request) -> Directory:
    """Directory bound at app startup (app.state.directory)."""
    directory = getattr(request.app.state, "directory", None)
    return directory if directory is not None else InMemoryDirectory()


def resolve_user(user_id: str, directory: Directory) -> ActingUser | None:
    user = directory.get_user(user_id)
    if user is None and user_id == DEV_USER.id:
        return DEV_USER
    return user


async def require_user(request: Request) -> ActingUser:
    """Validate X-API-Key header; bind acting user and scope; return the user.
    Raises 401 if header missing, key invalid, or user unknown."""
    user_to_key, key_to_scope = parse_api_keys_env()
    key_to_user = {v: k for k, v in user_to_key.items()}
    api_key = request.headers.get("X-API-Key")
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")
    user_id = key_to_user.get(api_key)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid API key")
    user = resolve_user(user_id, get_directory(request))
    if user is None:
        raise HTTPException(status_code=401, detail="API key user not found in directory")
    _current_scope.set(key_to_scope.get(api_key, _DEFAULT_SCOPE))
    set_acting_user(user)
    return user


def require_write_scope() -> None:
    """Raise 403 if current key scope is read_only. Call after require_user."""
    if _current_scope.get() == "read_only":
        raise HTTPException(status_code=403, detail="Insufficient scope: write required")


async def require_write_user(request: Request) -> ActingUser:
    """Require valid API key and write scope; return the acting user. Use for all mutations."""
    user = await require_user(request)
    require_write_scope()
    return user
