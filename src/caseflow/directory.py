"""Read-only directory of users, hospitals and universities."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from caseflow.schemas import ActingUser, Hospital, University

log = logging.getLogger(__name__)


class Directory(Protocol):
    def get_user(self, user_id: str) -> ActingUser | None: ...

    def get_hospital(self, hospital_id: str) -> Hospital | None: ...

    def get_university(self, university_id: str) -> University | None: ...


class InMemoryDirectory:
    def __init__(
        self,
        users: Iterable[ActingUser] = (),
        hospitals: Iterable[Hospital] = (),
        universities: Iterable[University] = (),
    ) -> None:
        self._users = {u.id: u for u in users}
        self._hospitals = {h.id: h for h in hospitals}
        self._universities = {u.id: u for u in universities}

    def get_user(self, user_id: str) -> ActingUser | None:
        return self._users.get(user_id)

    def get_hospital(self, hospital_id: str) -> Hospital | None:
        return self._hospitals.get(hospital_id)

    def get_university(self, university_id: str) -> University | None:
        return self._universities.get(university_id)

    def users(self) -> list[ActingUser]:
        return list(self._users.values())

    def hospitals(self) -> list[Hospital]:
        return list(self._hospitals.values())

    def universities(self) -> list[University]:
        return list(self._universities.values())


def load_directory(path: str | Path) -> InMemoryDirectory:
    """Load users/hospitals/universities lists from YAML. Raises ValueError on bad entries."""
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}
    try:
        return InMemoryDirectory(
            users=[ActingUser.model_validate(u) for u in data.get("users") or []],
            hospitals=[Hospital.model_validate(h) for h in data.get("hospitals") or []],
            universities=[University.model_validate(u) for u in data.get("universities") or []],
        )
    except ValidationError as e:
        raise ValueError(f"Invalid directory file {path}: {e}") from e


def directory_from_config(config: dict[str, Any]) -> InMemoryDirectory:
    """Directory from `directory.path`; empty when unset or missing."""
    path = (config.get("directory") or {}).get("path")
    if not path:
        return InMemoryDirectory()
    if not Path(path).exists():
        log.warning("Directory file %s not found; using empty directory", path)
        return InMemoryDirectory()
    return load_directory(path)
