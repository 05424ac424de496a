"""Shared fixtures: an in-memory QRadar and inventory CSV helpers."""

from __future__ import annotations

import itertools
from typing import Optional

import pytest

from scripts.refsync.errors import UnexpectedStatusError
from scripts.refsync.models import DeletionTask, ReferenceSet

PREFIX = "Managed UNIX Devices - "


class FakeQRadar:
    """Stands in for QRadarClient; delete tasks complete after ``polls_to_complete`` lookups."""

    def __init__(self, sets: Optional[dict[str, list[str]]] = None, polls_to_complete: int = 1) -> None:
        self.sets: dict[str, list[str]] = {k: list(v) for k, v in (sets or {}).items()}
        self.polls_to_complete = polls_to_complete
        self.calls: list[tuple] = []
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self.task_statuses: dict[int, list[str]] = {}
        self._tasks: dict[int, tuple[str, bool]] = {}
        self._ids = itertools.count(100)

    def _maybe_fail(self, op: str, name: str) -> None:
        exc = self.fail_on.get((op, name))
        if exc is not None:
            raise exc

    def reference_sets(self) -> list[ReferenceSet]:
        self.calls.append(("list",))
        return [self._as_set(name) for name in self.sets]

    def reference_set(self, name: str) -> ReferenceSet:
        self.calls.append(("get", name))
        if name not in self.sets:
            raise UnexpectedStatusError("GET", name, 404, "not found")
        return self._as_set(name)

    def create_reference_set(self, name: str, element_type: str = "IP") -> ReferenceSet:
        self.calls.append(("create", name, element_type))
        self._maybe_fail("create", name)
        if name in self.sets:
            raise UnexpectedStatusError("POST", name, 409, "exists")
        self.sets[name] = []
        return self._as_set(name)

    def bulk_load_reference_set(self, name: str, values: list[str]) -> ReferenceSet:
        self.calls.append(("bulk_load", name, list(values)))
        self._maybe_fail("bulk_load", name)
        if name not in self.sets:
            raise UnexpectedStatusError("POST", name, 404, "not found")
        self.sets[name] = list(values)
        return self._as_set(name)

    def delete_reference_set(self, name: str, purge_only: bool) -> DeletionTask:
        self.calls.append(("delete", name, purge_only))
        self._maybe_fail("delete", name)
        task_id = next(self._ids)
        self._tasks[task_id] = (name, purge_only)
        statuses = ["QUEUED"] * (self.polls_to_complete - 1) + ["COMPLETED"]
        self.task_statuses.setdefault(task_id, statuses)
        return DeletionTask(id=task_id, status="QUEUED", name=name)

    def delete_task_status(self, task_id: int) -> DeletionTask:
        self.calls.append(("task", task_id))
        name, purge_only = self._tasks[task_id]
        statuses = self.task_statuses[task_id]
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        if status == "COMPLETED" and name in self.sets:
            if purge_only:
                self.sets[name] = []
            else:
                del self.sets[name]
        return DeletionTask(id=task_id, status=status, name=name)

    def close(self) -> None:
        pass

    def _as_set(self, name: str) -> ReferenceSet:
        return ReferenceSet(name=name, element_type="IP", number_of_elements=len(self.sets[name]))

    def ops(self, name: str) -> list[str]:
        return [c[0] for c in self.calls if len(c) > 1 and c[1] == name]


@pytest.fixture
def fake_qradar():
    return FakeQRadar()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def write_csv(tmp_path):
    def _write(text: str, name: str = "servers.csv") -> str:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "QRADAR_BASE_URL", "QRADAR_SEC_TOKEN", "QRADAR_SERVER_FILE",
        "QRADAR_VERIFY_TLS", "QRADAR_FAIL_FAST", "QRADAR_POLL_ATTEMPTS",
        "QRADAR_POLL_INTERVAL", "QRADAR_MAX_WORKERS", "QRADAR_API_VERSION",
        "QRADAR_CA_BUNDLE", "QRADAR_CONNECT_TIMEOUT", "QRADAR_READ_TIMEOUT",
        "QRADAR_SYNC_INTERVAL_MIN", "LOG_FORMAT", "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr("scripts.refsync.config.load_dotenv", lambda *a, **kw: False)
