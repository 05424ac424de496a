"""Typed views of the QRadar reference-data payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from scripts.refsync.errors import ResponseDecodeError

TASK_COMPLETED = "COMPLETED"
# Delete task statuses after which QRadar will not make further progress
TASK_FAILED_STATUSES = frozenset({"EXCEPTION", "CANCELLED", "CANCELED", "INTERRUPTED", "FAILED"})


def _require_dict(data: Any, kind: str) -> dict:
    if not isinstance(data, dict):
        raise ResponseDecodeError(f"expected {kind} object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class ReferenceSet:
    name: str
    element_type: str = "IP"
    timeout_type: Optional[str] = None
    time_to_live: Optional[str] = None
    creation_time: Optional[int] = None
    number_of_elements: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "ReferenceSet":
        data = _require_dict(data, "reference set")
        try:
            return cls(
                name=str(data["name"]),
                element_type=data.get("element_type", "IP"),
                timeout_type=data.get("timeout_type"),
                time_to_live=data.get("time_to_live"),
                creation_time=data.get("creation_time"),
                number_of_elements=int(data.get("number_of_elements") or 0),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ResponseDecodeError(f"malformed reference set: {exc!r}") from exc


@dataclass(frozen=True)
class DeletionTask:
    id: int
    status: str
    name: Optional[str] = None
    message: Optional[str] = None
    created: Optional[int] = None
    started: Optional[int] = None
    modified: Optional[int] = None
    completed: Optional[int] = None
    created_by: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TASK_COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status in TASK_FAILED_STATUSES

    @classmethod
    def from_dict(cls, data: Any) -> "DeletionTask":
        data = _require_dict(data, "delete task")
        try:
            return cls(
                id=int(data["id"]),
                status=str(data.get("status", "")),
                name=data.get("name"),
                message=data.get("message"),
                created=data.get("created"),
                started=data.get("started"),
                modified=data.get("modified"),
                completed=data.get("completed"),
                created_by=data.get("created_by"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ResponseDecodeError(f"malformed delete task: {exc!r}") from exc


@dataclass
class UnitResult:
    """Outcome of one refresh, create or delete unit."""

    name: str
    action: str
    ok: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    elements: Optional[int] = None
    duration_s: float = 0.0


@dataclass
class SyncReport:
    run_id: str
    results: list[UnitResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[UnitResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[UnitResult]:
        return [r for r in self.results if not r.ok and not r.cancelled]

    @property
    def cancelled(self) -> list[UnitResult]:
        return [r for r in self.results if r.cancelled]

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    def counts(self) -> dict[str, int]:
        return {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "cancelled": len(self.cancelled),
        }
