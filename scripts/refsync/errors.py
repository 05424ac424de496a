"""Exception hierarchy and process exit codes."""

from __future__ import annotations

from typing import Optional

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_EXTRACT = 2
EXIT_LIST_SETS = 3
EXIT_PARTIAL_FAILURE = 4


class RefSyncError(Exception):
    """Base class for every error raised by the sync."""


class ConfigError(RefSyncError):
    """Required configuration is missing."""


class ExtractionError(RefSyncError):
    """The server inventory could not be read or parsed."""


class QRadarAPIError(RefSyncError):
    """A request to the QRadar API could not be completed."""


class UnexpectedStatusError(QRadarAPIError):
    def __init__(self, method: str, url: str, status: int, body: str) -> None:
        self.method = method
        self.url = url
        self.status = status
        self.body = body
        super().__init__(
            f"unexpected response from {method} {url}, code: {status}, body: {body[:500]}"
        )


class ResponseDecodeError(QRadarAPIError):
    """The response body did not match the expected schema."""


class PollTimeoutError(RefSyncError):
    def __init__(self, name: str, task_id: int, last_status: Optional[str], attempts: int) -> None:
        self.name = name
        self.task_id = task_id
        self.last_status = last_status
        self.attempts = attempts
        super().__init__(
            f"timeout waiting for delete task {task_id} on {name!r} "
            f"after {attempts} attempts, last status: {last_status}"
        )


class TaskFailedError(RefSyncError):
    def __init__(self, name: str, task_id: int, status: str, message: Optional[str]) -> None:
        self.name = name
        self.task_id = task_id
        self.status = status
        detail = f": {message}" if message else ""
        super().__init__(
            f"delete task {task_id} on {name!r} ended with status {status}{detail}"
        )
