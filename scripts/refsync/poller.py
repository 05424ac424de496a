"""Polling of asynchronous reference set delete tasks."""

from __future__ import annotations

import logging
import time
from typing import Callable

from scripts.refsync.client import QRadarClient
from scripts.refsync.config import PollPolicy
from scripts.refsync.errors import PollTimeoutError, TaskFailedError
from scripts.refsync.models import DeletionTask

logger = logging.getLogger("refsync.poller")


def wait_for_task(
    client: QRadarClient,
    task: DeletionTask,
    policy: PollPolicy,
    name: str,
    operation: str = "delete",
    sleep: Callable[[float], None] = time.sleep,
) -> DeletionTask:
    """Poll ``task`` until COMPLETED, at most ``policy.attempts`` lookups.

    Raises PollTimeoutError when the budget runs out and TaskFailedError as
    soon as QRadar reports a failure status.
    """
    if task.is_completed:
        return task

    for attempt in range(1, policy.attempts + 1):
        task = client.delete_task_status(task.id)
        logger.info(
            "%s reference set %r, status: %s",
            operation, name, task.status,
            extra={
                "reference_set": name,
                "operation": operation,
                "task_id": task.id,
                "status": task.status,
            },
        )
        if task.is_completed:
            return task
        if task.is_failed:
            raise TaskFailedError(name, task.id, task.status, task.message)
        if attempt < policy.attempts:
            sleep(policy.interval_s)

    raise PollTimeoutError(name, task.id, task.status, policy.attempts)
