"""Reconciliation of desired server groups against managed reference sets.

Every set needing action becomes one independent unit of work:

  refresh  purge (purge_only=true) -> poll to COMPLETED -> bulk load
  create   create (element_type=IP) -> bulk load
  delete   delete (purge_only=false) -> poll to COMPLETED

Units run concurrently on a thread pool and never share mutable state. A
failing unit is recorded in the SyncReport; its siblings keep running unless
fail-fast is on, in which case units not yet started are cancelled and
running ones stop at their next step.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from scripts.refsync.client import QRadarClient
from scripts.refsync.config import PollPolicy
from scripts.refsync.models import ReferenceSet, SyncReport, UnitResult
from scripts.refsync.poller import wait_for_task

logger = logging.getLogger("refsync.reconciler")

ACTION_REFRESH = "refresh"
ACTION_CREATE = "create"
ACTION_DELETE = "delete"


class UnitCancelled(Exception):
    """Raised inside a unit when fail-fast has tripped."""


@dataclass
class SyncPlan:
    refresh: list[str] = field(default_factory=list)
    create: list[str] = field(default_factory=list)
    delete: list[str] = field(default_factory=list)

    def units(self) -> list[tuple[str, str]]:
        return (
            [(name, ACTION_REFRESH) for name in self.refresh]
            + [(name, ACTION_CREATE) for name in self.create]
            + [(name, ACTION_DELETE) for name in self.delete]
        )

    def summary(self) -> dict[str, int]:
        return {
            ACTION_REFRESH: len(self.refresh),
            ACTION_CREATE: len(self.create),
            ACTION_DELETE: len(self.delete),
        }


def plan(desired: Mapping[str, list[str]], remote: Mapping[str, ReferenceSet]) -> SyncPlan:
    """Diff desired groups and remote managed sets strictly by name."""
    result = SyncPlan()
    for name in sorted(desired):
        if name in remote:
            result.refresh.append(name)
        else:
            result.create.append(name)
    result.delete = sorted(name for name in remote if name not in desired)
    return result


class Reconciler:
    def __init__(
        self,
        client: QRadarClient,
        poll_policy: Optional[PollPolicy] = None,
        max_workers: int = 16,
        fail_fast: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.poll_policy = poll_policy or PollPolicy()
        self.max_workers = max(1, max_workers)
        self.fail_fast = fail_fast
        self._sleep = sleep
        self._abort = threading.Event()

    def run(
        self,
        desired: Mapping[str, list[str]],
        remote: Mapping[str, ReferenceSet],
        run_id: Optional[str] = None,
    ) -> SyncReport:
        """Execute every unit of the plan and return the aggregate outcome."""
        sync_plan = plan(desired, remote)
        report = SyncReport(run_id=run_id or str(uuid.uuid4()))
        self._abort.clear()

        units = sync_plan.units()
        logger.info(
            "Reconciling %d reference sets: %s",
            len(units), sync_plan.summary(),
            extra={"run_id": report.run_id},
        )
        if not units:
            return report

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(units)),
            thread_name_prefix="refsync",
        ) as pool:
            fut_to_unit = {
                pool.submit(self._run_unit, name, action, desired.get(name, [])): (name, action)
                for name, action in units
            }
            pending_cancelled = False
            for fut in concurrent.futures.as_completed(fut_to_unit):
                name, action = fut_to_unit[fut]
                if fut.cancelled():
                    report.results.append(UnitResult(name=name, action=action, cancelled=True))
                    continue
                result = fut.result()
                report.results.append(result)
                if self._abort.is_set() and not pending_cancelled:
                    logger.warning(
                        "Fail-fast: cancelling remaining units after %s of %r",
                        action, name,
                        extra={"run_id": report.run_id},
                    )
                    for other in fut_to_unit:
                        other.cancel()
                    pending_cancelled = True

        logger.info(
            "Reconciliation finished: %s",
            report.counts(),
            extra={"run_id": report.run_id},
        )
        return report

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def _run_unit(self, name: str, action: str, members: list[str]) -> UnitResult:
        """Run one unit, converting any exception into a failed UnitResult."""
        result = UnitResult(name=name, action=action)
        started = time.monotonic()
        try:
            if action == ACTION_REFRESH:
                result.elements = self._refresh(name, members)
            elif action == ACTION_CREATE:
                result.elements = self._create(name, members)
            else:
                self._delete(name)
            result.ok = True
        except UnitCancelled:
            result.cancelled = True
            logger.info(
                "Cancelled %s of reference set %r", action, name,
                extra={"reference_set": name, "operation": action},
            )
        except Exception as exc:
            result.error = str(exc)
            if self.fail_fast:
                self._abort.set()
            logger.error(
                "error during %s of reference set %r: %s", action, name, exc,
                extra={"reference_set": name, "operation": action},
            )
        result.duration_s = round(time.monotonic() - started, 3)
        return result

    def _checkpoint(self) -> None:
        if self._abort.is_set():
            raise UnitCancelled()

    def _refresh(self, name: str, members: list[str]) -> int:
        self._checkpoint()
        logger.info(
            "reference set exists, purging: %r", name,
            extra={"reference_set": name, "operation": "purge"},
        )
        task = self.client.delete_reference_set(name, purge_only=True)
        wait_for_task(self.client, task, self.poll_policy, name, "purge", self._sleep)
        logger.info(
            "purged reference set: %r", name,
            extra={"reference_set": name, "operation": "purge", "task_id": task.id},
        )
        return self._bulk_load(name, members)

    def _create(self, name: str, members: list[str]) -> int:
        self._checkpoint()
        logger.info(
            "creating reference set: %r", name,
            extra={"reference_set": name, "operation": "create"},
        )
        self.client.create_reference_set(name, element_type="IP")
        return self._bulk_load(name, members)

    def _bulk_load(self, name: str, members: list[str]) -> int:
        self._checkpoint()
        ref_set = self.client.bulk_load_reference_set(name, members)
        logger.info(
            "bulkloaded reference set: %r, number of elements: %d",
            name, ref_set.number_of_elements,
            extra={
                "reference_set": name,
                "operation": "bulk_load",
                "elements": ref_set.number_of_elements,
            },
        )
        return ref_set.number_of_elements

    def _delete(self, name: str) -> None:
        self._checkpoint()
        logger.info(
            "reference set no longer needed, deleting: %r", name,
            extra={"reference_set": name, "operation": "delete"},
        )
        task = self.client.delete_reference_set(name, purge_only=False)
        wait_for_task(self.client, task, self.poll_policy, name, "delete", self._sleep)
        logger.info(
            "deleted reference set: %r", name,
            extra={"reference_set": name, "operation": "delete", "task_id": task.id},
        )
