"""QRadar reference-data REST client.

One instance is shared by every reconciliation worker; the underlying
``requests.Session`` connection pool is sized to the worker count.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from scripts.refsync.config import QRadarConfig
from scripts.refsync.errors import QRadarAPIError, ResponseDecodeError, UnexpectedStatusError
from scripts.refsync.models import DeletionTask, ReferenceSet

logger = logging.getLogger("refsync.client")

SETS_PATH = "/api/reference_data/sets"
DELETE_TASKS_PATH = "/api/reference_data/set_delete_tasks"


def _quote(name: str) -> str:
    return quote(name, safe="")


class QRadarClient:
    def __init__(
        self,
        config: QRadarConfig,
        session: Optional[requests.Session] = None,
        pool_size: int = 16,
    ) -> None:
        self._base = config.base_url.rstrip("/")
        self._timeout = (config.connect_timeout, config.read_timeout)
        self._verify = config.verify
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=pool_size)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session
        self._session.headers.update({
            "Version": config.api_version,
            "SEC": config.sec_token,
            "Accept": "application/json",
        })
        if not config.verify_tls:
            logger.warning("TLS certificate verification is disabled for %s", self._base)

    def close(self) -> None:
        self._session.close()

    def _request(
        self,
        method: str,
        path: str,
        expected: int,
        params: Optional[dict] = None,
        json_body: Any = None,
    ) -> Any:
        url = f"{self._base}{path}"
        try:
            resp = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                timeout=self._timeout,
                verify=self._verify,
            )
        except requests.RequestException as exc:
            raise QRadarAPIError(f"error sending {method} {url}: {exc}") from exc

        if resp.status_code != expected:
            raise UnexpectedStatusError(method, url, resp.status_code, resp.text)

        try:
            return resp.json()
        except ValueError as exc:
            raise ResponseDecodeError(f"error decoding response body of {method} {url}: {exc}") from exc

    # ------------------------------------------------------------------
    # Reference sets
    # ------------------------------------------------------------------

    def reference_sets(self) -> list[ReferenceSet]:
        """Fetch every reference set in a single request (no pagination)."""
        data = self._request("GET", SETS_PATH, 200)
        if not isinstance(data, list):
            raise ResponseDecodeError(
                f"expected a list of reference sets, got {type(data).__name__}"
            )
        return [ReferenceSet.from_dict(item) for item in data]

    def reference_set(self, name: str) -> ReferenceSet:
        data = self._request("GET", f"{SETS_PATH}/{_quote(name)}", 200)
        return ReferenceSet.from_dict(data)

    def create_reference_set(self, name: str, element_type: str = "IP") -> ReferenceSet:
        data = self._request(
            "POST",
            SETS_PATH,
            201,
            params={"name": name, "element_type": element_type},
        )
        return ReferenceSet.from_dict(data)

    def bulk_load_reference_set(self, name: str, values: list[str]) -> ReferenceSet:
        """Replace the set's elements with ``values``."""
        data = self._request(
            "POST",
            f"{SETS_PATH}/bulk_load/{_quote(name)}",
            200,
            json_body=list(values),
        )
        return ReferenceSet.from_dict(data)

    def delete_reference_set(self, name: str, purge_only: bool) -> DeletionTask:
        """Start an asynchronous delete; ``purge_only`` keeps the set itself."""
        data = self._request(
            "DELETE",
            f"{SETS_PATH}/{_quote(name)}",
            202,
            params={"purge_only": "true" if purge_only else "false"},
        )
        return DeletionTask.from_dict(data)

    def delete_task_status(self, task_id: int) -> DeletionTask:
        data = self._request("GET", f"{DELETE_TASKS_PATH}/{int(task_id)}", 200)
        return DeletionTask.from_dict(data)
