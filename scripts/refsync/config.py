"""Configuration from CLI flags, environment variables and an optional .env file.

Precedence: explicit CLI flag > environment variable > default. Only the
presence of the QRadar URL and token is validated.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from scripts.refsync.errors import ConfigError
from scripts.refsync.secrets import resolve_secret

MANAGED_PREFIX = "Managed UNIX Devices - "
NAME_SEPARATOR = " - "
DEFAULT_SERVER_FILE = "USS-UNIX-Servers.csv"

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class QRadarConfig:
    base_url: str
    sec_token: str
    api_version: str = "9.1"
    verify_tls: bool = True
    ca_bundle: Optional[str] = None  # path to a PEM bundle, overrides system CAs
    connect_timeout: float = 3.0
    read_timeout: float = 30.0

    @property
    def verify(self) -> bool | str:
        """Value for requests' ``verify=`` argument."""
        if not self.verify_tls:
            return False
        return self.ca_bundle or True


@dataclass(frozen=True)
class PollPolicy:
    """Fixed-interval polling of delete tasks."""

    attempts: int = 5
    interval_s: float = 1.0


@dataclass(frozen=True)
class SyncConfig:
    qradar: QRadarConfig
    server_file: str = DEFAULT_SERVER_FILE
    prefix: str = MANAGED_PREFIX
    separator: str = NAME_SEPARATOR
    poll: PollPolicy = field(default_factory=PollPolicy)
    max_workers: int = 16
    fail_fast: bool = False
    interval_min: int = 60


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUE


def _pick(overrides: dict[str, Any], key: str, env: str, default: Any = None) -> Any:
    value = overrides.get(key)
    if value is not None:
        return value
    return os.environ.get(env, default)


def _number(kind: Callable[[Any], Any], overrides: dict[str, Any], key: str, env: str, default: str) -> Any:
    raw = _pick(overrides, key, env, default)
    try:
        return kind(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{env} must be a number, got {raw!r}") from exc


def load_config(overrides: Optional[dict[str, Any]] = None) -> SyncConfig:
    """Build the sync configuration.

    ``overrides`` holds CLI values keyed by setting name; ``None`` values
    fall through to the environment.
    """
    load_dotenv()
    overrides = overrides or {}

    base_url = (_pick(overrides, "url", "QRADAR_BASE_URL", "") or "").rstrip("/")
    token_raw = _pick(overrides, "token", "QRADAR_SEC_TOKEN", "") or ""
    if not base_url or not token_raw:
        raise ConfigError("QRadar base URL and SEC token are required")

    verify_tls = _env_bool("QRADAR_VERIFY_TLS", True)
    if overrides.get("insecure"):
        verify_tls = False

    qradar = QRadarConfig(
        base_url=base_url,
        sec_token=resolve_secret(token_raw),
        api_version=_pick(overrides, "api_version", "QRADAR_API_VERSION", "9.1"),
        verify_tls=verify_tls,
        ca_bundle=_pick(overrides, "ca_bundle", "QRADAR_CA_BUNDLE") or None,
        connect_timeout=_number(float, overrides, "connect_timeout", "QRADAR_CONNECT_TIMEOUT", "3"),
        read_timeout=_number(float, overrides, "read_timeout", "QRADAR_READ_TIMEOUT", "30"),
    )

    poll = PollPolicy(
        attempts=_number(int, overrides, "poll_attempts", "QRADAR_POLL_ATTEMPTS", "5"),
        interval_s=_number(float, overrides, "poll_interval", "QRADAR_POLL_INTERVAL", "1"),
    )

    fail_fast = _env_bool("QRADAR_FAIL_FAST", False)
    if overrides.get("fail_fast"):
        fail_fast = True

    return SyncConfig(
        qradar=qradar,
        server_file=_pick(overrides, "file", "QRADAR_SERVER_FILE", DEFAULT_SERVER_FILE),
        poll=poll,
        max_workers=_number(int, overrides, "max_workers", "QRADAR_MAX_WORKERS", "16"),
        fail_fast=fail_fast,
        interval_min=_number(int, overrides, "interval_min", "QRADAR_SYNC_INTERVAL_MIN", "60"),
    )
