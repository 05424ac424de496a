"""Existing managed reference sets on the QRadar side."""

from __future__ import annotations

import logging

from scripts.refsync.client import QRadarClient
from scripts.refsync.config import MANAGED_PREFIX
from scripts.refsync.models import ReferenceSet

logger = logging.getLogger("refsync.remote_state")


def fetch_managed_sets(client: QRadarClient, prefix: str = MANAGED_PREFIX) -> dict[str, ReferenceSet]:
    """Return the remote reference sets owned by this sync, keyed by name."""
    all_sets = client.reference_sets()
    managed = {s.name: s for s in all_sets if s.name.startswith(prefix)}
    logger.info(
        "Found %d managed reference sets out of %d", len(managed), len(all_sets)
    )
    return managed
