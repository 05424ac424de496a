"""Server inventory CSV -> reference set groups.

Each data row contributes its server column (index 1) to two groups: one
named after the first grouping column, one after all grouping columns
joined. A row with a single grouping column names the same group twice and
so adds its server to it twice. Values are passed through as-is; no IP
validation happens here.
"""

from __future__ import annotations

import csv
import logging
from typing import Iterator, TextIO

from scripts.refsync.config import MANAGED_PREFIX, NAME_SEPARATOR
from scripts.refsync.errors import ExtractionError

logger = logging.getLogger("refsync.extractor")

SERVER_COLUMN = 1
FIRST_GROUP_COLUMN = 2


def group_names(row: list[str], prefix: str = MANAGED_PREFIX, separator: str = NAME_SEPARATOR) -> list[str]:
    """Return the coarse and fine group names for a row."""
    coarse = prefix + row[FIRST_GROUP_COLUMN]
    fine = prefix + separator.join(row[FIRST_GROUP_COLUMN:])
    return [coarse, fine]


def has_bare_quote(record: str) -> bool:
    """True if a field that does not start with a quote contains one.

    ``csv`` accepts such fields verbatim; the inventory format does not.
    """
    quoted = False
    field_start = True
    just_closed = False
    for ch in record.rstrip("\r\n"):
        if quoted:
            if ch == '"':
                quoted = False
                just_closed = True
            continue
        if ch == '"':
            if field_start or just_closed:
                # opening quote, or the second half of an escaped ""
                quoted = True
                field_start = just_closed = False
                continue
            return True
        just_closed = False
        field_start = ch == ","
    return False


def _recording(fh: TextIO, raw: list[str]) -> Iterator[str]:
    for line in fh:
        raw.append(line)
        yield line


def extract_server_groups(
    path: str,
    prefix: str = MANAGED_PREFIX,
    separator: str = NAME_SEPARATOR,
) -> dict[str, list[str]]:
    """Read the inventory at ``path`` and return {group name: [server, ...]}.

    Duplicate rows produce duplicate members.
    """
    groups: dict[str, list[str]] = {}
    raw: list[str] = []
    try:
        with open(path, newline="", encoding="utf-8") as fh:
            reader = csv.reader(_recording(fh, raw), strict=True)
            header = next(reader, None)
            if header is None:
                logger.warning("Server file %s is empty", path)
                return groups
            width = len(header)
            if width <= FIRST_GROUP_COLUMN:
                raise ExtractionError(
                    f"{path}: header has {width} columns, need at least {FIRST_GROUP_COLUMN + 1}"
                )
            raw.clear()
            for row in reader:
                record, raw[:] = "".join(raw), []
                if not row:
                    continue
                if has_bare_quote(record):
                    raise ExtractionError(
                        f"{path}, line {reader.line_num}: bare \" in non-quoted field"
                    )
                if len(row) != width:
                    raise ExtractionError(
                        f"{path}, line {reader.line_num}: wrong number of fields "
                        f"({len(row)}, expected {width})"
                    )
                server = row[SERVER_COLUMN]
                for name in group_names(row, prefix, separator):
                    groups.setdefault(name, []).append(server)
    except OSError as exc:
        raise ExtractionError(f"error opening csv file: {exc}") from exc
    except (csv.Error, UnicodeDecodeError) as exc:
        raise ExtractionError(f"error reading csv file: {exc}") from exc

    logger.info("Extracted %d server groups from %s", len(groups), path)
    return groups
