"""QRadar UNIX reference-set sync.

Reads a CSV inventory of UNIX servers, derives named IP groups from it and
reconciles them against QRadar reference sets: missing sets are created,
existing ones purged and bulk-loaded, orphaned managed sets deleted.
"""
