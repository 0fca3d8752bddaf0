"""Local vs. remote file-set comparison.

Pure functions, no I/O.  Paths are matched case-insensitively after
collapsing any leading run of slashes to one; output records keep their
original spelling.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .models import Comparison, FileRecord

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Matching key for *path*: one leading slash, lower case."""
    return ("/" + path.lstrip("/")).lower()


def index_by_path(records: Iterable[FileRecord]) -> dict[str, FileRecord]:
    """Index records by normalized path; the first occurrence wins."""
    index: dict[str, FileRecord] = {}
    for record in records:
        key = normalize_path(record.path)
        if key in index:
            logger.debug(
                "Dropping duplicate remote path %s (kept %s)",
                record.path,
                index[key].path,
            )
            continue
        index[key] = record
    return index


def compare(
    local: Iterable[FileRecord], remote: Iterable[FileRecord]
) -> Comparison:
    """Split *local* and *remote* into upload, unchanged and delete sets.

    - Local path absent remotely: upload.
    - Both sides hashed and equal: unchanged.
    - Both sides hashed and different: upload (replaces the remote entry).
    - Either side without a hash: unchanged.  This can hide real drift.
    - Remote path never matched by a local one: delete.

    If the remote set holds several records with the same normalized path,
    only the first is considered.
    """
    remote_index = index_by_path(remote)
    matched: set[str] = set()
    to_upload: list[FileRecord] = []
    unchanged: list[FileRecord] = []

    for record in local:
        key = normalize_path(record.path)
        remote_record = remote_index.get(key)
        if remote_record is None:
            to_upload.append(record)
            continue

        matched.add(key)
        if record.content_hash is None or remote_record.content_hash is None:
            unchanged.append(record)
        elif record.content_hash == remote_record.content_hash:
            unchanged.append(record)
        else:
            to_upload.append(record)

    to_delete = [
        record
        for key, record in remote_index.items()
        if key not in matched
    ]

    logger.debug(
        "Compared files: %d to upload, %d unchanged, %d to delete",
        len(to_upload),
        len(unchanged),
        len(to_delete),
    )
    return Comparison(
        to_upload=to_upload, unchanged=unchanged, to_delete=to_delete
    )
