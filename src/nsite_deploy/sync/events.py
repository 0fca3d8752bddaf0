"""Event kinds and template builders.

The pipeline never signs or serialises events itself; it only builds
unsigned ``EventTemplate`` objects and reads tags back from
``SignedEvent`` objects returned by endpoints.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable

from nsite_deploy.validators import validate_content_hash, validate_site_path

from .models import EventTemplate, FileRecord, SignedEvent

logger = logging.getLogger(__name__)

FILE_KIND = 34128
ROOT_MANIFEST_KIND = 15128
NAMED_MANIFEST_KIND = 35128
DELETE_KIND = 5
BLOB_AUTH_KIND = 24242

CLIENT_NAME = "nsite-deploy"
DELETE_REASON = "File deleted through nsite-deploy"
BLOB_AUTH_TTL = 3600


def now() -> int:
    return int(time.time())


def client_tag() -> list[str]:
    return ["client", CLIENT_NAME]


def file_advertisement(
    record: FileRecord,
    site_id: str | None = None,
    created_at: int | None = None,
) -> EventTemplate:
    """Advertise that *record* is served under its content hash.

    Named sites add a ``site`` tag so their files never mix with the
    root site's.
    """
    if record.content_hash is None:
        raise ValueError(f"Cannot advertise {record.path} without a hash")

    tags = [
        ["d", record.path],
        ["x", record.content_hash],
        ["m", record.media_type],
        ["size", str(record.size)],
    ]
    if site_id:
        tags.append(["site", site_id])
    tags.append(client_tag())
    return EventTemplate(
        kind=FILE_KIND,
        created_at=created_at if created_at is not None else now(),
        tags=tags,
    )


def delete_request(
    event_ids: Iterable[str], created_at: int | None = None
) -> EventTemplate:
    """Tombstone referencing each event id with an ``e`` tag."""
    tags = [["e", event_id] for event_id in event_ids]
    tags.append(client_tag())
    return EventTemplate(
        kind=DELETE_KIND,
        created_at=created_at if created_at is not None else now(),
        tags=tags,
        content=DELETE_REASON,
    )


def blob_upload_auth(
    content_hash: str, created_at: int | None = None
) -> EventTemplate:
    """Short-lived authorization for uploading one blob."""
    issued = created_at if created_at is not None else now()
    return EventTemplate(
        kind=BLOB_AUTH_KIND,
        created_at=issued,
        tags=[
            ["t", "upload"],
            ["x", content_hash],
            ["expiration", str(issued + BLOB_AUTH_TTL)],
            client_tag(),
        ],
        content=f"Upload {content_hash}",
    )


def advertisement_filter(pubkey: str) -> dict:
    return {"kinds": [FILE_KIND], "authors": [pubkey]}


def belongs_to_site(event: SignedEvent, site_id: str | None) -> bool:
    """Whether a file advertisement belongs to *site_id* (None = root)."""
    return (event.tag_value("site") or None) == (site_id or None)


def record_from_advertisement(
    event: SignedEvent, endpoint_id: str | None = None
) -> FileRecord | None:
    """Parse a file advertisement into a remote ``FileRecord``.

    Returns ``None`` (and logs) for events with a missing or invalid
    path or hash.
    """
    path = event.tag_value("d")
    content_hash = event.tag_value("x")
    if path is None or content_hash is None:
        logger.debug("Ignoring event %s without d/x tags", event.id)
        return None

    ok, reason = validate_site_path(path)
    if not ok:
        logger.debug("Ignoring event %s: %s", event.id, reason)
        return None
    ok, reason = validate_content_hash(content_hash)
    if not ok:
        logger.debug("Ignoring event %s: %s", event.id, reason)
        return None

    size_raw = event.tag_value("size")
    try:
        size = int(size_raw) if size_raw is not None else 0
    except ValueError:
        size = 0

    fields: dict = {
        "path": path,
        "size": size,
        "content_hash": content_hash,
        "remote_event_id": event.id,
        "created_at": event.created_at,
    }
    media_type = event.tag_value("m")
    if media_type:
        fields["media_type"] = media_type
    if endpoint_id:
        fields["found_on_event_endpoints"] = frozenset({endpoint_id})
    return FileRecord(**fields)
