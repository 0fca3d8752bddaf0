"""Rebuild remote site state from event endpoints and blob endpoints.

Nothing is cached between runs: every run queries the relays for the
file advertisements of the signer's key and reconstructs the remote
file set from them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from nsite_deploy.core.async_utils import gather_limited, with_timeout
from nsite_deploy.endpoints.base import BlobEndpoint, EventEndpoint
from nsite_deploy.endpoints.signer import get_public_key
from nsite_deploy.errors import RemoteFetchFailure, SignerUnavailable

from .comparator import normalize_path
from .context import SyncContext
from .events import (
    advertisement_filter,
    belongs_to_site,
    record_from_advertisement,
)
from .models import FileRecord, SignedEvent

logger = logging.getLogger(__name__)


async def _query(
    endpoint: EventEndpoint, filter: dict, timeout: float | None
) -> list[SignedEvent] | Exception:
    try:
        return await with_timeout(endpoint.query(filter), timeout)
    except Exception as exc:
        logger.warning(
            "Query to %s failed: %s",
            endpoint.endpoint_id,
            str(exc) or type(exc).__name__,
        )
        return exc


def merge_remote_records(
    observations: Iterable[tuple[str, SignedEvent]],
    site_id: str | None = None,
) -> list[FileRecord]:
    """Collapse advertisements seen on several endpoints into one set.

    - Per exact path the newest event (``created_at``) wins.
    - ``found_on_event_endpoints`` lists every endpoint that served the
      winning event.
    - Paths that differ only by case collapse to the lexicographically
      first spelling.

    Returns records sorted by path.
    """
    newest: dict[str, FileRecord] = {}
    seen_on: dict[str, set[str]] = {}

    for endpoint_id, event in observations:
        if not belongs_to_site(event, site_id):
            continue
        record = record_from_advertisement(event)
        if record is None:
            continue
        seen_on.setdefault(event.id, set()).add(endpoint_id)

        current = newest.get(record.path)
        if current is None or (record.created_at or 0) > (current.created_at or 0):
            newest[record.path] = record

    by_normalized: dict[str, FileRecord] = {}
    for path in sorted(newest):
        record = newest[path]
        key = normalize_path(path)
        if key in by_normalized:
            logger.debug(
                "Dropping remote %s; %s has the same path",
                path,
                by_normalized[key].path,
            )
            continue
        by_normalized[key] = record.model_copy(
            update={
                "found_on_event_endpoints": frozenset(
                    seen_on.get(record.remote_event_id, ())
                )
            }
        )

    return sorted(by_normalized.values(), key=lambda r: r.path)


async def fetch_remote_files(ctx: SyncContext) -> list[FileRecord]:
    """Query every event endpoint for this site's file advertisements.

    Raises:
        RemoteFetchFailure: If there are no event endpoints, the signer
            has no public key, or every endpoint query failed.
    """
    if not ctx.event_endpoints:
        raise RemoteFetchFailure("No event endpoints configured")

    try:
        pubkey = await get_public_key(ctx.signer, ctx.request_timeout)
    except SignerUnavailable as exc:
        raise RemoteFetchFailure(str(exc)) from exc

    filter = advertisement_filter(pubkey)
    replies = await asyncio.gather(
        *(
            _query(endpoint, filter, ctx.request_timeout)
            for endpoint in ctx.event_endpoints
        )
    )

    observations: list[tuple[str, SignedEvent]] = []
    failures = 0
    for endpoint, reply in zip(ctx.event_endpoints, replies):
        if isinstance(reply, Exception):
            failures += 1
            continue
        observations.extend((endpoint.endpoint_id, event) for event in reply)

    if failures == len(ctx.event_endpoints):
        raise RemoteFetchFailure(
            f"All {failures} event endpoint queries failed"
        )

    records = merge_remote_records(observations, ctx.site_id)
    logger.info(
        "Found %d remote file(s) on %d/%d event endpoint(s)",
        len(records),
        len(ctx.event_endpoints) - failures,
        len(ctx.event_endpoints),
    )
    return records


async def _probe(
    endpoint: BlobEndpoint, content_hash: str, timeout: float | None
) -> bool:
    try:
        return await with_timeout(endpoint.exists(content_hash), timeout)
    except Exception as exc:
        logger.debug(
            "Availability check %s on %s failed: %s",
            content_hash,
            endpoint.endpoint_id,
            exc,
        )
        return False


async def check_availability(
    ctx: SyncContext, records: Iterable[FileRecord]
) -> list[FileRecord]:
    """Probe every blob endpoint for each record's content.

    Returns new records with ``available_on_blob_endpoints`` filled in.
    Probes are bounded by ``ctx.concurrency`` files at a time.
    """
    records = list(records)
    if not ctx.blob_endpoints:
        return records

    async def _check(record: FileRecord) -> FileRecord:
        if record.content_hash is None:
            return record
        found = await asyncio.gather(
            *(
                _probe(endpoint, record.content_hash, ctx.request_timeout)
                for endpoint in ctx.blob_endpoints
            )
        )
        available = frozenset(
            endpoint.endpoint_id
            for endpoint, present in zip(ctx.blob_endpoints, found)
            if present
        )
        return record.model_copy(
            update={"available_on_blob_endpoints": available}
        )

    return await gather_limited(
        [_check(record) for record in records], ctx.concurrency
    )
