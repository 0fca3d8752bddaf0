"""Orphan detection and deletion.

Purging is two steps: find remote files with no local counterpart, then,
only after explicit confirmation, publish one delete event referencing
the advertisement of every orphan.  Without event endpoints a purge
fails closed.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Iterable, Sequence

from nsite_deploy.core.async_utils import with_timeout
from nsite_deploy.endpoints.signer import sign
from nsite_deploy.errors import NoEndpointsConfigured

from .comparator import compare, normalize_path
from .context import SyncContext
from .events import delete_request
from .models import FileRecord, PurgeResult
from .publisher import EventPublisher

logger = logging.getLogger(__name__)


class PurgeReconciler:
    """Compute orphans and publish delete events for them.

    Args:
        publisher: Publishes the delete event.
    """

    def __init__(self, publisher: EventPublisher | None = None) -> None:
        self.publisher = publisher or EventPublisher()

    def reconcile(
        self, local: Iterable[FileRecord], remote: Iterable[FileRecord]
    ) -> list[FileRecord]:
        """Remote records with no local counterpart.

        Always recomputed from both sets, even when the caller already
        holds a comparison.
        """
        return compare(local, remote).to_delete

    @staticmethod
    def select(
        orphans: Iterable[FileRecord], patterns: Sequence[str] | None
    ) -> list[FileRecord]:
        """Keep orphans whose path matches any glob in *patterns*.

        Matching is case-insensitive.  ``None`` or an empty list keeps all.
        """
        orphans = list(orphans)
        if not patterns:
            return orphans
        normalized = [normalize_path(p) for p in patterns]
        return [
            o
            for o in orphans
            if any(
                fnmatch.fnmatchcase(normalize_path(o.path), pattern)
                for pattern in normalized
            )
        ]

    async def purge(
        self,
        ctx: SyncContext,
        orphans: Sequence[FileRecord],
        confirmed: bool,
        verify: bool = False,
    ) -> PurgeResult:
        """Delete *orphans* remotely.

        Args:
            ctx: Run context; its event endpoints receive the delete event.
            orphans: Records to delete, normally from ``reconcile``.
            confirmed: Explicit user confirmation or non-interactive flag.
            verify: Query endpoints afterwards and report ids still served.

        Raises:
            NoEndpointsConfigured: If ``ctx`` has no event endpoints.
            SignerUnavailable: If the delete event cannot be signed.
        """
        if not ctx.event_endpoints:
            raise NoEndpointsConfigured("purge", "event endpoints")

        orphans = list(orphans)
        if not orphans:
            logger.info("No orphaned files to purge")
            return PurgeResult(confirmed=confirmed, success=True)

        if not confirmed:
            logger.info("Purge of %d file(s) not confirmed", len(orphans))
            return PurgeResult(orphans=orphans, confirmed=False)

        deletable = [o for o in orphans if o.remote_event_id]
        skipped = [o for o in orphans if not o.remote_event_id]
        for record in skipped:
            logger.warning(
                "Cannot purge %s: no advertising event id", record.path
            )
        if not deletable:
            return PurgeResult(
                orphans=orphans, confirmed=True, skipped=skipped
            )

        event_ids = [o.remote_event_id for o in deletable]
        event = await sign(
            ctx.signer, delete_request(event_ids), ctx.request_timeout
        )
        published = await self.publisher.publish(
            ctx.event_endpoints, [event], ctx.request_timeout
        )
        if published:
            logger.info("Published delete event for %d file(s)", len(deletable))
        else:
            logger.error("No event endpoint accepted the delete event")

        still_present: list[str] = []
        if verify and published:
            still_present = await self._still_present(ctx, event_ids)

        return PurgeResult(
            orphans=orphans,
            confirmed=True,
            published=published,
            success=published and not skipped,
            event_id=event.id,
            skipped=skipped,
            still_present=still_present,
        )

    async def _still_present(
        self, ctx: SyncContext, event_ids: list[str]
    ) -> list[str]:
        """Ids any event endpoint still returns after the delete."""
        present: set[str] = set()
        for endpoint in ctx.event_endpoints:
            try:
                events = await with_timeout(
                    endpoint.query({"ids": event_ids}), ctx.request_timeout
                )
            except Exception as exc:
                logger.warning(
                    "Could not verify purge on %s: %s",
                    endpoint.endpoint_id,
                    exc,
                )
                continue
            present.update(e.id for e in events if e.id in event_ids)

        if present:
            logger.warning(
                "%d deleted event(s) are still served", len(present)
            )
        return sorted(present)
