"""Broadcast signed events to event endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from nsite_deploy.core.async_utils import with_timeout
from nsite_deploy.endpoints.base import EventEndpoint

from .models import PublishAck, PublishResult, SignedEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publish event batches to every endpoint at once.

    A batch counts as published when at least one endpoint accepted
    all of it.  An endpoint that accepts only some of the events has
    failed the batch.  There is no retry.

    Args:
        timeout: Default per-endpoint timeout in seconds.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    async def publish(
        self,
        endpoints: Sequence[EventEndpoint],
        events: Sequence[SignedEvent],
        timeout: float | None = None,
    ) -> bool:
        """Return True iff some endpoint accepted the whole batch."""
        result = await self.publish_detailed(endpoints, events, timeout)
        return result.accepted

    async def publish_detailed(
        self,
        endpoints: Sequence[EventEndpoint],
        events: Sequence[SignedEvent],
        timeout: float | None = None,
    ) -> PublishResult:
        """Publish and keep every endpoint's ack for diagnostics."""
        if not events:
            return PublishResult(accepted=True)
        if not endpoints:
            logger.warning(
                "No event endpoints; %d event(s) not published", len(events)
            )
            return PublishResult(accepted=False)

        limit = timeout if timeout is not None else self.timeout
        batch = list(events)
        acks = await asyncio.gather(
            *(self._publish_one(ep, batch, limit) for ep in endpoints)
        )
        accepted = any(ack.accepted for ack in acks)

        for ack in acks:
            if not ack.accepted:
                logger.info(
                    "Endpoint %s rejected %d event(s): %s",
                    ack.endpoint_id,
                    len(batch),
                    ack.error,
                )
        logger.debug(
            "Published %d event(s): %d/%d endpoints accepted",
            len(batch),
            sum(1 for ack in acks if ack.accepted),
            len(acks),
        )
        return PublishResult(accepted=accepted, acks=list(acks))

    async def _publish_one(
        self,
        endpoint: EventEndpoint,
        events: list[SignedEvent],
        timeout: float | None,
    ) -> PublishAck:
        endpoint_id = endpoint.endpoint_id
        try:
            ack = await with_timeout(endpoint.publish(events), timeout)
        except TimeoutError:
            return PublishAck(
                accepted=False,
                error=f"timeout after {timeout}s",
                endpoint_id=endpoint_id,
            )
        except Exception as exc:
            return PublishAck(
                accepted=False, error=str(exc), endpoint_id=endpoint_id
            )

        accepted = ack.accepted
        error = ack.error
        if accepted and ack.accepted_event_ids is not None:
            missing = [e.id for e in events if e.id not in ack.accepted_event_ids]
            if missing:
                accepted = False
                error = f"accepted {len(events) - len(missing)}/{len(events)} events"
        return ack.model_copy(
            update={
                "accepted": accepted,
                "error": error,
                "endpoint_id": endpoint_id,
            }
        )
