"""Replicate files to every blob endpoint with bounded concurrency.

Workers pull files in input order; at most ``ctx.concurrency`` files are
in flight.  Each file goes to every blob endpoint, each attempt bounded
by ``ctx.request_timeout``.  A file succeeds when any endpoint stored it
or already had it; only then is its advertisement signed and published.
Failures stay with the file that caused them.  Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable

from nsite_deploy.core.async_utils import run_sync, with_timeout
from nsite_deploy.endpoints.base import BlobEndpoint
from nsite_deploy.endpoints.signer import sign
from nsite_deploy.errors import (
    EndpointRejected,
    EndpointTimeout,
    LocalReadFailure,
    NoEndpointsConfigured,
    SignerUnavailable,
)

from .context import SyncContext
from .events import file_advertisement
from .hasher import ContentHasher
from .models import (
    EndpointOutcome,
    EndpointStatus,
    FailureKind,
    FileRecord,
    UploadProgress,
    UploadResult,
)
from .publisher import EventPublisher

logger = logging.getLogger(__name__)


class _ProgressTracker:
    """Running aggregate pushed to the progress observer."""

    def __init__(
        self,
        total: int,
        endpoint_count: int,
        observer: Callable[[UploadProgress], None] | None,
    ) -> None:
        self.total = total
        self.endpoint_attempts = total * endpoint_count
        self.observer = observer
        self.completed = 0
        self.failed = 0
        self.in_progress = 0
        self.skipped = 0
        self.attempts_done = 0

    def snapshot(self) -> UploadProgress:
        return UploadProgress(
            total=self.total,
            completed=self.completed,
            failed=self.failed,
            in_progress=self.in_progress,
            skipped=self.skipped,
            endpoint_attempts=self.endpoint_attempts,
            endpoint_attempts_done=self.attempts_done,
        )

    def _emit(self) -> None:
        if self.observer is None:
            return
        try:
            self.observer(self.snapshot())
        except Exception:
            logger.warning("Progress observer raised", exc_info=True)

    def file_started(self) -> None:
        self.in_progress += 1
        self._emit()

    def attempt_done(self) -> None:
        self.attempts_done += 1
        self._emit()

    def file_finished(self, success: bool) -> None:
        self.in_progress -= 1
        if success:
            self.completed += 1
        else:
            self.failed += 1
        self._emit()

    def file_skipped(self) -> None:
        self.skipped += 1
        self._emit()


class DestinationDispatcher:
    """Upload pool.

    Args:
        publisher: Publishes file advertisements after successful uploads.
    """

    def __init__(self, publisher: EventPublisher | None = None) -> None:
        self.publisher = publisher or EventPublisher()

    async def dispatch(
        self, ctx: SyncContext, files: Iterable[FileRecord]
    ) -> list[UploadResult]:
        """Upload *files* and return one result per file, in input order.

        Raises:
            NoEndpointsConfigured: If ``ctx`` has no blob endpoints.
        """
        files = list(files)
        if not ctx.blob_endpoints:
            raise NoEndpointsConfigured("upload", "blob endpoints")
        if not files:
            return []

        tracker = _ProgressTracker(
            len(files), len(ctx.blob_endpoints), ctx.on_progress
        )
        results: list[UploadResult | None] = [None] * len(files)
        pending = iter(enumerate(files))

        async def worker() -> None:
            for index, record in pending:
                if ctx.cancel.cancelled:
                    results[index] = self._not_started(ctx, record)
                    tracker.file_skipped()
                    continue
                results[index] = await self._process(ctx, record, tracker)

        workers = min(ctx.concurrency, len(files))
        logger.info(
            "Uploading %d file(s) to %d blob endpoint(s), %d at a time",
            len(files),
            len(ctx.blob_endpoints),
            workers,
        )
        await asyncio.gather(*(worker() for _ in range(workers)))
        return [r for r in results if r is not None]

    # ------------------------------------------------------------------
    # Per-file
    # ------------------------------------------------------------------

    async def _process(
        self,
        ctx: SyncContext,
        record: FileRecord,
        tracker: _ProgressTracker,
    ) -> UploadResult:
        tracker.file_started()
        try:
            record = await self._prepare(ctx, record)
        except LocalReadFailure as exc:
            logger.error("Skipping %s: %s", record.path, exc)
            tracker.file_finished(success=False)
            return UploadResult(
                file=record.without_payload(),
                per_endpoint=[
                    EndpointOutcome(
                        endpoint_id=ep.endpoint_id,
                        status=EndpointStatus.FAILED,
                        error="local read failed",
                    )
                    for ep in ctx.blob_endpoints
                ],
                error=str(exc),
            )

        outcomes = await asyncio.gather(
            *(
                self._attempt(ctx, endpoint, record, tracker)
                for endpoint in ctx.blob_endpoints
            )
        )
        result = UploadResult(
            file=record.without_payload(), per_endpoint=list(outcomes)
        )

        if result.overall_success:
            result = await self._advertise(ctx, result)
        else:
            logger.warning(
                "Upload of %s failed on all %d endpoint(s)",
                record.path,
                len(outcomes),
            )

        tracker.file_finished(result.overall_success)
        return result

    async def _prepare(
        self, ctx: SyncContext, record: FileRecord
    ) -> FileRecord:
        """Make sure *record* carries its bytes and a matching hash."""
        if record.payload is not None:
            if record.content_hash is None:
                return record.model_copy(
                    update={
                        "content_hash": ContentHasher.hash(record.payload),
                        "size": len(record.payload),
                    }
                )
            return record

        if ctx.reader is None:
            raise LocalReadFailure(record.path, "no payload and no reader")
        try:
            data = await run_sync(ctx.reader.read, record.path)
        except LocalReadFailure:
            raise
        except OSError as exc:
            raise LocalReadFailure(record.path, str(exc)) from exc

        content_hash = ContentHasher.hash(data)
        if record.content_hash is not None and content_hash != record.content_hash:
            logger.warning(
                "%s changed since it was scanned; uploading current content",
                record.path,
            )
        return record.model_copy(
            update={
                "payload": data,
                "size": len(data),
                "content_hash": content_hash,
            }
        )

    async def _attempt(
        self,
        ctx: SyncContext,
        endpoint: BlobEndpoint,
        record: FileRecord,
        tracker: _ProgressTracker,
    ) -> EndpointOutcome:
        endpoint_id = endpoint.endpoint_id
        try:
            reply = await with_timeout(
                endpoint.put(record.content_hash, record.payload),
                ctx.request_timeout,
            )
        except (EndpointTimeout, TimeoutError):
            outcome = EndpointOutcome(
                endpoint_id=endpoint_id,
                status=EndpointStatus.FAILED,
                failure=FailureKind.TIMEOUT,
                error=f"timeout after {ctx.request_timeout}s",
            )
        except EndpointRejected as exc:
            outcome = EndpointOutcome(
                endpoint_id=endpoint_id,
                status=EndpointStatus.FAILED,
                failure=FailureKind.REJECTED,
                error=str(exc),
            )
        except Exception as exc:
            outcome = EndpointOutcome(
                endpoint_id=endpoint_id,
                status=EndpointStatus.FAILED,
                failure=FailureKind.NETWORK,
                error=str(exc) or type(exc).__name__,
            )
        else:
            if reply.success:
                status = (
                    EndpointStatus.ALREADY_PRESENT
                    if reply.already_exists
                    else EndpointStatus.SUCCESS
                )
                outcome = EndpointOutcome(endpoint_id=endpoint_id, status=status)
            else:
                outcome = EndpointOutcome(
                    endpoint_id=endpoint_id,
                    status=EndpointStatus.FAILED,
                    failure=reply.failure or FailureKind.REJECTED,
                    error=reply.error,
                )

        if outcome.status == EndpointStatus.FAILED:
            logger.debug(
                "%s -> %s failed (%s): %s",
                record.path,
                endpoint_id,
                outcome.failure.value if outcome.failure else "?",
                outcome.error,
            )
        tracker.attempt_done()
        return outcome

    async def _advertise(
        self, ctx: SyncContext, result: UploadResult
    ) -> UploadResult:
        template = file_advertisement(result.file, ctx.site_id)
        try:
            event = await sign(ctx.signer, template, ctx.request_timeout)
        except SignerUnavailable as exc:
            logger.error(
                "Could not sign advertisement for %s: %s",
                result.file.path,
                exc,
            )
            return result.model_copy(update={"error": str(exc)})

        published = await self.publisher.publish(
            ctx.event_endpoints, [event], ctx.request_timeout
        )
        if not published:
            logger.warning(
                "Advertisement for %s was not accepted by any event endpoint",
                result.file.path,
            )
        return result.model_copy(
            update={"event_id": event.id, "event_published": published}
        )

    @staticmethod
    def _not_started(ctx: SyncContext, record: FileRecord) -> UploadResult:
        return UploadResult(
            file=record.without_payload(),
            per_endpoint=[
                EndpointOutcome(endpoint_id=ep.endpoint_id)
                for ep in ctx.blob_endpoints
            ],
            cancelled=True,
        )
