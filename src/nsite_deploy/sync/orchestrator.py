"""Top-level deploy run.

``SyncOrchestrator`` walks one run through its phases::

    idle -> scanning-local -> fetching-remote -> comparing -> uploading
         -> publishing-manifest -> [purging] -> done

Only an unreadable site root ends the run in ``failed``.  A failed remote
fetch means uploading everything; upload and manifest failures are
collected into the report and the run still reaches ``done``.
Cancellation is checked between phases.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

from nsite_deploy.core.async_utils import run_sync
from nsite_deploy.endpoints.signer import sign
from nsite_deploy.errors import (
    LocalReadFailure,
    NoEndpointsConfigured,
    RemoteFetchFailure,
    SignerUnavailable,
)

from .comparator import compare
from .context import SyncContext
from .dispatcher import DestinationDispatcher
from .ignore import IgnoreRules
from .manifest import ManifestBuilder
from .models import (
    DeployReport,
    FileRecord,
    ManifestMetadata,
    PurgeResult,
    SyncPhase,
    UploadResult,
)
from .propagation import calculate_propagation
from .publisher import EventPublisher
from .purge import PurgeReconciler
from .remote import check_availability, fetch_remote_files
from .scanner import LocalDirectory

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[list[FileRecord]], bool | Awaitable[bool]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncOrchestrator:
    """Run a full deploy for one site.

    Args:
        ctx: Signer, endpoints and limits for the run.
        metadata: Title, description and hints for the manifest.
        purge: Delete remote files that no longer exist locally.
        purge_patterns: Only purge orphans matching these globs.
        verify_purge: Query endpoints after purging.
        force: Upload unchanged files too.
        assume_yes: Purge without asking.
        confirm: Asked with the orphan list when ``assume_yes`` is off;
            may be sync or async.
        check_availability: Probe blob endpoints for remote content.
        ignore: Ignore rules for directory sources.
        fallback: Page to also publish as ``/404.html``.
    """

    def __init__(
        self,
        ctx: SyncContext,
        *,
        metadata: ManifestMetadata | None = None,
        purge: bool = False,
        purge_patterns: Sequence[str] | None = None,
        verify_purge: bool = False,
        force: bool = False,
        assume_yes: bool = False,
        confirm: ConfirmCallback | None = None,
        check_availability: bool = False,
        ignore: IgnoreRules | None = None,
        fallback: str | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        self.ctx = ctx
        self.metadata = metadata or ManifestMetadata()
        self.purge = purge
        self.purge_patterns = purge_patterns
        self.verify_purge = verify_purge
        self.force = force
        self.assume_yes = assume_yes
        self.confirm = confirm
        self.check_availability = check_availability
        self.ignore = ignore
        self.fallback = fallback

        self.publisher = publisher or EventPublisher(ctx.request_timeout)
        self.dispatcher = DestinationDispatcher(self.publisher)
        self.manifest_builder = ManifestBuilder()
        self.reconciler = PurgeReconciler(self.publisher)

        self.phase = SyncPhase.IDLE
        self.history: list[SyncPhase] = [SyncPhase.IDLE]

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug("Deploy phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        self.history.append(phase)

    def cancel(self) -> None:
        """Stop new work from starting; in-flight calls finish."""
        self.ctx.cancel.cancel()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(
        self, source: str | Path | LocalDirectory, dry_run: bool = False
    ) -> DeployReport:
        """Deploy *source* and return the report.

        Args:
            source: Site directory, or a prepared ``LocalDirectory``.
            dry_run: Stop after comparing; nothing is uploaded.
        """
        started_at = _now()
        errors: list[str] = []
        report: dict[str, Any] = {
            "site_id": self.ctx.site_id or None,
            "dry_run": dry_run,
            "started_at": started_at,
        }

        # Scanning
        self._enter(SyncPhase.SCANNING_LOCAL)
        reader = (
            source
            if isinstance(source, LocalDirectory)
            else LocalDirectory(source, ignore=self.ignore, fallback=self.fallback)
        )
        try:
            scan = await run_sync(reader.scan)
        except LocalReadFailure as exc:
            logger.error("Cannot read site directory: %s", exc)
            self._enter(SyncPhase.FAILED)
            return DeployReport(
                **report,
                phase=SyncPhase.FAILED,
                completed_at=_now(),
                errors=[str(exc)],
            )
        ctx = dataclasses.replace(self.ctx, reader=reader)
        report["local_errors"] = scan.errors

        # Fetching remote state
        self._enter(SyncPhase.FETCHING_REMOTE)
        try:
            remote = await fetch_remote_files(ctx)
        except RemoteFetchFailure as exc:
            logger.warning(
                "Could not fetch remote files (%s); uploading everything", exc
            )
            errors.append(f"Remote fetch failed: {exc}")
            remote = []

        if self.check_availability and remote:
            remote = await check_availability(ctx, remote)
        if remote:
            report["propagation"] = calculate_propagation(
                remote,
                [e.endpoint_id for e in ctx.event_endpoints],
                [b.endpoint_id for b in ctx.blob_endpoints]
                if self.check_availability
                else None,
            )

        # Comparing
        self._enter(SyncPhase.COMPARING)
        comparison = compare(scan.records, remote)
        to_upload = list(comparison.to_upload)
        if self.force:
            to_upload.extend(comparison.unchanged)
        report.update(
            to_upload=to_upload,
            unchanged=[] if self.force else comparison.unchanged,
            to_delete=comparison.to_delete,
        )
        logger.info(
            "%d to upload, %d unchanged, %d remote-only",
            len(to_upload),
            len(comparison.unchanged),
            len(comparison.to_delete),
        )

        if dry_run or ctx.cancel.cancelled:
            return self._finish(report, errors, cancelled=ctx.cancel.cancelled)

        # Uploading
        self._enter(SyncPhase.UPLOADING)
        results = await self._upload(ctx, to_upload, errors)
        report["results"] = results
        if ctx.cancel.cancelled:
            return self._finish(report, errors, cancelled=True)

        # Manifest
        self._enter(SyncPhase.PUBLISHING_MANIFEST)
        report.update(
            await self._publish_manifest(
                ctx, results, comparison.unchanged, errors
            )
        )
        if ctx.cancel.cancelled:
            return self._finish(report, errors, cancelled=True)

        # Purge
        if self.purge:
            self._enter(SyncPhase.PURGING)
            fresh_local = list(scan.records) + [r.file for r in results]
            report["purge"] = await self._purge(ctx, fresh_local, remote, errors)

        return self._finish(report, errors)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _upload(
        self,
        ctx: SyncContext,
        to_upload: list[FileRecord],
        errors: list[str],
    ) -> list[UploadResult]:
        if not to_upload:
            return []
        try:
            return await self.dispatcher.dispatch(ctx, to_upload)
        except NoEndpointsConfigured as exc:
            logger.error("%s", exc)
            errors.append(str(exc))
            return [UploadResult(file=r, error=str(exc)) for r in to_upload]

    async def _publish_manifest(
        self,
        ctx: SyncContext,
        results: list[UploadResult],
        unchanged: list[FileRecord],
        errors: list[str],
    ) -> dict[str, Any]:
        manifest = self.manifest_builder.build(
            results, ctx.site_id, self.metadata, unchanged=unchanged
        )
        if manifest is None:
            return {}

        template = self.manifest_builder.to_template(manifest)
        try:
            event = await sign(ctx.signer, template, ctx.request_timeout)
        except SignerUnavailable as exc:
            logger.error("Manifest not signed: %s", exc)
            errors.append(f"Manifest not signed: {exc}")
            return {"manifest": manifest}

        published = await self.publisher.publish(
            ctx.event_endpoints, [event], ctx.request_timeout
        )
        if published:
            logger.info(
                "Published manifest %s with %d path(s)",
                event.id,
                len(manifest.paths),
            )
        else:
            errors.append("Manifest was not accepted by any event endpoint")
        return {
            "manifest": manifest,
            "manifest_event_id": event.id,
            "manifest_published": published,
        }

    async def _purge(
        self,
        ctx: SyncContext,
        local: list[FileRecord],
        remote: list[FileRecord],
        errors: list[str],
    ) -> PurgeResult | None:
        orphans = self.reconciler.select(
            self.reconciler.reconcile(local, remote), self.purge_patterns
        )
        confirmed = True
        if orphans and not self.assume_yes:
            confirmed = await self._ask_confirmation(orphans)

        try:
            return await self.reconciler.purge(
                ctx, orphans, confirmed, verify=self.verify_purge
            )
        except (NoEndpointsConfigured, SignerUnavailable) as exc:
            logger.error("Purge failed: %s", exc)
            errors.append(f"Purge failed: {exc}")
            return None

    async def _ask_confirmation(self, orphans: list[FileRecord]) -> bool:
        if self.confirm is None:
            logger.warning(
                "Purge of %d file(s) needs confirmation; none given",
                len(orphans),
            )
            return False
        answer = self.confirm(orphans)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    def _finish(
        self,
        report: dict[str, Any],
        errors: list[str],
        cancelled: bool = False,
    ) -> DeployReport:
        if cancelled:
            logger.warning("Deploy cancelled during %s", self.phase.value)
        self._enter(SyncPhase.DONE)
        return DeployReport(
            **report,
            phase=SyncPhase.DONE,
            cancelled=cancelled,
            completed_at=_now(),
            errors=errors,
        )
