"""Assemble a deploy run from configuration.

This is the seam between a front end (CLI, script, service) and the
sync pipeline: it resolves settings, builds blob endpoint clients for
the configured servers and wires everything into a ``SyncOrchestrator``.
Signers and relay clients are injected by the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Sequence

from dotenv import find_dotenv, load_dotenv

from .config import DeploySettings, load_settings
from .config_loader import load_hierarchical_config
from .config_schema import LoggingConfig, build_config, to_yaml_fallbacks
from .endpoints.base import BlobEndpoint, EventEndpoint, Signer
from .endpoints.http_blob import HttpBlobEndpoint
from .logger import setup_logging
from .sync.context import CancelToken, SyncContext
from .sync.ignore import IGNORE_FILE_NAME, IgnoreRules
from .sync.models import DeployReport, ManifestMetadata, UploadProgress
from .sync.orchestrator import ConfirmCallback, SyncOrchestrator

logger = logging.getLogger(__name__)


def load_deploy_settings(
    overrides: dict | None = None,
) -> tuple[DeploySettings, LoggingConfig]:
    """Resolve settings from overrides, environment, .env and YAML files.

    The .env file is looked up from the working directory upwards.
    """
    load_dotenv(find_dotenv(usecwd=True))
    unified = build_config(load_hierarchical_config())
    settings = load_settings(
        overrides=overrides, yaml_fallbacks=to_yaml_fallbacks(unified)
    )
    return settings, unified.logging


def configure_logging(config: LoggingConfig, debug: bool = False) -> None:
    setup_logging(
        debug=debug,
        log_file=config.file,
        log_format=config.format,
        level=config.level,
    )


def create_context(
    settings: DeploySettings,
    signer: Signer,
    event_endpoints: Sequence[EventEndpoint],
    blob_endpoints: Sequence[BlobEndpoint] | None = None,
    on_progress: Callable[[UploadProgress], None] | None = None,
    cancel: CancelToken | None = None,
) -> SyncContext:
    """Build the run context.

    Blob endpoints default to one ``HttpBlobEndpoint`` per configured
    server, authorised by *signer*.
    """
    if blob_endpoints is None:
        blob_endpoints = [
            HttpBlobEndpoint(url, signer=signer) for url in settings.servers
        ]
    return SyncContext(
        signer=signer,
        blob_endpoints=blob_endpoints,
        event_endpoints=event_endpoints,
        concurrency=settings.concurrency,
        request_timeout=settings.request_timeout,
        site_id=settings.site_id,
        on_progress=on_progress,
        cancel=cancel or CancelToken(),
    )


def create_orchestrator(
    settings: DeploySettings,
    ctx: SyncContext,
    source_dir: str | Path,
    confirm: ConfirmCallback | None = None,
) -> SyncOrchestrator:
    ignore_path = (
        Path(settings.ignore_file)
        if settings.ignore_file
        else Path(source_dir) / IGNORE_FILE_NAME
    )
    return SyncOrchestrator(
        ctx,
        metadata=ManifestMetadata(
            title=settings.title,
            description=settings.description,
            servers=settings.servers,
            relays=settings.relays,
        ),
        purge=settings.purge,
        force=settings.force,
        assume_yes=settings.assume_yes,
        confirm=confirm,
        check_availability=settings.check_availability,
        ignore=IgnoreRules.from_file(ignore_path),
        fallback=settings.fallback,
    )


async def run_deploy(
    source_dir: str | Path,
    signer: Signer,
    event_endpoints: Sequence[EventEndpoint],
    overrides: dict | None = None,
    blob_endpoints: Sequence[BlobEndpoint] | None = None,
    confirm: ConfirmCallback | None = None,
    on_progress: Callable[[UploadProgress], None] | None = None,
    dry_run: bool = False,
) -> DeployReport:
    """Resolve configuration and deploy *source_dir* in one call.

    Raises:
        ValueError: On invalid configuration.
    """
    settings, _ = load_deploy_settings(overrides)
    ctx = create_context(
        settings,
        signer,
        event_endpoints,
        blob_endpoints=blob_endpoints,
        on_progress=on_progress,
    )
    orchestrator = create_orchestrator(settings, ctx, source_dir, confirm)
    logger.info(
        "Deploying %s to %d server(s) and %d relay(s)",
        source_dir,
        len(ctx.blob_endpoints),
        len(ctx.event_endpoints),
    )
    return await orchestrator.run(source_dir, dry_run=dry_run)
