"""Deployment synchronisation and replication.

Publishes a local directory to a set of content-addressed blob endpoints
and a set of signed-event relays, converging remote state on local state.

Architecture
------------
Remote state is never cached: each run rebuilds it from the file
advertisements the relays serve for the signer's key, diffs it against a
fresh local scan, replicates changed content to *every* blob endpoint
under a bounded worker pool, advertises each stored file, and publishes
one manifest for the whole site.  Re-running is the retry mechanism:
unchanged files are skipped next time.

Modules:

- ``orchestrator`` -- ``SyncOrchestrator``: phases of a full run.
- ``context``      -- ``SyncContext``: collaborators and limits per run.
- ``scanner``      -- ``LocalDirectory``: local listing, hashing, fallback.
- ``ignore``       -- ``IgnoreRules``: ``.nsiteignore`` handling.
- ``hasher``       -- ``ContentHasher``: SHA-256 and media types.
- ``remote``       -- remote file discovery and blob availability probes.
- ``comparator``   -- ``compare``: upload / unchanged / delete split.
- ``dispatcher``   -- ``DestinationDispatcher``: the upload pool.
- ``publisher``    -- ``EventPublisher``: event broadcast.
- ``manifest``     -- ``ManifestBuilder``: site manifest.
- ``purge``        -- ``PurgeReconciler``: orphan deletion.
- ``propagation``  -- propagation strength classification.
- ``events``       -- event kinds and template builders.
- ``models``       -- data contracts.
- ``reporter``     -- text and JSON report formatting.

Usage example
-------------
::

    from nsite_deploy.endpoints import HttpBlobEndpoint
    from nsite_deploy.sync import SyncContext, SyncOrchestrator
    from nsite_deploy.sync import format_deploy_report

    ctx = SyncContext(
        signer=signer,                       # any Signer
        blob_endpoints=[HttpBlobEndpoint(url, signer) for url in servers],
        event_endpoints=relays,              # any EventEndpoint objects
        concurrency=4,
    )
    orchestrator = SyncOrchestrator(ctx, purge=True, assume_yes=True)

    preview = await orchestrator.run("dist", dry_run=True)
    report = await orchestrator.run("dist")
    print(format_deploy_report(report))
"""

from .comparator import compare, normalize_path
from .context import CancelToken, SyncContext
from .dispatcher import DestinationDispatcher
from .hasher import ContentHasher
from .ignore import IgnoreRules
from .manifest import ManifestBuilder, parse_manifest
from .models import (
    Comparison,
    DeployReport,
    EndpointOutcome,
    EndpointStatus,
    FailureKind,
    FileRecord,
    Manifest,
    ManifestMetadata,
    PurgeResult,
    SyncPhase,
    UploadProgress,
    UploadResult,
)
from .orchestrator import SyncOrchestrator
from .publisher import EventPublisher
from .purge import PurgeReconciler
from .reporter import (
    format_deploy_report,
    format_dry_run_preview,
    format_endpoint_matrix,
    report_to_json,
)
from .scanner import LocalDirectory

__all__ = [
    "CancelToken",
    "Comparison",
    "ContentHasher",
    "DeployReport",
    "DestinationDispatcher",
    "EndpointOutcome",
    "EndpointStatus",
    "EventPublisher",
    "FailureKind",
    "FileRecord",
    "IgnoreRules",
    "LocalDirectory",
    "Manifest",
    "ManifestBuilder",
    "ManifestMetadata",
    "PurgeReconciler",
    "PurgeResult",
    "SyncContext",
    "SyncOrchestrator",
    "SyncPhase",
    "UploadProgress",
    "UploadResult",
    "compare",
    "format_deploy_report",
    "format_dry_run_preview",
    "format_endpoint_matrix",
    "normalize_path",
    "parse_manifest",
    "report_to_json",
]
