"""Pydantic models for the deploy pipeline.

Defines the data contracts shared by every sync module:

- ``FileRecord``: one logical site file, local or remote.
- ``EndpointStatus`` / ``FailureKind``: per-endpoint attempt outcome.
- ``EndpointOutcome`` / ``UploadResult``: replication result for one file.
- ``UploadProgress``: live aggregate handed to progress observers.
- ``EventTemplate`` / ``SignedEvent``: opaque event envelopes.
- ``BlobPutResult`` / ``PublishAck`` / ``PublishResult``: endpoint replies.
- ``Comparison``, ``Manifest``, ``PurgeResult``, ``PropagationStats``.
- ``SyncPhase`` / ``DeployReport``: orchestrator state and final report.

All models are frozen.  A record's ``payload`` is the only transient
part: it is excluded from serialisation and swapped by building a new
record, never by mutation.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

DEFAULT_MEDIA_TYPE = "application/octet-stream"


class FileRecord(BaseModel):
    """One logical site file.

    Attributes:
        path: Site path, always with exactly one leading ``/``.  Case is
            preserved; comparisons are case-insensitive.
        size: Byte length, authoritative once loaded.
        media_type: MIME type inferred from the extension.
        content_hash: Lowercase SHA-256 hex digest, when known.
        payload: Raw bytes while the file is being prepared for upload.
        remote_event_id: Id of the event advertising this file remotely.
        created_at: Timestamp of that event (remote records only).
        found_on_event_endpoints: Event endpoints where the advertisement
            was observed.
        available_on_blob_endpoints: Blob endpoints where the content was
            observed.
    """

    path: str
    size: int = 0
    media_type: str = DEFAULT_MEDIA_TYPE
    content_hash: str | None = None
    payload: bytes | None = Field(default=None, exclude=True, repr=False)
    remote_event_id: str | None = None
    created_at: int | None = None
    found_on_event_endpoints: frozenset[str] = frozenset()
    available_on_blob_endpoints: frozenset[str] = frozenset()

    model_config = {"frozen": True}

    @field_validator("path")
    @classmethod
    def _single_leading_slash(cls, value: str) -> str:
        return "/" + value.lstrip("/")

    @field_validator("content_hash")
    @classmethod
    def _lowercase_hash(cls, value: str | None) -> str | None:
        return value.lower() if value else value

    def with_payload(self, payload: bytes) -> FileRecord:
        """Return a copy carrying *payload*."""
        return self.model_copy(update={"payload": payload})

    def without_payload(self) -> FileRecord:
        """Return a copy with the payload released."""
        if self.payload is None:
            return self
        return self.model_copy(update={"payload": None})


class EndpointStatus(str, Enum):
    """Lifecycle of one (file, endpoint) attempt."""

    PENDING = "pending"
    IN_FLIGHT = "in-flight"
    SUCCESS = "success"
    FAILED = "failed"
    ALREADY_PRESENT = "already-present"


class FailureKind(str, Enum):
    """Why an endpoint attempt failed."""

    NETWORK = "network"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


class EndpointOutcome(BaseModel):
    endpoint_id: str
    status: EndpointStatus = EndpointStatus.PENDING
    failure: FailureKind | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.status in (
            EndpointStatus.SUCCESS,
            EndpointStatus.ALREADY_PRESENT,
        )


class UploadResult(BaseModel):
    """Replication result for one file across all blob endpoints.

    Attributes:
        file: The record that was uploaded (payload released).
        per_endpoint: One outcome per configured blob endpoint.
        event_id: Id of the signed file advertisement, if one was built.
        event_published: Whether any event endpoint accepted it.
        cancelled: True when the run was cancelled before this file started.
        error: File-level error (read or signing failure).
    """

    file: FileRecord
    per_endpoint: list[EndpointOutcome] = []
    event_id: str | None = None
    event_published: bool = False
    cancelled: bool = False
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def overall_success(self) -> bool:
        """True iff at least one endpoint stored or already had the content."""
        return any(o.succeeded for o in self.per_endpoint)

    @property
    def converged(self) -> bool:
        """Content stored somewhere and advertised somewhere."""
        return self.overall_success and self.event_published

    @property
    def failures(self) -> list[EndpointOutcome]:
        return [
            o for o in self.per_endpoint if o.status == EndpointStatus.FAILED
        ]


class UploadProgress(BaseModel):
    """Snapshot passed to ``on_progress`` observers."""

    total: int
    completed: int = 0
    failed: int = 0
    in_progress: int = 0
    skipped: int = 0
    endpoint_attempts: int = 0
    endpoint_attempts_done: int = 0

    model_config = {"frozen": True}


class EventTemplate(BaseModel):
    """Unsigned event: kind, timestamp, tags and content."""

    kind: int
    created_at: int
    tags: list[list[str]] = []
    content: str = ""

    model_config = {"frozen": True}

    def tag_value(self, name: str) -> str | None:
        """Return the first value of the first tag called *name*."""
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] == name:
                return tag[1]
        return None

    def tag_values(self, name: str) -> list[str]:
        return [t[1] for t in self.tags if len(t) >= 2 and t[0] == name]


class SignedEvent(EventTemplate):
    """Event as returned by a ``Signer``; opaque to the pipeline."""

    id: str
    pubkey: str
    sig: str = ""


class BlobPutResult(BaseModel):
    """Reply from ``BlobEndpoint.put``."""

    success: bool
    already_exists: bool = False
    error: str | None = None
    failure: FailureKind | None = None

    model_config = {"frozen": True}


class PublishAck(BaseModel):
    """Reply from ``EventEndpoint.publish``.

    ``accepted_event_ids`` lets an endpoint report partial acceptance; when
    present, the batch only counts as accepted if every id is listed.
    """

    accepted: bool
    error: str | None = None
    accepted_event_ids: frozenset[str] | None = None
    endpoint_id: str = ""

    model_config = {"frozen": True}


class PublishResult(BaseModel):
    accepted: bool
    acks: list[PublishAck] = []

    model_config = {"frozen": True}

    def __bool__(self) -> bool:
        return self.accepted


class Comparison(BaseModel):
    """Three disjoint sets produced by the comparator."""

    to_upload: list[FileRecord] = []
    unchanged: list[FileRecord] = []
    to_delete: list[FileRecord] = []

    model_config = {"frozen": True}


class ManifestMetadata(BaseModel):
    """Display and discovery hints embedded in a manifest."""

    title: str | None = None
    description: str | None = None
    servers: list[str] = []
    relays: list[str] = []

    model_config = {"frozen": True}


class Manifest(BaseModel):
    """Content-addressed description of a whole site.

    Attributes:
        site_id: ``None`` or ``""`` for the root site, else a named site.
        paths: Ordered ``path -> content_hash`` mapping.
        title, description: Informational only.
        servers, relays: Discovery hints (root site only).
    """

    site_id: str | None = None
    paths: dict[str, str]
    title: str | None = None
    description: str | None = None
    servers: list[str] = []
    relays: list[str] = []

    model_config = {"frozen": True}

    @property
    def is_root_site(self) -> bool:
        return not self.site_id


class PurgeResult(BaseModel):
    """Outcome of a purge.

    Attributes:
        orphans: Remote records with no local counterpart.
        confirmed: Whether deletion was confirmed.
        published: Whether any event endpoint accepted the delete event.
        success: Zero orphans, or confirmed and published.
        event_id: Id of the delete event.
        skipped: Orphans without a remote event id to reference.
        still_present: Event ids still served after verification.
    """

    orphans: list[FileRecord] = []
    confirmed: bool = False
    published: bool = False
    success: bool = False
    event_id: str | None = None
    skipped: list[FileRecord] = []
    still_present: list[str] = []

    model_config = {"frozen": True}

    @property
    def deleted(self) -> list[FileRecord]:
        if not self.published:
            return []
        return [o for o in self.orphans if o.remote_event_id]


class PropagationStrength(str, Enum):
    BROKEN = "broken"
    FRAGILE = "fragile"
    WEAK = "weak"
    AVERAGE = "average"
    STRONG = "strong"
    NOMINAL = "nominal"


class PropagationStats(BaseModel):
    """How well remote files are spread across endpoints.

    Coverage values are percentages: the average number of endpoints a
    file was observed on, divided by the endpoint count.  Server fields
    stay empty when blob availability was not checked.
    """

    total_files: int
    relay_strength: PropagationStrength
    server_strength: PropagationStrength | None = None
    total_relays: int = 0
    total_servers: int = 0
    files_on_all_relays: int = 0
    files_on_all_servers: int = 0
    relay_coverage: float = 0.0
    server_coverage: float = 0.0
    files_per_relay: dict[str, int] = {}
    files_per_server: dict[str, int] = {}

    model_config = {"frozen": True}


class SyncPhase(str, Enum):
    """Orchestrator state machine."""

    IDLE = "idle"
    SCANNING_LOCAL = "scanning-local"
    FETCHING_REMOTE = "fetching-remote"
    COMPARING = "comparing"
    UPLOADING = "uploading"
    PUBLISHING_MANIFEST = "publishing-manifest"
    PURGING = "purging"
    DONE = "done"
    FAILED = "failed"


class DeployReport(BaseModel):
    """Aggregate report for one deploy run.

    Attributes:
        site_id: Named site, or ``None`` for the root site.
        phase: Terminal phase (``done`` or ``failed``).
        dry_run: Whether uploads were skipped on purpose.
        cancelled: Whether cancellation stopped the run early.
        started_at: ISO 8601 start time.
        completed_at: ISO 8601 end time.
        to_upload: Files selected for upload.
        results: Per-file upload results.
        unchanged: Local files already matching remote.
        to_delete: Remote files with no local counterpart.
        purge: Purge outcome when purge ran.
        manifest: Manifest that was built, if any.
        manifest_event_id: Id of the signed manifest event.
        manifest_published: Whether any event endpoint accepted it.
        local_errors: Per-file local read failures.
        errors: Stage-level failures.
        propagation: Spread of remote files across endpoints.
    """

    site_id: str | None = None
    phase: SyncPhase = SyncPhase.IDLE
    dry_run: bool = False
    cancelled: bool = False
    started_at: str
    completed_at: str | None = None
    to_upload: list[FileRecord] = []
    results: list[UploadResult] = []
    unchanged: list[FileRecord] = []
    to_delete: list[FileRecord] = []
    purge: PurgeResult | None = None
    manifest: Manifest | None = None
    manifest_event_id: str | None = None
    manifest_published: bool = False
    local_errors: list[str] = []
    errors: list[str] = []
    propagation: PropagationStats | None = None

    model_config = {"frozen": True}

    @property
    def uploaded(self) -> list[UploadResult]:
        return [r for r in self.results if r.overall_success]

    @property
    def failed(self) -> list[UploadResult]:
        return [
            r
            for r in self.results
            if not r.overall_success and not r.cancelled
        ]

    @property
    def skipped(self) -> list[UploadResult]:
        """Files never started because the run was cancelled."""
        return [r for r in self.results if r.cancelled]

    @property
    def deleted(self) -> list[FileRecord]:
        return self.purge.deleted if self.purge else []

    def summary(self) -> dict:
        """Counts for display: uploaded, unchanged, deleted, failed."""
        summary: dict = {
            "uploaded": len(self.uploaded),
            "unchanged": len(self.unchanged),
            "deleted": len(self.deleted),
            "failed": len(self.failed),
        }
        if self.manifest_event_id:
            summary["manifest_event_id"] = self.manifest_event_id
        return summary
