"""Per-run context handed to every pipeline component.

Everything a component needs (signer, endpoints, limits, observers) is
carried here explicitly; there is no module-level state.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Sequence

from nsite_deploy.endpoints.base import (
    BlobEndpoint,
    EventEndpoint,
    LocalReader,
    Signer,
)

from .models import UploadProgress

DEFAULT_CONCURRENCY = 4
DEFAULT_REQUEST_TIMEOUT = 30.0


class CancelToken:
    """Cooperative cancellation flag.

    Safe to set from another thread or a signal handler.  Work already
    in flight is never interrupted; components check the flag before
    starting something new.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class SyncContext:
    """Immutable collaborators and limits for one deploy run.

    Attributes:
        signer: Signs advertisements, manifests, deletes and upload auth.
        blob_endpoints: Every blob store that receives each file.
        event_endpoints: Every relay that receives each event.
        concurrency: Maximum files in flight during upload.
        request_timeout: Seconds allowed per endpoint call (None = no limit).
        site_id: Named site, or None for the root site.
        reader: Loads file bytes that are not already in memory.
        on_progress: Called synchronously with each ``UploadProgress``.
        cancel: Cooperative cancellation flag.
    """

    signer: Signer
    blob_endpoints: Sequence[BlobEndpoint] = ()
    event_endpoints: Sequence[EventEndpoint] = ()
    concurrency: int = DEFAULT_CONCURRENCY
    request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT
    site_id: str | None = None
    reader: LocalReader | None = None
    on_progress: Callable[[UploadProgress], None] | None = None
    cancel: CancelToken = field(default_factory=CancelToken)

    def __post_init__(self) -> None:
        # Endpoint lists must not change during a run
        object.__setattr__(self, "blob_endpoints", tuple(self.blob_endpoints))
        object.__setattr__(self, "event_endpoints", tuple(self.event_endpoints))
        if self.concurrency < 1:
            raise ValueError(
                f"concurrency must be >= 1, got {self.concurrency}"
            )
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )
