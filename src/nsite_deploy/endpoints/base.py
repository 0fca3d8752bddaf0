"""Interfaces the deploy pipeline consumes.

Signing, the relay wire protocol and the blob HTTP API are not part of
the pipeline; callers inject objects satisfying these protocols.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, Protocol, runtime_checkable

if TYPE_CHECKING:
    from nsite_deploy.sync.models import (
        BlobPutResult,
        EventTemplate,
        PublishAck,
        SignedEvent,
    )


@runtime_checkable
class Signer(Protocol):
    """Produces the public key and signatures for published events.

    Implementations must tolerate concurrent calls from several upload
    workers; wrap in ``SerializedSigner`` otherwise.
    """

    async def get_public_key(self) -> str: ...

    async def sign_event(self, template: EventTemplate) -> SignedEvent: ...


@runtime_checkable
class BlobEndpoint(Protocol):
    """Content-addressed blob store."""

    endpoint_id: str

    async def put(self, content_hash: str, data: bytes) -> BlobPutResult: ...

    async def exists(self, content_hash: str) -> bool: ...


@runtime_checkable
class EventEndpoint(Protocol):
    """Append-only signed event relay."""

    endpoint_id: str

    async def publish(self, events: list[SignedEvent]) -> PublishAck: ...

    async def query(self, filter: dict) -> list[SignedEvent]: ...


@runtime_checkable
class LocalReader(Protocol):
    """Lists site paths and reads their bytes."""

    def iter_paths(self) -> Iterator[str]: ...

    def read(self, path: str) -> bytes: ...
