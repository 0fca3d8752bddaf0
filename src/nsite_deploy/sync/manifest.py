"""Site manifest construction.

A manifest maps every site path to its content hash.  It is built once
uploads are known and published as a single signed event: a replaceable
event for the root site, an addressable one (``d`` tag) for named sites.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .events import (
    NAMED_MANIFEST_KIND,
    ROOT_MANIFEST_KIND,
    client_tag,
    now,
)
from .models import (
    EventTemplate,
    FileRecord,
    Manifest,
    ManifestMetadata,
    SignedEvent,
    UploadResult,
)

logger = logging.getLogger(__name__)


class ManifestBuilder:
    """Assemble and encode site manifests."""

    def build(
        self,
        successful_uploads: Iterable[UploadResult],
        site_id: str | None = None,
        metadata: ManifestMetadata | None = None,
        unchanged: Iterable[FileRecord] = (),
    ) -> Manifest | None:
        """Build the manifest for a site, or ``None`` if it would be empty.

        Uploads that did not succeed anywhere are ignored, as are records
        without a known hash.  Unchanged local files are included so the
        manifest describes the whole site, not only this run's changes.
        An empty manifest would advertise an empty site, so ``None`` is
        returned instead; that is a no-op, not an error.

        Server and relay hints are root-site metadata and are dropped for
        named sites.
        """
        records = [r.file for r in successful_uploads if r.overall_success]
        records.extend(unchanged)

        paths: dict[str, str] = {}
        for record in sorted(records, key=lambda r: r.path):
            if record.content_hash is None:
                continue
            paths.setdefault(record.path, record.content_hash)

        if not paths:
            logger.info("No hashed files; skipping manifest")
            return None

        metadata = metadata or ManifestMetadata()
        is_root = not site_id
        if not is_root and (metadata.servers or metadata.relays):
            logger.debug(
                "Named site %s: not embedding server/relay hints", site_id
            )

        return Manifest(
            site_id=site_id or None,
            paths=paths,
            title=metadata.title,
            description=metadata.description,
            servers=list(metadata.servers) if is_root else [],
            relays=list(metadata.relays) if is_root else [],
        )

    @staticmethod
    def to_template(
        manifest: Manifest, created_at: int | None = None
    ) -> EventTemplate:
        """Encode *manifest* as an unsigned event."""
        tags: list[list[str]] = []
        if manifest.is_root_site:
            kind = ROOT_MANIFEST_KIND
        else:
            kind = NAMED_MANIFEST_KIND
            tags.append(["d", manifest.site_id])

        for path, content_hash in manifest.paths.items():
            tags.append(["path", path, content_hash])
        for server in manifest.servers:
            tags.append(["server", server])
        for relay in manifest.relays:
            tags.append(["relay", relay])
        if manifest.title:
            tags.append(["title", manifest.title])
        if manifest.description:
            tags.append(["description", manifest.description])
        tags.append(client_tag())

        return EventTemplate(
            kind=kind,
            created_at=created_at if created_at is not None else now(),
            tags=tags,
        )


def parse_manifest(event: SignedEvent) -> Manifest:
    """Decode a manifest event back into a ``Manifest``.

    Raises:
        ValueError: If *event* is not a manifest event.
    """
    if event.kind not in (ROOT_MANIFEST_KIND, NAMED_MANIFEST_KIND):
        raise ValueError(f"Event kind {event.kind} is not a manifest")

    paths = {
        tag[1]: tag[2].lower()
        for tag in event.tags
        if len(tag) >= 3 and tag[0] == "path"
    }
    return Manifest(
        site_id=event.tag_value("d") if event.kind == NAMED_MANIFEST_KIND else None,
        paths=paths,
        title=event.tag_value("title"),
        description=event.tag_value("description"),
        servers=event.tag_values("server"),
        relays=event.tag_values("relay"),
    )
