"""Content hashing and file metadata."""

from __future__ import annotations

import hashlib
import mimetypes
from pathlib import Path

from nsite_deploy.errors import LocalReadFailure
from nsite_deploy.sync.models import DEFAULT_MEDIA_TYPE, FileRecord

_CHUNK_SIZE = 1024 * 1024


class ContentHasher:
    """SHA-256 content identifiers for site files."""

    @staticmethod
    def hash(data: bytes) -> str:
        """Return the lowercase hex SHA-256 digest of *data*."""
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def hash_file(path: Path) -> str:
        """Hash a file on disk in chunks.

        Raises:
            LocalReadFailure: If the file cannot be read.
        """
        digest = hashlib.sha256()
        try:
            with open(path, "rb") as fh:
                for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                    digest.update(chunk)
        except OSError as exc:
            raise LocalReadFailure(str(path), str(exc)) from exc
        return digest.hexdigest()

    @staticmethod
    def media_type_for(path: str) -> str:
        media_type, _ = mimetypes.guess_type(path, strict=False)
        return media_type or DEFAULT_MEDIA_TYPE

    @classmethod
    def load_record(cls, path: str, data: bytes) -> FileRecord:
        """Build a hashed record for *path* without retaining *data*."""
        return FileRecord(
            path=path,
            size=len(data),
            media_type=cls.media_type_for(path),
            content_hash=cls.hash(data),
        )
