"""Local directory reader.

Lists the files of a site directory as site paths (``/dir/file.ext``),
skipping hidden entries and anything the ignore rules exclude.  Deeper
paths come first, then alphabetical order.  Paths that differ only in
case are listed once.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from nsite_deploy.errors import LocalReadFailure

from .comparator import normalize_path
from .hasher import ContentHasher
from .ignore import IGNORE_FILE_NAME, IgnoreRules
from .models import FileRecord

logger = logging.getLogger(__name__)

FALLBACK_PATH = "/404.html"


@dataclass
class ScanResult:
    """Hashed records plus what was skipped along the way."""

    records: list[FileRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)


def _site_path_key(path: str) -> tuple[int, str]:
    return (-path.count("/"), path)


class LocalDirectory:
    """Read a site from a directory on disk.

    Args:
        root: Site root directory.
        ignore: Ignore rules; defaults to ``.nsiteignore`` in *root* (plus
            built-in defaults).
        fallback: Site path of a page to also serve as ``/404.html``.
    """

    def __init__(
        self,
        root: str | Path,
        ignore: IgnoreRules | None = None,
        fallback: str | None = None,
    ) -> None:
        self.root = Path(root)
        self.ignore = (
            ignore
            if ignore is not None
            else IgnoreRules.from_file(self.root / IGNORE_FILE_NAME)
        )
        self.fallback = "/" + fallback.lstrip("/") if fallback else None
        self._ignored: list[str] = []
        self._walk_errors: list[str] = []
        self._duplicates: list[str] = []
        self._fallback_active = False

    def _check_root(self) -> None:
        if not self.root.is_dir():
            raise LocalReadFailure(str(self.root), "not a directory")
        try:
            with os.scandir(self.root):
                pass
        except OSError as exc:
            raise LocalReadFailure(str(self.root), exc.strerror or str(exc)) from exc

    def _walk(self) -> list[str]:
        self._ignored = []
        self._walk_errors = []

        def _on_error(exc: OSError) -> None:
            self._walk_errors.append(f"{exc.filename}: {exc.strerror}")

        paths: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root, onerror=_on_error):
            rel_dir = Path(dirpath).relative_to(self.root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir

            kept_dirs = []
            for name in sorted(dirnames):
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if name.startswith("."):
                    continue
                if self.ignore.is_ignored(rel, is_dir=True):
                    self._ignored.append(rel + "/")
                    continue
                kept_dirs.append(name)
            dirnames[:] = kept_dirs

            for name in filenames:
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if name.startswith("."):
                    continue
                if self.ignore.is_ignored(rel):
                    self._ignored.append(rel)
                    continue
                paths.append("/" + rel)
        return paths

    def _collapse_duplicates(self, paths: list[str]) -> list[str]:
        """Keep one spelling per case-insensitive path.

        *paths* must already be sorted, so the first spelling seen is the
        lexicographically smallest.
        """
        kept: dict[str, str] = {}
        for path in paths:
            key = normalize_path(path)
            if key in kept:
                logger.warning(
                    "Skipping %s: same site path as %s", path, kept[key]
                )
                self._duplicates.append(path)
                continue
            kept[key] = path
        return list(kept.values())

    def iter_paths(self) -> Iterator[str]:
        """Yield site paths, deeper paths first.

        Paths that differ only in case are collapsed to the first in
        sort order.

        Raises:
            LocalReadFailure: If the root directory cannot be read.
        """
        self._check_root()
        self._duplicates = []
        self._fallback_active = False
        paths = self._collapse_duplicates(
            sorted(self._walk(), key=_site_path_key)
        )
        if self.fallback:
            taken = {normalize_path(p) for p in paths}
            if normalize_path(FALLBACK_PATH) in taken:
                logger.info(
                    "%s exists; not replacing it with fallback %s",
                    FALLBACK_PATH,
                    self.fallback,
                )
            elif self.fallback in paths:
                paths.append(FALLBACK_PATH)
                self._fallback_active = True
            else:
                logger.warning("Fallback page %s not found", self.fallback)
        yield from sorted(paths, key=_site_path_key)

    def _disk_path(self, path: str) -> Path:
        path = "/" + path.lstrip("/")
        if path == FALLBACK_PATH and self._fallback_active:
            path = self.fallback
        return self.root / path.lstrip("/")

    def read(self, path: str) -> bytes:
        """Read the bytes behind a site path.

        Raises:
            LocalReadFailure: If the file cannot be read.
        """
        disk_path = self._disk_path(path)
        try:
            return disk_path.read_bytes()
        except OSError as exc:
            raise LocalReadFailure(path, exc.strerror or str(exc)) from exc

    def scan(self) -> ScanResult:
        """Hash every listed file without keeping its bytes.

        A file that cannot be read is recorded in ``errors`` and left out.

        Raises:
            LocalReadFailure: If the root directory cannot be read.
        """
        result = ScanResult()
        for path in self.iter_paths():
            disk_path = self._disk_path(path)
            try:
                content_hash = ContentHasher.hash_file(disk_path)
                size = disk_path.stat().st_size
            except LocalReadFailure as exc:
                logger.warning("Skipping unreadable file %s: %s", path, exc.reason)
                result.errors.append(f"{path}: {exc.reason}")
                continue
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", path, exc)
                result.errors.append(f"{path}: {exc}")
                continue
            result.records.append(
                FileRecord(
                    path=path,
                    size=size,
                    media_type=ContentHasher.media_type_for(path),
                    content_hash=content_hash,
                )
            )

        result.errors.extend(self._walk_errors)
        result.ignored = list(self._ignored)
        result.duplicates = list(self._duplicates)
        logger.info(
            "Scanned %s: %d file(s), %d ignored, %d unreadable",
            self.root,
            len(result.records),
            len(result.ignored),
            len(result.errors),
        )
        return result
