"""Glob-style ignore rules with negation, as read from ``.nsiteignore``.

Rules follow the familiar ignore-file shape:

- blank lines and ``#`` comments are skipped;
- ``!pattern`` re-includes what an earlier rule excluded;
- a trailing ``/`` limits the rule to directories;
- a pattern with a leading or inner ``/`` is matched against the path
  from the site root, otherwise against each path component.

The last matching rule decides.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".nsiteignore"
DEFAULT_IGNORE_PATTERNS = (
    "node_modules/",
    "__pycache__/",
    "*.swp",
    "*~",
    "Thumbs.db",
)


@dataclass(frozen=True)
class IgnoreRule:
    pattern: str
    negate: bool = False
    directory_only: bool = False
    anchored: bool = False

    @classmethod
    def parse(cls, line: str) -> IgnoreRule | None:
        line = line.strip()
        if not line or line.startswith("#"):
            return None
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        directory_only = line.endswith("/")
        anchored = line.startswith("/") or "/" in line.rstrip("/")
        line = line.strip("/")
        if not line:
            return None
        return cls(
            pattern=line,
            negate=negate,
            directory_only=directory_only,
            anchored=anchored,
        )

    def matches(self, rel_path: str, is_dir: bool = False) -> bool:
        parts = rel_path.strip("/").split("/")
        if self.anchored:
            candidates = ["/".join(parts[: i + 1]) for i in range(len(parts))]
        else:
            candidates = list(parts)
        if self.directory_only and not is_dir:
            # only parent directories can match
            candidates = candidates[:-1]
        return any(fnmatch.fnmatchcase(c, self.pattern) for c in candidates)


class IgnoreRules:
    """Ordered rule set.

    Args:
        patterns: Rule lines, applied in order.
    """

    def __init__(self, patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS):
        self.rules = [
            rule
            for rule in (IgnoreRule.parse(p) for p in patterns)
            if rule is not None
        ]

    def __len__(self) -> int:
        return len(self.rules)

    @classmethod
    def from_file(
        cls, path: Path, include_defaults: bool = True
    ) -> IgnoreRules:
        """Load rules from *path*; defaults come first so the file can
        override them.  A missing file yields just the defaults."""
        patterns = list(DEFAULT_IGNORE_PATTERNS) if include_defaults else []
        if path.exists():
            patterns.extend(path.read_text(encoding="utf-8").splitlines())
            logger.debug("Loaded ignore rules from %s", path)
        return cls(patterns)

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        ignored = False
        for rule in self.rules:
            if rule.matches(rel_path, is_dir):
                ignored = not rule.negate
        return ignored
