"""
Hierarchical YAML config loading for nsite_deploy.

Finds config files by convention, supports ``!include`` and
``${VAR}`` / ``${VAR:-default}`` interpolation, and merges files with
"project wins" semantics.

Usage:
    from nsite_deploy.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "NSITE_CONFIG"
PROJECT_DIR = ".nsite"

# ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset or empty VAR expands to *default*, or to ``""`` without one.
    An unterminated ``${`` is left as is.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: _interpolate(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with ``!include``.

    A subclass keeps the global ``yaml.SafeLoader`` untouched.  Each load
    carries the chain of files being read to catch include cycles.
    """

    include_chain: tuple[Path, ...] = ()


def _include(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """``!include other.yml``, resolved relative to the including file."""
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    if target in loader.include_chain:
        chain = " -> ".join(str(p) for p in (*loader.include_chain, target))
        raise ValueError(f"Circular include detected: {chain}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return load_yaml_file(target, _chain=loader.include_chain)


ConfigLoader.add_constructor("!include", _include)


def load_yaml_file(path: Path, *, _chain: tuple[Path, ...] = ()) -> Any:
    """Parse one YAML file with ``!include`` support."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = (*_chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first.

    Search order:
        1. ``NSITE_CONFIG`` env var (explicit single path)
        2. ``.nsite/config.yml`` in CWD
        3. ``.nsite/config.yaml`` in CWD
        4. ``~/.config/nsite/config.yml`` (user-wide)
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_DIR / "config.yml")
    candidates.append(cwd / PROJECT_DIR / "config.yaml")
    candidates.append(Path.home() / ".config" / "nsite" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# nsite-deploy configuration
#
# Values can also come from environment variables:
#   NSITE_SERVERS, NSITE_RELAYS, NSITE_SITE_ID, NSITE_CONCURRENCY,
#   NSITE_REQUEST_TIMEOUT, NSITE_PURGE, NSITE_ASSUME_YES, NSITE_FORCE
#
# deploy:
#   servers:
#     - https://blossom.example.com
#   relays:
#     - wss://relay.example.com
#   concurrency: 4
#   request_timeout: 30
#   purge: false
#   fallback: /index.html
#
# site:
#   id: null          # set for a named site
#   title: My site
#   description: null
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to create the starter; defaults to
            ``CWD / .nsite / config.yml``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / PROJECT_DIR / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence; a higher file's
    top-level keys replace a lower file's (no deep merge).  Env vars are
    interpolated after merging.  No files means ``{}``.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has a %s at the top level, expected a mapping; skipping",
                path,
                type(data).__name__,
            )

    return _interpolate(merged)
