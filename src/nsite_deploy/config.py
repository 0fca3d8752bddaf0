"""Deploy settings.

Reads deploy settings from CLI overrides, environment variables, .env
files and YAML config fallbacks.

Precedence (highest to lowest):
    CLI overrides > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    NSITE_SERVERS: Comma-separated blob server URLs
    NSITE_RELAYS: Comma-separated relay URLs
    NSITE_SITE_ID: Named site identifier (empty = root site)
    NSITE_CONCURRENCY: Files uploaded in parallel (optional, default: 4)
    NSITE_REQUEST_TIMEOUT: Seconds per endpoint call (optional, default: 30)
    NSITE_PURGE: Delete remote files missing locally (optional, default: false)
    NSITE_ASSUME_YES: Skip purge confirmation (optional, default: false)
    NSITE_FORCE: Re-upload unchanged files (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field

from .validators import validate_endpoint_url

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4
DEFAULT_REQUEST_TIMEOUT = 30.0
MAX_CONCURRENCY = 64


@dataclass
class DeploySettings:
    servers: list[str] = field(default_factory=list)
    relays: list[str] = field(default_factory=list)
    site_id: str | None = None
    title: str | None = None
    description: str | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    purge: bool = False
    assume_yes: bool = False
    force: bool = False
    check_availability: bool = False
    fallback: str | None = None
    ignore_file: str | None = None


def validate_settings(settings: DeploySettings) -> None:
    """Validate settings and raise ValueError if invalid.

    Strips whitespace and trailing slashes from endpoint URLs in place.

    Raises:
        ValueError: On a malformed URL or out-of-range number.
    """
    settings.servers = [s.strip().removesuffix("/") for s in settings.servers]
    for server in settings.servers:
        ok, reason = validate_endpoint_url(server, ("http", "https"))
        if not ok:
            raise ValueError(f"Invalid server: {reason}")

    settings.relays = [r.strip().removesuffix("/") for r in settings.relays]
    for relay in settings.relays:
        ok, reason = validate_endpoint_url(relay, ("ws", "wss"))
        if not ok:
            raise ValueError(f"Invalid relay: {reason}")

    if not (1 <= settings.concurrency <= MAX_CONCURRENCY):
        raise ValueError(
            f"Invalid concurrency {settings.concurrency}: must be between 1 and {MAX_CONCURRENCY}"
        )

    if settings.request_timeout <= 0:
        raise ValueError(
            f"Invalid request timeout {settings.request_timeout}: must be positive"
        )

    if settings.site_id is not None:
        settings.site_id = settings.site_id.strip() or None

    if not settings.servers:
        logger.warning("No blob servers configured; uploads will fail")
    if not settings.relays:
        logger.warning("No relays configured; nothing will be advertised")


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, cast, low, high):
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_settings(
    overrides: dict | None = None,
    yaml_fallbacks: dict | None = None,
) -> DeploySettings:
    """Load settings with unified precedence.

    Resolution order for each field (highest to lowest):
        override > env var / .env > yaml_fallbacks > built-in default

    The caller loads .env (``load_dotenv()``) beforehand so its values
    are visible through ``os.getenv()``.

    Args:
        overrides: Values from the command line, keyed by field name.
            ``None`` values are ignored.
        yaml_fallbacks: Flat dict of values from the YAML config.

    Returns:
        Validated DeploySettings.

    Raises:
        ValueError: On malformed env values, URLs or out-of-range numbers.
    """
    cli = {k: v for k, v in (overrides or {}).items() if v is not None}
    fb = yaml_fallbacks or {}

    def pick_list(name: str, env_key: str) -> list[str]:
        if name in cli:
            return list(cli[name])
        env_val = os.getenv(env_key)
        if env_val is not None:
            return _split_list(env_val)
        return list(fb.get(name) or [])

    def pick_bool(name: str, env_key: str) -> bool:
        if cli.get(name):
            return True
        env_val = _get_bool_env(env_key)
        if env_val is not None:
            return env_val
        return bool(fb.get(name, False))

    site_id = cli.get("site_id")
    if site_id is None:
        site_id = os.getenv("NSITE_SITE_ID")
    if site_id is None:
        site_id = fb.get("site_id")

    concurrency = cli.get("concurrency")
    if concurrency is None:
        concurrency = _get_number_env(
            "NSITE_CONCURRENCY", int, 1, MAX_CONCURRENCY
        )
    if concurrency is None:
        concurrency = int(fb.get("concurrency", DEFAULT_CONCURRENCY))

    request_timeout = cli.get("request_timeout")
    if request_timeout is None:
        request_timeout = _get_number_env(
            "NSITE_REQUEST_TIMEOUT", float, 0.1, 3600
        )
    if request_timeout is None:
        request_timeout = float(
            fb.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)
        )

    settings = DeploySettings(
        servers=pick_list("servers", "NSITE_SERVERS"),
        relays=pick_list("relays", "NSITE_RELAYS"),
        site_id=site_id,
        title=cli.get("title", fb.get("title")),
        description=cli.get("description", fb.get("description")),
        concurrency=concurrency,
        request_timeout=request_timeout,
        purge=pick_bool("purge", "NSITE_PURGE"),
        assume_yes=pick_bool("assume_yes", "NSITE_ASSUME_YES"),
        force=pick_bool("force", "NSITE_FORCE"),
        check_availability=pick_bool("check_availability", "NSITE_CHECK_AVAILABILITY"),
        fallback=cli.get("fallback", fb.get("fallback")),
        ignore_file=cli.get("ignore_file", fb.get("ignore_file")),
    )

    validate_settings(settings)

    return settings
