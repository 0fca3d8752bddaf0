"""
Input validation for site paths, content hashes and endpoint URLs.

Validators return ``(is_valid, error_message)`` tuples so callers can
decide whether a bad value is fatal or just skipped.
"""

import re
from urllib.parse import urlparse

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def format_validation_error(field_name: str, reason: str) -> str:
    """Generate a consistent error message for validation failures."""
    return f"{field_name} {reason}"


def validate_site_path(path: str) -> tuple[bool, str]:
    """
    Validate a site-relative path.

    Args:
        path: The path to validate (leading slash optional)

    Returns:
        Tuple of (is_valid, error_message).

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot contain a '..' segment (path traversal protection)
        - Cannot have empty path segments after the leading slashes
    """
    if not path or not path.strip():
        return (False, format_validation_error("Path", "cannot be empty"))

    segments = path.lstrip("/").split("/")
    if ".." in segments:
        return (
            False,
            format_validation_error("Path", "cannot contain '..'"),
        )

    if any(segment == "" for segment in segments):
        return (
            False,
            format_validation_error(
                "Path", "cannot have empty path segments"
            ),
        )

    return (True, "")


def validate_content_hash(content_hash: str) -> tuple[bool, str]:
    """
    Validate a SHA-256 content hash.

    Accepts upper- or lower-case hex; callers lower-case before storing.
    """
    if not content_hash:
        return (
            False,
            format_validation_error("Content hash", "cannot be empty"),
        )

    if not _HEX_DIGEST.match(content_hash.lower()):
        return (
            False,
            format_validation_error(
                "Content hash", "must be 64 hexadecimal characters"
            ),
        )

    return (True, "")


def validate_endpoint_url(
    url: str, schemes: tuple[str, ...]
) -> tuple[bool, str]:
    """
    Validate an endpoint URL against a set of allowed schemes.

    Args:
        url: URL to check
        schemes: Allowed schemes, e.g. ``("http", "https")``
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in schemes:
        allowed = " or ".join(f"{s}://" for s in schemes)
        return (
            False,
            format_validation_error(
                f"URL '{url}'", f"must start with {allowed}"
            ),
        )

    if not parsed.hostname:
        return (
            False,
            format_validation_error(f"URL '{url}'", "must include a hostname"),
        )

    return (True, "")
