"""Configuration file schema for nsite_deploy.

Pydantic models for the YAML config, with sections for deploy targets,
site identity and logging, plus the adapter that turns a parsed config
into fallbacks for ``load_settings``.

Usage:
    from nsite_deploy.config_schema import build_config, to_yaml_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    settings = load_settings(yaml_fallbacks=to_yaml_fallbacks(unified))
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DeployConfig(BaseModel):
    """Where and how to deploy.

    All fields are optional; env vars and CLI overrides can supply them.
    """

    servers: list[str] = Field(
        default_factory=list, description="Blob server URLs"
    )
    relays: list[str] = Field(default_factory=list, description="Relay URLs")
    concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Files uploaded in parallel (1-64)",
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Seconds allowed per endpoint call"
    )
    purge: bool = Field(
        default=False, description="Delete remote files missing locally"
    )
    assume_yes: bool = Field(
        default=False, description="Purge without asking for confirmation"
    )
    force: bool = Field(default=False, description="Re-upload unchanged files")
    check_availability: bool = Field(
        default=False, description="Probe servers for remote content"
    )
    fallback: str | None = Field(
        default=None, description="Page also published as /404.html"
    )
    ignore_file: str | None = Field(
        default=None, description="Ignore file path (default: .nsiteignore)"
    )

    model_config = {"frozen": True}

    @field_validator("servers", "relays", mode="before")
    @classmethod
    def _accept_single_url(cls, value):
        if isinstance(value, str):
            return [value]
        return value


class SiteConfig(BaseModel):
    """Site identity and display metadata.

    Attributes:
        id: Named site identifier; empty or absent for the root site.
        title: Display title (informational only).
        description: Display description (informational only).
    """

    id: str | None = Field(default=None, description="Named site id")
    title: str | None = Field(default=None, description="Site title")
    description: str | None = Field(
        default=None, description="Site description"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: "text" or "json".
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    deploy: DeployConfig = Field(default_factory=DeployConfig)
    site: SiteConfig = Field(default_factory=SiteConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the dict returned by
    ``load_hierarchical_config()``.  Missing sections get defaults.

    Raises:
        pydantic.ValidationError: On invalid values.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_yaml_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten a ``UnifiedConfig`` into the fallback dict ``load_settings``
    expects.  Only values set in the config files are included, so
    built-in defaults stay the lowest precedence."""
    fallbacks = unified.deploy.model_dump(exclude_unset=True)
    site = unified.site
    if site.id:
        fallbacks["site_id"] = site.id
    if site.title:
        fallbacks["title"] = site.title
    if site.description:
        fallbacks["description"] = site.description
    return fallbacks
