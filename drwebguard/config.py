"""Application configuration via Pydantic Settings.

All configuration is driven by environment variables.  The variable names
follow the Malice plugin conventions (``MALICE_TIMEOUT``,
``MALICE_ENDPOINT``, ...) so the service drops into an existing Malice
deployment unchanged.

Usage::

    from drwebguard.config import get_settings

    settings = get_settings()
    print(settings.DRWEB_CTL)

The ``get_settings`` function is cached with ``functools.lru_cache``. To override
settings in tests, set the relevant environment variables and call
``get_settings.cache_clear()`` before the next ``get_settings()`` call.
"""
from __future__ import annotations

import functools

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SCAN_OUTPUT_DIALECTS = ("default", "legacy")


class Settings(BaseSettings):
    """drwebguard settings.

    Environment variables are read case-insensitively. A ``.env`` file in the
    working directory is loaded automatically when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Engine binaries
    DRWEB_CTL: str = Field(
        default="/opt/drweb.com/bin/drweb-ctl",
        description="Path to the drweb-ctl control utility",
    )
    DRWEB_CONFIGD: str = Field(
        default="/opt/drweb.com/bin/drweb-configd",
        description="Path to the drweb-configd daemon binary",
    )
    DRWEB_LICENSE_KEY: str = Field(
        default="",
        description="Registered Dr.Web license key; a demo license is requested when empty",
    )

    # Signature update marker
    UPDATED_FILE: str = Field(
        default="/opt/malice/UPDATED",
        description="Plain-text file holding the last signature update date (YYYYMMDD)",
    )
    BUILD_TIME: str = Field(
        default="",
        description="Build date (YYYYMMDD) reported when the update marker is absent",
    )

    # Timing
    MALICE_TIMEOUT: int = Field(
        default=120,
        ge=1,
        description="Deadline in seconds for a CLI scan",
    )
    WEB_SCAN_TIMEOUT: int = Field(
        default=60,
        ge=1,
        description="Deadline in seconds for a scan requested over HTTP",
    )
    DAEMON_SETTLE_SECONDS: float = Field(
        default=1.0,
        ge=0,
        description="Upper bound on the wait for drweb-configd to become ready after start",
    )
    DAEMON_PROBE: str = Field(
        default="appinfo",
        description="drweb-ctl sub-command used as readiness probe; empty for a fixed delay",
    )
    SCAN_RETRY_DELAY_SECONDS: float = Field(
        default=10.0,
        ge=0,
        description="Pause before the single scan retry",
    )
    METADATA_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Deadline for each drweb-ctl --version and baseinfo call, separate from the scan deadline",
    )
    SCAN_OUTPUT_DIALECT: str = Field(
        default="default",
        description="Scan output grammar: 'default' or 'legacy'",
    )

    # Result store / webhook
    MALICE_ELASTICSEARCH_URL: str = Field(
        default="",
        description="Elasticsearch URL for storing results; storage is skipped when empty",
    )
    MALICE_ELASTICSEARCH_INDEX: str = Field(default="malice")
    MALICE_ENDPOINT: str = Field(
        default="",
        description="Malice webhook URL that receives results when --callback is given",
    )
    MALICE_PROXY: str = Field(default="", description="HTTP proxy for the webhook")
    MALICE_SCANID: str = Field(
        default="",
        description="Scan id for storage and webhook; defaults to the file's SHA-256",
    )

    # Web service
    UPLOAD_DIR: str = Field(
        default="/malware",
        description="Directory where uploaded files are staged before scanning",
    )
    WEB_HOST: str = Field(default="0.0.0.0")
    WEB_PORT: int = Field(default=3993, ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO")

    @field_validator("SCAN_OUTPUT_DIALECT")
    @classmethod
    def validate_dialect(cls, v: str) -> str:
        v = v.lower()
        if v not in SCAN_OUTPUT_DIALECTS:
            raise ValueError(f"SCAN_OUTPUT_DIALECT must be one of {SCAN_OUTPUT_DIALECTS}")
        return v


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    The first call reads environment variables (and ``.env``). Subsequent calls
    return the cached instance. Clear the cache with ``get_settings.cache_clear()``
    between tests.
    """
    return Settings()
