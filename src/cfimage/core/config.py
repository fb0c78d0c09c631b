"""Configuration management for the Cloudflare Image Proxy.

This module provides centralized configuration management using Pydantic Settings.
Values are read from environment variables (case-insensitive) with a ``.env``
file in the working directory as a fallback, so the service can be deployed on
hosted platforms that only expose plain environment variables.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Keyword arguments passed to ``ProxyConfig(...)``
2. Environment variables
3. .env file in the project root
4. Default values defined in ProxyConfig

Example .env file:
    CLOUDFLARE_ACCOUNT_ID=0123456789abcdef
    CLOUDFLARE_API_TOKEN=secret-token
    PORT=5000
    LOG_LEVEL=DEBUG
    RENDER_EXTERNAL_URL=https://my-proxy.onrender.com

Credentials
-----------
``CLOUDFLARE_ACCOUNT_ID`` and ``CLOUDFLARE_API_TOKEN`` are required for image
generation but are deliberately *optional* here: a missing credential only
produces a startup warning and a per-request 401, so health probes keep
working while the deployment is being fixed.

Global Configuration Instance
------------------------------
A global ``config`` instance is created automatically at module import time.

Usage Example
-------------
    from cfimage.core.config import config

    print(config.port)
    print(config.missing_credentials())
"""

import logging
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevelName = Literal["ERROR", "WARN", "INFO", "DEBUG"]

# Log level names accepted by LOG_LEVEL mapped onto stdlib logging levels.
_LOG_LEVELS: dict[str, int] = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


class ProxyConfig(BaseSettings):
    """Main configuration for the Cloudflare Image Proxy.

    Attributes
    ----------
    Upstream Settings:
        cloudflare_account_id : str | None
            Cloudflare account identifier embedded in the Workers AI URL
        cloudflare_api_token : str | None
            API token sent as a bearer token
        cloudflare_base_url : str
            Root of the Cloudflare REST API
        cloudflare_model : str
            Workers AI model identifier used for every generation
        upstream_timeout_seconds : float
            Upper bound on a single upstream round trip

    Rate Limiting:
        rate_limit_window_seconds : float
            Length of the trailing window
        rate_limit_max_requests : int
            Requests admitted per client within one window

    Server Settings:
        host : str
            Bind address
        port : int
            Listen port (1-65535)
        max_body_bytes : int
            Largest accepted JSON request body (10 MiB by default)
        log_level : Literal["ERROR", "WARN", "INFO", "DEBUG"]
            Log verbosity; unknown values fall back to INFO

    Keep-Alive:
        external_url : str | None
            Externally reachable URL of this service (enables self-ping)
        keep_alive_interval_seconds : float
            Delay between self-pings (14 minutes by default)

    Examples
    --------
        >>> cfg = ProxyConfig(cloudflare_account_id="abc", cloudflare_api_token="t")
        >>> cfg.missing_credentials()
        []
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Upstream provider settings
    cloudflare_account_id: str | None = Field(
        default=None,
        description="Cloudflare account identifier",
    )
    cloudflare_api_token: str | None = Field(
        default=None,
        description="Cloudflare API token (bearer)",
    )
    cloudflare_base_url: str = Field(
        default="https://api.cloudflare.com/client/v4",
        description="Cloudflare REST API root",
    )
    cloudflare_model: str = Field(
        default="@cf/stabilityai/stable-diffusion-xl-base-1.0",
        description="Workers AI text-to-image model identifier",
    )
    upstream_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single upstream request",
        gt=0,
    )

    # Rate limiting
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_max_requests: int = Field(default=10, ge=1)

    # Server settings
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    port: int = Field(
        default=5000,
        description="Server port",
        ge=1,
        le=65535,
    )
    max_body_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest request body accepted by POST /generate",
        ge=1,
    )
    log_level: LogLevelName = Field(
        default="INFO",
        description="Log verbosity (ERROR, WARN, INFO, DEBUG)",
    )

    # Keep-alive
    external_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "external_url",
            "render_external_url",
            "vercel_url",
        ),
        description="Public URL of this service, used only for the keep-alive self-ping",
    )
    keep_alive_interval_seconds: float = Field(
        default=14 * 60,
        description="Delay between keep-alive pings",
        gt=0,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        """Upper-case the level name and fall back to INFO for unknown names."""
        if not isinstance(value, str):
            return "INFO"
        name = value.strip().upper()
        if name == "WARNING":
            name = "WARN"
        return name if name in _LOG_LEVELS else "INFO"

    @field_validator("cloudflare_account_id", "cloudflare_api_token", "external_url", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: object) -> object:
        # Hosting dashboards often leave a variable defined but empty.
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def logging_level(self) -> int:
        """Return the stdlib ``logging`` level for :attr:`log_level`."""
        return _LOG_LEVELS[self.log_level]

    def missing_credentials(self) -> list[str]:
        """Return the environment variable names of absent credentials.

        Returns:
            Subset of ``["CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN"]``
            in that order.
        """
        missing = []
        if not self.cloudflare_account_id:
            missing.append("CLOUDFLARE_ACCOUNT_ID")
        if not self.cloudflare_api_token:
            missing.append("CLOUDFLARE_API_TOKEN")
        return missing


# Global configuration instance
config = ProxyConfig()
