# ABOUTME: Configuration management for Saturn smart deploy
# ABOUTME: Handles environment variables, retry policy, deploy timing and security modes

"""
Configuration management using pydantic-settings.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module holds the runtime settings of the smart deploy tooling. It:

1. READS environment variables (SATURN_URL, SATURN_RETRY_MAX_RETRIES, ...)
2. VALIDATES them (URLs get a scheme, counts must be non-negative, ...)
3. PROVIDES typed access to settings throughout the application

These settings are about HOW to talk to Saturn. WHAT to deploy lives in
the repository's .saturn.yml (see smart.config_file).

=============================================================================
ENVIRONMENT VARIABLE MAPPING
=============================================================================

Saturn instance:
    SATURN_URL              -> Control-plane URL
    SATURN_TOKEN            -> API token
    SATURN_INSECURE         -> Skip TLS certificate verification

Retry policy (SATURN_RETRY_ prefix):
    SATURN_RETRY_MAX_RETRIES      -> Retries after the first attempt (default: 3)
    SATURN_RETRY_BASE_DELAY       -> First backoff in seconds, doubles (default: 1.0)
    SATURN_RETRY_REQUEST_TIMEOUT  -> Per-request HTTP timeout (default: 30.0)

Deploy behavior (SATURN_DEPLOY_ prefix):
    SATURN_DEPLOY_POLL_INTERVAL   -> Seconds between status polls (default: 3.0)
    SATURN_DEPLOY_WAIT_TIMEOUT    -> Overall wait deadline (default: 600.0)
    SATURN_DEPLOY_CONCURRENCY     -> Parallel deploy calls (default: 1)
    SATURN_DEPLOY_REPO_PATH       -> Repository checkout (default: ".")

Security settings (MCP_ prefix):
    MCP_READ_ONLY           -> Block deploy operations (default: true)
    MCP_AUDIT_LOG           -> Path to audit log file
    MCP_RATE_LIMIT_CALLS    -> Max API calls per window (default: 100)
    MCP_RATE_LIMIT_WINDOW   -> Rate limit window in seconds (default: 60)
"""

from __future__ import annotations

import os
from pathlib import Path  # noqa: TC003 - Required at runtime for Pydantic
from typing import Annotated

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from saturn_deploy.utils.client import RetryPolicy

# =============================================================================
# SATURN INSTANCE CONFIGURATION
# =============================================================================


class SaturnInstance(BaseModel):
    """
    Connection settings for one Saturn control plane.

    USAGE EXAMPLE:
    --------------
        instance = SaturnInstance(
            url="https://saturn.example.com",
            token=SecretStr("my-api-token"),
        )
    """

    model_config = {"extra": "ignore"}

    url: str = Field(description="Saturn control-plane URL")

    token: SecretStr = Field(description="Saturn API token")
    # SecretStr keeps the token out of logs and reprs.
    # Use token.get_secret_value() for the real value.

    name: str = Field(default="default", description="Instance identifier")

    insecure: bool = Field(default=False, description="Skip TLS verification")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """
        Ensure URL has a scheme and no trailing slash.

        "saturn.example.com"   -> "https://saturn.example.com"
        "https://example.com/" -> "https://example.com"
        """
        if not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v.rstrip("/")


# =============================================================================
# RETRY SETTINGS
# =============================================================================


class RetrySettings(BaseSettings):
    """
    Retry and timeout configuration for the API client.

    Converted into an immutable RetryPolicy via the `policy` property;
    the client never reads these settings directly.
    """

    model_config = SettingsConfigDict(env_prefix="SATURN_RETRY_")

    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after the first attempt for transient failures",
    )
    # 3 retries = 4 attempts total. 0 disables retrying.

    base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Backoff before the first retry, doubled for each further retry",
    )

    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request HTTP timeout in seconds",
    )
    # Bounds ONE HTTP call. The overall deployment wait is bounded
    # separately by DeploySettings.wait_timeout.

    @property
    def policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, base_delay=self.base_delay)


# =============================================================================
# DEPLOY SETTINGS
# =============================================================================


class DeploySettings(BaseSettings):
    """Smart deploy timing and repository location."""

    model_config = SettingsConfigDict(env_prefix="SATURN_DEPLOY_")

    poll_interval: float = Field(
        default=3.0,
        gt=0,
        description="Seconds between deployment status polls",
    )

    wait_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Overall deadline when waiting for deployments",
    )

    concurrency: int = Field(
        default=1,
        ge=1,
        description="Maximum deploy calls in flight at once",
    )
    # 1 keeps the original behavior: one component after another,
    # in plan order.

    repo_path: Path = Field(
        default=Path("."),
        description="Repository checkout containing .saturn.yml",
    )


# =============================================================================
# SECURITY SETTINGS
# =============================================================================


class SecuritySettings(BaseSettings):
    """
    Security-related configuration.

    Planning only reads from Saturn. Deploying queues real builds, so it
    is blocked until MCP_READ_ONLY=false is set explicitly.
    """

    model_config = SettingsConfigDict(env_prefix="MCP_")

    read_only: bool = Field(
        default=True,
        description="Block deploy operations when true",
    )

    audit_log: Path | None = Field(
        default=None,
        description="Path to audit log file",
    )
    # JSON lines when set, structured stdout logging otherwise.

    rate_limit_calls: int = Field(
        default=100,
        description="Maximum API calls per minute",
    )

    rate_limit_window: int = Field(
        default=60,
        description="Rate limit window in seconds",
    )


# =============================================================================
# MAIN SERVER SETTINGS
# =============================================================================


class ServerSettings(BaseSettings):
    """
    Top-level configuration container.

    USAGE:
    ------
        settings = load_settings()
        settings.primary_instance    # SaturnInstance or None
        settings.retry.policy        # RetryPolicy for SaturnClient
        settings.deploy.wait_timeout
    """

    model_config = SettingsConfigDict(
        env_prefix="SATURN_DEPLOY_MCP_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # SATURN INSTANCE (from environment)
    # -------------------------------------------------------------------------

    saturn_url: str = Field(
        default="",  # Empty string = not configured
        validation_alias="SATURN_URL",
        description="Saturn control-plane URL",
    )

    saturn_token: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="SATURN_TOKEN",
        description="Saturn API token",
    )

    saturn_insecure: bool = Field(
        default=False,
        validation_alias="SATURN_INSECURE",
        description="Skip TLS verification",
    )

    # -------------------------------------------------------------------------
    # SERVER METADATA
    # -------------------------------------------------------------------------

    server_name: str = Field(default="saturn-deploy", description="MCP server name")

    log_level: Annotated[str, Field(pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")] = Field(
        default="INFO",
        description="Logging level",
    )

    json_logs: bool = Field(default=False, description="Render logs as JSON")

    # -------------------------------------------------------------------------
    # NESTED SETTINGS
    # -------------------------------------------------------------------------

    retry: RetrySettings = Field(default_factory=RetrySettings)
    deploy: DeploySettings = Field(default_factory=DeploySettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @property
    def primary_instance(self) -> SaturnInstance | None:
        """
        Saturn instance built from SATURN_URL / SATURN_TOKEN.

        Returns None if SATURN_URL is not set.
        """
        if not self.saturn_url:
            return None
        return SaturnInstance(
            url=self.saturn_url,
            token=self.saturn_token,
            name="primary",
            insecure=self.saturn_insecure,
        )


# =============================================================================
# SETTINGS LOADER
# =============================================================================


def load_settings() -> ServerSettings:
    """
    Load settings from environment with validation.

    If SATURN_DEPLOY_ENV_FILE is set, additional variables are read from
    that file (useful for local development).

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return ServerSettings(
        _env_file=os.environ.get("SATURN_DEPLOY_ENV_FILE"),
    )
