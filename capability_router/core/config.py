"""
Configuration Settings.

This module defines the router configuration using Pydantic's BaseSettings.
All values are bound from environment variables and the ``.env`` file.

There is no module-level settings instance: applications build
``RouterSettings()`` explicitly and derive the orchestrator's configuration
from it with ``OrchestratorConfig.from_settings``.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RouterSettings(BaseSettings):
    """
    Capability router settings.

    All properties are automatically bound from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Capability Document
    # =====================================================================
    capabilities_file: str = Field(
        default="agent_capabilities.yaml",
        description="Path of the YAML agent capability document",
        alias="CAPABILITY_ROUTER_CAPABILITIES_FILE",
    )
    throw_on_file_not_found: bool = Field(
        default=False,
        description="Fail instead of serving an empty document when the capability file is missing",
        alias="CAPABILITY_ROUTER_THROW_ON_FILE_NOT_FOUND",
    )
    validate_schema: bool = Field(
        default=True,
        description="Validate capability documents on load",
        alias="CAPABILITY_ROUTER_VALIDATE_SCHEMA",
    )
    reload_debounce_seconds: float = Field(
        default=0.3,
        ge=0.0,
        description="Quiet period after a file change before reloading",
        alias="CAPABILITY_ROUTER_RELOAD_DEBOUNCE_SECONDS",
    )
    reload_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="How often the capability file is checked for changes",
        alias="CAPABILITY_ROUTER_RELOAD_POLL_INTERVAL_SECONDS",
    )
    watch_capabilities: bool = Field(
        default=True,
        description="Start the capability file watcher when building the orchestrator",
        alias="CAPABILITY_ROUTER_WATCH_CAPABILITIES",
    )

    # =====================================================================
    # Classification
    # =====================================================================
    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum classification confidence treated as reliable",
        alias="CAPABILITY_ROUTER_CONFIDENCE_THRESHOLD",
    )
    classification_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Deadline for one LLM classification call",
        alias="CAPABILITY_ROUTER_CLASSIFICATION_TIMEOUT_SECONDS",
    )
    classification_model: Optional[str] = Field(
        default=None,
        description="Pydantic AI model name used for classification (e.g. 'openai:gpt-4o'); unset disables the LLM",
        alias="CAPABILITY_ROUTER_CLASSIFICATION_MODEL",
    )

    # =====================================================================
    # Invocation & Policy
    # =====================================================================
    handler_timeout_seconds: Optional[float] = Field(
        default=30.0,
        description="Default deadline for one agent handler invocation",
        alias="CAPABILITY_ROUTER_HANDLER_TIMEOUT_SECONDS",
    )
    health_check_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Deadline for one agent health check",
        alias="CAPABILITY_ROUTER_HEALTH_CHECK_TIMEOUT_SECONDS",
    )
    require_approval_for_real_world: bool = Field(
        default=True,
        description="Require human approval for real-world actions",
        alias="CAPABILITY_ROUTER_REQUIRE_APPROVAL_FOR_REAL_WORLD",
    )
    approval_ttl_seconds: float = Field(
        default=900.0,
        ge=0.0,
        description="Lifetime of a parked approval",
        alias="CAPABILITY_ROUTER_APPROVAL_TTL_SECONDS",
    )
    rate_limit_window_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Length of the rolling rate limit window",
        alias="CAPABILITY_ROUTER_RATE_LIMIT_WINDOW_SECONDS",
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="CAPABILITY_ROUTER_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log format (simple, detailed, json)",
        alias="CAPABILITY_ROUTER_LOG_FORMAT",
    )
    log_file_dir: str = Field(
        default="logs",
        description="Directory for the log file",
        alias="CAPABILITY_ROUTER_LOG_FILE_DIR",
    )
    enable_file_logging: bool = Field(
        default=False,
        description="Also write logs to a file",
        alias="CAPABILITY_ROUTER_ENABLE_FILE_LOGGING",
    )
