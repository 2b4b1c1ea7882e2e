"""
Configuration Settings.

This module defines the governance configuration using Pydantic's BaseSettings.
It loads everything from environment variables and an optional .env file, and
turns the result into the default ``GovernancePolicy`` the gateway starts with.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..cache.models import CachePolicy
from ..errors import PolicyConfigurationError
from ..policy.kernel_lock import KernelLockMode
from ..policy.models import (
    EconomicPolicy,
    GovernancePolicy,
    IrreversibilityPolicy,
    SafetyPolicy,
    StewardshipPolicy,
)
from ..safety.budget import BudgetLimits

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class LoggingConfig(BaseModel):
    """Console and file logging configuration."""

    level: str = Field(default="INFO", alias="PILOT_GOVERNANCE_LOG_LEVEL")
    format: str = Field(default="detailed", alias="PILOT_GOVERNANCE_LOG_FORMAT")
    enable_file: bool = Field(default=False, alias="PILOT_GOVERNANCE_LOG_TO_FILE")
    file_dir: str = Field(default="logs", alias="PILOT_GOVERNANCE_LOG_DIR")

    model_config = {"populate_by_name": True}


class SafetyBudgetConfig(BaseModel):
    """Default safety budget limits per identity."""

    max_cost_cents: int = Field(default=500, alias="PILOT_GOVERNANCE_MAX_COST_CENTS")
    max_tokens: int = Field(default=50_000, alias="PILOT_GOVERNANCE_MAX_TOKENS")
    max_side_effects: int = Field(default=10, alias="PILOT_GOVERNANCE_MAX_SIDE_EFFECTS")

    model_config = {"populate_by_name": True}


class EconomicsConfig(BaseModel):
    """Rolling economic budget configuration, in cost units."""

    window_limit: int = Field(default=100, alias="PILOT_GOVERNANCE_ECONOMIC_WINDOW_LIMIT")
    session_limit: int = Field(default=1000, alias="PILOT_GOVERNANCE_ECONOMIC_SESSION_LIMIT")
    window_seconds: float = Field(default=3600.0, alias="PILOT_GOVERNANCE_ECONOMIC_WINDOW_SECONDS")

    model_config = {"populate_by_name": True}


class LogfireConfig(BaseModel):
    """Pydantic Logfire configuration."""

    enabled: bool = Field(default=False, alias="LOGFIRE_ENABLED")
    token: Optional[str] = Field(default=None, alias="LOGFIRE_TOKEN")
    service_name: str = Field(default="pilot-governance", alias="LOGFIRE_SERVICE_NAME")
    service_version: str = Field(default="0.1.0", alias="LOGFIRE_SERVICE_VERSION")
    environment: str = Field(default="development", alias="LOGFIRE_ENVIRONMENT")
    sample_rate: float = Field(default=1.0, alias="LOGFIRE_SAMPLE_RATE")
    trace_sqlalchemy: bool = Field(default=True, alias="LOGFIRE_TRACE_SQLALCHEMY")

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Governance settings model.

    All properties are bound from environment variables and the .env file.
    Grouped views are exposed as properties, and ``to_policy`` builds the
    policy the gateway runs under until a policy change is adopted.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(default="INFO", alias="PILOT_GOVERNANCE_LOG_LEVEL")
    log_format: str = Field(
        default="detailed",
        description="Log format (simple, detailed, json)",
        alias="PILOT_GOVERNANCE_LOG_FORMAT",
    )
    log_to_file: bool = Field(default=False, alias="PILOT_GOVERNANCE_LOG_TO_FILE")
    log_dir: str = Field(default="logs", alias="PILOT_GOVERNANCE_LOG_DIR")

    # =====================================================================
    # Gate Defaults
    # =====================================================================
    max_cost_cents: int = Field(default=500, ge=0, alias="PILOT_GOVERNANCE_MAX_COST_CENTS")
    max_tokens: int = Field(default=50_000, ge=0, alias="PILOT_GOVERNANCE_MAX_TOKENS")
    max_side_effects: int = Field(default=10, ge=0, alias="PILOT_GOVERNANCE_MAX_SIDE_EFFECTS")
    economic_window_limit: int = Field(default=100, ge=0, alias="PILOT_GOVERNANCE_ECONOMIC_WINDOW_LIMIT")
    economic_session_limit: int = Field(default=1000, ge=0, alias="PILOT_GOVERNANCE_ECONOMIC_SESSION_LIMIT")
    economic_window_seconds: float = Field(default=3600.0, gt=0.0, alias="PILOT_GOVERNANCE_ECONOMIC_WINDOW_SECONDS")
    drift_score_threshold: float = Field(default=0.8, ge=0.0, alias="PILOT_GOVERNANCE_DRIFT_SCORE_THRESHOLD")
    drift_warning_threshold: float = Field(default=80.0, ge=0.0, alias="PILOT_GOVERNANCE_DRIFT_WARNING_THRESHOLD")
    tool_timeout_seconds: float = Field(default=30.0, gt=0.0, alias="PILOT_GOVERNANCE_TOOL_TIMEOUT_SECONDS")
    mock_mode: bool = Field(default=False, alias="PILOT_GOVERNANCE_MOCK_MODE")
    policy_version: str = Field(default="governance-v1", alias="PILOT_GOVERNANCE_POLICY_VERSION")

    # =====================================================================
    # Kernel Lock
    # =====================================================================
    is_production: bool = Field(default=False, alias="PILOT_GOVERNANCE_PRODUCTION")
    kernel_lock: Optional[KernelLockMode] = Field(
        default=None,
        description="Explicit kernel lock mode (locked, open); unset means locked only in production",
        alias="PILOT_GOVERNANCE_KERNEL_LOCK",
    )

    # =====================================================================
    # Persistence
    # =====================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./pilot_governance.db",
        description="Async SQLAlchemy URL for the ledger and audit repositories",
        alias="PILOT_GOVERNANCE_DATABASE_URL",
    )

    # =====================================================================
    # Logfire
    # =====================================================================
    logfire_enabled: bool = Field(default=False, alias="LOGFIRE_ENABLED")
    logfire_token: Optional[str] = Field(default=None, alias="LOGFIRE_TOKEN")
    logfire_service_name: str = Field(default="pilot-governance", alias="LOGFIRE_SERVICE_NAME")
    logfire_service_version: str = Field(default="0.1.0", alias="LOGFIRE_SERVICE_VERSION")
    logfire_environment: str = Field(default="development", alias="LOGFIRE_ENVIRONMENT")
    logfire_sample_rate: float = Field(default=1.0, alias="LOGFIRE_SAMPLE_RATE")
    logfire_trace_sqlalchemy: bool = Field(default=True, alias="LOGFIRE_TRACE_SQLALCHEMY")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def logging(self) -> LoggingConfig:
        return LoggingConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def safety_budget(self) -> SafetyBudgetConfig:
        return SafetyBudgetConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def economics(self) -> EconomicsConfig:
        return EconomicsConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def logfire(self) -> LogfireConfig:
        return LogfireConfig.model_validate(self.model_dump(by_alias=True))

    def to_policy(self) -> GovernancePolicy:
        """
        Build the default governance policy from these settings.

        Raises:
            PolicyConfigurationError: The session limit is below the window limit.
        """
        budget = self.safety_budget
        economics = self.economics
        if economics.session_limit < economics.window_limit:
            raise PolicyConfigurationError(
                f"economic session limit {economics.session_limit} is below the window limit {economics.window_limit}"
            )
        return GovernancePolicy(
            version=self.policy_version,
            safety=SafetyPolicy(
                limits=BudgetLimits(
                    max_cost_cents=budget.max_cost_cents,
                    max_tokens=budget.max_tokens,
                    max_side_effects=budget.max_side_effects,
                )
            ),
            economics=EconomicPolicy(
                window_limit=economics.window_limit,
                session_limit=economics.session_limit,
                window_seconds=economics.window_seconds,
            ),
            irreversibility=IrreversibilityPolicy(
                drift_score_threshold=self.drift_score_threshold,
                mock_mode=self.mock_mode,
            ),
            stewardship=StewardshipPolicy(drift_warning_threshold=self.drift_warning_threshold),
            cache=CachePolicy(),
            tool_timeout_seconds=self.tool_timeout_seconds,
        )


def get_settings() -> Settings:
    """Load settings from the environment; a fresh object per call."""
    return Settings()
