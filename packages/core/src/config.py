"""Admissions CRM Configuration Management."""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEV_JWT_SECRET = "dev-secret-change-in-production-32chars"


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class CRMConfig(BaseSettings):
    """Central configuration for the admissions CRM automation platform."""

    model_config = SettingsConfigDict(
        env_prefix="CRM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment",
    )

    # Infrastructure
    database_url: str | None = Field(
        default=None,
        description="Database connection URL (PostgreSQL in deployment)",
    )

    # Security
    jwt_secret: str = Field(
        default=_DEV_JWT_SECRET,
        description="JWT signing secret (32+ chars in production)",
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins",
    )

    # Feature Flags
    enable_automation: bool = Field(
        default=True,
        description="Run automation rules on lead events",
    )

    # Automation engine
    action_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound on a single action before the execution fails",
    )
    recent_activity_limit: int = Field(
        default=10, ge=1, le=100, description="Executions returned as recent activity"
    )
    top_rules_limit: int = Field(
        default=5, ge=1, le=50, description="Rules returned in the performance ranking"
    )
    tag_update_max_retries: int = Field(
        default=5, ge=1, le=50, description="Optimistic retries for concurrent tag updates"
    )
    min_lead_score: int = Field(default=0, description="Lower clamp for lead scores")
    max_lead_score: int = Field(default=100, description="Upper clamp for lead scores")

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Ensure JWT secret is strong enough in production."""
        env = os.getenv("CRM_ENVIRONMENT", "development")
        if env == "production":
            if len(v) < 32:
                raise ValueError("JWT secret must be at least 32 characters in production")
            if v == _DEV_JWT_SECRET:
                raise ValueError("Cannot use default JWT secret in production")
        return v

    def validate_production_requirements(self) -> list[str]:
        """Validate all production requirements are met.

        Returns:
            List of validation errors (empty if all valid)
        """
        errors = []

        if not self.is_production:
            return errors

        if not self.database_url:
            errors.append("CRM_DATABASE_URL is required in production")

        if self.database_url and "sslmode=require" not in self.database_url:
            errors.append("PostgreSQL connection should use SSL (sslmode=require)")

        if self.jwt_secret == _DEV_JWT_SECRET:
            errors.append("Cannot use default JWT secret in production")

        localhost_origins = [o for o in self.cors_origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            errors.append(
                f"CORS origins should not include localhost in production: {localhost_origins}"
            )

        if self.min_lead_score >= self.max_lead_score:
            errors.append("min_lead_score must be lower than max_lead_score")

        return errors

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT


@lru_cache
def get_config() -> CRMConfig:
    """Get cached configuration instance."""
    return CRMConfig()


def clear_config_cache() -> None:
    """Clear the config cache. Use when config needs to be reloaded."""
    get_config.cache_clear()
