"""
Fail-fast configuration checks run before the scheduler accepts traffic.

Production refuses to boot with a guessable JWT secret or a session store on
localhost; development only needs the database credentials.
"""
import logging
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32

KNOWN_PLACEHOLDER_SECRETS = frozenset({
    "development-secret-change-in-production",
    "change-this-in-production",
})


class EnvironmentSettings(BaseSettings):
    """Environment the scheduler needs, read from the process and .env."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENVIRONMENT: str = "development"

    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str

    JWT_SECRET: str = ""
    ADMIN_EMAILS: str = ""

    REDIS_URL: str = "redis://localhost:6379"
    PRACTICE_TIMEZONE: str = "America/Denver"

    @field_validator("PRACTICE_TIMEZONE")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @model_validator(mode="after")
    def production_hardening(self) -> "EnvironmentSettings":
        if self.ENVIRONMENT != "production":
            return self

        if not self.JWT_SECRET or self.JWT_SECRET in KNOWN_PLACEHOLDER_SECRETS:
            raise ValueError("JWT_SECRET must be set to a generated value in production")
        if len(self.JWT_SECRET) < MIN_SECRET_LENGTH:
            raise ValueError(f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters")
        if "localhost" in self.REDIS_URL or "127.0.0.1" in self.REDIS_URL:
            raise ValueError("REDIS_URL cannot point at the local machine in production")
        return self

    @property
    def admin_emails(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]


def validate_environment() -> bool:
    """Log what is wrong with the environment; secret values are never logged."""
    try:
        settings = EnvironmentSettings()
    except ValidationError as e:
        problems = ", ".join(".".join(str(p) for p in err["loc"]) or err["msg"] for err in e.errors())
        logger.error(f"Startup validation failed: {problems}")
        return False

    if not settings.admin_emails:
        logger.warning("ADMIN_EMAILS is empty; only role=admin tokens reach the back-office")
    logger.info(f"Environment validation passed ({settings.ENVIRONMENT})")
    return True
