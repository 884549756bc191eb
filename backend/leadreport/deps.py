"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database import get_session_factory
from .services.identity_service import IdentityService
from .services.qualification_service import QualificationService
from .services.store import ReportStore
from .utils.env import load_env_file


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Grace period added to a line item's range end so that deployments sent
    # near the boundary still admit clicks that land slightly later.
    END_DATE_GRACE_DAYS: int = 7

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: Optional[str] = None
    ENVIRONMENT: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    load_env_file()
    return Settings()  # type: ignore[call-arg]


def get_report_store() -> ReportStore:
    """Return a store bound to the application's async session factory."""
    return ReportStore(get_session_factory())


def get_qualification_service(
    store: ReportStore = Depends(get_report_store),
) -> QualificationService:
    settings = get_settings()
    return QualificationService(store, grace_days=settings.END_DATE_GRACE_DAYS)


def get_identity_service(
    store: ReportStore = Depends(get_report_store),
) -> IdentityService:
    return IdentityService(store)
