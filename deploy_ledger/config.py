"""
Configuration management for the deploy ledger.
"""

import getpass
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class Settings(BaseSettings):
    """Ledger settings, read from ``LEDGER_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite:///./deploy_ledger.db")

    # Plan defaults used by the CLI
    project: Optional[str] = Field(default=None)
    project_uri: Optional[str] = Field(default=None)

    # Operator identity recorded as committer
    user_name: str = Field(default_factory=_default_user_name)
    user_email: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")


@lru_cache
def get_settings() -> Settings:
    """Get ledger settings."""
    return Settings()
