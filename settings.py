"""
Application configuration using pydantic-settings.

Values come from environment variables (or a local .env file):
  - DB_USER / DB_PASS: MongoDB Atlas credentials (required unless DATABASE_URL is set)
  - DB_CLUSTER, DB_NAME: Atlas host and database name
  - DATABASE_URL: full Mongo URI, overrides the Atlas URI built from the above
  - PORT, HOST, LOG_LEVEL
  - ATOMIC_PURCHASES: use a conditional decrement when processing purchases
"""
from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote_plus

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ServerSettings(BaseSettings):
    """Settings needed to build the app, before any credentials are checked."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]


class Settings(ServerSettings):
    # MongoDB
    db_user: Optional[str] = None
    db_pass: Optional[str] = None
    db_cluster: str = "cluster0.8bbir.mongodb.net"
    db_name: str = "Assignment-11"
    database_url: Optional[str] = None
    foods_collection: str = "all-foods"
    purchases_collection: str = "purchases"
    server_selection_timeout_ms: int = Field(5000, gt=0)

    atomic_purchases: bool = False

    @field_validator("db_user", "db_pass", "database_url")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def require_credentials(self) -> "Settings":
        if self.database_url is None and not (self.db_user and self.db_pass):
            raise ValueError("Missing DB_USER or DB_PASS in environment variables.")
        if self.atomic_purchases:
            logger.info("ATOMIC_PURCHASES enabled: stock is checked and decremented in one update")
        return self

    @property
    def mongo_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mongodb+srv://{quote_plus(self.db_user)}:{quote_plus(self.db_pass)}"
            f"@{self.db_cluster}/?retryWrites=true&w=majority"
        )

    @property
    def uses_atlas(self) -> bool:
        return self.database_url is None


def get_settings() -> Settings:
    return Settings()
