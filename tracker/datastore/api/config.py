"""
Configuration for the datastore HTTP API.

Uses pydantic-settings for environment variable loading. Storage settings
come from DatastoreConfig; this covers only the HTTP surface.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP API configuration loaded from environment."""

    host: str = Field(default="0.0.0.0", description="API bind host")
    port: int = Field(default=3000, description="API bind port")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Backups of large stores can take a while
    operation_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound for a single backup/restore request",
    )

    model_config = {"env_prefix": "TRACKER_API_"}
