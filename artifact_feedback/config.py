"""
Configuration management for the artifact feedback service.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = Field(default="Artifact Feedback")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_workers: int = Field(default=1)

    # Primary store
    database_url: str = Field(default="sqlite:///./artifact_feedback.db")
    create_tables_on_startup: bool = Field(default=True)

    # File fallback store
    data_dir: Path = Field(default=Path("./data"))
    comments_file_name: str = Field(default="artifact_comments.json")
    ratings_file_name: str = Field(default="artifact_ratings.json")
    file_store_lenient_reads: bool = Field(
        default=False,
        description="Treat a corrupt fallback file as empty on read instead of failing.",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Comments
    comments_default_limit: int = Field(default=50, ge=1)
    comments_max_limit: int = Field(default=100, ge=1)
    max_markdown_bytes: int = Field(default=20_000, ge=1)

    # Thread rendering
    thread_max_depth: int = Field(default=5, ge=1)
    thread_collapse_threshold: int = Field(default=5, ge=1)

    # Identity
    agent_api_keys_json: Optional[str] = Field(
        default=None,
        description='JSON object mapping API keys to identities, e.g. {"key": {"agent_id": "agt_1"}}.',
    )

    @property
    def comments_path(self) -> Path:
        return self.data_dir / self.comments_file_name

    @property
    def ratings_path(self) -> Path:
        return self.data_dir / self.ratings_file_name

    @property
    def agent_api_keys(self) -> Dict[str, Dict[str, Any]]:
        """Parsed API key map; an unparsable value grants nobody access."""
        if not self.agent_api_keys_json:
            return {}
        try:
            parsed = json.loads(self.agent_api_keys_json)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
