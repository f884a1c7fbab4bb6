"""Configuration management for the tutor agent."""

from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TutorSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TUTOR_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Completion engine
    openai_api_key: Optional[str] = Field(None, description="API key for the OpenAI provider")
    openai_base_url: Optional[str] = Field(None, description="Optional API base URL")
    model_name: str = Field(default="gpt-3.5-turbo", description="Model used for every turn")
    request_timeout_seconds: float = Field(default=60.0, description="Timeout for a single completion call")

    # Dispatch
    tool_settle_seconds: float = Field(default=1.0, ge=0, description="Delay before a tool invocation resolves")

    # Identity
    api_tokens: Dict[str, str] = Field(default_factory=dict, description="Bearer token to user id mapping")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or console")
    service_name: str = Field(default="tutor-agent", description="Service name attached to every log entry")


@lru_cache
def get_settings() -> TutorSettings:
    """Get application settings, loaded once per process"""
    return TutorSettings()
