"""
Application configuration using Pydantic Settings
"""
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database (durable tier for signed-in users)
    database_url: str = "sqlite:///./before_send.db"

    # Gemini API (simulator by default for development)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    use_simulator: bool = True
    analysis_timeout_seconds: float = 20.0

    # Rate limiting
    rate_limit_per_day: int = 3
    rate_limit_redis_url: Optional[str] = None
    rate_limit_prefix: str = "before-send"

    # Result storage
    temp_result_ttl_seconds: int = 3600
    history_limit: int = 50

    # Sessions: bearer token -> user id
    session_tokens: Dict[str, str] = {}

    # Application
    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    debug: bool = False

    @property
    def simulator_selected(self) -> bool:
        """True when the deterministic simulator should back the engine"""
        return self.use_simulator or not self.gemini_api_key


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
