from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )
    # Application
    app_name: str = "Sprintboard"
    app_version: str = "1.0.0"
    app_url: str = Field(default="http://localhost:8000")
    debug: bool = Field(default=False)

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./sprintboard.db")
    database_echo: bool = Field(default=False)

    # Authentication & Security
    secret_key: str = Field(default="change-me")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # CORS
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"]
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    # Workflow & board
    default_methodology: str = Field(default="scrum")

    # Sprint lifecycle
    max_sprint_days: int = Field(default=30)
    sprint_require_goal: bool = Field(default=True)
    sprint_require_estimates: bool = Field(default=False)
    sprint_enforce_capacity: bool = Field(default=True)

    # Analytics
    velocity_window: int = Field(default=10)
    cumulative_flow_days: int = Field(default=30)


# Global settings instance
settings = Settings()


# Environment-specific configurations
class DevelopmentConfig(Settings):
    debug: bool = True
    database_echo: bool = True
    log_level: str = "DEBUG"


class ProductionConfig(Settings):
    debug: bool = False
    database_echo: bool = False
    log_level: str = "WARNING"


class TestingConfig(Settings):
    database_url: str = "sqlite+aiosqlite:///:memory:"
    secret_key: str = "test-secret-key"


def get_settings() -> Settings:
    """Factory function to get settings based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        return ProductionConfig()
    elif env == "testing":
        return TestingConfig()
    else:
        return DevelopmentConfig()
