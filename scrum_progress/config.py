from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )
    # Application
    app_name: str = "Scrum Progress Core"
    app_version: str = "1.0.0"

    # Remote Scrum API
    api_base_url: str = Field(default="http://localhost:8080/api")
    api_token: Optional[str] = Field(default=None)
    request_timeout: float = Field(default=30.0, gt=0)
    read_retry_attempts: int = Field(default=0, ge=0, le=10)  # writes are never retried
    retry_delay: float = Field(default=1.0, ge=0.0, le=60.0)  # seconds

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    # Analytics presentation
    velocity_decimals: int = Field(default=1, ge=0)
    completion_decimals: int = Field(default=0, ge=0)
    trend_granularity: str = Field(default="sprint")  # sprint or day

    # Lifecycle policy
    strict_assignee_columns: bool = Field(default=False)


# Global settings instance
settings = Settings()


# Environment-specific configurations
class DevelopmentConfig(Settings):
    log_level: str = "DEBUG"


class ProductionConfig(Settings):
    log_level: str = "WARNING"


class TestingConfig(Settings):
    api_base_url: str = "http://scrum-api.test/api"
    api_token: Optional[str] = "test-token"
    retry_delay: float = 0.0


def get_settings() -> Settings:
    """Factory function to get settings based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        return ProductionConfig()
    elif env == "testing":
        return TestingConfig()
    else:
        return DevelopmentConfig()
