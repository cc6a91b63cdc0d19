"""
Configuration management using Pydantic Settings.
Loads environment variables from .env file with validation.
"""

from pathlib import Path
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


DB_TYPES = ("mongo", "dynamodb", "memory")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    env: str = Field(default="dev", description="Deployment environment (dev/prod)")
    log_level: str = Field(default="INFO")

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # Storage backend
    db_type: str = Field(
        default="mongo",
        description="Storage backend: mongo, dynamodb or memory"
    )

    # MongoDB Configuration
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    mongodb_database: str = Field(
        default="policyflow",
        description="MongoDB database name"
    )
    mongo_connect_timeout_sec: int = Field(default=5)
    mongo_op_timeout_ms: int = Field(
        default=500,
        description="Deadline applied to every MongoDB operation"
    )

    # DynamoDB Configuration
    aws_region: str = Field(default="us-east-1")
    dynamodb_endpoint: Optional[str] = Field(
        default=None,
        description="Custom endpoint, e.g. http://localhost:8000 for DynamoDB Local"
    )
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    dynamodb_timeout_sec: int = Field(default=5)

    # Background workers
    workers_enabled: bool = Field(default=True)
    worker_interval_sec: float = Field(default=5.0)
    worker_batch_limit: int = Field(default=10)

    # Listing limits
    referred_list_default_limit: int = Field(default=50)
    referred_list_max_limit: int = Field(default=200)
    policy_list_default_limit: int = Field(default=20)
    policy_list_max_limit: int = Field(default=100)

    @field_validator("db_type")
    @classmethod
    def check_db_type(cls, value: str) -> str:
        value = value.lower()
        if value not in DB_TYPES:
            raise ValueError(f"db_type must be one of {', '.join(DB_TYPES)}")
        return value

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("prod", "production")

    class Config:
        env_file = Path(__file__).parent.parent / ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
