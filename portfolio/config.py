"""
Configuration and settings for the portfolio backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Content store: relational database, Appwrite documents or in-memory
    store_backend: Literal["sql", "appwrite", "memory"] = Field(default="sql")
    database_url: str = Field(default="sqlite:///portfolio.db")

    # Uploaded images
    file_storage: Literal["local", "s3", "appwrite", "memory"] = Field(
        default="local"
    )
    upload_dir: str = Field(default="uploads")
    upload_url_prefix: str = Field(default="/uploads")
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, ge=1)

    # S3-compatible storage
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    s3_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Appwrite
    appwrite_endpoint: str = Field(default="https://nyc.cloud.appwrite.io/v1")
    appwrite_project_id: Optional[str] = Field(default=None)
    appwrite_api_key: Optional[str] = Field(default=None)
    appwrite_db_id: str = Field(default="portfoliop-db")
    appwrite_projects_collection_id: str = Field(default="projects")
    appwrite_certificates_collection_id: str = Field(default="certificates")
    appwrite_admins_collection_id: str = Field(default="admins")
    appwrite_bucket_id: str = Field(default="uploads")

    # Authentication
    auth_provider: Literal["local", "appwrite"] = Field(default="local")
    auto_enroll_admins: bool = Field(default=False)
    jwt_secret: str = Field(default="your-default-secret-change-this")
    jwt_algorithm: str = Field(default="HS256")
    token_ttl_seconds: int = Field(default=3600, ge=60)
    cookie_name: str = Field(default="token")
    cookie_secure: bool = Field(default=False)

    # Bootstrap admin for the local auth provider
    admin_username: str = Field(default="admin")
    admin_password: str = Field(default="admin123")

    # Serialized form of Project.tech_stack in the backing store
    tech_stack_format: Literal["json", "csv"] = Field(default="json")

    # Static front-end (index.html, admin/index.html, assets)
    public_dir: str = Field(default="public")

    @field_validator("appwrite_endpoint")
    @classmethod
    def pin_cloud_region(cls, value: str) -> str:
        # Appwrite Cloud projects live in a regional cluster.
        if "cloud.appwrite.io" in value and "nyc." not in value:
            return "https://nyc.cloud.appwrite.io/v1"
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
