"""
Application configuration.

This module provides centralized configuration management using Pydantic.
"""

import os
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class GatewayConfig(BaseModel):
    """Remote advertising API gateway configuration."""
    base_url: str = Field(default="http://localhost:3000", description="Base URL of the API gateway")
    access_token: Optional[str] = Field(default=None, description="Bearer token sent with every call")
    # None disables client-side timeouts; the transport default applies
    timeout: Optional[float] = Field(default=None, description="Request timeout in seconds")

    # Endpoint paths
    create_session_path: str = "/api/create-upload-session"
    progress_path: str = "/api/upload-progress/{session_id}"
    upload_images_path: str = "/api/upload-images"
    upload_videos_path: str = "/api/upload-videos"
    remote_files_path: str = "/api/download-and-upload-google-files"
    duplicate_campaign_path: str = "/api/duplicate-campaign"
    duplicate_ad_set_path: str = "/api/duplicate-ad-set"
    create_ad_set_multiple_path: str = "/api/create-ad-set-multiple"
    create_ad_creative_multiple_path: str = "/api/create-ad-creative-multiple"

class UploadConfig(BaseModel):
    """Upload session and progress channel configuration."""
    settle_delay: float = Field(default=0.5, ge=0, description="Seconds to wait after opening the progress channel")
    progress_cleanup_delay: float = Field(default=1.0, ge=0, description="Seconds a completed file stays visible")
    channel_drain_timeout: float = Field(default=2.0, ge=0, description="Seconds to wait for session-complete after uploads return")
    keep_alive_interval: float = Field(default=30.0, gt=0, description="Seconds between SSE keep-alive comments")
    session_grace_period: float = Field(default=60.0, ge=0, description="Seconds an unsubscribed session is kept")
    subscriber_queue_size: int = Field(default=100, ge=1, description="Buffered events per subscriber")

class BatchConfig(BaseModel):
    """Batch operation configuration."""
    max_error_details: int = Field(default=10, ge=1, description="Failures listed individually in a summary")
    duplicate_notice: str = Field(
        default="Duplicated entities can take a few minutes to appear. Check back in a few minutes.",
        description="Notice attached to duplication summaries"
    )

class ServerConfig(BaseModel):
    """Progress server configuration."""
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: List[str] = ["*"]

class LogConfig(BaseModel):
    """Logging configuration."""
    level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_path: Optional[str] = os.getenv("LOG_FILE")
    json_format: bool = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

class Settings(BaseSettings):
    """Application settings."""
    gateway: GatewayConfig = GatewayConfig()
    upload: UploadConfig = UploadConfig()
    batch: BatchConfig = BatchConfig()
    server: ServerConfig = ServerConfig()
    log: LogConfig = LogConfig()

    model_config = SettingsConfigDict(
        env_prefix="ADBATCH_",
        env_nested_delimiter="__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

# Create global settings instance
settings = Settings()

# Export individual configs for convenience
gateway_config = settings.gateway
upload_config = settings.upload
batch_config = settings.batch
server_config = settings.server
log_config = settings.log
