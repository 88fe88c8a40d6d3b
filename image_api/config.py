"""
Configuration cho Image API
Quản lý các settings: auth, image encoding, storage paths, logging
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "change_me"


class ImageApiConfig(BaseSettings):
    """Configuration settings cho Image API"""

    # Auth settings
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET, description="Secret dùng để ký JWT")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_expires_in: int = Field(default=3600, description="Token lifetime (seconds)")
    password_iterations: int = Field(default=200_000, description="PBKDF2 iterations")

    # Storage paths
    users_file: Optional[str] = Field(default=None, description="JSON file cho users (None = in-memory)")
    log_path: str = Field(default="logs/app.log", description="File log cho request entries")
    mirror_log_entries: bool = Field(default=True, description="Forward request entries tới Python logging")

    # Upload settings
    max_file_size: int = Field(default=10 * 1024 * 1024, description="Max upload size (bytes)")
    supported_formats: List[str] = Field(
        default=["jpeg", "png", "webp", "avif", "tiff"],
        description="Input formats được chấp nhận",
    )

    # Image encoding settings
    jpeg_quality: int = Field(default=80, description="JPEG quality (1-100)")
    webp_quality: int = Field(default=80, description="WebP quality (1-100)")
    avif_quality: int = Field(default=50, description="AVIF quality (1-100)")
    default_fit: str = Field(default="cover", description="Resize fit khi request không chỉ định")
    max_output_pixels: int = Field(default=50_000_000, description="Giới hạn width x height của ảnh output khi resize")

    # Processing settings
    max_workers: int = Field(default=4, description="Thread pool size cho Pillow work")
    step_timeout: Optional[float] = Field(default=60.0, description="Timeout mỗi pipeline step (seconds)")

    # API settings
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=4000, description="API port")
    api_title: str = Field(default="Image API", description="API title")
    api_version: str = Field(default="1.0.0", description="API version")
    api_base_url: str = Field(default="http://localhost:4000", description="Base URL cho CLI client")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_API_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET

    def get_log_path(self) -> Path:
        """Lấy đường dẫn file log"""
        return Path(self.log_path)

    def get_users_path(self) -> Optional[Path]:
        """Lấy đường dẫn users file, None nếu dùng in-memory storage"""
        if not self.users_file:
            return None
        return Path(self.users_file)

    def is_supported_format(self, format_name: str) -> bool:
        """Kiểm tra format có được hỗ trợ không"""
        return format_name.lower() in self.supported_formats


@lru_cache()
def get_config() -> ImageApiConfig:
    """Return a cached config instance so the environment is only parsed once"""
    config = ImageApiConfig()
    if config.uses_default_secret:
        logger.warning("IMAGE_API_JWT_SECRET is not set; using the insecure default secret")
    return config
