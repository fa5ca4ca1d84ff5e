from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"

CHUNK_SIZE = 1024 * 1024  # 1 MiB for streaming


class Settings(BaseSettings):
    # Storage settings
    UPLOAD_DIR: Path = DATA_DIR / "videos"
    MAX_UPLOAD_SIZE: int = 5 * 1024 * 1024 * 1024  # 5 GiB
    MAX_JSON_BODY_SIZE: int = 50 * 1024 * 1024
    VIDEO_MEDIA_TYPE: str = "video/mp4"
    DEFAULT_THUMBNAIL: str = "/images/default-thumbnail.jpg"

    # API settings
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = ["*"]
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Token settings
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7

    # Seed account, created on start-up when all three are set
    DEFAULT_USER_USERNAME: Optional[str] = None
    DEFAULT_USER_EMAIL: Optional[str] = None
    DEFAULT_USER_PASSWORD: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
