from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")

    id_length: int = Field(12, alias="ID_LENGTH", ge=6, le=64)
    sweep_overdue_on_dashboard: bool = Field(True, alias="SWEEP_OVERDUE_ON_DASHBOARD")
    create_tables_on_startup: bool = Field(True, alias="CREATE_TABLES_ON_STARTUP")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
