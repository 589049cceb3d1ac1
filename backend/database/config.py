"""
Application configuration.
Reads environment variables and the .env file; every value has a default so
a fresh checkout runs against a local workbook.
"""
import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path(os.environ.get("HOME", ".")) / "OneDrive - AJ네트웍스" / "소모품발주"

STORAGE_WORKBOOK = "workbook"
STORAGE_DATABASE = "database"


class Settings(BaseSettings):
    """Storage, attachment and session settings."""

    # Shared folder holding the workbook and the attachment tree
    local_onedrive_path: str = str(DEFAULT_DATA_DIR)
    excel_file: str = "소모품발주.xlsx"
    attachments_folder: str = "첨부 파일"

    # "workbook" (Excel file, default) or "database" (SQLAlchemy)
    storage_backend: str = STORAGE_WORKBOOK
    database_url: str = "sqlite+aiosqlite:///./consumables.db"

    # Session tokens
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24  # 24 hours

    # Password given to accounts created by admins or CSV import
    default_password: str = "1234"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def excel_path(self) -> Path:
        return Path(self.local_onedrive_path) / self.excel_file

    @property
    def attachments_path(self) -> Path:
        return Path(self.local_onedrive_path) / self.attachments_folder

    @property
    def async_database_url(self) -> str:
        """Normalise plain postgres URLs to the asyncpg driver."""
        url = self.database_url
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://") and "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


settings = Settings()
