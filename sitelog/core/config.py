import os
from typing import Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "Diario de Obra"
    PLATFORM_NAME: str = os.getenv("PLATFORM_NAME", "Diário de Obra Inteligente")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "super-secret-key-change-it")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./sitelog.db")

    # Photos are written below this directory, grouped by year/month
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")

    # Server (python -m sitelog.main)
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Autosave
    AUTOSAVE_DELAY_SECONDS: float = 1.5
    SAVED_DISPLAY_DELAY_SECONDS: float = 0.5
    HISTORY_MAX_RECORDS: int = 20

    # Defaults for the very first log of a project
    DEFAULT_WEATHER: str = "Ensolarado"
    DEFAULT_WORK_HOURS: str = "7:00h as 12:00h e 13:00h as 17:00h"
    DEFAULT_TEMP_MIN: str = "18º"
    DEFAULT_TEMP_MAX: str = "27º"

    # Gemini (image suggestions). Missing key disables suggestions.
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE", "logs/sitelog.log")
    LOG_MAX_BYTES: int = 10485760  # 10MB
    LOG_BACKUP_COUNT: int = 5

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

settings = Settings()
