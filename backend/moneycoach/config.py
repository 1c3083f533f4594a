import os
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

# data directory and default DB file
DATA_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "data"))
DB_FILE = os.path.join(DATA_DIR, "app.db")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "Money Coach - Backend"
    DATABASE_URL: str = f"sqlite:///{DB_FILE}"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Analysis services
    ANALYSIS_WINDOW_DAYS: int = 90
    MONTHLY_BUDGET: float = 1500.0
    CURRENCY_SYMBOL: str = "£"

    ACHIEVEMENT_FEED_LIMIT: int = 10

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
