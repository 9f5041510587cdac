from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit


class Settings(BaseSettings):
    # service secret; doubles as the HMAC key for every signed URL
    API_SECRET: str
    BASE_URL: str
    APP_ID: str = "self-hosted"

    STORAGE_PROVIDER: str = "local"
    STORAGE_DIR: Path = Path("./uploads")

    # Support either a full DATABASE_URL or individual PG_* settings
    DATABASE_URL: Optional[str] = None
    PG_USER: str = "postgres"
    PG_PASSWORD: str = "password"
    PG_HOST: str = "postgres"
    PG_PORT: int = 5432
    PG_DB: str = "uprelay"

    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("./logs")
    DEBUG: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def __init__(self, **values):
        super().__init__(**values)
        self.BASE_URL = self.BASE_URL.rstrip("/")
        # Build a Postgres URL when DATABASE_URL not provided
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"postgresql+psycopg2://{self.PG_USER}:"
                f"{self.PG_PASSWORD}@{self.PG_HOST}:{self.PG_PORT}/{self.PG_DB}"
            )

    @property
    def base_origin(self) -> str:
        """Scheme and host of BASE_URL, used to rebuild request URLs for signature checks."""
        parts = urlsplit(self.BASE_URL)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.DEBUG else self.LOG_LEVEL.upper()
