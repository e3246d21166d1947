from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # project root
ENV_PATH = BASE_DIR / ".env"

# Load .env into the environment first so pydantic-settings sees it.
load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
    )

    DATABASE_URL: str
    SQL_ECHO: bool = False

    JWT_SECRET: str
    JWT_ACCESS_MINUTES: int = 30
    JWT_ALG: str = "HS256"

    # payment collaborator authenticates with this key
    SERVICE_API_KEY: str = "change-me"

    GIFT_CARD_CODE_PREFIX: str = "GC"
    GIFT_CARD_CODE_MAX_ATTEMPTS: int = 10
    LEDGER_CONFLICT_RETRIES: int = 2
    IMPORT_MAX_ROWS: int = 5000

    NOTIFY_WEBHOOK_URL: str = ""
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"


settings = Settings()
