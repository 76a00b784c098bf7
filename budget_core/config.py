import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Pick up a local .env before Settings reads the environment
load_dotenv()

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings:
    PROJECT_NAME: str = "Household Budget"
    PROJECT_VERSION: str = "0.1.0"

    def __init__(self):
        # "json" keeps one file per user and collection, "sql" uses SQLAlchemy
        self.STORAGE: str = os.getenv("BUDGET_STORAGE", "json").lower()
        self.DATA_DIR: Path = Path(os.getenv("BUDGET_DATA_DIR", _PROJECT_ROOT / "data"))
        self.DATABASE_URL: str = os.getenv(
            "BUDGET_DATABASE_URL", f"sqlite:///{self.DATA_DIR / 'budget.db'}"
        )
        self.RATES_URL: str = os.getenv(
            "BUDGET_RATES_URL", "https://api.exchangerate-api.com/v4/latest/USD"
        )
        self.RATES_TTL: int = int(os.getenv("BUDGET_RATES_TTL", "3600"))
        self.DISPLAY_CURRENCY: str = os.getenv("BUDGET_DISPLAY_CURRENCY", "RON").upper()
        self.LOG_LEVEL: str = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()

    @property
    def RATES_CACHE_PATH(self) -> Path:
        return self.DATA_DIR / "exchange_rates.json"

    @property
    def SEED_PATH(self) -> Path:
        return self.DATA_DIR / "seed.json"


def configure_logging(level: str = None) -> None:
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()
