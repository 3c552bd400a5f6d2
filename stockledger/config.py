from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Stock Ledger"
    DATABASE_URL: str = "sqlite:///./stockledger.db"
    DATABASE_ECHO: bool = False

    LOG_LEVEL: str = "INFO"

    # Consistency guard: row locks ("pessimistic") or version compare-and-swap ("optimistic")
    LOCK_STRATEGY: Literal["pessimistic", "optimistic"] = "pessimistic"
    MAX_CONFLICT_RETRIES: int = 5
    CONFLICT_BACKOFF_MS: int = 20

    # PostgreSQL lock_timeout applied inside each atomic unit (0 = wait forever)
    LOCK_TIMEOUT_MS: int = 5000
    # How long a SQLite writer waits for the database lock
    SQLITE_BUSY_TIMEOUT_S: float = 30.0

    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    LOW_STOCK_THRESHOLD: int = 10

    model_config = {"env_file": ".env"}


settings = Settings()
