"""
Settings, read from the environment (and ``.env`` when present) by
pydantic-settings.  Database credentials are never given defaults.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PG_REQUIRED = ("POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_SERVER", "POSTGRES_DB")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "Investment Returns API"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = False

    # ── Database ──
    # USE_SQLITE=true runs on an in-memory database; nothing survives a restart.
    USE_SQLITE: bool = False
    POSTGRES_USER: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_SERVER: str = ""
    POSTGRES_DB: str = ""
    POSTGRES_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30  # seconds
    DB_POOL_RECYCLE: int = 1800  # seconds

    # ── HTTP ──
    CORS_ORIGINS: str = "*"  # comma-separated

    # ── Logging ──
    LOG_LEVEL: str = "INFO"
    LOG_FILE_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_FILE_BACKUP_COUNT: int = 5

    # ── Read cache and circuit breaker ──
    CACHE_TTL: float = 30.0
    CACHE_MAX_SIZE: int = 1000
    CACHE_ENABLED: bool = True
    CB_FAILURE_THRESHOLD: int = 5
    CB_RECOVERY_TIMEOUT: float = 30.0

    # ── Calculations ──
    RISK_FREE_RATE: float = 0.0  # annual, percent; Sharpe ratio baseline
    DEFAULT_COMPOUNDING_FREQUENCY: str = "DAILY"  # FIXED investments created without one
    SCHEDULER_BATCH_SIZE: int = 500  # investments per accrual sweep

    @model_validator(mode="after")
    def _require_pg_credentials_unless_sqlite(self) -> "Settings":
        if self.USE_SQLITE:
            return self
        missing = [name for name in _PG_REQUIRED if not getattr(self, name)]
        if missing:
            raise ValueError(
                f"PostgreSQL mode requires {', '.join(missing)}. "
                "Export them (or put them in .env), or run on in-memory SQLite with "
                "USE_SQLITE=true uvicorn returns_api.main:app"
            )
        return self

    @property
    def DATABASE_URL(self) -> str:
        if self.USE_SQLITE:
            return "sqlite+aiosqlite://"
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
