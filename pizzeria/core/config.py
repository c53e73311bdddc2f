"""
Pizzeria POS — Configuration
All settings are read from environment variables (or .env file).
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "pizzeria-pos"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── JWT ──────────────────────────────────────────────────
    JWT_SECRET_KEY: str = "CHANGE_ME_IN_PRODUCTION"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30  # role and is_active are re-read per request, not trusted from the token
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # ── PostgreSQL ────────────────────────────────────────────
    POSTGRES_HOST: str = "pos-db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "pos_db"
    POSTGRES_USER: str = "pos_user"
    POSTGRES_PASSWORD: str = "pos_pass"
    DATABASE_URL: str | None = None  # full override, e.g. sqlite+aiosqlite://

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ── Redis ─────────────────────────────────────────────────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Rate Limiting (login) ─────────────────────────────────
    RATE_LIMIT_MAX_ATTEMPTS: int = 5
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # ── Idempotency ───────────────────────────────────────────
    IDEMPOTENCY_KEY_TTL_SECONDS: int = 86400

    # ── Optimistic Locking Retry ──────────────────────────────
    OPT_LOCK_MAX_RETRIES: int = 5
    OPT_LOCK_BASE_DELAY_MS: int = 50      # base exponential backoff delay in ms
    OPT_LOCK_MAX_DELAY_MS: int = 1000     # max backoff cap in ms
    OPT_LOCK_JITTER_MS: int = 50          # random jitter range in ms

    # ── Business Rules ────────────────────────────────────────
    TAX_RATE: float = 0.0825
    PREP_ESTIMATE_MINUTES: int = 20

    # ── Payment Processor ─────────────────────────────────────
    PAYMENT_PROCESSOR_URL: str = ""       # empty → local approval (development)
    PAYMENT_PROCESSOR_API_KEY: str = ""
    HTTP_TIMEOUT_SECONDS: float = 5.0

    # ── SSE ───────────────────────────────────────────────────
    SSE_KEEPALIVE_INTERVAL_SECONDS: int = 15
    SSE_RETRY_MILLISECONDS: int = 3000

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
