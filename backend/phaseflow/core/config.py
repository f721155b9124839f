"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database ──────────────────────────────
    POSTGRES_USER: str = "phaseflow_user"
    POSTGRES_PASSWORD: str = "phaseflow_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "phaseflow_db"

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    CALLBACK_QUEUE: str = "callbacks"

    # ── Object Storage ────────────────────────
    STORAGE_ENDPOINT: str = "http://localhost:9000"
    STORAGE_ACCESS_KEY: str = "minioadmin"
    STORAGE_SECRET_KEY: str = "minioadmin"
    STORAGE_BUCKET_NAME: str = "submissions"
    STORAGE_CACHE_PREFIX: str = "cache/"
    STORAGE_STORE_PREFIX: str = "store/"
    AWS_REGION: str = "us-east-1"

    # ── Search Index API ──────────────────────
    INDEX_API_BASE_URL: str = "https://ingest.example.org/v1"
    INDEX_API_KEY: str = ""

    # ── Member Repository API ─────────────────
    REPOSITORY_API_BASE_URL: str = "https://repository.example.org/v1"
    REPOSITORY_API_KEY: str = ""

    # ── Review Service API ────────────────────
    REVIEW_API_BASE_URL: str = "https://review.example.org/v1"

    # ── Collaborator call policy ──────────────
    HTTP_TIMEOUT_SECONDS: float = 30.0
    BULK_BATCH_SIZE: int = 100

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    VALIDATE_STATE_TABLES: bool = True
    MAX_PHASE_RETRIES: int = 3
    RETRY_BACKOFF_SECONDS: float = 1.0

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
