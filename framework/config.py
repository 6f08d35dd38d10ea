from typing import Optional
from urllib.parse import quote_plus
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Basic configuration ---
    APP_NAME: str = "NekoVi Shop API"
    APP_DESCRIPTION: str = "E-commerce backend: catalog, cart, coupons, wishlist, reviews and user administration"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"  # development, production, testing
    DEBUG: bool = True
    SECRET_KEY: str = "your-super-secret-key-change-it-in-production"
    JWT_ALGORITHM: str = "HS256"

    # --- Database (MySQL/SQLModel) ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = "root"
    DB_NAME: str = "nekovi_db"
    DB_ECHO: bool = False
    DB_AUTO_CREATE: bool = False  # Create tables on startup (development only; no migrations)

    @property
    def DATABASE_URL(self) -> str:
        # Build async MySQL connection URL
        safe_password = quote_plus(self.DB_PASSWORD)
        return f"mysql+aiomysql://{self.DB_USER}:{safe_password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # --- Redis (audit stream) ---
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # --- User action audit stream (Redis Stream) ---
    AUDIT_STREAM_NAME: str = "audit:user_actions"
    AUDIT_CONSUMER_GROUP: str = "audit:writers"
    AUDIT_STREAM_MAXLEN: int = 100000
    AUDIT_WORKER_ENABLED: bool = False  # Start the in-process consumer with the app
    AUDIT_WORKER_NAME: str = "audit-writer-1"
    AUDIT_MAX_DELIVERIES: int = 5  # Failed saves before an event moves to the dead-letter stream
    AUDIT_DEAD_LETTER_STREAM: Optional[str] = None  # Defaults to "<AUDIT_STREAM_NAME>:dead"
    AUDIT_RECONNECT_SECONDS: int = 30  # Publisher waits this long after Redis was unreachable
    REDIS_CONNECT_TIMEOUT: float = 2.0

    # --- Pagination ---
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # --- Storage (image paths are stored relative, served from here) ---
    STORAGE_BASE_URL: str = "http://localhost:8000"

    # --- Notification service ---
    NOTIFICATION_DRIVER: str = "mock"  # mock, email
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: Optional[str] = None  # Defaults to SMTP_USER
    SHOP_URL: str = "http://localhost:3000"

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # --- Cookie ---
    ACCESS_TOKEN_COOKIE_NAME: str = "access_token"
    COOKIE_SECURE: bool = False  # Set True in production (HTTPS only)
    COOKIE_SAMESITE: str = "lax"  # lax, strict, none

    # --- Logging ---
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # --- API route prefix (overridable per deployment) ---
    API_V1_PREFIX: str = "/api/v1"

    # --- Gunicorn ---
    GUNICORN_BIND: str = "0.0.0.0:8000"
    GUNICORN_WORKERS: int = 2
    GUNICORN_PROC_NAME: Optional[str] = None  # Fallback to APP_NAME when empty

    # --- Pydantic ---
    # Load env from project root .env; priority: env vars > .env > defaults
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )


# Singleton settings instance
settings = Settings()
