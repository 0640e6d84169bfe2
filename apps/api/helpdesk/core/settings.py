from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./helpdesk.db"
    # DB bootstrap (dev only)
    AUTO_DB_BOOTSTRAP: bool = False

    # Auth (token validation only; issuance lives with the identity provider)
    JWT_SECRET: str = "dev-secret"
    JWT_EXPIRES_MIN: int = 120

    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Engine limits
    USER_HISTORY_LIMIT: int = 100
    AUTO_ASSIGN_STAFF_LIMIT: int = 1000
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 200

    # Notification stubs (logged only)
    NOTIFY_EMAIL_FROM: str = "noreply@example.com"
    NOTIFY_WEBHOOK_URL: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
