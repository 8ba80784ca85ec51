from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "sharegate"
    env: str = "development"
    log_level: str = "INFO"

    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    postgres_host: str = "postgres"
    postgres_db: str = "sharegate"
    postgres_user: str = "sharegate"
    postgres_password: str = "sharegate"
    postgres_port: int = 5432
    database_url: str = ""

    redis_url: str = "redis://redis:6379/0"

    approval_sweep_interval_minutes: int = 30
    approval_sweep_batch_size: int = 50
    approval_decide_max_retries: int = 3

    public_viewer_base_url: str = "http://localhost:8080"
    notification_backend: str = "log"  # log | celery
    notification_task_name: str = "notifications.deliver"

    permission_cache_enabled: bool = True

    cors_allowed_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_allowed_origins(cls, value):
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("notification_backend")
    @classmethod
    def validate_notification_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"log", "celery"}:
            raise ValueError("NOTIFICATION_BACKEND must be 'log' or 'celery'")
        return normalized

    @model_validator(mode="after")
    def validate_production_security(self):
        if self.env.strip().lower() in {"production", "prod"} and self.jwt_secret_key == "change-me":
            raise ValueError("JWT_SECRET_KEY must be set to a secure value in production")
        return self

    @property
    def postgres_dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def postgres_dsn_sync(self) -> str:
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
