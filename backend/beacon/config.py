from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Beacon Status"
    environment: str = "dev"

    database_url: str = "sqlite:///./beacon.db"
    log_level: str = "INFO"

    # Fallback when no primary_base_url row is stored in the setting table
    primary_base_url: str | None = None

    # Bearer token for admin endpoints; unset means they always reject
    admin_token: str | None = None

    queue_interval_seconds: int = 60
    queue_batch_size: int = 50
    queue_max_attempts: int = 5

    monitor_check_interval_seconds: int = 30
    seed_demo_data: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
