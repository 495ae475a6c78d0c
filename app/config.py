from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # fields that may appear in .env
    database_url: str = "sqlite:///./app.db"
    secret_key: str = "dev_secret"
    access_token_expire_minutes: int = 120
    log_level: str = "INFO"

    # daily midnight sweep that flags overdue tools
    overdue_sweep_enabled: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
