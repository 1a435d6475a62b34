# config.py
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from the environment or a local .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./budget.db"

    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = Field(default=4, ge=1)

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Lifetime of confirmation/reset codes; 0 means they never expire
    token_expire_minutes: int = Field(default=60, ge=0)
    expose_reset_token: bool = False

    rate_limit_enabled: bool = True
    auth_rate_limit: str = "10/minute"

    mail_host: str = ""
    mail_port: int = 587
    mail_username: Optional[str] = None
    mail_password: Optional[str] = None
    mail_use_tls: bool = True
    mail_from: str = "BudgetSaver <admin@budgetsaver.com>"
    mail_timeout_seconds: int = 10
    frontend_url: str = "http://localhost:3000"

    scheduler_enabled: bool = True
    token_sweep_minutes: int = Field(default=30, ge=1)

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
