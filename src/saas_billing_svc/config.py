from functools import lru_cache
from typing import Optional

from fastapi import Request
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./saas_billing.db"
    APP_URL: str = "http://localhost:3000"

    # Session tokens issued by the auth provider
    AUTH_SECRET: str = "CHANGE_ME"
    AUTH_TOKEN_MINUTES: int = 60

    # Stripe; an unset secret key means billing is unconfigured
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_MAX_RETRIES: int = 3
    STRIPE_RETRY_DELAY: float = 1.0

    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    @property
    def billing_url(self) -> str:
        return f"{self.APP_URL.rstrip('/')}/dashboard/billing"


@lru_cache
def load_settings() -> Settings:
    return Settings()


def get_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the app was built with."""
    return request.app.state.settings
