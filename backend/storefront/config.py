from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"
    RESET_DB: bool = False

    DEFAULT_CURRENCY: str = "lkr"

    # "mock" keeps intents in memory, "stripe" talks to the Stripe REST API
    PAYMENT_PROVIDER: str = "mock"
    PAYMENT_MOCK_DELAY_MS: int = 0
    PAYMENT_TIMEOUT_SECONDS: int = 10
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    WEBHOOK_TOLERANCE_SECONDS: int = 300
    # development only: accept webhooks without a signature while the mock processor is in use
    ALLOW_UNSIGNED_WEBHOOKS: bool = False

    ADMIN_API_KEY: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
