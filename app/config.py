from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # Security
    SECRET_KEY: str = "change_this_later"
    ENVIRONMENT: str = "development"

    # JWT de sessão
    JWT_SECRET: str = ""  # Se vazio, usa SECRET_KEY
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_MIN: int = 60 * 24 * 7

    # API
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Redis (armazenamento do rate limiting)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"  # Em produção: REDIS_URL
    RATE_LIMIT_PER_IP: str = "60/minute"
    RATE_LIMIT_AUTH: str = "10/minute"  # signup/login
    RATE_LIMIT_INTERPRET: str = "20/minute"

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_PRICE_BASIC: str = ""
    STRIPE_PRICE_PRO: str = ""
    STRIPE_CURRENCY: str = "usd"

    # Cotas e créditos
    FREE_MONTHLY_DEEP_QUOTA: int = 3
    SIGNUP_CREDIT_GRANT: int = 5

    # Provider de interpretação (LLM)
    LLM_API_URL: str = "https://api.anthropic.com/v1/messages"
    LLM_API_KEY: Optional[str] = None
    LLM_MODEL: str = "claude-sonnet-4-20250514"
    LLM_MAX_TOKENS: int = 1500
    LLM_TIMEOUT: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
