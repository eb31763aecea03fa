from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "payment-recovery"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/database.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Payment gateway
    stripe_api_key: str = ""

    # Email channel (SMTP); empty host disables delivery
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = "billing@example.com"
    SMTP_FROM_NAME: str = "Billing"
    SMTP_USE_TLS: bool = True

    # SMS / push channels, delivered through HTTP gateways
    SMS_GATEWAY_URL: str = ""
    SMS_GATEWAY_API_KEY: str = ""
    PUSH_GATEWAY_URL: str = ""
    PUSH_GATEWAY_API_KEY: str = ""

    # Dunning personalization
    COMPANY_NAME: str = "Your Company"
    SUPPORT_EMAIL: str = "support@example.com"
    SUPPORT_PHONE: str = "1-800-555-0123"
    APP_URL: str = "http://localhost:3000"

    # Recovery job orchestrator
    RECOVERY_SCHEDULER_ENABLED: bool = False
    RETRY_JOB_INTERVAL_MINUTES: int = 15
    DUNNING_JOB_INTERVAL_MINUTES: int = 30
    GRACE_PERIOD_JOB_INTERVAL_MINUTES: int = 60
    ANALYTICS_JOB_INTERVAL_MINUTES: int = 1440
    MAX_CONCURRENT_JOBS: int = 5
    JOB_TIMEOUT_MS: int = 300000

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def login_url(self) -> str:
        return f"{self.APP_URL.rstrip('/')}/login"

    @property
    def billing_url(self) -> str:
        return f"{self.APP_URL.rstrip('/')}/billing"


settings = Settings()
