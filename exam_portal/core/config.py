from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "exam-portal"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: str = "http://localhost:3000"

    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = "change_me_exam"
    SESSION_COOKIE_NAME: str = "session_token"
    VERIFICATION_TOKEN_TTL_MINUTES: int = 10
    SESSION_TTL_HOURS: int = 5

    OTP_TTL_SECONDS: int = 300
    OTP_RESEND_INTERVAL_SECONDS: int = 60
    OTP_MAX_VERIFY_ATTEMPTS: int = 5
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = 900
    OTP_SEND_RATE_LIMIT: int = 5
    OTP_DEFAULT_COUNTRY_CODE: str = "+91"
    OTP_DEV_MODE: bool = False

    SMS_PROVIDER: str = "dummy"  # dummy | smartping
    SMARTPING_API_URL: str = "https://backend.api-wa.co/campaign/smartping/api/v2"
    SMARTPING_API_KEY: str = ""
    SMARTPING_CAMPAIGN: str = "Form OTP Verification"
    SMARTPING_USER_NAME: str = "exam-portal"
    SMARTPING_SOURCE: str = "exam-portal"
    SMS_TIMEOUT_SECONDS: float = 5.0

    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 80
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_CONNECT_TIMEOUT_SECONDS: int = 30
    DB_STATEMENT_TIMEOUT_MS: int = 45000
    DB_POOL_RECYCLE_SECONDS: int = 1800
    DB_CONNECT_MAX_RETRIES: int = 3
    DB_CONNECT_RETRY_DELAY_SECONDS: float = 2.0

    QUESTION_CACHE_BACKEND: str = "memory"  # memory | redis
    QUESTION_CACHE_TTL_SECONDS: int = 3600
    QUESTION_CACHE_MAX_ENTRIES: int = 100
    RATE_LIMIT_BACKEND: str = "auto"  # auto | redis | memory

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"

settings = Settings()
