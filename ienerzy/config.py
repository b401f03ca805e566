import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv(override=True)


def _env_bool(name: str, default: bool = False) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw_value = os.getenv(name, default)
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "")
    jwt_secret: str = os.getenv("JWT_SECRET", "")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440")
    )
    refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    otp_length: int = int(os.getenv("OTP_LENGTH", "6"))
    otp_ttl_seconds: int = int(os.getenv("OTP_TTL_SECONDS", "300"))
    otp_max_attempts: int = int(os.getenv("OTP_MAX_ATTEMPTS", "3"))
    otp_debug: bool = _env_bool("OTP_DEBUG", False)
    token_blacklist_ttl_seconds: int = int(
        os.getenv("TOKEN_BLACKLIST_TTL_SECONDS", "86400")
    )
    login_rate_limit: int = int(os.getenv("LOGIN_RATE_LIMIT", "5"))
    otp_rate_limit: int = int(os.getenv("OTP_RATE_LIMIT", "3"))
    api_rate_limit: int = int(os.getenv("API_RATE_LIMIT", "100"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    rate_limit_retention_seconds: int = int(
        os.getenv("RATE_LIMIT_RETENTION_SECONDS", "3600")
    )
    # Availability over strictness: storage faults let requests through.
    rate_limit_fail_open: bool = _env_bool("RATE_LIMIT_FAIL_OPEN", True)
    auth_fail_open: bool = _env_bool("AUTH_FAIL_OPEN", True)
    twilio_account_sid: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    twilio_auth_token: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    twilio_phone_number: str = os.getenv(
        "TWILIO_PHONE_NUMBER", os.getenv("PHONE_NUMBER", "")
    )
    default_country_code: str = os.getenv("DEFAULT_COUNTRY_CODE", "+91")
    seed_demo_data: bool = _env_bool("SEED_DEMO_DATA", True)
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
        )
    )
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.refresh_token_expire_days * 86400


settings = Settings()
