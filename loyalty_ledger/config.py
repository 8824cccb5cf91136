import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(encoding="utf-8")


def _int(name: str, default: int) -> int:
    return int(os.getenv(name) or str(default))


def _float(name: str, default: float) -> float:
    return float(os.getenv(name) or str(default))


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str

    redemption_expiry_hours: int
    claim_expiry_hours: int
    claim_max_age_days: int
    claim_daily_limit: int
    claim_duplicate_window_minutes: int

    default_welcome_bonus_points: int
    default_points_expiry_days: int

    fraud_high_amount_minor: int
    fraud_high_amount_multiplier: float
    fraud_new_customer_days: int
    fraud_new_customer_min_purchases: int
    fraud_rejection_rate_percent: float
    fraud_repeated_amount_window: int
    fraud_repeated_amount_min: int

    expiry_sweep_cron: str
    notification_max_attempts: int
    notification_batch_size: int

    whatsapp_api_url: str | None
    whatsapp_phone_number_id: str | None
    whatsapp_access_token: str | None


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL") or "sqlite:///./loyalty_ledger.db",
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        redemption_expiry_hours=_int("REDEMPTION_EXPIRY_HOURS", 24),
        claim_expiry_hours=_int("CLAIM_EXPIRY_HOURS", 48),
        claim_max_age_days=_int("CLAIM_MAX_AGE_DAYS", 7),
        claim_daily_limit=_int("CLAIM_DAILY_LIMIT", 3),
        claim_duplicate_window_minutes=_int("CLAIM_DUPLICATE_WINDOW_MINUTES", 30),
        default_welcome_bonus_points=_int("DEFAULT_WELCOME_BONUS_POINTS", 10),
        default_points_expiry_days=_int("DEFAULT_POINTS_EXPIRY_DAYS", 365),
        fraud_high_amount_minor=_int("FRAUD_HIGH_AMOUNT_MINOR", 1_000_000),
        fraud_high_amount_multiplier=_float("FRAUD_HIGH_AMOUNT_MULTIPLIER", 3.0),
        fraud_new_customer_days=_int("FRAUD_NEW_CUSTOMER_DAYS", 7),
        fraud_new_customer_min_purchases=_int("FRAUD_NEW_CUSTOMER_MIN_PURCHASES", 3),
        fraud_rejection_rate_percent=_float("FRAUD_REJECTION_RATE_PERCENT", 30.0),
        fraud_repeated_amount_window=_int("FRAUD_REPEATED_AMOUNT_WINDOW", 5),
        fraud_repeated_amount_min=_int("FRAUD_REPEATED_AMOUNT_MIN", 3),
        expiry_sweep_cron=os.getenv("EXPIRY_SWEEP_CRON") or "*/5 * * * *",
        notification_max_attempts=_int("NOTIFICATION_MAX_ATTEMPTS", 5),
        notification_batch_size=_int("NOTIFICATION_BATCH_SIZE", 50),
        whatsapp_api_url=os.getenv("WHATSAPP_API_URL") or None,
        whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID") or None,
        whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN") or None,
    )


settings = load_settings()
