# config/settings.py
import os
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: str) -> list:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class Settings:
    APP_NAME: str = os.getenv("APP_NAME", "Stride Store API")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # --- Database ---
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "stride_store")
    MONGO_USE_TRANSACTIONS: bool = _as_bool(os.getenv("MONGO_USE_TRANSACTIONS", "false"))

    # --- Auth ---
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "changeme")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))  # 7 days
    ADMIN_EMAILS: list = [e.lower() for e in _as_list(os.getenv("ADMIN_EMAILS", ""))]
    RESET_TOKEN_TTL_MINUTES: int = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))
    RESET_REQUESTS_PER_HOUR: int = int(os.getenv("RESET_REQUESTS_PER_HOUR", "3"))

    # --- Storefront rules ---
    FREE_SHIPPING_THRESHOLD: float = float(os.getenv("FREE_SHIPPING_THRESHOLD", "100"))
    FLAT_SHIPPING_COST: float = float(os.getenv("FLAT_SHIPPING_COST", "10"))
    TAX_RATE: float = float(os.getenv("TAX_RATE", "0.08"))
    MAX_ADDRESSES_PER_USER: int = int(os.getenv("MAX_ADDRESSES_PER_USER", "10"))

    # --- Web ---
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    CORS_ORIGINS: list = _as_list(os.getenv("CORS_ORIGINS", "*"))

    # --- Email ---
    SMTP_HOST: str = os.getenv("SMTP_HOST")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "no-reply@stride.store")


settings = Settings()
