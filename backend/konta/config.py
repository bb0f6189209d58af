# backend/konta/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/konta.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///konta.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Unit prices are tax-inclusive; this is the rate used for new products
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "1900"))
    CURRENCY = os.environ.get("CURRENCY", "COP")

    # Issuer data for the DIAN electronic invoice document
    COMPANY_NAME = os.environ.get("COMPANY_NAME", "KONTA S.A.S.")
    COMPANY_NIT = os.environ.get("COMPANY_NIT", "900000000")
    DIAN_RESOLUTION_NUMBER = os.environ.get("DIAN_RESOLUTION_NUMBER", "18760000001")
    DIAN_TECHNICAL_KEY = os.environ.get("DIAN_TECHNICAL_KEY", "")
    DIAN_ENVIRONMENT = os.environ.get("DIAN_ENVIRONMENT", "2")  # 1 = production, 2 = test

    CORS_ALLOWED_ORIGINS = _csv_env(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )
