# backend/backoffice/config.py
from __future__ import annotations
import os


def _split_origins(value: str) -> set[str]:
    return {origin.strip() for origin in value.split(",") if origin.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Settlement currency; foreign tenders are converted into it
    BASE_CURRENCY = os.environ.get("BASE_CURRENCY", "EUR")

    EXCHANGE_RATE_API_URL = os.environ.get(
        "EXCHANGE_RATE_API_URL",
        "https://open.er-api.com/v6/latest",
    )
    EXCHANGE_RATE_TTL_SECONDS = int(os.environ.get("EXCHANGE_RATE_TTL_SECONDS", "3600"))
    EXCHANGE_RATE_TIMEOUT_SECONDS = float(os.environ.get("EXCHANGE_RATE_TIMEOUT_SECONDS", "5"))

    CORS_ALLOWED_ORIGINS = _split_origins(
        os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        )
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    EXCHANGE_RATE_API_URL = "http://rates.test/latest"
