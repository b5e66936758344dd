# backend/configurator/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Flask session signing; not used for API tokens
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/configurator.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///configurator.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Access tokens (bearer, short-lived)
    JWT_SECRET = os.environ.get("JWT_SECRET", "default-secret-change-me")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_ACCESS_EXPIRES_MINUTES = _env_int("JWT_ACCESS_EXPIRES_MINUTES", 24 * 60)

    # Refresh tokens (signed, hashed server-side record)
    JWT_REFRESH_SECRET = os.environ.get("JWT_REFRESH_SECRET", "default-refresh-secret-change-me")
    JWT_REFRESH_EXPIRES_DAYS = _env_int("JWT_REFRESH_EXPIRES_DAYS", 7)

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EUR")

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:4200,http://localhost:3000",
        ).split(",")
        if origin.strip()
    ]

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
