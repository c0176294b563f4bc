"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields so the
service starts in a development environment without any setup.
Credentials that belong to a single organizer (payment gateway keys,
webhook secrets, mail provider keys) are stored in the ``organizers``
table rather than here.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Evntly API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    # Signing key and claims for organizer bearer tokens.
    secret_key: str = os.getenv("JWT_SECRET", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 14)))
    algorithm: str = os.getenv("ALGORITHM", "HS256")
    token_issuer: str = os.getenv("JWT_ISSUER", "evntly-api")
    token_audience: str = os.getenv("JWT_AUDIENCE", "evntly-organizers")

    # Path to the SQLite database file.  Relative paths are resolved
    # against the package root by the ``db`` module.
    database_url: str = os.getenv("DATABASE_URL", "evntly.db")
    # Seconds a connection waits for the write lock before giving up.
    database_timeout: float = float(os.getenv("DATABASE_TIMEOUT", "30"))

    # Shared secret for the status sweep endpoint.  An empty value
    # disables the endpoint.
    cron_secret: str = os.getenv("CRON_SECRET", "")
    status_sweep_interval: int = int(os.getenv("STATUS_SWEEP_INTERVAL", "300"))

    # Comma-separated list of origins allowed by CORS.
    allowed_origins: str = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")

    currency: str = os.getenv("PAYMENT_CURRENCY", "INR")
    max_tickets_per_registration: int = int(os.getenv("MAX_TICKETS_PER_REGISTRATION", "4"))

    razorpay_api_url: str = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")
    gateway_timeout: float = float(os.getenv("GATEWAY_TIMEOUT", "15"))
    gateway_max_attempts: int = int(os.getenv("GATEWAY_MAX_ATTEMPTS", "3"))

    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com")
    mail_timeout: float = float(os.getenv("MAIL_TIMEOUT", "10"))


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables
# must be set before this module is imported.
settings = Settings()
