# backend/codebook/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Document store; SQLite file in the instance folder by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///codebook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Password hashing cost; tests lower it
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Bearer tokens
    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-jwt-secret-change-me")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_DAYS = int(os.environ.get("JWT_EXPIRES_DAYS", "7"))

    # Stripe
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")
    # Deployment policy: refuse orders whose payment intent has not succeeded
    REQUIRE_VERIFIED_PAYMENT = _env_flag("REQUIRE_VERIFIED_PAYMENT")

    # Shippo
    SHIPPO_API_KEY = os.environ.get("SHIPPO_API_KEY")
    SHIPPO_BASE_URL = os.environ.get("SHIPPO_BASE_URL", "https://api.goshippo.com")
    SHIPPO_FROM_ADDRESS = {
        "name": os.environ.get("SHIPPO_FROM_NAME", "CodeBook Store"),
        "street1": os.environ.get("SHIPPO_FROM_STREET1", "123 Main St"),
        "city": os.environ.get("SHIPPO_FROM_CITY", "New York"),
        "state": os.environ.get("SHIPPO_FROM_STATE", "NY"),
        "zip": os.environ.get("SHIPPO_FROM_ZIP", "10001"),
        "country": os.environ.get("SHIPPO_FROM_COUNTRY", "US"),
        "phone": os.environ.get("SHIPPO_FROM_PHONE", "+1 555 123 4567"),
        "email": os.environ.get("SHIPPO_FROM_EMAIL", "shipping@codebook.local"),
    }

    # Brevo transactional email
    BREVO_API_KEY = os.environ.get("BREVO_API_KEY")
    BREVO_BASE_URL = os.environ.get("BREVO_BASE_URL", "https://api.brevo.com/v3")
    BREVO_SENDER_EMAIL = os.environ.get("BREVO_SENDER_EMAIL", "noreply@codebook.local")
    BREVO_SENDER_NAME = os.environ.get("BREVO_SENDER_NAME", "CodeBook")
    ADMIN_NOTIFICATION_EMAIL = os.environ.get("BREVO_ADMIN_EMAIL")

    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10"))

    # Demo accounts (seeded, immutable)
    GUEST_LOGIN_EMAIL = os.environ.get("GUEST_LOGIN_EMAIL", "test@example.com")
    GUEST_LOGIN_PASSWORD = os.environ.get("GUEST_LOGIN_PASSWORD", "guest-password")
    ADMIN_LOGIN_EMAIL = os.environ.get("ADMIN_LOGIN_EMAIL", "admin@example.com")
    ADMIN_LOGIN_PASSWORD = os.environ.get("ADMIN_LOGIN_PASSWORD", "admin-password")

    # Used when building links embedded in emails
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3000")
