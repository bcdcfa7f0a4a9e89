"""
Application configuration.

Every setting is read from the environment once at import time, with
defaults that are safe for local development. Production deployments
override the secrets and service credentials through the environment.
"""

import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ──────────────────────────────────────────────────────────────
# Database
# ──────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./virtuclass.db")

# ──────────────────────────────────────────────────────────────
# Tokens and password hashing
# ──────────────────────────────────────────────────────────────
JWT_SECRET = os.getenv("JWT_SECRET", "dev_jwt_secret_change_me")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "dev_refresh_secret_change_me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 15)
REFRESH_TOKEN_EXPIRE_DAYS = _env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7)
GOOGLE_STATE_EXPIRE_MINUTES = 10

BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
VERIFICATION_TOKEN_TTL_HOURS = _env_int("VERIFICATION_TOKEN_TTL_HOURS", 24)
RESET_TOKEN_TTL_HOURS = _env_int("RESET_TOKEN_TTL_HOURS", 1)

# ──────────────────────────────────────────────────────────────
# Mail
# ──────────────────────────────────────────────────────────────
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@virtuclass.local")

# ──────────────────────────────────────────────────────────────
# URLs and CORS
# ──────────────────────────────────────────────────────────────
APP_URL = os.getenv("APP_URL", "http://localhost:5173")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8080")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]

# ──────────────────────────────────────────────────────────────
# Google Calendar (Meet links)
# ──────────────────────────────────────────────────────────────
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_OAUTH_REDIRECT = os.getenv("GOOGLE_OAUTH_REDIRECT", "http://localhost:8000/api/google/oauth/callback")

# ──────────────────────────────────────────────────────────────
# Cloudinary (resource uploads)
# ──────────────────────────────────────────────────────────────
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "virtuclass/resources")
MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_BYTES", 50 * 1024 * 1024)

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
