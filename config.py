"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Cookie expired on global sign-out (client-side profile cache)
    SESSION_CACHE_COOKIE = os.getenv('SESSION_CACHE_COOKIE', 'agency_profile_cache')

    # Platform identity propagated by a trusted edge layer
    TRUST_UPSTREAM_IDENTITY = os.getenv('TRUST_UPSTREAM_IDENTITY', 'false').lower() == 'true'
    UPSTREAM_USER_HEADER = os.getenv('UPSTREAM_USER_HEADER', 'X-Authenticated-User-Id')

    # Tenant hints: X-Tenant-Id header, or <subdomain>.<TENANT_BASE_DOMAIN>
    TENANT_BASE_DOMAIN = os.getenv('TENANT_BASE_DOMAIN', '')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'agency')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'agency')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'agency')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Portal sessions
    PORTAL_SESSION_TTL_HOURS = int(os.getenv('PORTAL_SESSION_TTL_HOURS', '24'))
    MAGIC_LINK_TTL_MINUTES = int(os.getenv('MAGIC_LINK_TTL_MINUTES', '60'))

    # One-time codes
    OTP_TTL_MINUTES = int(os.getenv('OTP_TTL_MINUTES', '10'))
    OTP_CODE_LENGTH = int(os.getenv('OTP_CODE_LENGTH', '6'))

    # Scheduled cleanup job (Authorization: Bearer <CRON_SECRET>)
    CRON_SECRET = os.getenv('CRON_SECRET')

    # Rate limiting: 'sql' (database windows, swept by cleanup) or 'redis'
    RATE_LIMIT_BACKEND = os.getenv('RATE_LIMIT_BACKEND', 'sql').lower()
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    RATE_LIMIT_KEY_PREFIX = os.getenv('RATE_LIMIT_KEY_PREFIX', 'agency:ratelimit')
    # Read CF-Connecting-IP / X-Forwarded-For only behind an edge that overwrites them
    TRUST_PROXY_HEADERS = os.getenv('TRUST_PROXY_HEADERS', 'false').lower() == 'true'

    # Email configuration (one-time codes)
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'

    # Product name used in outgoing emails
    PRODUCT_NAME = os.getenv('PRODUCT_NAME', 'Agency Portal')
