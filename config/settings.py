"""Django settings for the listing feed sync project.

Values are read from the environment; a ``.env`` file at the project root
is loaded first when present.
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-listing-feed-sync-dev")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_filters",
    "listings",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# Database
DB_ENGINE = os.getenv("DB_ENGINE", "django.db.backends.sqlite3")
if DB_ENGINE.endswith("sqlite3"):
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": os.getenv("DB_NAME", "listings"),
            "USER": os.getenv("DB_USER", ""),
            "PASSWORD": os.getenv("DB_PASSWORD", ""),
            "HOST": os.getenv("DB_HOST", "localhost"),
            "PORT": os.getenv("DB_PORT", ""),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Listing feed sync
LISTING_FEED_URL = os.getenv("LISTING_FEED_URL") or None
LISTING_FEED_TIMEOUT = float(os.getenv("LISTING_FEED_TIMEOUT", "60"))
LISTING_SYNC_TICK_SECONDS = float(os.getenv("LISTING_SYNC_TICK_SECONDS", "900"))
LISTING_SYNC_STARTUP_DELAY = float(os.getenv("LISTING_SYNC_STARTUP_DELAY", "5"))
LISTING_SYNC_TRIGGER_WAIT = float(os.getenv("LISTING_SYNC_TRIGGER_WAIT", "0.1"))
LISTING_SYNC_STALE_AFTER = timedelta(
    hours=float(os.getenv("LISTING_SYNC_STALE_AFTER_HOURS", "6"))
)
LISTING_SYNC_INTERVAL_ANCHOR_HOUR = int(
    os.getenv("LISTING_SYNC_INTERVAL_ANCHOR_HOUR", "0")
)
LISTING_SYNC_LOG_LEVEL = os.getenv("LISTING_SYNC_LOG_LEVEL", "INFO")
LISTING_SYNC_CRON_SECRET = os.getenv("LISTING_SYNC_CRON_SECRET") or None

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "listings": {
            "handlers": ["console"],
            "level": LISTING_SYNC_LOG_LEVEL,
            "propagate": False,
        },
    },
}
