"""
Django settings for the Kigali transit backend.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"
ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "transit",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
]

ROOT_URLCONF = "kigali_transit.urls"
WSGI_APPLICATION = "kigali_transit.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Africa/Kigali"
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

TRANSIT_CONFIG = {
    "feed_url": os.environ.get("TRANSIT_FEED_URL", ""),
    "timeout_seconds": float(os.environ.get("TRANSIT_FEED_TIMEOUT", "10")),
    "average_speed_kmh": 30.0,
    "jitter_degrees": 0.001,
    "report_window_seconds": 3600,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "transit": {
            "handlers": ["console"],
            "level": os.environ.get("TRANSIT_LOG_LEVEL", "INFO"),
        },
    },
}
