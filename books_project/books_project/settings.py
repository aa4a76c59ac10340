"""
Django settings for books_project.

Everything deployment-specific comes from the environment:
DJANGO_SECRET_KEY, DJANGO_DEBUG, DJANGO_ALLOWED_HOSTS, DATABASE_URL, REDIS_URL.
"""
import os
from decimal import Decimal
from pathlib import Path

import dj_database_url
from celery.schedules import crontab

from .logging_config import get_logging_config

BASE_DIR = Path(__file__).resolve().parent.parent


def _get_bool_env(name, default):
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = _get_bool_env("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Project apps
    "books_core.apps.BooksCoreConfig",
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

ROOT_URLCONF = "books_project.urls"

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
    }
]

# SQLite locally and in tests; PostgreSQL in production via DATABASE_URL
default_db = "sqlite:///" + str((BASE_DIR / "db.sqlite3").resolve())
DATABASES = {"default": dj_database_url.parse(os.getenv("DATABASE_URL", default_db), conn_max_age=60)}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

LOGGING = get_logging_config(debug=DEBUG)

# ---------- Celery ----------
CELERY_BROKER_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = _get_bool_env("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_BEAT_SCHEDULE = {
    # nightly replay of every ledger against stored account balances
    "verify-all-ledgers": {
        "task": "books_core.tasks.verify_all_ledgers",
        "schedule": crontab(hour=2, minute=0),
    },
}

# ---------- Books engine ----------
# Post Inventory/COGS on invoices and route bill lines for tracked products to Inventory
BOOKS_POST_COGS = _get_bool_env("BOOKS_POST_COGS", False)
# Largest |assets - (liabilities + equity)| the balance sheet tolerates
BOOKS_BALANCE_EPSILON = Decimal(os.getenv("BOOKS_BALANCE_EPSILON", "0.01"))
