import os
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

from .logging_config import get_logging_config

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = os.getenv("DJANGO_DEBUG", "False") == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "ledger_core.apps.LedgerCoreConfig",
]

USE_TZ = True
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ---------- Database ----------
# DATABASE_URL selects the backend (postgres://... in production)
DATABASES = {
    "default": dj_database_url.config(
        env="DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=int(os.getenv("DB_CONN_MAX_AGE", "0")),
    )
}

if DATABASES["default"]["ENGINE"].endswith("sqlite3"):
    # BEGIN IMMEDIATE takes the write lock up front so concurrent
    # voucher writers queue on the busy timeout instead of deadlocking
    DATABASES["default"].setdefault("OPTIONS", {}).update(
        {
            "transaction_mode": "IMMEDIATE",
            "timeout": int(os.getenv("SQLITE_TIMEOUT", "20")),
        }
    )
    # File-backed test DB so worker threads share one database
    DATABASES["default"]["TEST"] = {"NAME": str(BASE_DIR / "test_db.sqlite3")}

# ---------- Logging ----------
LOGGING = get_logging_config(DEBUG)

# ---------- Celery ----------
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "cache+memory://")
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "False") == "True"
CELERY_TASK_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]

# ---------- Ledger engine ----------
# Hard cap on list_vouchers page size regardless of the requested limit
LEDGER_VOUCHER_LIST_MAX_LIMIT = 200
LEDGER_VOUCHER_LIST_DEFAULT_LIMIT = 50
LEDGER_BILL_LIST_MAX_LIMIT = 200
# Flat percentage applied by run_depreciation when no rate is passed
LEDGER_DEPRECIATION_DEFAULT_RATE = os.getenv("LEDGER_DEPRECIATION_DEFAULT_RATE", "10")
# Ledger group categories treated as depreciable assets
LEDGER_DEPRECIATION_ASSET_CATEGORIES = [
    category.strip()
    for category in os.getenv(
        "LEDGER_DEPRECIATION_ASSET_CATEGORIES", "FIXED_ASSET"
    ).split(",")
    if category.strip()
]
LEDGER_BILL_REMINDER_DAYS = int(os.getenv("LEDGER_BILL_REMINDER_DAYS", "7"))
LEDGER_ENFORCE_CREDIT_LIMITS = os.getenv("LEDGER_ENFORCE_CREDIT_LIMITS", "True") == "True"
