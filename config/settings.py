"""
Bazaar – Django Settings (Infrastructure Only)
================================================
Django hosts the ORM store and the settings surface for the order
core. The engines do not import Django; only adapters.django_store
and core.config.load_rules read from here.
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get("BAZAAR_SECRET_KEY", "bazaar-dev-key-replace-before-deployment")

DEBUG = os.environ.get("BAZAAR_DEBUG", "1") == "1"

ALLOWED_HOSTS = []

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "adapters.django_store",
]

MIDDLEWARE = []

# ── Database ──────────────────────────────────────────────────
# SQLite for development. Production DB configured separately.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("BAZAAR_DB_PATH", BASE_DIR / "db.sqlite3"),
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Marketplace Rules ─────────────────────────────────────────
# Read by core.config.load_rules(); keys match MarketplaceRules fields.
BAZAAR = {
    "DEFAULT_COMMISSION_PERCENT": os.environ.get("BAZAAR_DEFAULT_COMMISSION_PERCENT", "10"),
    "HOLDING_PERIOD_DAYS": int(os.environ.get("BAZAAR_HOLDING_PERIOD_DAYS", "7")),
    "PROCESSING_WINDOW_DAYS": 30,
    "GATEWAY_MAX_ATTEMPTS": 3,
    "GATEWAY_TIMEOUT_SECONDS": 10.0,
    "MAX_EVIDENCE_URLS": 5,
    "CURRENCY": "USD",
    "RESTOCK_ON_REFUND": True,
}

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        "bazaar": {
            "handlers": ["console"],
            "level": os.environ.get("BAZAAR_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
    },
}
