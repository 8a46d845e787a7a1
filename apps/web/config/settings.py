"""
Django settings for MenuSync.

Secrets and endpoints come from the environment - never hardcode credentials.
Run with: DATABASE_URL=... SECRET_KEY=... python apps/web/manage.py runserver
"""

from pathlib import Path

import environ  # type: ignore[import-untyped]

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Initialize environ
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1", "testserver"]),
    LOG_LEVEL=(str, "INFO"),
    HTTP_TIMEOUT_SECONDS=(float, 30.0),
    TOKEN_CACHE_TTL_SECONDS=(int, 3000),
    # POS
    POS_API_BASE_URL=(str, "https://api.pos.invalid/v5"),
    POS_ORDER_TYPE=(int, 1),
    POS_ORDER_TYPE_DELIVERY=(int, 3),
    POS_ORDER_TYPE_PICKUP=(int, 2),
    POS_ORDER_SOURCE=(int, 2),
    POS_ORDER_STATUS=(int, 1),
    POS_ORDER_GUESTS=(int, 1),
    POS_ORDER_DISCOUNT_TYPE=(int, 1),
    # Marketplace
    MARKETPLACE_API_BASE_URL=(str, "https://api.marketplace.invalid"),
    MARKETPLACE_CALLBACK_BASE_URL=(str, ""),
    MARKETPLACE_DEFAULT_VENDOR_CODE=(str, ""),
    MARKETPLACE_MENU_GROUPS_ENABLED=(bool, False),
    MARKETPLACE_MENU_GROUPS_SORT_ORDER=(str, "after"),
    MARKETPLACE_MENU_GROUPS_CATEGORY_PREFIX=(str, "group-"),
    # Dispatch and retention
    ORDER_DISPATCH_MAX_ATTEMPTS=(int, 3),
    IDEMPOTENCY_RETENTION_DAYS=(int, 30),
    MAPPING_RETENTION_DAYS=(int, 90),
    PROCESSING_LEASE_SECONDS=(int, 300),
)

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY", default="insecure-dev-key-change-me")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env("DEBUG")

ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Local apps
    "apps.web.core",
    "apps.web.pos",
    "apps.web.marketplace",
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

ROOT_URLCONF = "apps.web.config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# Database
# https://docs.djangoproject.com/en/5.1/ref/settings/#databases
# Connection string: DATABASE_URL (SQLite for local development)
DATABASES = {
    "default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}

# Password validation
_V = "django.contrib.auth.password_validation"
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": f"{_V}.UserAttributeSimilarityValidator"},
    {"NAME": f"{_V}.MinimumLengthValidator"},
    {"NAME": f"{_V}.CommonPasswordValidator"},
    {"NAME": f"{_V}.NumericPasswordValidator"},
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR.parent.parent / "staticfiles"

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Outbound HTTP
# =============================================================================

HTTP_TIMEOUT_SECONDS = env("HTTP_TIMEOUT_SECONDS")
TOKEN_CACHE_TTL_SECONDS = env("TOKEN_CACHE_TTL_SECONDS")

# =============================================================================
# POS
# =============================================================================

POS_API_BASE_URL = env("POS_API_BASE_URL")
POS_ORDER_TYPE = env("POS_ORDER_TYPE")
POS_ORDER_TYPE_DELIVERY = env("POS_ORDER_TYPE_DELIVERY")
POS_ORDER_TYPE_PICKUP = env("POS_ORDER_TYPE_PICKUP")
POS_ORDER_SOURCE = env("POS_ORDER_SOURCE")
POS_ORDER_STATUS = env("POS_ORDER_STATUS")
POS_ORDER_GUESTS = env("POS_ORDER_GUESTS")
POS_ORDER_DISCOUNT_TYPE = env("POS_ORDER_DISCOUNT_TYPE")

# =============================================================================
# Marketplace
# =============================================================================

MARKETPLACE_API_BASE_URL = env("MARKETPLACE_API_BASE_URL")
MARKETPLACE_CALLBACK_BASE_URL = env("MARKETPLACE_CALLBACK_BASE_URL")
MARKETPLACE_DEFAULT_VENDOR_CODE = env("MARKETPLACE_DEFAULT_VENDOR_CODE")
MARKETPLACE_MENU_GROUPS_ENABLED = env("MARKETPLACE_MENU_GROUPS_ENABLED")
MARKETPLACE_MENU_GROUPS_SORT_ORDER = env("MARKETPLACE_MENU_GROUPS_SORT_ORDER")
MARKETPLACE_MENU_GROUPS_CATEGORY_PREFIX = env("MARKETPLACE_MENU_GROUPS_CATEGORY_PREFIX")

ORDER_DISPATCH_MAX_ATTEMPTS = env("ORDER_DISPATCH_MAX_ATTEMPTS")
IDEMPOTENCY_RETENTION_DAYS = env("IDEMPOTENCY_RETENTION_DAYS")
MAPPING_RETENTION_DAYS = env("MAPPING_RETENTION_DAYS")

# A claimed queue row or Started idempotency record untouched for this long
# belongs to a dead worker and may be taken over
PROCESSING_LEASE_SECONDS = env("PROCESSING_LEASE_SECONDS")

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL = env("LOG_LEVEL")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "apps": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
        },
    },
}
