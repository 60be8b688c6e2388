import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret_change_me")
DEVELOPMENT_MODE = os.getenv("DEVELOPMENT_MODE", "dev").lower()
DEBUG = DEVELOPMENT_MODE == "dev"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "wallets",
    "chats",
    "market",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "wallets.middleware.RequestResponseLoggingMiddleware",
]

ROOT_URLCONF = "tradeguru.urls"

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
            ]
        },
    }
]

WSGI_APPLICATION = "tradeguru.wsgi.application"

if DEVELOPMENT_MODE.startswith("dev"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DATABASE_NAME"),
            "USER": os.getenv("DATABASE_USER"),
            "PASSWORD": os.getenv("DATABASE_PASSWORD"),
            "HOST": os.getenv("DATABASE_HOST", "db"),
            "PORT": os.getenv("DATABASE_PORT", "5432"),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "tradeguru.authentication.ForwardedPrincipalAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "UNAUTHENTICATED_USER": None,
}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
    },
}

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "False") == "True"
CELERY_TIMEZONE = TIME_ZONE

EXPIRY_SWEEP_INTERVAL = int(os.getenv("EXPIRY_SWEEP_INTERVAL", 30))
EXPIRY_COUNTDOWN_HORIZON = int(os.getenv("EXPIRY_COUNTDOWN_HORIZON", 6 * 3600))
LEDGER_RECONCILE_INTERVAL = int(os.getenv("LEDGER_RECONCILE_INTERVAL", 3600))

CELERY_BEAT_SCHEDULE = {
    "sweep-expired-sessions": {
        "task": "chats.tasks.sweep_expired_sessions",
        "schedule": timedelta(seconds=EXPIRY_SWEEP_INTERVAL),
    },
    "reconcile-wallet-balances": {
        "task": "wallets.tasks.reconcile_wallet_balances",
        "schedule": timedelta(seconds=LEDGER_RECONCILE_INTERVAL),
    },
}

# Session opening
SESSION_OPEN_MAX_ATTEMPTS = int(os.getenv("SESSION_OPEN_MAX_ATTEMPTS", 3))
SESSION_OPEN_RETRY_DELAY = float(os.getenv("SESSION_OPEN_RETRY_DELAY", 0.05))

SUBSCRIPTION_WEEK_DAYS = 7
SUBSCRIPTION_MONTH_DAYS = 30

# Message feed
FEED_POLL_INTERVAL = float(os.getenv("FEED_POLL_INTERVAL", 1.0))
FEED_PAGE_SIZE = int(os.getenv("FEED_PAGE_SIZE", 100))
MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", 4000))

# Simulated wallet recharge
RECHARGE_MAX_AMOUNT = int(os.getenv("RECHARGE_MAX_AMOUNT", 1_000_000))

# Price-quote collaborator
QUOTE_SERVICE_BASE_URL = os.getenv("QUOTE_SERVICE_BASE_URL", "http://localhost:8020")
QUOTE_SERVICE_TIMEOUT = int(os.getenv("QUOTE_SERVICE_TIMEOUT", 10))
