from tradeguru.settings import *  # noqa: F401,F403

# File-backed so threaded tests share one database; IMMEDIATE makes every
# atomic block take the write lock up front, serializing concurrent writers.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test.sqlite3",  # noqa: F405
        "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
        "TEST": {"NAME": BASE_DIR / "test_db.sqlite3"},  # noqa: F405
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

SESSION_OPEN_RETRY_DELAY = 0
FEED_POLL_INTERVAL = 0.01
