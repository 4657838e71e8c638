"""
Test settings.

SQLite on disk so threaded tests share one database. Immediate transactions
take the write lock at BEGIN, which makes concurrent writers queue instead
of failing with "database is locked".
"""

from .base import *  # noqa: F403
from .base import BASE_DIR

DEBUG = False
ALLOWED_HOSTS = ["testserver"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test.sqlite3",
        "OPTIONS": {
            "transaction_mode": "IMMEDIATE",
            "timeout": 20,
        },
        "TEST": {
            "NAME": BASE_DIR / "test.sqlite3",
        },
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
