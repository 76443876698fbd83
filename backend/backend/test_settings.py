"""
Settings for the test suite.

Side effects run inline so ``captureOnCommitCallbacks(execute=True)``
delivers them on the test's own connection.
"""

from .settings import *  # noqa: F401,F403
from .settings import BASE_DIR, LEDGER, SIDE_EFFECTS

# Threaded TransactionTestCases need a file-backed database.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": str(BASE_DIR / "test_cases.sqlite3"),
        "OPTIONS": {
            "timeout": 5,
            "transaction_mode": "IMMEDIATE",
        },
        "TEST": {"NAME": str(BASE_DIR / "test_cases.sqlite3")},
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

SIDE_EFFECTS = {
    **SIDE_EFFECTS,
    "RUN_SYNC": True,
    "EMAIL_ENABLED": True,
    "NOTIFICATION_SENDER": "core.domain.notifications.EmailNotificationSender",
}

LEDGER = {
    **LEDGER,
    "ENABLED": False,
}

NOTIFICATION_SUBJECT_PREFIX = "[PPKPT]"
