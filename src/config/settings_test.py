"""Settings used by the pytest suite.

Provides deterministic values for the variables ``config.settings``
refuses to default, then swaps external services for in-process ones.
"""

import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")

from config.settings import *  # noqa: E402,F401,F403

if DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3":  # noqa: F405
    # File-backed so threads in transactional tests share one database.
    DATABASES["default"]["TEST"] = {  # noqa: F405
        "NAME": os.path.join(tempfile.gettempdir(), "storefront-tests.sqlite3"),
    }
    DATABASES["default"]["OPTIONS"] = {  # noqa: F405
        "timeout": 20,
        "transaction_mode": "IMMEDIATE",
    }

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "storefront-tests",
    }
}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

PAYMENT_GATEWAY = {
    **PAYMENT_GATEWAY,  # noqa: F405
    "BASE_URL": "https://gateway.test/v2",
    "TOKEN_URL": "https://gateway.test/v2/token",
    "CLIENT_ID": "test-client",
    "CLIENT_SECRET": "test-secret",
    "JWKS_URL": "https://gateway.test/.well-known/jwks.json",
    "WEBHOOK_URL": "https://shop.test/api/v1/payments/webhook/",
}
