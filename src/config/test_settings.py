"""Settings overrides for the pytest run.

``SECRET_KEY`` is seeded before the base settings import so the fail-fast
lookup in ``config.settings`` is satisfied without a local ``.env``.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-only-insecure-livemart-key")

from config.settings import *  # noqa: E402,F401,F403

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "livemart-tests",
    }
}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

DELIVERY_OTP_TTL_MINUTES = 30
