"""
Django settings for Bookman tests.

Includes all apps needed to run the full Bookman test suite.
"""

SECRET_KEY = "test-secret-key-for-bookman-tests"

DEBUG = True

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "simple_history",
    "bookman",
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

BOOKMAN = {
    "DEFAULT_PRICING_STRATEGY": "lowest",
}
