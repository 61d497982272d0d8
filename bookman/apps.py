"""
Django Bookman app configuration.
"""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class BookmanConfig(AppConfig):
    """Bookman application configuration."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "bookman"
    verbose_name = _("Reservas")

    def ready(self):
        """Import signal handlers when app is ready."""
        from bookman.signals import handlers  # noqa: F401
