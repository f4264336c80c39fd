"""Django app configuration for django_diveops."""

from django.apps import AppConfig


class DjangoDiveopsConfig(AppConfig):
    """Configuration for the dive operations app."""

    name = "django_diveops"
    label = "diveops"
    verbose_name = "Dive Operations"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from . import receivers  # noqa: F401
