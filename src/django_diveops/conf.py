"""Configuration helpers for django-diveops."""

from django.conf import settings


DEFAULTS = {
    "DEFAULT_MAX_ASCENT_RATE": 10.0,
    "MIN_ASCENT_INTERVAL_SECONDS": 1,
    "RULE_CACHE_SECONDS": 30,
    "ESCALATION_INTERVAL_MINUTES": 15,
    "ESCALATION_PRIORITIES": ["critical", "emergency"],
    "ALERT_NOTIFIER": "django_diveops.notifications.LoggingAlertNotifier",
}


def get_setting(name: str, default=None):
    """Get a setting with DIVEOPS_ prefix, falling back to package defaults."""
    if default is None:
        default = DEFAULTS.get(name)
    return getattr(settings, f"DIVEOPS_{name}", default)
