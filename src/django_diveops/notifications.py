"""Alert notification delivery.

Delivery itself (push, email, SMS) belongs to the host project. It plugs
in a notifier class via the DIVEOPS_ALERT_NOTIFIER setting:

    DIVEOPS_ALERT_NOTIFIER = "myproject.alerts.PushAlertNotifier"

    class PushAlertNotifier(BaseAlertNotifier):
        def notify(self, recipient, dive, alerts):
            send_push(recipient, f"{len(alerts)} safety alert(s) on {dive.code}")
"""

import logging
from functools import lru_cache
from importlib import import_module

from .conf import get_setting
from .exceptions import NotifierLoadError

logger = logging.getLogger(__name__)


class BaseAlertNotifier:
    """Base class for alert notifiers. Both hooks default to no-ops."""

    def notify(self, recipient, dive, alerts) -> None:
        """
        Notify the supervisor owning a dive about newly raised alerts.

        Args:
            recipient: The supervisor user, None if the dive has no supervisor
            dive: The Dive the alerts belong to
            alerts: List of SafetyAlert created in one evaluation pass
        """

    def escalate(self, alert, escalation) -> None:
        """
        Notify about an alert that stayed unacknowledged too long.

        Args:
            alert: The escalated SafetyAlert
            escalation: The AlertEscalation just recorded
        """


class LoggingAlertNotifier(BaseAlertNotifier):
    """Notifier that only logs (default, and for development)."""

    def notify(self, recipient, dive, alerts) -> None:
        for alert in alerts:
            logger.warning(
                f"SAFETY ALERT [{alert.priority}] {alert.type} on dive {dive.code} "
                f"(supervisor: {recipient or 'none'}): {alert.message}"
            )

    def escalate(self, alert, escalation) -> None:
        logger.warning(
            f"ESCALATED (level {escalation.level}) [{alert.priority}] {alert.type} "
            f"on dive {alert.dive.code}: {alert.message}"
        )


@lru_cache(maxsize=16)
def load_notifier(dotted_path: str) -> BaseAlertNotifier:
    """
    Import and instantiate a notifier from dotted path.

    Raises NotifierLoadError for bad imports or non-subclass notifiers.
    """
    try:
        module_path, class_name = dotted_path.rsplit(".", 1)
    except ValueError:
        raise NotifierLoadError(dotted_path, "Invalid dotted path format")

    try:
        module = import_module(module_path)
    except ImportError as e:
        raise NotifierLoadError(dotted_path, f"Cannot import module: {e}")

    try:
        notifier_class = getattr(module, class_name)
    except AttributeError:
        raise NotifierLoadError(dotted_path, f"Class '{class_name}' not found in module")

    if not isinstance(notifier_class, type) or not issubclass(notifier_class, BaseAlertNotifier):
        raise NotifierLoadError(
            dotted_path,
            f"'{class_name}' must be a subclass of BaseAlertNotifier"
        )

    return notifier_class()


def get_notifier() -> BaseAlertNotifier:
    """Get the notifier configured by DIVEOPS_ALERT_NOTIFIER."""
    return load_notifier(get_setting("ALERT_NOTIFIER"))


def clear_notifier_cache():
    """Clear the notifier loading cache. Useful for testing."""
    load_notifier.cache_clear()


def get_alert_recipient(dive):
    """Supervisor owning a dive: its own supervisor, else its team's supervisor."""
    if dive.supervisor_id is not None:
        return dive.supervisor
    operation = dive.operation
    if operation is not None and operation.team is not None:
        return operation.team.supervisor
    return None
