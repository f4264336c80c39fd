"""Tests for notifier loading and recipient resolution."""

import pytest

from django_diveops.exceptions import NotifierLoadError
from django_diveops.models import Dive
from django_diveops.notifications import (
    BaseAlertNotifier,
    LoggingAlertNotifier,
    get_alert_recipient,
    get_notifier,
    load_notifier,
)
from django_diveops.services import append_depth_sample


class TestLoadNotifier:
    """Tests for load_notifier."""

    def test_default_notifier(self):
        assert isinstance(get_notifier(), LoggingAlertNotifier)

    def test_configured_notifier(self, settings):
        settings.DIVEOPS_ALERT_NOTIFIER = "django_diveops.notifications.BaseAlertNotifier"

        notifier = get_notifier()

        assert type(notifier) is BaseAlertNotifier

    def test_cached_instance(self):
        assert get_notifier() is get_notifier()

    @pytest.mark.parametrize("path,reason", [
        ("nodots", "Invalid dotted path format"),
        ("no_such_module.Notifier", "Cannot import module"),
        ("django_diveops.notifications.MissingNotifier", "not found in module"),
        ("django_diveops.notifications.get_notifier", "must be a subclass of BaseAlertNotifier"),
        ("django_diveops.models.Dive", "must be a subclass of BaseAlertNotifier"),
    ])
    def test_invalid_paths(self, path, reason):
        with pytest.raises(NotifierLoadError) as exc_info:
            load_notifier(path)

        assert exc_info.value.path == path
        assert reason in exc_info.value.reason


@pytest.mark.django_db
class TestAlertRecipient:
    """Tests for get_alert_recipient."""

    def test_dive_supervisor(self, active_dive, supervisor):
        assert get_alert_recipient(active_dive) == supervisor

    def test_falls_back_to_team_supervisor(self, cleared_operation, supervisor):
        dive = Dive.objects.create(code="D-1", operation=cleared_operation, planned_max_depth=10)

        assert get_alert_recipient(dive) == supervisor

    def test_independent_dive_without_supervisor(self, db):
        dive = Dive.objects.create(code="D-2", site="Reef", planned_max_depth=10)

        assert get_alert_recipient(dive) is None


@pytest.mark.django_db
def test_logging_notifier_logs_alerts(active_dive, depth_rule, caplog):
    append_depth_sample(active_dive.pk, 35)

    assert f"SAFETY ALERT [critical] DEPTH_LIMIT on dive {active_dive.code}" in caplog.text
    assert "supervisor: supervisor" in caplog.text
