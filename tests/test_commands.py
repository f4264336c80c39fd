"""Tests for the monitor_dives management command."""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from freezegun import freeze_time

from django_diveops.models import AlertEscalation, AlertPriority, RuleType, SafetyAlert


@pytest.fixture
def stale_alert(active_dive):
    with freeze_time(active_dive.started_at):
        return SafetyAlert.objects.create(
            dive=active_dive,
            type=RuleType.ASCENT_RATE,
            priority=AlertPriority.EMERGENCY,
            message="rapid ascent",
        )


@pytest.mark.django_db
class TestMonitorDivesCommand:
    """Tests for monitor_dives."""

    def test_reports_cycle(self, active_dive, bottom_time_rule):
        out = StringIO()

        call_command("monitor_dives", stdout=out)

        output = out.getvalue()
        assert "Checked 1 active dives, raised 0 alerts" in output
        assert "Escalated 0 unacknowledged alerts" in output
        assert "Monitoring cycle complete" in output

    def test_raises_bottom_time_alert(self, active_dive, bottom_time_rule):
        out = StringIO()

        with freeze_time(active_dive.started_at + timedelta(minutes=30)):
            call_command("monitor_dives", stdout=out)

        assert "raised 1 alerts" in out.getvalue()
        assert SafetyAlert.objects.filter(dive=active_dive, type=RuleType.BOTTOM_TIME).exists()

    def test_escalates_stale_alerts(self, stale_alert, active_dive):
        out = StringIO()

        with freeze_time(active_dive.started_at + timedelta(minutes=20)):
            call_command("monitor_dives", stdout=out)

        assert "Escalated 1 unacknowledged alerts" in out.getvalue()
        assert AlertEscalation.objects.filter(alert=stale_alert, level=1).exists()

    def test_skip_escalation(self, stale_alert, active_dive):
        out = StringIO()

        with freeze_time(active_dive.started_at + timedelta(minutes=20)):
            call_command("monitor_dives", "--skip-escalation", stdout=out)

        assert "Escalated" not in out.getvalue()
        assert not AlertEscalation.objects.exists()
