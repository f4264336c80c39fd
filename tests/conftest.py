"""Shared fixtures for django-diveops tests."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from django_diveops.models import (
    AlertPriority,
    Dive,
    DiveTeam,
    Operation,
    RuleType,
    SafetyAlertRule,
    SafetyAnnex,
    WorkPermit,
)
from django_diveops.notifications import clear_notifier_cache
from django_diveops.selectors import clear_rule_cache


@pytest.fixture(autouse=True)
def _clear_caches():
    clear_rule_cache()
    clear_notifier_cache()
    yield
    clear_rule_cache()
    clear_notifier_cache()


@pytest.fixture
def supervisor(db, django_user_model):
    return django_user_model.objects.create_user(username="supervisor", password="test")


@pytest.fixture
def team(db, supervisor):
    return DiveTeam.objects.create(name="Alpha", supervisor=supervisor)


@pytest.fixture
def operation(db):
    """Operation with no paperwork and no team."""
    return Operation.objects.create(code="OP-001", name="Pier inspection")


@pytest.fixture
def cleared_operation(db, team, supervisor):
    """Operation with signed permit, signed annex and a team."""
    operation = Operation.objects.create(code="OP-100", name="Hull survey", team=team)
    now = timezone.now()
    WorkPermit.objects.create(
        operation=operation, code="WP-100", signed=True, signed_at=now, signed_by=supervisor
    )
    SafetyAnnex.objects.create(
        operation=operation, code="SA-100", signed=True, signed_at=now, signed_by=supervisor
    )
    return operation


@pytest.fixture
def active_dive(db, cleared_operation, supervisor):
    """In-progress dive started five minutes ago, 30 m planned, 25 min bottom time."""
    return Dive.objects.create(
        code="INM-OP-100-TEST01",
        operation=cleared_operation,
        site="North pier",
        planned_max_depth=Decimal("30.00"),
        planned_bottom_time=25,
        state=Dive.State.IN_PROGRESS,
        started_at=timezone.now() - timedelta(minutes=5),
        supervisor=supervisor,
    )


@pytest.fixture
def depth_rule(db):
    return SafetyAlertRule.objects.create(
        name="Planned depth exceeded",
        type=RuleType.DEPTH_LIMIT,
        priority=AlertPriority.CRITICAL,
    )


@pytest.fixture
def ascent_rule(db):
    return SafetyAlertRule.objects.create(
        name="Rapid ascent",
        type=RuleType.ASCENT_RATE,
        priority=AlertPriority.EMERGENCY,
        config={"max_ascent_rate_m_per_min": 10},
    )


@pytest.fixture
def bottom_time_rule(db):
    return SafetyAlertRule.objects.create(
        name="Bottom time exceeded",
        type=RuleType.BOTTOM_TIME,
        priority=AlertPriority.WARNING,
    )


@pytest.fixture
def all_rules(depth_rule, ascent_rule, bottom_time_rule):
    return [depth_rule, ascent_rule, bottom_time_rule]
