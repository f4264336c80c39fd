"""Tests for the safety rule engine."""

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from django_diveops.models import AlertPriority, DepthSample, Dive, RuleType, SafetyAlert, SafetyAlertRule
from django_diveops.rules import (
    AscentRateEvaluator,
    BottomTimeEvaluator,
    DepthLimitEvaluator,
    EvaluationContext,
    RuleEvaluator,
    Trigger,
    evaluate_rules,
    get_evaluators,
    register_evaluator,
    render_message,
)
from django_diveops.services import append_depth_sample, evaluate_active_dives

T0 = datetime(2026, 3, 14, 8, 0)


def make_dive(**kwargs):
    defaults = {
        "code": "INM-T",
        "planned_max_depth": Decimal("30"),
        "planned_bottom_time": 25,
        "state": Dive.State.IN_PROGRESS,
        "started_at": timezone.make_aware(T0),
    }
    defaults.update(kwargs)
    return Dive(**defaults)


def sample(depth, seconds=0):
    return DepthSample(
        depth=Decimal(str(depth)),
        recorded_at=timezone.make_aware(T0) + timedelta(seconds=seconds),
    )


def rule(rule_type, **kwargs):
    return SafetyAlertRule(name=f"{rule_type.label} rule", type=rule_type, **kwargs)


class TestRenderMessage:
    """Tests for message templates."""

    def test_template_with_details(self):
        r = rule(RuleType.DEPTH_LIMIT, message_template="{rule_name}: {current_depth} m")

        assert render_message(r, {"current_depth": 31.0}, "default") == "Depth limit rule: 31.0 m"

    def test_blank_template_uses_default(self):
        r = rule(RuleType.DEPTH_LIMIT, priority="critical")

        assert render_message(r, {}, "Priority {priority}") == "Priority critical"

    def test_unknown_placeholder_falls_back(self, caplog):
        r = rule(RuleType.DEPTH_LIMIT, message_template="{no_such_value}")

        assert render_message(r, {"dive_code": "D-1"}, "Dive {dive_code}") == "Dive D-1"
        assert "Invalid message template" in caplog.text


class TestDepthLimitEvaluator:
    evaluator = DepthLimitEvaluator()

    def test_deeper_than_planned(self):
        context = EvaluationContext(dive=make_dive(), now=timezone.now(), sample=sample(30.01))

        candidate = self.evaluator.evaluate(rule(RuleType.DEPTH_LIMIT, priority="critical"), context)

        assert candidate.type == "DEPTH_LIMIT"
        assert candidate.priority == "critical"
        assert candidate.deduplicate is True
        assert candidate.details == {"current_depth": 30.01, "max_depth": 30.0, "dive_code": "INM-T"}

    def test_within_plan(self):
        context = EvaluationContext(dive=make_dive(), now=timezone.now(), sample=sample(30))

        assert self.evaluator.evaluate(rule(RuleType.DEPTH_LIMIT), context) is None

    def test_tick_without_sample(self):
        context = EvaluationContext(dive=make_dive(), now=timezone.now())

        assert self.evaluator.evaluate(rule(RuleType.DEPTH_LIMIT), context) is None


class TestAscentRateEvaluator:
    evaluator = AscentRateEvaluator()

    def context(self, previous, current):
        return EvaluationContext(dive=make_dive(), now=timezone.now(), sample=current, previous=previous)

    def test_not_deduplicated(self):
        assert self.evaluator.deduplicate is False

    def test_first_sample_has_no_rate(self):
        context = EvaluationContext(dive=make_dive(), now=timezone.now(), sample=sample(5))

        assert self.evaluator.evaluate(rule(RuleType.ASCENT_RATE), context) is None

    def test_default_rate_when_unconfigured(self):
        # 12 m in one minute against the 10 m/min default
        context = self.context(sample(20), sample(8, seconds=60))

        candidate = self.evaluator.evaluate(rule(RuleType.ASCENT_RATE), context)

        assert candidate.details["ascent_rate"] == 12.0
        assert candidate.details["max_ascent_rate"] == 10.0

    def test_configured_rate(self):
        r = rule(RuleType.ASCENT_RATE, config={"max_ascent_rate_m_per_min": 15})

        assert self.evaluator.evaluate(r, self.context(sample(20), sample(8, seconds=60))) is None

    @pytest.mark.parametrize("raw", ["fast", -3, 0, True, None])
    def test_malformed_rate_uses_default(self, raw, caplog):
        r = rule(RuleType.ASCENT_RATE, config={"max_ascent_rate_m_per_min": raw})

        assert self.evaluator.max_ascent_rate(r) == Decimal("10.0")
        if raw is not None:
            assert "invalid max_ascent_rate_m_per_min" in caplog.text

    def test_default_rate_setting(self, settings):
        settings.DIVEOPS_DEFAULT_MAX_ASCENT_RATE = 18

        assert self.evaluator.max_ascent_rate(rule(RuleType.ASCENT_RATE)) == Decimal("18")

    def test_rate_at_limit_is_allowed(self):
        context = self.context(sample(20), sample(10, seconds=60))

        assert self.evaluator.evaluate(rule(RuleType.ASCENT_RATE), context) is None


class TestBottomTimeEvaluator:
    evaluator = BottomTimeEvaluator()

    def context(self, minutes, **dive_kwargs):
        now = timezone.make_aware(T0) + timedelta(minutes=minutes)
        return EvaluationContext(dive=make_dive(**dive_kwargs), now=now)

    def test_listens_to_ticks(self):
        assert Trigger.TICK in self.evaluator.triggers
        assert Trigger.TICK not in DepthLimitEvaluator.triggers

    def test_within_bottom_time(self):
        assert self.evaluator.evaluate(rule(RuleType.BOTTOM_TIME), self.context(25)) is None

    def test_bottom_time_exceeded(self):
        candidate = self.evaluator.evaluate(rule(RuleType.BOTTOM_TIME), self.context(26))

        assert candidate.details["elapsed_minutes"] == 26.0
        assert candidate.details["planned_bottom_time"] == 25

    def test_requires_planned_bottom_time(self):
        context = self.context(90, planned_bottom_time=None)

        assert self.evaluator.evaluate(rule(RuleType.BOTTOM_TIME), context) is None

    def test_requires_active_dive(self):
        context = self.context(90, state=Dive.State.COMPLETED)

        assert self.evaluator.evaluate(rule(RuleType.BOTTOM_TIME), context) is None

    def test_requires_recorded_start(self):
        context = self.context(90, started_at=None)

        assert self.evaluator.evaluate(rule(RuleType.BOTTOM_TIME), context) is None


class TestRegistry:
    """Tests for evaluator registration."""

    def test_builtin_evaluators(self):
        assert {e.rule_type for e in get_evaluators()} == {t.value for t in RuleType}

    def test_evaluator_without_type_rejected(self):
        with pytest.raises(ValueError):
            register_evaluator(RuleEvaluator())


@pytest.mark.django_db
class TestEvaluateRules:
    """Tests for evaluate_rules against stored rules."""

    def test_first_created_rule_of_type_wins(self, db):
        strict = SafetyAlertRule.objects.create(
            name="Strict", type=RuleType.DEPTH_LIMIT, priority=AlertPriority.EMERGENCY
        )
        lenient = SafetyAlertRule.objects.create(
            name="Lenient", type=RuleType.DEPTH_LIMIT, priority=AlertPriority.INFO
        )
        SafetyAlertRule.objects.filter(pk=lenient.pk).update(created_at=strict.created_at + timedelta(hours=1))
        context = EvaluationContext(dive=make_dive(), now=timezone.now(), sample=sample(40))

        result = evaluate_rules(context, Trigger.SAMPLE)

        assert [c.priority for c in result.candidates] == ["emergency"]

    def test_tick_only_runs_tick_evaluators(self, all_rules):
        context = EvaluationContext(
            dive=make_dive(),
            now=timezone.make_aware(T0) + timedelta(minutes=40),
            sample=sample(40),
        )

        result = evaluate_rules(context, Trigger.TICK)

        assert [c.type for c in result.candidates] == ["BOTTOM_TIME"]


@pytest.mark.django_db
class TestBottomTimeMonitoring:
    """Tests for bottom time alerts raised by the timer tick."""

    @pytest.fixture
    def started_dive(self, cleared_operation, supervisor):
        with freeze_time("2026-03-14 08:00:00"):
            return Dive.objects.create(
                code="INM-OP-100-BT",
                operation=cleared_operation,
                planned_max_depth=20,
                planned_bottom_time=25,
                state=Dive.State.IN_PROGRESS,
                started_at=timezone.now(),
                supervisor=supervisor,
            )

    def test_no_alert_within_bottom_time(self, started_dive, bottom_time_rule):
        with freeze_time("2026-03-14 08:25:00"):
            result = evaluate_active_dives()

        assert result.dives_checked == 1
        assert result.alerts == []

    def test_alert_after_bottom_time(self, started_dive, bottom_time_rule):
        with freeze_time("2026-03-14 08:26:00"):
            result = evaluate_active_dives()

        assert len(result.alerts) == 1
        assert result.alerts[0].details["elapsed_minutes"] == 26.0

    def test_one_alert_until_acknowledged(self, started_dive, bottom_time_rule):
        with freeze_time("2026-03-14 08:26:00"):
            evaluate_active_dives()
        with freeze_time("2026-03-14 08:27:00"):
            evaluate_active_dives()
            append_depth_sample(started_dive.pk, 12)

        assert SafetyAlert.objects.filter(dive=started_dive, type=RuleType.BOTTOM_TIME).count() == 1

    def test_skips_dives_without_bottom_time(self, started_dive, bottom_time_rule):
        Dive.objects.filter(pk=started_dive.pk).update(planned_bottom_time=None)

        with freeze_time("2026-03-14 09:00:00"):
            result = evaluate_active_dives()

        assert result.dives_checked == 0

    def test_skips_completed_dives(self, started_dive, bottom_time_rule):
        Dive.objects.filter(pk=started_dive.pk).update(state=Dive.State.COMPLETED)

        with freeze_time("2026-03-14 09:00:00"):
            assert evaluate_active_dives().alerts == []

    def test_tick_locks_dive_row(self, started_dive, bottom_time_rule):
        with patch.object(
            Dive.objects, "select_for_update", wraps=Dive.objects.select_for_update
        ) as select_for_update:
            with freeze_time("2026-03-14 08:26:00"):
                result = evaluate_active_dives()

        assert select_for_update.call_count == 1
        assert len(result.alerts) == 1
