"""
Safety rule engine.

Each rule type is one RuleEvaluator. The engine looks up the enabled rule
of each evaluator's type and asks the evaluator whether the current dive
snapshot breaches it. Evaluators only produce AlertCandidates; persisting
and deduplicating them is the job of django_diveops.alerts.

Adding a rule type means adding a RuleType choice and registering one
evaluator:

    class GasReserveEvaluator(RuleEvaluator):
        rule_type = "GAS_RESERVE"
        default_message = "Dive {dive_code} is below gas reserve"

        def check(self, rule, context):
            ...
            return {"remaining_bar": remaining}

    register_evaluator(GasReserveEvaluator())
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from django.db import DatabaseError

from .conf import get_setting
from .models import DepthSample, Dive, RuleType, SafetyAlertRule
from .selectors import list_enabled_rules

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    """What caused an evaluation pass."""

    SAMPLE = "sample"  # a depth sample was appended
    TICK = "tick"  # periodic timer for active dives


@dataclass(frozen=True)
class EvaluationContext:
    """
    Consistent snapshot of one dive for one evaluation pass.

    sample is the sample just appended and previous the one before it;
    both are None on timer ticks.
    """

    dive: Dive
    now: datetime
    sample: DepthSample | None = None
    previous: DepthSample | None = None


@dataclass(frozen=True)
class AlertCandidate:
    """An alert an evaluator wants raised, before deduplication."""

    rule: SafetyAlertRule
    type: str
    priority: str
    details: dict
    message: str
    deduplicate: bool = True


@dataclass
class RuleEvaluationResult:
    candidates: list[AlertCandidate] = field(default_factory=list)
    skipped: bool = False
    errors: list[str] = field(default_factory=list)


def render_message(rule: SafetyAlertRule, details: dict, default: str) -> str:
    """
    Render the rule's message template with the alert details.

    Falls back to the evaluator's default message when the template is
    blank or references unknown placeholders.
    """
    values = {"rule_name": rule.name, "priority": rule.priority, **details}
    template = (rule.message_template or "").strip()
    if template:
        try:
            return template.format(**values)
        except (KeyError, IndexError, ValueError) as e:
            logger.warning(f"Invalid message template on rule '{rule.name}': {e}")
    return default.format(**values)


def _config(rule: SafetyAlertRule) -> dict:
    return rule.config if isinstance(rule.config, dict) else {}


def _positive_decimal(value) -> Decimal | None:
    """Parse a positive finite number from rule configuration, None if malformed."""
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number <= 0:
        return None
    return number


class RuleEvaluator:
    """
    Base class for rule type evaluators.

    Subclasses set rule_type and implement check(), returning the numeric
    details that triggered the rule or None.
    """

    rule_type: str = None
    triggers = frozenset({Trigger.SAMPLE})
    # One unacknowledged alert per dive for this type at a time
    deduplicate = True
    default_message = "{rule_name} triggered on dive {dive_code}"

    def check(self, rule: SafetyAlertRule, context: EvaluationContext) -> dict | None:
        raise NotImplementedError

    def evaluate(self, rule: SafetyAlertRule, context: EvaluationContext) -> AlertCandidate | None:
        details = self.check(rule, context)
        if details is None:
            return None

        details = {**details, "dive_code": context.dive.code}
        return AlertCandidate(
            rule=rule,
            type=self.rule_type,
            priority=rule.priority,
            details=details,
            message=render_message(rule, details, self.default_message),
            deduplicate=self.deduplicate,
        )


class DepthLimitEvaluator(RuleEvaluator):
    """Triggers when a sample goes deeper than the dive's planned maximum."""

    rule_type = RuleType.DEPTH_LIMIT.value
    default_message = (
        "Dive {dive_code} reached {current_depth} m, "
        "beyond the planned maximum of {max_depth} m"
    )

    def check(self, rule, context):
        sample = context.sample
        max_depth = context.dive.planned_max_depth
        if sample is None or max_depth is None:
            return None
        if Decimal(sample.depth) <= Decimal(max_depth):
            return None
        return {
            "current_depth": float(sample.depth),
            "max_depth": float(max_depth),
        }


class AscentRateEvaluator(RuleEvaluator):
    """
    Triggers when the diver ascends faster than the configured rate.

    Only evaluated on an ascent (new sample shallower than the previous one).
    Every qualifying ascent is an independent safety event, so alerts of this
    type are not deduplicated.
    """

    rule_type = RuleType.ASCENT_RATE.value
    deduplicate = False
    default_message = (
        "Dive {dive_code} ascending at {ascent_rate} m/min "
        "(limit {max_ascent_rate} m/min)"
    )

    def max_ascent_rate(self, rule) -> Decimal:
        default = Decimal(str(get_setting("DEFAULT_MAX_ASCENT_RATE")))
        raw = _config(rule).get("max_ascent_rate_m_per_min")
        if raw is None:
            return default
        value = _positive_decimal(raw)
        if value is None:
            logger.warning(
                f"Rule '{rule.name}' has invalid max_ascent_rate_m_per_min={raw!r}, "
                f"using default {default}"
            )
            return default
        return value

    def check(self, rule, context):
        sample, previous = context.sample, context.previous
        if sample is None or previous is None:
            return None

        current_depth = Decimal(sample.depth)
        previous_depth = Decimal(previous.depth)
        if current_depth >= previous_depth:
            return None

        elapsed_seconds = (sample.recorded_at - previous.recorded_at).total_seconds()
        if elapsed_seconds < get_setting("MIN_ASCENT_INTERVAL_SECONDS"):
            return None

        depth_change = previous_depth - current_depth
        time_change_minutes = Decimal(str(elapsed_seconds)) / Decimal(60)
        rate = depth_change / time_change_minutes
        limit = self.max_ascent_rate(rule)
        if rate <= limit:
            return None

        return {
            "ascent_rate": round(float(rate), 2),
            "max_ascent_rate": float(limit),
            "depth_change": float(depth_change),
            "time_change_minutes": round(float(time_change_minutes), 3),
            "previous_depth": float(previous_depth),
            "current_depth": float(current_depth),
        }


class BottomTimeEvaluator(RuleEvaluator):
    """Triggers when an active dive has been down longer than planned."""

    rule_type = RuleType.BOTTOM_TIME.value
    triggers = frozenset({Trigger.SAMPLE, Trigger.TICK})
    default_message = (
        "Dive {dive_code} has been down {elapsed_minutes} min, "
        "planned bottom time is {planned_bottom_time} min"
    )

    def check(self, rule, context):
        dive = context.dive
        if dive.state != Dive.State.IN_PROGRESS or dive.planned_bottom_time is None:
            return None

        started_at = dive.started_at
        if started_at is None:
            return None

        elapsed_minutes = (context.now - started_at).total_seconds() / 60
        if not math.isfinite(elapsed_minutes) or elapsed_minutes <= dive.planned_bottom_time:
            return None

        return {
            "elapsed_minutes": round(elapsed_minutes, 1),
            "planned_bottom_time": dive.planned_bottom_time,
        }


_evaluators: dict[str, RuleEvaluator] = {}


def register_evaluator(evaluator: RuleEvaluator) -> RuleEvaluator:
    """Register (or replace) the evaluator for its rule type."""
    if not evaluator.rule_type:
        raise ValueError(f"{type(evaluator).__name__} must define rule_type")
    _evaluators[evaluator.rule_type] = evaluator
    return evaluator


def get_evaluators() -> list[RuleEvaluator]:
    return list(_evaluators.values())


for _evaluator_class in (DepthLimitEvaluator, AscentRateEvaluator, BottomTimeEvaluator):
    register_evaluator(_evaluator_class())


def evaluate_rules(context: EvaluationContext, trigger: Trigger) -> RuleEvaluationResult:
    """
    Run every evaluator that listens to the trigger against its enabled rule.

    Fails open: if rules cannot be read the pass is skipped, and an evaluator
    raising does not stop the others. Neither blocks telemetry ingestion.

    Args:
        context: Snapshot of the dive being evaluated
        trigger: Trigger.SAMPLE for appends, Trigger.TICK for timer ticks

    Returns:
        RuleEvaluationResult with the alert candidates of this pass
    """
    try:
        rules = list_enabled_rules()
    except DatabaseError:
        logger.exception(f"Could not load safety rules, skipping evaluation of dive {context.dive.code}")
        return RuleEvaluationResult(skipped=True, errors=["Safety rules unavailable"])

    result = RuleEvaluationResult()
    for evaluator in get_evaluators():
        if trigger not in evaluator.triggers:
            continue

        rule = next((r for r in rules if r.type == evaluator.rule_type), None)
        if rule is None:
            continue

        try:
            candidate = evaluator.evaluate(rule, context)
        except Exception as e:
            logger.exception(f"Rule '{rule.name}' failed on dive {context.dive.code}")
            result.errors.append(f"{evaluator.rule_type}: {e}")
            continue

        if candidate is not None:
            result.candidates.append(candidate)

    return result
