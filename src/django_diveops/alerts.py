"""Alert deduplication, persistence and acknowledgement.

Provides:
- record_alerts: Filter candidates against active alerts, insert one batch, notify
- acknowledge_alert: Supervisor acknowledgement (the only mutation of an alert)
- escalate_unacknowledged_alerts: Escalate severe alerts nobody acknowledged
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Max, Q
from django.utils import timezone

from .conf import get_setting
from .exceptions import AlertNotFound
from .models import PRIORITY_SEVERITY, AlertEscalation, Dive, SafetyAlert
from .notifications import get_alert_recipient, get_notifier
from .rules import AlertCandidate
from .signals import alert_acknowledged, alert_escalated, alerts_raised

logger = logging.getLogger(__name__)


@dataclass
class AlertBatch:
    """Outcome of recording one evaluation pass."""

    alerts: list[SafetyAlert] = field(default_factory=list)
    suppressed: list[AlertCandidate] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def deduplicate_candidates(
    candidates: list[AlertCandidate],
    active_types: set[str],
) -> tuple[list[AlertCandidate], list[AlertCandidate]]:
    """
    Drop candidates whose type already has an unacknowledged alert.

    Only candidates with deduplicate=True are filtered, and at most one of
    each such type survives within the batch.

    Returns:
        Tuple of (kept, suppressed)
    """
    kept, suppressed = [], []
    seen = set(active_types)
    for candidate in candidates:
        if candidate.deduplicate:
            if candidate.type in seen:
                suppressed.append(candidate)
                continue
            seen.add(candidate.type)
        kept.append(candidate)
    return kept, suppressed


def _active_alert_types(dive: Dive) -> set[str]:
    return set(
        SafetyAlert.objects.filter(dive=dive, acknowledged=False)
        .values_list("type", flat=True)
    )


def _build_alert(dive: Dive, candidate: AlertCandidate) -> SafetyAlert:
    return SafetyAlert(
        dive=dive,
        rule=candidate.rule,
        type=candidate.type,
        priority=candidate.priority,
        details=candidate.details,
        message=candidate.message,
    )


def _insert_alerts(
    dive: Dive,
    candidates: list[AlertCandidate],
) -> tuple[list[SafetyAlert], list[AlertCandidate]]:
    """
    Insert the kept candidates, dropping only those the database rejects.

    The batch goes in with one bulk insert. If that hits the one-active-alert
    constraint, each candidate is retried in its own savepoint and the ones
    that still conflict are returned as suppressed.

    Returns:
        Tuple of (created alerts, conflicting candidates)
    """
    try:
        with transaction.atomic():
            alerts = SafetyAlert.objects.bulk_create(
                [_build_alert(dive, candidate) for candidate in candidates]
            )
        return alerts, []
    except IntegrityError as e:
        logger.info(f"Alert batch for dive {dive.code} conflicts with an active alert: {e}")

    alerts, conflicts = [], []
    for candidate in candidates:
        try:
            with transaction.atomic():
                alert = _build_alert(dive, candidate)
                alert.save(force_insert=True)
        except IntegrityError:
            conflicts.append(candidate)
            continue
        alerts.append(alert)
    return alerts, conflicts


def record_alerts(dive: Dive, candidates: list[AlertCandidate]) -> AlertBatch:
    """
    Persist the alert candidates of one evaluation pass.

    The caller must hold the dive's evaluation lock so the active-alert
    read and the insert cannot interleave with another pass for the dive.
    A deduplicated candidate that the database still rejects as a duplicate
    is suppressed on its own; the rest of the batch is kept.
    Other insertion failures are logged and reported in the batch, never
    raised: the depth sample that triggered the pass stays committed.

    Args:
        dive: The dive the candidates were evaluated for
        candidates: Output of the rule engine

    Returns:
        AlertBatch with the created alerts (and error if insertion failed)
    """
    if not candidates:
        return AlertBatch()

    try:
        with transaction.atomic():
            kept, suppressed = deduplicate_candidates(candidates, _active_alert_types(dive))
            kept.sort(key=lambda c: PRIORITY_SEVERITY.get(c.priority, 0), reverse=True)
            alerts, conflicts = _insert_alerts(dive, kept)
            suppressed.extend(conflicts)
    except DatabaseError as e:
        logger.exception(f"Could not record {len(candidates)} safety alert(s) for dive {dive.code}")
        return AlertBatch(error=f"Alert insertion failed: {e}")

    if suppressed:
        logger.debug(
            f"Suppressed {len(suppressed)} duplicate alert(s) for dive {dive.code}: "
            f"{', '.join(c.type for c in suppressed)}"
        )

    if alerts:
        logger.info(
            f"Raised {len(alerts)} safety alert(s) for dive {dive.code}: "
            f"{', '.join(a.type for a in alerts)}"
        )
        _publish(dive, alerts)

    return AlertBatch(alerts=alerts, suppressed=suppressed)


def _publish(dive: Dive, alerts: list[SafetyAlert]) -> None:
    """Signal subscribers and notify the owning supervisor. Failures are non-fatal."""
    alerts_raised.send(sender=SafetyAlert, dive=dive, alerts=alerts)

    try:
        get_notifier().notify(get_alert_recipient(dive), dive, alerts)
    except Exception as e:
        logger.warning(f"Alert notification for dive {dive.code} failed: {e}")


@transaction.atomic
def acknowledge_alert(alert_id, acknowledged_by=None) -> SafetyAlert:
    """
    Acknowledge a safety alert.

    Only acknowledged, acknowledged_at and acknowledged_by change.
    Idempotent: acknowledging twice returns the alert unchanged.

    Args:
        alert_id: Primary key of the alert
        acknowledged_by: Optional user acknowledging

    Returns:
        The acknowledged SafetyAlert

    Raises:
        AlertNotFound: If no alert has this id
    """
    try:
        alert = SafetyAlert.objects.select_for_update().get(pk=alert_id)
    except (SafetyAlert.DoesNotExist, ValidationError, ValueError):
        raise AlertNotFound(alert_id)

    if alert.acknowledged:
        return alert

    alert.acknowledged = True
    alert.acknowledged_at = timezone.now()
    alert.acknowledged_by = acknowledged_by
    alert.save(update_fields=["acknowledged", "acknowledged_at", "acknowledged_by"])

    alert_acknowledged.send(sender=SafetyAlert, alert=alert)
    return alert


def escalate_unacknowledged_alerts(now=None) -> list[AlertEscalation]:
    """
    Escalate severe alerts that stayed unacknowledged.

    An alert is escalated when its priority is in DIVEOPS_ESCALATION_PRIORITIES,
    it is older than DIVEOPS_ESCALATION_INTERVAL_MINUTES and it was not
    escalated within that interval. Each escalation is a new AlertEscalation
    at the next level; the alert itself is not modified.

    Returns:
        List of AlertEscalation records created
    """
    now = now or timezone.now()
    threshold = now - timedelta(minutes=get_setting("ESCALATION_INTERVAL_MINUTES"))
    priorities = list(get_setting("ESCALATION_PRIORITIES"))

    due = (
        SafetyAlert.objects.filter(
            acknowledged=False,
            priority__in=priorities,
            created_at__lte=threshold,
        )
        .annotate(last_escalated_at=Max("escalations__escalated_at"))
        .filter(Q(last_escalated_at__isnull=True) | Q(last_escalated_at__lte=threshold))
        .select_related("dive")
        .order_by("created_at")
    )

    notifier = get_notifier()
    escalations = []
    for alert in list(due):
        with transaction.atomic():
            locked = SafetyAlert.objects.select_for_update().get(pk=alert.pk)
            if locked.acknowledged:
                continue
            escalation = AlertEscalation.objects.create(
                alert=locked,
                level=locked.escalation_level + 1,
                escalated_at=now,
            )

        try:
            notifier.escalate(alert, escalation)
        except Exception as e:
            logger.warning(f"Escalation notification for alert {alert.pk} failed: {e}")
        else:
            escalation.notified = True
            escalation.save(update_fields=["notified"])

        logger.info(f"Escalated {alert.type} alert on dive {alert.dive.code} to level {escalation.level}")
        alert_escalated.send(sender=SafetyAlert, alert=alert, escalation=escalation)
        escalations.append(escalation)

    return escalations
