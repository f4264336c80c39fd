"""Services for dive operations.

All write operations go through these functions.
Direct model manipulation bypasses invariants and is unsupported.

Functions:
- create_work_permit(), create_safety_annex(), sign_document(): Paperwork
- assign_team(), notify_compliance_changed(): Team assignment and gate notification
- validate_dive_plan(), create_planned_dive(), create_independent_dive(): Dive creation
- start_dive(), complete_dive(), cancel_dive(): Dive lifecycle
- record_dive_log(): Log a completed dive
- append_depth_sample(): Telemetry ingestion, triggers rule evaluation
- evaluate_active_dives(): Timer tick for bottom-time monitoring
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .alerts import record_alerts
from .exceptions import (
    ComplianceGateClosed,
    DiveNotFound,
    DiveValidationError,
    DocumentAlreadySigned,
    InvalidStateTransition,
    NonMonotonicSample,
    OperationNotFound,
)
from .locks import dive_locks
from .models import (
    DepthSample,
    Dive,
    DiveLog,
    Operation,
    SafetyAlert,
    SafetyAnnex,
    WorkPermit,
)
from .rules import EvaluationContext, Trigger, evaluate_rules
from .signals import compliance_changed
from .workflow import can_execute, get_compliance

logger = logging.getLogger(__name__)

# Dive lifecycle graph: state -> reachable states
DIVE_TRANSITIONS = {
    Dive.State.PLANNED: [Dive.State.IN_PROGRESS, Dive.State.CANCELLED],
    Dive.State.IN_PROGRESS: [Dive.State.COMPLETED, Dive.State.CANCELLED],
    Dive.State.COMPLETED: [],
    Dive.State.CANCELLED: [],
}

MAX_DEPTH_VALUE = Decimal("9999.99")


@dataclass
class IngestResult:
    """
    Result of appending one depth sample.

    The sample is committed even when warnings report that rule
    evaluation or alert insertion failed.
    """

    sample: DepthSample
    alerts: list[SafetyAlert] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class MonitoringResult:
    """Result of one timer tick over active dives."""

    dives_checked: int = 0
    alerts: list[SafetyAlert] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# Documents and team
# =============================================================================


def notify_compliance_changed(operation: Operation) -> None:
    """Send compliance_changed with the operation's current gate result."""
    compliance_changed.send(
        sender=Operation,
        operation=operation,
        can_execute=can_execute(operation.pk),
    )


@transaction.atomic
def _create_document(model, operation: Operation, code: str):
    document = model.objects.create(operation=operation, code=code)
    notify_compliance_changed(operation)
    return document


def create_work_permit(operation: Operation, code: str) -> WorkPermit:
    """Register the (unsigned) work permit submitted for an operation."""
    return _create_document(WorkPermit, operation, code)


def create_safety_annex(operation: Operation, code: str) -> SafetyAnnex:
    """Register the (unsigned) safety annex submitted for an operation."""
    return _create_document(SafetyAnnex, operation, code)


@transaction.atomic
def sign_document(document: WorkPermit | SafetyAnnex, signed_by=None):
    """
    Sign a work permit or safety annex.

    Signed documents are immutable. Emits compliance_changed.

    Raises:
        DocumentAlreadySigned: If the document is already signed
    """
    model = type(document)
    document = model.objects.select_for_update().get(pk=document.pk)
    if document.signed:
        raise DocumentAlreadySigned(document)

    document.signed = True
    document.signed_at = timezone.now()
    document.signed_by = signed_by
    document.save(update_fields=["signed", "signed_at", "signed_by", "updated_at"])

    notify_compliance_changed(document.operation)
    return document


@transaction.atomic
def assign_team(operation: Operation, team) -> Operation:
    """
    Assign (or with team=None, unassign) the dive team of an operation.

    Emits compliance_changed.
    """
    operation = Operation.objects.select_for_update().get(pk=operation.pk)
    operation.team = team
    operation.save(update_fields=["team", "updated_at"])

    notify_compliance_changed(operation)
    return operation


# =============================================================================
# Dive creation
# =============================================================================


def _parse_depth(value) -> Decimal | None:
    """Parse a depth in metres, None if it is not a finite number in range."""
    if value is None or isinstance(value, bool):
        return None
    try:
        depth = Decimal(str(value))
    except InvalidOperation:
        return None
    if not depth.is_finite() or depth < 0 or depth > MAX_DEPTH_VALUE:
        return None
    return depth.quantize(Decimal("0.01"))


def _validate_plan(planned_max_depth, planned_bottom_time) -> tuple[Decimal | None, list[str]]:
    errors = []
    depth = _parse_depth(planned_max_depth)
    if depth is None or depth == 0:
        errors.append("Target depth is required and must be a positive number of metres")
    if planned_bottom_time is not None and (
        isinstance(planned_bottom_time, bool)
        or not isinstance(planned_bottom_time, int)
        or planned_bottom_time <= 0
    ):
        errors.append("Planned bottom time must be a positive number of minutes")
    return depth, errors


def validate_dive_plan(
    planned_max_depth,
    planned_bottom_time=None,
    *,
    operation: Operation = None,
    site: str = "",
) -> list[str]:
    """
    Get the reasons a dive with this plan cannot be created.

    Dives under an operation must pass its compliance gate; independent
    dives need a site. An empty list means the dive can be created.
    """
    _, errors = _validate_plan(planned_max_depth, planned_bottom_time)
    if operation is None:
        if not (site or "").strip():
            errors.append("Site is required for independent dives")
    else:
        errors.extend(get_compliance(operation.pk).blocks)
    return errors


def _generate_dive_code(operation: Operation | None) -> str:
    prefix = operation.code if operation is not None else "IND"
    return f"INM-{prefix}-{uuid.uuid4().hex[:6].upper()}"


@transaction.atomic
def create_planned_dive(
    operation: Operation,
    planned_max_depth,
    *,
    site: str = "",
    planned_bottom_time: int = None,
    dive_date=None,
    start_time=None,
    supervisor=None,
    code: str = None,
) -> Dive:
    """
    Create a planned dive under an operation.

    The compliance gate is evaluated while the operation row is locked, so a
    concurrent team change cannot slip in between check and insert.

    Raises:
        OperationNotFound: If the operation no longer exists
        DiveValidationError: If the target depth or bottom time is invalid
        ComplianceGateClosed: If the operation is not cleared for diving
    """
    try:
        operation = Operation.objects.select_for_update().get(
            pk=operation.pk, deleted_at__isnull=True
        )
    except Operation.DoesNotExist:
        raise OperationNotFound(operation.pk)

    depth, errors = _validate_plan(planned_max_depth, planned_bottom_time)
    if errors:
        raise DiveValidationError(errors)

    check = get_compliance(operation.pk)
    if not check.allowed:
        raise ComplianceGateClosed(check.blocks)

    return Dive.objects.create(
        code=code or _generate_dive_code(operation),
        operation=operation,
        site=site,
        planned_max_depth=depth,
        planned_bottom_time=planned_bottom_time,
        dive_date=dive_date,
        start_time=start_time,
        supervisor=supervisor,
    )


def create_independent_dive(
    planned_max_depth,
    site: str,
    *,
    planned_bottom_time: int = None,
    dive_date=None,
    start_time=None,
    supervisor=None,
    code: str = None,
) -> Dive:
    """
    Create a dive that is not tied to an operation.

    Not gated by operation paperwork; only a positive target depth and a
    site are required.

    Raises:
        DiveValidationError: If the target depth or site is missing
    """
    depth, errors = _validate_plan(planned_max_depth, planned_bottom_time)
    if not (site or "").strip():
        errors.append("Site is required for independent dives")
    if errors:
        raise DiveValidationError(errors)

    return Dive.objects.create(
        code=code or _generate_dive_code(None),
        site=site.strip(),
        planned_max_depth=depth,
        planned_bottom_time=planned_bottom_time,
        dive_date=dive_date,
        start_time=start_time,
        supervisor=supervisor,
    )


# =============================================================================
# Dive lifecycle
# =============================================================================


def _lock_dive(dive_id) -> Dive:
    try:
        return Dive.objects.select_for_update().get(pk=dive_id, deleted_at__isnull=True)
    except (Dive.DoesNotExist, ValidationError, ValueError):
        raise DiveNotFound(dive_id)


def get_allowed_dive_transitions(dive: Dive) -> list[str]:
    """Get the states a dive can move to from its current state."""
    return [str(state) for state in DIVE_TRANSITIONS.get(dive.state, [])]


def _check_transition(dive: Dive, to_state: str) -> None:
    if to_state in get_allowed_dive_transitions(dive):
        return
    if not DIVE_TRANSITIONS.get(dive.state):
        raise InvalidStateTransition(
            dive.state, to_state,
            f"Dive {dive.code} is {dive.state} and cannot change state"
        )
    raise InvalidStateTransition(dive.state, to_state)


def start_dive(dive: Dive, started_at=None) -> Dive:
    """
    Move a planned dive in progress and record its start.

    Dives under an operation are re-checked against the compliance gate.

    Raises:
        InvalidStateTransition: If the dive is not planned
        ComplianceGateClosed: If the operation is no longer cleared for diving
    """
    with dive_locks.hold(dive.pk), transaction.atomic():
        dive = _lock_dive(dive.pk)
        _check_transition(dive, Dive.State.IN_PROGRESS)

        if dive.operation_id is not None:
            check = get_compliance(dive.operation_id)
            if not check.allowed:
                raise ComplianceGateClosed(check.blocks)

        started = started_at or timezone.now()
        if timezone.is_naive(started):
            started = timezone.make_aware(started)
        dive.state = Dive.State.IN_PROGRESS
        dive.started_at = started
        dive.save(update_fields=["state", "started_at", "updated_at"])

    logger.info(f"Dive {dive.code} started at {started.isoformat()}")
    return dive


def complete_dive(dive: Dive, ended_at=None) -> Dive:
    """
    Complete an in-progress dive. No telemetry is accepted afterwards.

    Raises:
        InvalidStateTransition: If the dive is not in progress
    """
    with dive_locks.hold(dive.pk), transaction.atomic():
        dive = _lock_dive(dive.pk)
        _check_transition(dive, Dive.State.COMPLETED)

        dive.state = Dive.State.COMPLETED
        dive.ended_at = ended_at or timezone.now()
        dive.save(update_fields=["state", "ended_at", "updated_at"])

    return dive


def cancel_dive(dive: Dive) -> Dive:
    """
    Cancel a planned or in-progress dive.

    Raises:
        InvalidStateTransition: If the dive is already completed or cancelled
    """
    with dive_locks.hold(dive.pk), transaction.atomic():
        dive = _lock_dive(dive.pk)
        _check_transition(dive, Dive.State.CANCELLED)

        if dive.state == Dive.State.IN_PROGRESS:
            dive.ended_at = timezone.now()
        dive.state = Dive.State.CANCELLED
        dive.save(update_fields=["state", "ended_at", "updated_at"])

    return dive


@transaction.atomic
def record_dive_log(dive: Dive, author=None, notes: str = "") -> DiveLog:
    """
    Record a log against a completed dive.

    Raises:
        InvalidStateTransition: If the dive is not completed
    """
    dive = _lock_dive(dive.pk)
    if dive.state != Dive.State.COMPLETED:
        raise InvalidStateTransition(
            dive.state, "logged",
            f"Only completed dives can be logged (dive {dive.code} is {dive.state})"
        )
    return DiveLog.objects.create(dive=dive, author=author, notes=notes)


# =============================================================================
# Telemetry
# =============================================================================


def _evaluate_locked(
    dive_id,
    trigger: Trigger,
    warnings: list[str],
    *,
    now,
    sample: DepthSample = None,
    previous: DepthSample = None,
) -> list[SafetyAlert] | None:
    """
    Evaluate rules and insert alerts while holding the dive's row lock.

    The row lock serializes evaluation of one dive across processes; the
    in-process lock held by the caller only covers this process. Tick
    passes skip dives that are no longer in progress.

    Returns:
        The created alerts, None if the dive was skipped
    """
    with transaction.atomic():
        dive = (
            Dive.objects.select_for_update()
            .filter(pk=dive_id, deleted_at__isnull=True)
            .first()
        )
        if dive is None:
            return None
        if trigger == Trigger.TICK and dive.state != Dive.State.IN_PROGRESS:
            return None
        context = EvaluationContext(dive=dive, now=now, sample=sample, previous=previous)

        evaluation = evaluate_rules(context, trigger)
        warnings.extend(evaluation.errors)

        batch = record_alerts(dive, evaluation.candidates)
        if not batch.ok:
            warnings.append(batch.error)
        return batch.alerts


def append_depth_sample(dive_id, depth, timestamp=None) -> IngestResult:
    """
    Append a depth sample to an in-progress dive and evaluate safety rules.

    Appending, evaluating and inserting alerts run as one unit per dive:
    an in-process lock keyed by dive id plus a row lock on the dive, held
    while the sample is stored and again while alerts are evaluated and
    inserted. The sample is committed first, so alerting failures never
    roll it back; they are returned as warnings instead.

    Args:
        dive_id: Primary key of the dive
        depth: Depth in metres
        timestamp: When the depth was observed (defaults to now)

    Returns:
        IngestResult with the stored sample, new alerts and warnings

    Raises:
        DiveNotFound: If the dive does not exist
        DiveValidationError: If the depth is not a valid number of metres
        InvalidStateTransition: If the dive is not in progress
        NonMonotonicSample: If timestamp is older than the last sample
    """
    value = _parse_depth(depth)
    if value is None:
        raise DiveValidationError([f"Invalid depth: {depth!r}"])

    recorded_at = timestamp or timezone.now()
    if timezone.is_naive(recorded_at):
        recorded_at = timezone.make_aware(recorded_at)

    with dive_locks.hold(dive_id):
        with transaction.atomic():
            dive = _lock_dive(dive_id)
            if dive.state != Dive.State.IN_PROGRESS:
                raise InvalidStateTransition(
                    dive.state, Dive.State.IN_PROGRESS,
                    f"Telemetry can only be appended to in-progress dives "
                    f"(dive {dive.code} is {dive.state})"
                )

            previous = dive.samples.order_by("-sequence").first()
            if previous is not None and recorded_at < previous.recorded_at:
                raise NonMonotonicSample(dive.pk, recorded_at, previous.recorded_at)

            sample = DepthSample.objects.create(
                dive=dive,
                sequence=previous.sequence + 1 if previous else 1,
                depth=value,
                recorded_at=recorded_at,
            )

        result = IngestResult(sample=sample)

        alerts = _evaluate_locked(
            dive.pk, Trigger.SAMPLE, result.warnings,
            now=timezone.now(), sample=sample, previous=previous,
        )
        result.alerts = alerts or []

    for warning in result.warnings:
        logger.warning(f"Dive {dive.code}: {warning}")
    return result


def evaluate_active_dives(now=None) -> MonitoringResult:
    """
    Timer tick: evaluate tick-triggered rules for every active dive.

    Only dives in progress with a planned bottom time are visited. Each dive
    is evaluated under its own in-process and row lock, independently of
    the others.
    """
    now = now or timezone.now()
    result = MonitoringResult()

    dive_ids = list(
        Dive.objects.filter(
            state=Dive.State.IN_PROGRESS,
            planned_bottom_time__isnull=False,
            deleted_at__isnull=True,
        ).values_list("pk", flat=True)
    )

    for dive_id in dive_ids:
        with dive_locks.hold(dive_id):
            alerts = _evaluate_locked(dive_id, Trigger.TICK, result.warnings, now=now)
        if alerts is not None:
            result.dives_checked += 1
            result.alerts.extend(alerts)

    return result
