"""Models for django-diveops.

Provides:
- DiveTeam, Operation: The planned diving job and the crew assigned to it
- WorkPermit, SafetyAnnex: Compliance documents that gate dive execution
- Dive, DepthSample, DiveLog: Immersions, their depth telemetry and logs
- SafetyAlertRule, SafetyAlert, AlertEscalation: Safety monitoring records
"""

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class DiveopsBaseModel(models.Model):
    """Base model with UUID PK, timestamps and soft delete."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        abstract = True

    def soft_delete(self):
        """Mark as deleted without removing from database."""
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])

    def restore(self):
        """Restore a soft-deleted record."""
        self.deleted_at = None
        self.save(update_fields=["deleted_at", "updated_at"])

    @property
    def is_deleted(self) -> bool:
        """Check if record is soft-deleted."""
        return self.deleted_at is not None


class DiveTeam(DiveopsBaseModel):
    """A dive crew that can be assigned to operations."""

    name = models.CharField(max_length=200)
    supervisor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="supervised_dive_teams",
        help_text="Supervisor notified about safety alerts of the team's dives",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Operation(DiveopsBaseModel):
    """
    A planned diving job.

    Owns zero-or-one work permit, zero-or-one safety annex and any number
    of dives. Cannot be cleared for diving without an assigned team.
    """

    class Status(models.TextChoices):
        PLANNED = "planned", "Planned"
        ACTIVE = "active", "Active"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PLANNED,
    )
    team = models.ForeignKey(
        DiveTeam,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="operations",
        help_text="Dive team assigned to this operation",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="diveops_operation_status_idx"),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def has_team(self) -> bool:
        return self.team_id is not None


class ComplianceDocument(DiveopsBaseModel):
    """
    Shared fields of the documents that gate an operation.

    Created unsigned when an external form submits it; only the signing
    action mutates it afterwards.
    """

    code = models.CharField(max_length=50)
    signed = models.BooleanField(default=False)
    signed_at = models.DateTimeField(null=True, blank=True)
    signed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        abstract = True

    def __str__(self):
        status = "signed" if self.signed else "unsigned"
        return f"{self.code} ({status})"


class WorkPermit(ComplianceDocument):
    """Work permit for an operation (one live permit per operation)."""

    operation = models.ForeignKey(
        Operation,
        on_delete=models.CASCADE,
        related_name="work_permits",
    )

    class Meta:
        verbose_name = "work permit"
        constraints = [
            models.UniqueConstraint(
                fields=["operation"],
                condition=Q(deleted_at__isnull=True),
                name="diveops_one_live_work_permit_per_operation",
            ),
        ]


class SafetyAnnex(ComplianceDocument):
    """Safety annex for an operation (one live annex per operation)."""

    operation = models.ForeignKey(
        Operation,
        on_delete=models.CASCADE,
        related_name="safety_annexes",
    )

    class Meta:
        verbose_name = "safety annex"
        verbose_name_plural = "safety annexes"
        constraints = [
            models.UniqueConstraint(
                fields=["operation"],
                condition=Q(deleted_at__isnull=True),
                name="diveops_one_live_safety_annex_per_operation",
            ),
        ]


class Dive(DiveopsBaseModel):
    """
    A single immersion, either under an operation or independent.

    Key invariants:
    - Depth history is append-only and time-monotonic
    - No samples are appended once the dive is completed or cancelled
    """

    class State(models.TextChoices):
        PLANNED = "planned", "Planned"
        IN_PROGRESS = "in_progress", "In Progress"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    code = models.CharField(max_length=50, unique=True)
    operation = models.ForeignKey(
        Operation,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="dives",
        help_text="Empty for independent dives",
    )
    site = models.CharField(max_length=200, blank=True)
    planned_max_depth = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        help_text="Planned maximum depth in metres",
    )
    planned_bottom_time = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Planned bottom time in minutes",
    )
    state = models.CharField(
        max_length=20,
        choices=State.choices,
        default=State.PLANNED,
    )
    dive_date = models.DateField(null=True, blank=True, help_text="Planned date")
    start_time = models.TimeField(null=True, blank=True, help_text="Planned start time")
    started_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)
    supervisor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="supervised_dives",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["state"], name="diveops_dive_state_idx"),
            models.Index(fields=["operation", "state"], name="diveops_dive_op_state_idx"),
        ]

    def __str__(self):
        return f"{self.code} ({self.state})"

    @property
    def is_independent(self) -> bool:
        return self.operation_id is None

    @property
    def current_depth(self):
        """Depth of the most recent sample, None before the first sample."""
        last = self.samples.order_by("-sequence").first()
        return last.depth if last else None


class DepthSample(models.Model):
    """One depth observation in a dive's history. Never updated."""

    dive = models.ForeignKey(
        Dive,
        on_delete=models.CASCADE,
        related_name="samples",
    )
    sequence = models.PositiveIntegerField()
    depth = models.DecimalField(max_digits=6, decimal_places=2)
    recorded_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["dive", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["dive", "sequence"],
                name="diveops_depth_sample_unique_sequence",
            ),
            models.CheckConstraint(
                condition=Q(depth__gte=0),
                name="diveops_depth_sample_depth_gte_zero",
            ),
        ]

    def __str__(self):
        return f"{self.dive.code} #{self.sequence}: {self.depth} m"


class DiveLog(DiveopsBaseModel):
    """Log recorded against a completed dive."""

    dive = models.ForeignKey(
        Dive,
        on_delete=models.CASCADE,
        related_name="logs",
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="dive_logs",
    )
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Log for {self.dive.code}"


class AlertPriority(models.TextChoices):
    INFO = "info", "Info"
    WARNING = "warning", "Warning"
    CRITICAL = "critical", "Critical"
    EMERGENCY = "emergency", "Emergency"


# Ordered severity, higher is more severe
PRIORITY_SEVERITY = {
    AlertPriority.INFO.value: 0,
    AlertPriority.WARNING.value: 1,
    AlertPriority.CRITICAL.value: 2,
    AlertPriority.EMERGENCY.value: 3,
}


class RuleType(models.TextChoices):
    DEPTH_LIMIT = "DEPTH_LIMIT", "Depth limit"
    ASCENT_RATE = "ASCENT_RATE", "Ascent rate"
    BOTTOM_TIME = "BOTTOM_TIME", "Bottom time"


class SafetyAlertRule(DiveopsBaseModel):
    """
    Administrator-edited configuration for one safety check.

    config holds type-specific values, e.g. {"max_ascent_rate_m_per_min": 9}
    for ASCENT_RATE. Read-only from the rule engine's perspective.
    """

    name = models.CharField(max_length=200)
    type = models.CharField(max_length=30, choices=RuleType.choices)
    config = models.JSONField(default=dict, blank=True)
    priority = models.CharField(
        max_length=20,
        choices=AlertPriority.choices,
        default=AlertPriority.WARNING,
    )
    enabled = models.BooleanField(default=True)
    message_template = models.TextField(
        blank=True,
        help_text="Message with placeholders such as {dive_code} and {current_depth}",
    )
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["type", "enabled"], name="diveops_rule_type_enabled_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.type})"

    @property
    def severity(self) -> int:
        return PRIORITY_SEVERITY.get(self.priority, 0)


class SafetyAlert(models.Model):
    """
    An alert raised by the safety rule engine.

    Created exclusively by the engine; afterwards only the acknowledgement
    fields change. At most one unacknowledged DEPTH_LIMIT or BOTTOM_TIME
    alert exists per dive.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    dive = models.ForeignKey(
        Dive,
        on_delete=models.CASCADE,
        related_name="alerts",
    )
    rule = models.ForeignKey(
        SafetyAlertRule,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="alerts",
    )
    type = models.CharField(max_length=30, choices=RuleType.choices)
    priority = models.CharField(max_length=20, choices=AlertPriority.choices)
    details = models.JSONField(default=dict, blank=True)
    message = models.TextField(blank=True)
    acknowledged = models.BooleanField(default=False)
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    acknowledged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="acknowledged_safety_alerts",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["dive", "type"],
                condition=Q(acknowledged=False, type__in=["DEPTH_LIMIT", "BOTTOM_TIME"]),
                name="diveops_one_active_alert_per_dive_and_type",
            ),
        ]
        indexes = [
            models.Index(fields=["dive", "acknowledged"], name="diveops_alert_dive_ack_idx"),
            models.Index(fields=["acknowledged", "priority"], name="diveops_alert_ack_priority_idx"),
        ]

    def __str__(self):
        status = "acknowledged" if self.acknowledged else "active"
        return f"{self.type} on {self.dive.code} ({status})"

    @property
    def escalation_level(self) -> int:
        """Highest escalation level reached, 0 if never escalated."""
        last = self.escalations.order_by("-level").first()
        return last.level if last else 0


class AlertEscalation(models.Model):
    """Record of an unacknowledged alert being escalated."""

    alert = models.ForeignKey(
        SafetyAlert,
        on_delete=models.CASCADE,
        related_name="escalations",
    )
    level = models.PositiveSmallIntegerField()
    escalated_at = models.DateTimeField(default=timezone.now)
    notified = models.BooleanField(default=False)

    class Meta:
        ordering = ["alert", "level"]
        constraints = [
            models.UniqueConstraint(
                fields=["alert", "level"],
                name="diveops_alert_escalation_unique_level",
            ),
        ]

    def __str__(self):
        return f"{self.alert} escalated to level {self.level}"
