# Generated manually for standalone django-diveops package

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def _base_fields():
    return [
        (
            "id",
            models.UUIDField(
                default=uuid.uuid4, editable=False, primary_key=True, serialize=False
            ),
        ),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("deleted_at", models.DateTimeField(blank=True, null=True)),
    ]


def _document_fields():
    return _base_fields() + [
        ("code", models.CharField(max_length=50)),
        ("signed", models.BooleanField(default=False)),
        ("signed_at", models.DateTimeField(blank=True, null=True)),
        (
            "signed_by",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
    ]


PRIORITY_CHOICES = [
    ("info", "Info"),
    ("warning", "Warning"),
    ("critical", "Critical"),
    ("emergency", "Emergency"),
]

RULE_TYPE_CHOICES = [
    ("DEPTH_LIMIT", "Depth limit"),
    ("ASCENT_RATE", "Ascent rate"),
    ("BOTTOM_TIME", "Bottom time"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DiveTeam",
            fields=_base_fields() + [
                ("name", models.CharField(max_length=200)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "supervisor",
                    models.ForeignKey(
                        blank=True,
                        help_text="Supervisor notified about safety alerts of the team's dives",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="supervised_dive_teams",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Operation",
            fields=_base_fields() + [
                ("code", models.CharField(max_length=50, unique=True)),
                ("name", models.CharField(max_length=200)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("planned", "Planned"),
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="planned",
                        max_length=20,
                    ),
                ),
                (
                    "team",
                    models.ForeignKey(
                        blank=True,
                        help_text="Dive team assigned to this operation",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="operations",
                        to="diveops.diveteam",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="diveops_operation_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Dive",
            fields=_base_fields() + [
                ("code", models.CharField(max_length=50, unique=True)),
                ("site", models.CharField(blank=True, max_length=200)),
                (
                    "planned_max_depth",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Planned maximum depth in metres",
                        max_digits=6,
                    ),
                ),
                (
                    "planned_bottom_time",
                    models.PositiveIntegerField(
                        blank=True, help_text="Planned bottom time in minutes", null=True
                    ),
                ),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("planned", "Planned"),
                            ("in_progress", "In Progress"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="planned",
                        max_length=20,
                    ),
                ),
                ("dive_date", models.DateField(blank=True, help_text="Planned date", null=True)),
                (
                    "start_time",
                    models.TimeField(blank=True, help_text="Planned start time", null=True),
                ),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                (
                    "operation",
                    models.ForeignKey(
                        blank=True,
                        help_text="Empty for independent dives",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="dives",
                        to="diveops.operation",
                    ),
                ),
                (
                    "supervisor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="supervised_dives",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["state"], name="diveops_dive_state_idx"),
                    models.Index(
                        fields=["operation", "state"], name="diveops_dive_op_state_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DepthSample",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("sequence", models.PositiveIntegerField()),
                ("depth", models.DecimalField(decimal_places=2, max_digits=6)),
                ("recorded_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "dive",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="samples",
                        to="diveops.dive",
                    ),
                ),
            ],
            options={
                "ordering": ["dive", "sequence"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("dive", "sequence"),
                        name="diveops_depth_sample_unique_sequence",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(depth__gte=0),
                        name="diveops_depth_sample_depth_gte_zero",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DiveLog",
            fields=_base_fields() + [
                ("notes", models.TextField(blank=True)),
                (
                    "author",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="dive_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "dive",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="logs",
                        to="diveops.dive",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="SafetyAlertRule",
            fields=_base_fields() + [
                ("name", models.CharField(max_length=200)),
                ("type", models.CharField(choices=RULE_TYPE_CHOICES, max_length=30)),
                ("config", models.JSONField(blank=True, default=dict)),
                (
                    "priority",
                    models.CharField(
                        choices=PRIORITY_CHOICES, default="warning", max_length=20
                    ),
                ),
                ("enabled", models.BooleanField(default=True)),
                (
                    "message_template",
                    models.TextField(
                        blank=True,
                        help_text="Message with placeholders such as {dive_code} and {current_depth}",
                    ),
                ),
                ("description", models.TextField(blank=True)),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["type", "enabled"], name="diveops_rule_type_enabled_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SafetyAlert",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("type", models.CharField(choices=RULE_TYPE_CHOICES, max_length=30)),
                ("priority", models.CharField(choices=PRIORITY_CHOICES, max_length=20)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("message", models.TextField(blank=True)),
                ("acknowledged", models.BooleanField(default=False)),
                ("acknowledged_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "acknowledged_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="acknowledged_safety_alerts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "dive",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="alerts",
                        to="diveops.dive",
                    ),
                ),
                (
                    "rule",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="alerts",
                        to="diveops.safetyalertrule",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("acknowledged", False),
                            ("type__in", ["DEPTH_LIMIT", "BOTTOM_TIME"]),
                        ),
                        fields=("dive", "type"),
                        name="diveops_one_active_alert_per_dive_and_type",
                    ),
                ],
                "indexes": [
                    models.Index(
                        fields=["dive", "acknowledged"], name="diveops_alert_dive_ack_idx"
                    ),
                    models.Index(
                        fields=["acknowledged", "priority"],
                        name="diveops_alert_ack_priority_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AlertEscalation",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("level", models.PositiveSmallIntegerField()),
                ("escalated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("notified", models.BooleanField(default=False)),
                (
                    "alert",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="escalations",
                        to="diveops.safetyalert",
                    ),
                ),
            ],
            options={
                "ordering": ["alert", "level"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("alert", "level"),
                        name="diveops_alert_escalation_unique_level",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WorkPermit",
            fields=_document_fields() + [
                (
                    "operation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="work_permits",
                        to="diveops.operation",
                    ),
                ),
            ],
            options={
                "verbose_name": "work permit",
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(deleted_at__isnull=True),
                        fields=("operation",),
                        name="diveops_one_live_work_permit_per_operation",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SafetyAnnex",
            fields=_document_fields() + [
                (
                    "operation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="safety_annexes",
                        to="diveops.operation",
                    ),
                ),
            ],
            options={
                "verbose_name": "safety annex",
                "verbose_name_plural": "safety annexes",
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(deleted_at__isnull=True),
                        fields=("operation",),
                        name="diveops_one_live_safety_annex_per_operation",
                    ),
                ],
            },
        ),
    ]
