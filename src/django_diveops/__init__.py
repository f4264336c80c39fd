"""
django-diveops: Compliance gate and dive safety monitoring for diving operations.

Provides:
- Operation, WorkPermit, SafetyAnnex: Paperwork that gates dive execution
- Workflow step derivation and the can_execute compliance gate
- Dive telemetry ingestion with per-dive serialized rule evaluation
- SafetyAlertRule / SafetyAlert: Configurable rules and deduplicated alerts
"""

__version__ = "0.1.0"

default_app_config = "django_diveops.apps.DjangoDiveopsConfig"
