"""Signals emitted by django-diveops.

Any number of receivers (UI push, email, audit log) may subscribe; the
engine never assumes a single observer.

- alerts_raised: kwargs dive, alerts (list of SafetyAlert, one batch)
- alert_acknowledged: kwargs alert
- alert_escalated: kwargs alert, escalation
- compliance_changed: kwargs operation, can_execute
"""

from django.dispatch import Signal

alerts_raised = Signal()
alert_acknowledged = Signal()
alert_escalated = Signal()
compliance_changed = Signal()
