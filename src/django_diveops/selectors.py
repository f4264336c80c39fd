"""Read-only queries for django-diveops.

Provides:
- get_document_status: Compliance facts of one operation
- list_enabled_rules: Cached read of enabled safety rules
- get_depth_history: Ordered depth samples of a dive
- get_unacknowledged_alerts: Active alerts of a dive
"""

import threading
import time
from dataclasses import asdict, dataclass

from django.db.models import Count

from .conf import get_setting
from .models import (
    DepthSample,
    Dive,
    DiveLog,
    Operation,
    SafetyAlert,
    SafetyAlertRule,
    SafetyAnnex,
    WorkPermit,
)


@dataclass(frozen=True)
class DocumentFlags:
    exists: bool = False
    signed: bool = False


@dataclass(frozen=True)
class DocumentStatus:
    """Snapshot of the facts the workflow step and compliance gate derive from."""

    permit: DocumentFlags
    annex: DocumentFlags
    dive_count: int = 0
    log_count: int = 0
    has_team: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


def _document_flags(model, operation) -> DocumentFlags:
    # Soft-deleted documents count as absent
    document = model.objects.filter(
        operation=operation,
        deleted_at__isnull=True,
    ).first()
    if document is None:
        return DocumentFlags()
    return DocumentFlags(exists=True, signed=document.signed)


def get_document_status(operation_id) -> DocumentStatus | None:
    """
    Collect the compliance facts of an operation.

    Args:
        operation_id: Primary key of the operation

    Returns:
        DocumentStatus, or None if the operation does not exist
        or has been soft-deleted
    """
    operation = Operation.objects.filter(
        pk=operation_id,
        deleted_at__isnull=True,
    ).first()
    if operation is None:
        return None

    dives = Dive.objects.filter(operation=operation, deleted_at__isnull=True)
    logged_dives = (
        DiveLog.objects.filter(dive__in=dives, deleted_at__isnull=True)
        .aggregate(count=Count("dive", distinct=True))["count"]
    )

    return DocumentStatus(
        permit=_document_flags(WorkPermit, operation),
        annex=_document_flags(SafetyAnnex, operation),
        dive_count=dives.count(),
        log_count=logged_dives or 0,
        has_team=operation.has_team,
    )


# Enabled rules are configuration: cached process-wide with a short TTL.
# Thread-safe with lock for concurrent ingestion.
_rule_cache: dict = {}
_rule_cache_lock = threading.Lock()


def clear_rule_cache():
    """Clear the rule cache. Called when rules change and from tests."""
    global _rule_cache
    with _rule_cache_lock:
        _rule_cache = {}


def _load_enabled_rules() -> list[SafetyAlertRule]:
    return list(
        SafetyAlertRule.objects.filter(enabled=True, deleted_at__isnull=True)
        .order_by("created_at", "id")
    )


def list_enabled_rules(rule_type: str = None) -> list[SafetyAlertRule]:
    """
    Get enabled safety rules, optionally filtered by type.

    Ordered by creation time, so the first rule of a type is the one the
    engine applies.

    Raises:
        DatabaseError: If the rules cannot be read (callers fail open)
    """
    ttl = get_setting("RULE_CACHE_SECONDS")

    rules = None
    if ttl:
        with _rule_cache_lock:
            cached = _rule_cache.get("rules")
            if cached is not None and time.monotonic() - cached[0] < ttl:
                rules = cached[1]

    if rules is None:
        rules = _load_enabled_rules()
        if ttl:
            with _rule_cache_lock:
                _rule_cache["rules"] = (time.monotonic(), rules)

    if rule_type is None:
        return list(rules)
    return [rule for rule in rules if rule.type == rule_type]


def get_depth_history(dive_id) -> list[DepthSample]:
    """Get all depth samples of a dive in append order."""
    return list(DepthSample.objects.filter(dive_id=dive_id).order_by("sequence"))


def get_unacknowledged_alerts(dive_id) -> list[SafetyAlert]:
    """Get the alerts of a dive that no supervisor has acknowledged yet."""
    return list(
        SafetyAlert.objects.filter(dive_id=dive_id, acknowledged=False)
        .order_by("created_at")
    )
