"""
Workflow step derivation and the compliance gate.

Both are derived on demand from the current document facts and never
stored, so they cannot drift from the records they describe. Pure
functions take a DocumentStatus; the get_* wrappers fetch it by id.
Neither side raises: unknown inputs resolve to the most restrictive answer.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from django.core.exceptions import ValidationError
from django.db import DatabaseError

from .selectors import DocumentStatus, get_document_status

logger = logging.getLogger(__name__)


class WorkflowStep(str, Enum):
    OPERATION = "operation"
    WORK_PERMIT = "work_permit"
    SAFETY_ANNEX = "safety_annex"
    DIVE = "dive"
    LOG = "log"
    COMPLETED = "completed"


def compute_workflow_step(status: DocumentStatus | None) -> WorkflowStep:
    """
    Derive the current step of an operation's paperwork.

    Evaluated in fixed priority order, first match wins:
    1. work permit absent or unsigned
    2. safety annex absent or unsigned
    3. no dives yet
    4. fewer logged dives than dives
    5. completed

    A missing status (no such operation) maps to the OPERATION step.
    """
    if status is None:
        return WorkflowStep.OPERATION
    if not (status.permit.exists and status.permit.signed):
        return WorkflowStep.WORK_PERMIT
    if not (status.annex.exists and status.annex.signed):
        return WorkflowStep.SAFETY_ANNEX
    if status.dive_count <= 0:
        return WorkflowStep.DIVE
    if status.log_count < status.dive_count:
        return WorkflowStep.LOG
    return WorkflowStep.COMPLETED


@dataclass(frozen=True)
class ComplianceCheck:
    """Outcome of the compliance gate with the reasons it is closed."""

    allowed: bool
    blocks: list[str] = field(default_factory=list)


def check_compliance(status: DocumentStatus | None) -> ComplianceCheck:
    """
    Evaluate the gate: signed permit AND signed annex AND assigned team.

    Returns:
        ComplianceCheck with one human-readable block per failed condition
    """
    if status is None:
        return ComplianceCheck(allowed=False, blocks=["Operation not found"])

    blocks = []
    if not status.permit.exists:
        blocks.append("Work permit missing")
    elif not status.permit.signed:
        blocks.append("Work permit not signed")

    if not status.annex.exists:
        blocks.append("Safety annex missing")
    elif not status.annex.signed:
        blocks.append("Safety annex not signed")

    if not status.has_team:
        blocks.append("No dive team assigned")

    return ComplianceCheck(allowed=len(blocks) == 0, blocks=blocks)


def _safe_document_status(operation_id) -> DocumentStatus | None:
    try:
        return get_document_status(operation_id)
    except (ValidationError, ValueError):
        return None
    except DatabaseError:
        logger.exception("Could not read document status for operation %s", operation_id)
        return None


def get_workflow_step(operation_id) -> WorkflowStep:
    """Get the current workflow step of an operation. Never raises."""
    return compute_workflow_step(_safe_document_status(operation_id))


def get_compliance(operation_id) -> ComplianceCheck:
    """Evaluate the compliance gate of an operation. Never raises."""
    return check_compliance(_safe_document_status(operation_id))


def can_execute(operation_id) -> bool:
    """May a new dive be executed under this operation right now?"""
    return get_compliance(operation_id).allowed
