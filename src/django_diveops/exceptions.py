"""Custom exceptions for django-diveops."""


class DiveOpsError(Exception):
    """Base exception for dive operations errors."""
    pass


class InvalidStateTransition(DiveOpsError):
    """Raised when a dive cannot move to the requested state.

    Also raised when telemetry is appended to a dive that is not in progress.
    """

    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from '{from_state}' to '{to_state}'"
        super().__init__(self.reason)


class NonMonotonicSample(DiveOpsError):
    """Raised when a depth sample is older than the last recorded sample."""

    def __init__(self, dive_id, recorded_at, last_recorded_at):
        self.dive_id = dive_id
        self.recorded_at = recorded_at
        self.last_recorded_at = last_recorded_at
        super().__init__(
            f"Sample at {recorded_at.isoformat()} is older than the last sample "
            f"({last_recorded_at.isoformat()}) for dive '{dive_id}'"
        )


class DiveNotFound(DiveOpsError):
    """Raised when a dive id does not match any live dive."""

    def __init__(self, dive_id):
        self.dive_id = dive_id
        super().__init__(f"Dive '{dive_id}' not found")


class OperationNotFound(DiveOpsError):
    """Raised when an operation id does not match any live operation."""

    def __init__(self, operation_id):
        self.operation_id = operation_id
        super().__init__(f"Operation '{operation_id}' not found")


class AlertNotFound(DiveOpsError):
    """Raised when acknowledging an alert that does not exist."""

    def __init__(self, alert_id):
        self.alert_id = alert_id
        super().__init__(f"Safety alert '{alert_id}' not found")


class ComplianceGateClosed(DiveOpsError):
    """Raised when a planned dive is created or started under a non-compliant operation."""

    def __init__(self, blocks: list[str]):
        self.blocks = blocks
        message = "Operation is not cleared for diving: " + "; ".join(blocks)
        super().__init__(message)


class DiveValidationError(DiveOpsError):
    """Raised when dive input data is incomplete."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid dive: " + "; ".join(errors))


class DocumentAlreadySigned(DiveOpsError):
    """Raised when signing a document that is already signed."""

    def __init__(self, document):
        self.document = document
        super().__init__(f"{document._meta.verbose_name} '{document.code}' is already signed")


class NotifierLoadError(DiveOpsError):
    """Raised when the configured alert notifier cannot be loaded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load alert notifier '{path}': {reason}")
