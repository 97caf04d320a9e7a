"""
Error taxonomy of the synchronization engine.

Local validation errors are raised before any state is touched, so the
ledger and window are unchanged when one of them surfaces.
"""

from typing import Any, Dict, Optional

from shared.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError


class OutOfRange(ValidationError):
    """Placement would land at or past the terminator."""

    def __init__(self, message: str = "Position is outside the insertable range",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="OUT_OF_RANGE")


class KeyExhausted(ConflictError):
    """No distinct key remains between two neighbors."""

    def __init__(self, prev_key: float, next_key: float):
        super().__init__(
            f"No ordering key left between {prev_key!r} and {next_key!r}",
            {"prev_key": prev_key, "next_key": next_key},
            code="KEY_EXHAUSTED",
        )


class CapacityExceeded(ConflictError):
    """The pending edit ledger is full."""

    def __init__(self, capacity: int):
        super().__init__(
            "Save or clear changes before making further modifications",
            {"capacity": capacity},
            code="CAPACITY_EXCEEDED",
        )


class NotFound(NotFoundError):
    """Edit target is not part of the current window."""

    def __init__(self, identity: str):
        super().__init__("Rule not found", {"identity": identity}, code="NOT_FOUND")


class ImmutableItem(ValidationError):
    """Operation targets the sentinel terminator."""

    def __init__(self, operation: str):
        super().__init__(
            f"Cannot {operation} the last fixed rule",
            {"operation": operation},
            code="IMMUTABLE_ITEM",
        )


class TransportFailure(ExternalServiceError):
    """A call to the remote store failed."""

    def __init__(self, message: str = "Remote store call failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("rule_store", message, details, code="TRANSPORT_FAILURE")


class SyncInProgress(ConflictError):
    """A remote operation is in flight; the request is rejected, not queued."""

    def __init__(self, operation: str):
        super().__init__(
            f"Cannot {operation} while syncing with the rule store",
            {"operation": operation},
            code="SYNC_IN_PROGRESS",
        )


class InvalidRule(ValidationError):
    """Rule form validation failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="INVALID_RULE")
