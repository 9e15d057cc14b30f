"""Errors for the FluxCapacitor task system.

These exceptions are for usage errors only (invalid state transitions,
broken bookkeeping). Errors raised by queued operations are never wrapped:
they are suppressed or re-raised as-is according to the task error policy.
"""


class FluxCapacitorError(Exception):
    """Base class for FluxCapacitor errors."""

    def __init__(self, message: str, *, context: dict | None = None):
        """Initialize the exception.

        Args:
            message: Error description.
            context: Optional diagnostic context for tracing.
        """
        super().__init__(message)
        self.context = context or {}


class QueueStateError(FluxCapacitorError):
    """Raised when an operation is not allowed in the current queue status."""


class MissingSettlementError(FluxCapacitorError):
    """Raised when a background task has no settlement handle to await."""
