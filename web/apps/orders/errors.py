"""Errors raised by the order engine.

Every error is a ``ValueError`` whose string form is a short upper-case
code (for example ``"INSUFFICIENT_STOCK"``) so callers can branch on
``str(exc)``. A human-readable ``message`` travels alongside for API
responses.
"""


class OrderError(ValueError):
    """Base class for order engine failures.

    Attributes:
        code: Stable machine-readable error code.
        message: Human-readable description shown to API clients.
    """

    def __init__(self, code: str, message: str | None = None):
        super().__init__(code)
        self.code = code
        self.message = message or code


class OrderValidationError(OrderError):
    """Request rejected before any mutation (missing customer, bad items...)."""


class OrderNotFound(OrderError):
    """Customer or order referenced by a state change does not exist."""


class InsufficientStock(OrderError):
    """A book could not be reserved because stock ran out."""


class InvalidTransition(OrderError):
    """The order's current status does not allow the requested change."""


class PersistenceError(OrderError):
    """The customer document write was not acknowledged."""
