"""Domain error types."""
from typing import Optional


class DomainError(Exception):
    """Base domain error."""
    pass


class NotFoundError(DomainError):
    """Resource not found."""
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with id {identifier} not found")


class ValidationError(DomainError):
    """Validation error (missing or malformed input, e.g. an incomplete notification intent)."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthorizationError(DomainError):
    """Authorization error."""
    def __init__(self, message: str = "Not authorized"):
        self.message = message
        super().__init__(message)


class DeliveryError(DomainError):
    """Push delivery failed for one device token."""
    def __init__(self, token: str, kind: str, message: str):
        self.token = token
        self.kind = kind
        self.message = message
        super().__init__(f"Delivery to {token[:20]}... failed ({kind}): {message}")


class TransientDeliveryError(DeliveryError):
    """Gateway timeout / 5xx. The token is kept and the broadcast may be retried."""


class PermanentDeliveryError(DeliveryError):
    """Invalid or unregistered token. The token is pruned."""


class StorageDegradedError(DomainError):
    """A record-store write failed; delivery continues without durable read tracking."""
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage degraded during {operation}{detail}")
