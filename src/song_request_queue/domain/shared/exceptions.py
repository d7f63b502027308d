"""Error taxonomy shared by the engine, the hub and the transport layer."""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class ValidationError(DomainError):
    """Raised when a submission or command is malformed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class PolicyRejection(DomainError):
    """Raised when a well-formed request is refused by queue policy.

    Reported to the submitter only, never broadcast.
    """

    def __init__(self, rule: str, message: str | None = None) -> None:
        msg = message or f"Rejected by policy: {rule}"
        super().__init__(msg, code="POLICY_REJECTION")
        self.rule = rule


class PersistenceError(DomainError):
    """Raised when a durable write or read fails."""

    def __init__(self, operation: str, message: str | None = None) -> None:
        msg = message or f"Persistence failed during {operation}"
        super().__init__(msg, code="PERSISTENCE_ERROR")
        self.operation = operation


class TransportError(DomainError):
    """Raised when an observer channel fails; local to that observer."""

    def __init__(self, message: str, observer_id: str | None = None) -> None:
        super().__init__(message, code="TRANSPORT_ERROR")
        self.observer_id = observer_id


class NotFound(DomainError):
    """Raised when an operation references an id that does not exist."""

    def __init__(self, entity_type: str, identifier: str | int, message: str | None = None) -> None:
        msg = message or f"{entity_type} with id '{identifier}' not found"
        super().__init__(msg, code="NOT_FOUND")
        self.entity_type = entity_type
        self.identifier = identifier
