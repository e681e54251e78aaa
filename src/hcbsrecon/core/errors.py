"""Domain errors raised by the reconciliation services."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from hcbsrecon.core.types import ErrorKind


class FieldError(BaseModel):
    """A single invalid input field."""
    field: str
    code: str
    message: str


class ReconError(Exception):
    """Base class for all domain errors.

    Every error carries a stable ``code`` and a ``kind`` so callers can branch
    without matching on message text.
    """

    kind: ErrorKind = ErrorKind.BUSINESS

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "code": self.code, "message": self.message}


class NotFoundError(ReconError):
    """A referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity.capitalize()} not found: {entity_id}", f"{entity}.notFound")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(ReconError):
    """Input failed validation. Collects every violation found."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self, message: str, errors: list[FieldError], code: str = "validation.failed"
    ) -> None:
        super().__init__(message, code)
        self.errors = errors

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.model_dump() for e in self.errors]
        return data


class BusinessError(ReconError):
    """A business rule was violated."""

    kind = ErrorKind.BUSINESS

    def __init__(
        self, message: str, code: str, context: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message, code)
        self.context = context or {}


class IntegrationError(ReconError):
    """A collaborator such as a remittance parser failed."""

    kind = ErrorKind.INTEGRATION

    def __init__(
        self,
        message: str,
        service: str,
        operation: str,
        retryable: bool = False,
        code: str = "integration.failed",
    ) -> None:
        super().__init__(message, code)
        self.service = service
        self.operation = operation
        self.retryable = retryable
