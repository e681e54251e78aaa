"""Core module - Domain types, models and errors."""

from __future__ import annotations

from hcbsrecon.core.errors import (
    BusinessError,
    FieldError,
    IntegrationError,
    NotFoundError,
    ReconError,
    ValidationError,
)
from hcbsrecon.core.types import (
    AdjustmentType,
    ClaimStatus,
    ErrorKind,
    PaymentMethod,
    ReconciliationAction,
    ReconciliationStatus,
    RecordStatus,
    RemittanceFileType,
    WorkPriority,
)
from hcbsrecon.core.utils import parse_money, to_money


__all__ = [
    # Types
    "AdjustmentType",
    # Errors
    "BusinessError",
    "ClaimStatus",
    "ErrorKind",
    "FieldError",
    "IntegrationError",
    "NotFoundError",
    "PaymentMethod",
    "ReconError",
    "ReconciliationAction",
    "ReconciliationStatus",
    "RecordStatus",
    "RemittanceFileType",
    "ValidationError",
    "WorkPriority",
    # Utils
    "parse_money",
    "to_money",
]
