"""hcbsrecon - Payment reconciliation for HCBS billing.

This package provides the payment side of a home and community based
services billing system:
- Importing remittance advice as payments
- Matching payments to outstanding claims
- Reconciling, auto-reconciling and undoing payment applications
- Recording adjustments and denials
- Accounts receivable aging, DSO and collection reporting
"""

from __future__ import annotations

from hcbsrecon.config.settings import Settings
from hcbsrecon.core.errors import (
    BusinessError,
    IntegrationError,
    NotFoundError,
    ReconError,
    ValidationError,
)
from hcbsrecon.core.models import (
    Claim,
    ClaimAllocation,
    Payment,
    PaymentAdjustment,
    ReconcileRequest,
    ReconciliationResult,
    RemittanceImport,
)
from hcbsrecon.core.types import AdjustmentType, ClaimStatus, ReconciliationStatus
from hcbsrecon.orchestrator.workflow import PaymentWorkflow


__version__ = "0.1.0"

__all__ = [
    "AdjustmentType",
    "BusinessError",
    "Claim",
    "ClaimAllocation",
    "ClaimStatus",
    "IntegrationError",
    "NotFoundError",
    "Payment",
    "PaymentAdjustment",
    "PaymentWorkflow",
    "ReconError",
    "ReconcileRequest",
    "ReconciliationResult",
    "ReconciliationStatus",
    "RemittanceImport",
    "Settings",
    "ValidationError",
]
