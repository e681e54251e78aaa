"""Core type definitions and enums."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import TypeAlias


# Type aliases for clarity
Money: TypeAlias = Decimal
Cents: TypeAlias = int


class ReconciliationStatus(str, Enum):
    """How much of a payment has been applied to claims."""

    UNRECONCILED = "unreconciled"
    PARTIALLY_RECONCILED = "partial"
    RECONCILED = "reconciled"
    EXCEPTION = "exception"


class PaymentMethod(str, Enum):
    """How the payer remitted the funds."""

    EFT = "eft"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    OTHER = "other"


class AdjustmentType(str, Enum):
    """Categories of difference between billed and paid amounts."""

    CONTRACTUAL = "contractual"
    DEDUCTIBLE = "deductible"
    COINSURANCE = "coinsurance"
    COPAY = "copay"
    NONCOVERED = "noncovered"
    TRANSFER = "transfer"
    OTHER = "other"


class ClaimStatus(str, Enum):
    """Lifecycle states of a claim."""

    DRAFT = "draft"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"
    PENDING = "pending"
    PAID = "paid"
    PARTIAL_PAID = "partial_paid"
    DENIED = "denied"
    APPEALED = "appealed"
    VOID = "void"
    FINAL_DENIED = "final_denied"


class RemittanceFileType(str, Enum):
    """Formats a remittance file can arrive in."""

    EDI_835 = "edi_835"
    CSV = "csv"
    PDF = "pdf"
    EXCEL = "excel"
    CUSTOM = "custom"


class RecordStatus(str, Enum):
    """Row-level activity flag."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ErrorKind(str, Enum):
    """Failure categories callers can branch on."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    BUSINESS = "business"
    INTEGRATION = "integration"


class WorkPriority(str, Enum):
    """Collections follow-up priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReconciliationAction(str, Enum):
    """Kinds of entries in a payment's reconciliation history."""

    RECONCILE = "reconcile"
    AUTO_RECONCILE = "auto_reconcile"
    UNDO = "undo"
    REFRESH = "refresh"
    IMPORT = "import"


# Claim states the matcher proposes against
MATCHABLE_CLAIM_STATUSES = (ClaimStatus.SUBMITTED, ClaimStatus.PENDING)

# Claim states counted as open receivables
OUTSTANDING_CLAIM_STATUSES = (
    ClaimStatus.SUBMITTED,
    ClaimStatus.ACKNOWLEDGED,
    ClaimStatus.PENDING,
)

# Claim states carrying a receivable balance in the aging report
RECEIVABLE_CLAIM_STATUSES = (*OUTSTANDING_CLAIM_STATUSES, ClaimStatus.PARTIAL_PAID)

# Claim states counted as denied in payer and program performance
DENIED_CLAIM_STATUSES = (ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED)
