"""Data models for the reconciliation system."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator

from hcbsrecon.core.types import (  # noqa: TC001 - Pydantic needs at runtime
    AdjustmentType,
    ClaimStatus,
    PaymentMethod,
    ReconciliationAction,
    ReconciliationStatus,
    RecordStatus,
    RemittanceFileType,
    WorkPriority,
)
from hcbsrecon.core.utils import to_money


ZERO = Decimal("0.00")


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------


class Payer(BaseModel):
    """An insurance payer or funding program."""
    id: str
    name: str
    payer_identifier: str | None = None


class Claim(BaseModel):
    """A billed claim. Owned by the claims subsystem, read and status-updated here."""
    id: str
    claim_number: str
    payer_id: str
    program_id: str | None = None
    client_name: str = ""
    service_start_date: date
    service_end_date: date | None = None
    submission_date: date | None = None
    adjudication_date: date | None = None
    total_amount: Decimal
    claim_status: ClaimStatus
    created_at: datetime | None = None


class PaymentAdjustment(BaseModel):
    """Difference between billed and paid amounts, with a reason code.

    ``claim_payment_id`` is empty for pure denials recorded against the claim.
    ``payment_id`` is filled in by queries that join through the claim payment.
    """
    id: str
    claim_payment_id: str | None = None
    claim_id: str
    payment_id: str | None = None
    adjustment_type: AdjustmentType
    adjustment_code: str
    adjustment_amount: Decimal = Field(gt=0)
    description: str = ""
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: datetime | None = None
    created_by: str | None = None


class ClaimPayment(BaseModel):
    """The portion of a payment applied to one claim."""
    id: str
    payment_id: str
    claim_id: str
    paid_amount: Decimal = Field(ge=0)
    status: RecordStatus = RecordStatus.ACTIVE
    adjustments: list[PaymentAdjustment] = Field(default_factory=list)
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    @field_validator("paid_amount")
    @classmethod
    def _round_paid(cls, value: Decimal) -> Decimal:
        return to_money(value)


class Payment(BaseModel):
    """Money received from a payer."""
    id: str
    payer_id: str
    payment_date: date
    payment_amount: Decimal = Field(ge=0)
    payment_method: PaymentMethod = PaymentMethod.EFT
    reference_number: str | None = None
    check_number: str | None = None
    remittance_id: str | None = None
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.UNRECONCILED
    notes: str | None = None
    status: RecordStatus = RecordStatus.ACTIVE
    version: int = 1
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    @field_validator("payment_amount")
    @classmethod
    def _round_amount(cls, value: Decimal) -> Decimal:
        return to_money(value)


class RemittanceInfo(BaseModel):
    """Summary of the remittance advice that produced a payment."""
    id: str
    payment_id: str
    remittance_number: str | None = None
    payer_identifier: str | None = None
    file_type: RemittanceFileType
    file_name: str | None = None
    total_details: int = 0
    matched_details: int = 0
    processed_at: datetime | None = None


class RemittanceDetail(BaseModel):
    """One claim line from a remittance advice. ``claim_id`` is empty when unmatched."""
    id: str
    remittance_id: str
    claim_id: str | None = None
    claim_number: str
    service_date: date | None = None
    billed_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    adjustment_amount: Decimal = ZERO
    adjustment_codes: list[str] = Field(default_factory=list)


class ReconciliationEvent(BaseModel):
    """An entry in a payment's reconciliation history."""
    id: int | None = None
    payment_id: str
    action: ReconciliationAction
    previous_status: ReconciliationStatus | None = None
    new_status: ReconciliationStatus
    total_applied: Decimal = ZERO
    user_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Matching and reconciliation
# ---------------------------------------------------------------------------


class ClaimMatch(BaseModel):
    """A proposed application of a payment to a claim."""
    claim_id: str
    claim_number: str
    amount: Decimal
    score: float = Field(ge=0.0, le=1.0)
    reason: str


class MatchResult(BaseModel):
    """Ranked match proposals for a payment."""
    payment_id: str
    payment_amount: Decimal
    matches: list[ClaimMatch] = Field(default_factory=list)
    unmatched_amount: Decimal

    @property
    def matched_amount(self) -> Decimal:
        return sum((m.amount for m in self.matches), ZERO)


class AdjustmentInput(BaseModel):
    """Raw adjustment data. Checked by the ledger so every problem is reported at once."""
    adjustment_type: Any = None
    adjustment_code: Any = None
    adjustment_amount: Any = None
    description: str = ""


class ClaimAllocation(BaseModel):
    """Amount of a payment to apply to a claim, with optional adjustments."""
    claim_id: str
    amount: Decimal = Field(ge=0)
    adjustments: list[AdjustmentInput] = Field(default_factory=list)

    @field_validator("amount")
    @classmethod
    def _round_amount(cls, value: Decimal) -> Decimal:
        return to_money(value)


class ReconcileRequest(BaseModel):
    """Full set of claim allocations for a payment."""
    claim_payments: list[ClaimAllocation] = Field(default_factory=list)
    notes: str | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((a.amount for a in self.claim_payments), ZERO)


class ClaimStatusChange(BaseModel):
    """A claim whose status moved as a side effect of reconciliation."""
    claim_id: str
    previous_status: ClaimStatus
    new_status: ClaimStatus


class ReconciliationResult(BaseModel):
    """Outcome of applying a payment to claims."""
    payment: Payment
    claim_payments: list[ClaimPayment] = Field(default_factory=list)
    total_amount: Decimal
    matched_amount: Decimal
    unmatched_amount: Decimal
    reconciliation_status: ReconciliationStatus
    claim_status_changes: list[ClaimStatusChange] = Field(default_factory=list)


class UndoResult(BaseModel):
    """Outcome of reverting a reconciliation."""
    payment: Payment
    removed_claim_payments: int
    claim_status_changes: list[ClaimStatusChange] = Field(default_factory=list)


class BatchItem(BaseModel):
    """One payment in a batch reconciliation."""
    payment_id: str
    request: ReconcileRequest


class BatchFailure(BaseModel):
    """A batch item that did not reconcile."""
    payment_id: str
    error: str
    code: str | None = None


class BatchReconciliationResult(BaseModel):
    """Per-item outcomes of a batch reconciliation."""
    successful: list[str] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)
    results: list[ReconciliationResult] = Field(default_factory=list)


class ReconciliationDetails(BaseModel):
    """Read-only view of a payment's reconciliation state."""
    payment: Payment
    claim_payments: list[ClaimPayment] = Field(default_factory=list)
    total_amount: Decimal
    matched_amount: Decimal
    unmatched_amount: Decimal
    remittance: RemittanceInfo | None = None
    remittance_details: list[RemittanceDetail] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Remittance ingestion
# ---------------------------------------------------------------------------


class RemittanceHeader(BaseModel):
    """Payment-level data parsed from a remittance file."""
    payment_date: date
    payment_amount: Decimal = Field(ge=0)
    payment_method: str | None = None
    reference_number: str | None = None
    check_number: str | None = None
    remittance_number: str | None = None
    payer_identifier: str | None = None

    @field_validator("payment_amount")
    @classmethod
    def _round_amount(cls, value: Decimal) -> Decimal:
        return to_money(value)


class RemittanceLine(BaseModel):
    """Claim-level data parsed from a remittance file."""
    claim_number: str
    service_date: date | None = None
    billed_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    adjustment_amount: Decimal = ZERO
    adjustment_codes: list[str] = Field(default_factory=list)


class ParsedRemittance(BaseModel):
    """Parser output consumed by remittance ingestion."""
    header: RemittanceHeader
    details: list[RemittanceLine] = Field(default_factory=list)


class RemittanceImport(BaseModel):
    """A remittance file submitted for processing."""
    payer_id: str = ""
    file_content: bytes = b""
    file_type: str = ""
    file_name: str | None = None
    user_id: str | None = None

    @field_validator("file_content", mode="before")
    @classmethod
    def _encode_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.encode("utf-8")
        return value


class RemittanceProcessingResult(BaseModel):
    """Outcome of importing a remittance file."""
    payment: Payment
    remittance_info: RemittanceInfo
    details_processed: int
    claims_matched: int
    matched_amount: Decimal
    unmatched_amount: Decimal
    unmatched_claim_numbers: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Queries and filters
# ---------------------------------------------------------------------------


class DateRange(BaseModel):
    """Inclusive date window."""
    start_date: date
    end_date: date

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


class ClaimQuery(BaseModel):
    """Filter for claim lookups."""
    payer_id: str | None = None
    program_id: str | None = None
    statuses: list[ClaimStatus] = Field(default_factory=list)
    service_date_from: date | None = None
    service_date_to: date | None = None
    submission_date_from: date | None = None
    submission_date_to: date | None = None
    limit: int | None = 100


class AdjustmentFilters(BaseModel):
    """Scope for adjustment analytics."""
    date_range: DateRange | None = None
    payer_id: str | None = None
    program_id: str | None = None
    adjustment_type: AdjustmentType | None = None


# ---------------------------------------------------------------------------
# Adjustment analytics
# ---------------------------------------------------------------------------


class AdjustmentTotals(BaseModel):
    """Count and amount for one adjustment type."""
    count: int = 0
    amount: Decimal = ZERO


class PeriodAdjustmentTrend(BaseModel):
    period: str
    adjustment_type: AdjustmentType
    count: int
    amount: Decimal


class PayerAdjustmentTrend(BaseModel):
    payer_id: str
    payer_name: str
    adjustment_type: AdjustmentType
    count: int
    amount: Decimal


class AdjustmentTrends(BaseModel):
    """Adjustment totals by calendar month and by payer."""
    by_period: list[PeriodAdjustmentTrend] = Field(default_factory=list)
    by_payer: list[PayerAdjustmentTrend] = Field(default_factory=list)


class AdjustmentReason(BaseModel):
    """Frequency of one adjustment reason code."""
    adjustment_code: str
    adjustment_type: AdjustmentType
    count: int
    total_amount: Decimal
    description: str = ""


class AdjustmentImpact(BaseModel):
    """Financial effect of adjustments over a period."""
    total_billed: Decimal
    total_paid: Decimal
    total_adjusted: Decimal
    adjustment_rate: float
    impact_by_type: dict[AdjustmentType, Decimal] = Field(default_factory=dict)


class DenialReasonSummary(BaseModel):
    adjustment_code: str
    count: int
    amount: Decimal
    description: str = ""


class PayerDenialSummary(BaseModel):
    payer_id: str
    payer_name: str
    denied_claims: int
    total_claims: int
    denial_rate: float
    amount: Decimal


class DenialAnalysis(BaseModel):
    """Non-covered adjustments treated as denials."""
    total_claims: int
    denied_claims: int
    denial_rate: float
    total_denied_amount: Decimal
    by_reason: list[DenialReasonSummary] = Field(default_factory=list)
    by_payer: list[PayerDenialSummary] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Accounts receivable
# ---------------------------------------------------------------------------


class AgingBucket(BaseModel):
    """Outstanding balance for one age range."""
    label: str
    min_days: int | None = None
    max_days: int | None = None
    claim_count: int = 0
    amount: Decimal = ZERO


class GroupAging(BaseModel):
    """Aging totals for one payer or program."""
    group_id: str
    group_name: str
    total_outstanding: Decimal = ZERO
    claim_count: int = 0
    buckets: dict[str, Decimal] = Field(default_factory=dict)


class AgingReport(BaseModel):
    """Accounts receivable aging as of a date."""
    as_of_date: date
    buckets: list[AgingBucket] = Field(default_factory=list)
    total_outstanding: Decimal = ZERO
    total_claims: int = 0
    by_payer: list[GroupAging] = Field(default_factory=list)
    by_program: list[GroupAging] = Field(default_factory=list)

    def bucket(self, label: str) -> AgingBucket:
        return next(b for b in self.buckets if b.label == label)


class OutstandingClaim(BaseModel):
    """An open claim with its unpaid balance."""
    claim_id: str
    claim_number: str
    client_name: str = ""
    payer_id: str
    payer_name: str = ""
    program_id: str | None = None
    service_date: date
    submission_date: date | None = None
    total_amount: Decimal
    paid_amount: Decimal = ZERO
    balance: Decimal
    age_days: int
    claim_status: ClaimStatus


class UnreconciledPayment(BaseModel):
    """A payment not yet fully applied to claims."""
    payment_id: str
    reference_number: str | None = None
    payer_id: str
    payer_name: str = ""
    payment_date: date
    payment_amount: Decimal
    applied_amount: Decimal = ZERO
    unapplied_amount: Decimal
    age_days: int
    reconciliation_status: ReconciliationStatus


class WorkListItem(BaseModel):
    """A claim queued for collections follow-up."""
    claim_id: str
    claim_number: str
    client_name: str = ""
    payer_name: str = ""
    balance: Decimal
    age_days: int
    priority: WorkPriority
    follow_up_action: str


class PeriodMetric(BaseModel):
    """One month of a DSO or collection-rate breakdown."""
    period: str
    billed: Decimal = ZERO
    collected: Decimal = ZERO
    ending_ar: Decimal = ZERO
    value: float = 0.0


class DSOReport(BaseModel):
    """Days sales outstanding for a period."""
    date_range: DateRange
    dso: float
    total_revenue: Decimal
    average_ar: Decimal
    details: list[PeriodMetric] = Field(default_factory=list)


class CollectionRateReport(BaseModel):
    """Share of billed amounts collected over a period, as a fraction."""
    date_range: DateRange
    collection_rate: float
    billed_amount: Decimal
    collected_amount: Decimal
    details: list[PeriodMetric] = Field(default_factory=list)


class PerformanceSummary(BaseModel):
    """Payment behaviour of a payer or program."""
    group_id: str
    group_name: str
    total_claims: int
    total_billed: Decimal
    total_collected: Decimal
    average_payment_days: float
    denial_rate: float
    collection_rate: float


class ClaimPaymentEntry(BaseModel):
    """One payment applied to a claim."""
    payment_id: str
    payment_date: date
    paid_amount: Decimal
    reconciliation_status: ReconciliationStatus
    adjustments: list[PaymentAdjustment] = Field(default_factory=list)


class PayerClaimEntry(BaseModel):
    """A claim row in a payer history."""
    claim_id: str
    claim_number: str
    service_date: date
    submission_date: date | None = None
    total_amount: Decimal
    claim_status: ClaimStatus
    paid_amount: Decimal = ZERO
    adjusted_amount: Decimal = ZERO
    last_payment_date: date | None = None


class PayerClaimHistory(BaseModel):
    """A payer's claims over a period with summary statistics."""
    payer_id: str
    date_range: DateRange
    summary: PerformanceSummary
    claims: list[PayerClaimEntry] = Field(default_factory=list)
