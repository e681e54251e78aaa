"""Payment workflow orchestrator.

Validates caller input and payment state, then delegates to the matching,
reconciliation, ledger, ingestion and receivables services.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from hcbsrecon.config.settings import Settings
from hcbsrecon.core.errors import BusinessError, NotFoundError
from hcbsrecon.core.models import AdjustmentInput
from hcbsrecon.core.types import AdjustmentType, ClaimStatus, ReconciliationStatus, RecordStatus
from hcbsrecon.services.adjustments import AdjustmentLedger
from hcbsrecon.services.matching import PaymentMatcher
from hcbsrecon.services.receivables import ReceivablesReporter
from hcbsrecon.services.reconciliation import ReconciliationService
from hcbsrecon.services.remittance import RemittanceProcessor
from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.database import Database
from hcbsrecon.storage.payment_repository import PaymentRepository


if TYPE_CHECKING:
    import sqlite3
    from datetime import date

    from hcbsrecon.core.models import (
        AdjustmentFilters,
        AdjustmentImpact,
        AdjustmentReason,
        AdjustmentTrends,
        AgingReport,
        BatchItem,
        BatchReconciliationResult,
        CollectionRateReport,
        DateRange,
        DenialAnalysis,
        DSOReport,
        MatchResult,
        OutstandingClaim,
        Payment,
        PaymentAdjustment,
        ReconcileRequest,
        ReconciliationDetails,
        ReconciliationEvent,
        ReconciliationResult,
        RemittanceImport,
        RemittanceProcessingResult,
        UndoResult,
        UnreconciledPayment,
        WorkListItem,
    )
    from hcbsrecon.tools.parser import RemittanceParser

logger = logging.getLogger(__name__)

# Claim status implied by recording an adjustment of a given type
ADJUSTMENT_CLAIM_STATUS = {
    AdjustmentType.NONCOVERED: ClaimStatus.DENIED,
    AdjustmentType.CONTRACTUAL: ClaimStatus.PARTIAL_PAID,
}


class PaymentWorkflow:
    """Entry point for payment reconciliation and adjustment workflows."""

    def __init__(
        self,
        settings: Settings | None = None,
        database: Database | None = None,
        parser: RemittanceParser | None = None,
    ) -> None:
        if settings is None:
            settings = Settings()
        self.settings = settings
        self.database = database or Database(settings.database.path)

        self._payments = PaymentRepository()
        self._claims = ClaimRepository()
        self.matcher = PaymentMatcher(self.database, settings, self._payments, self._claims)
        self.ledger = AdjustmentLedger(self.database, self._payments)
        self.reconciliation = ReconciliationService(
            self.database, settings, self.matcher, self.ledger, self._payments, self._claims
        )
        self.remittance = RemittanceProcessor(
            self.database, settings, parser, self._payments, self._claims
        )
        self.receivables = ReceivablesReporter(
            self.database, settings, self._payments, self._claims
        )

    # -- validation ---------------------------------------------------------

    def validate_payment(self, payment_id: str) -> Payment:
        """Return the payment, or raise if it is missing or inactive."""
        with self.database.connection() as conn:
            payment = self._payments.find_by_id(conn, payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        if payment.status != RecordStatus.ACTIVE:
            raise BusinessError("Payment is not active", "payment.inactive", {"payment_id": payment_id})
        return payment

    @staticmethod
    def _check_min_age(min_age: int, code: str) -> None:
        if min_age < 0:
            raise BusinessError("Minimum age must not be negative", code, {"min_age": min_age})

    # -- remittance and reconciliation --------------------------------------

    async def process_remittance(self, import_data: RemittanceImport) -> RemittanceProcessingResult:
        return await self.remittance.process_remittance_file(import_data)

    async def get_suggested_matches(self, payment_id: str) -> MatchResult:
        self.validate_payment(payment_id)
        return await self.reconciliation.get_suggested_matches(payment_id)

    async def reconcile_payment(
        self, payment_id: str, request: ReconcileRequest, user_id: str | None = None
    ) -> ReconciliationResult:
        if not request.claim_payments:
            raise BusinessError(
                "At least one claim payment is required", "payment.reconcile.invalidData"
            )
        self.validate_payment(payment_id)
        return await self.reconciliation.reconcile_payment(payment_id, request, user_id)

    async def auto_reconcile_payment(
        self, payment_id: str, match_threshold: float | None = None, user_id: str | None = None
    ) -> ReconciliationResult:
        threshold = (
            self.settings.reconciliation.auto_match_threshold
            if match_threshold is None else match_threshold
        )
        if not 0.0 <= threshold <= 1.0:
            raise BusinessError(
                "Match threshold must be between 0 and 1",
                "payment.autoReconcile.invalidThreshold",
                {"threshold": threshold},
            )
        payment = self.validate_payment(payment_id)
        if payment.reconciliation_status != ReconciliationStatus.UNRECONCILED:
            raise BusinessError(
                "Payment is not in a reconcilable state",
                "payment.autoReconcile.invalidState",
                {"payment_id": payment_id, "status": payment.reconciliation_status.value},
            )
        return await self.reconciliation.auto_reconcile_payment(payment_id, threshold, user_id)

    async def undo_reconciliation(self, payment_id: str, user_id: str | None = None) -> UndoResult:
        payment = self.validate_payment(payment_id)
        if payment.reconciliation_status == ReconciliationStatus.UNRECONCILED:
            raise BusinessError(
                "Payment is already unreconciled",
                "payment.undo.alreadyUnreconciled",
                {"payment_id": payment_id},
            )
        return await self.reconciliation.undo_reconciliation(payment_id, user_id)

    async def batch_reconcile_payments(
        self, items: list[BatchItem], user_id: str | None = None
    ) -> BatchReconciliationResult:
        if not items:
            raise BusinessError(
                "At least one payment is required", "payment.batchReconcile.invalidData"
            )
        return await self.reconciliation.batch_reconcile_payments(items, user_id)

    async def get_reconciliation_details(self, payment_id: str) -> ReconciliationDetails:
        return await self.reconciliation.get_reconciliation_details(payment_id)

    async def get_reconciliation_history(self, payment_id: str) -> list[ReconciliationEvent]:
        return await self.reconciliation.get_reconciliation_history(payment_id)

    async def refresh_reconciliation_status(self, payment_id: str, user_id: str | None = None) -> Payment:
        return await self.reconciliation.refresh_reconciliation_status(payment_id, user_id)

    # -- adjustments --------------------------------------------------------

    def update_claim_status_for_adjustment(
        self,
        conn: sqlite3.Connection,
        claim_id: str,
        adjustment_type: AdjustmentType,
        user_id: str | None = None,
        reason: str | None = None,
    ) -> ClaimStatus | None:
        """Apply the claim status an adjustment implies. Returns the new status, if any."""
        new_status = ADJUSTMENT_CLAIM_STATUS.get(adjustment_type)
        if new_status is None:
            return None
        claim = self._claims.get(conn, claim_id)
        if claim.claim_status == new_status:
            return None
        self._claims.update_status(
            conn, claim_id, new_status,
            reason or f"{adjustment_type.value} adjustment recorded", user_id,
        )
        return new_status

    async def process_adjustment(
        self, claim_payment_id: str, data: AdjustmentInput, user_id: str | None = None
    ) -> PaymentAdjustment:
        """Record an adjustment and move the claim to the status it implies."""
        with self.database.transaction() as conn:
            adjustment = await self.ledger.add_adjustment(claim_payment_id, data, user_id, tx=conn)
            self.update_claim_status_for_adjustment(
                conn, adjustment.claim_id, adjustment.adjustment_type, user_id
            )
        return adjustment

    async def process_denial_adjustment(
        self,
        claim_id: str,
        denial_code: str,
        denial_reason: str = "",
        user_id: str | None = None,
    ) -> PaymentAdjustment:
        """Deny a claim in full: a non-covered adjustment for its total, claim to DENIED."""
        with self.database.transaction() as conn:
            claim = self._claims.get(conn, claim_id)
            adjustment = await self.ledger.add_claim_adjustment(claim_id, AdjustmentInput(
                adjustment_type=AdjustmentType.NONCOVERED,
                adjustment_code=denial_code,
                adjustment_amount=claim.total_amount,
                description=denial_reason,
            ), user_id, tx=conn)
            self.update_claim_status_for_adjustment(
                conn, claim_id, AdjustmentType.NONCOVERED, user_id,
                reason=f"Claim denied with code {denial_code}",
            )
        logger.info("Claim %s denied with code %s", claim_id, denial_code)
        return adjustment

    async def process_underpayment_adjustment(
        self,
        claim_payment_id: str,
        expected_amount: Decimal,
        actual_amount: Decimal,
        adjustment_code: str,
        user_id: str | None = None,
    ) -> PaymentAdjustment:
        """Record the shortfall of a payment as a contractual adjustment."""
        difference = Decimal(expected_amount) - Decimal(actual_amount)
        if difference <= 0:
            raise BusinessError(
                "Underpayment amount must be positive",
                "adjustment.underpayment.invalidAmount",
                {"expected_amount": str(expected_amount), "actual_amount": str(actual_amount)},
            )
        return await self.process_adjustment(claim_payment_id, AdjustmentInput(
            adjustment_type=AdjustmentType.CONTRACTUAL,
            adjustment_code=adjustment_code,
            adjustment_amount=difference,
            description=f"Underpayment: expected {expected_amount}, received {actual_amount}",
        ), user_id)

    async def process_overpayment_adjustment(
        self,
        claim_payment_id: str,
        expected_amount: Decimal,
        actual_amount: Decimal,
        adjustment_code: str,
        user_id: str | None = None,
    ) -> PaymentAdjustment:
        """Record the excess of a payment as a contractual adjustment.

        The claim is left in its current status.
        """
        difference = Decimal(actual_amount) - Decimal(expected_amount)
        if difference <= 0:
            raise BusinessError(
                "Overpayment amount must be positive",
                "adjustment.overpayment.invalidAmount",
                {"expected_amount": str(expected_amount), "actual_amount": str(actual_amount)},
            )
        return await self.ledger.add_adjustment(claim_payment_id, AdjustmentInput(
            adjustment_type=AdjustmentType.CONTRACTUAL,
            adjustment_code=adjustment_code,
            adjustment_amount=difference,
            description=f"Overpayment: expected {expected_amount}, received {actual_amount}",
        ), user_id)

    async def get_adjustments_for_payment(self, payment_id: str) -> list[PaymentAdjustment]:
        return await self.ledger.get_adjustments_for_payment(payment_id)

    async def get_adjustments_for_claim(self, claim_id: str) -> list[PaymentAdjustment]:
        return await self.ledger.get_adjustments_for_claim(claim_id)

    async def get_adjustment_trends(self, filters: AdjustmentFilters | None = None) -> AdjustmentTrends:
        return await self.ledger.get_adjustment_trends(filters)

    async def get_top_adjustment_reasons(
        self, filters: AdjustmentFilters | None = None, limit: int = 10
    ) -> list[AdjustmentReason]:
        return await self.ledger.get_top_adjustment_reasons(filters, limit)

    async def get_adjustment_impact(self, date_range: DateRange) -> AdjustmentImpact:
        return await self.ledger.get_adjustment_impact(date_range)

    async def get_denial_analysis(self, filters: AdjustmentFilters | None = None) -> DenialAnalysis:
        return await self.ledger.get_denial_analysis(filters)

    # -- receivables --------------------------------------------------------

    async def get_aging_report(
        self,
        as_of_date: date | None = None,
        payer_id: str | None = None,
        program_id: str | None = None,
    ) -> AgingReport:
        return await self.receivables.get_aging_report(as_of_date, payer_id, program_id)

    async def get_outstanding_claims(
        self, min_age: int = 0, payer_id: str | None = None, program_id: str | None = None
    ) -> list[OutstandingClaim]:
        self._check_min_age(min_age, "claims.outstanding.invalidMinAge")
        return await self.receivables.get_outstanding_claims(min_age, payer_id, program_id)

    async def get_unreconciled_payments(
        self, min_age: int = 0, payer_id: str | None = None
    ) -> list[UnreconciledPayment]:
        self._check_min_age(min_age, "payments.unreconciled.invalidMinAge")
        return await self.receivables.get_unreconciled_payments(min_age, payer_id)

    async def generate_collection_work_list(self, min_age: int | None = None) -> list[WorkListItem]:
        if min_age is not None:
            self._check_min_age(min_age, "claims.outstanding.invalidMinAge")
        return await self.receivables.get_collection_work_list(min_age)

    async def calculate_dso(self, date_range: DateRange, payer_id: str | None = None) -> DSOReport:
        return await self.receivables.calculate_dso(date_range, payer_id)

    async def calculate_collection_rate(
        self, date_range: DateRange, payer_id: str | None = None
    ) -> CollectionRateReport:
        return await self.receivables.calculate_collection_rate(date_range, payer_id)
