"""Reconciliation of payments against claims.

Applies a payment to claims, records adjustments through the ledger, keeps
claim statuses in step and maintains the payment's cached reconciliation
status. Each public operation runs in one transaction, either the caller's
or its own.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from hcbsrecon.config.settings import Settings
from hcbsrecon.core.errors import BusinessError, ReconError
from hcbsrecon.core.models import (
    ZERO,
    BatchFailure,
    BatchReconciliationResult,
    ClaimAllocation,
    ClaimPayment,
    ClaimStatusChange,
    ReconcileRequest,
    ReconciliationDetails,
    ReconciliationEvent,
    ReconciliationResult,
    UndoResult,
)
from hcbsrecon.core.types import ClaimStatus, ReconciliationAction, ReconciliationStatus
from hcbsrecon.core.utils import new_id
from hcbsrecon.services.adjustments import AdjustmentLedger
from hcbsrecon.services.matching import PaymentMatcher, calculate_reconciliation_status
from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.payment_repository import PaymentRepository


if TYPE_CHECKING:
    import sqlite3

    from hcbsrecon.core.models import (
        BatchItem,
        Claim,
        MatchResult,
        Payment,
    )
    from hcbsrecon.storage.database import Database

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Commits payment-to-claim allocations."""

    def __init__(
        self,
        database: Database,
        settings: Settings | None = None,
        matcher: PaymentMatcher | None = None,
        ledger: AdjustmentLedger | None = None,
        payments: PaymentRepository | None = None,
        claims: ClaimRepository | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._db = database
        self._payments = payments or PaymentRepository()
        self._claims = claims or ClaimRepository()
        self._matcher = matcher or PaymentMatcher(
            database, self.settings, self._payments, self._claims
        )
        self._ledger = ledger or AdjustmentLedger(database, self._payments)

    # -- commands -----------------------------------------------------------

    async def reconcile_payment(
        self,
        payment_id: str,
        request: ReconcileRequest,
        user_id: str | None = None,
        tx: sqlite3.Connection | None = None,
    ) -> ReconciliationResult:
        """Replace a payment's claim allocations with ``request``.

        Raises BusinessError when the allocations exceed the payment, name a
        claim twice, or lose an optimistic-lock race; NotFoundError for an
        unknown payment or claim; ValidationError for a bad adjustment.
        Nothing is written when any of these is raised.
        """
        try:
            with self._db.scope(tx) as conn:
                result = await self._reconcile(
                    conn, payment_id, request, user_id, ReconciliationAction.RECONCILE
                )
        except Exception as e:
            logger.error("Reconciliation failed for payment %s: %s", payment_id, e)
            raise
        logger.info(
            "Reconciled payment %s: %d claims, applied %s of %s -> %s",
            payment_id, len(result.claim_payments), result.matched_amount,
            result.total_amount, result.reconciliation_status.value,
        )
        return result

    async def undo_reconciliation(
        self,
        payment_id: str,
        user_id: str | None = None,
        tx: sqlite3.Connection | None = None,
    ) -> UndoResult:
        """Remove every allocation of a payment and reopen the affected claims."""
        try:
            with self._db.scope(tx) as conn:
                result = self._undo(conn, payment_id, user_id)
        except Exception as e:
            logger.error("Undo failed for payment %s: %s", payment_id, e)
            raise
        logger.info(
            "Undid reconciliation of payment %s: removed %d claim payments",
            payment_id, result.removed_claim_payments,
        )
        return result

    async def auto_reconcile_payment(
        self,
        payment_id: str,
        match_threshold: float | None = None,
        user_id: str | None = None,
        tx: sqlite3.Connection | None = None,
    ) -> ReconciliationResult:
        """Reconcile using the matcher's suggestions scoring at least ``match_threshold``.

        Suggestions are taken in rank order while they still fit in the
        unapplied part of the payment. A suggestion above the threshold that
        would overdraw the payment is skipped, so not every qualifying match
        is necessarily applied.
        """
        threshold = (
            self.settings.reconciliation.auto_match_threshold
            if match_threshold is None else match_threshold
        )
        try:
            with self._db.scope(tx) as conn:
                match = await self._matcher.match_payment_to_claims(payment_id, tx=conn)
                allocations = self._select_allocations(match, threshold)
                request = ReconcileRequest(
                    claim_payments=allocations,
                    notes=f"Auto-reconciled with {len(allocations)} matches (threshold: {threshold})",
                )
                result = await self._reconcile(
                    conn, payment_id, request, user_id, ReconciliationAction.AUTO_RECONCILE
                )
        except Exception as e:
            logger.error("Auto-reconciliation failed for payment %s: %s", payment_id, e)
            raise
        logger.info(
            "Auto-reconciled payment %s with %d matches at threshold %.2f",
            payment_id, len(result.claim_payments), threshold,
        )
        return result

    async def batch_reconcile_payments(
        self, items: list[BatchItem], user_id: str | None = None
    ) -> BatchReconciliationResult:
        """Reconcile each item in its own transaction; failures do not stop the batch."""
        result = BatchReconciliationResult()
        for item in items:
            try:
                reconciled = await self.reconcile_payment(item.payment_id, item.request, user_id)
                result.successful.append(item.payment_id)
                result.results.append(reconciled)
            except ReconError as e:
                result.failed.append(
                    BatchFailure(payment_id=item.payment_id, error=e.message, code=e.code)
                )
            except Exception as e:  # noqa: BLE001 - reported per item
                result.failed.append(BatchFailure(payment_id=item.payment_id, error=str(e)))
        logger.info(
            "Batch reconciliation: %d succeeded, %d failed",
            len(result.successful), len(result.failed),
        )
        return result

    async def refresh_reconciliation_status(
        self,
        payment_id: str,
        user_id: str | None = None,
        tx: sqlite3.Connection | None = None,
    ) -> Payment:
        """Recompute the cached status from the stored claim payments."""
        with self._db.scope(tx) as conn:
            payment = self._payments.get(conn, payment_id)
            claim_payments = self._payments.get_claim_payments(conn, payment_id, with_adjustments=False)
            applied = sum((cp.paid_amount for cp in claim_payments), ZERO)
            status = self._status_for(payment.payment_amount, applied)
            if status == payment.reconciliation_status:
                return payment
            version = self._payments.update_reconciliation_status(
                conn, payment_id, status, payment.version, user_id
            )
            self._record_event(
                conn, payment, ReconciliationAction.REFRESH, status, applied, user_id, {}
            )
        logger.warning(
            "Payment %s status corrected from %s to %s",
            payment_id, payment.reconciliation_status.value, status.value,
        )
        return payment.model_copy(update={"reconciliation_status": status, "version": version})

    # -- queries ------------------------------------------------------------

    async def get_suggested_matches(self, payment_id: str) -> MatchResult:
        return await self._matcher.match_payment_to_claims(payment_id)

    async def get_reconciliation_details(self, payment_id: str) -> ReconciliationDetails:
        """Payment with its claim payments, adjustments and remittance."""
        with self._db.connection() as conn:
            payment = self._payments.get(conn, payment_id)
            claim_payments = self._payments.get_claim_payments(conn, payment_id)
            remittance, details = None, []
            if payment.remittance_id:
                remittance = self._payments.get_remittance_info(conn, payment.remittance_id)
                details = self._payments.get_remittance_details(conn, payment.remittance_id)
        applied = sum((cp.paid_amount for cp in claim_payments), ZERO)
        return ReconciliationDetails(
            payment=payment,
            claim_payments=claim_payments,
            total_amount=payment.payment_amount,
            matched_amount=applied,
            unmatched_amount=payment.payment_amount - applied,
            remittance=remittance,
            remittance_details=details,
        )

    async def get_reconciliation_history(self, payment_id: str) -> list[ReconciliationEvent]:
        """Reconcile, undo and refresh events for a payment, newest first."""
        with self._db.connection() as conn:
            self._payments.get(conn, payment_id)
            return self._payments.get_events(conn, payment_id)

    # -- internals ----------------------------------------------------------

    def _status_for(self, total: Decimal, applied: Decimal) -> ReconciliationStatus:
        return calculate_reconciliation_status(
            total, applied, self.settings.reconciliation.balance_epsilon
        )

    def _select_allocations(self, match: MatchResult, threshold: float) -> list[ClaimAllocation]:
        """Greedy fit in rank order; qualifying matches that no longer fit are skipped."""
        remaining = match.payment_amount
        allocations = []
        for candidate in match.matches:
            if candidate.score < threshold or candidate.amount > remaining:
                continue
            allocations.append(ClaimAllocation(claim_id=candidate.claim_id, amount=candidate.amount))
            remaining -= candidate.amount
        return allocations

    def _check_request(self, payment: Payment, request: ReconcileRequest) -> None:
        seen: set[str] = set()
        for allocation in request.claim_payments:
            if allocation.claim_id in seen:
                raise BusinessError(
                    f"Claim {allocation.claim_id} appears more than once",
                    "payment.reconcile.duplicateClaim",
                    {"payment_id": payment.id, "claim_id": allocation.claim_id},
                )
            seen.add(allocation.claim_id)
        if request.total_amount > payment.payment_amount:
            raise BusinessError(
                "Total claim payment amount exceeds payment amount",
                "payment.reconcile.amountExceedsPayment",
                {
                    "payment_id": payment.id,
                    "payment_amount": str(payment.payment_amount),
                    "requested_amount": str(request.total_amount),
                },
            )

    def _claim_status_after_payment(self, claim: Claim, amount: Decimal) -> ClaimStatus | None:
        if claim.total_amount <= 0 or amount <= 0:
            return None
        if amount / claim.total_amount >= self.settings.reconciliation.paid_ratio:
            return ClaimStatus.PAID
        return ClaimStatus.PARTIAL_PAID

    async def _reconcile(
        self,
        conn: sqlite3.Connection,
        payment_id: str,
        request: ReconcileRequest,
        user_id: str | None,
        action: ReconciliationAction,
    ) -> ReconciliationResult:
        payment = self._payments.get(conn, payment_id)
        self._check_request(payment, request)
        claims = {a.claim_id: self._claims.get(conn, a.claim_id) for a in request.claim_payments}

        self._payments.remove_claim_payments(conn, payment_id, user_id)

        claim_payments: list[ClaimPayment] = []
        changes: list[ClaimStatusChange] = []
        for allocation in request.claim_payments:
            claim_payment = self._payments.add_claim_payment(conn, ClaimPayment(
                id=new_id(),
                payment_id=payment_id,
                claim_id=allocation.claim_id,
                paid_amount=allocation.amount,
                created_by=user_id,
            ))
            adjustments = [
                await self._ledger.add_adjustment(claim_payment.id, data, user_id, tx=conn)
                for data in allocation.adjustments
            ]
            claim_payments.append(claim_payment.model_copy(update={"adjustments": adjustments}))

            claim = claims[allocation.claim_id]
            new_status = self._claim_status_after_payment(claim, allocation.amount)
            if new_status is not None and new_status != claim.claim_status:
                self._claims.update_status(
                    conn, claim.id, new_status, f"Payment {payment_id} applied", user_id
                )
                changes.append(ClaimStatusChange(
                    claim_id=claim.id, previous_status=claim.claim_status, new_status=new_status
                ))

        applied = sum((cp.paid_amount for cp in claim_payments), ZERO)
        status = self._status_for(payment.payment_amount, applied)
        version = self._payments.update_reconciliation_status(
            conn, payment_id, status, payment.version, user_id, request.notes
        )
        self._record_event(conn, payment, action, status, applied, user_id, {
            "claims": [a.claim_id for a in request.claim_payments],
            "notes": request.notes,
        })
        updated = payment.model_copy(update={
            "reconciliation_status": status,
            "version": version,
            "notes": request.notes if request.notes is not None else payment.notes,
            "updated_by": user_id,
        })
        return ReconciliationResult(
            payment=updated,
            claim_payments=claim_payments,
            total_amount=payment.payment_amount,
            matched_amount=applied,
            unmatched_amount=payment.payment_amount - applied,
            reconciliation_status=status,
            claim_status_changes=changes,
        )

    def _undo(self, conn: sqlite3.Connection, payment_id: str, user_id: str | None) -> UndoResult:
        payment = self._payments.get(conn, payment_id)
        claim_payments = self._payments.get_claim_payments(conn, payment_id, with_adjustments=False)
        if not claim_payments:
            raise BusinessError(
                "Payment has no claim payments to undo",
                "payment.undo.noClaimPayments",
                {"payment_id": payment_id},
            )

        changes: list[ClaimStatusChange] = []
        for claim_id in dict.fromkeys(cp.claim_id for cp in claim_payments):
            claim = self._claims.get(conn, claim_id)
            if claim.claim_status != ClaimStatus.PENDING:
                self._claims.update_status(
                    conn, claim_id, ClaimStatus.PENDING,
                    f"Reconciliation of payment {payment_id} undone", user_id,
                )
                changes.append(ClaimStatusChange(
                    claim_id=claim_id, previous_status=claim.claim_status,
                    new_status=ClaimStatus.PENDING,
                ))

        removed = self._payments.remove_claim_payments(conn, payment_id, user_id)
        status = ReconciliationStatus.UNRECONCILED
        version = self._payments.update_reconciliation_status(
            conn, payment_id, status, payment.version, user_id
        )
        self._record_event(conn, payment, ReconciliationAction.UNDO, status, ZERO, user_id, {
            "removed_claim_payments": removed,
        })
        return UndoResult(
            payment=payment.model_copy(update={
                "reconciliation_status": status, "version": version, "updated_by": user_id,
            }),
            removed_claim_payments=removed,
            claim_status_changes=changes,
        )

    def _record_event(
        self,
        conn: sqlite3.Connection,
        payment: Payment,
        action: ReconciliationAction,
        status: ReconciliationStatus,
        applied: Decimal,
        user_id: str | None,
        details: dict,
    ) -> None:
        self._payments.add_event(conn, ReconciliationEvent(
            payment_id=payment.id,
            action=action,
            previous_status=payment.reconciliation_status,
            new_status=status,
            total_applied=applied,
            user_id=user_id,
            details=details,
        ))

