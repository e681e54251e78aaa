"""Tests for the reconciliation service."""

from __future__ import annotations

from decimal import Decimal

import pytest

from hcbsrecon.core.errors import BusinessError, NotFoundError, ValidationError
from hcbsrecon.core.models import (
    AdjustmentInput,
    BatchItem,
    ClaimAllocation,
    ReconcileRequest,
)
from hcbsrecon.core.types import (
    AdjustmentType,
    ClaimStatus,
    ReconciliationAction,
    ReconciliationStatus,
)
from hcbsrecon.services.matching import calculate_reconciliation_status
from hcbsrecon.services.reconciliation import ReconciliationService


def _make_request(*allocations: tuple[str, str], notes: str | None = None) -> ReconcileRequest:
    return ReconcileRequest(
        claim_payments=[ClaimAllocation(claim_id=c, amount=Decimal(a)) for c, a in allocations],
        notes=notes,
    )


class TestReconcilePayment:
    """Applying a payment to claims."""

    @pytest.mark.asyncio
    async def test_exact_payment(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")

        result = await reconciliation.reconcile_payment(
            "pmt-1", _make_request(("c1", "1000.00"), notes="full"), user_id="u1"
        )

        assert result.reconciliation_status == ReconciliationStatus.RECONCILED
        assert result.matched_amount == Decimal("1000.00")
        assert result.unmatched_amount == Decimal("0")
        assert [(c.claim_id, c.new_status) for c in result.claim_status_changes] == [
            ("c1", ClaimStatus.PAID)
        ]
        stored = seed.get_payment("pmt-1")
        assert stored.reconciliation_status == ReconciliationStatus.RECONCILED
        assert stored.version == 2
        assert stored.notes == "full"
        assert seed.claim_status("c1") == ClaimStatus.PAID

    @pytest.mark.asyncio
    async def test_partial_payment(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")

        result = await reconciliation.reconcile_payment("pmt-1", _make_request(("c1", "400.00")))

        assert result.reconciliation_status == ReconciliationStatus.PARTIALLY_RECONCILED
        assert result.unmatched_amount == Decimal("600.00")
        assert seed.claim_status("c1") == ClaimStatus.PARTIAL_PAID

    @pytest.mark.asyncio
    async def test_near_full_claim_payment_marks_paid(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")

        await reconciliation.reconcile_payment("pmt-1", _make_request(("c1", "995.00")))

        assert seed.claim_status("c1") == ClaimStatus.PAID

    @pytest.mark.asyncio
    async def test_amount_exceeding_payment_writes_nothing(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1200.00")

        with pytest.raises(BusinessError) as exc:
            await reconciliation.reconcile_payment("pmt-1", _make_request(("c1", "1200.00")))

        assert exc.value.code == "payment.reconcile.amountExceedsPayment"
        assert seed.count("claim_payments", live_only=False) == 0
        assert seed.count("reconciliation_events", live_only=False) == 0
        payment = seed.get_payment("pmt-1")
        assert payment.reconciliation_status == ReconciliationStatus.UNRECONCILED
        assert payment.version == 1
        assert seed.claim_status("c1") == ClaimStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_duplicate_claim(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")

        with pytest.raises(BusinessError) as exc:
            await reconciliation.reconcile_payment(
                "pmt-1", _make_request(("c1", "300.00"), ("c1", "200.00"))
            )
        assert exc.value.code == "payment.reconcile.duplicateClaim"

    @pytest.mark.asyncio
    async def test_sub_cent_amounts_match_stored_rows(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        for claim_id in ("c1", "c2", "c3"):
            seed.claim(claim_id, "333.33")

        result = await reconciliation.reconcile_payment(
            "pmt-1", _make_request(("c1", "333.333"), ("c2", "333.333"), ("c3", "333.333"))
        )

        with seed.database.connection() as conn:
            stored = seed.payments.get_claim_payments(conn, "pmt-1", with_adjustments=False)
        stored_sum = sum(cp.paid_amount for cp in stored)
        assert stored_sum == Decimal("999.99")
        assert result.matched_amount == stored_sum
        assert seed.get_payment("pmt-1").reconciliation_status == calculate_reconciliation_status(
            Decimal("1000.00"), stored_sum
        )
        assert result.reconciliation_status == ReconciliationStatus.PARTIALLY_RECONCILED

    @pytest.mark.asyncio
    async def test_amounts_are_checked_after_rounding_to_cents(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "500.00")
        seed.claim("c2", "500.00")

        result = await reconciliation.reconcile_payment(
            "pmt-1", _make_request(("c1", "500.004"), ("c2", "500.004"))
        )

        assert result.matched_amount == Decimal("1000.00")
        assert result.reconciliation_status == ReconciliationStatus.RECONCILED

    @pytest.mark.asyncio
    async def test_unknown_claim_rolls_back(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")

        with pytest.raises(NotFoundError) as exc:
            await reconciliation.reconcile_payment(
                "pmt-1", _make_request(("c1", "500.00"), ("ghost", "100.00"))
            )

        assert exc.value.code == "claim.notFound"
        assert seed.count("claim_payments", live_only=False) == 0
        assert seed.claim_status("c1") == ClaimStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_unknown_payment(self, seed, reconciliation: ReconciliationService) -> None:
        with pytest.raises(NotFoundError) as exc:
            await reconciliation.reconcile_payment("ghost", _make_request(("c1", "1.00")))
        assert exc.value.code == "payment.notFound"

    @pytest.mark.asyncio
    async def test_records_adjustments(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "900.00")
        seed.claim("c1", "1000.00")
        request = ReconcileRequest(claim_payments=[ClaimAllocation(
            claim_id="c1",
            amount=Decimal("900.00"),
            adjustments=[AdjustmentInput(
                adjustment_type="contractual", adjustment_code="CO-45", adjustment_amount="100.00"
            )],
        )])

        result = await reconciliation.reconcile_payment("pmt-1", request)

        adjustments = result.claim_payments[0].adjustments
        assert [(a.adjustment_type, a.adjustment_amount) for a in adjustments] == [
            (AdjustmentType.CONTRACTUAL, Decimal("100.00"))
        ]
        assert adjustments[0].claim_payment_id == result.claim_payments[0].id
        # 900 of a 1000 claim is below the paid ratio
        assert seed.claim_status("c1") == ClaimStatus.PARTIAL_PAID

    @pytest.mark.asyncio
    async def test_invalid_adjustment_rolls_back(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")
        request = ReconcileRequest(claim_payments=[ClaimAllocation(
            claim_id="c1",
            amount=Decimal("1000.00"),
            adjustments=[AdjustmentInput(
                adjustment_type="contractual", adjustment_code="CO-45", adjustment_amount=-5
            )],
        )])

        with pytest.raises(ValidationError):
            await reconciliation.reconcile_payment("pmt-1", request)

        assert seed.count("claim_payments", live_only=False) == 0
        assert seed.count("payment_adjustments", live_only=False) == 0
        assert seed.claim_status("c1") == ClaimStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_reconcile_again_replaces_allocations(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")
        seed.claim("c2", "300.00")
        await reconciliation.reconcile_payment("pmt-1", ReconcileRequest(claim_payments=[
            ClaimAllocation(
                claim_id="c1", amount=Decimal("950.00"),
                adjustments=[AdjustmentInput(
                    adjustment_type="contractual", adjustment_code="CO-45", adjustment_amount="50.00"
                )],
            ),
        ]))

        result = await reconciliation.reconcile_payment("pmt-1", _make_request(("c2", "300.00")))

        details = await reconciliation.get_reconciliation_details("pmt-1")
        assert [cp.claim_id for cp in details.claim_payments] == ["c2"]
        assert details.matched_amount == Decimal("300.00")
        assert seed.count("payment_adjustments") == 0
        assert result.reconciliation_status == ReconciliationStatus.PARTIALLY_RECONCILED
        assert seed.get_payment("pmt-1").version == 3


class TestUndoReconciliation:
    @pytest.mark.asyncio
    async def test_undo_reopens_claims(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "600.00")
        seed.claim("c2", "400.00", status=ClaimStatus.PENDING)
        await reconciliation.reconcile_payment(
            "pmt-1", _make_request(("c1", "600.00"), ("c2", "400.00"))
        )

        result = await reconciliation.undo_reconciliation("pmt-1", user_id="u2")

        assert result.removed_claim_payments == 2
        assert result.payment.reconciliation_status == ReconciliationStatus.UNRECONCILED
        assert {c.claim_id for c in result.claim_status_changes} == {"c1", "c2"}
        assert seed.claim_status("c1") == ClaimStatus.PENDING
        assert seed.claim_status("c2") == ClaimStatus.PENDING
        assert seed.count("claim_payments") == 0
        assert seed.get_payment("pmt-1").reconciliation_status == ReconciliationStatus.UNRECONCILED

    @pytest.mark.asyncio
    async def test_nothing_to_undo(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "1000.00")

        with pytest.raises(BusinessError) as exc:
            await reconciliation.undo_reconciliation("pmt-1")

        assert exc.value.code == "payment.undo.noClaimPayments"
        assert seed.get_payment("pmt-1").version == 1


class TestAutoReconcile:
    """Reconciliation driven by the matcher's suggestions."""

    @pytest.mark.asyncio
    async def test_uses_matches_above_threshold(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("exact", "1000.00")
        seed.claim("similar", "1050.00")

        result = await reconciliation.auto_reconcile_payment("pmt-1", 0.8)

        assert [cp.claim_id for cp in result.claim_payments] == ["exact"]
        assert result.reconciliation_status == ReconciliationStatus.RECONCILED
        assert result.payment.notes == "Auto-reconciled with 1 matches (threshold: 0.8)"
        history = await reconciliation.get_reconciliation_history("pmt-1")
        assert history[0].action == ReconciliationAction.AUTO_RECONCILE

    @pytest.mark.asyncio
    async def test_skips_matches_that_do_not_fit(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("exact", "1000.00")
        seed.claim("similar", "1050.00")

        result = await reconciliation.auto_reconcile_payment("pmt-1", 0.7)

        assert [cp.claim_id for cp in result.claim_payments] == ["exact"]
        assert result.matched_amount == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_no_matches_leaves_payment_unreconciled(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "200.00")

        result = await reconciliation.auto_reconcile_payment("pmt-1")

        assert result.claim_payments == []
        assert result.reconciliation_status == ReconciliationStatus.UNRECONCILED
        assert result.payment.notes == "Auto-reconciled with 0 matches (threshold: 0.8)"


class TestBatchReconcile:
    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_batch(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.payment("pmt-2", "500.00")
        seed.claim("c1", "1000.00")
        seed.claim("c2", "800.00")

        result = await reconciliation.batch_reconcile_payments([
            BatchItem(payment_id="pmt-1", request=_make_request(("c1", "1000.00"))),
            BatchItem(payment_id="pmt-2", request=_make_request(("c2", "800.00"))),
            BatchItem(payment_id="ghost", request=_make_request(("c2", "1.00"))),
        ])

        assert result.successful == ["pmt-1"]
        assert [r.payment.id for r in result.results] == ["pmt-1"]
        assert result.results[0].reconciliation_status == ReconciliationStatus.RECONCILED
        assert [(f.payment_id, f.code) for f in result.failed] == [
            ("pmt-2", "payment.reconcile.amountExceedsPayment"),
            ("ghost", "payment.notFound"),
        ]
        assert seed.get_payment("pmt-2").reconciliation_status == ReconciliationStatus.UNRECONCILED


class TestStatusAndHistory:
    @pytest.mark.asyncio
    async def test_refresh_corrects_drifted_status(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")
        seed.claim_payment("cp-1", "pmt-1", "c1", "250.00")

        payment = await reconciliation.refresh_reconciliation_status("pmt-1")

        assert payment.reconciliation_status == ReconciliationStatus.PARTIALLY_RECONCILED
        assert seed.get_payment("pmt-1").version == 2
        history = await reconciliation.get_reconciliation_history("pmt-1")
        assert history[0].action == ReconciliationAction.REFRESH

    @pytest.mark.asyncio
    async def test_refresh_without_drift_writes_nothing(
        self, seed, reconciliation: ReconciliationService
    ) -> None:
        seed.payment("pmt-1", "1000.00")

        await reconciliation.refresh_reconciliation_status("pmt-1")

        assert seed.get_payment("pmt-1").version == 1
        assert await reconciliation.get_reconciliation_history("pmt-1") == []

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, seed, reconciliation: ReconciliationService) -> None:
        seed.payment("pmt-1", "1000.00")
        seed.claim("c1", "1000.00")
        await reconciliation.reconcile_payment("pmt-1", _make_request(("c1", "1000.00")))
        await reconciliation.undo_reconciliation("pmt-1")

        history = await reconciliation.get_reconciliation_history("pmt-1")

        assert [e.action for e in history] == [ReconciliationAction.UNDO, ReconciliationAction.RECONCILE]
        assert history[1].total_applied == Decimal("1000.00")
        assert history[0].previous_status == ReconciliationStatus.RECONCILED

    def test_stale_version_is_rejected(self, seed, database) -> None:
        seed.payment("pmt-1", "1000.00")
        with database.transaction() as conn:
            seed.payments.update_reconciliation_status(
                conn, "pmt-1", ReconciliationStatus.RECONCILED, expected_version=1
            )

        with pytest.raises(BusinessError) as exc, database.transaction() as conn:
            seed.payments.update_reconciliation_status(
                conn, "pmt-1", ReconciliationStatus.UNRECONCILED, expected_version=1
            )

        assert exc.value.code == "payment.concurrentModification"
        assert seed.get_payment("pmt-1").reconciliation_status == ReconciliationStatus.RECONCILED
