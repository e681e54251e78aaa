"""Tests for accounts receivable reporting."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from hcbsrecon.core.errors import BusinessError, NotFoundError
from hcbsrecon.core.models import DateRange
from hcbsrecon.core.types import ClaimStatus, ReconciliationStatus, WorkPriority
from hcbsrecon.services.receivables import (
    FOLLOW_UP_ACTIONS,
    ReceivablesReporter,
    bucket_for_age,
)


TODAY = date(2026, 3, 31)
MARCH = DateRange(start_date=date(2026, 3, 1), end_date=date(2026, 3, 31))


def _days_ago(days: int) -> date:
    return TODAY - timedelta(days=days)


def _seed_aging(seed) -> None:
    seed.claim("cur", "100.00", submission_date=TODAY)
    seed.claim("a15", "200.00", submission_date=_days_ago(15))
    seed.claim("a45", "300.00", submission_date=_days_ago(45), status=ClaimStatus.PENDING)
    seed.claim("a75", "400.00", submission_date=_days_ago(75), status=ClaimStatus.ACKNOWLEDGED)
    seed.claim("a120", "500.00", submission_date=_days_ago(120))
    seed.claim("pp", "1000.00", submission_date=_days_ago(45), status=ClaimStatus.PARTIAL_PAID)
    seed.claim("pp-done", "100.00", submission_date=_days_ago(45), status=ClaimStatus.PARTIAL_PAID)
    seed.claim("paid", "900.00", submission_date=_days_ago(45), status=ClaimStatus.PAID)
    seed.payment("pmt-1", "700.00")
    seed.claim_payment("cp-1", "pmt-1", "pp", "600.00")
    seed.claim_payment("cp-2", "pmt-1", "pp-done", "100.00")


class TestAging:
    """Aging buckets over open balances."""

    @pytest.mark.parametrize(
        ("age", "label"),
        [(-3, "current"), (0, "current"), (1, "1-30"), (30, "1-30"), (31, "31-60"),
         (60, "31-60"), (61, "61-90"), (90, "61-90"), (91, "91+"), (400, "91+")],
    )
    def test_bucket_for_age(self, age: int, label: str) -> None:
        assert bucket_for_age(age) == label

    @pytest.mark.asyncio
    async def test_aging_report(self, seed, receivables: ReceivablesReporter) -> None:
        _seed_aging(seed)

        report = await receivables.get_aging_report(as_of_date=TODAY)

        counts = {b.label: (b.claim_count, b.amount) for b in report.buckets}
        assert counts == {
            "current": (1, Decimal("100.00")),
            "1-30": (1, Decimal("200.00")),
            "31-60": (2, Decimal("700.00")),
            "61-90": (1, Decimal("400.00")),
            "91+": (1, Decimal("500.00")),
        }
        assert report.total_outstanding == Decimal("1900.00")
        assert report.total_claims == 6
        assert report.bucket("31-60").min_days == 31
        assert [g.group_id for g in report.by_payer] == ["medicaid"]
        assert report.by_payer[0].buckets["91+"] == Decimal("500.00")
        assert report.by_program[0].group_id == "personal-care"

    @pytest.mark.asyncio
    async def test_aging_filtered_by_payer(self, seed, receivables: ReceivablesReporter) -> None:
        _seed_aging(seed)
        seed.payer("waiver", "HCBS Waiver")
        seed.claim("w1", "250.00", payer_id="waiver", submission_date=_days_ago(10))

        report = await receivables.get_aging_report(as_of_date=TODAY, payer_id="waiver")

        assert report.total_outstanding == Decimal("250.00")
        assert report.bucket("1-30").claim_count == 1

    @pytest.mark.asyncio
    async def test_empty_report(self, seed, receivables: ReceivablesReporter) -> None:
        report = await receivables.get_aging_report(as_of_date=TODAY)

        assert len(report.buckets) == 5
        assert report.total_outstanding == Decimal("0")
        assert report.by_payer == []


class TestOpenItems:
    @pytest.mark.asyncio
    async def test_outstanding_claims_oldest_first(self, seed, receivables: ReceivablesReporter) -> None:
        _seed_aging(seed)

        claims = await receivables.get_outstanding_claims(min_age=30, as_of_date=TODAY)

        assert [(c.claim_id, c.age_days) for c in claims] == [("a120", 120), ("a75", 75), ("a45", 45)]
        assert claims[0].balance == Decimal("500.00")
        assert claims[0].payer_name == "State Medicaid"

    @pytest.mark.asyncio
    async def test_outstanding_claims_respect_limit(self, seed, receivables: ReceivablesReporter) -> None:
        _seed_aging(seed)
        receivables.settings.receivables.query_limit = 2

        claims = await receivables.get_outstanding_claims(as_of_date=TODAY)

        assert [c.claim_id for c in claims] == ["a120", "a75"]

    @pytest.mark.asyncio
    async def test_unreconciled_payments(self, seed, receivables: ReceivablesReporter, database) -> None:
        seed.claim("c1")
        seed.payment("old", "500.00", payment_date=_days_ago(40))
        seed.payment("new", "500.00", payment_date=_days_ago(5))
        seed.payment("done", "500.00", payment_date=_days_ago(60))
        seed.claim_payment("cp-1", "old", "c1", "200.00")
        with database.transaction() as conn:
            seed.payments.update_reconciliation_status(
                conn, "done", ReconciliationStatus.RECONCILED, expected_version=1
            )

        payments = await receivables.get_unreconciled_payments(min_age=30, as_of_date=TODAY)

        assert [p.payment_id for p in payments] == ["old"]
        assert payments[0].applied_amount == Decimal("200.00")
        assert payments[0].unapplied_amount == Decimal("300.00")
        assert payments[0].age_days == 40


class TestWorkList:
    """Collections prioritisation."""

    @pytest.mark.parametrize(
        ("age", "amount", "priority"),
        [
            (91, "10.00", WorkPriority.HIGH),
            (10, "5000.01", WorkPriority.HIGH),
            (61, "10.00", WorkPriority.MEDIUM),
            (10, "1000.01", WorkPriority.MEDIUM),
            (60, "1000.00", WorkPriority.LOW),
        ],
    )
    def test_prioritize(
        self, receivables: ReceivablesReporter, age: int, amount: str, priority: WorkPriority
    ) -> None:
        assert receivables.prioritize(age, Decimal(amount)) == priority

    @pytest.mark.asyncio
    async def test_work_list_order(self, seed, receivables: ReceivablesReporter) -> None:
        _seed_aging(seed)
        seed.claim("big", "6000.00", submission_date=_days_ago(35))

        items = await receivables.get_collection_work_list(as_of_date=TODAY)

        assert [(i.claim_id, i.priority) for i in items] == [
            ("a120", WorkPriority.HIGH),
            ("big", WorkPriority.HIGH),
            ("a75", WorkPriority.MEDIUM),
            ("a45", WorkPriority.LOW),
        ]
        assert items[0].follow_up_action == FOLLOW_UP_ACTIONS[WorkPriority.HIGH]

    @pytest.mark.asyncio
    async def test_work_list_ranks_before_applying_limit(
        self, seed, receivables: ReceivablesReporter
    ) -> None:
        _seed_aging(seed)
        seed.claim("big", "6000.00", submission_date=_days_ago(35))
        receivables.settings.receivables.query_limit = 2

        items = await receivables.get_collection_work_list(as_of_date=TODAY)

        assert [(i.claim_id, i.priority) for i in items] == [
            ("a120", WorkPriority.HIGH),
            ("big", WorkPriority.HIGH),
        ]


class TestPeriodMetrics:
    @pytest.mark.asyncio
    async def test_collection_rate(self, seed, receivables: ReceivablesReporter) -> None:
        seed.claim("c1", "1000.00")
        seed.claim("c2", "1000.00")
        seed.claim("feb", "1000.00", service_date=date(2026, 2, 10))
        seed.claim("void", "1000.00", status=ClaimStatus.VOID)
        seed.payment("pmt-1", "500.00")
        seed.claim_payment("cp-1", "pmt-1", "c1", "500.00")

        report = await receivables.calculate_collection_rate(MARCH)

        assert report.billed_amount == Decimal("2000.00")
        assert report.collected_amount == Decimal("500.00")
        assert report.collection_rate == pytest.approx(0.25)
        assert [(d.period, d.value) for d in report.details] == [("2026-03", pytest.approx(0.25))]

    @pytest.mark.asyncio
    async def test_collection_rate_monthly_breakdown(self, seed, receivables: ReceivablesReporter) -> None:
        seed.claim("feb", "400.00", service_date=date(2026, 2, 10))
        seed.claim("mar", "600.00")

        report = await receivables.calculate_collection_rate(
            DateRange(start_date=date(2026, 2, 1), end_date=date(2026, 3, 31))
        )

        assert [(d.period, d.billed) for d in report.details] == [
            ("2026-02", Decimal("400.00")),
            ("2026-03", Decimal("600.00")),
        ]
        assert report.collection_rate == 0.0

    @pytest.mark.asyncio
    async def test_dso(self, seed, receivables: ReceivablesReporter) -> None:
        seed.claim("c1", "3100.00", submission_date=date(2026, 3, 5))

        report = await receivables.calculate_dso(MARCH)

        assert report.total_revenue == Decimal("3100.00")
        assert report.average_ar == Decimal("1550.00")
        assert report.dso == pytest.approx(15.5)
        assert report.details[0].ending_ar == Decimal("3100.00")

    @pytest.mark.asyncio
    async def test_dso_without_revenue(self, seed, receivables: ReceivablesReporter) -> None:
        report = await receivables.calculate_dso(MARCH)
        assert report.dso == 0.0

    @pytest.mark.asyncio
    async def test_inverted_range(self, seed, receivables: ReceivablesReporter) -> None:
        with pytest.raises(BusinessError) as exc:
            await receivables.calculate_dso(
                DateRange(start_date=date(2026, 4, 1), end_date=date(2026, 3, 1))
            )
        assert exc.value.code == "date.invalidRange"


class TestHistoriesAndPerformance:
    def _seed_history(self, seed) -> None:
        seed.claim("c1", "1000.00", submission_date=date(2026, 3, 5))
        seed.claim("c2", "500.00", submission_date=date(2026, 3, 6), status=ClaimStatus.DENIED)
        seed.payment("pmt-1", "600.00", payment_date=date(2026, 3, 20))
        seed.payment("pmt-2", "400.00", payment_date=date(2026, 3, 28))
        seed.claim_payment("cp-1", "pmt-1", "c1", "600.00")
        seed.claim_payment("cp-2", "pmt-2", "c1", "400.00")

    @pytest.mark.asyncio
    async def test_claim_payment_history(self, seed, receivables: ReceivablesReporter) -> None:
        self._seed_history(seed)

        history = await receivables.get_claim_payment_history("c1")

        assert [(e.payment_id, e.paid_amount) for e in history] == [
            ("pmt-2", Decimal("400.00")),
            ("pmt-1", Decimal("600.00")),
        ]

    @pytest.mark.asyncio
    async def test_claim_payment_history_unknown_claim(
        self, seed, receivables: ReceivablesReporter
    ) -> None:
        with pytest.raises(NotFoundError):
            await receivables.get_claim_payment_history("ghost")

    @pytest.mark.asyncio
    async def test_payer_claim_history(self, seed, receivables: ReceivablesReporter) -> None:
        self._seed_history(seed)

        history = await receivables.get_payer_claim_history("medicaid", MARCH)

        assert [c.claim_id for c in history.claims] == ["c2", "c1"]
        c1 = history.claims[1]
        assert c1.paid_amount == Decimal("1000.00")
        assert c1.last_payment_date == date(2026, 3, 28)
        assert history.summary.total_claims == 2
        assert history.summary.total_billed == Decimal("1500.00")
        assert history.summary.average_payment_days == 15.0
        assert history.summary.denial_rate == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_payer_claim_history_unknown_payer(
        self, seed, receivables: ReceivablesReporter
    ) -> None:
        with pytest.raises(NotFoundError) as exc:
            await receivables.get_payer_claim_history("ghost", MARCH)
        assert exc.value.code == "payer.notFound"

    @pytest.mark.asyncio
    async def test_payer_performance(self, seed, receivables: ReceivablesReporter) -> None:
        self._seed_history(seed)
        seed.payer("waiver", "HCBS Waiver")
        seed.claim("w1", "300.00", payer_id="waiver")

        summaries = await receivables.get_payer_performance(MARCH)

        assert [(s.group_id, s.group_name, s.total_claims) for s in summaries] == [
            ("medicaid", "State Medicaid", 2),
            ("waiver", "HCBS Waiver", 1),
        ]
        medicaid = summaries[0]
        assert medicaid.total_billed == Decimal("1500.00")
        assert medicaid.total_collected == Decimal("1000.00")
        assert medicaid.average_payment_days == 15.0
        assert medicaid.denial_rate == pytest.approx(0.5)
        assert summaries[1].collection_rate == 0.0

    @pytest.mark.asyncio
    async def test_program_performance(self, seed, receivables: ReceivablesReporter) -> None:
        self._seed_history(seed)
        seed.claim("r1", "200.00", program_id="respite")

        summaries = await receivables.get_program_performance(MARCH)

        assert [(s.group_id, s.total_claims) for s in summaries] == [
            ("personal-care", 2),
            ("respite", 1),
        ]
        assert summaries[0].collection_rate == pytest.approx(1000 / 1500)
