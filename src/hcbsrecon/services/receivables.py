"""Accounts receivable reporting.

Read-only views over claims, payments and adjustments: aging, open items,
collections work list, DSO, collection rate and payer/program performance.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from hcbsrecon.config.settings import Settings
from hcbsrecon.core.errors import NotFoundError
from hcbsrecon.core.models import (
    ZERO,
    AgingBucket,
    AgingReport,
    ClaimPaymentEntry,
    CollectionRateReport,
    DSOReport,
    GroupAging,
    OutstandingClaim,
    PayerClaimEntry,
    PayerClaimHistory,
    PerformanceSummary,
    PeriodMetric,
    UnreconciledPayment,
    WorkListItem,
)
from hcbsrecon.core.types import (
    DENIED_CLAIM_STATUSES,
    OUTSTANDING_CLAIM_STATUSES,
    RECEIVABLE_CLAIM_STATUSES,
    AdjustmentType,
    ClaimStatus,
    ReconciliationStatus,
    WorkPriority,
)
from hcbsrecon.core.utils import (
    age_in_days,
    from_cents,
    month_key,
    month_starts,
    safe_ratio,
    validate_date_range,
)
from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.payment_repository import PaymentRepository


if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterable

    from hcbsrecon.core.models import DateRange
    from hcbsrecon.storage.database import Database

logger = logging.getLogger(__name__)

# (label, min age, max age); None means unbounded
AGING_BUCKETS: tuple[tuple[str, int | None, int | None], ...] = (
    ("current", None, 0),
    ("1-30", 1, 30),
    ("31-60", 31, 60),
    ("61-90", 61, 90),
    ("91+", 91, None),
)

FOLLOW_UP_ACTIONS = {
    WorkPriority.HIGH: "Contact payer for status",
    WorkPriority.MEDIUM: "Check claim submission",
    WorkPriority.LOW: "Review claim status",
}

_PRIORITY_ORDER = {WorkPriority.HIGH: 0, WorkPriority.MEDIUM: 1, WorkPriority.LOW: 2}

# Age is counted from submission, or from creation for claims never submitted.
_CLAIM_AGE_DATE = "COALESCE(c.submission_date, date(c.created_at))"

# One row per claim with its payer name and live payment/adjustment aggregates.
_CLAIM_LEDGER = f"""
    SELECT c.*, py.name AS payer_name, {_CLAIM_AGE_DATE} AS age_date,
           COALESCE(pd.paid, 0) AS paid, pd.first_payment_date, pd.last_payment_date,
           COALESCE(ad.adjusted, 0) AS adjusted, COALESCE(ad.denials, 0) AS denials
    FROM claims c
    JOIN payers py ON py.id = c.payer_id
    LEFT JOIN (
        SELECT cp.claim_id, SUM(cp.paid_amount) AS paid,
               MIN(p.payment_date) AS first_payment_date, MAX(p.payment_date) AS last_payment_date
        FROM claim_payments cp JOIN payments p ON p.id = cp.payment_id
        WHERE cp.deleted_at IS NULL
        GROUP BY cp.claim_id
    ) pd ON pd.claim_id = c.id
    LEFT JOIN (
        SELECT claim_id, SUM(adjustment_amount) AS adjusted,
               SUM(CASE WHEN adjustment_type = '{AdjustmentType.NONCOVERED.value}' THEN 1 ELSE 0 END) AS denials
        FROM payment_adjustments WHERE deleted_at IS NULL
        GROUP BY claim_id
    ) ad ON ad.claim_id = c.id
"""


def bucket_for_age(age: int) -> str:
    for label, low, high in AGING_BUCKETS:
        if (low is None or age >= low) and (high is None or age <= high):
            return label
    return AGING_BUCKETS[-1][0]


def _placeholders(values: Iterable[Any]) -> str:
    return ",".join("?" * len(list(values)))


def _balance(row: sqlite3.Row) -> Decimal:
    return from_cents(row["total_amount"]) - from_cents(row["paid"])


def _is_denied(row: sqlite3.Row) -> bool:
    return row["claim_status"] in {s.value for s in DENIED_CLAIM_STATUSES} or row["denials"] > 0


class ReceivablesReporter:
    """Builds accounts receivable reports."""

    def __init__(
        self,
        database: Database,
        settings: Settings | None = None,
        payments: PaymentRepository | None = None,
        claims: ClaimRepository | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._db = database
        self._payments = payments or PaymentRepository()
        self._claims = claims or ClaimRepository()

    def _claim_rows(
        self,
        conn: sqlite3.Connection,
        conditions: list[str],
        params: list[Any],
        order: str = "c.id",
        limit: int | None = None,
    ) -> list[sqlite3.Row]:
        sql = f"{_CLAIM_LEDGER} WHERE c.deleted_at IS NULL"
        if conditions:
            sql += " AND " + " AND ".join(conditions)
        sql += f" ORDER BY {order}"
        if limit:
            sql += " LIMIT ?"
            params = [*params, limit]
        return conn.execute(sql, params).fetchall()

    # -- aging --------------------------------------------------------------

    async def get_aging_report(
        self,
        as_of_date: date | None = None,
        payer_id: str | None = None,
        program_id: str | None = None,
    ) -> AgingReport:
        """Open balances grouped into age buckets, overall and per payer and program."""
        as_of = as_of_date or date.today()
        statuses = [s.value for s in RECEIVABLE_CLAIM_STATUSES]
        conditions = [f"c.claim_status IN ({_placeholders(statuses)})"]
        params: list[Any] = list(statuses)
        if payer_id:
            conditions.append("c.payer_id = ?")
            params.append(payer_id)
        if program_id:
            conditions.append("c.program_id = ?")
            params.append(program_id)
        with self._db.connection() as conn:
            rows = self._claim_rows(conn, conditions, params)

        buckets = {label: AgingBucket(label=label, min_days=low, max_days=high)
                   for label, low, high in AGING_BUCKETS}
        by_payer: dict[str, GroupAging] = {}
        by_program: dict[str, GroupAging] = {}
        for row in rows:
            balance = _balance(row)
            if balance <= 0:
                continue
            label = bucket_for_age(age_in_days(date.fromisoformat(row["age_date"]), as_of))
            buckets[label].claim_count += 1
            buckets[label].amount += balance
            program = row["program_id"] or "unassigned"
            for groups, key, name in (
                (by_payer, row["payer_id"], row["payer_name"]),
                (by_program, program, program),
            ):
                group = groups.setdefault(key, GroupAging(
                    group_id=key, group_name=name,
                    buckets={b: ZERO for b, _, _ in AGING_BUCKETS},
                ))
                group.claim_count += 1
                group.total_outstanding += balance
                group.buckets[label] += balance

        report = AgingReport(
            as_of_date=as_of,
            buckets=list(buckets.values()),
            total_outstanding=sum((b.amount for b in buckets.values()), ZERO),
            total_claims=sum(b.claim_count for b in buckets.values()),
            by_payer=sorted(by_payer.values(), key=lambda g: -g.total_outstanding),
            by_program=sorted(by_program.values(), key=lambda g: -g.total_outstanding),
        )
        logger.info(
            "Aging report as of %s: %d claims, %s outstanding",
            as_of, report.total_claims, report.total_outstanding,
        )
        return report

    # -- open items ---------------------------------------------------------

    async def get_outstanding_claims(
        self,
        min_age: int = 0,
        payer_id: str | None = None,
        program_id: str | None = None,
        as_of_date: date | None = None,
    ) -> list[OutstandingClaim]:
        """Submitted, acknowledged or pending claims at least ``min_age`` days old, oldest first."""
        return self._outstanding_claims(
            min_age, payer_id, program_id, as_of_date, self.settings.receivables.query_limit
        )

    def _outstanding_claims(
        self,
        min_age: int,
        payer_id: str | None,
        program_id: str | None,
        as_of_date: date | None,
        limit: int | None,
    ) -> list[OutstandingClaim]:
        as_of = as_of_date or date.today()
        statuses = [s.value for s in OUTSTANDING_CLAIM_STATUSES]
        conditions = [
            f"c.claim_status IN ({_placeholders(statuses)})",
            f"{_CLAIM_AGE_DATE} <= ?",
        ]
        params: list[Any] = [*statuses, (as_of - timedelta(days=min_age)).isoformat()]
        if payer_id:
            conditions.append("c.payer_id = ?")
            params.append(payer_id)
        if program_id:
            conditions.append("c.program_id = ?")
            params.append(program_id)
        with self._db.connection() as conn:
            rows = self._claim_rows(
                conn, conditions, params, order=f"{_CLAIM_AGE_DATE}, c.claim_number", limit=limit,
            )
        return [
            OutstandingClaim(
                claim_id=r["id"],
                claim_number=r["claim_number"],
                client_name=r["client_name"] or "",
                payer_id=r["payer_id"],
                payer_name=r["payer_name"],
                program_id=r["program_id"],
                service_date=date.fromisoformat(r["service_start_date"]),
                submission_date=date.fromisoformat(r["submission_date"]) if r["submission_date"] else None,
                total_amount=from_cents(r["total_amount"]),
                paid_amount=from_cents(r["paid"]),
                balance=_balance(r),
                age_days=age_in_days(date.fromisoformat(r["age_date"]), as_of),
                claim_status=ClaimStatus(r["claim_status"]),
            )
            for r in rows
        ]

    async def get_unreconciled_payments(
        self,
        min_age: int = 0,
        payer_id: str | None = None,
        as_of_date: date | None = None,
    ) -> list[UnreconciledPayment]:
        """Payments not fully applied, at least ``min_age`` days old, oldest first."""
        as_of = as_of_date or date.today()
        statuses = [ReconciliationStatus.UNRECONCILED.value, ReconciliationStatus.PARTIALLY_RECONCILED.value]
        conditions = [
            "p.deleted_at IS NULL",
            f"p.reconciliation_status IN ({_placeholders(statuses)})",
            "p.payment_date <= ?",
        ]
        params: list[Any] = [*statuses, (as_of - timedelta(days=min_age)).isoformat()]
        if payer_id:
            conditions.append("p.payer_id = ?")
            params.append(payer_id)
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""SELECT p.*, py.name AS payer_name,
                       (SELECT COALESCE(SUM(cp.paid_amount), 0) FROM claim_payments cp
                        WHERE cp.payment_id = p.id AND cp.deleted_at IS NULL) AS applied
                FROM payments p JOIN payers py ON py.id = p.payer_id
                WHERE {' AND '.join(conditions)}
                ORDER BY p.payment_date, p.id
                LIMIT ?""",
                [*params, self.settings.receivables.query_limit],
            ).fetchall()
        result = []
        for r in rows:
            amount, applied = from_cents(r["payment_amount"]), from_cents(r["applied"])
            payment_date = date.fromisoformat(r["payment_date"])
            result.append(UnreconciledPayment(
                payment_id=r["id"],
                reference_number=r["reference_number"],
                payer_id=r["payer_id"],
                payer_name=r["payer_name"],
                payment_date=payment_date,
                payment_amount=amount,
                applied_amount=applied,
                unapplied_amount=amount - applied,
                age_days=age_in_days(payment_date, as_of),
                reconciliation_status=ReconciliationStatus(r["reconciliation_status"]),
            ))
        return result

    def prioritize(self, age_days: int, amount: Decimal) -> WorkPriority:
        cfg = self.settings.receivables
        if age_days > cfg.high_priority_age_days or amount > cfg.high_priority_amount:
            return WorkPriority.HIGH
        if age_days > cfg.medium_priority_age_days or amount > cfg.medium_priority_amount:
            return WorkPriority.MEDIUM
        return WorkPriority.LOW

    async def get_collection_work_list(
        self, min_age: int | None = None, as_of_date: date | None = None
    ) -> list[WorkListItem]:
        """Outstanding claims ranked for follow-up: priority first, then oldest.

        Every outstanding claim is ranked before the list is cut to ``query_limit``.
        """
        if min_age is None:
            min_age = self.settings.receivables.worklist_min_age_days
        claims = self._outstanding_claims(min_age, None, None, as_of_date, limit=None)
        items = []
        for claim in claims:
            priority = self.prioritize(claim.age_days, claim.balance)
            items.append(WorkListItem(
                claim_id=claim.claim_id,
                claim_number=claim.claim_number,
                client_name=claim.client_name,
                payer_name=claim.payer_name,
                balance=claim.balance,
                age_days=claim.age_days,
                priority=priority,
                follow_up_action=FOLLOW_UP_ACTIONS[priority],
            ))
        items.sort(key=lambda i: (_PRIORITY_ORDER[i.priority], -i.age_days, i.claim_number))
        if limit := self.settings.receivables.query_limit:
            del items[limit:]
        logger.info("Generated collection work list with %d items", len(items))
        return items

    # -- period metrics -----------------------------------------------------

    def _ar_balance(self, conn: sqlite3.Connection, as_of: date, payer_id: str | None) -> Decimal:
        """Billed minus collected minus adjusted, for everything dated on or before ``as_of``."""
        payer_clause, payer_params = ("AND c.payer_id = ?", [payer_id]) if payer_id else ("", [])
        day = as_of.isoformat()
        billed = conn.execute(
            f"""SELECT COALESCE(SUM(c.total_amount), 0) FROM claims c
            WHERE c.deleted_at IS NULL AND c.claim_status != ?
              AND c.submission_date IS NOT NULL AND c.submission_date <= ? {payer_clause}""",
            [ClaimStatus.VOID.value, day, *payer_params],
        ).fetchone()[0]
        collected = conn.execute(
            f"""SELECT COALESCE(SUM(cp.paid_amount), 0) FROM claim_payments cp
            JOIN payments p ON p.id = cp.payment_id
            JOIN claims c ON c.id = cp.claim_id
            WHERE cp.deleted_at IS NULL AND p.payment_date <= ? {payer_clause}""",
            [day, *payer_params],
        ).fetchone()[0]
        adjusted = conn.execute(
            f"""SELECT COALESCE(SUM(a.adjustment_amount), 0) FROM payment_adjustments a
            JOIN claims c ON c.id = a.claim_id
            LEFT JOIN claim_payments cp ON cp.id = a.claim_payment_id
            LEFT JOIN payments p ON p.id = cp.payment_id
            WHERE a.deleted_at IS NULL
              AND COALESCE(p.payment_date, date(a.created_at)) <= ? {payer_clause}""",
            [day, *payer_params],
        ).fetchone()[0]
        return max(from_cents(billed - collected - adjusted), ZERO)

    def _billed_between(
        self, conn: sqlite3.Connection, start: date, end: date, payer_id: str | None
    ) -> Decimal:
        payer_clause, payer_params = ("AND payer_id = ?", [payer_id]) if payer_id else ("", [])
        cents = conn.execute(
            f"""SELECT COALESCE(SUM(total_amount), 0) FROM claims
            WHERE deleted_at IS NULL AND claim_status != ?
              AND submission_date BETWEEN ? AND ? {payer_clause}""",
            [ClaimStatus.VOID.value, start.isoformat(), end.isoformat(), *payer_params],
        ).fetchone()[0]
        return from_cents(cents)

    async def calculate_dso(self, date_range: DateRange, payer_id: str | None = None) -> DSOReport:
        """Days sales outstanding: average AR / revenue x days in the period.

        Revenue is the amount billed (submitted) in the period. Average AR is
        the mean of the opening balance and each month's closing balance.
        """
        validate_date_range(date_range.start_date, date_range.end_date)
        details = []
        with self._db.connection() as conn:
            balances = [self._ar_balance(conn, date_range.start_date - timedelta(days=1), payer_id)]
            total_revenue = self._billed_between(conn, date_range.start_date, date_range.end_date, payer_id)
            for month in month_starts(date_range.start_date, date_range.end_date):
                month_start = max(month, date_range.start_date)
                next_month = (month + timedelta(days=32)).replace(day=1)
                month_end = min(next_month - timedelta(days=1), date_range.end_date)
                revenue = self._billed_between(conn, month_start, month_end, payer_id)
                ending_ar = self._ar_balance(conn, month_end, payer_id)
                balances.append(ending_ar)
                days = (month_end - month_start).days + 1
                details.append(PeriodMetric(
                    period=month_key(month),
                    billed=revenue,
                    ending_ar=ending_ar,
                    value=safe_ratio(ending_ar, revenue) * days,
                ))
        average_ar = (sum(balances, ZERO) / len(balances)).quantize(Decimal("0.01"))
        dso = safe_ratio(average_ar, total_revenue) * date_range.days
        logger.info(
            "DSO %s to %s: %.1f days (avg AR %s, revenue %s)",
            date_range.start_date, date_range.end_date, dso, average_ar, total_revenue,
        )
        return DSOReport(
            date_range=date_range, dso=dso, total_revenue=total_revenue,
            average_ar=average_ar, details=details,
        )

    async def calculate_collection_rate(
        self, date_range: DateRange, payer_id: str | None = None
    ) -> CollectionRateReport:
        """Collected / billed for claims with service starting in the period, by service month."""
        validate_date_range(date_range.start_date, date_range.end_date)
        conditions = ["c.service_start_date BETWEEN ? AND ?", "c.claim_status != ?"]
        params: list[Any] = [
            date_range.start_date.isoformat(), date_range.end_date.isoformat(), ClaimStatus.VOID.value,
        ]
        if payer_id:
            conditions.append("c.payer_id = ?")
            params.append(payer_id)
        with self._db.connection() as conn:
            rows = self._claim_rows(conn, conditions, params)

        monthly: dict[str, PeriodMetric] = {
            month_key(m): PeriodMetric(period=month_key(m))
            for m in month_starts(date_range.start_date, date_range.end_date)
        }
        for row in rows:
            metric = monthly[row["service_start_date"][:7]]
            metric.billed += from_cents(row["total_amount"])
            metric.collected += from_cents(row["paid"])
        for metric in monthly.values():
            metric.value = safe_ratio(metric.collected, metric.billed)
        billed = sum((m.billed for m in monthly.values()), ZERO)
        collected = sum((m.collected for m in monthly.values()), ZERO)
        return CollectionRateReport(
            date_range=date_range,
            collection_rate=safe_ratio(collected, billed),
            billed_amount=billed,
            collected_amount=collected,
            details=list(monthly.values()),
        )

    # -- performance --------------------------------------------------------

    @staticmethod
    def _summarize(group_id: str, group_name: str, rows: list[sqlite3.Row]) -> PerformanceSummary:
        billed = sum((from_cents(r["total_amount"]) for r in rows), ZERO)
        collected = sum((from_cents(r["paid"]) for r in rows), ZERO)
        payment_days = [
            (date.fromisoformat(r["first_payment_date"]) - date.fromisoformat(r["submission_date"])).days
            for r in rows
            if r["first_payment_date"] and r["submission_date"]
        ]
        denied = sum(1 for r in rows if _is_denied(r))
        return PerformanceSummary(
            group_id=group_id,
            group_name=group_name,
            total_claims=len(rows),
            total_billed=billed,
            total_collected=collected,
            average_payment_days=sum(payment_days) / len(payment_days) if payment_days else 0.0,
            denial_rate=safe_ratio(denied, len(rows)),
            collection_rate=safe_ratio(collected, billed),
        )

    async def _performance_by(self, date_range: DateRange, key: str) -> list[PerformanceSummary]:
        validate_date_range(date_range.start_date, date_range.end_date)
        with self._db.connection() as conn:
            rows = self._claim_rows(
                conn,
                ["c.service_start_date BETWEEN ? AND ?"],
                [date_range.start_date.isoformat(), date_range.end_date.isoformat()],
            )
        groups: dict[str, list[sqlite3.Row]] = {}
        names: dict[str, str] = {}
        for row in rows:
            group_id = row[key] or "unassigned"
            groups.setdefault(group_id, []).append(row)
            names[group_id] = row["payer_name"] if key == "payer_id" else group_id
        summaries = [self._summarize(g, names[g], groups[g]) for g in groups]
        return sorted(summaries, key=lambda s: (-s.total_billed, s.group_name))

    async def get_payer_performance(self, date_range: DateRange) -> list[PerformanceSummary]:
        return await self._performance_by(date_range, "payer_id")

    async def get_program_performance(self, date_range: DateRange) -> list[PerformanceSummary]:
        return await self._performance_by(date_range, "program_id")

    # -- histories ----------------------------------------------------------

    async def get_claim_payment_history(self, claim_id: str) -> list[ClaimPaymentEntry]:
        """Payments applied to a claim, newest first."""
        with self._db.connection() as conn:
            self._claims.get(conn, claim_id)
            claim_payments = self._payments.get_claim_payments_for_claim(conn, claim_id)
            payments = {cp.payment_id: self._payments.get(conn, cp.payment_id) for cp in claim_payments}
        history = [
            ClaimPaymentEntry(
                payment_id=cp.payment_id,
                payment_date=payments[cp.payment_id].payment_date,
                paid_amount=cp.paid_amount,
                reconciliation_status=payments[cp.payment_id].reconciliation_status,
                adjustments=cp.adjustments,
            )
            for cp in claim_payments
        ]
        history.sort(key=lambda e: e.payment_date, reverse=True)
        return history

    async def get_payer_claim_history(self, payer_id: str, date_range: DateRange) -> PayerClaimHistory:
        """A payer's claims with service in the period, newest submission first."""
        validate_date_range(date_range.start_date, date_range.end_date)
        with self._db.connection() as conn:
            payer = self._claims.find_payer(conn, payer_id)
            if payer is None:
                raise NotFoundError("payer", payer_id)
            rows = self._claim_rows(
                conn,
                ["c.payer_id = ?", "c.service_start_date BETWEEN ? AND ?"],
                [payer_id, date_range.start_date.isoformat(), date_range.end_date.isoformat()],
                order="COALESCE(c.submission_date, c.service_start_date) DESC, c.claim_number",
                limit=self.settings.receivables.query_limit,
            )
        claims = [
            PayerClaimEntry(
                claim_id=r["id"],
                claim_number=r["claim_number"],
                service_date=date.fromisoformat(r["service_start_date"]),
                submission_date=date.fromisoformat(r["submission_date"]) if r["submission_date"] else None,
                total_amount=from_cents(r["total_amount"]),
                claim_status=ClaimStatus(r["claim_status"]),
                paid_amount=from_cents(r["paid"]),
                adjusted_amount=from_cents(r["adjusted"]),
                last_payment_date=date.fromisoformat(r["last_payment_date"]) if r["last_payment_date"] else None,
            )
            for r in rows
        ]
        return PayerClaimHistory(
            payer_id=payer_id,
            date_range=date_range,
            summary=self._summarize(payer_id, payer.name, rows),
            claims=claims,
        )
