"""Adjustment ledger and adjustment analytics."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from hcbsrecon.core.errors import FieldError, NotFoundError, ValidationError
from hcbsrecon.core.models import (
    ZERO,
    AdjustmentImpact,
    AdjustmentInput,
    AdjustmentReason,
    AdjustmentTotals,
    AdjustmentTrends,
    DenialAnalysis,
    DenialReasonSummary,
    PayerAdjustmentTrend,
    PayerDenialSummary,
    PaymentAdjustment,
    PeriodAdjustmentTrend,
)
from hcbsrecon.core.types import AdjustmentType
from hcbsrecon.core.utils import from_cents, new_id, parse_money, safe_ratio, validate_date_range
from hcbsrecon.storage.payment_repository import PaymentRepository


if TYPE_CHECKING:
    import sqlite3

    from hcbsrecon.core.models import AdjustmentFilters, DateRange
    from hcbsrecon.storage.database import Database

logger = logging.getLogger(__name__)

MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
INVALID_FORMAT = "INVALID_FORMAT"

# Adjustments without a claim payment have no payment date; fall back to when they were recorded.
_EFFECTIVE_DATE = "COALESCE(p.payment_date, date(a.created_at))"

_ADJUSTMENT_SCOPE = """
    FROM payment_adjustments a
    JOIN claims c ON c.id = a.claim_id
    JOIN payers py ON py.id = c.payer_id
    LEFT JOIN claim_payments cp ON cp.id = a.claim_payment_id
    LEFT JOIN payments p ON p.id = cp.payment_id
"""


def validate_adjustment(data: AdjustmentInput) -> tuple[AdjustmentType, str, Any]:
    """Check an adjustment and return its parsed type, code and amount.

    Every problem is collected into a single ValidationError.
    """
    errors: list[FieldError] = []
    adjustment_type = None
    if data.adjustment_type in (None, ""):
        errors.append(FieldError(
            field="adjustment_type", code=MISSING_REQUIRED_FIELD,
            message="Adjustment type is required",
        ))
    else:
        try:
            adjustment_type = AdjustmentType(data.adjustment_type)
        except ValueError:
            errors.append(FieldError(
                field="adjustment_type", code=INVALID_FORMAT,
                message=f"Unknown adjustment type: {data.adjustment_type}",
            ))

    code = data.adjustment_code.strip() if isinstance(data.adjustment_code, str) else ""
    if not code:
        errors.append(FieldError(
            field="adjustment_code", code=MISSING_REQUIRED_FIELD,
            message="Adjustment code is required",
        ))

    amount = None
    if data.adjustment_amount in (None, ""):
        errors.append(FieldError(
            field="adjustment_amount", code=MISSING_REQUIRED_FIELD,
            message="Adjustment amount is required",
        ))
    else:
        amount = parse_money(data.adjustment_amount)
        if amount is None or amount <= 0:
            errors.append(FieldError(
                field="adjustment_amount", code=INVALID_FORMAT,
                message="Adjustment amount must be a positive number",
            ))

    if errors:
        raise ValidationError("Invalid adjustment data", errors)
    return adjustment_type, code, amount


def categorize_adjustments(
    adjustments: list[PaymentAdjustment],
) -> dict[AdjustmentType, AdjustmentTotals]:
    """Count and total per type. Every type is present, zero when unused."""
    totals = {t: AdjustmentTotals() for t in AdjustmentType}
    for adj in adjustments:
        bucket = totals[adj.adjustment_type]
        bucket.count += 1
        bucket.amount += adj.adjustment_amount
    return totals


class AdjustmentLedger:
    """Records adjustments and answers questions about them."""

    def __init__(self, database: Database, payments: PaymentRepository | None = None) -> None:
        self._db = database
        self._payments = payments or PaymentRepository()

    async def add_adjustment(
        self,
        claim_payment_id: str,
        data: AdjustmentInput,
        user_id: str | None = None,
        tx: sqlite3.Connection | None = None,
    ) -> PaymentAdjustment:
        """Attach a validated adjustment to an existing claim payment."""
        adjustment_type, code, amount = validate_adjustment(data)
        with self._db.scope(tx) as conn:
            claim_payment = self._payments.find_claim_payment(conn, claim_payment_id)
            if claim_payment is None:
                raise NotFoundError("claimPayment", claim_payment_id)
            adjustment = self._payments.add_payment_adjustment(conn, PaymentAdjustment(
                id=new_id(),
                claim_payment_id=claim_payment.id,
                claim_id=claim_payment.claim_id,
                payment_id=claim_payment.payment_id,
                adjustment_type=adjustment_type,
                adjustment_code=code,
                adjustment_amount=amount,
                description=data.description,
                created_by=user_id,
            ))
        logger.info(
            "Recorded %s adjustment %s of %s on claim payment %s",
            adjustment_type.value, code, amount, claim_payment_id,
        )
        return adjustment

    async def add_claim_adjustment(
        self,
        claim_id: str,
        data: AdjustmentInput,
        user_id: str | None = None,
        tx: sqlite3.Connection | None = None,
    ) -> PaymentAdjustment:
        """Record an adjustment against a claim with no payment, such as a denial."""
        adjustment_type, code, amount = validate_adjustment(data)
        with self._db.scope(tx) as conn:
            if conn.execute(
                "SELECT 1 FROM claims WHERE id = ? AND deleted_at IS NULL", (claim_id,)
            ).fetchone() is None:
                raise NotFoundError("claim", claim_id)
            adjustment = self._payments.add_payment_adjustment(conn, PaymentAdjustment(
                id=new_id(),
                claim_id=claim_id,
                adjustment_type=adjustment_type,
                adjustment_code=code,
                adjustment_amount=amount,
                description=data.description,
                created_by=user_id,
            ))
        logger.info("Recorded %s adjustment %s on claim %s", adjustment_type.value, code, claim_id)
        return adjustment

    async def get_adjustments_for_payment(
        self, payment_id: str, tx: sqlite3.Connection | None = None
    ) -> list[PaymentAdjustment]:
        with self._db.reading(tx) as conn:
            self._payments.get(conn, payment_id)
            return self._payments.get_adjustments_for_payment(conn, payment_id)

    async def get_adjustments_for_claim(
        self, claim_id: str, tx: sqlite3.Connection | None = None
    ) -> list[PaymentAdjustment]:
        with self._db.reading(tx) as conn:
            return self._payments.get_adjustments_for_claim(conn, claim_id)

    # -- analytics ----------------------------------------------------------

    def _filter_clause(self, filters: AdjustmentFilters | None) -> tuple[str, list[Any]]:
        conditions, params = ["a.deleted_at IS NULL"], []
        if filters is None:
            return " AND ".join(conditions), params
        if filters.date_range:
            validate_date_range(filters.date_range.start_date, filters.date_range.end_date)
            conditions.append(f"{_EFFECTIVE_DATE} BETWEEN ? AND ?")
            params += [filters.date_range.start_date.isoformat(), filters.date_range.end_date.isoformat()]
        if filters.payer_id:
            conditions.append("c.payer_id = ?")
            params.append(filters.payer_id)
        if filters.program_id:
            conditions.append("c.program_id = ?")
            params.append(filters.program_id)
        if filters.adjustment_type:
            conditions.append("a.adjustment_type = ?")
            params.append(filters.adjustment_type.value)
        return " AND ".join(conditions), params

    async def get_adjustment_trends(self, filters: AdjustmentFilters | None = None) -> AdjustmentTrends:
        """Adjustment counts and amounts by month and by payer."""
        where, params = self._filter_clause(filters)
        with self._db.connection() as conn:
            period_rows = conn.execute(
                f"""SELECT strftime('%Y-%m', {_EFFECTIVE_DATE}) AS period, a.adjustment_type,
                       COUNT(*) AS cnt, SUM(a.adjustment_amount) AS amount
                {_ADJUSTMENT_SCOPE} WHERE {where}
                GROUP BY period, a.adjustment_type
                ORDER BY period, amount DESC""",
                params,
            ).fetchall()
            payer_rows = conn.execute(
                f"""SELECT c.payer_id, py.name AS payer_name, a.adjustment_type,
                       COUNT(*) AS cnt, SUM(a.adjustment_amount) AS amount
                {_ADJUSTMENT_SCOPE} WHERE {where}
                GROUP BY c.payer_id, py.name, a.adjustment_type
                ORDER BY py.name, amount DESC""",
                params,
            ).fetchall()
        return AdjustmentTrends(
            by_period=[
                PeriodAdjustmentTrend(
                    period=r["period"], adjustment_type=AdjustmentType(r["adjustment_type"]),
                    count=r["cnt"], amount=from_cents(r["amount"]),
                )
                for r in period_rows
            ],
            by_payer=[
                PayerAdjustmentTrend(
                    payer_id=r["payer_id"], payer_name=r["payer_name"],
                    adjustment_type=AdjustmentType(r["adjustment_type"]),
                    count=r["cnt"], amount=from_cents(r["amount"]),
                )
                for r in payer_rows
            ],
        )

    async def get_top_adjustment_reasons(
        self, filters: AdjustmentFilters | None = None, limit: int = 10
    ) -> list[AdjustmentReason]:
        """Most frequent (code, type) pairs."""
        where, params = self._filter_clause(filters)
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""SELECT a.adjustment_code, a.adjustment_type, COUNT(*) AS cnt,
                       SUM(a.adjustment_amount) AS amount, MAX(a.description) AS description
                {_ADJUSTMENT_SCOPE} WHERE {where}
                GROUP BY a.adjustment_code, a.adjustment_type
                ORDER BY cnt DESC, amount DESC, a.adjustment_code
                LIMIT ?""",
                [*params, limit],
            ).fetchall()
        return [
            AdjustmentReason(
                adjustment_code=r["adjustment_code"],
                adjustment_type=AdjustmentType(r["adjustment_type"]),
                count=r["cnt"],
                total_amount=from_cents(r["amount"]),
                description=r["description"] or "",
            )
            for r in rows
        ]

    async def get_adjustment_impact(self, date_range: DateRange) -> AdjustmentImpact:
        """Billed, paid and adjusted totals for a period.

        Billed covers claims with service starting in the range; paid and
        adjusted follow the payment date.
        """
        validate_date_range(date_range.start_date, date_range.end_date)
        start, end = date_range.start_date.isoformat(), date_range.end_date.isoformat()
        with self._db.connection() as conn:
            billed = conn.execute(
                """SELECT COALESCE(SUM(total_amount), 0) FROM claims
                WHERE deleted_at IS NULL AND service_start_date BETWEEN ? AND ?""",
                (start, end),
            ).fetchone()[0]
            paid = conn.execute(
                """SELECT COALESCE(SUM(cp.paid_amount), 0) FROM claim_payments cp
                JOIN payments p ON p.id = cp.payment_id
                WHERE cp.deleted_at IS NULL AND p.payment_date BETWEEN ? AND ?""",
                (start, end),
            ).fetchone()[0]
            type_rows = conn.execute(
                f"""SELECT a.adjustment_type, SUM(a.adjustment_amount) AS amount
                {_ADJUSTMENT_SCOPE}
                WHERE a.deleted_at IS NULL AND {_EFFECTIVE_DATE} BETWEEN ? AND ?
                GROUP BY a.adjustment_type""",
                (start, end),
            ).fetchall()
        impact_by_type = {t: ZERO for t in AdjustmentType}
        for r in type_rows:
            impact_by_type[AdjustmentType(r["adjustment_type"])] = from_cents(r["amount"])
        total_adjusted = sum(impact_by_type.values(), ZERO)
        total_billed = from_cents(billed)
        return AdjustmentImpact(
            total_billed=total_billed,
            total_paid=from_cents(paid),
            total_adjusted=total_adjusted,
            adjustment_rate=safe_ratio(total_adjusted, total_billed),
            impact_by_type=impact_by_type,
        )

    async def get_denial_analysis(self, filters: AdjustmentFilters | None = None) -> DenialAnalysis:
        """Non-covered adjustments treated as denials.

        The claim population is every claim matching the payer, program and
        service-date filters; a claim counts as denied when it carries at
        least one live non-covered adjustment.
        """
        conditions, params = ["c.deleted_at IS NULL"], []
        if filters and filters.date_range:
            validate_date_range(filters.date_range.start_date, filters.date_range.end_date)
            conditions.append("c.service_start_date BETWEEN ? AND ?")
            params += [filters.date_range.start_date.isoformat(), filters.date_range.end_date.isoformat()]
        if filters and filters.payer_id:
            conditions.append("c.payer_id = ?")
            params.append(filters.payer_id)
        if filters and filters.program_id:
            conditions.append("c.program_id = ?")
            params.append(filters.program_id)
        claim_where = " AND ".join(conditions)
        denial_join = """JOIN payment_adjustments a ON a.claim_id = c.id
            AND a.deleted_at IS NULL AND a.adjustment_type = ?"""
        noncovered = AdjustmentType.NONCOVERED.value

        with self._db.connection() as conn:
            total_claims = conn.execute(
                f"SELECT COUNT(*) FROM claims c WHERE {claim_where}", params
            ).fetchone()[0]
            denied = conn.execute(
                f"""SELECT COUNT(DISTINCT c.id) AS claims, COALESCE(SUM(a.adjustment_amount), 0) AS amount
                FROM claims c {denial_join} WHERE {claim_where}""",
                [noncovered, *params],
            ).fetchone()
            reason_rows = conn.execute(
                f"""SELECT a.adjustment_code, COUNT(*) AS cnt, SUM(a.adjustment_amount) AS amount,
                       MAX(a.description) AS description
                FROM claims c {denial_join} WHERE {claim_where}
                GROUP BY a.adjustment_code ORDER BY cnt DESC, amount DESC, a.adjustment_code""",
                [noncovered, *params],
            ).fetchall()
            payer_rows = conn.execute(
                f"""SELECT c.payer_id, py.name AS payer_name, COUNT(*) AS total_claims,
                       SUM(CASE WHEN d.amount IS NOT NULL THEN 1 ELSE 0 END) AS denied_claims,
                       COALESCE(SUM(d.amount), 0) AS amount
                FROM claims c
                JOIN payers py ON py.id = c.payer_id
                LEFT JOIN (
                    SELECT claim_id, SUM(adjustment_amount) AS amount FROM payment_adjustments
                    WHERE deleted_at IS NULL AND adjustment_type = ? GROUP BY claim_id
                ) d ON d.claim_id = c.id
                WHERE {claim_where}
                GROUP BY c.payer_id, py.name ORDER BY denied_claims DESC, py.name""",
                [noncovered, *params],
            ).fetchall()

        denied_claims = denied["claims"]
        analysis = DenialAnalysis(
            total_claims=total_claims,
            denied_claims=denied_claims,
            denial_rate=safe_ratio(denied_claims, total_claims),
            total_denied_amount=from_cents(denied["amount"]),
            by_reason=[
                DenialReasonSummary(
                    adjustment_code=r["adjustment_code"], count=r["cnt"],
                    amount=from_cents(r["amount"]), description=r["description"] or "",
                )
                for r in reason_rows
            ],
            by_payer=[
                PayerDenialSummary(
                    payer_id=r["payer_id"], payer_name=r["payer_name"],
                    denied_claims=r["denied_claims"], total_claims=r["total_claims"],
                    denial_rate=safe_ratio(r["denied_claims"], r["total_claims"]),
                    amount=from_cents(r["amount"]),
                )
                for r in payer_rows
            ],
        )
        logger.info(
            "Denial analysis: %d of %d claims denied (%.1f%%)",
            denied_claims, total_claims, analysis.denial_rate * 100,
        )
        return analysis
