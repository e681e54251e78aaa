"""Payment-to-claim matching.

Proposes which claims a payment most likely covers. Nothing here writes to
the database.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from hcbsrecon.config.settings import Settings
from hcbsrecon.core.errors import BusinessError
from hcbsrecon.core.models import ZERO, ClaimMatch, ClaimQuery, MatchResult
from hcbsrecon.core.types import MATCHABLE_CLAIM_STATUSES, ReconciliationStatus
from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.payment_repository import PaymentRepository


if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterable

    from hcbsrecon.core.models import Claim, Payment
    from hcbsrecon.storage.database import Database

logger = logging.getLogger(__name__)

BALANCE_EPSILON = Decimal("0.01")


def calculate_reconciliation_status(
    total_amount: Decimal, matched_amount: Decimal, epsilon: Decimal = BALANCE_EPSILON
) -> ReconciliationStatus:
    """Derive a payment's reconciliation status from how much of it is applied."""
    if abs(total_amount - matched_amount) < epsilon:
        return ReconciliationStatus.RECONCILED
    if matched_amount > total_amount:
        return ReconciliationStatus.EXCEPTION
    if matched_amount > 0:
        return ReconciliationStatus.PARTIALLY_RECONCILED
    return ReconciliationStatus.UNRECONCILED


def validate_match_amount(payment_amount: Decimal, matches: Iterable[ClaimMatch]) -> None:
    """Raise BusinessError when the proposed matches exceed the payment."""
    total = sum((m.amount for m in matches), ZERO)
    if total > payment_amount:
        raise BusinessError(
            "Total matched amount exceeds payment amount",
            "payment.matchAmountExceedsPayment",
            {"payment_amount": str(payment_amount), "matched_amount": str(total)},
        )


def rank_matches(matches: Iterable[ClaimMatch]) -> list[ClaimMatch]:
    """Order by score, then amount (both descending), then claim id."""
    return sorted(matches, key=lambda m: (-m.score, -m.amount, m.claim_id))


class PaymentMatcher:
    """Scores candidate claims against a payment."""

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

    def find_potential_matches(self, conn: sqlite3.Connection, payment: Payment) -> list[Claim]:
        """Open claims for the payment's payer with service dates shortly before it."""
        cfg = self.settings.matching
        return self._claims.find_with_advanced_query(conn, ClaimQuery(
            payer_id=payment.payer_id,
            statuses=list(MATCHABLE_CLAIM_STATUSES),
            service_date_from=payment.payment_date - timedelta(days=cfg.date_window_days),
            service_date_to=payment.payment_date,
            limit=cfg.max_candidates,
        ))

    def score_claim(self, payment: Payment, claim: Claim) -> ClaimMatch:
        """Score one claim. Deterministic for the same inputs."""
        cfg = self.settings.matching
        if payment.payment_amount == claim.total_amount:
            return ClaimMatch(
                claim_id=claim.id, claim_number=claim.claim_number,
                amount=claim.total_amount, score=cfg.exact_match_score,
                reason="Exact amount match",
            )
        if claim.total_amount > 0:
            difference = abs(payment.payment_amount - claim.total_amount) / claim.total_amount
            if difference <= cfg.amount_tolerance:
                return ClaimMatch(
                    claim_id=claim.id, claim_number=claim.claim_number,
                    amount=claim.total_amount, score=cfg.similar_match_score,
                    reason="Similar amount match",
                )
        return ClaimMatch(
            claim_id=claim.id, claim_number=claim.claim_number,
            amount=ZERO, score=0.0, reason="No match",
        )

    def match_candidates(self, payment: Payment, claims: Iterable[Claim]) -> MatchResult:
        threshold = self.settings.matching.match_threshold
        scored = (self.score_claim(payment, c) for c in claims)
        matches = rank_matches(m for m in scored if m.score >= threshold)
        matched = sum((m.amount for m in matches), ZERO)
        return MatchResult(
            payment_id=payment.id,
            payment_amount=payment.payment_amount,
            matches=matches,
            unmatched_amount=payment.payment_amount - matched,
        )

    async def match_payment_to_claims(
        self, payment_id: str, tx: sqlite3.Connection | None = None
    ) -> MatchResult:
        """Propose claims for a payment, best match first."""
        with self._db.reading(tx) as conn:
            payment = self._payments.get(conn, payment_id)
            candidates = self.find_potential_matches(conn, payment)
        result = self.match_candidates(payment, candidates)
        logger.info(
            "Payment %s: %d candidates, %d matches, unmatched %s",
            payment_id, len(candidates), len(result.matches), result.unmatched_amount,
        )
        return result
