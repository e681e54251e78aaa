"""SQLite repository for claims and payers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hcbsrecon.core.errors import NotFoundError
from hcbsrecon.core.utils import to_cents, utcnow
from hcbsrecon.storage.converters import row_to_claim, row_to_payer


if TYPE_CHECKING:
    import sqlite3

    from hcbsrecon.core.models import Claim, ClaimQuery, Payer
    from hcbsrecon.core.types import ClaimStatus

logger = logging.getLogger(__name__)


class ClaimRepository:
    """Claim lookups and status updates.

    Every method works on the connection it is given so the caller controls
    transaction boundaries.
    """

    def save(self, conn: sqlite3.Connection, claim: Claim) -> Claim:
        conn.execute(
            """INSERT OR REPLACE INTO claims
            (id, claim_number, payer_id, program_id, client_name, service_start_date,
             service_end_date, submission_date, adjudication_date, total_amount,
             claim_status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (claim.id, claim.claim_number, claim.payer_id, claim.program_id,
             claim.client_name, claim.service_start_date.isoformat(),
             claim.service_end_date.isoformat() if claim.service_end_date else None,
             claim.submission_date.isoformat() if claim.submission_date else None,
             claim.adjudication_date.isoformat() if claim.adjudication_date else None,
             to_cents(claim.total_amount), claim.claim_status.value,
             (claim.created_at or utcnow()).isoformat()),
        )
        return claim

    def find_by_id(self, conn: sqlite3.Connection, claim_id: str) -> Claim | None:
        row = conn.execute(
            "SELECT * FROM claims WHERE id = ? AND deleted_at IS NULL", (claim_id,)
        ).fetchone()
        return row_to_claim(row) if row else None

    def get(self, conn: sqlite3.Connection, claim_id: str) -> Claim:
        claim = self.find_by_id(conn, claim_id)
        if claim is None:
            raise NotFoundError("claim", claim_id)
        return claim

    def find_by_claim_number(self, conn: sqlite3.Connection, claim_number: str) -> Claim | None:
        row = conn.execute(
            "SELECT * FROM claims WHERE claim_number = ? AND deleted_at IS NULL",
            (claim_number,),
        ).fetchone()
        return row_to_claim(row) if row else None

    def update_status(
        self,
        conn: sqlite3.Connection,
        claim_id: str,
        new_status: ClaimStatus,
        reason: str | None = None,
        user_id: str | None = None,
    ) -> Claim:
        """Move a claim to ``new_status`` and record the change in its history."""
        claim = self.get(conn, claim_id)
        now = utcnow().isoformat()
        conn.execute(
            "UPDATE claims SET claim_status = ?, updated_at = ?, updated_by = ? WHERE id = ?",
            (new_status.value, now, user_id, claim_id),
        )
        conn.execute(
            """INSERT INTO claim_status_history
            (claim_id, previous_status, new_status, reason, changed_by, changed_at)
            VALUES (?, ?, ?, ?, ?, ?)""",
            (claim_id, claim.claim_status.value, new_status.value, reason, user_id, now),
        )
        logger.debug(
            "Claim %s status %s -> %s", claim_id, claim.claim_status.value, new_status.value
        )
        return claim.model_copy(update={"claim_status": new_status})

    def find_with_advanced_query(self, conn: sqlite3.Connection, query: ClaimQuery) -> list[Claim]:
        """Claims matching every filter that is set, newest service date first."""
        conditions, params = ["deleted_at IS NULL"], []
        if query.payer_id:
            conditions.append("payer_id = ?")
            params.append(query.payer_id)
        if query.program_id:
            conditions.append("program_id = ?")
            params.append(query.program_id)
        if query.statuses:
            conditions.append(f"claim_status IN ({','.join('?' * len(query.statuses))})")
            params.extend(s.value for s in query.statuses)
        if query.service_date_from:
            conditions.append("service_start_date >= ?")
            params.append(query.service_date_from.isoformat())
        if query.service_date_to:
            conditions.append("service_start_date <= ?")
            params.append(query.service_date_to.isoformat())
        if query.submission_date_from:
            conditions.append("submission_date >= ?")
            params.append(query.submission_date_from.isoformat())
        if query.submission_date_to:
            conditions.append("submission_date <= ?")
            params.append(query.submission_date_to.isoformat())
        sql = (
            f"SELECT * FROM claims WHERE {' AND '.join(conditions)} "
            "ORDER BY service_start_date DESC, id"
        )
        if query.limit:
            sql += " LIMIT ?"
            params.append(query.limit)
        rows = conn.execute(sql, params).fetchall()
        return [row_to_claim(r) for r in rows]

    def save_payer(self, conn: sqlite3.Connection, payer: Payer) -> Payer:
        conn.execute(
            "INSERT OR REPLACE INTO payers (id, name, payer_identifier) VALUES (?, ?, ?)",
            (payer.id, payer.name, payer.payer_identifier),
        )
        return payer

    def find_payer(self, conn: sqlite3.Connection, payer_id: str) -> Payer | None:
        row = conn.execute(
            "SELECT * FROM payers WHERE id = ? AND deleted_at IS NULL", (payer_id,)
        ).fetchone()
        return row_to_payer(row) if row else None
