"""SQLite repository for payments and their reconciliation records."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from hcbsrecon.core.errors import BusinessError, NotFoundError
from hcbsrecon.core.utils import to_cents, utcnow
from hcbsrecon.storage.converters import (
    row_to_adjustment,
    row_to_claim_payment,
    row_to_event,
    row_to_payment,
    row_to_remittance_detail,
    row_to_remittance_info,
)


if TYPE_CHECKING:
    import sqlite3

    from hcbsrecon.core.models import (
        ClaimPayment,
        Payment,
        PaymentAdjustment,
        ReconciliationEvent,
        RemittanceDetail,
        RemittanceInfo,
    )
    from hcbsrecon.core.types import ReconciliationStatus

logger = logging.getLogger(__name__)


class PaymentRepository:
    """Payments, claim payments, adjustments, remittances and history.

    Every method works on the connection it is given so the caller controls
    transaction boundaries.
    """

    # -- payments -----------------------------------------------------------

    def create(self, conn: sqlite3.Connection, payment: Payment) -> Payment:
        now = utcnow()
        conn.execute(
            """INSERT INTO payments
            (id, payer_id, payment_date, payment_amount, payment_method, reference_number,
             check_number, remittance_id, reconciliation_status, notes, status, version,
             created_at, created_by, updated_at, updated_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (payment.id, payment.payer_id, payment.payment_date.isoformat(),
             to_cents(payment.payment_amount), payment.payment_method.value,
             payment.reference_number, payment.check_number, payment.remittance_id,
             payment.reconciliation_status.value, payment.notes, payment.status.value,
             payment.version, now.isoformat(), payment.created_by, now.isoformat(),
             payment.created_by),
        )
        return payment.model_copy(update={"created_at": now, "updated_at": now})

    def find_by_id(self, conn: sqlite3.Connection, payment_id: str) -> Payment | None:
        row = conn.execute(
            "SELECT * FROM payments WHERE id = ? AND deleted_at IS NULL", (payment_id,)
        ).fetchone()
        return row_to_payment(row) if row else None

    def get(self, conn: sqlite3.Connection, payment_id: str) -> Payment:
        payment = self.find_by_id(conn, payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        return payment

    def update_reconciliation_status(
        self,
        conn: sqlite3.Connection,
        payment_id: str,
        status: ReconciliationStatus,
        expected_version: int,
        user_id: str | None = None,
        notes: str | None = None,
    ) -> int:
        """Write the cached status if nobody else changed the payment first.

        Returns the new version. Raises BusinessError when ``expected_version``
        is stale.
        """
        assignments = "reconciliation_status = ?, version = version + 1, updated_at = ?, updated_by = ?"
        params: list[object] = [status.value, utcnow().isoformat(), user_id]
        if notes is not None:
            assignments += ", notes = ?"
            params.append(notes)
        cursor = conn.execute(
            f"UPDATE payments SET {assignments} WHERE id = ? AND version = ? AND deleted_at IS NULL",
            [*params, payment_id, expected_version],
        )
        if cursor.rowcount == 0:
            raise BusinessError(
                "Payment was modified by another operation",
                "payment.concurrentModification",
                {"payment_id": payment_id, "expected_version": expected_version},
            )
        return expected_version + 1

    def set_remittance_id(self, conn: sqlite3.Connection, payment_id: str, remittance_id: str) -> None:
        conn.execute(
            "UPDATE payments SET remittance_id = ? WHERE id = ?", (remittance_id, payment_id)
        )

    # -- claim payments -----------------------------------------------------

    def add_claim_payment(self, conn: sqlite3.Connection, claim_payment: ClaimPayment) -> ClaimPayment:
        now = utcnow()
        conn.execute(
            """INSERT INTO claim_payments
            (id, payment_id, claim_id, paid_amount, status, created_at, created_by,
             updated_at, updated_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (claim_payment.id, claim_payment.payment_id, claim_payment.claim_id,
             to_cents(claim_payment.paid_amount), claim_payment.status.value,
             now.isoformat(), claim_payment.created_by, now.isoformat(),
             claim_payment.created_by),
        )
        return claim_payment.model_copy(update={"created_at": now, "updated_at": now})

    def find_claim_payment(self, conn: sqlite3.Connection, claim_payment_id: str) -> ClaimPayment | None:
        row = conn.execute(
            "SELECT * FROM claim_payments WHERE id = ? AND deleted_at IS NULL",
            (claim_payment_id,),
        ).fetchone()
        return row_to_claim_payment(row) if row else None

    def get_claim_payments(
        self, conn: sqlite3.Connection, payment_id: str, with_adjustments: bool = True
    ) -> list[ClaimPayment]:
        rows = conn.execute(
            """SELECT * FROM claim_payments WHERE payment_id = ? AND deleted_at IS NULL
            ORDER BY created_at, rowid""",
            (payment_id,),
        ).fetchall()
        if not with_adjustments or not rows:
            return [row_to_claim_payment(r) for r in rows]
        by_claim_payment = self._adjustments_by_claim_payment(conn, [r["id"] for r in rows])
        return [row_to_claim_payment(r, by_claim_payment.get(r["id"], [])) for r in rows]

    def get_claim_payments_for_claim(self, conn: sqlite3.Connection, claim_id: str) -> list[ClaimPayment]:
        rows = conn.execute(
            "SELECT * FROM claim_payments WHERE claim_id = ? AND deleted_at IS NULL ORDER BY created_at, rowid",
            (claim_id,),
        ).fetchall()
        by_claim_payment = self._adjustments_by_claim_payment(conn, [r["id"] for r in rows])
        return [row_to_claim_payment(r, by_claim_payment.get(r["id"], [])) for r in rows]

    def remove_claim_payments(
        self, conn: sqlite3.Connection, payment_id: str, user_id: str | None = None
    ) -> int:
        """Soft-delete a payment's claim payments and their adjustments."""
        now = utcnow().isoformat()
        conn.execute(
            """UPDATE payment_adjustments SET deleted_at = ?, status = 'inactive'
            WHERE deleted_at IS NULL AND claim_payment_id IN
                (SELECT id FROM claim_payments WHERE payment_id = ? AND deleted_at IS NULL)""",
            (now, payment_id),
        )
        cursor = conn.execute(
            """UPDATE claim_payments SET deleted_at = ?, status = 'inactive',
            updated_at = ?, updated_by = ? WHERE payment_id = ? AND deleted_at IS NULL""",
            (now, now, user_id, payment_id),
        )
        return cursor.rowcount

    # -- adjustments --------------------------------------------------------

    def add_payment_adjustment(
        self, conn: sqlite3.Connection, adjustment: PaymentAdjustment
    ) -> PaymentAdjustment:
        now = utcnow()
        conn.execute(
            """INSERT INTO payment_adjustments
            (id, claim_payment_id, claim_id, adjustment_type, adjustment_code,
             adjustment_amount, description, status, created_at, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (adjustment.id, adjustment.claim_payment_id, adjustment.claim_id,
             adjustment.adjustment_type.value, adjustment.adjustment_code,
             to_cents(adjustment.adjustment_amount), adjustment.description,
             adjustment.status.value, now.isoformat(), adjustment.created_by),
        )
        return adjustment.model_copy(update={"created_at": now})

    def get_adjustments_for_payment(self, conn: sqlite3.Connection, payment_id: str) -> list[PaymentAdjustment]:
        rows = conn.execute(
            """SELECT a.*, cp.payment_id FROM payment_adjustments a
            JOIN claim_payments cp ON cp.id = a.claim_payment_id
            WHERE cp.payment_id = ? AND a.deleted_at IS NULL AND cp.deleted_at IS NULL
            ORDER BY a.created_at, a.rowid""",
            (payment_id,),
        ).fetchall()
        return [row_to_adjustment(r) for r in rows]

    def get_adjustments_for_claim(self, conn: sqlite3.Connection, claim_id: str) -> list[PaymentAdjustment]:
        rows = conn.execute(
            """SELECT a.*, cp.payment_id FROM payment_adjustments a
            LEFT JOIN claim_payments cp ON cp.id = a.claim_payment_id AND cp.deleted_at IS NULL
            WHERE a.claim_id = ? AND a.deleted_at IS NULL
            ORDER BY a.created_at, a.rowid""",
            (claim_id,),
        ).fetchall()
        return [row_to_adjustment(r) for r in rows]

    def _adjustments_by_claim_payment(
        self, conn: sqlite3.Connection, claim_payment_ids: list[str]
    ) -> dict[str, list[PaymentAdjustment]]:
        if not claim_payment_ids:
            return {}
        ph = ",".join("?" * len(claim_payment_ids))
        rows = conn.execute(
            f"""SELECT * FROM payment_adjustments
            WHERE claim_payment_id IN ({ph}) AND deleted_at IS NULL ORDER BY created_at, rowid""",
            claim_payment_ids,
        ).fetchall()
        grouped: dict[str, list[PaymentAdjustment]] = {}
        for row in rows:
            grouped.setdefault(row["claim_payment_id"], []).append(row_to_adjustment(row))
        return grouped

    # -- remittances --------------------------------------------------------

    def save_remittance_info(self, conn: sqlite3.Connection, info: RemittanceInfo, user_id: str | None = None) -> RemittanceInfo:
        now = utcnow()
        conn.execute(
            """INSERT INTO remittance_info
            (id, payment_id, remittance_number, payer_identifier, file_type, file_name,
             total_details, matched_details, processed_at, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (info.id, info.payment_id, info.remittance_number, info.payer_identifier,
             info.file_type.value, info.file_name, info.total_details,
             info.matched_details, now.isoformat(), user_id),
        )
        return info.model_copy(update={"processed_at": now})

    def update_remittance_counts(
        self, conn: sqlite3.Connection, remittance_id: str, total: int, matched: int
    ) -> None:
        conn.execute(
            "UPDATE remittance_info SET total_details = ?, matched_details = ? WHERE id = ?",
            (total, matched, remittance_id),
        )

    def save_remittance_detail(self, conn: sqlite3.Connection, detail: RemittanceDetail) -> RemittanceDetail:
        conn.execute(
            """INSERT INTO remittance_details
            (id, remittance_id, claim_id, claim_number, service_date, billed_amount,
             paid_amount, adjustment_amount, adjustment_codes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (detail.id, detail.remittance_id, detail.claim_id, detail.claim_number,
             detail.service_date.isoformat() if detail.service_date else None,
             to_cents(detail.billed_amount), to_cents(detail.paid_amount),
             to_cents(detail.adjustment_amount), json.dumps(detail.adjustment_codes),
             utcnow().isoformat()),
        )
        return detail

    def get_remittance_info(self, conn: sqlite3.Connection, remittance_id: str) -> RemittanceInfo | None:
        row = conn.execute(
            "SELECT * FROM remittance_info WHERE id = ? AND deleted_at IS NULL", (remittance_id,)
        ).fetchone()
        return row_to_remittance_info(row) if row else None

    def get_remittance_details(self, conn: sqlite3.Connection, remittance_id: str) -> list[RemittanceDetail]:
        rows = conn.execute(
            """SELECT * FROM remittance_details WHERE remittance_id = ? AND deleted_at IS NULL
            ORDER BY created_at, rowid""",
            (remittance_id,),
        ).fetchall()
        return [row_to_remittance_detail(r) for r in rows]

    # -- history ------------------------------------------------------------

    def add_event(self, conn: sqlite3.Connection, event: ReconciliationEvent) -> None:
        conn.execute(
            """INSERT INTO reconciliation_events
            (payment_id, action, previous_status, new_status, total_applied, user_id,
             details, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (event.payment_id, event.action.value,
             event.previous_status.value if event.previous_status else None,
             event.new_status.value, to_cents(event.total_applied), event.user_id,
             json.dumps(event.details, default=str), utcnow().isoformat()),
        )

    def get_events(self, conn: sqlite3.Connection, payment_id: str) -> list[ReconciliationEvent]:
        rows = conn.execute(
            "SELECT * FROM reconciliation_events WHERE payment_id = ? ORDER BY id DESC",
            (payment_id,),
        ).fetchall()
        return [row_to_event(r) for r in rows]
