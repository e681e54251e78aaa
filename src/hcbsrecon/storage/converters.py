"""Converters for database rows to model objects."""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime

from hcbsrecon.core.models import (
    Claim,
    ClaimPayment,
    Payer,
    Payment,
    PaymentAdjustment,
    ReconciliationEvent,
    RemittanceDetail,
    RemittanceInfo,
)
from hcbsrecon.core.types import (
    AdjustmentType,
    ClaimStatus,
    PaymentMethod,
    ReconciliationAction,
    ReconciliationStatus,
    RecordStatus,
    RemittanceFileType,
)
from hcbsrecon.core.utils import from_cents


def _date(value: str | None) -> date | None:
    return date.fromisoformat(value[:10]) if value else None


def _datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _optional(row: sqlite3.Row, column: str) -> str | None:
    return row[column] if column in row.keys() else None


def row_to_payer(row: sqlite3.Row) -> Payer:
    """Convert database row to Payer object."""
    return Payer(id=row["id"], name=row["name"], payer_identifier=row["payer_identifier"])


def row_to_claim(row: sqlite3.Row) -> Claim:
    """Convert database row to Claim object."""
    return Claim(
        id=row["id"],
        claim_number=row["claim_number"],
        payer_id=row["payer_id"],
        program_id=row["program_id"],
        client_name=row["client_name"] or "",
        service_start_date=_date(row["service_start_date"]),
        service_end_date=_date(row["service_end_date"]),
        submission_date=_date(row["submission_date"]),
        adjudication_date=_date(row["adjudication_date"]),
        total_amount=from_cents(row["total_amount"]),
        claim_status=ClaimStatus(row["claim_status"]),
        created_at=_datetime(row["created_at"]),
    )


def row_to_payment(row: sqlite3.Row) -> Payment:
    """Convert database row to Payment object."""
    return Payment(
        id=row["id"],
        payer_id=row["payer_id"],
        payment_date=_date(row["payment_date"]),
        payment_amount=from_cents(row["payment_amount"]),
        payment_method=PaymentMethod(row["payment_method"]),
        reference_number=row["reference_number"],
        check_number=row["check_number"],
        remittance_id=row["remittance_id"],
        reconciliation_status=ReconciliationStatus(row["reconciliation_status"]),
        notes=row["notes"],
        status=RecordStatus(row["status"]),
        version=row["version"],
        created_at=_datetime(row["created_at"]),
        created_by=row["created_by"],
        updated_at=_datetime(row["updated_at"]),
        updated_by=row["updated_by"],
    )


def row_to_adjustment(row: sqlite3.Row) -> PaymentAdjustment:
    """Convert database row to PaymentAdjustment object.

    ``payment_id`` is read when the query joined it in.
    """
    return PaymentAdjustment(
        id=row["id"],
        claim_payment_id=row["claim_payment_id"],
        claim_id=row["claim_id"],
        payment_id=_optional(row, "payment_id"),
        adjustment_type=AdjustmentType(row["adjustment_type"]),
        adjustment_code=row["adjustment_code"],
        adjustment_amount=from_cents(row["adjustment_amount"]),
        description=row["description"] or "",
        status=RecordStatus(row["status"]),
        created_at=_datetime(row["created_at"]),
        created_by=row["created_by"],
    )


def row_to_claim_payment(
    row: sqlite3.Row, adjustments: list[PaymentAdjustment] | None = None
) -> ClaimPayment:
    """Convert database row to ClaimPayment object."""
    return ClaimPayment(
        id=row["id"],
        payment_id=row["payment_id"],
        claim_id=row["claim_id"],
        paid_amount=from_cents(row["paid_amount"]),
        status=RecordStatus(row["status"]),
        adjustments=adjustments or [],
        created_at=_datetime(row["created_at"]),
        created_by=row["created_by"],
        updated_at=_datetime(row["updated_at"]),
        updated_by=row["updated_by"],
    )


def row_to_remittance_info(row: sqlite3.Row) -> RemittanceInfo:
    """Convert database row to RemittanceInfo object."""
    return RemittanceInfo(
        id=row["id"],
        payment_id=row["payment_id"],
        remittance_number=row["remittance_number"],
        payer_identifier=row["payer_identifier"],
        file_type=RemittanceFileType(row["file_type"]),
        file_name=row["file_name"],
        total_details=row["total_details"],
        matched_details=row["matched_details"],
        processed_at=_datetime(row["processed_at"]),
    )


def row_to_remittance_detail(row: sqlite3.Row) -> RemittanceDetail:
    """Convert database row to RemittanceDetail object."""
    return RemittanceDetail(
        id=row["id"],
        remittance_id=row["remittance_id"],
        claim_id=row["claim_id"],
        claim_number=row["claim_number"],
        service_date=_date(row["service_date"]),
        billed_amount=from_cents(row["billed_amount"]),
        paid_amount=from_cents(row["paid_amount"]),
        adjustment_amount=from_cents(row["adjustment_amount"]),
        adjustment_codes=json.loads(row["adjustment_codes"] or "[]"),
    )


def row_to_event(row: sqlite3.Row) -> ReconciliationEvent:
    """Convert database row to ReconciliationEvent object."""
    previous = row["previous_status"]
    return ReconciliationEvent(
        id=row["id"],
        payment_id=row["payment_id"],
        action=ReconciliationAction(row["action"]),
        previous_status=ReconciliationStatus(previous) if previous else None,
        new_status=ReconciliationStatus(row["new_status"]),
        total_applied=from_cents(row["total_applied"]),
        user_id=row["user_id"],
        details=json.loads(row["details"] or "{}"),
        created_at=_datetime(row["created_at"]),
    )
