"""Sample payers, claims and payments for demos and manual testing."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from hcbsrecon.core.models import (
    Claim,
    ParsedRemittance,
    Payer,
    Payment,
    RemittanceHeader,
    RemittanceLine,
)
from hcbsrecon.core.types import ClaimStatus, PaymentMethod
from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.payment_repository import PaymentRepository


if TYPE_CHECKING:
    from hcbsrecon.storage.database import Database


def load_sample_data(database: Database, today: date | None = None) -> bool:
    """Seed an empty database. Returns False when data already exists."""
    today = today or date.today()
    claims_repo, payments_repo = ClaimRepository(), PaymentRepository()
    with database.transaction() as conn:
        if conn.execute("SELECT COUNT(*) FROM claims").fetchone()[0] > 0:
            return False

        for payer in (
            Payer(id="medicaid", name="State Medicaid", payer_identifier="SMCD01"),
            Payer(id="waiver", name="HCBS Waiver Program", payer_identifier="HCBSW1"),
        ):
            claims_repo.save_payer(conn, payer)

        # (claim number, payer, program, client, days ago, amount, status)
        claims = [
            ("CLM-1001", "medicaid", "personal-care", "A. Rivera", 20, "1000.00", ClaimStatus.SUBMITTED),
            ("CLM-1002", "medicaid", "personal-care", "B. Chen", 35, "450.00", ClaimStatus.PENDING),
            ("CLM-1003", "medicaid", "respite", "C. Okafor", 75, "1200.00", ClaimStatus.SUBMITTED),
            ("CLM-1004", "waiver", "day-services", "D. Novak", 110, "6200.00", ClaimStatus.PENDING),
            ("CLM-1005", "waiver", "day-services", "E. Haddad", 45, "980.00", ClaimStatus.ACKNOWLEDGED),
            ("CLM-1006", "waiver", "respite", "F. Duarte", 5, "300.00", ClaimStatus.SUBMITTED),
        ]
        for number, payer_id, program, client, days_ago, amount, status in claims:
            service = today - timedelta(days=days_ago + 7)
            claims_repo.save(conn, Claim(
                id=number.lower(),
                claim_number=number,
                payer_id=payer_id,
                program_id=program,
                client_name=client,
                service_start_date=service,
                service_end_date=service + timedelta(days=6),
                submission_date=today - timedelta(days=days_ago),
                total_amount=Decimal(amount),
                claim_status=status,
            ))

        payments = [
            ("pmt-001", "medicaid", 2, "1000.00", PaymentMethod.EFT, "EFT-77801", None),
            ("pmt-002", "medicaid", 10, "1650.00", PaymentMethod.CHECK, "CHK-5521", "5521"),
            ("pmt-003", "waiver", 40, "980.00", PaymentMethod.EFT, "EFT-77855", None),
        ]
        for payment_id, payer_id, days_ago, amount, method, reference, check in payments:
            payments_repo.create(conn, Payment(
                id=payment_id,
                payer_id=payer_id,
                payment_date=today - timedelta(days=days_ago),
                payment_amount=Decimal(amount),
                payment_method=method,
                reference_number=reference,
                check_number=check,
                created_by="sample",
            ))
    return True


def sample_remittance(today: date | None = None) -> ParsedRemittance:
    """A remittance for the sample payer: two known claims and one unknown."""
    today = today or date.today()
    return ParsedRemittance(
        header=RemittanceHeader(
            payment_date=today,
            payment_amount=Decimal("1750.00"),
            payment_method="ACH",
            reference_number="TRN-90210",
            remittance_number="RA-2001",
            payer_identifier="SMCD01",
        ),
        details=[
            RemittanceLine(
                claim_number="CLM-1002", billed_amount=Decimal("450.00"),
                paid_amount=Decimal("450.00"),
            ),
            RemittanceLine(
                claim_number="CLM-1003", billed_amount=Decimal("1200.00"),
                paid_amount=Decimal("1100.00"), adjustment_amount=Decimal("100.00"),
                adjustment_codes=["CO-45"],
            ),
            RemittanceLine(
                claim_number="CLM-9999", billed_amount=Decimal("200.00"),
                paid_amount=Decimal("200.00"),
            ),
        ],
    )
