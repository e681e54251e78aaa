"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from hcbsrecon.config.settings import Settings
from hcbsrecon.core.models import Claim, ClaimPayment, Payer, Payment
from hcbsrecon.core.types import ClaimStatus, PaymentMethod
from hcbsrecon.orchestrator.workflow import PaymentWorkflow
from hcbsrecon.services.adjustments import AdjustmentLedger
from hcbsrecon.services.matching import PaymentMatcher
from hcbsrecon.services.receivables import ReceivablesReporter
from hcbsrecon.services.reconciliation import ReconciliationService
from hcbsrecon.services.remittance import RemittanceProcessor
from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.database import Database
from hcbsrecon.storage.payment_repository import PaymentRepository


if TYPE_CHECKING:
    from pathlib import Path


class Seeder:
    """Writes payers, claims and payments straight through the repositories."""

    def __init__(self, database: Database) -> None:
        self.database = database
        self.claims = ClaimRepository()
        self.payments = PaymentRepository()

    def payer(self, payer_id: str = "medicaid", name: str = "State Medicaid") -> Payer:
        with self.database.transaction() as conn:
            return self.claims.save_payer(conn, Payer(id=payer_id, name=name))

    def claim(
        self,
        claim_id: str,
        amount: str = "1000.00",
        status: ClaimStatus = ClaimStatus.SUBMITTED,
        payer_id: str = "medicaid",
        program_id: str | None = "personal-care",
        service_date: date = date(2026, 3, 1),
        submission_date: date | None = date(2026, 3, 5),
    ) -> Claim:
        claim = Claim(
            id=claim_id,
            claim_number=claim_id.upper(),
            payer_id=payer_id,
            program_id=program_id,
            client_name=f"Client {claim_id}",
            service_start_date=service_date,
            submission_date=submission_date,
            total_amount=Decimal(amount),
            claim_status=status,
        )
        with self.database.transaction() as conn:
            return self.claims.save(conn, claim)

    def payment(
        self,
        payment_id: str,
        amount: str = "1000.00",
        payer_id: str = "medicaid",
        payment_date: date = date(2026, 3, 20),
        method: PaymentMethod = PaymentMethod.EFT,
    ) -> Payment:
        with self.database.transaction() as conn:
            return self.payments.create(conn, Payment(
                id=payment_id,
                payer_id=payer_id,
                payment_date=payment_date,
                payment_amount=Decimal(amount),
                payment_method=method,
                reference_number=f"REF-{payment_id}",
            ))

    def claim_payment(self, cp_id: str, payment_id: str, claim_id: str, amount: str) -> ClaimPayment:
        with self.database.transaction() as conn:
            return self.payments.add_claim_payment(conn, ClaimPayment(
                id=cp_id, payment_id=payment_id, claim_id=claim_id, paid_amount=Decimal(amount),
            ))

    def count(self, table: str, live_only: bool = True) -> int:
        where = " WHERE deleted_at IS NULL" if live_only else ""
        with self.database.connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}{where}").fetchone()[0]

    def claim_status(self, claim_id: str) -> ClaimStatus:
        with self.database.connection() as conn:
            return self.claims.get(conn, claim_id).claim_status

    def get_payment(self, payment_id: str) -> Payment:
        with self.database.connection() as conn:
            return self.payments.get(conn, payment_id)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Default settings pointed at a throwaway database."""
    settings = Settings()
    settings.database.path = str(tmp_path / "recon.db")
    return settings


@pytest.fixture
def database(settings: Settings) -> Database:
    return Database(settings.database.path)


@pytest.fixture
def seed(database: Database) -> Seeder:
    """Seeder with the default payer already present."""
    seeder = Seeder(database)
    seeder.payer()
    return seeder


@pytest.fixture
def matcher(database: Database, settings: Settings) -> PaymentMatcher:
    return PaymentMatcher(database, settings)


@pytest.fixture
def ledger(database: Database) -> AdjustmentLedger:
    return AdjustmentLedger(database)


@pytest.fixture
def reconciliation(database: Database, settings: Settings) -> ReconciliationService:
    return ReconciliationService(database, settings)


@pytest.fixture
def remittance(database: Database, settings: Settings) -> RemittanceProcessor:
    return RemittanceProcessor(database, settings)


@pytest.fixture
def receivables(database: Database, settings: Settings) -> ReceivablesReporter:
    return ReceivablesReporter(database, settings)


@pytest.fixture
def workflow(database: Database, settings: Settings) -> PaymentWorkflow:
    return PaymentWorkflow(settings, database)
