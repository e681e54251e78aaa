"""Storage layer for payments, claims and the adjustment ledger."""

from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.database import Database
from hcbsrecon.storage.payment_repository import PaymentRepository

__all__ = ["ClaimRepository", "Database", "PaymentRepository"]
