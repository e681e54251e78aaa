"""Services module - Matching, reconciliation, ledger, ingestion and reporting."""

from __future__ import annotations

from hcbsrecon.services.adjustments import AdjustmentLedger
from hcbsrecon.services.matching import PaymentMatcher
from hcbsrecon.services.receivables import ReceivablesReporter
from hcbsrecon.services.reconciliation import ReconciliationService
from hcbsrecon.services.remittance import RemittanceProcessor


__all__ = [
    "AdjustmentLedger",
    "PaymentMatcher",
    "ReceivablesReporter",
    "ReconciliationService",
    "RemittanceProcessor",
]
