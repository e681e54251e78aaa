"""Remittance file ingestion.

Turns a remittance advice into a Payment, its RemittanceInfo and one
RemittanceDetail per claim line, all in one transaction.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hcbsrecon.config.settings import Settings
from hcbsrecon.core.errors import FieldError, IntegrationError, NotFoundError, ValidationError
from hcbsrecon.core.models import (
    ZERO,
    Payment,
    ReconciliationEvent,
    RemittanceDetail,
    RemittanceInfo,
    RemittanceProcessingResult,
)
from hcbsrecon.core.types import (
    PaymentMethod,
    ReconciliationAction,
    ReconciliationStatus,
    RemittanceFileType,
)
from hcbsrecon.core.utils import new_id
from hcbsrecon.services.adjustments import INVALID_FORMAT, MISSING_REQUIRED_FIELD
from hcbsrecon.storage.claim_repository import ClaimRepository
from hcbsrecon.storage.payment_repository import PaymentRepository
from hcbsrecon.tools.parser import CompositeRemittanceParser


if TYPE_CHECKING:
    import sqlite3

    from hcbsrecon.core.models import Claim, ParsedRemittance, RemittanceImport, RemittanceLine
    from hcbsrecon.storage.database import Database
    from hcbsrecon.tools.parser import RemittanceParser

logger = logging.getLogger(__name__)

# BPR04 payment method codes plus plain names
PAYMENT_METHOD_CODES: dict[str, PaymentMethod] = {
    "ACH": PaymentMethod.EFT,
    "FWT": PaymentMethod.EFT,
    "EFT": PaymentMethod.EFT,
    "CHK": PaymentMethod.CHECK,
    "CHECK": PaymentMethod.CHECK,
    "BOP": PaymentMethod.OTHER,
    "NON": PaymentMethod.OTHER,
    "CREDIT_CARD": PaymentMethod.CREDIT_CARD,
    "CASH": PaymentMethod.CASH,
    "OTHER": PaymentMethod.OTHER,
}


def map_payment_method(value: str | None) -> PaymentMethod:
    """Payment method for a remittance header value. Unknown or empty means EFT."""
    if not value:
        return PaymentMethod.EFT
    return PAYMENT_METHOD_CODES.get(value.strip().upper(), PaymentMethod.EFT)


def remittance_status(details_processed: int, claims_matched: int) -> ReconciliationStatus:
    """Status of a freshly imported payment from how many lines found a claim."""
    if details_processed == 0 or claims_matched == 0:
        return ReconciliationStatus.UNRECONCILED
    if claims_matched == details_processed:
        return ReconciliationStatus.RECONCILED
    return ReconciliationStatus.PARTIALLY_RECONCILED


class RemittanceProcessor:
    """Imports remittance files as payments."""

    def __init__(
        self,
        database: Database,
        settings: Settings | None = None,
        parser: RemittanceParser | None = None,
        payments: PaymentRepository | None = None,
        claims: ClaimRepository | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._db = database
        self._parser = parser or CompositeRemittanceParser()
        self._payments = payments or PaymentRepository()
        self._claims = claims or ClaimRepository()

    def _validate(self, import_data: RemittanceImport) -> RemittanceFileType:
        errors: list[FieldError] = []
        if not import_data.payer_id:
            errors.append(FieldError(
                field="payer_id", code=MISSING_REQUIRED_FIELD, message="Payer is required",
            ))
        if not import_data.file_content:
            errors.append(FieldError(
                field="file_content", code=MISSING_REQUIRED_FIELD, message="File content is required",
            ))
        file_type = None
        if not import_data.file_type:
            errors.append(FieldError(
                field="file_type", code=MISSING_REQUIRED_FIELD, message="File type is required",
            ))
        else:
            try:
                file_type = RemittanceFileType(import_data.file_type)
            except ValueError:
                errors.append(FieldError(
                    field="file_type", code=INVALID_FORMAT,
                    message=f"Unsupported file type: {import_data.file_type}",
                ))
        if errors:
            raise ValidationError("Invalid remittance import", errors)
        return file_type

    def _parse(self, content: bytes, file_type: RemittanceFileType) -> ParsedRemittance:
        if not self._parser.supports(file_type):
            raise IntegrationError(
                f"No parser available for {file_type.value} remittances",
                service="remittance-parser", operation="parse",
            )
        try:
            return self._parser.parse(content, file_type)
        except Exception as e:
            raise IntegrationError(
                f"Failed to parse {file_type.value} remittance: {e}",
                service="remittance-parser", operation="parse",
            ) from e

    def match_remittance_detail_to_claim(
        self, conn: sqlite3.Connection, line: RemittanceLine
    ) -> Claim | None:
        """Exact claim-number lookup; no fuzzy fallback."""
        return self._claims.find_by_claim_number(conn, line.claim_number.strip())

    async def process_remittance_file(
        self, import_data: RemittanceImport, tx: sqlite3.Connection | None = None
    ) -> RemittanceProcessingResult:
        """Import a remittance. Any failure leaves no trace in the database."""
        file_type = self._validate(import_data)
        parsed = self._parse(import_data.file_content, file_type)
        header = parsed.header
        user_id = import_data.user_id
        try:
            with self._db.scope(tx) as conn:
                if self._claims.find_payer(conn, import_data.payer_id) is None:
                    raise NotFoundError("payer", import_data.payer_id)

                method = map_payment_method(header.payment_method)
                payment = self._payments.create(conn, Payment(
                    id=new_id(),
                    payer_id=import_data.payer_id,
                    payment_date=header.payment_date,
                    payment_amount=header.payment_amount,
                    payment_method=method,
                    reference_number=header.reference_number,
                    check_number=(
                        header.check_number or header.reference_number
                        if method == PaymentMethod.CHECK else None
                    ),
                    created_by=user_id,
                ))
                info = self._payments.save_remittance_info(conn, RemittanceInfo(
                    id=new_id(),
                    payment_id=payment.id,
                    remittance_number=header.remittance_number,
                    payer_identifier=header.payer_identifier,
                    file_type=file_type,
                    file_name=import_data.file_name,
                ), user_id)
                self._payments.set_remittance_id(conn, payment.id, info.id)

                matched, matched_amount, unmatched_numbers = 0, ZERO, []
                for line in parsed.details:
                    claim = self.match_remittance_detail_to_claim(conn, line)
                    self._payments.save_remittance_detail(conn, RemittanceDetail(
                        id=new_id(),
                        remittance_id=info.id,
                        claim_id=claim.id if claim else None,
                        claim_number=line.claim_number,
                        service_date=line.service_date,
                        billed_amount=line.billed_amount,
                        paid_amount=line.paid_amount,
                        adjustment_amount=line.adjustment_amount,
                        adjustment_codes=line.adjustment_codes,
                    ))
                    if claim:
                        matched += 1
                        matched_amount += line.paid_amount
                    else:
                        unmatched_numbers.append(line.claim_number)

                processed = len(parsed.details)
                status = remittance_status(processed, matched)
                self._payments.update_remittance_counts(conn, info.id, processed, matched)
                version = self._payments.update_reconciliation_status(
                    conn, payment.id, status, payment.version, user_id
                )
                self._payments.add_event(conn, ReconciliationEvent(
                    payment_id=payment.id,
                    action=ReconciliationAction.IMPORT,
                    previous_status=ReconciliationStatus.UNRECONCILED,
                    new_status=status,
                    user_id=user_id,
                    details={"remittance_id": info.id, "matched": matched, "lines": processed},
                ))
        except Exception as e:
            logger.error("Remittance import failed for payer %s: %s", import_data.payer_id, e)
            raise

        logger.info(
            "Imported remittance %s: %d/%d lines matched, status %s",
            info.remittance_number or info.id, matched, processed, status.value,
        )
        return RemittanceProcessingResult(
            payment=payment.model_copy(update={
                "remittance_id": info.id, "reconciliation_status": status, "version": version,
            }),
            remittance_info=info.model_copy(update={
                "total_details": processed, "matched_details": matched,
            }),
            details_processed=processed,
            claims_matched=matched,
            matched_amount=matched_amount,
            unmatched_amount=header.payment_amount - matched_amount,
            unmatched_claim_numbers=unmatched_numbers,
        )
