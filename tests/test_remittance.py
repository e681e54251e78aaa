"""Tests for remittance parsing and ingestion."""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from typing import ClassVar

import pytest

from hcbsrecon.core.errors import IntegrationError, NotFoundError, ValidationError
from hcbsrecon.core.models import (
    ParsedRemittance,
    RemittanceHeader,
    RemittanceImport,
    RemittanceLine,
)
from hcbsrecon.core.types import (
    PaymentMethod,
    ReconciliationAction,
    ReconciliationStatus,
    RemittanceFileType,
)
from hcbsrecon.services.adjustments import INVALID_FORMAT, MISSING_REQUIRED_FIELD
from hcbsrecon.services.reconciliation import ReconciliationService
from hcbsrecon.services.remittance import (
    RemittanceProcessor,
    map_payment_method,
    remittance_status,
)
from hcbsrecon.tools.parser import (
    CompositeRemittanceParser,
    JSONRemittanceParser,
    RemittanceParseError,
    RemittanceParser,
    dump_remittance,
)


def _make_remittance(
    *claim_numbers: str, amount: str = "1000.00", method: str | None = "ACH"
) -> ParsedRemittance:
    return ParsedRemittance(
        header=RemittanceHeader(
            payment_date=date(2026, 3, 25),
            payment_amount=Decimal(amount),
            payment_method=method,
            reference_number="TRN-1",
            remittance_number="RA-1",
            payer_identifier="SMCD01",
        ),
        details=[
            RemittanceLine(
                claim_number=number, billed_amount=Decimal("500.00"),
                paid_amount=Decimal("450.00"), adjustment_amount=Decimal("50.00"),
                adjustment_codes=["CO-45"],
            )
            for number in claim_numbers
        ],
    )


def _make_import(remittance: ParsedRemittance, payer_id: str = "medicaid") -> RemittanceImport:
    return RemittanceImport(
        payer_id=payer_id,
        file_content=dump_remittance(remittance),
        file_type="custom",
        file_name="ra.json",
        user_id="importer",
    )


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("ACH", PaymentMethod.EFT),
            ("chk", PaymentMethod.CHECK),
            (" check ", PaymentMethod.CHECK),
            ("NON", PaymentMethod.OTHER),
            ("cash", PaymentMethod.CASH),
            ("wire", PaymentMethod.EFT),
            (None, PaymentMethod.EFT),
        ],
    )
    def test_map_payment_method(self, value: str | None, expected: PaymentMethod) -> None:
        assert map_payment_method(value) == expected

    def test_remittance_status(self) -> None:
        assert remittance_status(0, 0) == ReconciliationStatus.UNRECONCILED
        assert remittance_status(3, 0) == ReconciliationStatus.UNRECONCILED
        assert remittance_status(3, 2) == ReconciliationStatus.PARTIALLY_RECONCILED
        assert remittance_status(3, 3) == ReconciliationStatus.RECONCILED


class TestParsers:
    def test_json_parser_reads_dumped_remittance(self) -> None:
        remittance = _make_remittance("CLM-1")
        parsed = JSONRemittanceParser().parse(
            dump_remittance(remittance).encode(), RemittanceFileType.CUSTOM
        )
        assert parsed == remittance

    def test_json_parser_rejects_bad_content(self) -> None:
        with pytest.raises(RemittanceParseError):
            JSONRemittanceParser().parse(b"{not json", RemittanceFileType.CUSTOM)

    def test_json_parser_rejects_missing_header(self) -> None:
        with pytest.raises(RemittanceParseError):
            JSONRemittanceParser().parse(json.dumps({"details": []}).encode(), RemittanceFileType.CUSTOM)

    def test_composite_dispatches_by_file_type(self) -> None:
        class CSVStub(RemittanceParser):
            name = "csv-stub"
            file_types: ClassVar[tuple[RemittanceFileType, ...]] = (RemittanceFileType.CSV,)

            def parse(self, content: bytes, file_type: RemittanceFileType) -> ParsedRemittance:
                return _make_remittance("FROM-CSV")

        parser = CompositeRemittanceParser()
        assert not parser.supports(RemittanceFileType.CSV)
        parser.register(CSVStub())

        assert parser.supports(RemittanceFileType.CSV)
        assert parser.parse(b"", RemittanceFileType.CSV).details[0].claim_number == "FROM-CSV"

    def test_composite_without_parser(self) -> None:
        with pytest.raises(RemittanceParseError):
            CompositeRemittanceParser([]).parse(b"", RemittanceFileType.PDF)


class TestProcessRemittance:
    """Importing a remittance as a payment."""

    @pytest.mark.asyncio
    async def test_partial_match(self, seed, remittance: RemittanceProcessor) -> None:
        seed.claim("clm-1")
        seed.claim("clm-2")

        result = await remittance.process_remittance_file(
            _make_import(_make_remittance("CLM-1", "CLM-2", "CLM-404", amount="1350.00"))
        )

        assert result.details_processed == 3
        assert result.claims_matched == 2
        assert result.matched_amount == Decimal("900.00")
        assert result.unmatched_amount == Decimal("450.00")
        assert result.unmatched_claim_numbers == ["CLM-404"]
        assert result.payment.reconciliation_status == ReconciliationStatus.PARTIALLY_RECONCILED
        assert result.payment.payment_method == PaymentMethod.EFT
        assert result.payment.check_number is None
        assert result.remittance_info.matched_details == 2

        stored = seed.get_payment(result.payment.id)
        assert stored.remittance_id == result.remittance_info.id
        assert stored.reconciliation_status == ReconciliationStatus.PARTIALLY_RECONCILED
        assert stored.created_by == "importer"

    @pytest.mark.asyncio
    async def test_details_are_stored(
        self, seed, remittance: RemittanceProcessor, reconciliation: ReconciliationService
    ) -> None:
        seed.claim("clm-1")

        result = await remittance.process_remittance_file(
            _make_import(_make_remittance("CLM-1", "CLM-404"))
        )

        details = await reconciliation.get_reconciliation_details(result.payment.id)
        assert details.remittance is not None
        assert details.remittance.remittance_number == "RA-1"
        assert details.remittance.file_type == RemittanceFileType.CUSTOM
        assert [(d.claim_number, d.claim_id) for d in details.remittance_details] == [
            ("CLM-1", "clm-1"),
            ("CLM-404", None),
        ]
        assert details.remittance_details[0].adjustment_codes == ["CO-45"]
        history = await reconciliation.get_reconciliation_history(result.payment.id)
        assert [e.action for e in history] == [ReconciliationAction.IMPORT]

    @pytest.mark.asyncio
    async def test_all_lines_matched(self, seed, remittance: RemittanceProcessor) -> None:
        seed.claim("clm-1")

        result = await remittance.process_remittance_file(_make_import(_make_remittance("CLM-1")))

        assert result.payment.reconciliation_status == ReconciliationStatus.RECONCILED

    @pytest.mark.asyncio
    async def test_no_lines(self, seed, remittance: RemittanceProcessor) -> None:
        result = await remittance.process_remittance_file(_make_import(_make_remittance()))

        assert result.details_processed == 0
        assert result.payment.reconciliation_status == ReconciliationStatus.UNRECONCILED
        assert result.unmatched_amount == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_check_payment_keeps_check_number(self, seed, remittance: RemittanceProcessor) -> None:
        result = await remittance.process_remittance_file(
            _make_import(_make_remittance(method="CHK"))
        )

        assert result.payment.payment_method == PaymentMethod.CHECK
        assert result.payment.check_number == "TRN-1"

    @pytest.mark.asyncio
    async def test_collects_validation_errors(self, seed, remittance: RemittanceProcessor) -> None:
        with pytest.raises(ValidationError) as exc:
            await remittance.process_remittance_file(RemittanceImport())

        assert {(e.field, e.code) for e in exc.value.errors} == {
            ("payer_id", MISSING_REQUIRED_FIELD),
            ("file_content", MISSING_REQUIRED_FIELD),
            ("file_type", MISSING_REQUIRED_FIELD),
        }

    @pytest.mark.asyncio
    async def test_unknown_file_type(self, seed, remittance: RemittanceProcessor) -> None:
        data = _make_import(_make_remittance()).model_copy(update={"file_type": "xml"})

        with pytest.raises(ValidationError) as exc:
            await remittance.process_remittance_file(data)

        assert [(e.field, e.code) for e in exc.value.errors] == [("file_type", INVALID_FORMAT)]

    @pytest.mark.asyncio
    async def test_format_without_parser(self, seed, remittance: RemittanceProcessor) -> None:
        data = _make_import(_make_remittance()).model_copy(update={"file_type": "edi_835"})

        with pytest.raises(IntegrationError) as exc:
            await remittance.process_remittance_file(data)

        assert exc.value.service == "remittance-parser"
        assert seed.count("payments") == 0

    @pytest.mark.asyncio
    async def test_unparseable_file_writes_nothing(self, seed, remittance: RemittanceProcessor) -> None:
        data = RemittanceImport(payer_id="medicaid", file_content="garbage", file_type="custom")

        with pytest.raises(IntegrationError) as exc:
            await remittance.process_remittance_file(data)

        assert exc.value.operation == "parse"
        assert seed.count("payments", live_only=False) == 0
        assert seed.count("remittance_info", live_only=False) == 0

    @pytest.mark.asyncio
    async def test_unknown_payer_writes_nothing(self, seed, remittance: RemittanceProcessor) -> None:
        with pytest.raises(NotFoundError) as exc:
            await remittance.process_remittance_file(
                _make_import(_make_remittance("CLM-1"), payer_id="nobody")
            )

        assert exc.value.code == "payer.notFound"
        assert seed.count("payments", live_only=False) == 0
