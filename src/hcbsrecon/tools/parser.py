"""Remittance file parsers."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import ClassVar

from pydantic import ValidationError as PydanticValidationError

from hcbsrecon.core.models import ParsedRemittance
from hcbsrecon.core.types import RemittanceFileType


logger = logging.getLogger(__name__)


class RemittanceParseError(Exception):
    """Raised when a file cannot be turned into a ParsedRemittance."""


class RemittanceParser(ABC):
    """Base class for remittance parsers.

    A parser turns the raw bytes of one remittance file into a header plus
    claim lines. Parsers hold no state between calls.
    """

    name: ClassVar[str]
    file_types: ClassVar[tuple[RemittanceFileType, ...]]

    def supports(self, file_type: RemittanceFileType) -> bool:
        return file_type in self.file_types

    @abstractmethod
    def parse(self, content: bytes, file_type: RemittanceFileType) -> ParsedRemittance:
        """Parse file content.

        Args:
            content: Raw file bytes.
            file_type: Declared format of the file.

        Returns:
            Parsed header and claim lines.

        Raises:
            RemittanceParseError: If the content is not a valid remittance.
        """


class JSONRemittanceParser(RemittanceParser):
    """Parser for remittances already shaped as ``{"header": ..., "details": [...]}``."""

    name = "json"
    file_types = (RemittanceFileType.CUSTOM,)

    def parse(self, content: bytes, file_type: RemittanceFileType) -> ParsedRemittance:
        try:
            parsed = ParsedRemittance.model_validate_json(content)
        except PydanticValidationError as e:
            raise RemittanceParseError(f"Invalid remittance JSON: {e.error_count()} errors") from e
        logger.debug(
            "Parsed %s remittance with %d lines", file_type.value, len(parsed.details)
        )
        return parsed


class CompositeRemittanceParser(RemittanceParser):
    """Dispatches to the first registered parser supporting the file type."""

    name = "composite"
    file_types = ()

    def __init__(self, parsers: list[RemittanceParser] | None = None) -> None:
        self._parsers = parsers if parsers is not None else [JSONRemittanceParser()]

    def register(self, parser: RemittanceParser) -> None:
        self._parsers.append(parser)

    def supports(self, file_type: RemittanceFileType) -> bool:
        return any(p.supports(file_type) for p in self._parsers)

    def parse(self, content: bytes, file_type: RemittanceFileType) -> ParsedRemittance:
        for parser in self._parsers:
            if parser.supports(file_type):
                return parser.parse(content, file_type)
        raise RemittanceParseError(f"No parser registered for {file_type.value} files")


def dump_remittance(remittance: ParsedRemittance) -> str:
    """Serialize a remittance in the format JSONRemittanceParser reads."""
    return json.dumps(remittance.model_dump(mode="json"), indent=2)
