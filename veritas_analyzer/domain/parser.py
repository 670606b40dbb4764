"""Statement parser - turns raw document bytes into ordered transaction candidates"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from veritas_analyzer.domain.errors import ParseError, ParseErrorKind
from veritas_analyzer.domain.layouts import (
    ACCOUNT_PATTERNS,
    BANK_PATTERNS,
    HEADER_ALIASES,
    NOISE_RX,
    PERIOD_PATTERNS,
    YEAR_RX,
    LayoutHeuristic,
    ordered_layouts,
)
from veritas_analyzer.domain.models import ParseWarning, RawTransaction, StatementMetadata
from veritas_analyzer.infrastructure.documents.pdf_text import extract_full_text
from veritas_analyzer.utils.amount_utils import parse_amount
from veritas_analyzer.utils.date_utils import DATE_START_RX, parse_date, year_for_month

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("pdf", "csv")

_MONTH_DAY_RX = re.compile(r"^(\d{1,2})/\d{1,2}$")


@dataclass
class ParseResult:
    """Result of parsing a statement document"""

    success: bool
    transactions: List[RawTransaction] = field(default_factory=list)
    metadata: StatementMetadata = field(default_factory=StatementMetadata)
    warnings: List[ParseWarning] = field(default_factory=list)
    error: Optional[ParseError] = None

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    @classmethod
    def failure(cls, kind: ParseErrorKind, message: str, warnings: Optional[List[ParseWarning]] = None) -> "ParseResult":
        warnings = list(warnings or [])
        return cls(success=False, warnings=warnings, error=ParseError(kind=kind, message=message, warnings=warnings))


class StatementParser:
    """
    Parses PDF and CSV statements into RawTransaction candidates.

    PDF text is matched line by line against the ordered layout table; the
    first layout that yields a parseable date and amount wins for a line.
    Lines that look like transactions but fail are kept as warnings, and the
    parse only fails outright when nothing at all could be extracted.
    """

    def __init__(self, text_extractor: Callable[[bytes], str] = extract_full_text):
        self.text_extractor = text_extractor

    def parse(self, content: bytes, declared_format: str, bank_hint: Optional[str] = None) -> ParseResult:
        fmt = (declared_format or "").strip().lower().lstrip(".")
        if fmt not in SUPPORTED_FORMATS:
            return ParseResult.failure(ParseErrorKind.UNSUPPORTED_FORMAT, f"Unsupported format: {declared_format!r}")

        if fmt == "pdf":
            try:
                text = self.text_extractor(content)
            except Exception as e:
                logger.warning("PDF could not be opened: %s", e)
                return ParseResult.failure(ParseErrorKind.CORRUPT_DOCUMENT, f"Unreadable PDF: {e}")
            result = self.parse_text(text, bank_hint)
        else:
            result = self.parse_csv(content, bank_hint)

        if result.success:
            logger.info(
                "Parsed statement: %d transactions, %d warnings",
                result.transaction_count,
                len(result.warnings),
                extra={"format": fmt, "bank": result.metadata.bank_name},
            )
        return result

    # Text (PDF) statements

    def parse_text(self, text: str, bank_hint: Optional[str] = None) -> ParseResult:
        if not text or not text.strip():
            return ParseResult.failure(ParseErrorKind.NO_TEXT_CONTENT, "Document contains no extractable text")

        metadata = extract_metadata(text, bank_hint)
        layouts = ordered_layouts(bank_hint or metadata.bank_name)
        fallback_year = _latest_year(text)

        transactions: List[RawTransaction] = []
        warnings: List[ParseWarning] = []
        continuing = False

        for line_number, line in enumerate(text.splitlines(), start=1):
            stripped = line.strip()
            if not stripped:
                continue

            if NOISE_RX.search(stripped):
                continuing = False
                continue

            raw = self._match_line(stripped, line_number, layouts, metadata, fallback_year)
            if raw is not None:
                transactions.append(raw)
                continuing = True
                continue

            if DATE_START_RX.match(stripped):
                warnings.append(ParseWarning(line_number, stripped, "no layout yielded a valid date and amount"))
                continuing = False
                continue

            if continuing:
                last = transactions[-1]
                transactions[-1] = replace(last, description=f"{last.description} {stripped}")

        if not transactions:
            return ParseResult.failure(
                ParseErrorKind.NO_TRANSACTIONS_FOUND, "No transactions found in document", warnings
            )

        return ParseResult(success=True, transactions=transactions, metadata=metadata, warnings=warnings)

    def _match_line(
        self,
        line: str,
        line_number: int,
        layouts: List[LayoutHeuristic],
        metadata: StatementMetadata,
        fallback_year: Optional[int],
    ) -> Optional[RawTransaction]:
        for layout in layouts:
            match = layout.pattern.match(line)
            if not match:
                continue

            date_text = match.group("date")
            year_hint = None
            month_day = _MONTH_DAY_RX.match(date_text)
            if month_day:
                year_hint = year_for_month(int(month_day.group(1)), metadata.period_start, metadata.period_end)
                year_hint = year_hint or fallback_year

            balance_text = match.groupdict().get("balance")
            if parse_date(date_text, year_hint) is None or parse_amount(match.group("amount")) is None:
                continue
            if balance_text is not None and parse_amount(balance_text) is None:
                continue

            return RawTransaction(
                line_number=line_number,
                date_text=date_text,
                description=match.group("description").strip(),
                amount_text=match.group("amount"),
                balance_text=balance_text,
                year_hint=year_hint,
                layout=layout.name,
            )
        return None

    # CSV statements

    def parse_csv(self, content: bytes, bank_hint: Optional[str] = None) -> ParseResult:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            return ParseResult.failure(ParseErrorKind.CORRUPT_DOCUMENT, f"CSV is not valid UTF-8: {e}")

        if not text.strip():
            return ParseResult.failure(ParseErrorKind.NO_TEXT_CONTENT, "CSV document is empty")

        # Preamble lines and descriptions with stray commas make rows ragged,
        # so every row is read at the widest width and judged on its own.
        try:
            width = max((len(row) for row in csv.reader(io.StringIO(text), skipinitialspace=True)), default=0)
            frame = pd.read_csv(
                io.StringIO(text),
                dtype=str,
                header=None,
                names=list(range(width or 1)),
                engine="python",
                keep_default_na=False,
                skip_blank_lines=True,
                skipinitialspace=True,
            )
        except pd.errors.EmptyDataError:
            return ParseResult.failure(ParseErrorKind.NO_TEXT_CONTENT, "CSV document is empty")
        except (pd.errors.ParserError, csv.Error) as e:
            return ParseResult.failure(ParseErrorKind.CORRUPT_DOCUMENT, f"Malformed CSV: {e}")

        rows = [[str(cell).strip() for cell in row] for row in frame.fillna("").values.tolist()]
        header_index, columns = detect_columns(rows)
        start = header_index + 1 if header_index is not None else 0

        transactions: List[RawTransaction] = []
        warnings: List[ParseWarning] = []

        for index in range(start, len(rows)):
            row = rows[index]
            line_number = index + 1
            if not any(row):
                continue
            raw = _raw_from_row(row, columns, line_number)
            if raw is None:
                line = ",".join(row).rstrip(",")
                warnings.append(ParseWarning(line_number, line, "row has no valid date and amount"))
                continue
            transactions.append(raw)

        if not transactions:
            return ParseResult.failure(
                ParseErrorKind.NO_TRANSACTIONS_FOUND, "No transactions found in CSV", warnings
            )

        metadata = StatementMetadata(bank_name=bank_hint or "Unknown Bank")
        return ParseResult(success=True, transactions=transactions, metadata=metadata, warnings=warnings)


def detect_columns(rows: List[List[str]], scan_rows: int = 10) -> Tuple[Optional[int], Dict[str, int]]:
    """
    Find the header row and map logical columns to positions.

    Falls back to the positional layout ``date, description, amount[, balance]``
    when no row within ``scan_rows`` looks like a header.
    """
    for index, row in enumerate(rows[:scan_rows]):
        columns: Dict[str, int] = {}
        for position, cell in enumerate(row):
            label = cell.strip().lower()
            for name, aliases in HEADER_ALIASES.items():
                if label in aliases and name not in columns:
                    columns[name] = position
        if "date" in columns and ({"amount", "debit", "credit"} & columns.keys()):
            return index, columns

    width = max((len(row) for row in rows), default=0)
    columns = {"date": 0, "description": 1, "amount": 2}
    if width > 3:
        columns["balance"] = 3
    return None, columns


def _cell(row: List[str], columns: Dict[str, int], name: str) -> str:
    position = columns.get(name)
    if position is None or position >= len(row):
        return ""
    return row[position]


def _raw_from_row(row: List[str], columns: Dict[str, int], line_number: int) -> Optional[RawTransaction]:
    date_text = _cell(row, columns, "date")
    if parse_date(date_text) is None:
        return None

    amount_text = _cell(row, columns, "amount")
    amount_column = "amount"
    if not amount_text:
        for column in ("debit", "credit"):
            candidate = _cell(row, columns, column)
            if candidate and parse_amount(candidate):
                amount_text, amount_column = candidate, column
                break

    if parse_amount(amount_text) is None:
        return None

    balance_text = _cell(row, columns, "balance") or None
    if balance_text is not None and parse_amount(balance_text) is None:
        balance_text = None

    return RawTransaction(
        line_number=line_number,
        date_text=date_text,
        description=_cell(row, columns, "description"),
        amount_text=amount_text,
        balance_text=balance_text,
        amount_column=amount_column,
        layout="csv",
    )


def extract_metadata(text: str, bank_hint: Optional[str] = None) -> StatementMetadata:
    """Detect bank name, masked account number and statement period from header text"""
    bank_name = bank_hint
    if not bank_name:
        bank_name = next((name for name, pattern in BANK_PATTERNS if pattern.search(text)), "Unknown Bank")

    account_mask = None
    for pattern in ACCOUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            digits = re.sub(r"\D", "", match.group(1))
            if len(digits) >= 4:
                account_mask = f"****{digits[-4:]}"
                break

    period_start = period_end = None
    for pattern in PERIOD_PATTERNS:
        match = pattern.search(text)
        if match:
            period_start, period_end = parse_date(match.group(1)), parse_date(match.group(2))
            if period_start and period_end:
                break
            period_start = period_end = None

    return StatementMetadata(
        bank_name=bank_name,
        account_mask=account_mask,
        period_start=period_start,
        period_end=period_end,
    )


def _latest_year(text: str) -> Optional[int]:
    years = [int(y) for y in YEAR_RX.findall(text)]
    return max(years) if years else None
