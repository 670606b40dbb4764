"""Statement layout heuristics and header detection patterns"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from veritas_analyzer.utils.amount_utils import AMOUNT_TOKEN
from veritas_analyzer.utils.date_utils import DATE_TOKEN


@dataclass(frozen=True)
class LayoutHeuristic:
    """
    One way a statement line can encode a transaction.

    Patterns expose named groups ``date``, ``description``, ``amount`` and
    optionally ``balance``. ``banks`` lists lower-cased bank names the layout
    belongs to; an empty tuple marks a generic layout.
    """

    name: str
    pattern: re.Pattern
    banks: Tuple[str, ...] = ()

    @property
    def is_generic(self) -> bool:
        return not self.banks


LAYOUTS: List[LayoutHeuristic] = [
    # Chase: MM/DD Description Amount Balance
    LayoutHeuristic(
        name="chase",
        banks=("chase",),
        pattern=re.compile(
            rf"^(?P<date>\d{{2}}/\d{{2}})\s+(?P<description>.+?)\s+"
            rf"(?P<amount>{AMOUNT_TOKEN})\s+(?P<balance>{AMOUNT_TOKEN})$",
            re.IGNORECASE,
        ),
    ),
    # Bank of America: MM/DD/YY Description Amount
    LayoutHeuristic(
        name="bank_of_america",
        banks=("bank of america",),
        pattern=re.compile(
            rf"^(?P<date>\d{{2}}/\d{{2}}/\d{{2}})\s+(?P<description>.+?)\s+(?P<amount>{AMOUNT_TOKEN})$",
            re.IGNORECASE,
        ),
    ),
    # Wells Fargo: M/D Description Amount [Ending daily balance]
    LayoutHeuristic(
        name="wells_fargo",
        banks=("wells fargo",),
        pattern=re.compile(
            rf"^(?P<date>\d{{1,2}}/\d{{1,2}})\s+(?P<description>.+?)\s+"
            rf"(?P<amount>{AMOUNT_TOKEN})(?:\s+(?P<balance>{AMOUNT_TOKEN}))?$",
            re.IGNORECASE,
        ),
    ),
    # Generic: any supported date, description, amount, optional running balance
    LayoutHeuristic(
        name="generic",
        pattern=re.compile(
            rf"^(?P<date>{DATE_TOKEN})\s+(?P<description>.+?)\s+"
            rf"(?P<amount>{AMOUNT_TOKEN})(?:\s+(?P<balance>{AMOUNT_TOKEN}))?$",
            re.IGNORECASE,
        ),
    ),
]


def ordered_layouts(bank: Optional[str]) -> List[LayoutHeuristic]:
    """Layouts for the hinted bank first, then other bank layouts, generic last"""
    hint = (bank or "").strip().lower()

    def matches_hint(layout: LayoutHeuristic) -> bool:
        return bool(hint) and any(b in hint or hint in b for b in layout.banks)

    preferred = [layout for layout in LAYOUTS if not layout.is_generic and matches_hint(layout)]
    others = [layout for layout in LAYOUTS if not layout.is_generic and not matches_hint(layout)]
    generic = [layout for layout in LAYOUTS if layout.is_generic]
    return preferred + others + generic


# Lines that end a multi-line description and are never transactions
NOISE_RX = re.compile(
    r"^page\s+\d+"
    r"|^continued"
    r"|\b(?:beginning|ending|opening|closing)\s+balance\b"
    r"|\bbalance\s+(?:forward|brought forward|carried forward)\b"
    r"|^total\b"
    r"|\bdaily\s+(?:ending\s+)?balance\b"
    r"|^date\s+(?:description|transaction|posted)"
    r"|\bstatement\s+period\b"
    r"|^account\s+(?:number|summary)\b",
    re.IGNORECASE,
)

BANK_PATTERNS = [
    ("Bank of America", re.compile(r"bank\s*of\s*america", re.IGNORECASE)),
    ("Chase", re.compile(r"chase\s*bank|jpmorgan\s*chase|\bchase\b", re.IGNORECASE)),
    ("Wells Fargo", re.compile(r"wells\s*fargo", re.IGNORECASE)),
    ("Citibank", re.compile(r"citibank|citi\s*bank", re.IGNORECASE)),
    ("US Bank", re.compile(r"\bus\s*bank\b|u\.s\.\s*bank", re.IGNORECASE)),
    ("PNC Bank", re.compile(r"pnc\s*bank", re.IGNORECASE)),
    ("Capital One", re.compile(r"capital\s*one", re.IGNORECASE)),
    ("TD Bank", re.compile(r"\btd\s*bank\b", re.IGNORECASE)),
    ("Truist", re.compile(r"bb&t|truist", re.IGNORECASE)),
]

ACCOUNT_PATTERNS = [
    re.compile(r"account\s*(?:number|#|no\.?)[\s:]*([0-9Xx*\- ]{4,})", re.IGNORECASE),
    re.compile(r"account\s*ending\s*in[\s:]*([0-9]{4})", re.IGNORECASE),
    re.compile(r"\*{4,}([0-9]{4})"),
]

_PERIOD_DATE = r"(\d{1,2}/\d{1,2}/\d{2,4}|[A-Za-z]{3,9}\.?\s*\d{1,2},?\s*\d{4}|\d{4}-\d{2}-\d{2})"

PERIOD_PATTERNS = [
    re.compile(rf"statement\s*period[\s:]*{_PERIOD_DATE}\s*(?:to|through|-)\s*{_PERIOD_DATE}", re.IGNORECASE),
    re.compile(rf"from\s*{_PERIOD_DATE}\s*(?:to|through)\s*{_PERIOD_DATE}", re.IGNORECASE),
    re.compile(rf"{_PERIOD_DATE}\s*(?:to|through)\s*{_PERIOD_DATE}", re.IGNORECASE),
]

YEAR_RX = re.compile(r"\b(19\d{2}|20\d{2})\b")

# CSV header aliases, matched after lower-casing and trimming
HEADER_ALIASES = {
    "date": {"date", "transaction date", "posting date", "posted date", "trans date", "value date", "post date"},
    "description": {"description", "details", "memo", "narrative", "payee", "transaction description", "name"},
    "amount": {"amount", "transaction amount", "amt"},
    "debit": {"debit", "debits", "withdrawal", "withdrawals", "money out", "debit amount", "withdrawal amount"},
    "credit": {"credit", "credits", "deposit", "deposits", "money in", "credit amount", "deposit amount"},
    "balance": {"balance", "running balance", "ledger balance", "available balance"},
}
