"""
Category classification rules for bank transactions.

Rules are matched on token boundaries against the normalized description and
canonical merchant. Higher priority wins; table order breaks ties.
"""

import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import FrozenSet, List, Optional, Tuple

NSF_TAG = "fee:nsf"
OVERDRAFT_TAG = "fee:overdraft"
INCOME_TAG = "income"
UNAVAILABLE_TAG = "classification:unavailable"

# Shared with the risk calculator so tagging and counting agree
NSF_KEYWORDS: Tuple[str, ...] = (
    "NSF",
    "NON-SUFFICIENT",
    "NON SUFFICIENT",
    "INSUFFICIENT FUNDS",
    "INSUFFICIENT FUND",
    "RETURNED ITEM",
    "RETURN ITEM",
    "RETURNED CHECK",
    "RETURNED PAYMENT",
    "UNAVAILABLE FUNDS",
    "BOUNCED CHECK",
    "REFER TO MAKER",
)


def keyword_pattern(keywords: Tuple[str, ...]) -> re.Pattern:
    """Alternation of keywords that only matches whole tokens"""
    alternation = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"(?<![A-Z0-9])(?:{alternation})(?![A-Z0-9])")


@dataclass(frozen=True)
class CategoryRule:
    """Mapping of keywords to a category and tags"""

    category: str
    keywords: Tuple[str, ...]
    tags: FrozenSet[str] = field(default_factory=frozenset)
    priority: int = 0
    credit_only: bool = False
    debit_only: bool = False

    @cached_property
    def pattern(self) -> re.Pattern:
        return keyword_pattern(self.keywords)

    def matches(self, text: str, is_credit: bool) -> bool:
        if self.credit_only and not is_credit:
            return False
        if self.debit_only and is_credit:
            return False
        return bool(self.pattern.search(text))


CATEGORY_RULES: List[CategoryRule] = [
    CategoryRule(
        category="fees",
        keywords=NSF_KEYWORDS,
        tags=frozenset({NSF_TAG}),
        priority=100,
    ),
    CategoryRule(
        category="fees",
        keywords=("OVERDRAFT", "OD FEE", "OVERDRAWN", "EXTENDED OVERDRAFT"),
        tags=frozenset({OVERDRAFT_TAG}),
        priority=95,
    ),
    CategoryRule(
        category="income",
        keywords=("PAYROLL", "SALARY", "DIRECT DEP", "DIRECT DEPOSIT", "DIR DEP", "PAYCHECK", "WAGES",
                  "ADP", "GUSTO", "PAYCHEX"),
        tags=frozenset({INCOME_TAG, "income:payroll"}),
        priority=90,
        credit_only=True,
    ),
    CategoryRule(
        category="income",
        keywords=("SSA TREAS", "SOC SEC", "SOCIAL SECURITY", "PENSION", "UNEMPLOYMENT", "STATE BENEFIT",
                  "VA BENEFIT"),
        tags=frozenset({INCOME_TAG, "income:benefits"}),
        priority=85,
        credit_only=True,
    ),
    CategoryRule(
        category="fees",
        keywords=("SERVICE FEE", "SERVICE CHARGE", "MAINTENANCE FEE", "MONTHLY FEE", "ATM FEE", "WIRE FEE",
                  "LATE FEE"),
        tags=frozenset({"fee:service"}),
        priority=80,
    ),
    CategoryRule(
        category="loans",
        keywords=("LOAN PMT", "LOAN PAYMENT", "PAYDAY", "CASH ADVANCE", "ADVANCE AMERICA", "EARNIN",
                  "DAVE INC", "BRIGIT", "MONEYLION"),
        tags=frozenset({"debt:short_term"}),
        priority=75,
    ),
    CategoryRule(
        category="refund",
        keywords=("REFUND", "CASHBACK", "REVERSAL", "CREDIT REVERSAL"),
        priority=70,
        credit_only=True,
    ),
    CategoryRule(
        category="transfer",
        keywords=("ZELLE", "VENMO", "CASH APP", "ONLINE TRANSFER", "TRANSFER FROM", "TRANSFER TO", "WIRE",
                  "XFER"),
        tags=frozenset({"transfer"}),
        priority=50,
    ),
    CategoryRule(
        category="cash",
        keywords=("ATM WITHDRAWAL", "ATM WITHDRAW", "CASH WITHDRAWAL", "ATM"),
        priority=45,
        debit_only=True,
    ),
    CategoryRule(
        category="housing",
        keywords=("RENT", "MORTGAGE", "MTG PMT", "HOA"),
        priority=40,
        debit_only=True,
    ),
    CategoryRule(
        category="utilities",
        keywords=("COMCAST", "VERIZON", "AT&T", "ELECTRIC", "WATER", "UTILITY", "SPECTRUM", "POWER"),
        priority=35,
    ),
    CategoryRule(
        category="groceries",
        keywords=("WHOLE FOODS", "TRADER JOES", "KROGER", "SAFEWAY", "COSTCO", "GROCERY", "SUPERMARKET"),
        priority=30,
    ),
    CategoryRule(
        category="dining",
        keywords=("STARBUCKS", "MCDONALDS", "CHIPOTLE", "DOORDASH", "UBER EATS", "RESTAURANT", "CAFE",
                  "PIZZA"),
        priority=30,
    ),
    CategoryRule(
        category="transportation",
        keywords=("UBER", "LYFT", "SHELL", "CHEVRON", "EXXONMOBIL", "PARKING", "TOLL", "FUEL"),
        priority=25,
    ),
    CategoryRule(
        category="entertainment",
        keywords=("NETFLIX", "SPOTIFY", "HULU", "APPLE"),
        priority=25,
    ),
    CategoryRule(
        category="healthcare",
        keywords=("CVS", "WALGREENS", "PHARMACY", "MEDICAL", "DENTAL", "CLINIC"),
        priority=25,
    ),
    CategoryRule(
        category="insurance",
        keywords=("GEICO", "INSURANCE", "ALLSTATE", "PROGRESSIVE"),
        priority=25,
    ),
    CategoryRule(
        category="shopping",
        keywords=("AMAZON", "WALMART", "TARGET", "HOME DEPOT", "EBAY"),
        priority=20,
    ),
]


def _by_priority(rules: List[CategoryRule]) -> List[CategoryRule]:
    # sorted() is stable, so equal priorities keep table order
    return sorted(rules, key=lambda r: -r.priority)


def match_rule(text: str, is_credit: bool, rules: Optional[List[CategoryRule]] = None) -> Optional[CategoryRule]:
    """First matching rule by priority, or None"""
    for rule in _by_priority(rules if rules is not None else CATEGORY_RULES):
        if rule.matches(text, is_credit):
            return rule
    return None
