"""Risk metrics calculator - NSF events, overdrafts, cash flow and balances"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Sequence

from veritas_analyzer.domain.category_rules import NSF_KEYWORDS, NSF_TAG, keyword_pattern
from veritas_analyzer.domain.models import BusinessActivity, RiskMetrics, Transaction
from veritas_analyzer.utils.date_utils import generate_date_range

NSF_RX = keyword_pattern(NSF_KEYWORDS)

# Payment processors and supplier payments that mark a self-employed account
BUSINESS_KEYWORDS = ("PAYPAL", "SQUARE", "STRIPE", "SHOPIFY", "VENDOR", "INVENTORY")
BUSINESS_RX = keyword_pattern(BUSINESS_KEYWORDS)

_CENT = Decimal("0.01")


def is_nsf_event(txn: Transaction) -> bool:
    """NSF keyword on token boundaries, or tagged as an NSF fee by categorization"""
    return NSF_TAG in txn.tags or bool(NSF_RX.search(txn.normalized_description))


def is_business_transaction(txn: Transaction) -> bool:
    return bool(BUSINESS_RX.search(txn.normalized_description))


def calculate_risk_metrics(transactions: Sequence[Transaction]) -> RiskMetrics:
    """
    Extract risk metrics from a chronological transaction sequence.

    Requirements:
    - NSF events counted once per transaction
    - Total deposits vs withdrawals (credits vs absolute debits)
    - Overdraft: stated running balance below zero after a transaction
    - Average daily balance with carry-forward for no-transaction days
    - Business activity: processor deposits against vendor and inventory spend
    """
    nsf_events = [t for t in transactions if is_nsf_event(t)]
    credits = [t for t in transactions if t.is_credit]
    debits = [t for t in transactions if t.is_debit]

    stated = [t for t in transactions if t.balance is not None]
    overdraft_count = sum(1 for t in stated if t.balance < 0)

    return RiskMetrics(
        nsf_count=len(nsf_events),
        nsf_total=sum((abs(t.amount) for t in nsf_events), Decimal("0")),
        overdraft_count=overdraft_count,
        total_deposits=sum((t.amount for t in credits), Decimal("0")),
        total_withdrawals=sum((-t.amount for t in debits), Decimal("0")),
        deposit_count=len(credits),
        withdrawal_count=len(debits),
        average_daily_balance=average_daily_balance(transactions),
        lowest_balance=min((t.balance for t in stated), default=None),
        transaction_count=len(transactions),
        business=business_activity(transactions),
    )


def business_activity(transactions: Sequence[Transaction]) -> BusinessActivity:
    business = [t for t in transactions if is_business_transaction(t)]
    return BusinessActivity(
        deposits=sum((t.amount for t in business if t.is_credit), Decimal("0")),
        expenses=sum((-t.amount for t in business if t.is_debit), Decimal("0")),
        transaction_count=len(business),
    )


def average_daily_balance(transactions: Sequence[Transaction]) -> Decimal | None:
    """
    Average end-of-day balance from the first stated balance to the last transaction.

    Days without a stated balance carry the previous day forward. Returns None
    when the statement states no balances at all.
    """
    balance_by_date: Dict[date, Decimal] = {}
    for txn in transactions:
        if txn.balance is not None:
            # Later lines on the same day overwrite, leaving the end-of-day balance
            balance_by_date[txn.date] = txn.balance

    if not balance_by_date:
        return None

    start_date = min(balance_by_date)
    end_date = max(max(t.date for t in transactions), max(balance_by_date))

    last_known_balance = balance_by_date[start_date]
    daily_balances = []
    for day in generate_date_range(start_date, end_date):
        if day in balance_by_date:
            last_known_balance = balance_by_date[day]
        daily_balances.append(last_known_balance)

    average = sum(daily_balances, Decimal("0")) / len(daily_balances)
    return average.quantize(_CENT, rounding=ROUND_HALF_UP)
