"""
Reporting Module

Read-only views handed to the presentation layer: balance, a decorative
credit score derived from the balance, the most recent ledger entries
(optionally searched) and the profile fields.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional

from .config import BankConfig, get_config
from .currency import ZERO, format_inr
from .ledger import LedgerEntry
from .session import SessionManager

SCORE_MIN = 300
SCORE_MAX = 850

# (upper bound exclusive, base score, lower bound, rupees per point)
_SCORE_BANDS = [
    (Decimal("1000"), 350, Decimal("0"), Decimal("10")),
    (Decimal("5000"), 450, Decimal("1000"), Decimal("40")),
    (Decimal("10000"), 550, Decimal("5000"), Decimal("50")),
    (Decimal("25000"), 650, Decimal("10000"), Decimal("150")),
    (Decimal("50000"), 750, Decimal("25000"), Decimal("500")),
]


def _floor_div(value: Decimal, step: Decimal) -> int:
    return int((value / step).to_integral_value(rounding=ROUND_FLOOR))


def credit_score(balance: Decimal) -> int:
    """
    Step function of the balance, 300 to 850

    Non-decreasing in the balance; it is decoration, not a credit model.
    """
    if balance <= ZERO:
        return SCORE_MIN
    for upper, base, lower, step in _SCORE_BANDS:
        if balance < upper:
            return base + _floor_div(balance - lower, step)
    return min(SCORE_MAX, 800 + _floor_div(balance - Decimal("50000"), Decimal("2000")))


def credit_label(score: int) -> str:
    if score >= 750:
        return "Excellent"
    if score >= 650:
        return "Good"
    if score >= 500:
        return "Fair"
    return "Poor"


@dataclass(frozen=True)
class CreditScore:
    score: int
    label: str

    @property
    def fraction(self) -> float:
        """Position between the minimum and maximum score, for a progress bar"""
        return (self.score - SCORE_MIN) / (SCORE_MAX - SCORE_MIN)

    @classmethod
    def for_balance(cls, balance: Decimal) -> "CreditScore":
        score = credit_score(balance)
        return cls(score=score, label=credit_label(score))


@dataclass(frozen=True)
class StatementLine:
    """One ledger entry prepared for display"""
    entry_type: str
    reference: str
    amount: str
    timestamp: datetime
    balance: str

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "StatementLine":
        return cls(
            entry_type=entry.entry_type.value,
            reference=entry.reference,
            amount=format_inr(entry.amount),
            timestamp=entry.timestamp,
            balance=format_inr(entry.balance_after)
        )


@dataclass(frozen=True)
class DashboardView:
    """Everything a refreshed screen shows"""
    balance: Decimal
    balance_text: str
    credit: CreditScore
    statement: List[StatementLine]
    total_entries: int
    query: str
    name: str
    mobile: str
    account_number: str
    previous_login: Optional[datetime] = None

    @property
    def empty_message(self) -> Optional[str]:
        """Text for an empty statement, None when there are lines"""
        if self.statement:
            return None
        if self.query and self.total_entries:
            return "No matching transactions"
        return "No transactions yet"


def build_dashboard(
    session: SessionManager,
    query: str = "",
    limit: Optional[int] = None,
    config: Optional[BankConfig] = None
) -> DashboardView:
    """
    Build the view for the logged-in user

    Raises:
        AuthError: If nobody is logged in
    """
    config = config or session.config or get_config()
    user = session.require_authenticated()
    ledger = session.ledger
    page_size = limit if limit is not None else config.statement_page_size
    query = (query or "").strip()

    entries = ledger.recent(page_size, query)
    return DashboardView(
        balance=ledger.balance,
        balance_text=format_inr(ledger.balance),
        credit=CreditScore.for_balance(ledger.balance),
        statement=[StatementLine.from_entry(entry) for entry in entries],
        total_entries=len(ledger),
        query=query,
        name=user.name,
        mobile=user.mobile,
        account_number=ledger.account.account_number or "-",
        previous_login=session.previous_login
    )
