"""
Ledger Engine

Owns the account balance and the append-only, most-recent-first list of
ledger entries. Every applied operation changes the balance and prepends
exactly one immutable entry whose ``balance_after`` is the new balance,
then persists both before returning.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from enum import Enum

from .accounts import Account
from .config import BankConfig, get_config
from .currency import ZERO, format_inr, to_money
from .errors import BusinessRuleError, ErrorReason
from .events import DomainEvent, EventDispatcher
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageKeys


class EntryType(Enum):
    """Kinds of ledger entries"""
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    TRANSFER = "Transfer"  # Outgoing only

    @property
    def is_debit(self) -> bool:
        """Check if this entry type takes money out of the account"""
        return self in (EntryType.WITHDRAW, EntryType.TRANSFER)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plain_amount(amount: Decimal) -> str:
    # 1500.00 -> "1500", 10.50 -> "10.5"
    return format(amount.normalize(), "f")


@dataclass(frozen=True)
class LedgerEntry:
    """
    A single applied operation
    Immutable once created; never edited or removed
    """
    timestamp: datetime
    entry_type: EntryType
    reference: str
    amount: Decimal         # Positive, 2 decimal places
    balance_after: Decimal  # Account balance right after this entry

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign of its effect on the balance"""
        return -self.amount if self.entry_type.is_debit else self.amount

    def matches(self, query: str) -> bool:
        """
        Free-text match against type, reference and amount

        Type and reference match case-insensitively; the amount matches as a
        plain substring of its text.
        """
        q = query.strip().lower()
        if not q:
            return True
        return (
            q in self.entry_type.value.lower()
            or q in self.reference.lower()
            or q in _plain_amount(self.amount)
            or q in str(self.amount)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            "dt": self.timestamp.isoformat(),
            "type": self.entry_type.value,
            "ref": self.reference,
            "amount": str(self.amount),
            "balance": str(self.balance_after),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        """
        Convert dictionary to LedgerEntry

        Raises:
            ValueError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Ledger entry must be an object")
        try:
            timestamp = datetime.fromisoformat(str(data["dt"]).replace("Z", "+00:00"))
            return cls(
                timestamp=timestamp,
                entry_type=EntryType(data["type"]),
                reference=str(data.get("ref") or ""),
                amount=to_money(str(data["amount"])),
                balance_after=to_money(str(data["balance"])),
            )
        except KeyError as e:
            raise ValueError(f"Ledger entry is missing {e}") from None


class LedgerEngine:
    """
    Applies validated operations to the account

    Callers pass amounts already validated and rounded by the validator; only
    balance sufficiency for debits is checked again here.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account: Account,
        entries: Optional[Iterable[LedgerEntry]] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage = storage
        self.account = account
        self._entries: List[LedgerEntry] = list(entries or [])
        self._event_dispatcher = event_dispatcher
        self._clock = clock or _utcnow
        self.logger = get_logger("basic_bank.ledger")

    @property
    def balance(self) -> Decimal:
        return self.account.balance

    @property
    def entries(self) -> Tuple[LedgerEntry, ...]:
        """All entries, most recent first"""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def apply(self, entry_type: EntryType, amount: Decimal, reference: str) -> LedgerEntry:
        """
        Apply an operation and append its ledger entry

        Args:
            entry_type: Deposit, Withdraw or Transfer
            amount: Validated, rounded, positive amount
            reference: Free-text descriptor (counterparty phone for transfers)

        Returns:
            The new LedgerEntry

        Raises:
            BusinessRuleError: If a debit exceeds the balance
        """
        previous_balance = self.account.balance

        if entry_type.is_debit and amount > previous_balance:
            raise BusinessRuleError.single(
                "amount", ErrorReason.INSUFFICIENT_BALANCE,
                f"Available: {format_inr(previous_balance)}"
            )

        new_balance = previous_balance - amount if entry_type.is_debit else previous_balance + amount
        entry = LedgerEntry(
            timestamp=self._clock(),
            entry_type=entry_type,
            reference=reference,
            amount=amount,
            balance_after=new_balance
        )

        self.account.balance = new_balance
        self._entries.insert(0, entry)
        try:
            self.save()
        except Exception:
            # Keep memory consistent with what may still be on disk
            self.account.balance = previous_balance
            self._entries.pop(0)
            raise

        log_action(
            self.logger, "info", f"Ledger entry appended: {entry_type.value}",
            action="apply", resource=f"ledger:{self.account.account_number}",
            extra={
                "entry_type": entry_type.value,
                "amount": str(amount),
                "balance_after": str(new_balance),
                "reference": reference
            }
        )
        if self._event_dispatcher:
            self._event_dispatcher.emit(
                DomainEvent.LEDGER_ENTRY_APPENDED, "ledger",
                self.account.account_number or "",
                entry.to_dict()
            )

        return entry

    def recent(self, limit: Optional[int] = None, query: str = "") -> List[LedgerEntry]:
        """Most recent entries, optionally filtered by a free-text query"""
        matching = [entry for entry in self._entries if entry.matches(query)]
        if limit is not None:
            matching = matching[:limit]
        return matching

    def is_consistent(self) -> bool:
        """
        Check that each entry's balance follows from the one before it

        The oldest entry is taken as given; the newest must match the
        account balance.
        """
        if not self._entries:
            return True
        chronological = list(reversed(self._entries))
        for previous, entry in zip(chronological, chronological[1:]):
            if previous.balance_after + entry.signed_amount != entry.balance_after:
                return False
        return self._entries[0].balance_after == self.account.balance

    def save(self) -> None:
        """Persist account and ledger"""
        self.storage.set(StorageKeys.ACCOUNT, self.account.to_dict())
        self.storage.set(StorageKeys.LEDGER, [entry.to_dict() for entry in self._entries])

    @classmethod
    def load(
        cls,
        storage: StorageInterface,
        config: Optional[BankConfig] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None
    ) -> "LedgerEngine":
        """
        Load account and ledger, repairing what cannot be read

        A balance that is not a non-negative number resets to zero; a ledger
        that is not a list of well-formed entries resets to empty. Repaired
        records are written back.
        """
        config = config or get_config()
        logger = get_logger("basic_bank.ledger")
        repaired: List[str] = []

        raw_account = storage.get(StorageKeys.ACCOUNT, None)
        if raw_account is None:
            account = Account(name=config.account_label)
        else:
            try:
                account = Account.from_dict(raw_account, config.account_label)
            except ValueError as e:
                logger.warning(f"Resetting unreadable account balance: {e}")
                account_number = raw_account.get("accNumber") if isinstance(raw_account, dict) else None
                account = Account(
                    name=config.account_label,
                    balance=ZERO,
                    account_number=account_number if isinstance(account_number, str) else None
                )
                storage.set(StorageKeys.ACCOUNT, account.to_dict())
                repaired.append(StorageKeys.ACCOUNT)

        raw_ledger = storage.get(StorageKeys.LEDGER, [])
        entries: List[LedgerEntry] = []
        if not isinstance(raw_ledger, list):
            logger.warning("Resetting ledger that is not a list")
            repaired.append(StorageKeys.LEDGER)
        else:
            try:
                entries = [LedgerEntry.from_dict(item) for item in raw_ledger]
            except ValueError as e:
                logger.warning(f"Resetting ledger with malformed entry: {e}")
                entries = []
                repaired.append(StorageKeys.LEDGER)
        if StorageKeys.LEDGER in repaired:
            storage.set(StorageKeys.LEDGER, [])

        if repaired and event_dispatcher:
            event_dispatcher.emit(DomainEvent.STORE_REPAIRED, "store", ",".join(repaired),
                                  {"keys": repaired})

        return cls(storage, account, entries, event_dispatcher=event_dispatcher, clock=clock)
