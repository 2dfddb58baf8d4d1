"""
Test suite for the ledger engine

Balance arithmetic, most-recent-first ordering, persistence round trip,
search and self-healing of damaged stores.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from basic_bank.accounts import Account
from basic_bank.currency import ZERO
from basic_bank.errors import BusinessRuleError, ErrorReason
from basic_bank.events import DomainEvent, EventDispatcher
from basic_bank.ledger import EntryType, LedgerEngine, LedgerEntry
from basic_bank.storage import InMemoryStorage, StorageKeys

from conftest import FailingStorage, FixedClock, make_config


class TestLedgerEngine:
    """Test applying operations"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.clock = FixedClock()
        self.config = make_config()
        self.account = Account("Main Account", ZERO, "1234-5678-9012")
        self.ledger = LedgerEngine(self.storage, self.account, [], clock=self.clock)

    @pytest.mark.parametrize("amount", ["0.01", "1", "499.99", "10000000.00"])
    def test_deposit_increases_balance_exactly(self, amount):
        entry = self.ledger.apply(EntryType.DEPOSIT, Decimal(amount), "Cash Deposit")

        assert self.ledger.balance == Decimal(amount)
        assert len(self.ledger) == 1
        assert entry.balance_after == self.ledger.balance
        assert entry.amount == Decimal(amount)
        assert entry.timestamp == self.clock.now

    def test_entries_are_prepended(self):
        self.ledger.apply(EntryType.DEPOSIT, Decimal("1000.00"), "Cash Deposit")
        self.clock.advance(minutes=1)
        self.ledger.apply(EntryType.WITHDRAW, Decimal("250.00"), "Cash Withdrawal")
        self.clock.advance(minutes=1)
        self.ledger.apply(EntryType.TRANSFER, Decimal("100.50"), "To: 9123456789")

        types = [entry.entry_type for entry in self.ledger.entries]
        assert types == [EntryType.TRANSFER, EntryType.WITHDRAW, EntryType.DEPOSIT]
        assert self.ledger.balance == Decimal("649.50")
        assert self.ledger.entries[0].balance_after == self.ledger.balance
        assert self.ledger.is_consistent()

    @pytest.mark.parametrize("entry_type", [EntryType.WITHDRAW, EntryType.TRANSFER])
    def test_debit_above_balance_is_rejected(self, entry_type):
        self.ledger.apply(EntryType.DEPOSIT, Decimal("100.00"), "Cash Deposit")
        stored_before = self.storage.get(StorageKeys.LEDGER)

        with pytest.raises(BusinessRuleError) as exc_info:
            self.ledger.apply(entry_type, Decimal("100.01"), "Cash Withdrawal")

        assert exc_info.value.reason == ErrorReason.INSUFFICIENT_BALANCE
        assert exc_info.value.errors[0].detail == "Available: ₹100.00"
        assert self.ledger.balance == Decimal("100.00")
        assert len(self.ledger) == 1
        assert self.storage.get(StorageKeys.LEDGER) == stored_before

    def test_debit_of_whole_balance(self):
        self.ledger.apply(EntryType.DEPOSIT, Decimal("100.00"), "Cash Deposit")
        self.ledger.apply(EntryType.WITHDRAW, Decimal("100.00"), "Cash Withdrawal")
        assert self.ledger.balance == ZERO

    def test_apply_persists(self):
        self.ledger.apply(EntryType.DEPOSIT, Decimal("500.00"), "Cash Deposit")

        assert self.storage.get(StorageKeys.ACCOUNT)["balance"] == "500.00"
        stored = self.storage.get(StorageKeys.LEDGER)
        assert stored == [{
            "dt": self.clock.now.isoformat(),
            "type": "Deposit",
            "ref": "Cash Deposit",
            "amount": "500.00",
            "balance": "500.00"
        }]

    def test_failed_save_rolls_back(self):
        storage = FailingStorage()
        ledger = LedgerEngine(storage, Account("Main Account"), [], clock=self.clock)
        ledger.apply(EntryType.DEPOSIT, Decimal("10.00"), "Cash Deposit")

        storage.fail = True
        with pytest.raises(OSError):
            ledger.apply(EntryType.DEPOSIT, Decimal("5.00"), "Cash Deposit")

        assert ledger.balance == Decimal("10.00")
        assert len(ledger) == 1

    def test_apply_emits_event(self):
        dispatcher = EventDispatcher()
        received = []
        dispatcher.subscribe(DomainEvent.LEDGER_ENTRY_APPENDED, received.append)
        ledger = LedgerEngine(self.storage, self.account, [], event_dispatcher=dispatcher, clock=self.clock)

        ledger.apply(EntryType.DEPOSIT, Decimal("75.00"), "Cash Deposit")

        assert len(received) == 1
        assert received[0].entity_id == "1234-5678-9012"
        assert received[0].data["amount"] == "75.00"

    def test_round_trip_through_storage(self):
        self.ledger.apply(EntryType.DEPOSIT, Decimal("1000.00"), "Cash Deposit")
        self.clock.advance(hours=2)
        self.ledger.apply(EntryType.TRANSFER, Decimal("333.33"), "To: +254712345678")

        reloaded = LedgerEngine.load(self.storage, self.config)

        assert reloaded.account == self.account
        assert reloaded.entries == self.ledger.entries
        assert reloaded.is_consistent()


class TestLedgerSearch:
    """Test recent() and entry matching"""

    def setup_method(self):
        self.ledger = LedgerEngine(InMemoryStorage(), Account("Main Account"), [], clock=FixedClock())
        self.ledger.apply(EntryType.DEPOSIT, Decimal("1500.00"), "Cash Deposit")
        self.ledger.apply(EntryType.WITHDRAW, Decimal("200.00"), "Cash Withdrawal")
        self.ledger.apply(EntryType.TRANSFER, Decimal("10.50"), "To: 9123456789")

    def test_no_query_returns_all_most_recent_first(self):
        entries = self.ledger.recent()
        assert [e.entry_type for e in entries] == [EntryType.TRANSFER, EntryType.WITHDRAW, EntryType.DEPOSIT]

    def test_limit(self):
        assert len(self.ledger.recent(2)) == 2
        assert self.ledger.recent(1)[0].entry_type == EntryType.TRANSFER

    def test_type_match_is_case_insensitive(self):
        assert [e.entry_type for e in self.ledger.recent(query="DEPOSIT")] == [EntryType.DEPOSIT]

    def test_reference_match(self):
        assert [e.entry_type for e in self.ledger.recent(query="91234")] == [EntryType.TRANSFER]
        assert len(self.ledger.recent(query="cash")) == 2

    def test_amount_match(self):
        assert [e.amount for e in self.ledger.recent(query="1500")] == [Decimal("1500.00")]
        assert [e.amount for e in self.ledger.recent(query="10.50")] == [Decimal("10.50")]
        assert [e.amount for e in self.ledger.recent(query="10.5")] == [Decimal("10.50")]

    def test_no_match(self):
        assert self.ledger.recent(query="salary") == []

    def test_signed_amount(self):
        deposit, = self.ledger.recent(query="deposit")
        transfer, = self.ledger.recent(query="transfer")
        assert deposit.signed_amount == Decimal("1500.00")
        assert transfer.signed_amount == Decimal("-10.50")


class TestLedgerEntryRecord:
    """Test ledger entry storage format"""

    def test_from_dict(self):
        entry = LedgerEntry.from_dict({
            "dt": "2024-01-15T10:30:00Z",
            "type": "Withdraw",
            "ref": "Cash Withdrawal",
            "amount": "20",
            "balance": "80.00"
        })
        assert entry.timestamp == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert entry.entry_type == EntryType.WITHDRAW
        assert entry.amount == Decimal("20.00")

    @pytest.mark.parametrize("record", [
        {"type": "Deposit", "ref": "", "amount": "1", "balance": "1"},
        {"dt": "yesterday", "type": "Deposit", "ref": "", "amount": "1", "balance": "1"},
        {"dt": "2024-01-15T10:30:00", "type": "Refund", "ref": "", "amount": "1", "balance": "1"},
        {"dt": "2024-01-15T10:30:00", "type": "Deposit", "ref": "", "amount": "x", "balance": "1"},
        "not an entry",
    ])
    def test_malformed_entries(self, record):
        with pytest.raises(ValueError):
            LedgerEntry.from_dict(record)


class TestLedgerLoad:
    """Test loading and self-healing"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.config = make_config()
        self.dispatcher = EventDispatcher()
        self.repairs = []
        self.dispatcher.subscribe(DomainEvent.STORE_REPAIRED, self.repairs.append)

    def load(self):
        return LedgerEngine.load(self.storage, self.config, event_dispatcher=self.dispatcher)

    def test_empty_store(self):
        ledger = self.load()
        assert ledger.balance == ZERO
        assert ledger.account.name == "Main Account"
        assert len(ledger) == 0
        assert self.repairs == []

    def test_unreadable_balance_is_reset_and_rewritten(self):
        self.storage.set(StorageKeys.ACCOUNT, {"name": "Main Account", "balance": "abc", "accNumber": "1111-2222-3333"})

        ledger = self.load()

        assert ledger.balance == ZERO
        assert ledger.account.account_number == "1111-2222-3333"
        assert self.storage.get(StorageKeys.ACCOUNT)["balance"] == "0.00"
        assert self.repairs[0].data["keys"] == [StorageKeys.ACCOUNT]

    def test_negative_balance_is_reset(self):
        self.storage.set(StorageKeys.ACCOUNT, {"name": "Main Account", "balance": "-5.00"})
        assert self.load().balance == ZERO

    def test_corrupt_account_json_uses_default(self):
        self.storage.set_raw(StorageKeys.ACCOUNT, "{broken")
        assert self.load().balance == ZERO

    def test_ledger_not_a_list_is_reset_and_rewritten(self):
        self.storage.set(StorageKeys.LEDGER, {"oops": True})

        ledger = self.load()

        assert len(ledger) == 0
        assert self.storage.get(StorageKeys.LEDGER) == []
        assert self.repairs[0].data["keys"] == [StorageKeys.LEDGER]

    def test_malformed_entry_resets_ledger(self):
        self.storage.set(StorageKeys.LEDGER, [
            {"dt": "2024-01-15T10:30:00+00:00", "type": "Deposit", "ref": "Cash Deposit",
             "amount": "10.00", "balance": "10.00"},
            {"dt": "2024-01-15T10:31:00+00:00", "type": "Deposit"},
        ])

        assert len(self.load()) == 0
        assert self.storage.get(StorageKeys.LEDGER) == []
