"""
Action Coordinator

Sequences every balance-changing action:

1. reject at once if another action is still settling
2. validate inputs; any failure stops here with nothing changed
3. ask for confirmation when the amount is at or above the large
   transaction threshold; a refusal stops here with nothing changed
4. take the single action permit and schedule settlement; settlement applies
   the ledger operation (which persists), notifies, and gives the permit back

At most one action is ever in flight, so settlements run in the order they
were scheduled. Accepted actions cannot be cancelled.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Tuple
import threading
import time
import uuid

from .accounts import User
from .config import BankConfig, get_config
from .currency import format_inr
from .errors import BankError, BusinessRuleError, ConcurrencyRejection, ErrorReason, FieldError
from .events import DomainEvent, EventDispatcher
from .ledger import EntryType, LedgerEngine, LedgerEntry
from .logging_config import get_logger, log_action
from .session import SessionManager
from .validation import validate_amount, validate_phone

ConfirmCallback = Callable[[EntryType, Decimal], bool]

CONFIRM_LABELS = {
    EntryType.DEPOSIT: "Deposit",
    EntryType.WITHDRAW: "Withdrawal",
    EntryType.TRANSFER: "Transfer",
}

SUCCESS_VERBS = {
    EntryType.DEPOSIT: "Deposited",
    EntryType.WITHDRAW: "Withdrawn",
    EntryType.TRANSFER: "Transferred",
}

DEPOSIT_REFERENCE = "Cash Deposit"
WITHDRAW_REFERENCE = "Cash Withdrawal"


def transfer_reference(mobile: str) -> str:
    return f"To: {mobile}"


class ActionPermit:
    """
    Single-slot, non-blocking permit

    ``try_acquire`` either takes the slot or fails immediately; it never
    queues.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: Optional[str] = None

    @property
    def held(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    def try_acquire(self, holder: str) -> bool:
        if not self._lock.acquire(blocking=False):
            return False
        self._holder = holder
        return True

    def release(self) -> None:
        self._holder = None
        self._lock.release()


class Scheduler(ABC):
    """Where an accepted action suspends until it settles"""

    @abstractmethod
    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        pass


class TimerScheduler(Scheduler):
    """Settle on a background timer thread"""

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()


class BlockingScheduler(Scheduler):
    """Sleep through the delay, then settle on the calling thread"""

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self._sleep(delay)
        callback()


class ManualScheduler(Scheduler):
    """Queue settlements until ``run_pending`` is called"""

    def __init__(self):
        self._queue: List[Tuple[float, Callable[[], None]]] = []

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def delays(self) -> List[float]:
        return [delay for delay, _ in self._queue]

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self._queue.append((delay, callback))

    def run_pending(self) -> int:
        """Run queued settlements in scheduling order; returns how many ran"""
        ran = 0
        while self._queue:
            _, callback = self._queue.pop(0)
            callback()
            ran += 1
        return ran


class ActionStatus(Enum):
    """States of an accepted action"""
    SETTLING = "settling"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PendingAction:
    """An accepted action waiting for, or past, settlement"""
    entry_type: EntryType
    amount: Decimal
    reference: str
    destination: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    accepted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: ActionStatus = ActionStatus.SETTLING
    entry: Optional[LedgerEntry] = None
    error: Optional[Exception] = None
    _settled: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @property
    def done(self) -> bool:
        return self.status != ActionStatus.SETTLING

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until settled (for timer-driven settlement)"""
        return self._settled.wait(timeout)

    @property
    def success_message(self) -> str:
        return f"{SUCCESS_VERBS[self.entry_type]} {format_inr(self.amount)}"


class ActionCoordinator:
    """Runs deposits, withdrawals and transfers for an authenticated session"""

    def __init__(
        self,
        session: SessionManager,
        scheduler: Optional[Scheduler] = None,
        confirm: Optional[ConfirmCallback] = None,
        config: Optional[BankConfig] = None,
        event_dispatcher: Optional[EventDispatcher] = None
    ):
        self.session = session
        self.scheduler = scheduler or TimerScheduler()
        self.confirm = confirm
        self.config = config or session.config or get_config()
        self._event_dispatcher = event_dispatcher
        self.permit = ActionPermit()
        self.logger = get_logger("basic_bank.coordinator")
        session.hold_transitions_while(lambda: self.permit.held)

    @property
    def busy(self) -> bool:
        """True while an accepted action is still settling"""
        return self.permit.held

    def deposit(self, raw_amount: str) -> Optional[PendingAction]:
        """
        Submit a deposit

        Returns:
            The accepted action, or None if confirmation was declined

        Raises:
            ConcurrencyRejection: If another action is settling
            AuthError: If nobody is logged in
            ValidationError: If the amount is invalid
        """
        self._reject_if_busy(EntryType.DEPOSIT)
        self.session.require_authenticated()

        result = validate_amount(raw_amount, config=self.config)
        if not result.valid:
            raise BankError.from_field_errors([result.field_error("amount")])

        return self._accept(EntryType.DEPOSIT, result.value, DEPOSIT_REFERENCE)

    def withdraw(self, raw_amount: str) -> Optional[PendingAction]:
        """
        Submit a withdrawal

        Raises:
            ConcurrencyRejection: If another action is settling
            AuthError: If nobody is logged in
            ValidationError: If the amount is invalid
            BusinessRuleError: If the amount exceeds the balance
        """
        self._reject_if_busy(EntryType.WITHDRAW)
        self.session.require_authenticated()

        result = validate_amount(raw_amount, self.session.ledger.balance, self.config)
        if not result.valid:
            raise BankError.from_field_errors([result.field_error("amount")])

        return self._accept(EntryType.WITHDRAW, result.value, WITHDRAW_REFERENCE)

    def transfer(self, raw_mobile: str, raw_amount: str) -> Optional[PendingAction]:
        """
        Submit an outgoing transfer to a mobile number

        Mobile and amount are both checked and every failure is reported;
        sending to one's own number is refused whatever the amount.

        Raises:
            ConcurrencyRejection: If another action is settling
            AuthError: If nobody is logged in
            ValidationError: If the mobile or amount is invalid
            BusinessRuleError: If it is a self transfer or exceeds the balance
        """
        self._reject_if_busy(EntryType.TRANSFER)
        self.session.require_authenticated()

        errors: List[FieldError] = []
        mobile_result = validate_phone(raw_mobile)
        if not mobile_result.valid:
            errors.append(mobile_result.field_error("mobile"))
        else:
            self_transfer = self.session.check_transfer_destination(mobile_result.value)
            if self_transfer:
                errors.append(self_transfer)

        amount_result = validate_amount(raw_amount, self.session.ledger.balance, self.config)
        if not amount_result.valid:
            errors.append(amount_result.field_error("amount"))

        if errors:
            raise BankError.from_field_errors(errors)

        mobile = mobile_result.value
        return self._accept(EntryType.TRANSFER, amount_result.value,
                            transfer_reference(mobile), destination=mobile)

    def _reject_if_busy(self, entry_type: EntryType) -> None:
        if not self.permit.held:
            return
        log_action(
            self.logger, "info", "Action rejected while another is settling",
            action=entry_type.value.lower(),
            extra={"in_flight": self.permit.holder}
        )
        self._emit(DomainEvent.ACTION_REJECTED_BUSY, self.permit.holder or "", {
            "entry_type": entry_type.value
        })
        raise ConcurrencyRejection()

    def _needs_confirmation(self, amount: Decimal) -> bool:
        return amount >= self.config.large_transaction_threshold

    def _confirmed(self, entry_type: EntryType, amount: Decimal) -> bool:
        if not self._needs_confirmation(amount):
            return True
        if self.confirm is None:
            self.logger.warning("Large transaction declined: no confirmation handler")
            return False
        return bool(self.confirm(entry_type, amount))

    def _delay_for(self, entry_type: EntryType) -> float:
        if entry_type == EntryType.TRANSFER:
            return self.config.transfer_settlement_delay_ms / 1000
        return self.config.settlement_delay_ms / 1000

    def _accept(
        self,
        entry_type: EntryType,
        amount: Decimal,
        reference: str,
        destination: Optional[str] = None
    ) -> Optional[PendingAction]:
        if not self._confirmed(entry_type, amount):
            log_action(self.logger, "info", "Large transaction declined",
                       action=entry_type.value.lower(), extra={"amount": str(amount)})
            self._emit(DomainEvent.ACTION_DECLINED, "", {
                "entry_type": entry_type.value, "amount": str(amount)
            })
            return None

        action = PendingAction(
            entry_type=entry_type,
            amount=amount,
            reference=reference,
            destination=destination
        )
        # Another submission may have slipped in while confirmation was open
        if not self.permit.try_acquire(action.id):
            self._reject_if_busy(entry_type)
            raise ConcurrencyRejection()

        user = self.session.user
        ledger = self.session.ledger

        log_action(
            self.logger, "info", f"Action accepted: {entry_type.value}",
            user_id=user.id, action=entry_type.value.lower(), resource=f"action:{action.id}",
            extra={"amount": str(amount), "reference": reference}
        )
        self._emit(DomainEvent.ACTION_ACCEPTED, action.id, {
            "entry_type": entry_type.value, "amount": str(amount)
        })

        try:
            self.scheduler.schedule(
                self._delay_for(entry_type),
                lambda: self._settle(action, user, ledger)
            )
        except Exception as e:
            if action.done:
                raise
            self.logger.error(f"Could not schedule settlement of {action.id}", exc_info=True)
            self._fail(action, e)
            self.permit.release()
            action._settled.set()
        return action

    def _settle(self, action: PendingAction, user: User, ledger: LedgerEngine) -> None:
        """Second phase: apply, persist, notify, release the permit"""
        try:
            if action.destination is not None and action.destination == user.mobile:
                raise BusinessRuleError.single("mobile", ErrorReason.SELF_TRANSFER)
            action.entry = ledger.apply(action.entry_type, action.amount, action.reference)
            action.status = ActionStatus.COMPLETED

            log_action(
                self.logger, "info", f"Action completed: {action.entry_type.value}",
                user_id=user.id, action=action.entry_type.value.lower(),
                resource=f"action:{action.id}", extra={"balance": str(ledger.balance)}
            )
            self._emit(DomainEvent.ACTION_COMPLETED, action.id, {
                "entry_type": action.entry_type.value,
                "amount": str(action.amount),
                "balance": str(ledger.balance),
                "message": action.success_message,
                "clear_inputs": ["mobile", "amount"] if action.destination else ["amount"]
            })
        except BankError as e:
            self._fail(action, e)
        except Exception as e:
            self.logger.error(f"Settlement of {action.id} raised", exc_info=True)
            self._fail(action, e)
        finally:
            self.permit.release()
            action._settled.set()

    def _fail(self, action: PendingAction, error: Exception) -> None:
        action.error = error
        action.status = ActionStatus.FAILED
        log_action(
            self.logger, "warning", f"Action failed: {action.entry_type.value}",
            action=action.entry_type.value.lower(), resource=f"action:{action.id}",
            extra={"error": str(error)}
        )
        self._emit(DomainEvent.ACTION_FAILED, action.id, {
            "entry_type": action.entry_type.value, "error": str(error)
        })

    def _emit(self, event_type: DomainEvent, entity_id: str, data: dict) -> None:
        if self._event_dispatcher:
            self._event_dispatcher.emit(event_type, "action", entity_id, data)
