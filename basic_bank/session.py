"""
Session and Account Manager

Owns the single user and account of a store and decides which operations
are allowed. States: Anonymous -> Authenticated -> Anonymous.

Signup always replaces whatever user, account and ledger were stored before;
the store holds exactly one user.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional
import random

from .accounts import (
    Account, User, escape_name, generate_account_number, generate_user_id, hash_pin
)
from .config import BankConfig, get_config
from .errors import AuthError, ConcurrencyRejection, ErrorReason, FieldError, ValidationError
from .events import DomainEvent, EventDispatcher
from .ledger import LedgerEngine
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageKeys
from .validation import normalize_phone, validate_name, validate_phone, validate_pin


class SessionState(Enum):
    """Session lifecycle states"""
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Signup, login, logout and profile changes for the one local user

    Holds the in-memory session; persisted records are only read and
    written through the storage collaborator.
    """

    def __init__(
        self,
        storage: StorageInterface,
        config: Optional[BankConfig] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None
    ):
        self.storage = storage
        self.config = config or get_config()
        self._event_dispatcher = event_dispatcher
        self._clock = clock or _utcnow
        self._rng = rng
        self.logger = get_logger("basic_bank.session")

        self.state = SessionState.ANONYMOUS
        self.user: Optional[User] = None
        self.ledger: Optional[LedgerEngine] = None
        self.previous_login: Optional[datetime] = None
        self._in_flight: Optional[Callable[[], bool]] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    @property
    def account(self) -> Optional[Account]:
        return self.ledger.account if self.ledger is not None else None

    def _emit(self, event_type: DomainEvent, data: Optional[dict] = None) -> None:
        if self._event_dispatcher:
            self._event_dispatcher.emit(event_type, "user", self.user.id if self.user else "", data)

    def _load_ledger(self) -> LedgerEngine:
        return LedgerEngine.load(
            self.storage, self.config,
            event_dispatcher=self._event_dispatcher, clock=self._clock
        )

    def _load_user(self) -> Optional[User]:
        raw = self.storage.get(StorageKeys.USER, None)
        if raw is None:
            return None
        try:
            return User.from_dict(raw)
        except ValueError as e:
            self.logger.warning(f"Ignoring unreadable user record: {e}")
            return None

    def _ensure_account_number(self) -> None:
        # Stores written before account numbers existed get one on first use
        if self.ledger.account.account_number is None:
            self.ledger.account.account_number = generate_account_number(self._rng)
            self.ledger.save()

    def hold_transitions_while(self, in_flight: Callable[[], bool]) -> None:
        """Refuse resume, signup and login while ``in_flight()`` is true"""
        self._in_flight = in_flight

    def _reject_if_in_flight(self, action: str) -> None:
        # A pending settlement still writes the ledger it was accepted against
        if self._in_flight is None or not self._in_flight():
            return
        log_action(self.logger, "info", "Session change rejected while an action is settling",
                   action=action)
        raise ConcurrencyRejection()

    def require_authenticated(self) -> User:
        """
        Raises:
            AuthError: If nobody is logged in
        """
        if not self.is_authenticated or self.user is None:
            raise AuthError.single("session", ErrorReason.NOT_AUTHENTICATED)
        return self.user

    def resume(self) -> bool:
        """
        Rebuild the session at startup from the store

        Returns:
            True if a user was stored and the session is now authenticated

        Raises:
            ConcurrencyRejection: If an action is still settling
        """
        self._reject_if_in_flight("resume")
        user = self._load_user()
        self.ledger = self._load_ledger()
        if user is None:
            self.state = SessionState.ANONYMOUS
            self.user = None
            return False

        self.user = user
        self._ensure_account_number()
        self.previous_login = self._parse_instant(self.storage.get(StorageKeys.LAST_LOGIN, None))
        self.state = SessionState.AUTHENTICATED
        log_action(self.logger, "info", "Session resumed", user_id=user.id, action="resume")
        return True

    def signup(self, name: str, mobile: str, pin: str) -> User:
        """
        Create the user, a zero-balance account and an empty ledger

        All three inputs are validated and every failure is reported at once.

        Raises:
            ValidationError: If any input is invalid
            ConcurrencyRejection: If an action is still settling
        """
        self._reject_if_in_flight("signup")
        name_result = validate_name(name, self.config)
        mobile_result = validate_phone(mobile)
        pin_result = validate_pin(pin, self.config)

        errors: List[FieldError] = []
        if not name_result.valid:
            errors.append(name_result.field_error("name"))
        if not mobile_result.valid:
            errors.append(mobile_result.field_error("mobile"))
        if not pin_result.valid:
            errors.append(pin_result.field_error("pin"))
        if errors:
            raise ValidationError(errors)

        if self.storage.get(StorageKeys.USER, None) is not None:
            self.logger.warning("Signup is replacing the stored user, account and ledger")

        user = User(
            id=generate_user_id(),
            name=escape_name(name_result.value),
            mobile=mobile_result.value,
            pin_hash=hash_pin(pin_result.value)
        )
        account = Account(
            name=self.config.account_label,
            account_number=generate_account_number(self._rng)
        )
        ledger = LedgerEngine(
            self.storage, account, [],
            event_dispatcher=self._event_dispatcher, clock=self._clock
        )

        self.storage.set(StorageKeys.USER, user.to_dict())
        ledger.save()
        self.storage.set(StorageKeys.LAST_LOGIN, self._clock().isoformat())

        self.user = user
        self.ledger = ledger
        self.previous_login = None
        self.state = SessionState.AUTHENTICATED

        log_action(
            self.logger, "info", "User signed up",
            user_id=user.id, action="signup", resource=f"account:{account.account_number}"
        )
        self._emit(DomainEvent.USER_SIGNED_UP, {"name": user.name, "account_number": account.account_number})
        return user

    def login(self, mobile: str, pin: str) -> User:
        """
        Authenticate against the stored user

        Raises:
            AuthError: NO_ACCOUNT, MOBILE_MISMATCH or WRONG_PIN
            ConcurrencyRejection: If an action is still settling
        """
        self._reject_if_in_flight("login")
        normalized = normalize_phone(mobile)
        stored = self._load_user()

        if stored is None:
            self._log_failed_login(ErrorReason.NO_ACCOUNT)
            raise AuthError.single("mobile", ErrorReason.NO_ACCOUNT)
        if stored.mobile != normalized:
            self._log_failed_login(ErrorReason.MOBILE_MISMATCH)
            raise AuthError.single("mobile", ErrorReason.MOBILE_MISMATCH)
        if not stored.check_pin((pin or "").strip()):
            self._log_failed_login(ErrorReason.WRONG_PIN)
            raise AuthError.single("pin", ErrorReason.WRONG_PIN)

        self.user = stored
        self.ledger = self._load_ledger()
        self._ensure_account_number()

        previous = self.storage.get(StorageKeys.LAST_LOGIN, None)
        self.previous_login = self._parse_instant(previous)
        self.storage.set(StorageKeys.LAST_LOGIN, self._clock().isoformat())
        self.state = SessionState.AUTHENTICATED

        log_action(self.logger, "info", "User logged in", user_id=stored.id, action="login")
        self._emit(DomainEvent.USER_LOGGED_IN, {
            "previous_login": self.previous_login.isoformat() if self.previous_login else None
        })
        return stored

    def _log_failed_login(self, reason: ErrorReason) -> None:
        log_action(self.logger, "warning", "Login failed", action="login",
                   extra={"reason": reason.value})

    @staticmethod
    def _parse_instant(value) -> Optional[datetime]:
        if not isinstance(value, str):
            return None
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None

    def logout(self) -> None:
        """Forget the in-memory session; the store is left as is"""
        user = self.user
        self._emit(DomainEvent.USER_LOGGED_OUT)
        self.user = None
        self.ledger = None
        self.previous_login = None
        self.state = SessionState.ANONYMOUS
        log_action(self.logger, "info", "User logged out",
                   user_id=user.id if user else None, action="logout")

    def change_name(self, name: str) -> User:
        """
        Raises:
            AuthError: If nobody is logged in
            ValidationError: If the name is invalid
        """
        user = self.require_authenticated()
        result = validate_name(name, self.config)
        if not result.valid:
            raise ValidationError([result.field_error("name")])

        previous = user.name
        user.name = escape_name(result.value)
        try:
            self.storage.set(StorageKeys.USER, user.to_dict())
        except Exception:
            user.name = previous
            raise

        log_action(self.logger, "info", "Name changed", user_id=user.id, action="change_name")
        self._emit(DomainEvent.USER_NAME_CHANGED, {"name": user.name})
        return user

    def change_pin(self, current_pin: str, new_pin: str) -> User:
        """
        Raises:
            AuthError: If nobody is logged in or the current PIN is wrong
            ValidationError: If the new PIN is not 4 digits
        """
        user = self.require_authenticated()
        if not user.check_pin((current_pin or "").strip()):
            raise AuthError.single("current_pin", ErrorReason.WRONG_PIN)

        result = validate_pin(new_pin, self.config)
        if not result.valid:
            raise ValidationError([result.field_error("new_pin")])

        previous = user.pin_hash
        user.pin_hash = hash_pin(result.value)
        try:
            self.storage.set(StorageKeys.USER, user.to_dict())
        except Exception:
            user.pin_hash = previous
            raise

        log_action(self.logger, "info", "PIN changed", user_id=user.id, action="change_pin")
        self._emit(DomainEvent.USER_PIN_CHANGED)
        return user

    def check_transfer_destination(self, mobile: str) -> Optional[FieldError]:
        """Self-transfer guard: the normalized destination must not be our own mobile"""
        user = self.require_authenticated()
        if mobile == user.mobile:
            return FieldError("mobile", ErrorReason.SELF_TRANSFER)
        return None

