"""
Account Records Module

The single user and the single account of a store, with their storage
formats. Balances are only changed by the ledger engine.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional
import hashlib
import html
import random
import re
import uuid

from .currency import ZERO, to_money

ACCOUNT_NUMBER_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{4}-[0-9]{4}$")


def hash_pin(pin: str) -> str:
    """
    Derive the comparable credential token for a PIN

    A plain digest of a 4-digit PIN is not a security boundary; it only keeps
    the PIN itself out of the store.
    """
    return "sha256:" + hashlib.sha256(pin.encode("utf-8")).hexdigest()


def escape_name(name: str) -> str:
    """HTML-escape a validated name before it is stored or rendered"""
    return html.escape(name, quote=False)


def generate_user_id() -> str:
    return f"u_{uuid.uuid4().hex[:12]}"


def generate_account_number(rng: Optional[random.Random] = None) -> str:
    """Three groups of four digits, each group in 1000-9999"""
    rng = rng or random.Random()
    return "-".join(str(rng.randint(1000, 9999)) for _ in range(3))


@dataclass
class User:
    """The one user of a store"""
    id: str
    name: str        # Escaped display name
    mobile: str      # Normalized phone
    pin_hash: str

    def check_pin(self, pin: str) -> bool:
        return self.pin_hash == hash_pin(pin)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mobile": self.mobile,
            "pinHash": self.pin_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        """
        Raises:
            ValueError: If a field is missing or not text
        """
        if not isinstance(data, dict):
            raise ValueError("User record must be an object")
        try:
            fields = [data["id"], data["name"], data["mobile"], data["pinHash"]]
        except KeyError as e:
            raise ValueError(f"User record is missing {e}") from None
        if not all(isinstance(value, str) for value in fields):
            raise ValueError("User record fields must be text")
        return cls(*fields)


@dataclass
class Account:
    """
    The one account of a store

    ``balance`` is never negative and always has 2 decimal places.
    """
    name: str
    balance: Decimal = ZERO
    account_number: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "balance": str(self.balance),
            "accNumber": self.account_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_name: str) -> "Account":
        """
        Raises:
            ValueError: If the stored balance is not a non-negative number
        """
        if not isinstance(data, dict):
            raise ValueError("Account record must be an object")
        raw_balance = data.get("balance")
        if isinstance(raw_balance, bool) or raw_balance is None:
            raise ValueError(f"Stored balance {raw_balance!r} is not a number")
        # JSON numbers from older stores go through their shortest repr
        balance = to_money(str(raw_balance))
        if balance < ZERO:
            raise ValueError(f"Stored balance {balance} is negative")
        account_number = data.get("accNumber")
        return cls(
            name=data.get("name") or default_name,
            balance=balance,
            account_number=account_number if isinstance(account_number, str) and account_number else None
        )
