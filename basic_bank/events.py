"""
Event Module

In-process notifications from the bank to whatever is presenting it: an
action was accepted, settled or refused, a record was repaired on load.
A failing subscriber is logged and skipped; it never undoes or blocks the
operation that emitted the event.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Any, Callable, DefaultDict, Dict, List, Optional
import uuid

from .logging_config import get_logger


class DomainEvent(Enum):
    """Things the presentation layer may react to"""

    # Session
    USER_SIGNED_UP = "user.signed_up"
    USER_LOGGED_IN = "user.logged_in"
    USER_LOGGED_OUT = "user.logged_out"
    USER_NAME_CHANGED = "user.name_changed"
    USER_PIN_CHANGED = "user.pin_changed"

    # Coordinator
    ACTION_ACCEPTED = "action.accepted"
    ACTION_DECLINED = "action.declined"
    ACTION_REJECTED_BUSY = "action.rejected_busy"
    ACTION_COMPLETED = "action.completed"
    ACTION_FAILED = "action.failed"

    # Ledger and store
    LEDGER_ENTRY_APPENDED = "ledger.entry_appended"
    STORE_REPAIRED = "store.repaired"


@dataclass
class EventPayload:
    """One emitted event"""
    event_type: DomainEvent
    entity_type: str  # "user", "action", "ledger" or "store"
    entity_id: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventPayload":
        timestamp = data["timestamp"]
        return cls(
            event_type=DomainEvent(data["event_type"]),
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            data=dict(data.get("data") or {}),
            timestamp=datetime.fromisoformat(timestamp) if isinstance(timestamp, str) else timestamp,
            event_id=data["event_id"],
        )


EventHandler = Callable[[EventPayload], Any]


def _describe(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventDispatcher:
    """
    Publish/subscribe hub

    Handlers run synchronously on the emitting thread, in subscription
    order, type-specific handlers first.
    """

    def __init__(self):
        self._by_type: DefaultDict[DomainEvent, List[EventHandler]] = defaultdict(list)
        self._catch_all: List[EventHandler] = []
        self._lock = RLock()
        self.logger = get_logger("basic_bank.events")

    def subscribe(self, event_type: DomainEvent, handler: EventHandler) -> None:
        with self._lock:
            self._by_type[event_type].append(handler)
        self.logger.debug(f"{_describe(handler)} listening for {event_type.value}")

    def subscribe_all(self, handler: EventHandler) -> None:
        with self._lock:
            self._catch_all.append(handler)
        self.logger.debug(f"{_describe(handler)} listening for every event")

    def unsubscribe(self, event_type: DomainEvent, handler: EventHandler) -> None:
        """Remove a type-specific handler; unknown handlers are ignored"""
        with self._lock:
            handlers = self._by_type.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return
        self.logger.warning(f"{_describe(handler)} was not listening for {event_type.value}")

    def _recipients(self, event_type: DomainEvent) -> List[EventHandler]:
        with self._lock:
            return list(self._by_type.get(event_type, [])) + list(self._catch_all)

    def publish(self, event: EventPayload) -> None:
        recipients = self._recipients(event.event_type)
        self.logger.debug(
            f"{event.event_type.value} for {event.entity_type}:{event.entity_id} "
            f"to {len(recipients)} handler(s)"
        )
        for handler in recipients:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Handler {_describe(handler)} failed on {event.event_type.value}: {e}")

    def emit(self, event_type: DomainEvent, entity_type: str, entity_id: str,
             data: Optional[Dict[str, Any]] = None) -> EventPayload:
        """Build an event, publish it and return it"""
        event = EventPayload(event_type, entity_type, entity_id, data or {})
        self.publish(event)
        return event

    def clear(self) -> None:
        with self._lock:
            self._by_type.clear()
            self._catch_all.clear()

    def get_handler_count(self, event_type: Optional[DomainEvent] = None) -> int:
        """Handlers for one event type, or every handler when no type is given"""
        with self._lock:
            if event_type is not None:
                return len(self._by_type.get(event_type, []))
            return sum(len(handlers) for handlers in self._by_type.values()) + len(self._catch_all)
