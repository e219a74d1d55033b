# File: parkbook/infrastructure/messaging.py
"""
Messaging Infrastructure for the Parking Booking Ledger

In-process publish/subscribe for the domain events raised by the ledger.
Handlers stand in for notifications (booking confirmations, dealer alerts)
that the demo only simulates.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List, Optional
import logging

from ..domain.models import DomainEvent, EventType


# ============================================================================
# EVENT HANDLERS
# ============================================================================

class EventHandler(ABC):
    """Abstract base class for event handlers"""

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        pass

    def can_handle(self, event: DomainEvent) -> bool:
        return True


class RecordingEventHandler(EventHandler):
    """Keeps every event it sees, newest last"""

    def __init__(self, event_types: Optional[List[EventType]] = None):
        self.event_types = set(event_types) if event_types else None
        self.events: List[DomainEvent] = []

    def can_handle(self, event: DomainEvent) -> bool:
        return self.event_types is None or event.event_type in self.event_types

    def handle(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class NotificationEventHandler(EventHandler):
    """Logs a user-facing notice for booking events"""

    MESSAGES = {
        EventType.BOOKING_CREATED: "Booking {booking_id} confirmed for user {user_id} ({total_amount:.2f})",
        EventType.BOOKING_CANCELLED: "Booking {booking_id} cancelled for user {user_id}",
        EventType.BOOKING_COMPLETED: "Booking {booking_id} completed for user {user_id}",
    }

    def __init__(self, history_size: int = 100):
        self._logger = logging.getLogger(self.__class__.__name__)
        # Most recent notices only
        self.sent: Deque[str] = deque(maxlen=history_size)

    def can_handle(self, event: DomainEvent) -> bool:
        return event.event_type in self.MESSAGES

    def handle(self, event: DomainEvent) -> None:
        message = self.MESSAGES[event.event_type].format(**event.payload())
        self.sent.append(message)
        self._logger.info(message)


# ============================================================================
# EVENT BUS (In-memory)
# ============================================================================

class EventBus:
    """
    In-memory event bus for intra-process event publishing

    Handlers run synchronously in subscription order. A failing handler is
    logged and does not stop the remaining handlers or roll back the
    mutation that raised the event.
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[EventHandler]] = {}
        self._wildcard: List[EventHandler] = []
        self._logger = logging.getLogger(self.__class__.__name__)

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._subscribers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            self._logger.debug(f"Subscribed {handler.__class__.__name__} to {event_type.value}")

    def subscribe_all(self, handler: EventHandler) -> None:
        if handler not in self._wildcard:
            self._wildcard.append(handler)
            self._logger.debug(f"Subscribed {handler.__class__.__name__} to all events")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            self._logger.debug(f"Unsubscribed {handler.__class__.__name__} from {event_type.value}")

    def publish(self, event: DomainEvent) -> None:
        self._logger.info(f"Publishing event: {event.event_type.value} (ID: {event.event_id})")

        handlers = self._subscribers.get(event.event_type, []) + self._wildcard
        for handler in handlers:
            if not handler.can_handle(event):
                continue
            try:
                handler.handle(event)
            except Exception as e:
                self._logger.error(
                    f"Error handling event {event.event_type.value} with "
                    f"{handler.__class__.__name__}: {e}",
                    exc_info=True
                )

    def publish_all(self, events: List[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def clear_subscribers(self) -> None:
        self._subscribers.clear()
        self._wildcard.clear()
