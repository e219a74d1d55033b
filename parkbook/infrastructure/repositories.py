# File: parkbook/infrastructure/repositories.py
"""
Repository Pattern Implementation for the Parking Booking Ledger

Repositories provide a collection-like interface over the in-memory state.
The LedgerStore groups the repositories and the event bus into one object
with an explicit open/close lifecycle; the ledger receives it by reference
instead of reaching for module-level state.

Storage Implementations:
- InMemoryRepository - insertion-ordered dict keyed by entity id
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic, Optional, List, Dict, Iterator
import logging

from ..domain.aggregates import ParkingLocation
from ..domain.errors import IllegalStateError
from ..domain.models import Booking, BookingStatus
from .messaging import EventBus

T = TypeVar('T')


# ============================================================================
# REPOSITORY INTERFACES
# ============================================================================

class Repository(ABC, Generic[T]):
    """Base repository interface"""

    @abstractmethod
    def add(self, entity: T) -> T:
        pass

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        pass

    @abstractmethod
    def get_all(self, skip: int = 0, limit: Optional[int] = None) -> List[T]:
        pass

    @abstractmethod
    def update(self, entity: T) -> T:
        pass

    @abstractmethod
    def delete(self, id: str) -> bool:
        pass

    @abstractmethod
    def exists(self, id: str) -> bool:
        pass

    @abstractmethod
    def count(self) -> int:
        pass


# ============================================================================
# IN-MEMORY REPOSITORIES
# ============================================================================

class InMemoryRepository(Repository[T]):
    """In-memory repository; iteration follows insertion order"""

    def __init__(self):
        self._storage: Dict[str, T] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def add(self, entity: T) -> T:
        entity_id = getattr(entity, 'id')
        if entity_id in self._storage:
            raise KeyError(f"Entity {entity_id} already exists")

        self._storage[entity_id] = entity
        self._logger.debug(f"Added entity {entity_id}")
        return entity

    def get(self, id: str) -> Optional[T]:
        return self._storage.get(id)

    def get_all(self, skip: int = 0, limit: Optional[int] = None) -> List[T]:
        items = list(self._storage.values())
        end = None if limit is None else skip + limit
        return items[skip:end]

    def update(self, entity: T) -> T:
        entity_id = getattr(entity, 'id')
        if entity_id not in self._storage:
            raise KeyError(f"Entity {entity_id} not found")

        self._storage[entity_id] = entity
        self._logger.debug(f"Updated entity {entity_id}")
        return entity

    def delete(self, id: str) -> bool:
        if id in self._storage:
            del self._storage[id]
            self._logger.debug(f"Deleted entity {id}")
            return True
        return False

    def exists(self, id: str) -> bool:
        return id in self._storage

    def count(self) -> int:
        return len(self._storage)

    def clear(self):
        self._storage.clear()

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._storage.values()))

    def __len__(self) -> int:
        return len(self._storage)


class InMemoryLocationRepository(InMemoryRepository[ParkingLocation]):
    """In-memory repository for parking locations"""

    def search(self, query: str, include_inactive: bool = False) -> List[ParkingLocation]:
        """Case-insensitive substring match on name or address"""
        needle = query.strip().lower()
        return [
            location for location in self._storage.values()
            if (include_inactive or location.is_active)
            and (needle in location.name.lower() or needle in location.address.lower())
        ]


class InMemoryBookingRepository(InMemoryRepository[Booking]):
    """In-memory repository for bookings"""

    def find_by_user(self, user_id: str) -> List[Booking]:
        return [b for b in self._storage.values() if b.user_id == user_id]

    def find_by_location(self, location_id: str) -> List[Booking]:
        return [b for b in self._storage.values() if b.location_id == location_id]

    def find_by_stored_status(self, status: BookingStatus) -> List[Booking]:
        """Match the stored status; expired active bookings are still ACTIVE here"""
        return [b for b in self._storage.values() if b.status == status]


# ============================================================================
# STORE (lifecycle owner)
# ============================================================================

class LedgerStore:
    """
    Owns all in-memory ledger state

    Usage:
        with LedgerStore() as store:
            ledger = BookingLedger(store)
            ...
    Closing the store drops its contents and subscribers; a closed store
    refuses further use.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.locations = InMemoryLocationRepository()
        self.bookings = InMemoryBookingRepository()
        self.event_bus = event_bus or EventBus()
        self._closed = False
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        if self._closed:
            raise IllegalStateError("Ledger store has been closed")

    def close(self) -> None:
        if self._closed:
            return
        self.locations.clear()
        self.bookings.clear()
        self.event_bus.clear_subscribers()
        self._closed = True
        self._logger.info("Ledger store closed")

    def __enter__(self) -> 'LedgerStore':
        self.ensure_open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
