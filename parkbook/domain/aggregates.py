# File: parkbook/domain/aggregates.py
"""
Aggregate Roots for the Parking Booking Ledger
Following Domain-Driven Design (DDD) Aggregate Pattern

Aggregates:
1. ParkingLocation - Root aggregate owning an ordered collection of slots

Key Concepts:
- Slots are only mutated through ParkingLocation methods
- available_slots is derived: every slot mutation ends in _recompute_availability()
- Domain events are collected on the root and drained by the ledger
"""

from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Iterable
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import math

from .errors import ValidationError, NotFoundError, SlotUnavailableError
from .models import (
    Entity, ParkingSlot, GeoLocation, OperatingHours, PriceRule,
    SlotStatus, ParkingType, ParkingFeature, VehicleType, EventType,
    DomainEvent, LocationEvent, SlotStatusChangedEvent, SlotPriceChangedEvent,
    to_money
)


# ============================================================================
# BASE AGGREGATE ROOT
# ============================================================================

class AggregateRoot(Entity):
    """
    Base class for all aggregate roots
    Provides domain event collection and versioning
    """

    def __init__(self, id: Optional[str] = None):
        super().__init__(id)
        self._version: int = 1
        self._changes: List[DomainEvent] = []
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def version(self) -> int:
        return self._version

    def _increment_version(self) -> None:
        self._version += 1

    def _add_domain_event(self, event: DomainEvent) -> None:
        self._changes.append(event)
        self._logger.debug(f"Added domain event: {event.__class__.__name__}")

    def clear_events(self) -> List[DomainEvent]:
        """Clear and return all domain events"""
        events = self._changes.copy()
        self._changes.clear()
        return events

    @property
    def has_changes(self) -> bool:
        return len(self._changes) > 0

    def _validate_invariants(self) -> None:
        """Validate aggregate invariants - to be overridden by subclasses"""
        pass


# ============================================================================
# POLICIES
# ============================================================================

@dataclass
class BookingPolicies:
    """Value Object: business policies shared by the ledger"""
    bookable_ratio: Decimal = Decimal('0.9')
    min_total_slots: int = 1
    max_total_slots: int = 1000
    cancellation_window_hours: float = 1.0
    reject_past_start: bool = True
    release_slot_on_close: bool = True
    default_slot_price: Decimal = Decimal('5.00')

    def __post_init__(self):
        self.bookable_ratio = Decimal(str(self.bookable_ratio))
        self.default_slot_price = to_money(self.default_slot_price)

        if not Decimal('0') < self.bookable_ratio <= Decimal('1'):
            raise ValidationError("Bookable ratio must be in (0, 1]")

        if self.min_total_slots < 1 or self.max_total_slots < self.min_total_slots:
            raise ValidationError("Slot bounds must satisfy 1 <= min <= max")

        if self.cancellation_window_hours < 0:
            raise ValidationError("Cancellation window cannot be negative")

        if self.default_slot_price < 0:
            raise ValidationError("Default slot price cannot be negative")

    @property
    def cancellation_window(self) -> timedelta:
        return timedelta(hours=self.cancellation_window_hours)

    def max_bookable_for(self, total_slots: int) -> int:
        return math.floor(Decimal(total_slots) * self.bookable_ratio)


# ============================================================================
# PARKING LOCATION AGGREGATE
# ============================================================================

class ParkingLocation(AggregateRoot):
    """
    Aggregate Root: a dealer's parking location and its slots
    Enforces slot numbering and keeps available_slots in step with the slots
    """

    def __init__(
        self,
        name: str,
        geo_location: GeoLocation,
        contact_primary: str,
        slots: Iterable[ParkingSlot],
        price_rules: Iterable[PriceRule],
        max_bookable_slots: Optional[int] = None,
        parking_type: ParkingType = ParkingType.OUTDOOR,
        contact_secondary: Optional[str] = None,
        features: Optional[Iterable[str]] = None,
        operating_hours: Optional[OperatingHours] = None,
        address: Optional[str] = None,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.name = name
        self.geo_location = geo_location
        self.address = address or geo_location.address
        self.parking_type = ParkingType(parking_type)
        self.contact_primary = contact_primary
        self.contact_secondary = contact_secondary
        self.features: List[ParkingFeature] = []
        for feature in features or []:
            feature = ParkingFeature.parse(feature)
            if feature not in self.features:
                self.features.append(feature)
        self.operating_hours = operating_hours or OperatingHours.every_day()
        self.price_rules: List[PriceRule] = list(price_rules)
        self.is_active = is_active
        self.created_at = created_at or datetime.now()
        self.updated_at = updated_at or self.created_at

        self._slots: List[ParkingSlot] = sorted(slots, key=lambda s: s.number)
        self._slot_index: Dict[str, ParkingSlot] = {s.id: s for s in self._slots}
        self.max_bookable_slots = (
            max_bookable_slots if max_bookable_slots is not None else len(self._slots)
        )

        self._validate_invariants()
        self._recompute_availability()

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def _validate_invariants(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Location name is required")

        if not self.contact_primary or not self.contact_primary.strip():
            raise ValidationError("Primary contact is required")

        if not self.address or not self.address.strip():
            raise ValidationError("Address is required")

        numbers = [slot.number for slot in self._slots]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValidationError("Slot numbers must run 1..N without gaps or duplicates")

        if len(self._slot_index) != len(self._slots):
            raise ValidationError("Slot ids must be unique within a location")

        if not 0 <= self.max_bookable_slots <= len(self._slots):
            raise ValidationError(
                f"Max bookable slots ({self.max_bookable_slots}) must be between 0 and "
                f"total slots ({len(self._slots)})"
            )

    def _recompute_availability(self) -> int:
        """The only place available_slots is assigned"""
        self._available_slots = sum(1 for slot in self._slots if slot.is_available)
        return self._available_slots

    def _touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = now or datetime.now()
        self._increment_version()

    # ------------------------------------------------------------------
    # Derived properties
    # ------------------------------------------------------------------

    @property
    def slots(self) -> List[ParkingSlot]:
        return list(self._slots)

    @property
    def total_slots(self) -> int:
        return len(self._slots)

    @property
    def available_slots(self) -> int:
        return self._available_slots

    def count_by_status(self, status: SlotStatus) -> int:
        return sum(1 for slot in self._slots if slot.status == status)

    def get_status_counts(self) -> Dict[str, int]:
        return {status.value: self.count_by_status(status) for status in SlotStatus}

    def get_occupancy_rate(self) -> float:
        """Share of slots not currently available"""
        if not self._slots:
            return 0.0
        return (self.total_slots - self.available_slots) / self.total_slots

    @property
    def lowest_price(self) -> Decimal:
        prices = [slot.price for slot in self._slots if slot.status != SlotStatus.DISABLED]
        if not prices:
            prices = [slot.price for slot in self._slots]
        return min(prices) if prices else Decimal('0.00')

    def get_slot(self, slot_id: str) -> ParkingSlot:
        slot = self._slot_index.get(slot_id)
        if slot is None:
            raise NotFoundError(f"Slot {slot_id} not found in location {self.id}")
        return slot

    def get_slot_by_number(self, number: int) -> ParkingSlot:
        if 1 <= number <= len(self._slots):
            return self._slots[number - 1]
        raise NotFoundError(f"Slot number {number} not found in location {self.id}")

    def get_available_slots(self, vehicle_type: Optional[VehicleType] = None) -> List[ParkingSlot]:
        return [
            slot for slot in self._slots
            if slot.is_available and (vehicle_type is None or slot.vehicle_type == vehicle_type)
        ]

    # ------------------------------------------------------------------
    # Slot operations
    # ------------------------------------------------------------------

    def toggle_slot(self, slot_id: str, now: Optional[datetime] = None) -> ParkingSlot:
        """Flip a slot between available and disabled"""
        slot = self.get_slot(slot_id)
        old_status = slot.status
        new_status = slot.toggle()

        self._recompute_availability()
        self._touch(now)
        self._add_domain_event(SlotStatusChangedEvent(
            self.id, slot.id, slot.number, old_status, new_status, timestamp=now
        ))
        self._logger.info(
            f"{self.name}: slot {slot.number} {old_status.value} -> {new_status.value} "
            f"({self.available_slots} available)"
        )
        return slot

    def set_slot_price(self, slot_id: str, price: Any, now: Optional[datetime] = None) -> ParkingSlot:
        slot = self.get_slot(slot_id)
        old_price = slot.price
        slot.set_price(price)

        self._touch(now)
        self._add_domain_event(SlotPriceChangedEvent(
            self.id, slot.id, old_price, slot.price, timestamp=now
        ))
        self._logger.info(f"{self.name}: slot {slot.number} price {old_price} -> {slot.price}")
        return slot

    def reserve_slot(self, slot_id: str, user_id: str, until: datetime,
                     now: Optional[datetime] = None) -> ParkingSlot:
        """
        Mark an available slot as booked
        Raises: SlotUnavailableError if the slot is booked or disabled
        """
        slot = self.get_slot(slot_id)
        if not slot.is_available:
            raise SlotUnavailableError(
                f"Slot {slot.number} at {self.name} is {slot.status.value}"
            )

        slot.book(user_id, until)
        self._recompute_availability()
        self._touch(now)
        self._add_domain_event(SlotStatusChangedEvent(
            self.id, slot.id, slot.number, SlotStatus.AVAILABLE, SlotStatus.BOOKED, timestamp=now
        ))
        return slot

    def release_slot(self, slot_id: str, user_id: Optional[str] = None,
                     now: Optional[datetime] = None) -> bool:
        """
        Return a booked slot to available
        When user_id is given the slot is only released if that user holds it
        Returns: True if the slot changed
        """
        slot = self.get_slot(slot_id)
        if not slot.is_booked:
            return False

        if user_id is not None and slot.booked_by not in (None, user_id):
            self._logger.warning(
                f"{self.name}: slot {slot.number} held by {slot.booked_by}, not releasing for {user_id}"
            )
            return False

        slot.release()
        self._recompute_availability()
        self._touch(now)
        self._add_domain_event(SlotStatusChangedEvent(
            self.id, slot.id, slot.number, SlotStatus.BOOKED, SlotStatus.AVAILABLE, timestamp=now
        ))
        return True

    def mark_updated(self, now: Optional[datetime] = None) -> None:
        self._recompute_availability()
        self._touch(now)
        self._add_domain_event(LocationEvent(
            EventType.LOCATION_UPDATED, self.id, self.name, self.available_slots, timestamp=now
        ))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self, include_slots: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "geo_location": self.geo_location.to_dict(),
            "parking_type": self.parking_type.value,
            "contact_primary": self.contact_primary,
            "contact_secondary": self.contact_secondary,
            "features": [f.value for f in self.features],
            "total_slots": self.total_slots,
            "available_slots": self.available_slots,
            "max_bookable_slots": self.max_bookable_slots,
            "operating_hours": self.operating_hours.to_dict(),
            "price_rules": [rule.to_dict() for rule in self.price_rules],
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if include_slots:
            data["slots"] = [slot.to_dict() for slot in self._slots]
        return data

    def __str__(self) -> str:
        return f"{self.name}: {self.available_slots}/{self.total_slots} available"


# ============================================================================
# AGGREGATE FACTORY
# ============================================================================

class LocationFactory:
    """Factory for creating parking locations with their initial slots"""

    def __init__(self, policies: Optional[BookingPolicies] = None):
        self.policies = policies or BookingPolicies()

    def create(
        self,
        name: str,
        geo_location: GeoLocation,
        contact_primary: str,
        total_slots: int,
        price_rules: List[PriceRule],
        parking_type: ParkingType = ParkingType.OUTDOOR,
        contact_secondary: Optional[str] = None,
        features: Optional[Iterable[str]] = None,
        operating_hours: Optional[OperatingHours] = None,
        now: Optional[datetime] = None,
        id: Optional[str] = None
    ) -> ParkingLocation:
        """
        Create a location whose first floor(total * ratio) slots are bookable
        and whose remaining slots start disabled
        """
        policies = self.policies
        if not policies.min_total_slots <= total_slots <= policies.max_total_slots:
            raise ValidationError(
                f"Total slots must be between {policies.min_total_slots} and "
                f"{policies.max_total_slots}, got: {total_slots}"
            )

        if not price_rules:
            raise ValidationError("At least one price rule is required")

        max_bookable = policies.max_bookable_for(total_slots)
        price = price_rules[0].hourly_rate

        slots = [
            ParkingSlot(
                number=number,
                price=price,
                vehicle_type=VehicleType.CAR,
                status=SlotStatus.AVAILABLE if number <= max_bookable else SlotStatus.DISABLED,
                location_name=name,
            )
            for number in range(1, total_slots + 1)
        ]

        created_at = now or datetime.now()
        location = ParkingLocation(
            name=name,
            geo_location=geo_location,
            contact_primary=contact_primary,
            slots=slots,
            price_rules=price_rules,
            max_bookable_slots=max_bookable,
            parking_type=parking_type,
            contact_secondary=contact_secondary,
            features=features,
            operating_hours=operating_hours,
            created_at=created_at,
            updated_at=created_at,
            id=id,
        )
        location._add_domain_event(LocationEvent(
            EventType.LOCATION_CREATED, location.id, location.name,
            location.available_slots, timestamp=created_at
        ))
        return location
