# File: parkbook/domain/models.py
"""
Domain Models for the Parking Booking Ledger
Following Domain-Driven Design (DDD) principles with rich domain models

This module contains:
1. Enums: slot, booking, payment and vehicle classifications
2. Value Objects: immutable, validated values (geo location, schedules, price rules, time ranges)
3. Entities: ParkingSlot and Booking, objects with identity and lifecycle
4. Domain Events: records of state changes published by the ledger

Value objects and entities raise ValidationError / IllegalStateError from
domain.errors so that callers see one error taxonomy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple
from datetime import datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
import re
import uuid

from .errors import ValidationError, IllegalStateError


ONE_HOUR = timedelta(hours=1)
TWO_PLACES = Decimal('0.01')

_TIME_OF_DAY = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def to_money(value: Any) -> Decimal:
    """Convert a number to a 2-place Decimal amount"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid monetary amount: {value!r}")

    if not amount.is_finite():
        raise ValidationError(f"Monetary amount must be finite: {value!r}")

    try:
        return amount.quantize(TWO_PLACES)
    except InvalidOperation:
        raise ValidationError(f"Monetary amount out of range: {value!r}")


def parse_time_of_day(value: str) -> time:
    """Parse an HH:MM string"""
    if not isinstance(value, str) or not _TIME_OF_DAY.match(value):
        raise ValidationError(f"Time of day must be HH:MM, got: {value!r}")
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class SlotStatus(str, Enum):
    """Status of a single parking slot"""
    AVAILABLE = "available"
    BOOKED = "booked"
    DISABLED = "disabled"


class VehicleType(str, Enum):
    """
    Vehicle classes known to the system
    Slots accept car, bike and van; price rules may also name trucks
    """
    CAR = "car"
    BIKE = "bike"
    VAN = "van"
    TRUCK = "truck"

    @property
    def fits_slot(self) -> bool:
        return self in SLOT_VEHICLE_TYPES

    def __str__(self) -> str:
        names = {
            VehicleType.CAR: "Car",
            VehicleType.BIKE: "Motorcycle/Bike",
            VehicleType.VAN: "Van",
            VehicleType.TRUCK: "Truck",
        }
        return names.get(self, self.value.title())


SLOT_VEHICLE_TYPES = frozenset({VehicleType.CAR, VehicleType.BIKE, VehicleType.VAN})


class BookingStatus(str, Enum):
    """
    Booking lifecycle: ACTIVE -> COMPLETED | CANCELLED
    Both outcomes are terminal
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not BookingStatus.ACTIVE


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class ParkingType(str, Enum):
    OUTDOOR = "outdoor"
    INDOOR = "indoor"
    MULTI_LEVEL = "multi-level"
    STREET = "street"
    GARAGE = "garage"


class ParkingFeature(str, Enum):
    """Amenity catalog a dealer picks from when listing a location"""
    COVERED_PARKING = "covered-parking"
    EV_CHARGING = "ev-charging"
    SURVEILLANCE = "surveillance"
    COVERED_CAR = "covered-car"
    COVERED_EV = "covered-ev"
    COVERED_TRUCK = "covered-truck"
    EV_TRUCK = "ev-truck"
    SECURITY = "security"
    RESTROOM = "restroom"
    WHEELCHAIR = "wheelchair"

    @property
    def display_name(self) -> str:
        return _FEATURE_DETAILS[self][0]

    @property
    def description(self) -> str:
        return _FEATURE_DETAILS[self][1]

    @classmethod
    def parse(cls, value: Any) -> 'ParkingFeature':
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown parking feature: {value!r}")


_FEATURE_DETAILS = {
    ParkingFeature.COVERED_PARKING: ("Covered Parking", "Protected from weather elements"),
    ParkingFeature.EV_CHARGING: ("EV Charging", "Electric vehicle charging stations"),
    ParkingFeature.SURVEILLANCE: ("Surveillance", "24/7 CCTV monitoring"),
    ParkingFeature.COVERED_CAR: ("Covered Car Parking", "Dedicated covered spaces for cars"),
    ParkingFeature.COVERED_EV: ("Covered EV Parking", "Covered parking with EV charging"),
    ParkingFeature.COVERED_TRUCK: ("Covered Truck Parking", "Large covered spaces for trucks"),
    ParkingFeature.EV_TRUCK: ("EV Truck Charging", "High-power charging for electric trucks"),
    ParkingFeature.SECURITY: ("Security Guard", "On-site security personnel"),
    ParkingFeature.RESTROOM: ("Restroom Facilities", "Clean restroom facilities available"),
    ParkingFeature.WHEELCHAIR: ("Wheelchair Accessible", "ADA compliant accessibility"),
}


class TimeBand(str, Enum):
    """Demand band a price rule applies to"""
    PEAK = "peak"
    OFF_PEAK = "off-peak"
    NIGHT = "night"


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, moment: datetime) -> 'Weekday':
        return list(cls)[moment.weekday()]


class EventType(str, Enum):
    """Domain event types published by the ledger"""
    LOCATION_CREATED = "location_created"
    LOCATION_UPDATED = "location_updated"
    LOCATION_REMOVED = "location_removed"
    SLOT_STATUS_CHANGED = "slot_status_changed"
    SLOT_PRICE_CHANGED = "slot_price_changed"
    BOOKING_CREATED = "booking_created"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class GeoLocation:
    """
    Value Object: street address with coordinates
    Coordinates come from a GeocodingService and are not authoritative
    """
    address: str
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "USA"
    latitude: float = 0.0
    longitude: float = 0.0

    def __post_init__(self):
        if not self.address or not self.address.strip():
            raise ValidationError("Address is required")

        if not -90 <= self.latitude <= 90:
            raise ValidationError(f"Latitude must be between -90 and 90: {self.latitude}")

        if not -180 <= self.longitude <= 180:
            raise ValidationError(f"Longitude must be between -180 and 180: {self.longitude}")

    def get_coordinates(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def with_coordinates(self, latitude: float, longitude: float) -> 'GeoLocation':
        return GeoLocation(
            address=self.address,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
            country=self.country,
            latitude=latitude,
            longitude=longitude,
        )

    def __str__(self) -> str:
        parts = [self.address, self.city, f"{self.state} {self.zip_code}".strip()]
        return ", ".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass(frozen=True)
class WeekdaySchedule:
    """Value Object: opening hours for one day of the week"""
    day: Weekday
    is_open: bool = True
    open_time: str = "06:00"
    close_time: str = "22:00"

    def __post_init__(self):
        object.__setattr__(self, 'day', Weekday(self.day))
        opens = parse_time_of_day(self.open_time)
        closes = parse_time_of_day(self.close_time)
        if self.is_open and closes <= opens:
            raise ValidationError(
                f"{self.day.value}: close time {self.close_time} must be after open time {self.open_time}"
            )

    def is_open_at(self, moment: time) -> bool:
        if not self.is_open:
            return False
        return parse_time_of_day(self.open_time) <= moment < parse_time_of_day(self.close_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day.value,
            "is_open": self.is_open,
            "open_time": self.open_time,
            "close_time": self.close_time,
        }


@dataclass(frozen=True)
class OperatingHours:
    """
    Value Object: default hours plus a per-weekday schedule
    Days missing from the schedule fall back to the default hours
    """
    default_open: str = "06:00"
    default_close: str = "22:00"
    weekday_schedule: Tuple[WeekdaySchedule, ...] = ()

    def __post_init__(self):
        parse_time_of_day(self.default_open)
        parse_time_of_day(self.default_close)
        object.__setattr__(self, 'weekday_schedule', tuple(self.weekday_schedule))

        days = [entry.day for entry in self.weekday_schedule]
        if len(days) != len(set(days)):
            raise ValidationError("Weekday schedule lists a day more than once")

    def schedule_for(self, day: Weekday) -> WeekdaySchedule:
        for entry in self.weekday_schedule:
            if entry.day == day:
                return entry
        return WeekdaySchedule(day, True, self.default_open, self.default_close)

    def is_open_at(self, moment: datetime) -> bool:
        return self.schedule_for(Weekday.from_date(moment)).is_open_at(moment.time())

    @classmethod
    def every_day(cls, open_time: str = "06:00", close_time: str = "22:00") -> 'OperatingHours':
        return cls(
            default_open=open_time,
            default_close=close_time,
            weekday_schedule=tuple(WeekdaySchedule(day, True, open_time, close_time) for day in Weekday),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_open": self.default_open,
            "default_close": self.default_close,
            "weekday_schedule": [entry.to_dict() for entry in self.weekday_schedule],
        }


@dataclass(frozen=True)
class PriceRule:
    """
    Value Object: a named tariff for one vehicle type and time band
    Only used to seed slot prices when a location is created
    """
    name: str
    hourly_rate: Decimal
    daily_rate: Decimal
    vehicle_type: VehicleType = VehicleType.CAR
    time_band: TimeBand = TimeBand.PEAK
    start_time: str = "08:00"
    end_time: str = "18:00"
    weekly_rate: Optional[Decimal] = None
    monthly_rate: Optional[Decimal] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Price rule name is required")

        object.__setattr__(self, 'vehicle_type', VehicleType(self.vehicle_type))
        object.__setattr__(self, 'time_band', TimeBand(self.time_band))
        parse_time_of_day(self.start_time)
        parse_time_of_day(self.end_time)

        for attr in ('hourly_rate', 'daily_rate', 'weekly_rate', 'monthly_rate'):
            value = getattr(self, attr)
            if value is None:
                continue
            amount = to_money(value)
            if amount < 0:
                raise ValidationError(f"{attr} cannot be negative: {amount}")
            object.__setattr__(self, attr, amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "vehicle_type": self.vehicle_type.value,
            "time_band": self.time_band.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "hourly_rate": float(self.hourly_rate),
            "daily_rate": float(self.daily_rate),
            "weekly_rate": float(self.weekly_rate) if self.weekly_rate is not None else None,
            "monthly_rate": float(self.monthly_rate) if self.monthly_rate is not None else None,
        }


@dataclass(frozen=True)
class TimeRange:
    """
    Value Object: booking window with billing helpers
    Billing rounds any started hour up to a whole hour
    """
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValidationError("End time must be after start time")

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def billable_hours(self) -> int:
        hours, remainder = divmod(self.duration, ONE_HOUR)
        if remainder:
            hours += 1
        return hours

    def __str__(self) -> str:
        start_str = self.start_time.strftime("%Y-%m-%d %H:%M")
        end_str = self.end_time.strftime("%Y-%m-%d %H:%M")
        return f"{start_str} to {end_str} ({self.billable_hours}h billed)"


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or str(uuid.uuid4())

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


class ParkingSlot(Entity):
    """
    Entity: a numbered space inside a parking location

    Transitions:
        available <-> disabled   (dealer controlled)
        available  -> booked     (customer booking)
        booked     -> available  (booking closed, when the location releases it)

    booked_by / booked_until are set only while the slot is booked.
    """

    def __init__(
        self,
        number: int,
        price: Any,
        vehicle_type: VehicleType = VehicleType.CAR,
        status: SlotStatus = SlotStatus.AVAILABLE,
        location_name: str = "",
        booked_by: Optional[str] = None,
        booked_until: Optional[datetime] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.number = number
        self.price = to_money(price)
        self.vehicle_type = VehicleType(vehicle_type)
        self.status = SlotStatus(status)
        self.location_name = location_name
        self.booked_by = booked_by if self.status == SlotStatus.BOOKED else None
        self.booked_until = booked_until if self.status == SlotStatus.BOOKED else None

        self._validate()

    def _validate(self) -> None:
        if self.number <= 0:
            raise ValidationError("Slot number must be positive")

        if self.price < 0:
            raise ValidationError(f"Slot price cannot be negative: {self.price}")

        if not self.vehicle_type.fits_slot:
            raise ValidationError(f"Slots cannot hold vehicle type: {self.vehicle_type.value}")

    @property
    def is_available(self) -> bool:
        return self.status == SlotStatus.AVAILABLE

    @property
    def is_booked(self) -> bool:
        return self.status == SlotStatus.BOOKED

    def toggle(self) -> SlotStatus:
        """
        Flip between available and disabled
        Raises: IllegalStateError if the slot is booked
        """
        if self.status == SlotStatus.BOOKED:
            raise IllegalStateError(f"Slot {self.number} is booked and cannot be toggled")

        if self.status == SlotStatus.DISABLED:
            self.status = SlotStatus.AVAILABLE
        else:
            self.status = SlotStatus.DISABLED
        return self.status

    def set_price(self, price: Any) -> None:
        amount = to_money(price)
        if amount < 0:
            raise ValidationError(f"Slot price cannot be negative: {amount}")
        self.price = amount

    def book(self, user_id: str, until: datetime) -> None:
        if not self.is_available:
            raise IllegalStateError(f"Slot {self.number} is {self.status.value}")

        self.status = SlotStatus.BOOKED
        self.booked_by = user_id
        self.booked_until = until

    def release(self) -> None:
        """Return a booked slot to service; no-op for other statuses"""
        if self.status != SlotStatus.BOOKED:
            return

        self.status = SlotStatus.AVAILABLE
        self.booked_by = None
        self.booked_until = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "status": self.status.value,
            "vehicle_type": self.vehicle_type.value,
            "price": float(self.price),
            "location": self.location_name,
            "booked_by": self.booked_by,
            "booked_until": self.booked_until.isoformat() if self.booked_until else None,
        }

    def __str__(self) -> str:
        return f"Slot {self.number} ({self.vehicle_type}) - {self.status.value}"


class Booking(Entity):
    """
    Entity: a customer's reservation of one slot for a time range

    Status moves one way, ACTIVE -> COMPLETED or ACTIVE -> CANCELLED.
    Completion happens by time passing: an active booking whose end time is
    in the past reads as completed through effective_status().
    """

    def __init__(
        self,
        user_id: str,
        slot_id: str,
        location_id: str,
        time_range: TimeRange,
        total_amount: Any,
        location_name: str = "",
        slot_number: int = 0,
        status: BookingStatus = BookingStatus.ACTIVE,
        payment_status: PaymentStatus = PaymentStatus.PAID,
        vehicle_type: VehicleType = VehicleType.CAR,
        vehicle_number: Optional[str] = None,
        created_at: Optional[datetime] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.user_id = user_id
        self.slot_id = slot_id
        self.location_id = location_id
        self.time_range = time_range
        self.total_amount = to_money(total_amount)
        self.location_name = location_name
        self.slot_number = slot_number
        self.status = BookingStatus(status)
        self.payment_status = PaymentStatus(payment_status)
        self.vehicle_type = VehicleType(vehicle_type)
        self.vehicle_number = vehicle_number.strip().upper() if vehicle_number else None
        self.created_at = created_at or time_range.start_time
        self.closed_at: Optional[datetime] = None

        if not self.user_id:
            raise ValidationError("Booking requires a user id")

        if self.total_amount < 0:
            raise ValidationError("Booking total cannot be negative")

    @property
    def start_time(self) -> datetime:
        return self.time_range.start_time

    @property
    def end_time(self) -> datetime:
        return self.time_range.end_time

    @property
    def billable_hours(self) -> int:
        return self.time_range.billable_hours

    def effective_status(self, now: datetime) -> BookingStatus:
        """Status as read at `now`; an expired active booking reads as completed"""
        if self.status == BookingStatus.ACTIVE and now > self.end_time:
            return BookingStatus.COMPLETED
        return self.status

    def is_active(self, now: datetime) -> bool:
        return self.effective_status(now) == BookingStatus.ACTIVE

    def can_cancel(self, now: datetime, window: timedelta = ONE_HOUR) -> bool:
        return self.is_active(now) and (self.start_time - now) > window

    def cancel(self, now: datetime, window: timedelta = ONE_HOUR) -> None:
        status = self.effective_status(now)
        if status != BookingStatus.ACTIVE:
            raise IllegalStateError(f"Booking {self.id} is {status.value} and cannot be cancelled")

        if (self.start_time - now) <= window:
            raise IllegalStateError(
                f"Booking {self.id} can only be cancelled more than "
                f"{window.total_seconds() / 3600:g}h before it starts"
            )

        self.status = BookingStatus.CANCELLED
        self.closed_at = now

    def complete(self, now: datetime) -> None:
        if self.status != BookingStatus.ACTIVE:
            raise IllegalStateError(f"Booking {self.id} is {self.status.value} and cannot be completed")

        self.status = BookingStatus.COMPLETED
        self.closed_at = now

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        status = self.effective_status(now) if now else self.status
        return {
            "id": self.id,
            "user_id": self.user_id,
            "slot_id": self.slot_id,
            "location_id": self.location_id,
            "location_name": self.location_name,
            "slot_number": self.slot_number,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "total_amount": float(self.total_amount),
            "status": status.value,
            "payment_status": self.payment_status.value,
            "vehicle_type": self.vehicle_type.value,
            "vehicle_number": self.vehicle_number,
        }

    def __str__(self) -> str:
        return (
            f"Booking {self.id}: {self.location_name} slot {self.slot_number}, "
            f"{self.time_range}, {self.status.value}"
        )


# ============================================================================
# DOMAIN EVENTS (for event-driven architecture)
# ============================================================================

class DomainEvent(ABC):
    """
    Base class for all domain events
    Events represent something that happened in the ledger
    """

    event_type: EventType

    def __init__(self, timestamp: Optional[datetime] = None):
        self.event_id = str(uuid.uuid4())
        self.timestamp = timestamp or datetime.now()

    @abstractmethod
    def payload(self) -> Dict[str, Any]:
        pass

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.payload(),
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__} at {self.timestamp}"


class LocationEvent(DomainEvent):
    """Location-level change (created, updated, removed)"""

    def __init__(self, event_type: EventType, location_id: str, name: str,
                 available_slots: int, timestamp: Optional[datetime] = None):
        super().__init__(timestamp)
        self.event_type = event_type
        self.location_id = location_id
        self.name = name
        self.available_slots = available_slots

    def payload(self) -> Dict[str, Any]:
        return {
            "location_id": self.location_id,
            "name": self.name,
            "available_slots": self.available_slots,
        }


class SlotStatusChangedEvent(DomainEvent):
    event_type = EventType.SLOT_STATUS_CHANGED

    def __init__(self, location_id: str, slot_id: str, slot_number: int,
                 old_status: SlotStatus, new_status: SlotStatus,
                 timestamp: Optional[datetime] = None):
        super().__init__(timestamp)
        self.location_id = location_id
        self.slot_id = slot_id
        self.slot_number = slot_number
        self.old_status = old_status
        self.new_status = new_status

    def payload(self) -> Dict[str, Any]:
        return {
            "location_id": self.location_id,
            "slot_id": self.slot_id,
            "slot_number": self.slot_number,
            "old_status": self.old_status.value,
            "new_status": self.new_status.value,
        }


class SlotPriceChangedEvent(DomainEvent):
    event_type = EventType.SLOT_PRICE_CHANGED

    def __init__(self, location_id: str, slot_id: str, old_price: Decimal,
                 new_price: Decimal, timestamp: Optional[datetime] = None):
        super().__init__(timestamp)
        self.location_id = location_id
        self.slot_id = slot_id
        self.old_price = old_price
        self.new_price = new_price

    def payload(self) -> Dict[str, Any]:
        return {
            "location_id": self.location_id,
            "slot_id": self.slot_id,
            "old_price": float(self.old_price),
            "new_price": float(self.new_price),
        }


class BookingEvent(DomainEvent):
    """Booking lifecycle change (created, cancelled, completed)"""

    def __init__(self, event_type: EventType, booking: Booking,
                 slot_released: bool = False, timestamp: Optional[datetime] = None):
        super().__init__(timestamp)
        self.event_type = event_type
        self.booking_id = booking.id
        self.user_id = booking.user_id
        self.location_id = booking.location_id
        self.slot_id = booking.slot_id
        self.total_amount = booking.total_amount
        self.slot_released = slot_released

    def payload(self) -> Dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "user_id": self.user_id,
            "location_id": self.location_id,
            "slot_id": self.slot_id,
            "total_amount": float(self.total_amount),
            "slot_released": self.slot_released,
        }
