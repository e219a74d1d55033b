# File: parkbook/infrastructure/seed.py
"""
Demo Catalog

Initial state for demos and manual testing: two dealer locations and two
customer bookings. Slot statuses are drawn from a seeded random generator so
a given seed always produces the same catalog.

Usage:
    ledger = BookingLedger(LedgerStore())
    load_demo_catalog(ledger, seed=42)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
import logging
import random

from ..domain.aggregates import BookingPolicies, ParkingLocation
from ..domain.models import (
    Booking, BookingStatus, GeoLocation, OperatingHours, ParkingSlot, ParkingType,
    PaymentStatus, PriceRule, SlotStatus, TimeBand, TimeRange, VehicleType,
    Weekday, WeekdaySchedule
)

logger = logging.getLogger(__name__)

DEMO_CUSTOMER_ID = '2'


@dataclass(frozen=True)
class DemoUser:
    id: str
    name: str
    email: str
    user_type: str
    phone: str


DEMO_USERS = (
    DemoUser('1', 'John Dealer', 'dealer@example.com', 'dealer', '+1234567890'),
    DemoUser(DEMO_CUSTOMER_ID, 'Jane Customer', 'customer@example.com', 'customer', '+0987654321'),
)


def find_demo_user(email: str) -> Optional[DemoUser]:
    for user in DEMO_USERS:
        if user.email.lower() == email.strip().lower():
            return user
    return None


def _schedule(weekday_hours, weekend_hours, friday_close, sunday_close):
    days = []
    for day in Weekday:
        if day in (Weekday.SATURDAY, Weekday.SUNDAY):
            open_time, close_time = weekend_hours
            if day == Weekday.SUNDAY:
                close_time = sunday_close
        else:
            open_time, close_time = weekday_hours
            if day == Weekday.FRIDAY:
                close_time = friday_close
        days.append(WeekdaySchedule(day, True, open_time, close_time))

    return OperatingHours(
        default_open=weekday_hours[0],
        default_close=weekday_hours[1],
        weekday_schedule=tuple(days),
    )


def _random_slots(rng: random.Random, count: int, max_bookable: int, id_prefix: str,
                  price, location_name: str, available_above: float, disabled_above: float,
                  booked_for: timedelta, now: datetime) -> List[ParkingSlot]:
    slots = []
    for number in range(1, count + 1):
        if number > max_bookable:
            status = SlotStatus.DISABLED
        elif rng.random() > available_above:
            status = SlotStatus.AVAILABLE
        elif rng.random() > disabled_above:
            status = SlotStatus.DISABLED
        else:
            status = SlotStatus.BOOKED

        vehicle_type = rng.choice((VehicleType.CAR, VehicleType.CAR, VehicleType.BIKE, VehicleType.VAN))
        slots.append(ParkingSlot(
            number=number,
            price=price,
            vehicle_type=vehicle_type,
            status=status,
            location_name=location_name,
            booked_by=DEMO_CUSTOMER_ID if status == SlotStatus.BOOKED else None,
            booked_until=now + booked_for if status == SlotStatus.BOOKED else None,
            id=f"{id_prefix}{number}",
        ))
    return slots


def build_demo_locations(now: datetime, seed: Optional[int] = None,
                         policies: Optional[BookingPolicies] = None) -> List[ParkingLocation]:
    """The two demo locations; slot 1 of Downtown Plaza is held by the demo customer"""
    rng = random.Random(seed)
    policies = policies or BookingPolicies()

    downtown_bookable = policies.max_bookable_for(50)
    downtown_slots = _random_slots(
        rng, 50, downtown_bookable, 'slot-', 5, 'Downtown Plaza',
        available_above=0.6, disabled_above=0.8, booked_for=timedelta(hours=2), now=now,
    )
    downtown_slots[0] = ParkingSlot(
        number=1, price=5, vehicle_type=VehicleType.CAR, status=SlotStatus.BOOKED,
        location_name='Downtown Plaza', booked_by=DEMO_CUSTOMER_ID,
        booked_until=now + timedelta(hours=2), id='slot-1',
    )

    downtown = ParkingLocation(
        id='1',
        name='Downtown Plaza',
        address='123 Main St, Downtown',
        geo_location=GeoLocation('123 Main St', 'New York', 'NY', '10001', 'USA', 40.7128, -74.0060),
        parking_type=ParkingType.MULTI_LEVEL,
        contact_primary='+1 (555) 123-4567',
        contact_secondary='+1 (555) 123-4568',
        features=['covered-parking', 'surveillance', 'ev-charging'],
        max_bookable_slots=downtown_bookable,
        operating_hours=_schedule(('06:00', '22:00'), ('08:00', '23:00'), '23:00', '20:00'),
        price_rules=[PriceRule(
            id='1', name='Car - Peak Hours', vehicle_type=VehicleType.CAR,
            time_band=TimeBand.PEAK, start_time='08:00', end_time='18:00',
            hourly_rate=5, daily_rate=40, weekly_rate=250, monthly_rate=900,
        )],
        slots=downtown_slots,
        created_at=datetime(2024, 1, 1),
        updated_at=datetime(2024, 1, 15),
    )

    midtown_bookable = policies.max_bookable_for(100)
    midtown = ParkingLocation(
        id='2',
        name='Shopping Center',
        address='456 Commerce Ave, Midtown',
        geo_location=GeoLocation('456 Commerce Ave', 'New York', 'NY', '10002', 'USA', 40.7589, -73.9851),
        parking_type=ParkingType.OUTDOOR,
        contact_primary='+1 (555) 987-6543',
        features=['surveillance', 'wheelchair'],
        max_bookable_slots=midtown_bookable,
        operating_hours=_schedule(('07:00', '21:00'), ('09:00', '22:00'), '22:00', '19:00'),
        price_rules=[PriceRule(
            id='2', name='Car - Regular Hours', vehicle_type=VehicleType.CAR,
            time_band=TimeBand.OFF_PEAK, start_time='09:00', end_time='17:00',
            hourly_rate=3, daily_rate=25, weekly_rate=150, monthly_rate=600,
        )],
        slots=_random_slots(
            rng, 100, midtown_bookable, 'slot-sc-', 3, 'Shopping Center',
            available_above=0.7, disabled_above=0.9, booked_for=timedelta(hours=3), now=now,
        ),
        created_at=datetime(2024, 1, 5),
        updated_at=datetime(2024, 1, 20),
    )
    return [downtown, midtown]


def build_demo_bookings(now: datetime) -> List[Booking]:
    """One booking in progress and one finished yesterday, both for the demo customer"""
    active = Booking(
        id='1',
        user_id=DEMO_CUSTOMER_ID,
        slot_id='slot-1',
        location_id='1',
        location_name='Downtown Plaza',
        slot_number=1,
        time_range=TimeRange(now - timedelta(hours=2), now + timedelta(hours=2)),
        total_amount=20,
        status=BookingStatus.ACTIVE,
        payment_status=PaymentStatus.PAID,
        vehicle_type=VehicleType.CAR,
        vehicle_number='ABC123',
    )
    finished = Booking(
        id='2',
        user_id=DEMO_CUSTOMER_ID,
        slot_id='slot-15',
        location_id='1',
        location_name='Downtown Plaza',
        slot_number=15,
        time_range=TimeRange(now - timedelta(hours=24), now - timedelta(hours=20)),
        total_amount=15,
        status=BookingStatus.COMPLETED,
        payment_status=PaymentStatus.PAID,
        vehicle_type=VehicleType.CAR,
        vehicle_number='XYZ789',
    )
    finished.closed_at = finished.end_time
    return [active, finished]


def load_demo_catalog(ledger, seed: Optional[int] = None):
    """Populate a ledger's store with the demo catalog; returns the ledger"""
    now = ledger.now()
    for location in build_demo_locations(now, seed, ledger.policies):
        ledger.add_location(location)
    for booking in build_demo_bookings(now):
        ledger.add_booking(booking)

    logger.info(
        f"Loaded demo catalog: {ledger.store.locations.count()} locations, "
        f"{ledger.store.bookings.count()} bookings"
    )
    return ledger
