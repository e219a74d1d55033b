# File: parkbook/application/ledger.py
"""
Booking/Slot Ledger

The ledger is the single writer over a LedgerStore. It owns the rules for:
1. Creating and replacing parking locations
2. Toggling and repricing slots
3. Booking a slot and closing bookings (cancel, complete)
4. Read projections for customers and dealers

Every mutation runs to completion synchronously; validation happens before
any state changes so a failed call leaves the store untouched. Domain
events collected on aggregates are published on the store's event bus
after each successful mutation.
"""

from typing import Any, Callable, Dict, List, Optional, Union
from datetime import datetime
from decimal import Decimal
import logging

from ..domain.aggregates import BookingPolicies, LocationFactory, ParkingLocation
from ..domain.errors import (
    AuthorizationError, NotFoundError, SlotUnavailableError, ValidationError
)
from ..domain.models import (
    Booking, BookingStatus, EventType, BookingEvent, LocationEvent,
    ParkingSlot, PaymentStatus, TimeRange, VehicleType
)
from ..domain.strategies import (
    DistanceEstimator, RandomDistanceEstimator, create_sort_strategy
)
from ..infrastructure.repositories import LedgerStore
from .dtos import (
    BookingDTO, BookingRequestDTO, DashboardDTO, LocationCreateDTO, LocationOccupancyDTO,
    LocationSearchDTO, LocationSummaryDTO, parse_dto
)

Clock = Callable[[], datetime]


class BookingLedger:
    """
    Application service over the in-memory store

    Args:
        store: state holder; the ledger never creates module-level state
        policies: business policies (bookable ratio, cancellation window, ...)
        clock: returns "now"; injected so tests can pin time
        distance_estimator: used by search_locations
    """

    def __init__(
        self,
        store: LedgerStore,
        policies: Optional[BookingPolicies] = None,
        clock: Optional[Clock] = None,
        distance_estimator: Optional[DistanceEstimator] = None
    ):
        self.store = store
        self.policies = policies or BookingPolicies()
        self._clock = clock or datetime.now
        self.distance_estimator = distance_estimator or RandomDistanceEstimator()
        self.location_factory = LocationFactory(self.policies)
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _publish(self, location: Optional[ParkingLocation] = None, *events) -> None:
        pending = list(location.clear_events()) if location is not None else []
        pending.extend(events)
        self.store.event_bus.publish_all(pending)

    def _get_location(self, location_id: str) -> ParkingLocation:
        self.store.ensure_open()
        location = self.store.locations.get(location_id)
        if location is None:
            raise NotFoundError(f"Location {location_id} not found")
        return location

    def _get_booking(self, booking_id: str) -> Booking:
        self.store.ensure_open()
        booking = self.store.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _release_for(self, booking: Booking, now: datetime) -> bool:
        """Free the booking's slot when policy allows and the slot is still held by its user"""
        if not self.policies.release_slot_on_close:
            return False

        location = self.store.locations.get(booking.location_id)
        if location is None:
            self.logger.warning(f"Booking {booking.id} references missing location {booking.location_id}")
            return False

        try:
            return location.release_slot(booking.slot_id, booking.user_id, now=now)
        except NotFoundError:
            self.logger.warning(f"Booking {booking.id} references missing slot {booking.slot_id}")
            return False

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def create_location(self, data: Union[LocationCreateDTO, Dict[str, Any]]) -> ParkingLocation:
        """
        Create a location with `total_slots` slots numbered 1..N
        The first floor(N * 0.9) are available, the rest disabled, all priced
        at the first price rule's hourly rate.
        Raises: ValidationError
        """
        self.store.ensure_open()
        request = parse_dto(LocationCreateDTO, data)
        now = self.now()

        location = self.location_factory.create(
            name=request.name,
            geo_location=request.geo_location.to_domain(),
            contact_primary=request.contact_primary,
            total_slots=request.total_slots,
            price_rules=[rule.to_domain() for rule in request.price_rules],
            parking_type=request.parking_type,
            contact_secondary=request.contact_secondary,
            features=request.features,
            operating_hours=request.operating_hours.to_domain(),
            now=now,
        )
        self.store.locations.add(location)
        self._publish(location)

        self.logger.info(
            f"Created location {location.name} ({location.id}): "
            f"{location.total_slots} slots, {location.max_bookable_slots} bookable"
        )
        return location

    def add_location(self, location: ParkingLocation) -> ParkingLocation:
        """Register an already-built location (seed data, imports)"""
        self.store.ensure_open()
        if self.store.locations.exists(location.id):
            raise ValidationError(f"Location {location.id} already exists")

        self.store.locations.add(location)
        self._publish(location)
        return location

    def update_location(self, location: ParkingLocation) -> ParkingLocation:
        """
        Replace a stored location with `location` (matched by id)
        Raises: NotFoundError if no location has that id
        """
        self._get_location(location.id)
        location.mark_updated(self.now())
        self.store.locations.update(location)
        self._publish(location)

        self.logger.info(f"Replaced location {location.name} ({location.id})")
        return location

    def remove_location(self, location_id: str) -> ParkingLocation:
        """Drop a location together with its slots; bookings keep their ids"""
        location = self._get_location(location_id)
        self.store.locations.delete(location_id)

        dangling = [
            b for b in self.store.bookings.find_by_location(location_id)
            if b.is_active(self.now())
        ]
        if dangling:
            self.logger.warning(
                f"Removed location {location.name} with {len(dangling)} active booking(s)"
            )

        self._publish(None, LocationEvent(
            EventType.LOCATION_REMOVED, location.id, location.name, 0, timestamp=self.now()
        ))
        return location

    def toggle_slot(self, location_id: str, slot_id: str) -> ParkingLocation:
        """
        Flip a slot between available and disabled
        Raises: NotFoundError, IllegalStateError for booked slots
        """
        location = self._get_location(location_id)
        location.toggle_slot(slot_id, now=self.now())
        self._publish(location)
        return location

    def set_slot_price(self, location_id: str, slot_id: str, price: Any) -> ParkingLocation:
        """Raises: NotFoundError, ValidationError if price < 0"""
        location = self._get_location(location_id)
        location.set_slot_price(slot_id, price, now=self.now())
        self._publish(location)
        return location

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def _check_booking(self, request: BookingRequestDTO, now: datetime):
        if self.policies.reject_past_start and request.start_time < now:
            raise ValidationError("Start time cannot be in the past")

        location = self._get_location(request.location_id)
        slot = location.get_slot(request.slot_id)

        if not location.is_active:
            raise SlotUnavailableError(f"Location {location.name} is not accepting bookings")

        if not slot.is_available:
            raise SlotUnavailableError(
                f"Slot {slot.number} at {location.name} is {slot.status.value}"
            )

        return location, slot, TimeRange(request.start_time, request.end_time)

    def quote_booking(self, data: Union[BookingRequestDTO, Dict[str, Any]]) -> Decimal:
        """
        Price a booking request without committing it (hours rounded up)
        Raises the same errors create_booking would
        """
        request = parse_dto(BookingRequestDTO, data)
        _, slot, time_range = self._check_booking(request, self.now())
        return slot.price * time_range.billable_hours

    def create_booking(self, data: Union[BookingRequestDTO, Dict[str, Any]]) -> Booking:
        """
        Book an available slot

        total_amount = ceil(hours) * slot price. The slot becomes booked by
        the user until the end time and the location's available count
        drops by one.
        Raises: ValidationError, NotFoundError, SlotUnavailableError
        """
        request = parse_dto(BookingRequestDTO, data)
        now = self.now()
        location, slot, time_range = self._check_booking(request, now)

        booking = Booking(
            user_id=request.user_id,
            slot_id=slot.id,
            location_id=location.id,
            time_range=time_range,
            total_amount=slot.price * time_range.billable_hours,
            location_name=location.name,
            slot_number=slot.number,
            status=BookingStatus.ACTIVE,
            payment_status=request.payment_status,
            vehicle_type=slot.vehicle_type,
            vehicle_number=request.vehicle_number,
            created_at=now,
        )

        location.reserve_slot(slot.id, booking.user_id, booking.end_time, now=now)
        self.store.bookings.add(booking)
        self._publish(location, BookingEvent(EventType.BOOKING_CREATED, booking, timestamp=now))

        self.logger.info(
            f"Booked {location.name} slot {slot.number} for user {booking.user_id}: "
            f"{time_range.billable_hours}h, {booking.total_amount}"
        )
        return booking

    def add_booking(self, booking: Booking) -> Booking:
        """Register an existing booking record (seed data); slots are not touched"""
        self.store.ensure_open()
        if self.store.bookings.exists(booking.id):
            raise ValidationError(f"Booking {booking.id} already exists")
        return self.store.bookings.add(booking)

    def cancel_booking(self, booking_id: str, acting_user_id: str) -> Booking:
        """
        Cancel an active booking more than one hour before it starts
        Raises: NotFoundError, AuthorizationError, IllegalStateError
        """
        booking = self._get_booking(booking_id)
        if booking.user_id != acting_user_id:
            raise AuthorizationError(f"Booking {booking_id} does not belong to user {acting_user_id}")

        now = self.now()
        booking.cancel(now, self.policies.cancellation_window)
        released = self._release_for(booking, now)

        location = self.store.locations.get(booking.location_id)
        self._publish(location, BookingEvent(
            EventType.BOOKING_CANCELLED, booking, slot_released=released, timestamp=now
        ))

        self.logger.info(f"Cancelled booking {booking.id} (slot released: {released})")
        return booking

    def complete_expired(self, now: Optional[datetime] = None) -> List[Booking]:
        """Mark active bookings whose end time has passed as completed"""
        self.store.ensure_open()
        now = now or self.now()
        completed = []

        for booking in self.store.bookings.find_by_stored_status(BookingStatus.ACTIVE):
            if booking.end_time >= now:
                continue

            booking.complete(now)
            released = self._release_for(booking, now)
            location = self.store.locations.get(booking.location_id)
            self._publish(location, BookingEvent(
                EventType.BOOKING_COMPLETED, booking, slot_released=released, timestamp=now
            ))
            completed.append(booking)

        if completed:
            self.logger.info(f"Completed {len(completed)} expired booking(s)")
        return completed

    # ------------------------------------------------------------------
    # Read projections
    # ------------------------------------------------------------------

    def list_locations(self, include_inactive: bool = True) -> List[ParkingLocation]:
        self.store.ensure_open()
        return [loc for loc in self.store.locations if include_inactive or loc.is_active]

    def get_location(self, location_id: str) -> ParkingLocation:
        return self._get_location(location_id)

    def list_available_slots(self, location_id: str,
                             vehicle_type: Optional[Union[VehicleType, str]] = None) -> List[ParkingSlot]:
        """Slots a customer can pick right now, optionally for one vehicle type"""
        location = self._get_location(location_id)
        if vehicle_type is not None:
            try:
                vehicle_type = VehicleType(vehicle_type)
            except ValueError:
                raise ValidationError(f"Unknown vehicle type: {vehicle_type!r}")
        return location.get_available_slots(vehicle_type)

    def list_bookings(self) -> List[Booking]:
        self.store.ensure_open()
        return list(self.store.bookings)

    def get_booking(self, booking_id: str) -> Booking:
        return self._get_booking(booking_id)

    def list_bookings_for_user(self, user_id: str) -> List[Booking]:
        self.store.ensure_open()
        return self.store.bookings.find_by_user(user_id)

    def list_bookings_by_status(
        self,
        status: Union[BookingStatus, str],
        user_id: Optional[str] = None
    ) -> List[Booking]:
        """Filter on the status as read now, so expired active bookings count as completed"""
        self.store.ensure_open()
        status = BookingStatus(status)
        now = self.now()
        bookings = self.list_bookings_for_user(user_id) if user_id is not None else self.list_bookings()
        return [b for b in bookings if b.effective_status(now) == status]

    def booking_view(self, booking: Booking) -> BookingDTO:
        return BookingDTO.from_booking(booking, self.now(), self.policies.cancellation_window)

    def search_locations(
        self,
        query: Union[LocationSearchDTO, Dict[str, Any], str] = "",
        sort_by: Optional[str] = None,
        origin=None
    ) -> List[LocationSummaryDTO]:
        """
        Case-insensitive search on name or address

        Accepts a LocationSearchDTO (or its dict form), or a plain query
        string with `sort_by` and `origin` passed separately. An empty query
        matches every active location.
        """
        self.store.ensure_open()
        if isinstance(query, str):
            data: Dict[str, Any] = {"query": query}
            if sort_by is not None:
                data["sort_by"] = sort_by
            if origin is not None:
                data["origin_latitude"], data["origin_longitude"] = origin
            query = data

        request = parse_dto(LocationSearchDTO, query)
        strategy = create_sort_strategy(request.sort_by)

        matches = self.store.locations.search(request.query, request.include_inactive)
        distances = {
            location.id: self.distance_estimator.estimate_km(request.origin, location)
            for location in matches
        }
        ordered = strategy.sort(matches, distances)

        self.logger.debug(
            f"Search '{request.query}' by {request.sort_by.value}: {len(ordered)} result(s)"
        )
        return [
            LocationSummaryDTO(
                id=location.id,
                name=location.name,
                address=location.address,
                parking_type=location.parking_type,
                features=list(location.features),
                total_slots=location.total_slots,
                available_slots=location.available_slots,
                lowest_price=location.lowest_price,
                distance_km=distances[location.id],
            )
            for location in ordered
        ]

    def dashboard(self, now: Optional[datetime] = None) -> DashboardDTO:
        """Dealer overview across every location"""
        self.store.ensure_open()
        now = now or self.now()
        locations = self.list_locations()
        bookings = self.list_bookings()

        per_location = [LocationOccupancyDTO.from_location(loc) for loc in locations]
        total = sum(row.total_slots for row in per_location)
        available = sum(row.available_slots for row in per_location)
        booked = sum(row.booked_slots for row in per_location)
        disabled = sum(row.disabled_slots for row in per_location)
        occupancy = round((total - available) / total * 100, 1) if total else 0.0

        revenue = sum(
            (b.total_amount for b in bookings if b.payment_status == PaymentStatus.PAID),
            Decimal('0.00')
        )

        return DashboardDTO(
            total_locations=len(locations),
            total_slots=total,
            available_slots=available,
            booked_slots=booked,
            disabled_slots=disabled,
            occupancy_rate=occupancy,
            todays_bookings=sum(1 for b in bookings if b.start_time.date() == now.date()),
            active_bookings=sum(1 for b in bookings if b.is_active(now)),
            total_revenue=revenue,
            generated_at=now,
            locations=per_location,
        )
