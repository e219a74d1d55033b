# File: parkbook/application/parking_service.py
"""
Parking Booking Application Service

Async facade over the BookingLedger for the presentation layer. It adds the
steps that would talk to the outside world:
1. Geocoding a new location's address before it is stored
2. Charging the customer before a booking is committed, and refunding
   the charge if the slot was taken meanwhile
3. Searching with a distance estimate

The ledger itself stays synchronous. Payment is the only awaited step; if
the awaiting task is cancelled (the customer navigated away) the ledger is
never touched.
"""

from typing import Any, Dict, List, Optional, Union
from datetime import datetime
import asyncio
import logging

from ..domain.aggregates import BookingPolicies, ParkingLocation
from ..domain.errors import LedgerError, PaymentError
from ..domain.models import Booking, BookingStatus, ParkingSlot, PaymentStatus
from ..domain.strategies import (
    GeocodingService, PaymentProcessor, DistanceEstimator,
    MockGeocodingService, SimulatedPaymentProcessor, RandomDistanceEstimator,
    FixedGeocodingService, InstantPaymentProcessor, FixedDistanceEstimator
)
from ..infrastructure.messaging import EventBus, NotificationEventHandler
from ..infrastructure.repositories import LedgerStore
from .dtos import (
    BookingDTO, BookingRequestDTO, DashboardDTO, GeoLocationDTO,
    LocationCreateDTO, LocationSummaryDTO, parse_dto
)
from .ledger import BookingLedger, Clock


class ParkingService:
    """
    Main application service for parking bookings

    This service orchestrates the customer and dealer use cases:
    1. Location registration (dealer)
    2. Slot management (dealer)
    3. Search, booking and cancellation (customer)
    4. Dashboard and booking history
    """

    def __init__(
        self,
        ledger: Optional[BookingLedger] = None,
        geocoder: Optional[GeocodingService] = None,
        payment_processor: Optional[PaymentProcessor] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.ledger = ledger or BookingLedger(LedgerStore())
        self.geocoder = geocoder or MockGeocodingService()
        self.payment_processor = payment_processor or SimulatedPaymentProcessor()

        # Service configuration
        self.config = {
            "payment_timeout_seconds": None,
            "default_sort": "distance",
            "notify_users": True,
        }

        self.logger.info("ParkingService initialized")

    @property
    def store(self) -> LedgerStore:
        return self.ledger.store

    def close(self) -> None:
        self.store.close()

    # ------------------------------------------------------------------
    # Dealer use cases
    # ------------------------------------------------------------------

    def register_location(self, data: Union[LocationCreateDTO, Dict[str, Any]]) -> ParkingLocation:
        """Geocode the address, then create the location"""
        request = parse_dto(LocationCreateDTO, data)
        geo_location = self.geocoder.geocode(request.geo_location.to_domain())
        request = request.model_copy(update={
            "geo_location": GeoLocationDTO(**geo_location.to_dict()),
        })
        return self.ledger.create_location(request)

    def toggle_slot(self, location_id: str, slot_id: str) -> ParkingLocation:
        return self.ledger.toggle_slot(location_id, slot_id)

    def set_slot_price(self, location_id: str, slot_id: str, price: Any) -> ParkingLocation:
        return self.ledger.set_slot_price(location_id, slot_id, price)

    def update_location(self, location: ParkingLocation) -> ParkingLocation:
        return self.ledger.update_location(location)

    def remove_location(self, location_id: str) -> ParkingLocation:
        return self.ledger.remove_location(location_id)

    def get_dashboard(self, now: Optional[datetime] = None) -> DashboardDTO:
        return self.ledger.dashboard(now)

    # ------------------------------------------------------------------
    # Customer use cases
    # ------------------------------------------------------------------

    def search_locations(self, query: str = "", sort_by: Optional[str] = None,
                         origin=None) -> List[LocationSummaryDTO]:
        return self.ledger.search_locations(query, sort_by or self.config["default_sort"], origin)

    async def _charge(self, user_id: str, amount) -> PaymentStatus:
        timeout = self.config.get("payment_timeout_seconds")
        charge = self.payment_processor.charge(user_id, amount)
        try:
            if timeout is None:
                return await charge
            return await asyncio.wait_for(charge, timeout)
        except asyncio.TimeoutError:
            raise PaymentError(f"Payment for user {user_id} timed out after {timeout}s")

    async def book_slot(self, data: Union[BookingRequestDTO, Dict[str, Any]]) -> Booking:
        """
        Book a slot after payment is approved

        The slot is checked before charging so a doomed booking is never
        paid for. If the task is cancelled while payment is pending, the
        CancelledError propagates and no booking exists.
        Raises: ValidationError, NotFoundError, SlotUnavailableError, PaymentError
        """
        request = parse_dto(BookingRequestDTO, data)
        amount = self.ledger.quote_booking(request)

        try:
            status = await self._charge(request.user_id, amount)
        except asyncio.CancelledError:
            self.logger.info(f"Booking by user {request.user_id} abandoned during payment")
            raise

        if status != PaymentStatus.PAID:
            raise PaymentError(f"Payment of {amount} for user {request.user_id} was {status.value}")

        # Slot may have been taken while payment was pending
        try:
            return self.ledger.create_booking(request.model_copy(update={"payment_status": status}))
        except LedgerError as e:
            self.logger.warning(
                f"Booking by user {request.user_id} failed after payment ({e}); refunding {amount}"
            )
            await self.payment_processor.refund(request.user_id, amount)
            raise

    def cancel_booking(self, booking_id: str, user_id: str) -> Booking:
        return self.ledger.cancel_booking(booking_id, user_id)

    def get_available_slots(self, location_id: str, vehicle_type: Optional[str] = None) -> List[ParkingSlot]:
        return self.ledger.list_available_slots(location_id, vehicle_type)

    def get_user_bookings(self, user_id: str,
                          status: Optional[Union[BookingStatus, str]] = None) -> List[BookingDTO]:
        if status is None:
            bookings = self.ledger.list_bookings_for_user(user_id)
        else:
            bookings = self.ledger.list_bookings_by_status(status, user_id)
        return [self.ledger.booking_view(b) for b in bookings]

    def complete_expired(self) -> List[Booking]:
        return self.ledger.complete_expired()


# ============================================================================
# SERVICE FACTORY
# ============================================================================

class ParkingServiceFactory:
    """Factory for creating parking service instances"""

    @staticmethod
    def create_default_service() -> ParkingService:
        """Create a default parking service instance"""
        return ParkingServiceFactory.create_service_with_config({})

    @staticmethod
    def create_service_with_config(config: Dict[str, Any]) -> ParkingService:
        """
        Create a parking service with custom configuration

        Recognised keys (others are copied into service.config):
            seed: seeds the random distance estimator and geocoder
            payment_delay_seconds: simulated payment delay
            policies: BookingPolicies or a dict of its fields
            clock: callable returning "now"
        """
        config = dict(config)
        seed = config.pop("seed", None)
        delay = config.pop("payment_delay_seconds", 2.0)
        policies = config.pop("policies", None)
        clock = config.pop("clock", None)

        if isinstance(policies, dict):
            policies = BookingPolicies(**policies)

        store = LedgerStore(EventBus())
        ledger = BookingLedger(
            store,
            policies=policies,
            clock=clock,
            distance_estimator=RandomDistanceEstimator(seed=seed),
        )
        service = ParkingService(
            ledger=ledger,
            geocoder=MockGeocodingService(seed=seed),
            payment_processor=SimulatedPaymentProcessor(delay_seconds=delay),
        )
        service.config.update(config)

        if service.config.get("notify_users"):
            store.event_bus.subscribe_all(NotificationEventHandler())
        return service

    @staticmethod
    def create_mock_service(
        clock: Optional[Clock] = None,
        payment_processor: Optional[PaymentProcessor] = None,
        distance_estimator: Optional[DistanceEstimator] = None,
        policies: Optional[BookingPolicies] = None
    ) -> ParkingService:
        """Create a deterministic parking service for testing"""
        ledger = BookingLedger(
            LedgerStore(),
            policies=policies,
            clock=clock,
            distance_estimator=distance_estimator or FixedDistanceEstimator(),
        )
        return ParkingService(
            ledger=ledger,
            geocoder=FixedGeocodingService(),
            payment_processor=payment_processor or InstantPaymentProcessor(),
        )
