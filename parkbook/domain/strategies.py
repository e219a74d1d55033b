# File: parkbook/domain/strategies.py
"""
Strategy Pattern Implementation for the Parking Booking Ledger

The demo simulates everything that would talk to the outside world. Each
simulation sits behind a strategy interface so a real implementation can
replace it without touching the ledger.

Key Strategies:
1. DistanceEstimator - distance from the customer to a location
2. GeocodingService - coordinates for an address
3. PaymentProcessor - charging the booking total (async, may be slow)
4. LocationSortStrategy - ordering of search results

Each interface has a simulated implementation matching the demo's behavior
and a deterministic stub for tests.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Tuple, Union
from decimal import Decimal
from enum import Enum
import asyncio
import logging
import random

from geopy.distance import geodesic

from .errors import ValidationError
from .models import GeoLocation, PaymentStatus
from .aggregates import ParkingLocation


Coordinates = Tuple[float, float]
Origin = Union[GeoLocation, Coordinates, None]


def _coordinates(origin: Origin) -> Optional[Coordinates]:
    if origin is None:
        return None
    if isinstance(origin, GeoLocation):
        return origin.get_coordinates()
    return (float(origin[0]), float(origin[1]))


# ============================================================================
# STRATEGY INTERFACES
# ============================================================================

class Strategy(ABC):
    """Common base: per-strategy logger and a readable name"""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_strategy_name(self) -> str:
        return self.__class__.__name__

    def __str__(self) -> str:
        return self.get_strategy_name()


class DistanceEstimator(Strategy):
    """
    Estimates the distance from a customer to a parking location

    Contract for real implementations: return kilometres as a non-negative
    float; `origin` may be None when the customer position is unknown.
    """

    @abstractmethod
    def estimate_km(self, origin: Origin, location: ParkingLocation) -> float:
        pass


class GeocodingService(Strategy):
    """
    Resolves coordinates for an address

    Contract for real implementations: return a GeoLocation with the same
    address fields and resolved latitude/longitude; never mutate the input.
    """

    @abstractmethod
    def geocode(self, geo_location: GeoLocation) -> GeoLocation:
        pass


class PaymentProcessor(Strategy):
    """
    Charges a customer for a booking

    Contract for real implementations: coroutine that resolves to PAID,
    PENDING or FAILED. It must not touch ledger state, and it must tolerate
    cancellation (the caller abandons the task when the customer leaves).
    `refund` returns a PAID charge when the booking could not be committed.
    """

    @abstractmethod
    async def charge(self, user_id: str, amount: Decimal) -> PaymentStatus:
        pass

    @abstractmethod
    async def refund(self, user_id: str, amount: Decimal) -> None:
        pass


# ============================================================================
# DISTANCE ESTIMATORS
# ============================================================================

class RandomDistanceEstimator(DistanceEstimator):
    """Demo behavior: a random distance between 0.5 and 5.5 km"""

    def __init__(self, seed: Optional[int] = None, minimum_km: float = 0.5, spread_km: float = 5.0):
        super().__init__()
        self._random = random.Random(seed)
        self.minimum_km = minimum_km
        self.spread_km = spread_km

    def estimate_km(self, origin: Origin, location: ParkingLocation) -> float:
        return round(self._random.random() * self.spread_km + self.minimum_km, 1)


class FixedDistanceEstimator(DistanceEstimator):
    """Deterministic stub: per-location distances with a default"""

    def __init__(self, default_km: float = 1.0, distances: Optional[Dict[str, float]] = None):
        super().__init__()
        self.default_km = default_km
        self.distances = dict(distances or {})

    def estimate_km(self, origin: Origin, location: ParkingLocation) -> float:
        return self.distances.get(location.id, self.default_km)


class GeodesicDistanceEstimator(DistanceEstimator):
    """Great-circle distance between the origin and the location's coordinates"""

    def estimate_km(self, origin: Origin, location: ParkingLocation) -> float:
        start = _coordinates(origin)
        if start is None:
            raise ValidationError("Geodesic distance needs an origin")
        return round(geodesic(start, location.geo_location.get_coordinates()).km, 2)


# ============================================================================
# GEOCODING
# ============================================================================

class MockGeocodingService(GeocodingService):
    """Demo behavior: a fixed base point plus up to `jitter` degrees of noise"""

    def __init__(
        self,
        base: Coordinates = (40.7128, -74.0060),
        jitter: float = 0.1,
        seed: Optional[int] = None
    ):
        super().__init__()
        self.base = base
        self.jitter = jitter
        self._random = random.Random(seed)

    def geocode(self, geo_location: GeoLocation) -> GeoLocation:
        latitude = self.base[0] + self._random.random() * self.jitter
        longitude = self.base[1] + self._random.random() * self.jitter
        self.logger.debug(f"Geocoded '{geo_location.address}' to ({latitude:.4f}, {longitude:.4f})")
        return geo_location.with_coordinates(latitude, longitude)


class FixedGeocodingService(GeocodingService):
    """Deterministic stub: every address resolves to the same point"""

    def __init__(self, latitude: float = 40.7128, longitude: float = -74.0060):
        super().__init__()
        self.latitude = latitude
        self.longitude = longitude

    def geocode(self, geo_location: GeoLocation) -> GeoLocation:
        return geo_location.with_coordinates(self.latitude, self.longitude)


# ============================================================================
# PAYMENT
# ============================================================================

class SimulatedPaymentProcessor(PaymentProcessor):
    """Demo behavior: always approves after a fixed delay"""

    def __init__(self, delay_seconds: float = 2.0):
        super().__init__()
        if delay_seconds < 0:
            raise ValidationError("Payment delay cannot be negative")
        self.delay_seconds = delay_seconds

    async def charge(self, user_id: str, amount: Decimal) -> PaymentStatus:
        self.logger.info(f"Processing payment of {amount} for user {user_id}")
        await asyncio.sleep(self.delay_seconds)
        return PaymentStatus.PAID

    async def refund(self, user_id: str, amount: Decimal) -> None:
        self.logger.info(f"Refunding {amount} to user {user_id}")


class InstantPaymentProcessor(PaymentProcessor):
    """Deterministic stub: approves immediately and records each charge"""

    def __init__(self, status: PaymentStatus = PaymentStatus.PAID):
        super().__init__()
        self.status = status
        self.charges: List[Tuple[str, Decimal]] = []
        self.refunds: List[Tuple[str, Decimal]] = []

    async def charge(self, user_id: str, amount: Decimal) -> PaymentStatus:
        self.charges.append((user_id, amount))
        return self.status

    async def refund(self, user_id: str, amount: Decimal) -> None:
        self.refunds.append((user_id, amount))


class DecliningPaymentProcessor(InstantPaymentProcessor):
    """Deterministic stub: every charge fails"""

    def __init__(self):
        super().__init__(status=PaymentStatus.FAILED)


# ============================================================================
# SEARCH ORDERING
# ============================================================================

class SortKey(str, Enum):
    DISTANCE = "distance"
    PRICE = "price"
    AVAILABILITY = "availability"


class LocationSortStrategy(Strategy):
    """Orders search results; `distances` maps location id to km"""

    @abstractmethod
    def sort(self, locations: List[ParkingLocation],
             distances: Dict[str, float]) -> List[ParkingLocation]:
        pass


class DistanceSortStrategy(LocationSortStrategy):
    def sort(self, locations, distances):
        return sorted(locations, key=lambda loc: (distances.get(loc.id, float('inf')), loc.name))


class PriceSortStrategy(LocationSortStrategy):
    def sort(self, locations, distances):
        return sorted(locations, key=lambda loc: (loc.lowest_price, loc.name))


class AvailabilitySortStrategy(LocationSortStrategy):
    def sort(self, locations, distances):
        return sorted(locations, key=lambda loc: (-loc.available_slots, loc.name))


def create_sort_strategy(sort_by: Union[str, SortKey]) -> LocationSortStrategy:
    """Map a sort key to its strategy"""
    try:
        key = SortKey(sort_by)
    except ValueError:
        raise ValidationError(f"Unknown sort key: {sort_by!r}")

    strategies = {
        SortKey.DISTANCE: DistanceSortStrategy,
        SortKey.PRICE: PriceSortStrategy,
        SortKey.AVAILABILITY: AvailabilitySortStrategy,
    }
    return strategies[key]()
